import html
import logging
import traceback
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from engine.errors import (
    NotificationError,
    TemplateNotFoundError,
    TemplateStoreError,
    TriggerValidationError,
    TransportError,
)
from engine.template_cache import TemplateCache
from engine.template_renderer import TemplateRenderer, append_signature
from models.results import DispatchResult
from models.template import EmailTemplate, RenderedMessage
from models.trigger_event import PAYLOAD_MODELS, TEMPLATE_TYPES, TriggerEvent, TriggerType

logger = logging.getLogger("storefront_notifications")

ADMIN_COPY_PREFIX = "[Admin-Kopie]"


class TriggerDispatcher:
    """
    validate -> resolve -> render -> deliver -> report.

    Every trigger type runs through the same pipeline; they differ only in
    payload model and template type. Nothing raises past ``dispatch`` or
    ``send_template_email``: failures become a DispatchResult.
    """

    def __init__(self, template_cache: TemplateCache, renderer: TemplateRenderer, transport,
                 admin_email: str = None, default_variables: Mapping[str, Any] = None,
                 settings_client=None):
        self.template_cache = template_cache
        self.renderer = renderer
        self.transport = transport
        self.admin_email = admin_email
        self.default_variables = dict(default_variables or {})
        self.settings_client = settings_client

    # --- public entry points ------------------------------------------------

    async def dispatch(self, event: TriggerEvent) -> DispatchResult:
        label = event.event_type.value if event.event_type else "unknown"
        try:
            template_type, recipient, variables = self._validate_event(event)
            return await self._run(template_type, recipient, variables, event.cc_admin)
        except NotificationError as e:
            logger.warning(f"[Trigger:{label}] {e.kind}: {e}")
            return DispatchResult.failed(e)
        except Exception as e:
            logger.error(f"[Trigger:{label}] Unexpected error: {e}")
            logger.error(traceback.format_exc())
            return DispatchResult(success=False, error=str(e), error_kind="internal_error")

    async def trigger(self, event_type: Union[TriggerType, str], payload: Optional[Dict[str, Any]],
                      recipient: str = None, cc_admin: bool = False) -> DispatchResult:
        try:
            event_type = TriggerType(event_type) if event_type else None
        except ValueError:
            return DispatchResult(success=False, error=f"Unknown trigger type '{event_type}'",
                                  error_kind=TriggerValidationError.kind)
        event = TriggerEvent(event_type=event_type, payload=payload, recipient=recipient, cc_admin=cc_admin)
        return await self.dispatch(event)

    async def send_template_email(self, template_type: str, recipient: str, data: Optional[Dict[str, Any]],
                                  cc_admin: bool = False) -> DispatchResult:
        """Sends a template by key or type with a flat variable mapping."""
        try:
            if not template_type:
                raise TriggerValidationError("Template type is required")
            if not recipient:
                raise TriggerValidationError("Recipient is required")
            if not data:
                raise TriggerValidationError("Template data must not be empty")
            try:
                identifier = TEMPLATE_TYPES[TriggerType(template_type)]
            except ValueError:
                identifier = template_type
            return await self._run(identifier, recipient, dict(data), cc_admin)
        except NotificationError as e:
            logger.warning(f"[EmailTemplate:{template_type}] {e.kind}: {e}")
            return DispatchResult.failed(e)
        except Exception as e:
            logger.error(f"[EmailTemplate:{template_type}] Unexpected error: {e}")
            logger.error(traceback.format_exc())
            return DispatchResult(success=False, error=str(e), error_kind="internal_error")

    # --- pipeline -------------------------------------------------------------

    def _validate_event(self, event: TriggerEvent):
        if event.event_type is None:
            raise TriggerValidationError("Trigger type is required")
        if not event.payload:
            raise TriggerValidationError(f"Payload for '{event.event_type.value}' must not be empty")

        model = PAYLOAD_MODELS[event.event_type]
        try:
            payload = model.model_validate(event.payload)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise TriggerValidationError(f"Invalid payload for '{event.event_type.value}': {fields}") from e

        recipient = event.recipient or payload.recipient()
        if event.event_type == TriggerType.LOW_STOCK_ALERT:
            recipient = recipient or self.admin_email
        if not recipient:
            raise TriggerValidationError(f"No recipient for '{event.event_type.value}'")

        return TEMPLATE_TYPES[event.event_type], recipient, payload.template_variables()

    async def _resolve(self, identifier: str) -> EmailTemplate:
        try:
            template = await self.template_cache.get_template(identifier)
        except TemplateStoreError as e:
            raise TemplateNotFoundError(f"Template '{identifier}' unavailable: {e}") from e
        if template is None:
            raise TemplateNotFoundError(f"No active template for type '{identifier}'")
        if not template.active:
            raise TemplateNotFoundError(f"Template '{template.key}' is not active")
        return template

    async def _run(self, identifier: str, recipient: str, variables: Dict[str, Any],
                   cc_admin: bool) -> DispatchResult:
        template = await self._resolve(identifier)
        logger.info(f"[EmailTemplate] Using template '{template.key}' for '{identifier}'")

        variables = {**self.default_variables, **variables}
        missing = self.renderer.missing_variables(template, variables)
        if missing:
            logger.warning(f"[EmailTemplate] '{template.key}' rendered without values for: {missing}")
        message = self.renderer.render(template, variables)
        message = append_signature(message, await self._signature())

        result = await self.transport.send_message(recipient, message)
        await self._log(identifier, recipient, message.subject, result, template)

        if not result.success:
            raise TransportError(result.error or f"Delivery to {recipient} failed")

        if cc_admin:
            await self._send_admin_copy(template, recipient, variables, message)

        return DispatchResult(success=True, message_id=result.message_id)

    async def _send_admin_copy(self, template: EmailTemplate, recipient: str,
                               variables: Mapping[str, Any], message: RenderedMessage):
        if not self.admin_email:
            logger.warning("[EmailTemplate] Admin copy requested but no admin email configured")
            return
        customer = html.escape(str(variables.get("customer_name", "")))
        banner = (
            '<div style="background-color: #f0f0f0; padding: 10px; margin-bottom: 20px; border-left: 4px solid #C04020;">'
            "<strong>Admin-Benachrichtigung:</strong> Diese E-Mail wurde automatisch an den Kunden gesendet.<br>"
            f"<strong>Kunde:</strong> {customer} ({html.escape(recipient)})<br>"
            f"<strong>Template:</strong> {html.escape(template.name or template.key)}"
            "</div>"
        )
        copy = RenderedMessage(
            subject=f"{ADMIN_COPY_PREFIX} {message.subject}",
            html=banner + message.html,
            text=f"{ADMIN_COPY_PREFIX} {message.text}",
        )
        try:
            result = await self.transport.send_message(self.admin_email, copy)
            if not result.success:
                logger.error(f"[EmailTemplate] Admin copy to {self.admin_email} failed: {result.error}")
        except Exception as e:
            logger.error(f"[EmailTemplate] Admin copy to {self.admin_email} failed: {e}")

    async def _signature(self):
        if self.settings_client is None:
            return None
        try:
            return await self.settings_client.load_signature()
        except Exception as e:
            logger.error(f"Error loading global signature: {e}")
            return None

    async def _log(self, identifier: str, recipient: str, subject: str, result, template: EmailTemplate):
        if self.settings_client is None:
            return
        try:
            await self.settings_client.log_email(
                identifier, recipient, subject, result.success,
                message_id=result.message_id, error=result.error, template_id=template.id,
            )
        except Exception as e:
            logger.error(f"Error logging email: {e}")
