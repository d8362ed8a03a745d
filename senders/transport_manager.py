import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from engine.errors import TransportError
from models.results import ConnectionTestResult, SendResult
from models.smtp_settings import PartialSMTPSettings, SMTPSettings, clean_text, parse_port, usable_address
from models.template import RenderedMessage
from utils.config import AppConfig
from utils.logging_config import mask_secret
from .smtp_sender import SMTPSender

logger = logging.getLogger("storefront_notifications")

# Tried after the configured port when the configured one fails
FALLBACK_PORTS: List[Tuple[int, bool]] = [(587, False)]


class TransportManager:
    """
    Produces a verified SMTP channel from the guaranteed configuration and
    keeps it for reuse. Channel creation is serialised by a lock so
    concurrent callers never build two channels or see a half-built one.
    """

    def __init__(self, config: AppConfig, settings_client=None,
                 sender_factory: Callable[..., SMTPSender] = SMTPSender):
        self.config = config
        self.settings_client = settings_client
        self.sender_factory = sender_factory
        self._channel: Optional[SMTPSender] = None
        self._channel_settings: Optional[SMTPSettings] = None
        self._lock = asyncio.Lock()

    # --- configuration -----------------------------------------------------

    def _environment_settings(self) -> Optional[PartialSMTPSettings]:
        env = self.config.smtp_environment
        host, username, password = clean_text(env.host), clean_text(env.username), clean_text(env.password)
        if not (host and username and password):
            return None
        port = parse_port(env.port) or 587
        logger.info(f"[SMTP] Using environment configuration {host}:{port} user={mask_secret(username)}")
        return PartialSMTPSettings(
            host=host,
            port=port,
            secure=port == 465,
            username=username,
            password=password,
            from_email=usable_address(env.from_email) or usable_address(username),
            source="environment",
        )

    def _stored_settings(self) -> Optional[PartialSMTPSettings]:
        if self.settings_client is None:
            return None
        best = None
        for reader in (self.settings_client.smtp_config_json, self.settings_client.smtp_config_kv):
            try:
                partial = reader()
            except Exception as e:
                logger.error(f"[SMTP] Error reading stored settings: {e}")
                continue
            if partial is None:
                continue
            if partial.complete:
                logger.info(f"[SMTP] Using settings from setting_type = '{partial.source}'")
                return partial
            logger.warning(f"[SMTP] '{partial.source}' settings incomplete, missing: {partial.missing_fields()}")
            best = best or partial
        return best

    def load_settings(self) -> Optional[PartialSMTPSettings]:
        """Best available stored configuration, possibly partial; None when nothing is stored."""
        return self._environment_settings() or self._stored_settings()

    async def get_guaranteed_config(self) -> SMTPSettings:
        """Never fails: any field the stored configuration lacks comes from the defaults."""
        partial = None
        try:
            partial = await asyncio.to_thread(self.load_settings)
        except Exception as e:
            logger.error(f"[SMTP] Failed to load SMTP settings: {e}")

        if partial is None:
            logger.warning("[SMTP] No stored SMTP settings, using guaranteed fallback configuration")
        return SMTPSettings.guaranteed(partial, self.config.smtp_defaults)

    # --- channel -----------------------------------------------------------

    def _candidates(self, settings: SMTPSettings) -> List[Tuple[int, bool]]:
        candidates = [(settings.port, settings.secure)]
        for port, secure in FALLBACK_PORTS:
            if (port, secure) not in candidates:
                candidates.append((port, secure))
        return candidates

    async def acquire_transport(self, settings: Optional[SMTPSettings] = None) -> SMTPSender:
        """Returns the cached channel when still valid, else builds and verifies a new one."""
        settings = settings or await self.get_guaranteed_config()
        async with self._lock:
            if self._channel is not None and self._channel_settings == settings and self._channel.is_open:
                return self._channel

            if self._channel is not None:
                await self._channel.close()
                self._channel = None

            errors = []
            for port, secure in self._candidates(settings):
                channel = self.sender_factory(settings, port=port, secure=secure,
                                              timeout=self.config.smtp_timeout_seconds)
                try:
                    await channel.verify()
                except TransportError as e:
                    logger.warning(f"[SMTP] {e}")
                    errors.append(str(e))
                    continue
                self._channel = channel
                self._channel_settings = settings
                return channel

            raise TransportError("All SMTP port configurations failed: " + "; ".join(errors))

    async def send(self, channel: SMTPSender, recipient: str, message: RenderedMessage) -> SendResult:
        """Sends through `channel`. Failures come back as an unsuccessful SendResult."""
        try:
            result = await channel.send(
                to_email=recipient,
                subject=message.subject,
                html_body=message.html,
                text_body=message.text,
            )
        except TransportError as e:
            await self._discard(channel)
            return SendResult(success=False, error=str(e))
        if result.success:
            logger.info(f"[SMTP] Email sent to {recipient}. Message ID: {result.message_id}")
        return result

    async def send_message(self, recipient: str, message: RenderedMessage) -> SendResult:
        try:
            channel = await self.acquire_transport()
        except TransportError as e:
            logger.error(f"[SMTP] Could not create transport: {e}")
            return SendResult(success=False, error=str(e))
        return await self.send(channel, recipient, message)

    async def test_connection(self) -> ConnectionTestResult:
        try:
            channel = await self.acquire_transport()
            await channel.verify()
            return ConnectionTestResult(success=True)
        except TransportError as e:
            return ConnectionTestResult(success=False, error=str(e))

    async def _discard(self, channel: SMTPSender):
        async with self._lock:
            if self._channel is channel:
                self._channel = None
                self._channel_settings = None
        await channel.close()

    async def close(self):
        async with self._lock:
            if self._channel is not None:
                await self._channel.close()
            self._channel = None
            self._channel_settings = None
