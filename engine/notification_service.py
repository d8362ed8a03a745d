import logging
from typing import Any, Dict, Iterable, Optional, Union

from api_clients.product_client import ProductClient
from api_clients.settings_client import SettingsClient
from api_clients.template_client import TemplateClient
from engine.errors import TemplateStoreError
from engine.invoice_builder import InvoiceBuilder
from engine.stock_monitor import StockMonitor
from engine.template_cache import TemplateCache
from engine.template_renderer import TemplateRenderer
from engine.trigger_dispatcher import TriggerDispatcher
from models.invoice import Invoice
from models.product import StockCheckSummary
from models.results import ConnectionTestResult, DispatchResult
from models.smtp_settings import SMTPSettings
from models.template import EmailTemplate
from models.trigger_event import TriggerType
from senders.smtp_sender import SMTPSender
from senders.transport_manager import TransportManager
from utils.config import AppConfig, load_config

logger = logging.getLogger("storefront_notifications")


class NotificationService:
    """
    Entry points the storefront calls. Owns one instance of every stateful
    component (template cache, transport, stock alerts, invoice templates);
    build it once per process with ``from_config``.
    """

    def __init__(self, config: AppConfig, template_cache: TemplateCache, transport: TransportManager,
                 dispatcher: TriggerDispatcher, stock_monitor: StockMonitor,
                 invoice_builder: InvoiceBuilder):
        self.config = config
        self.template_cache = template_cache
        self.transport = transport
        self.dispatcher = dispatcher
        self.stock_monitor = stock_monitor
        self.invoice_builder = invoice_builder

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "NotificationService":
        config = config or load_config()
        settings_client = SettingsClient(config)
        template_client = TemplateClient(config, settings_client=settings_client)
        product_client = ProductClient(config)

        template_cache = TemplateCache(template_client, negative_ttl=config.template_negative_ttl_seconds)
        transport = TransportManager(config, settings_client=settings_client)
        dispatcher = TriggerDispatcher(
            template_cache,
            TemplateRenderer(),
            transport,
            admin_email=config.admin_email,
            default_variables={
                "company_name": config.company_name,
                "support_email": config.support_email,
            },
            settings_client=settings_client,
        )
        stock_monitor = StockMonitor(product_client, dispatcher, admin_email=config.admin_email)
        invoice_builder = InvoiceBuilder(config.invoice_template_dir)
        logger.info(f"Notification service ready (store: {config.supabase_url})")
        return cls(config, template_cache, transport, dispatcher, stock_monitor, invoice_builder)

    # --- templates -----------------------------------------------------------

    async def get_email_template(self, key: str) -> Optional[EmailTemplate]:
        try:
            return await self.template_cache.get_template(key)
        except TemplateStoreError as e:
            logger.error(f"Error loading template '{key}': {e}")
            return None

    def clear_template_cache(self):
        self.template_cache.clear_cache()
        self.invoice_builder.clear_template_cache()

    # --- sending -------------------------------------------------------------

    async def send_template_email(self, template_type: str, recipient: str, data: Optional[Dict[str, Any]],
                                  cc_admin: bool = False) -> DispatchResult:
        return await self.dispatcher.send_template_email(template_type, recipient, data, cc_admin=cc_admin)

    async def trigger(self, event_type: Union[TriggerType, str], payload: Optional[Dict[str, Any]],
                      recipient: str = None, cc_admin: bool = False) -> DispatchResult:
        return await self.dispatcher.trigger(event_type, payload, recipient=recipient, cc_admin=cc_admin)

    async def trigger_shipping_notification(self, data: Dict[str, Any], cc_admin: bool = True) -> DispatchResult:
        return await self.trigger(TriggerType.SHIPPING_NOTIFICATION, data, cc_admin=cc_admin)

    async def trigger_loyalty_points_earned(self, data: Dict[str, Any]) -> bool:
        return (await self.trigger(TriggerType.LOYALTY_POINTS_EARNED, data)).success

    async def trigger_loyalty_points_redeemed(self, data: Dict[str, Any]) -> bool:
        return (await self.trigger(TriggerType.LOYALTY_POINTS_REDEEMED, data)).success

    async def trigger_loyalty_tier_upgrade(self, data: Dict[str, Any]) -> bool:
        return (await self.trigger(TriggerType.LOYALTY_TIER_UPGRADE, data)).success

    async def trigger_loyalty_points_expiring(self, data: Dict[str, Any]) -> bool:
        return (await self.trigger(TriggerType.LOYALTY_POINTS_EXPIRING, data)).success

    async def trigger_low_stock_alert(self, data: Dict[str, Any]) -> bool:
        return (await self.trigger(TriggerType.LOW_STOCK_ALERT, data)).success

    # --- stock ---------------------------------------------------------------

    async def check_product_low_stock_by_id(self, product_id: Union[str, int]) -> bool:
        return await self.stock_monitor.check_low_stock(product_id)

    async def check_multiple_products_low_stock(self, product_ids: Iterable[Union[str, int]]) -> StockCheckSummary:
        return await self.stock_monitor.check_many(product_ids)

    async def check_all_products_low_stock(self) -> StockCheckSummary:
        return await self.stock_monitor.check_all()

    # --- transport -----------------------------------------------------------

    async def get_guaranteed_smtp_settings(self) -> SMTPSettings:
        return await self.transport.get_guaranteed_config()

    async def create_email_transporter(self) -> SMTPSender:
        """Verified, shared channel. Raises TransportError when no port can be reached."""
        return await self.transport.acquire_transport()

    async def test_smtp_connection(self) -> ConnectionTestResult:
        return await self.transport.test_connection()

    # --- invoices ------------------------------------------------------------

    def render_invoice(self, invoice: Invoice, template_id: Optional[str] = None) -> str:
        return self.invoice_builder.render(invoice, template_id)

    async def close(self):
        await self.transport.close()
