import asyncio
from typing import Dict, List, Optional

import pytest

from engine.stock_monitor import StockMonitor
from engine.template_cache import TemplateCache
from engine.template_renderer import TemplateRenderer
from engine.trigger_dispatcher import TriggerDispatcher
from models.product import Product
from models.results import SendResult
from models.template import EmailTemplate, RenderedMessage

ADMIN_EMAIL = "admin@example.com"


def make_template(key="shipping_notification", type=None, active=True, subject="Ihre Bestellung {{order_number}}",
                  html_body="<p>Hallo {{customer_name}}, Bestellung {{order_number}} ist unterwegs.</p>",
                  text_body="Hallo {{customer_name}}, Bestellung {{order_number}} ist unterwegs.", **kwargs):
    return EmailTemplate(key=key, type=type or key, active=active, subject=subject,
                         html_body=html_body, text_body=text_body, **kwargs)


class InMemoryTemplateStore:
    """Template store double: identifier -> template, counting reads."""

    def __init__(self, templates: Dict[str, EmailTemplate] = None):
        self.templates = dict(templates or {})
        self.reads = 0
        self.gate: Optional[asyncio.Event] = None

    async def get_template(self, identifier: str) -> Optional[EmailTemplate]:
        self.reads += 1
        snapshot = self.templates.get(identifier)
        if self.gate is not None:
            await self.gate.wait()
        return snapshot


class FakeTransport:
    """Records every message instead of sending it."""

    def __init__(self):
        self.sent: List[tuple] = []
        self.failing: set = set()

    async def send_message(self, recipient: str, message: RenderedMessage) -> SendResult:
        if recipient in self.failing:
            return SendResult(success=False, error=f"Delivery to {recipient} failed")
        self.sent.append((recipient, message))
        return SendResult(success=True, message_id=f"<{len(self.sent)}@test>")

    def to(self, recipient: str) -> List[RenderedMessage]:
        return [m for r, m in self.sent if r == recipient]


class FakeProductStore:
    def __init__(self, products: List[Product] = None):
        self.products = {str(p.id): p for p in (products or [])}
        self.status_updates: List[tuple] = []

    def set_stock(self, product_id, quantity: int):
        key = str(product_id)
        self.products[key] = self.products[key].model_copy(update={"stock_quantity": quantity})

    async def fetch(self, product_id) -> Optional[Product]:
        await asyncio.sleep(0)
        product = self.products.get(str(product_id))
        return product.model_copy() if product else None

    async def fetch_monitored(self) -> List[Product]:
        return [p.model_copy() for p in self.products.values() if p.monitored]

    async def set_stock_status(self, product_id, status: str) -> bool:
        self.status_updates.append((product_id, status))
        key = str(product_id)
        self.products[key] = self.products[key].model_copy(update={"stock_status": status})
        return True


@pytest.fixture
def template_store():
    return InMemoryTemplateStore({
        "shipping_notification": make_template(name="Versand"),
        "low_stock": make_template(
            key="low_stock",
            subject="Niedriger Lagerbestand: {{product_name}}",
            html_body="<p>{{product_name}}: {{current_stock}} / {{minimum_stock}}</p>",
            text_body="{{product_name}}: {{current_stock}} / {{minimum_stock}}",
        ),
        "loyalty_points_earned": make_template(
            key="loyalty_points_earned",
            subject="{{points_earned}} Punkte gesammelt",
            html_body="<p>Hallo {{customer_name}}, Bestellwert {{order_total}}</p>",
            text_body="Hallo {{customer_name}}, Bestellwert {{order_total}}",
        ),
        "inactive_notice": make_template(key="inactive_notice", active=False),
    })


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def dispatcher(template_store, fake_transport):
    return TriggerDispatcher(
        TemplateCache(template_store),
        TemplateRenderer(),
        fake_transport,
        admin_email=ADMIN_EMAIL,
        default_variables={"company_name": "Brennholzkönig"},
    )


@pytest.fixture
def product_store():
    return FakeProductStore([
        Product(id="P", name="Buche 33cm", stock_quantity=3, min_stock_level=5),
        Product(id="Q", name="Eiche 25cm", stock_quantity=50, min_stock_level=5),
        Product(id="U", name="Anzündholz", stock_quantity=0),
    ])


@pytest.fixture
def stock_monitor(product_store, dispatcher):
    return StockMonitor(product_store, dispatcher, admin_email=ADMIN_EMAIL)
