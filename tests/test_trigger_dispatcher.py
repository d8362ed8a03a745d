import pytest
from unittest.mock import AsyncMock

from engine.errors import TemplateStoreError
from engine.template_cache import TemplateCache
from engine.template_renderer import TemplateRenderer
from engine.trigger_dispatcher import TriggerDispatcher
from models.template import EmailSignature
from models.trigger_event import TriggerType
from tests.conftest import ADMIN_EMAIL

CUSTOMER = {"name": "Max Mustermann", "email": "max@example.com", "customer_number": "K-100"}


def shipping_payload(**overrides):
    payload = {"customer": CUSTOMER, "order_number": "BK-2025-001", "tracking_number": "00340434"}
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_shipping_notification_sent_to_customer(dispatcher, fake_transport):
    result = await dispatcher.trigger(TriggerType.SHIPPING_NOTIFICATION, shipping_payload())

    assert result.success is True
    assert result.message_id == "<1@test>"
    [message] = fake_transport.to("max@example.com")
    assert message.text == "Hallo Max Mustermann, Bestellung BK-2025-001 ist unterwegs."
    assert message.subject == "Ihre Bestellung BK-2025-001"


@pytest.mark.asyncio
async def test_missing_payload_fields_reject_before_send(dispatcher, fake_transport):
    result = await dispatcher.trigger(TriggerType.SHIPPING_NOTIFICATION, {"customer": CUSTOMER})

    assert result.success is False
    assert result.error_kind == "validation_error"
    assert "order_number" in result.error
    assert fake_transport.sent == []


@pytest.mark.asyncio
async def test_empty_payload_is_a_validation_error(dispatcher):
    result = await dispatcher.trigger(TriggerType.LOYALTY_POINTS_EARNED, {})
    assert result.error_kind == "validation_error"


@pytest.mark.asyncio
async def test_unknown_trigger_type(dispatcher):
    result = await dispatcher.trigger("birthday_greeting", {"x": 1})
    assert result.success is False
    assert result.error_kind == "validation_error"


@pytest.mark.asyncio
async def test_inactive_template_never_sends(dispatcher, fake_transport):
    result = await dispatcher.send_template_email("inactive_notice", "max@example.com", {"customer_name": "Max"})

    assert result.success is False
    assert result.error_kind == "template_not_found"
    assert fake_transport.sent == []


@pytest.mark.asyncio
async def test_missing_template(dispatcher, fake_transport):
    result = await dispatcher.send_template_email("order_confirmation", "max@example.com", {"order_number": "1"})
    assert result.error_kind == "template_not_found"
    assert fake_transport.sent == []


@pytest.mark.asyncio
async def test_store_failure_reported_as_not_found(fake_transport):
    store = AsyncMock()
    store.get_template.side_effect = TemplateStoreError("store down")
    dispatcher = TriggerDispatcher(TemplateCache(store), TemplateRenderer(), fake_transport)

    result = await dispatcher.send_template_email("shipping_notification", "max@example.com", {"a": 1})

    assert result.success is False
    assert result.error_kind == "template_not_found"


@pytest.mark.asyncio
async def test_send_template_email_requires_all_arguments(dispatcher):
    assert (await dispatcher.send_template_email("", "max@example.com", {"a": 1})).error_kind == "validation_error"
    assert (await dispatcher.send_template_email("shipping_notification", "", {"a": 1})).error_kind == "validation_error"
    assert (await dispatcher.send_template_email("shipping_notification", "max@example.com", {})).error_kind == "validation_error"


@pytest.mark.asyncio
async def test_admin_copy_after_primary(dispatcher, fake_transport):
    result = await dispatcher.trigger(TriggerType.SHIPPING_NOTIFICATION, shipping_payload(), cc_admin=True)

    assert result.success is True
    assert [r for r, _ in fake_transport.sent] == ["max@example.com", ADMIN_EMAIL]
    [copy] = fake_transport.to(ADMIN_EMAIL)
    assert copy.subject == "[Admin-Kopie] Ihre Bestellung BK-2025-001"
    assert "Max Mustermann" in copy.html
    assert "max@example.com" in copy.html


@pytest.mark.asyncio
async def test_failed_admin_copy_keeps_success(dispatcher, fake_transport):
    fake_transport.failing.add(ADMIN_EMAIL)

    result = await dispatcher.trigger(TriggerType.SHIPPING_NOTIFICATION, shipping_payload(), cc_admin=True)

    assert result.success is True
    assert len(fake_transport.to("max@example.com")) == 1


@pytest.mark.asyncio
async def test_primary_failure_skips_admin_copy(dispatcher, fake_transport):
    fake_transport.failing.add("max@example.com")

    result = await dispatcher.trigger(TriggerType.SHIPPING_NOTIFICATION, shipping_payload(), cc_admin=True)

    assert result.success is False
    assert result.error_kind == "transport_error"
    assert fake_transport.to(ADMIN_EMAIL) == []


@pytest.mark.asyncio
async def test_low_stock_alert_defaults_to_admin(dispatcher, fake_transport):
    payload = {"product_id": "P", "product_name": "Buche 33cm", "current_stock": 3, "minimum_stock": 5}

    result = await dispatcher.trigger(TriggerType.LOW_STOCK_ALERT, payload)

    assert result.success is True
    [message] = fake_transport.to(ADMIN_EMAIL)
    assert message.text == "Buche 33cm: 3 / 5"


@pytest.mark.asyncio
async def test_money_is_formatted_german(dispatcher, fake_transport):
    payload = {"customer": CUSTOMER, "points_earned": 120, "current_points_balance": 300, "order_total": 1234.5}

    result = await dispatcher.trigger(TriggerType.LOYALTY_POINTS_EARNED, payload)

    assert result.success is True
    [message] = fake_transport.to("max@example.com")
    assert message.text == "Hallo Max Mustermann, Bestellwert 1.234,50 €"


@pytest.mark.asyncio
async def test_signature_and_email_log(template_store, fake_transport):
    settings_client = AsyncMock()
    settings_client.load_signature.return_value = EmailSignature(enabled=True, text_signature="\n-- BK")
    dispatcher = TriggerDispatcher(TemplateCache(template_store), TemplateRenderer(), fake_transport,
                                   settings_client=settings_client)

    await dispatcher.send_template_email("shipping_notification", "max@example.com",
                                         {"customer_name": "Max", "order_number": "1"})

    [message] = fake_transport.to("max@example.com")
    assert message.text.endswith("\n-- BK")
    settings_client.log_email.assert_awaited_once()
    args = settings_client.log_email.await_args.args
    assert args[:2] == ("shipping_notification", "max@example.com")


@pytest.mark.asyncio
async def test_logging_failure_does_not_fail_send(template_store, fake_transport):
    settings_client = AsyncMock()
    settings_client.load_signature.return_value = None
    settings_client.log_email.side_effect = RuntimeError("insert failed")
    dispatcher = TriggerDispatcher(TemplateCache(template_store), TemplateRenderer(), fake_transport,
                                   settings_client=settings_client)

    result = await dispatcher.send_template_email("shipping_notification", "max@example.com", {"customer_name": "Max"})

    assert result.success is True
