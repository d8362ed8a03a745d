import email

import pytest
from unittest.mock import MagicMock, patch

from engine.errors import TransportError
from models.smtp_settings import PartialSMTPSettings, SMTPSettings
from senders.smtp_sender import SMTPSender
from utils.config import SMTPDefaults


def make_settings(**fields):
    return SMTPSettings.guaranteed(PartialSMTPSettings(source="smtp", **fields), SMTPDefaults())


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP")
async def test_verify_uses_starttls_and_login(MockSMTP):
    server = MockSMTP.return_value
    server.has_extn.return_value = True
    server.noop.return_value = (250, b"OK")
    sender = SMTPSender(make_settings(host="smtp.example.com", username="u", password="p"))

    await sender.verify()

    MockSMTP.assert_called_once_with("smtp.example.com", 587, timeout=5.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("u", "p")
    assert sender.is_open is True


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP_SSL")
async def test_verify_failure_raises_transport_error(MockSSL):
    MockSSL.side_effect = OSError("connection refused")
    sender = SMTPSender(make_settings(host="smtp.example.com", port=465, secure=True))

    with pytest.raises(TransportError):
        await sender.verify()
    assert sender.is_open is False


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP")
async def test_send_builds_multipart_message(MockSMTP):
    server = MockSMTP.return_value
    server.has_extn.return_value = False
    server.noop.return_value = (250, b"OK")
    server.sendmail.return_value = {}
    sender = SMTPSender(make_settings(host="smtp.example.com", from_email=" shop@example.com "))
    await sender.verify()

    result = await sender.send("max@example.com", "Ihre Bestellung", "<p>Hallo</p>", "Hallo")

    assert result.success is True
    from_addr, to_addrs, raw = server.sendmail.call_args.args
    assert from_addr == "shop@example.com"
    assert to_addrs == ["max@example.com"]
    message = email.message_from_string(raw)
    assert message["Message-ID"] == result.message_id
    assert [part.get_content_type() for part in message.get_payload()] == ["text/plain", "text/html"]
    server.login.assert_not_called()


@pytest.mark.asyncio
async def test_send_without_connection_raises():
    sender = SMTPSender(make_settings(host="smtp.example.com"))
    with pytest.raises(TransportError):
        await sender.send("max@example.com", "s", "<p>x</p>")


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP")
async def test_send_error_closes_channel(MockSMTP):
    server = MockSMTP.return_value
    server.has_extn.return_value = False
    server.noop.return_value = (250, b"OK")
    server.sendmail.side_effect = OSError("broken pipe")
    sender = SMTPSender(make_settings(host="smtp.example.com"))
    await sender.verify()

    with pytest.raises(TransportError):
        await sender.send("max@example.com", "s", "<p>x</p>")
    assert sender.is_open is False


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP")
async def test_connect_timeout_uses_socket_timeout(MockSMTP):
    MockSMTP.side_effect = TimeoutError("timed out")
    sender = SMTPSender(make_settings(host="smtp.example.com"), timeout=2.5)

    with pytest.raises(TransportError):
        await sender.verify()

    MockSMTP.assert_called_once_with("smtp.example.com", 587, timeout=2.5)
    assert sender.is_open is False


@pytest.mark.asyncio
@patch("senders.smtp_sender.smtplib.SMTP")
async def test_stale_connection_is_closed_before_reconnect(MockSMTP):
    stale, fresh = MagicMock(), MagicMock()
    MockSMTP.side_effect = [stale, fresh]
    for server in (stale, fresh):
        server.has_extn.return_value = False
    stale.noop.side_effect = [(250, b"OK"), TimeoutError("timed out")]
    fresh.noop.return_value = (250, b"OK")
    sender = SMTPSender(make_settings(host="smtp.example.com"))
    await sender.verify()

    await sender.verify()

    stale.quit.assert_called_once()
    assert sender.is_open is True
    assert MockSMTP.call_count == 2
