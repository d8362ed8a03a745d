import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional, Dict
import logging
import asyncio

from engine.errors import TransportError
from models.results import SendResult
from models.smtp_settings import SMTPSettings
from .base_sender import BaseSender

logger = logging.getLogger("storefront_notifications")


class SMTPSender(BaseSender):
    """
    One SMTP connection. Blocking smtplib calls run in a worker thread; the
    lock keeps concurrent coroutines from interleaving on the socket.
    """

    def __init__(self, settings: SMTPSettings, port: Optional[int] = None,
                 secure: Optional[bool] = None, timeout: float = 5.0):
        self.settings = settings
        self.host = settings.host
        self.port = port or settings.port
        self.secure = settings.secure if secure is None else secure
        self.timeout = timeout
        self._server: Optional[smtplib.SMTP] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._server is not None

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port} ({'SSL' if self.secure else 'STARTTLS'})"

    def _connect_sync(self):
        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
        try:
            if self.settings.requires_login:
                server.login(self.settings.username, self.settings.password)
            code, _ = server.noop()
            if code != 250:
                raise smtplib.SMTPResponseException(code, b"NOOP rejected")
        except Exception:
            server.close()
            raise
        return server

    async def verify(self) -> None:
        """Connects, authenticates and checks liveness. Raises TransportError."""
        async with self._lock:
            if self._server is not None:
                try:
                    code, _ = await asyncio.to_thread(self._server.noop)
                    if code == 250:
                        return
                except Exception as e:
                    logger.warning(f"[SMTP] Existing connection to {self.label} is stale: {e}")
                await self._close_unlocked()
            try:
                self._server = await asyncio.to_thread(self._connect_sync)
            except Exception as e:
                raise TransportError(f"SMTP verification failed for {self.label}: {e}") from e
            logger.info(f"[SMTP] Connected and verified {self.label}")

    def _build_message(self, to_email: str, subject: str, html_body: str, text_body: str = None,
                       reply_to: str = None, headers: Dict[str, str] = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject

        # Stray whitespace around addresses makes some providers drop the message
        from_email = self.settings.from_email.strip()
        msg["From"] = formataddr((self.settings.from_name.strip(), from_email))
        msg["To"] = to_email.strip()
        msg["Message-ID"] = make_msgid(domain=from_email.split("@")[-1])
        if reply_to:
            msg["Reply-To"] = reply_to

        if headers:
            for key, value in headers.items():
                msg.add_header(key, value)

        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str = None,
        reply_to: str = None,
        headers: Dict[str, str] = None
    ) -> SendResult:
        msg = self._build_message(to_email, subject, html_body, text_body, reply_to, headers)
        async with self._lock:
            if self._server is None:
                raise TransportError(f"SMTP channel {self.label} is not connected")
            try:
                refused = await asyncio.to_thread(
                    self._server.sendmail, self.settings.from_email.strip(), [to_email.strip()], msg.as_string()
                )
            except Exception as e:
                logger.error(f"SMTP send failed to {to_email}: {e}")
                await self._close_unlocked()
                raise TransportError(f"SMTP send to {to_email} failed: {e}") from e

        if refused:
            return SendResult(success=False, error=f"Recipient refused: {refused}")
        return SendResult(success=True, message_id=msg["Message-ID"])

    async def _close_unlocked(self):
        server, self._server = self._server, None
        if server is None:
            return
        try:
            await asyncio.to_thread(server.quit)
        except Exception as e:
            logger.debug(f"[SMTP] Ignoring error while closing {self.label}: {e}")
            server.close()

    async def close(self) -> None:
        async with self._lock:
            await self._close_unlocked()
