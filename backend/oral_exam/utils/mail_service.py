import asyncio
import logging
import smtplib
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class MailService:
    """HTML mail over SMTP. smtplib blocks, so sending runs in a worker thread."""

    def __init__(self, host: str = None, port: int = None):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port

    def _build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = formataddr((str(Header(settings.mail_from_name, "utf-8")), settings.mail_from))
        message["To"] = to
        message["Subject"] = Header(subject, "utf-8")
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def _send_sync(self, to: str, message: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.mail_from, [to], message.as_string())

    async def send_html(self, to: str, subject: str, html_body: str) -> None:
        message = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._send_sync, to, message)
        except (smtplib.SMTPException, OSError) as e:
            raise ProviderError(f"Failed to send mail to {to}: {e}") from e
        logger.info(f"Mail sent to {to}: {subject}")


mail_service = MailService()
