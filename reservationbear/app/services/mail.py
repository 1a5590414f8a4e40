"""Mail transport used by the notification component."""

import abc
import asyncio
import smtplib
from email.message import EmailMessage

from loguru import logger
from pydantic import BaseModel

from reservationbear.app.core.config import Settings


class Attachment(BaseModel):
    filename: str
    content: bytes
    mime_type: str = "text/calendar"


class MailSender(abc.ABC):
    @abc.abstractmethod
    async def send(
        self,
        address: str,
        body: str,
        subject: str,
        attachment: Attachment | None = None,
    ) -> None:
        """Deliver an HTML mail to ``address``."""
        raise NotImplementedError


class SmtpMailSender(MailSender):
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        *,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(
        self,
        address: str,
        body: str,
        subject: str,
        attachment: Attachment | None = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = address
        message["Subject"] = subject
        message.set_content("Please view this message in an HTML capable mail client.")
        message.add_alternative(body, subtype="html")
        if attachment is not None:
            maintype, _, subtype = attachment.mime_type.partition("/")
            message.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

    async def send(
        self,
        address: str,
        body: str,
        subject: str,
        attachment: Attachment | None = None,
    ) -> None:
        message = self.build_message(address, body, subject, attachment)
        # smtplib blocks; keep it off the event loop.
        await asyncio.to_thread(self._deliver, message)
        logger.info(f"Mail '{subject}' sent to {address} via {self.host}:{self.port}")


class LogMailSender(MailSender):
    """Logs mails instead of delivering them. Used when no SMTP host is configured."""

    def __init__(self) -> None:
        self.outbox: list[dict] = []

    async def send(
        self,
        address: str,
        body: str,
        subject: str,
        attachment: Attachment | None = None,
    ) -> None:
        self.outbox.append(
            {"address": address, "body": body, "subject": subject, "attachment": attachment}
        )
        logger.info(f"Mail '{subject}' to {address} logged, no SMTP host configured")


def build_mail_sender(config: Settings) -> MailSender:
    if not config.SMTP_HOST:
        return LogMailSender()
    return SmtpMailSender(
        config.SMTP_HOST,
        config.SMTP_PORT,
        config.MAIL_FROM,
        username=config.SMTP_USERNAME,
        password=config.SMTP_PASSWORD,
        starttls=config.SMTP_STARTTLS,
    )
