import random
from collections.abc import Callable, Sequence
from functools import lru_cache
from html import escape
from urllib.parse import urlencode

from loguru import logger

from reservationbear.app.core.config import settings
from reservationbear.app.models import Reservation
from reservationbear.app.services.mail import MailSender, build_mail_sender


def first_name(full_name: str) -> str:
    return full_name.split(" ", 1)[0]


class RegistrationMail:
    """Renders and sends the mail a customer receives after booking."""

    def __init__(
        self,
        sender: MailSender,
        *,
        link_host: str,
        link_port: int,
        icons: Sequence[str],
        include_token: bool = True,
        choose: Callable[[Sequence[str]], str] = random.choice,
    ):
        if not icons:
            raise ValueError("At least one subject icon is required")
        self.sender = sender
        self.link_host = link_host.rstrip("/")
        self.link_port = link_port
        self.icons = list(icons)
        self.include_token = include_token
        self.choose = choose

    def build_link(self, reservation: Reservation) -> str:
        link = f"{self.link_host}:{self.link_port}/reservation-details/{reservation.id}"
        if self.include_token:
            link += "?" + urlencode({"confirmationToken": reservation.confirmation_token})
        return link

    def build_subject(self, reservation: Reservation) -> str:
        return f"{self.choose(self.icons)} Confirmation of your reservation ({reservation.id})"

    def build_body(self, name: str, link: str) -> str:
        name = escape(name)
        link = escape(link, quote=True)
        return f"""
<div style="width: 100%; background-color: #81a1c1; padding: 8px 0;">
  <h1 style="color: white; text-align: center; font-family: Helvetica, Arial, sans-serif; margin: 0;">
    Your reservation
  </h1>
</div>
<div style="width: 90%; margin: 24px auto; font-size: 18px; line-height: 24px; color: #2e3440;">
  <p>Hi {name},</p>
  <p>thanks for booking a table with us. Use the link below to see your reservation and confirm it:</p>
  <blockquote style="border-left: 8px solid #2e3440; padding: 12px 0 12px 16px; margin: 0 0 20px 0;">
    <a style="color: #5e81ac;" href="{link}">Open reservation details</a>
  </blockquote>
  <p>Unconfirmed reservations may be released by the restaurant.</p>
  <p>Enjoy your meal,<br>the Reservation Bear team</p>
</div>
""".strip()

    async def send(self, reservation: Reservation) -> None:
        """Send the registration mail; delivery failures are logged, never raised."""
        try:
            await self.sender.send(
                reservation.user_email,
                self.build_body(first_name(reservation.user_name), self.build_link(reservation)),
                self.build_subject(reservation),
                None,
            )
        except Exception:
            logger.exception(f"Registration mail for reservation {reservation.id} could not be sent")


@lru_cache
def get_registration_mail() -> RegistrationMail:
    return RegistrationMail(
        build_mail_sender(settings),
        link_host=settings.MAIL_LINK_HOST,
        link_port=settings.MAIL_LINK_PORT,
        icons=settings.subject_icons,
        include_token=settings.MAIL_LINK_INCLUDE_TOKEN,
    )
