"""Outbound mail through the Resend HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Any, Mapping

import requests

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "no-reply@example.com"


class MailDeliveryError(RuntimeError):
    """Raised when the mail provider rejects or cannot accept a message."""


@dataclass(frozen=True)
class MailMessage:
    to: str
    subject: str
    text: str
    html: str


def build_access_link_message(to: str, member_title: str, link: str, *, lifetime_minutes: int) -> MailMessage:
    title = member_title or "your institution"
    text = (
        "Hello,\n\n"
        f"Use the link below to update the Priority Area memberships of {title}.\n\n"
        f"{link}\n\n"
        f"This link will expire in {lifetime_minutes} minutes.\n"
    )
    html = (
        "<p>Hello,</p>"
        f"<p>Use the link below to update the Priority Area memberships of <strong>{escape(title)}</strong>.</p>"
        f'<p><a href="{escape(link, quote=True)}">Open your secure link</a></p>'
        f"<p>This link will expire in {lifetime_minutes} minutes.</p>"
    )
    return MailMessage(to=to, subject="Your membership access link", text=text, html=html)


class ResendMailer:
    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ResendMailer | None":
        """Build a mailer when ``RESEND_API_KEY`` is set, otherwise return ``None``."""

        api_key = config.get("RESEND_API_KEY")
        if not api_key:
            return None
        return cls(api_key, config.get("FROM_EMAIL") or DEFAULT_FROM_EMAIL)

    def send(self, message: MailMessage) -> str | None:
        payload = {
            "from": self.from_email,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }
        try:
            response = self.session.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MailDeliveryError(f"Mail provider unreachable: {exc}") from exc

        if not response.ok:
            raise MailDeliveryError(f"Mail provider rejected message (HTTP {response.status_code})")
        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info("Sent access link email (id=%s)", message_id)
        return message_id
