"""SMTP relay for the public contact form."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Mapping

from markupsafe import escape

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
SUBJECT_PREFIX = "VSS2025 Contact Form"


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int
    user: str
    password: str
    to_email: str
    timeout: int = 30

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "SmtpSettings | None":
        """Return ``None`` when the relay is not fully configured."""
        host = settings.get("SMTP_HOST")
        user = settings.get("SMTP_USER")
        password = settings.get("SMTP_PASS")
        if not host or not user or not password:
            return None
        return cls(
            host=host,
            port=int(settings.get("SMTP_PORT") or 587),
            user=user,
            password=password,
            to_email=settings.get("TO_EMAIL") or "info@vss2025.org",
            timeout=int(settings.get("SMTP_TIMEOUT_SECONDS") or 30),
        )


@dataclass(frozen=True)
class ContactMessage:
    name: str
    email: str
    category: str
    message: str


def build_contact_email(contact: ContactMessage, settings: SmtpSettings) -> EmailMessage:
    email = EmailMessage()
    email["Subject"] = f"{SUBJECT_PREFIX}: {contact.category}"
    email["From"] = formataddr(("VSS2025 Website", settings.user))
    email["To"] = settings.to_email
    email["Reply-To"] = formataddr((contact.name, contact.email))

    email.set_content(
        "New contact form submission\n\n"
        f"Name: {contact.name}\n"
        f"Email: {contact.email}\n"
        f"Category: {contact.category}\n\n"
        f"Message:\n{contact.message}\n"
    )
    message_html = str(escape(contact.message)).replace("\n", "<br>")
    email.add_alternative(
        "<h2>New contact form submission</h2>"
        f"<p><strong>Name:</strong> {escape(contact.name)}</p>"
        f"<p><strong>Email:</strong> {escape(contact.email)}</p>"
        f"<p><strong>Category:</strong> {escape(contact.category)}</p>"
        f"<p><strong>Message:</strong></p><p>{message_html}</p>",
        subtype="html",
    )
    return email


class SmtpMailer:
    def __init__(self, settings: SmtpSettings) -> None:
        self.settings = settings

    def _connect(self) -> smtplib.SMTP:
        if self.settings.port == IMPLICIT_TLS_PORT:
            return smtplib.SMTP_SSL(self.settings.host, self.settings.port, timeout=self.settings.timeout)
        server = smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.settings.timeout)
        try:
            server.starttls()
        except OSError:
            server.close()
            raise
        return server

    @staticmethod
    def _disconnect(server: smtplib.SMTP) -> None:
        try:
            server.quit()
        except OSError:
            server.close()

    def send(self, email: EmailMessage) -> None:
        server = self._connect()
        try:
            server.login(self.settings.user, self.settings.password)
            server.send_message(email)
        finally:
            self._disconnect(server)
        logger.info("Contact form email relayed to %s", self.settings.to_email)
