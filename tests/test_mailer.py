import smtplib
from unittest.mock import patch

import pytest

from backoffice.services.mailer import ContactMessage, SmtpMailer, SmtpSettings, build_contact_email

SETTINGS = SmtpSettings(host="smtp.example.org", port=465, user="relay@example.org", password="pw", to_email="info@example.org")


def test_settings_require_host_user_and_password():
    assert SmtpSettings.from_mapping({"SMTP_HOST": "smtp.example.org", "SMTP_USER": "relay@example.org"}) is None

    settings = SmtpSettings.from_mapping(
        {"SMTP_HOST": "smtp.example.org", "SMTP_USER": "relay@example.org", "SMTP_PASS": "pw", "SMTP_PORT": "465"}
    )
    assert settings.port == 465
    assert settings.to_email == "info@vss2025.org"


def test_html_part_escapes_user_input():
    contact = ContactMessage(name="<b>Asha</b>", email="asha@example.org", category="Other", message="line one\n<script>x</script>")

    email = build_contact_email(contact, SETTINGS)

    html = email.get_body(preferencelist=("html",)).get_content()
    text = email.get_body(preferencelist=("plain",)).get_content()
    assert "&lt;b&gt;Asha&lt;/b&gt;" in html
    assert "line one<br>&lt;script&gt;" in html
    assert "<script>" in text
    assert email["From"] == "VSS2025 Website <relay@example.org>"


def test_implicit_tls_port_uses_ssl_connection():
    contact = ContactMessage(name="Asha", email="asha@example.org", category="Other", message="hi")

    with patch("backoffice.services.mailer.smtplib.SMTP_SSL") as ssl_cls, patch(
        "backoffice.services.mailer.smtplib.SMTP"
    ) as plain_cls:
        SmtpMailer(SETTINGS).send(build_contact_email(contact, SETTINGS))

    ssl_cls.assert_called_once_with("smtp.example.org", 465, timeout=30)
    plain_cls.assert_not_called()
    ssl_cls.return_value.starttls.assert_not_called()
    ssl_cls.return_value.send_message.assert_called_once()


def test_failed_starttls_closes_the_connection():
    settings = SmtpSettings(host="smtp.example.org", port=587, user="relay@example.org", password="pw", to_email="info@example.org")
    contact = ContactMessage(name="Asha", email="asha@example.org", category="Other", message="hi")

    with patch("backoffice.services.mailer.smtplib.SMTP") as plain_cls:
        plain_cls.return_value.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS not supported")
        with pytest.raises(smtplib.SMTPNotSupportedError):
            SmtpMailer(settings).send(build_contact_email(contact, settings))

    plain_cls.return_value.close.assert_called_once()
    plain_cls.return_value.login.assert_not_called()


def test_login_failure_still_closes_a_dropped_connection():
    contact = ContactMessage(name="Asha", email="asha@example.org", category="Other", message="hi")

    with patch("backoffice.services.mailer.smtplib.SMTP_SSL") as ssl_cls:
        server = ssl_cls.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        server.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
        with pytest.raises(smtplib.SMTPAuthenticationError):
            SmtpMailer(SETTINGS).send(build_contact_email(contact, SETTINGS))

    server.quit.assert_called_once()
    server.close.assert_called_once()
