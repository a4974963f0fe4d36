"""Outbound account notifications (verification, welcome, password reset).

Services depend on the ``Notifier`` protocol. Every method returns True when
the message was handed off and False otherwise; callers treat a False and a
raised exception the same way.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from netmatch.config import Settings, get_settings

logger = logging.getLogger("netmatch")

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"


class Notifier(Protocol):
    def send_verification(self, email: str, token: str, context: dict | None = None) -> bool: ...

    def send_welcome(self, email: str, context: dict | None = None) -> bool: ...

    def send_password_reset(self, email: str, token: str) -> bool: ...


def verification_link(app_url: str, email: str, token: str) -> str:
    return f"{app_url}/verify-email?{urlencode({'token': token, 'email': email})}"


def reset_link(app_url: str, email: str, token: str) -> str:
    return f"{app_url}/reset-password?{urlencode({'token': token, 'email': email})}"


class ConsoleNotifier:
    """Development notifier: writes action links to the application log."""

    def __init__(self, app_url: str) -> None:
        self.app_url = app_url

    def send_verification(self, email: str, token: str, context: dict | None = None) -> bool:
        logger.info("EMAIL VERIFICATION for %s: %s", email, verification_link(self.app_url, email, token))
        return True

    def send_welcome(self, email: str, context: dict | None = None) -> bool:
        logger.info("WELCOME email for %s", email)
        return True

    def send_password_reset(self, email: str, token: str) -> bool:
        logger.info("PASSWORD RESET for %s: %s", email, reset_link(self.app_url, email, token))
        return True


class SmtpNotifier:
    """Sends multipart (text + HTML) mail rendered from Jinja2 templates."""

    def __init__(self, settings: Settings, template_dir: Path = TEMPLATE_DIR) -> None:
        self.settings = settings
        self._jinja = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def send_verification(self, email: str, token: str, context: dict | None = None) -> bool:
        link = verification_link(self.settings.APP_URL, email, token)
        return self._send_template(
            "verify_email",
            "Verify your email - Netmatch",
            email,
            {**(context or {}), "link": link, "name": email.split("@")[0]},
        )

    def send_welcome(self, email: str, context: dict | None = None) -> bool:
        return self._send_template(
            "welcome",
            "Welcome to Netmatch",
            email,
            {**(context or {}), "app_url": self.settings.APP_URL, "name": email.split("@")[0]},
        )

    def send_password_reset(self, email: str, token: str) -> bool:
        link = reset_link(self.settings.APP_URL, email, token)
        return self._send_template("reset_password", "Reset your password - Netmatch", email, {"link": link})

    def _send_template(self, template: str, subject: str, to_email: str, context: dict) -> bool:
        html_body = self._jinja.get_template(f"{template}.html").render(**context)
        text_body = self._jinja.get_template(f"{template}.txt").render(**context)
        return self._send(subject, to_email, html_body, text_body)

    def _send(self, subject: str, to_email: str, html_body: str, text_body: str) -> bool:
        settings = self.settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        try:
            if settings.SMTP_PORT == 465:
                with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, context=ssl.create_default_context()) as server:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                    server.sendmail(settings.SMTP_FROM, [to_email], msg.as_string())
            else:
                with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
                    server.ehlo()
                    server.starttls(context=ssl.create_default_context())
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                    server.sendmail(settings.SMTP_FROM, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send '%s' to %s: %s", subject, to_email, exc)
            return False
        return True


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Get singleton notifier: SMTP when configured, otherwise the console."""
    global _notifier
    if _notifier is None:
        settings = get_settings()
        _notifier = SmtpNotifier(settings) if settings.smtp_configured else ConsoleNotifier(settings.APP_URL)
    return _notifier
