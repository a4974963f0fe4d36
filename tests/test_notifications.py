"""Tests for outbound notifications."""

import logging
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from netmatch.config import Settings
from netmatch.services.notifications import ConsoleNotifier, SmtpNotifier, reset_link, verification_link


@pytest.fixture(name="smtp_settings")
def smtp_settings_fixture():
    settings = Settings()
    settings.APP_URL = "https://netmatch.app"
    settings.SMTP_HOST = "smtp.tennisclub.it"
    settings.SMTP_PORT = 465
    settings.SMTP_USER = "noreply@tennisclub.it"
    settings.SMTP_PASSWORD = "secret"
    settings.SMTP_FROM = "noreply@tennisclub.it"
    return settings


class TestLinks:
    def test_links_are_url_encoded(self):
        link = verification_link("https://netmatch.app", "a+b@c.com", "abc")
        assert link == "https://netmatch.app/verify-email?token=abc&email=a%2Bb%40c.com"
        assert reset_link("https://netmatch.app", "a@c.com", "t").startswith("https://netmatch.app/reset-password?")


class TestConsoleNotifier:
    def test_logs_links(self, caplog):
        notifier = ConsoleNotifier("http://localhost:8000")
        with caplog.at_level(logging.INFO, logger="netmatch"):
            assert notifier.send_verification("a@b.com", "tok123") is True
            assert notifier.send_password_reset("a@b.com", "rst456") is True
            assert notifier.send_welcome("a@b.com") is True
        assert "token=tok123" in caplog.text
        assert "token=rst456" in caplog.text


class TestSmtpNotifier:
    def test_verification_mail_over_ssl(self, smtp_settings):
        with patch("netmatch.services.notifications.smtplib.SMTP_SSL") as smtp_ssl:
            server = MagicMock()
            smtp_ssl.return_value.__enter__.return_value = server
            assert SmtpNotifier(smtp_settings).send_verification("a@b.com", "tok123", {"city": "Roma"}) is True

        server.login.assert_called_once_with("noreply@tennisclub.it", "secret")
        sender, recipients, body = server.sendmail.call_args.args
        assert sender == "noreply@tennisclub.it"
        assert recipients == ["a@b.com"]
        assert "Verify your email" in body

    def test_starttls_on_other_ports(self, smtp_settings):
        smtp_settings.SMTP_PORT = 587
        with patch("netmatch.services.notifications.smtplib.SMTP") as smtp:
            server = MagicMock()
            smtp.return_value.__enter__.return_value = server
            assert SmtpNotifier(smtp_settings).send_password_reset("a@b.com", "rst456") is True
        server.starttls.assert_called_once()
        server.sendmail.assert_called_once()

    def test_transport_error_returns_false(self, smtp_settings):
        with patch("netmatch.services.notifications.smtplib.SMTP_SSL") as smtp_ssl:
            smtp_ssl.return_value.__enter__.return_value.login.side_effect = smtplib.SMTPAuthenticationError(
                535, b"bad credentials"
            )
            assert SmtpNotifier(smtp_settings).send_welcome("a@b.com", {"city": "Roma"}) is False

    def test_templates_render_links(self, smtp_settings):
        notifier = SmtpNotifier(smtp_settings)
        with patch.object(notifier, "_send", return_value=True) as send:
            notifier.send_verification("a@b.com", "tok123")
        subject, to_email, html_body, text_body = send.call_args.args
        assert to_email == "a@b.com"
        assert "https://netmatch.app/verify-email?token=tok123" in html_body
        assert "https://netmatch.app/verify-email?token=tok123" in text_body
