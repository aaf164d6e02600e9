"""
tests/test_mail.py -- Unit tests for EmailSender (mail/sender.py).

SMTP is never contacted: smtplib.SMTP is replaced with a MagicMock or a
factory that raises, so the tests check what would be sent and how
transport errors surface.
"""

from __future__ import annotations

import logging
import smtplib
from unittest.mock import MagicMock

import pytest

from core.errors import DeliveryFailed
from mail.sender import EmailSender


@pytest.fixture
def smtp(monkeypatch) -> MagicMock:
    mock_cls = MagicMock()
    monkeypatch.setattr(smtplib, "SMTP", mock_cls)
    return mock_cls


def _refuse(*args, **kwargs):
    raise ConnectionRefusedError("connection refused")


class TestTemplates:
    def test_verification_template_contains_code_and_lifetime(self) -> None:
        html = EmailSender(code_ttl=300).render("verification_code.html", code="482913", expire_minutes=5)
        assert "482913" in html
        assert "valid for 5 minutes" in html

    def test_welcome_template_escapes_name(self) -> None:
        html = EmailSender().render("welcome.html", full_name="<script>x</script>")
        assert "<script>x</script>" not in html
        assert "&lt;script&gt;" in html


class TestLogOnlyMode:
    def test_verification_is_logged_not_sent(self, smtp, caplog) -> None:
        sender = EmailSender(host="", debug=True)
        with caplog.at_level(logging.INFO, logger="roster.mail"):
            sender.send_verification_code("new@example.com", "123456")
        smtp.assert_not_called()
        assert "123456" in caplog.text
        assert "new@example.com" not in caplog.text, "Addresses are masked in logs"

    def test_code_hidden_outside_debug(self, smtp, caplog) -> None:
        sender = EmailSender(host="", debug=False)
        with caplog.at_level(logging.INFO, logger="roster.mail"):
            sender.send_verification_code("new@example.com", "123456")
        assert "123456" not in caplog.text


class TestSmtpDelivery:
    def test_sends_via_starttls(self, smtp) -> None:
        conn = smtp.return_value.__enter__.return_value
        conn.has_extn.return_value = True
        sender = EmailSender(host="smtp.example.com", port=587, user="u", password="p")

        sender.send_verification_code("new@example.com", "123456")

        smtp.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        conn.starttls.assert_called_once()
        conn.login.assert_called_once_with("u", "p")
        msg = conn.send_message.call_args.args[0]
        assert msg["To"] == "new@example.com"
        assert msg["Subject"] == "Your login code"

    def test_transport_error_raises_delivery_failed(self, monkeypatch) -> None:
        monkeypatch.setattr(smtplib, "SMTP", _refuse)
        sender = EmailSender(host="smtp.example.com")
        with pytest.raises(DeliveryFailed):
            sender.send_verification_code("new@example.com", "123456")

    def test_welcome_failure_returns_false(self, monkeypatch) -> None:
        monkeypatch.setattr(smtplib, "SMTP", _refuse)
        sender = EmailSender(host="smtp.example.com")
        assert sender.send_welcome("new@example.com", "New") is False

    def test_refuses_credentials_without_starttls(self, smtp) -> None:
        conn = smtp.return_value.__enter__.return_value
        conn.has_extn.return_value = False
        sender = EmailSender(host="smtp.example.com", port=25, user="u", password="p")

        with pytest.raises(DeliveryFailed):
            sender.send_verification_code("new@example.com", "123456")

        conn.login.assert_not_called()
        conn.send_message.assert_not_called()

    def test_plaintext_relay_without_credentials(self, smtp) -> None:
        conn = smtp.return_value.__enter__.return_value
        conn.has_extn.return_value = False
        sender = EmailSender(host="relay.internal", port=25)

        sender.send_verification_code("new@example.com", "123456")

        conn.login.assert_not_called()
        conn.send_message.assert_called_once()
