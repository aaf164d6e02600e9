"""
mail/sender.py -- Outbound HTML email for the login flow.

EmailSender renders Jinja2 templates from mail/templates/ and hands the result
to an SMTP server with smtplib: implicit TLS (SMTP_SSL) when smtp_secure is
set, otherwise plain SMTP upgraded with STARTTLS when the server offers it. A
server without STARTTLS only gets unauthenticated relay; credentials are never
sent in clear text.

Delivery contract:
  send_verification_code -- a transport failure raises DeliveryFailed; the
                            caller must not report success to the client.
  send_welcome           -- best effort; a failure is logged and swallowed so
                            account creation never depends on the mail server.

Log-only mode: with no smtp_host configured nothing leaves the process. The
sender logs that delivery is disabled and, when debug is on, the code itself
so a developer can log in locally.

Layer rule: may import from core/. No imports from api/, auth/, cache/, or
directory/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings
from core.errors import DeliveryFailed
from core.redact import mask_email

logger = logging.getLogger("roster.mail")

_TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailSender:
    """SMTP mailer with Jinja2-rendered bodies."""

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        user: str = "",
        password: str = "",
        secure: bool = False,
        sender: str = "Roster <noreply@example.com>",
        timeout: float = 10.0,
        code_ttl: int = 300,
        app_name: str = "Roster",
        debug: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.secure = secure
        self.sender = sender
        self.timeout = timeout
        self.code_ttl = code_ttl
        self.app_name = app_name
        self.debug = debug
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )
        if not host:
            logger.warning("SMTP_HOST not set: email delivery disabled, messages are only logged")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            secure=settings.smtp_secure,
            sender=settings.smtp_from,
            timeout=settings.smtp_timeout,
            code_ttl=settings.email_code_expiry,
            debug=settings.debug,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def send_verification_code(self, email: str, code: str) -> None:
        """Mail a login code. Raises DeliveryFailed if the SMTP hand-off fails."""
        html = self.render(
            "verification_code.html",
            code=code,
            expire_minutes=max(1, self.code_ttl // 60),
        )
        if not self.enabled:
            if self.debug:
                logger.info("[log-only] verification code for %s: %s", mask_email(email), code)
            else:
                logger.info("[log-only] verification code for %s not delivered", mask_email(email))
            return
        try:
            self._deliver(email, "Your login code", html)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Verification email to %s failed: %s", mask_email(email), exc)
            raise DeliveryFailed("Failed to send verification email") from exc
        logger.info("Verification email sent to %s", mask_email(email))

    def send_welcome(self, email: str, full_name: str | None) -> bool:
        """Mail the welcome message. Returns False instead of raising on failure."""
        html = self.render("welcome.html", full_name=full_name or email)
        if not self.enabled:
            logger.info("[log-only] welcome email for %s not delivered", mask_email(email))
            return True
        try:
            self._deliver(email, f"Welcome to {self.app_name}", html)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Welcome email to %s failed: %s", mask_email(email), exc)
            return False
        logger.info("Welcome email sent to %s", mask_email(email))
        return True

    def render(self, template_name: str, **context) -> str:
        context.setdefault("app_name", self.app_name)
        context.setdefault("year", datetime.now(timezone.utc).year)
        return self._env.get_template(template_name).render(**context)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        name, addr = parseaddr(self.sender)
        msg["From"] = formataddr((name, addr)) if name else addr
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def _deliver(self, to: str, subject: str, html: str) -> None:
        msg = self._build_message(to, subject, html)
        context = ssl.create_default_context()
        if self.secure:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as smtp:
                self._login_and_send(smtp, msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=context)
                    smtp.ehlo()
                elif self.user:
                    # Credentials never cross an unencrypted connection.
                    raise smtplib.SMTPNotSupportedError(
                        f"{self.host} does not offer STARTTLS; refusing to send SMTP credentials in clear text"
                    )
                self._login_and_send(smtp, msg)

    def _login_and_send(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.user:
            smtp.login(self.user, self.password)
        smtp.send_message(msg)
