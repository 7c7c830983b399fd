"""
notify/mailer.py -- Outbound email for the password-reset handshake.

The auth services depend only on the Mailer protocol: two methods that take
(recipient, template data) and return True/False. SmtpMailer is the production
implementation; tests pass a recording fake.

Templates live in notify/templates/ and are rendered with Jinja2 (autoescape
on). Each message has an .html and a .txt part.

Dev mode: when SMTP is not configured the message is not sent. Only the
redacted recipient and the subject are logged -- never the body, because the
body of a reset email contains the one-time token.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger("pulse.notify")

_TEMPLATE_DIR = Path(__file__).parent / "templates"


class Mailer(Protocol):
    def send_reset_password_email(self, username: str, email: str, unhashed_token: str) -> bool: ...

    def send_reset_password_success_email(self, username: str, email: str) -> bool: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpMailer:
    """Renders Jinja2 templates and delivers them over SMTP."""

    def __init__(
        self,
        *,
        app_name: str = "Pulse",
        reset_url_base: str = "http://localhost:3000/reset-password",
        reset_expire_minutes: int = 20,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        sender_email: str = "",
    ) -> None:
        self.app_name = app_name
        self.reset_url_base = reset_url_base.rstrip("/")
        self.reset_expire_minutes = reset_expire_minutes
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.sender_email = sender_email
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    @classmethod
    def from_settings(cls, settings) -> SmtpMailer:
        return cls(
            app_name=settings.app_name,
            reset_url_base=settings.reset_password_redirect_url,
            reset_expire_minutes=max(1, settings.reset_token_expire_seconds // 60),
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.sender_email)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_reset_password_email(self, username: str, email: str, unhashed_token: str) -> bool:
        context = {
            "app_name": self.app_name,
            "username": username,
            "reset_url": f"{self.reset_url_base}/{unhashed_token}",
            "expires_minutes": self.reset_expire_minutes,
        }
        return self._send(email, f"Reset your {self.app_name} password", "reset_password", context)

    def send_reset_password_success_email(self, username: str, email: str) -> bool:
        context = {"app_name": self.app_name, "username": username}
        return self._send(email, f"Your {self.app_name} password was changed", "reset_password_success", context)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def render(self, template: str, context: dict) -> tuple[str, str]:
        """Return (text_body, html_body) for the named template pair."""
        text_body = self._env.get_template(f"{template}.txt").render(**context)
        html_body = self._env.get_template(f"{template}.html").render(**context)
        return text_body, html_body

    def _send(self, to_email: str, subject: str, template: str, context: dict) -> bool:
        if not self.is_configured:
            logger.info("SMTP not configured; skipping '%s' to %s", subject, redact_email(to_email))
            return True

        text_body, html_body = self.render(template, context)
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.app_name} <{self.sender_email}>"
        msg["To"] = to_email
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        context_ssl = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context_ssl)
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context_ssl, timeout=30) as server:
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Email '%s' to %s failed: %s",
                subject,
                redact_email(to_email),
                type(exc).__name__,
            )
            return False

        logger.info("Email '%s' sent to %s", subject, redact_email(to_email))
        return True
