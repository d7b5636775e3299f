"""Outgoing email for login codes and password resets."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from timeswap.config import Settings
from timeswap.errors import IntegrationError

logger = logging.getLogger(__name__)

_FOOTER = (
    '<hr style="margin: 30px 0; border: none; border-top: 1px solid #e5e7eb;">'
    '<p style="color: #6b7280; font-size: 14px;">TimeSwap AI - Intelligent Task Management</p>'
)


def two_factor_email(code: str) -> tuple[str, str]:
    """(subject, html) for a login verification code."""
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #2563eb;">TimeSwap AI - Login Verification</h2>'
        "<p>Your two-factor authentication code is:</p>"
        f'<h1 style="color: #2563eb; letter-spacing: 4px;">{code}</h1>'
        "<p>This code will expire in 10 minutes.</p>"
        "<p>If you didn't request this code, please ignore this email.</p>"
        f"{_FOOTER}</div>"
    )
    return "TimeSwap AI - Two-Factor Authentication Code", html


def password_reset_email(reset_url: str) -> tuple[str, str]:
    """(subject, html) for a password reset link."""
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #2563eb;">TimeSwap AI - Password Reset</h2>'
        "<p>You requested a password reset for your TimeSwap AI account.</p>"
        f'<p><a href="{reset_url}">Reset Password</a></p>'
        "<p>Or copy and paste this link into your browser:</p>"
        f"<p>{reset_url}</p>"
        "<p>This link will expire in 1 hour.</p>"
        "<p>If you didn't request this reset, please ignore this email.</p>"
        f"{_FOOTER}</div>"
    )
    return "TimeSwap AI - Password Reset Request", html


class Mailer:
    """SMTP sender configured from settings (implicit TLS on port 465, STARTTLS otherwise)."""

    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.email_user
        self.password = settings.email_password

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.configured:
            raise IntegrationError("Email service not available")

        msg = EmailMessage()
        msg["From"] = self.user
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=30) as smtp:
                    smtp.login(self.user, self.password)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
                    smtp.starttls()
                    smtp.login(self.user, self.password)
                    smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Error sending email to %s: %s", to, e)
            raise IntegrationError(f"Failed to send email: {e}") from e
        logger.info("Sent '%s' to %s", subject, to)
