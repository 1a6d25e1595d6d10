import logging
import smtplib
from email.message import EmailMessage

from app.core.config import Settings

logger = logging.getLogger(__name__)


def send_email(settings: Settings, to: str, subject: str, body: str) -> None:
    """Send an email via SMTP or log it (dev)."""
    if settings.email_sender_backend == "console":
        logger.info("[EMAIL-CONSOLE] to=%s subject=%s body=%s", to, subject, body[:200])
        return

    if settings.email_sender_backend != "smtp":
        raise ValueError(f"Unsupported email sender backend: {settings.email_sender_backend}")

    if not settings.smtp_host or not settings.smtp_from_email:
        raise ValueError("SMTP host/from email not configured")

    msg = EmailMessage()
    msg["Subject"] = subject
    if settings.smtp_from_alias:
        msg["From"] = f"{settings.smtp_from_alias} <{settings.smtp_from_email}>"
    else:
        msg["From"] = settings.smtp_from_email
    msg["To"] = to
    msg.set_content(body)

    if settings.smtp_use_ssl:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
    else:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
