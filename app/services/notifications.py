"""Plain-text notifications sent to partner admins and students."""

import logging
from collections.abc import Callable
from datetime import datetime

from app.core.config import Settings
from app.models import User
from app.services.email_sender import send_email

logger = logging.getLogger(__name__)

Transport = Callable[[Settings, str, str, str], None]


def format_date(value: datetime | None) -> str:
    return value.strftime("%d/%m/%Y") if value else "never"


class NotificationDispatcher:
    def __init__(self, settings: Settings, transport: Transport = send_email):
        self.settings = settings
        self.transport = transport

    def send(self, to: str | None, subject: str, body: str) -> bool:
        """Deliver one message; failures are logged and reported as False, never raised."""
        if not to:
            logger.debug("Skipping notification %r: no recipient", subject)
            return False
        try:
            self.transport(self.settings, to, subject, body)
        except Exception:
            logger.exception("Failed to send notification %r to %s", subject, to)
            return False
        return True

    def _sign(self, lines: list[str]) -> str:
        return "\n\n".join(lines + [f"Regards,\n{self.settings.email_signature}"])

    def invite_used(self, manager: User | None, student: User, code: str, expiry_at: datetime | None) -> bool:
        if manager is None:
            return False
        subject = f"Invite code used: {student.username}"
        body = self._sign(
            [
                f"Hello {manager.display_name},",
                f"User {student.username} ({student.email}) has registered using invite code {code}.",
                f"Access expires: {format_date(expiry_at)}",
            ]
        )
        return self.send(manager.email, subject, body)

    def membership_extended(self, manager: User | None, student: User, code: str, expiry_at: datetime | None) -> bool:
        if manager is None:
            return False
        subject = f"Membership extended: {student.username}"
        body = self._sign(
            [
                f"Hello {manager.display_name},",
                f"User {student.username} ({student.email}) has extended their membership using code {code}.",
                f"New expiry date: {format_date(expiry_at)}",
            ]
        )
        return self.send(manager.email, subject, body)

    def expiring_soon(self, manager: User | None, student: User, expiry_at: datetime | None) -> bool:
        if manager is None:
            return False
        subject = f"Membership expiring soon: {student.username}"
        body = self._sign(
            [
                f"Hello {manager.display_name},",
                f"The membership of {student.display_name} ({student.email}) expires on {format_date(expiry_at)}.",
                "Send them an extension code if they should keep access.",
            ]
        )
        return self.send(manager.email, subject, body)

    def expired(self, manager: User | None, student: User) -> bool:
        if manager is None:
            return False
        subject = f"Membership expired: {student.username}"
        body = self._sign(
            [
                f"Hello {manager.display_name},",
                f"The membership of {student.display_name} ({student.email}) has expired "
                "and their course access has been removed.",
            ]
        )
        return self.send(manager.email, subject, body)

    def manually_created(self, manager: User | None, student: User, expiry_at: datetime | None) -> bool:
        if manager is None:
            return False
        subject = f"Student account created: {student.username}"
        body = self._sign(
            [
                f"Hello {manager.display_name},",
                f"You created an account for {student.display_name} ({student.email}).",
                f"Username: {student.username}\nAccess expires: {format_date(expiry_at)}",
            ]
        )
        return self.send(manager.email, subject, body)

    def temporary_credentials(self, student: User, password: str) -> bool:
        subject = "Your account has been created"
        body = self._sign(
            [
                f"Hello {student.first_name or student.display_name},",
                "An account has been created for you.",
                f"Username: {student.username}\nTemporary password: {password}",
                f"Log in at {self.settings.login_url} and change your password.",
            ]
        )
        return self.send(student.email, subject, body)
