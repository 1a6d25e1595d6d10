"""Invite redemption: new registrations and membership extensions.

Both flows share one shape: look the code up, take a seat if the user does not
hold one, (re)activate the membership, consume the code, commit, and only then
run the side effects (course enrollment, partner notification).
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.error_codes import ErrorCode
from app.core.errors import ConflictError, NotFound, Unauthorized, ValidationFailed
from app.core.security import hash_password, now_utc, verify_password
from app.models import ROLE_STUDENT, InviteCode, User
from app.services import invite_service
from app.services.enrollment import EnrollmentAdapter, enroll_in_all_courses
from app.services.membership_service import account_conflict, activate_membership, compute_expiry, derive_username
from app.services.notifications import NotificationDispatcher
from app.services.seat_pool import ensure_capacity, is_access_active

logger = logging.getLogger(__name__)


@dataclass
class Redemption:
    user: User
    invite: InviteCode
    created: bool
    redirect_url: str


def _allotted_days(invite: InviteCode, settings: Settings) -> int:
    return invite.allotted_days or settings.default_invite_days


def _consume(db: Session, invite: InviteCode, user: User, now: datetime) -> None:
    """Mark the already-loaded invite used and commit the whole redemption."""
    email = user.email
    try:
        invite_service.mark_used(db, invite, user.id, now)
    except ConflictError as exc:
        db.rollback()
        raise NotFound(invite_service.INVALID_CODE_MESSAGE, code=ErrorCode.INVITE_NOT_FOUND) from exc
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise account_conflict(db, email) from exc


def _creator(db: Session, invite: InviteCode) -> User | None:
    if not invite.created_by_user_id:
        return None
    return db.get(User, invite.created_by_user_id)


def redeem_invite(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    notifier: NotificationDispatcher,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    code: str,
    now: datetime | None = None,
) -> Redemption:
    now = now or now_utc()
    email = email.strip().lower()
    first_name = first_name.strip()
    last_name = last_name.strip()
    if not first_name or not last_name:
        raise ValidationFailed("First and last name are required")

    invite = invite_service.find_available_by_code(db, code)

    user = db.execute(select(User).where(User.email == email)).scalars().first()
    created = user is None
    if user is not None:
        # An existing expired account may come back through the register form.
        if not verify_password(password, user.password_hash):
            raise ConflictError(
                "Email already registered. Log in to extend your membership.",
                code=ErrorCode.EMAIL_ALREADY_REGISTERED,
            )
        if user.account_role != ROLE_STUDENT:
            raise ConflictError("Email already registered", code=ErrorCode.EMAIL_ALREADY_REGISTERED)
        if is_access_active(user, now):
            raise ConflictError("Your membership is already active", code=ErrorCode.ALREADY_ACTIVE)

    ensure_capacity(db, settings, now=now)

    if user is None:
        user = User(
            email=email,
            username=derive_username(db, email),
            password_hash=hash_password(password),
            account_role=ROLE_STUDENT,
        )
        db.add(user)
    user.first_name = first_name
    user.last_name = last_name
    user.display_name = f"{first_name} {last_name}"

    activate_membership(user, invite.created_by_user_id, compute_expiry(_allotted_days(invite, settings), now))
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise account_conflict(db, email) from exc
    _consume(db, invite, user, now)
    logger.info("Invite %s redeemed by user %s (created=%s)", invite.code, user.id, created)

    enroll_in_all_courses(enrollment, user.id)
    notifier.invite_used(_creator(db, invite), user, invite.code, user.expiry_at)

    return Redemption(
        user=user,
        invite=invite,
        created=created,
        redirect_url=settings.registration_redirect_url or settings.home_url,
    )


def extend_membership(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    notifier: NotificationDispatcher,
    user: User,
    code: str,
    now: datetime | None = None,
) -> Redemption:
    """Re-activate (or renew) a logged-in student with a fresh code."""
    now = now or now_utc()
    if user.account_role != ROLE_STUDENT:
        raise Unauthorized("Only student memberships can be extended")

    invite = invite_service.find_available_by_code(db, code)

    if not is_access_active(user, now):
        ensure_capacity(db, settings, now=now)

    activate_membership(user, invite.created_by_user_id, compute_expiry(_allotted_days(invite, settings), now))
    _consume(db, invite, user, now)
    logger.info("Membership of user %s extended with invite %s", user.id, invite.code)

    enroll_in_all_courses(enrollment, user.id)
    notifier.membership_extended(_creator(db, invite), user, invite.code, user.expiry_at)

    return Redemption(user=user, invite=invite, created=False, redirect_url=settings.student_redirect_url)
