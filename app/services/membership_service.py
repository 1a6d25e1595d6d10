"""Operator-driven membership transitions behind the partner dashboard.

Every function here assumes the caller already passed the capability and
form-token checks in ``app.api.deps``.
"""

import logging
import re
import secrets
from datetime import date, datetime, time, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.error_codes import ErrorCode
from app.core.errors import ConflictError, NotFound, ValidationFailed
from app.core.security import generate_temporary_password, hash_password, now_utc
from app.models import MEMBERSHIP_ACTIVE, MEMBERSHIP_EXPIRED, ROLE_STUDENT, InviteCode, User
from app.services import invite_service
from app.services.enrollment import EnrollmentAdapter, enroll_in_all_courses, remove_all_enrollments
from app.services.notifications import NotificationDispatcher
from app.services.seat_pool import ensure_capacity, is_access_active

logger = logging.getLogger(__name__)

MAX_DAYS = 3650
_USERNAME_STRIP = re.compile(r"[^a-z0-9._-]")


def scope_manager_id(settings: Settings, operator: User) -> int | None:
    """None when every partner admin shares the pool, else the operator's own id."""
    return None if settings.shared_pool else operator.id


def compute_expiry(days: int, now: datetime) -> datetime:
    return now + timedelta(days=days)


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time(23, 59, 59), tzinfo=timezone.utc)


def clear_expiry_notice(user: User) -> None:
    user.expiry_notice_sent_at = None
    user.expiry_notice_expiry_at = None


def activate_membership(user: User, manager_id: int | None, expiry_at: datetime) -> None:
    user.membership_state = MEMBERSHIP_ACTIVE
    user.manager_id = manager_id
    user.expiry_at = expiry_at
    clear_expiry_notice(user)


def derive_username(db: Session, email: str) -> str:
    base = _USERNAME_STRIP.sub("", email.split("@", 1)[0].lower())[:50]
    if not base:
        base = f"student_{secrets.token_hex(4)}"

    candidate = base
    suffix = 1
    while db.execute(select(User.id).where(User.username == candidate)).first() is not None:
        candidate = f"{base}{suffix}"
        suffix += 1
    return candidate


def email_exists(db: Session, email: str) -> bool:
    return db.execute(select(User.id).where(User.email == email)).first() is not None


def account_conflict(db: Session, email: str) -> ConflictError:
    """Map a unique-constraint failure on account insert to the right conflict.

    Call after rolling back. Only the email is the user's fault; a username
    taken concurrently by ``derive_username`` is worth a retry.
    """
    if email_exists(db, email):
        return ConflictError("Email already registered", code=ErrorCode.EMAIL_ALREADY_REGISTERED)
    return ConflictError("The account could not be created. Please try again.", code=ErrorCode.ACCOUNT_CONFLICT)


def get_managed_user(db: Session, settings: Settings, operator: User, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None or user.account_role != ROLE_STUDENT:
        raise NotFound("User not found", code=ErrorCode.USER_NOT_FOUND)
    scope = scope_manager_id(settings, operator)
    if scope is not None and user.manager_id not in (None, scope):
        raise NotFound("User not found", code=ErrorCode.USER_NOT_FOUND)
    return user


def ensure_manager_assigned(user: User, operator: User) -> None:
    """Backfill the manager of a legacy account with the operator acting on it."""
    if user.manager_id is None:
        user.manager_id = operator.id
        logger.info("Assigned manager %s to legacy user %s", operator.id, user.id)


def list_managed_students(db: Session, settings: Settings, operator: User) -> list[User]:
    stmt = select(User).where(User.account_role == ROLE_STUDENT).order_by(User.created_at.desc(), User.id.desc())
    scope = scope_manager_id(settings, operator)
    if scope is not None:
        stmt = stmt.where(User.manager_id == scope)
    return list(db.execute(stmt).scalars())


def revoke(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    operator: User,
    user_id: int,
    now: datetime | None = None,
) -> User:
    now = now or now_utc()
    user = get_managed_user(db, settings, operator, user_id)
    if not is_access_active(user, now):
        raise ConflictError("User is not currently active", code=ErrorCode.NOT_ACTIVE)
    ensure_manager_assigned(user, operator)

    result = db.execute(
        update(User)
        .where(User.id == user.id, User.membership_state == MEMBERSHIP_ACTIVE)
        .values(membership_state=MEMBERSHIP_EXPIRED, expiry_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConflictError("User is not currently active", code=ErrorCode.NOT_ACTIVE)
    db.commit()
    user.membership_state = MEMBERSHIP_EXPIRED
    user.expiry_at = now

    remove_all_enrollments(enrollment, user.id)
    logger.info("User %s revoked by %s", user.id, operator.id)
    return user


def update_expiry(
    db: Session,
    settings: Settings,
    operator: User,
    user_id: int,
    new_date: date,
    now: datetime | None = None,
) -> User:
    now = now or now_utc()
    user = get_managed_user(db, settings, operator, user_id)
    if not is_access_active(user, now):
        raise ConflictError("User is not currently active", code=ErrorCode.NOT_ACTIVE)

    expiry_at = end_of_day(new_date)
    if expiry_at <= now:
        raise ValidationFailed("Expiry date must be in the future", code=ErrorCode.INVALID_DATE)

    ensure_manager_assigned(user, operator)
    # The sweep may expire the user between the check above and this write.
    result = db.execute(
        update(User)
        .where(
            User.id == user.id,
            User.membership_state == MEMBERSHIP_ACTIVE,
            or_(User.expiry_at.is_(None), User.expiry_at > now),
        )
        .values(
            expiry_at=expiry_at,
            manager_id=user.manager_id,
            expiry_notice_sent_at=None,
            expiry_notice_expiry_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConflictError("User is not currently active", code=ErrorCode.NOT_ACTIVE)
    db.commit()
    user.expiry_at = expiry_at
    clear_expiry_notice(user)
    logger.info("Expiry of user %s set to %s by %s", user.id, expiry_at.isoformat(), operator.id)
    return user


def reenrol_student(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    operator: User,
    user_id: int,
    days: int,
    now: datetime | None = None,
) -> User:
    now = now or now_utc()
    if days < 1 or days > MAX_DAYS:
        raise ValidationFailed(f"Days must be between 1 and {MAX_DAYS}", code=ErrorCode.INVALID_DAYS)
    user = get_managed_user(db, settings, operator, user_id)
    if is_access_active(user, now):
        raise ConflictError("User is already active", code=ErrorCode.ALREADY_ACTIVE)

    ensure_capacity(db, settings, now=now)
    ensure_manager_assigned(user, operator)
    activate_membership(user, user.manager_id, compute_expiry(days, now))
    db.commit()

    enroll_in_all_courses(enrollment, user.id)
    logger.info("User %s re-enrolled for %s days by %s", user.id, days, operator.id)
    return user


def create_user_manually(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    notifier: NotificationDispatcher,
    operator: User,
    email: str,
    first_name: str,
    last_name: str,
    days: int,
    now: datetime | None = None,
) -> User:
    now = now or now_utc()
    email = (email or "").strip().lower()
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not email or not first_name or not last_name:
        raise ValidationFailed("Email, first name and last name are required")
    try:
        email = validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationFailed(f"Invalid email address: {exc}") from exc
    if days < 1 or days > MAX_DAYS:
        raise ValidationFailed(f"Days must be between 1 and {MAX_DAYS}", code=ErrorCode.INVALID_DAYS)
    if email_exists(db, email):
        raise ConflictError("Email already registered", code=ErrorCode.EMAIL_ALREADY_REGISTERED)

    ensure_capacity(db, settings, now=now)
    password = generate_temporary_password()
    user = User(
        email=email,
        username=derive_username(db, email),
        first_name=first_name,
        last_name=last_name,
        display_name=f"{first_name} {last_name}",
        password_hash=hash_password(password),
        account_role=ROLE_STUDENT,
    )
    activate_membership(user, operator.id, compute_expiry(days, now))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise account_conflict(db, email) from exc

    enroll_in_all_courses(enrollment, user.id)
    notifier.temporary_credentials(user, password)
    notifier.manually_created(operator, user, user.expiry_at)
    logger.info("User %s created manually by %s", user.id, operator.id)
    return user


def delete_invite_code(
    db: Session, settings: Settings, operator: User, invite_id: int, now: datetime | None = None
) -> None:
    invite_service.delete_invite(db, invite_id, creator_id=scope_manager_id(settings, operator), now=now)


def create_invite_codes(db: Session, operator: User, quantity: int, allotted_days: int | None) -> list[InviteCode]:
    # Codes without days pick up settings.default_invite_days when redeemed.
    return invite_service.create_invites(db, operator.id, quantity, allotted_days)
