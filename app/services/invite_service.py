"""Invite code store: batch creation, lookup, single-use consumption, deletion."""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.error_codes import ErrorCode
from app.core.errors import ConflictError, CreationFailed, NotFound, ValidationFailed
from app.core.security import generate_invite_code, now_utc
from app.models import InviteCode, User
from app.services.seat_pool import is_access_active

logger = logging.getLogger(__name__)

MAX_INVITES_PER_BATCH = 10
MAX_CODE_ATTEMPTS = 3
# Unknown and already-redeemed codes share one message.
INVALID_CODE_MESSAGE = "Invalid or already used code"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def create_invites(db: Session, creator_id: int | None, quantity: int, allotted_days: int | None) -> list[InviteCode]:
    """Create up to `quantity` codes, each committed on its own.

    A failed insert is retried with a fresh code and then skipped, so one bad row
    never sinks the batch. Raises CreationFailed only when nothing was created.
    """
    if quantity < 1 or quantity > MAX_INVITES_PER_BATCH:
        raise ValidationFailed(
            f"Quantity must be between 1 and {MAX_INVITES_PER_BATCH}", code=ErrorCode.INVALID_QUANTITY
        )
    if allotted_days is not None and allotted_days < 0:
        raise ValidationFailed("Days must not be negative", code=ErrorCode.INVALID_DAYS)

    created: list[InviteCode] = []
    for _ in range(quantity):
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            invite = InviteCode(
                code=generate_invite_code(),
                created_by_user_id=creator_id,
                allotted_days=allotted_days,
                used=False,
            )
            db.add(invite)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning("Invite code collision on attempt %s, regenerating", attempt)
                continue
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Inserting invite code failed")
                break
            created.append(invite)
            break

    if not created:
        raise CreationFailed()
    logger.info("Created %s/%s invite codes for creator %s", len(created), quantity, creator_id)
    return created


def find_available_by_code(db: Session, code: str) -> InviteCode:
    invite = db.execute(
        select(InviteCode).where(InviteCode.code == normalize_code(code), InviteCode.used.is_(False))
    ).scalars().first()
    if invite is None:
        raise NotFound(INVALID_CODE_MESSAGE, code=ErrorCode.INVITE_NOT_FOUND)
    return invite


def mark_used(db: Session, invite: InviteCode, user_id: int, used_at: datetime) -> None:
    """Flip `used` once. The conditional update makes a concurrent second redeemer lose.

    Does not commit; the caller's transaction does.
    """
    result = db.execute(
        update(InviteCode)
        .where(InviteCode.id == invite.id, InviteCode.used.is_(False))
        .values(used=True, used_by_user_id=user_id, used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Invite code has already been used", code=ErrorCode.INVITE_ALREADY_USED)
    invite.used = True
    invite.used_by_user_id = user_id
    invite.used_at = used_at


def get_invite(db: Session, invite_id: int, creator_id: int | None = None) -> InviteCode:
    invite = db.get(InviteCode, invite_id)
    if invite is None or (creator_id is not None and invite.created_by_user_id != creator_id):
        raise NotFound("Invite code not found", code=ErrorCode.INVITE_NOT_FOUND)
    return invite


def delete_invite(db: Session, invite_id: int, creator_id: int | None = None, now: datetime | None = None) -> None:
    """Delete an available code, or a used one whose redeemer has lost access."""
    invite = get_invite(db, invite_id, creator_id=creator_id)
    if invite.used and invite.used_by_user_id is not None:
        redeemer = db.get(User, invite.used_by_user_id)
        if redeemer is not None and is_access_active(redeemer, now or now_utc()):
            raise ConflictError(
                "This code belongs to a student who still has access", code=ErrorCode.INVITE_IN_USE
            )

    db.delete(invite)
    db.commit()
    logger.info("Deleted invite code %s (id=%s)", invite.code, invite.id)


def list_invites(db: Session, creator_id: int | None = None) -> list[tuple[InviteCode, User | None]]:
    stmt = (
        select(InviteCode, User)
        .outerjoin(User, InviteCode.used_by_user_id == User.id)
        .order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
    )
    if creator_id is not None:
        stmt = stmt.where(InviteCode.created_by_user_id == creator_id)
    return [(invite, user) for invite, user in db.execute(stmt).all()]
