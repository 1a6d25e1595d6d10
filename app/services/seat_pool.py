from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import CapacityExceeded
from app.core.security import now_utc
from app.models import MEMBERSHIP_ACTIVE, ROLE_STUDENT, SeatPoolLock, User

SEAT_POOL_LOCK_ID = 1


def is_access_active(user: User, now: datetime | None = None) -> bool:
    """True while the user holds a seat: active state and an open access window."""
    now = now or now_utc()
    if user.membership_state != MEMBERSHIP_ACTIVE:
        return False
    return user.expiry_at is None or user.expiry_at > now


def count_active(db: Session, manager_id: int | None = None, now: datetime | None = None) -> int:
    """Students whose access window is open: no expiry recorded, or expiry in the future."""
    now = now or now_utc()
    stmt = select(func.count()).select_from(User).where(
        User.account_role == ROLE_STUDENT,
        or_(User.expiry_at.is_(None), User.expiry_at > now),
    )
    if manager_id is not None:
        stmt = stmt.where(User.manager_id == manager_id)
    return int(db.execute(stmt).scalar_one())


def has_capacity(count: int, cap: int) -> bool:
    return cap <= 0 or count < cap


def lock_seat_pool(db: Session) -> None:
    """Serialise seat allocation until the current transaction ends.

    Row lock on PostgreSQL. SQLite ignores FOR UPDATE, but the write to the
    lock row takes the database write lock, which has the same effect.
    """
    row = db.execute(
        select(SeatPoolLock).where(SeatPoolLock.id == SEAT_POOL_LOCK_ID).with_for_update()
    ).scalars().first()
    if row is None:
        row = SeatPoolLock(id=SEAT_POOL_LOCK_ID)
        db.add(row)
    row.updated_at = now_utc()
    db.flush()


def ensure_capacity(db: Session, settings: Settings, now: datetime | None = None) -> None:
    """Lock the pool and reject when a new active seat would exceed the global cap.

    Must run inside the transaction that creates the seat; the caller's commit releases the lock.
    """
    if settings.global_seat_cap <= 0:
        return
    lock_seat_pool(db)
    if not has_capacity(count_active(db, now=now), settings.global_seat_cap):
        db.rollback()
        raise CapacityExceeded("The student pool is full. Please contact your partner admin.")
