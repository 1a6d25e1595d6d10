"""Scheduled membership sweep.

Two passes, each user in its own transaction:

1. advance notice: memberships expiring within ``notice_days_before`` days whose
   current expiry has not been announced yet get one "expiring soon" email to
   their manager;
2. expiry: active memberships whose expiry has passed are switched to
   ``expired``, unenrolled from every course, and their manager is told.

Both passes write through conditional updates and skip rows that vanished or
already moved on, so overlapping runs and concurrent operator edits do no
double work and lose no update.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.security import now_utc
from app.models import MEMBERSHIP_ACTIVE, MEMBERSHIP_EXPIRED, User
from app.services.enrollment import EnrollmentAdapter, remove_all_enrollments
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    notices_sent: int = 0
    expired: int = 0
    skipped: int = 0
    failed_user_ids: list[int] = field(default_factory=list)


def _notice_due(user: User, now: datetime, window_end: datetime) -> bool:
    if user.membership_state != MEMBERSHIP_ACTIVE or user.expiry_at is None:
        return False
    if not (now < user.expiry_at <= window_end):
        return False
    return user.expiry_notice_expiry_at is None or user.expiry_notice_expiry_at < user.expiry_at


def _manager_of(db: Session, user: User) -> User | None:
    return db.get(User, user.manager_id) if user.manager_id else None


def send_advance_notices(
    db: Session, settings: Settings, notifier: NotificationDispatcher, now: datetime, report: SweepReport
) -> None:
    if settings.notice_days_before <= 0:
        return
    window_end = now + timedelta(days=settings.notice_days_before)
    user_ids = db.execute(
        select(User.id).where(
            User.membership_state == MEMBERSHIP_ACTIVE,
            User.expiry_at.is_not(None),
            User.expiry_at > now,
            User.expiry_at <= window_end,
            or_(User.expiry_notice_expiry_at.is_(None), User.expiry_notice_expiry_at < User.expiry_at),
        )
    ).scalars().all()

    for user_id in user_ids:
        try:
            user = db.get(User, user_id, populate_existing=True)
            if user is None or not _notice_due(user, now, window_end):
                report.skipped += 1
                continue
            result = db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.membership_state == MEMBERSHIP_ACTIVE,
                    User.expiry_at == user.expiry_at,
                )
                .values(expiry_notice_sent_at=now, expiry_notice_expiry_at=user.expiry_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                report.skipped += 1
                continue
            db.commit()
            user.expiry_notice_sent_at = now
            user.expiry_notice_expiry_at = user.expiry_at
            manager = _manager_of(db, user)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Advance notice for user %s failed", user_id)
            report.failed_user_ids.append(user_id)
            continue

        notifier.expiring_soon(manager, user, user.expiry_at)
        report.notices_sent += 1


def expire_lapsed_memberships(
    db: Session,
    enrollment: EnrollmentAdapter,
    notifier: NotificationDispatcher,
    now: datetime,
    report: SweepReport,
) -> None:
    user_ids = db.execute(
        select(User.id).where(
            User.membership_state == MEMBERSHIP_ACTIVE,
            User.expiry_at.is_not(None),
            User.expiry_at <= now,
        )
    ).scalars().all()

    for user_id in user_ids:
        try:
            user = db.get(User, user_id, populate_existing=True)
            if user is None:
                report.skipped += 1
                continue
            # Conditional on the row still being lapsed; an operator may have moved the expiry meanwhile.
            result = db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.membership_state == MEMBERSHIP_ACTIVE,
                    User.expiry_at.is_not(None),
                    User.expiry_at <= now,
                )
                .values(membership_state=MEMBERSHIP_EXPIRED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                report.skipped += 1
                continue
            db.commit()
            user.membership_state = MEMBERSHIP_EXPIRED
            manager = _manager_of(db, user)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Expiring user %s failed", user_id)
            report.failed_user_ids.append(user_id)
            continue

        remove_all_enrollments(enrollment, user.id)
        notifier.expired(manager, user)
        report.expired += 1


def run_expiry_sweep(
    db: Session,
    settings: Settings,
    enrollment: EnrollmentAdapter,
    notifier: NotificationDispatcher,
    now: datetime | None = None,
) -> SweepReport:
    now = now or now_utc()
    report = SweepReport()
    send_advance_notices(db, settings, notifier, now, report)
    expire_lapsed_memberships(db, enrollment, notifier, now, report)
    logger.info(
        "Expiry sweep done: notices=%s expired=%s skipped=%s failed=%s",
        report.notices_sent,
        report.expired,
        report.skipped,
        len(report.failed_user_ids),
    )
    return report
