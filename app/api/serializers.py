import math
from datetime import datetime

from app.core.security import now_utc
from app.models import InviteCode, User
from app.schemas.invite import InviteCodeItem
from app.schemas.membership import ManagedStudentItem, MembershipOut
from app.services.seat_pool import is_access_active


def membership_out(user: User, now: datetime | None = None) -> MembershipOut:
    now = now or now_utc()
    active = is_access_active(user, now)
    days_remaining = None
    if user.expiry_at is not None:
        days_remaining = max(0, math.ceil((user.expiry_at - now).total_seconds() / 86400)) if active else 0
    return MembershipOut(
        state=user.membership_state,
        active=active,
        expiry_at=user.expiry_at,
        days_remaining=days_remaining,
        manager_id=user.manager_id,
    )


def invite_item(invite: InviteCode, redeemer: User | None = None) -> InviteCodeItem:
    return InviteCodeItem(
        id=invite.id,
        code=invite.code,
        allotted_days=invite.allotted_days,
        created_by_user_id=invite.created_by_user_id,
        created_at=invite.created_at,
        used=invite.used,
        used_by_user_id=invite.used_by_user_id,
        used_by_email=redeemer.email if redeemer else None,
        used_at=invite.used_at,
    )


def student_item(user: User, now: datetime | None = None) -> ManagedStudentItem:
    return ManagedStudentItem(
        id=user.id,
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        manager_id=user.manager_id,
        last_login_at=user.last_login_at,
        membership=membership_out(user, now),
    )
