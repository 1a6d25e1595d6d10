"""Invite redemption endpoints: register with a code, extend with a code."""

from fastapi import APIRouter, Depends
from starlette import status

from app.api.deps import (
    AppSettings,
    CurrentUser,
    DbSession,
    Enrollments,
    Notifier,
    require_extend_token,
    require_register_token,
)
from app.api.serializers import membership_out
from app.schemas.membership import (
    ExtendMembershipRequest,
    ExtendMembershipResponse,
    RegisterRequest,
    RegisterResponse,
)
from app.services.auth_service import issue_session_tokens
from app.services.registration_service import extend_membership, redeem_invite

router = APIRouter(prefix="/v1", tags=["registration"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_register_token)],
)
def register_with_code(
    payload: RegisterRequest,
    db: DbSession,
    settings: AppSettings,
    enrollment: Enrollments,
    notifier: Notifier,
) -> RegisterResponse:
    redemption = redeem_invite(
        db,
        settings,
        enrollment,
        notifier,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        code=payload.code,
    )
    auth = issue_session_tokens(
        db, settings, user=redemption.user, device_id=payload.device_id, redirect_url=redemption.redirect_url
    )
    return RegisterResponse(**auth.model_dump(), created=redemption.created, expiry_at=redemption.user.expiry_at)


@router.post(
    "/membership/extend",
    response_model=ExtendMembershipResponse,
    dependencies=[Depends(require_extend_token)],
)
def extend_with_code(
    payload: ExtendMembershipRequest,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
    enrollment: Enrollments,
    notifier: Notifier,
) -> ExtendMembershipResponse:
    redemption = extend_membership(db, settings, enrollment, notifier, current_user, payload.code)
    return ExtendMembershipResponse(
        message="Membership extended successfully!",
        membership=membership_out(redemption.user),
        redirect_url=redemption.redirect_url,
    )
