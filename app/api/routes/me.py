"""Account self-service: profile, membership status, password."""

from fastapi import APIRouter

from app.api.deps import FORM_EXTEND, AppSettings, CurrentUser, DbSession
from app.api.serializers import membership_out
from app.core.error_codes import ErrorCode
from app.core.errors import ConflictError, Unauthorized
from app.core.security import create_form_token, hash_password, verify_password
from app.models import User
from app.schemas.auth import FormTokenResponse
from app.schemas.membership import ChangePasswordRequest, ChangePasswordResponse, ProfileOut, UpdateProfileRequest
from app.services.membership_service import email_exists

router = APIRouter(prefix="/v1/me", tags=["users"])


def _profile(user: User) -> ProfileOut:
    return ProfileOut(
        id=user.id,
        email=user.email,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=user.display_name,
        account_role=user.account_role,
        last_login_at=user.last_login_at,
        membership=membership_out(user),
    )


@router.get("", response_model=ProfileOut)
def me(current_user: CurrentUser) -> ProfileOut:
    return _profile(current_user)


@router.get("/form-token", response_model=FormTokenResponse)
def extend_form_token(current_user: CurrentUser, settings: AppSettings) -> FormTokenResponse:
    """Anti-forgery token for the extend-membership form of the logged-in user."""
    return FormTokenResponse(
        form_token=create_form_token(FORM_EXTEND, settings, subject=str(current_user.id)),
        expires_in_seconds=settings.form_token_expire_seconds,
    )


@router.patch("", response_model=ProfileOut)
def update_profile(payload: UpdateProfileRequest, current_user: CurrentUser, db: DbSession) -> ProfileOut:
    if payload.email is not None:
        email = payload.email.strip().lower()
        if email != current_user.email and email_exists(db, email):
            raise ConflictError("Email already in use", code=ErrorCode.EMAIL_ALREADY_REGISTERED)
        current_user.email = email
    if payload.first_name is not None:
        current_user.first_name = payload.first_name.strip()
    if payload.last_name is not None:
        current_user.last_name = payload.last_name.strip()
    if payload.first_name is not None or payload.last_name is not None:
        current_user.display_name = f"{current_user.first_name} {current_user.last_name}".strip()
    db.commit()
    return _profile(current_user)


@router.post("/password", response_model=ChangePasswordResponse)
def change_password(payload: ChangePasswordRequest, current_user: CurrentUser, db: DbSession) -> ChangePasswordResponse:
    if not verify_password(payload.current_password, current_user.password_hash):
        raise Unauthorized("Current password is incorrect", code=ErrorCode.INVALID_PASSWORD)
    current_user.password_hash = hash_password(payload.new_password)
    db.commit()
    return ChangePasswordResponse(success=True)
