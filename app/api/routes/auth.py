from fastapi import APIRouter
from sqlalchemy import select

from app.api.deps import FORM_REGISTER, AppSettings, DbSession
from app.core.error_codes import ErrorCode
from app.core.errors import ApiError
from app.core.security import create_access_token, create_form_token, hash_text, now_utc
from app.models import DeviceSession, User
from app.schemas.auth import (
    AuthResponse,
    FormTokenResponse,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RefreshResponse,
)
from app.services.auth_service import authenticate, issue_session_tokens, redirect_for

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.get("/form-token", response_model=FormTokenResponse)
def registration_form_token(settings: AppSettings) -> FormTokenResponse:
    """Anti-forgery token for the public registration form."""
    return FormTokenResponse(
        form_token=create_form_token(FORM_REGISTER, settings),
        expires_in_seconds=settings.form_token_expire_seconds,
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: DbSession, settings: AppSettings) -> AuthResponse:
    user = authenticate(db, payload.login, payload.password)
    return issue_session_tokens(db, settings, user=user, device_id=payload.device_id, redirect_url=redirect_for(user, settings))


@router.post("/refresh", response_model=RefreshResponse)
def refresh(payload: RefreshRequest, db: DbSession, settings: AppSettings) -> RefreshResponse:
    token_hash = hash_text(payload.refresh_token)
    row = db.execute(select(DeviceSession).where(DeviceSession.refresh_token_hash == token_hash)).scalars().first()
    if not row or row.revoked_at is not None:
        raise ApiError(status_code=401, code=ErrorCode.INVALID_REFRESH_TOKEN, message="Invalid refresh token")
    if row.device_id != payload.device_id:
        raise ApiError(status_code=401, code=ErrorCode.DEVICE_MISMATCH, message="Device mismatch")
    if row.expires_at < now_utc():
        raise ApiError(status_code=401, code=ErrorCode.REFRESH_TOKEN_EXPIRED, message="Refresh token expired")

    user = db.get(User, row.user_id)
    if not user:
        raise ApiError(status_code=401, code=ErrorCode.INVALID_USER, message="Invalid user")

    row.last_seen_at = now_utc()
    db.commit()

    access_token = create_access_token(str(user.id), settings, extra={"email": user.email})
    return RefreshResponse(access_token=access_token, access_token_expires_in=settings.access_token_expire_seconds)


@router.post("/logout", response_model=LogoutResponse)
def logout(payload: LogoutRequest, db: DbSession, settings: AppSettings) -> LogoutResponse:
    token_hash = hash_text(payload.refresh_token)
    row = db.execute(select(DeviceSession).where(DeviceSession.refresh_token_hash == token_hash)).scalars().first()
    if row and row.revoked_at is None:
        row.revoked_at = now_utc()
        db.commit()
    return LogoutResponse(success=True, redirect_url=settings.login_url)
