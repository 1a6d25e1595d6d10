from datetime import timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.error_codes import ErrorCode
from app.core.errors import Unauthorized
from app.core.security import create_access_token, generate_refresh_token, hash_text, now_utc, verify_password
from app.models import ROLE_ADMINISTRATOR, ROLE_PARTNER_ADMIN, DeviceSession, User
from app.schemas.auth import AuthResponse, UserOut
from app.services.seat_pool import is_access_active


def authenticate(db: Session, login: str, password: str) -> User:
    login = login.strip().lower()
    user = db.execute(select(User).where(or_(User.email == login, User.username == login))).scalars().first()
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email/username or password", code=ErrorCode.INVALID_CREDENTIALS, status_code=401)
    return user


def redirect_for(user: User, settings: Settings) -> str:
    if user.account_role == ROLE_ADMINISTRATOR:
        return settings.administrator_redirect_url
    if user.account_role == ROLE_PARTNER_ADMIN:
        return settings.partner_admin_redirect_url
    if not is_access_active(user):
        return settings.extend_url
    return settings.student_redirect_url


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        account_role=user.account_role,
    )


def issue_session_tokens(db: Session, settings: Settings, user: User, device_id: str, redirect_url: str) -> AuthResponse:
    refresh_token = generate_refresh_token()
    refresh_hash = hash_text(refresh_token)

    # Revoke prior active session for this user + device
    prior_stmt = select(DeviceSession).where(
        DeviceSession.user_id == user.id,
        DeviceSession.device_id == device_id,
        DeviceSession.revoked_at.is_(None),
    )
    for item in db.execute(prior_stmt).scalars().all():
        item.revoked_at = now_utc()

    session = DeviceSession(
        user_id=user.id,
        device_id=device_id,
        refresh_token_hash=refresh_hash,
        expires_at=now_utc() + timedelta(seconds=settings.refresh_token_expire_seconds),
        last_seen_at=now_utc(),
        revoked_at=None,
    )
    db.add(session)
    user.last_login_at = now_utc()
    db.commit()

    access_token = create_access_token(str(user.id), settings, extra={"email": user.email})

    return AuthResponse(
        user=user_out(user),
        access_token=access_token,
        access_token_expires_in=settings.access_token_expire_seconds,
        refresh_token=refresh_token,
        redirect_url=redirect_url,
    )
