from typing import Annotated

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.error_codes import ErrorCode
from app.core.errors import ApiError, Unauthorized
from app.core.security import decode_access_token, verify_form_token
from app.db.session import get_db
from app.models import ROLE_ADMINISTRATOR, ROLE_PARTNER_ADMIN, User
from app.services.enrollment import EnrollmentAdapter, build_enrollment_adapter
from app.services.notifications import NotificationDispatcher

MANAGE_INVITES = "manage_invites"

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    ROLE_ADMINISTRATOR: frozenset({MANAGE_INVITES}),
    ROLE_PARTNER_ADMIN: frozenset({MANAGE_INVITES}),
}

FORM_REGISTER = "register"
FORM_EXTEND = "extend"
FORM_DASHBOARD = "dashboard"

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


def has_capability(user: User, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES.get(user.account_role, frozenset())


def get_current_user(
    db: DbSession,
    settings: AppSettings,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    if credentials is None:
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="Missing authorization token")

    token = credentials.credentials
    try:
        payload = decode_access_token(token, settings)
        user_id = payload.get("sub")
        if payload.get("type") != "access" or not user_id:
            raise ApiError(status_code=401, code=ErrorCode.INVALID_TOKEN, message="Invalid token")
        user_pk = int(user_id)
    except (jwt.PyJWTError, ValueError) as exc:
        raise ApiError(status_code=401, code=ErrorCode.INVALID_TOKEN, message="Invalid or expired token") from exc

    user = db.get(User, user_pk)
    if not user:
        raise ApiError(status_code=401, code=ErrorCode.INVALID_USER, message="User not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_current_manager(current_user: CurrentUser) -> User:
    if not has_capability(current_user, MANAGE_INVITES):
        raise Unauthorized("You do not have permission to manage invites", code=ErrorCode.FORBIDDEN)
    return current_user


CurrentManager = Annotated[User, Depends(get_current_manager)]


def get_enrollment_adapter(db: DbSession, settings: AppSettings) -> EnrollmentAdapter:
    return build_enrollment_adapter(settings, db)


def get_notifier(settings: AppSettings) -> NotificationDispatcher:
    return NotificationDispatcher(settings)


Enrollments = Annotated[EnrollmentAdapter, Depends(get_enrollment_adapter)]
Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]


def _check_form_token(token: str | None, action: str, settings: Settings, subject: str | None = None) -> None:
    if not verify_form_token(token, action, settings, subject=subject):
        raise Unauthorized("Security check failed. Reload the page and try again.", code=ErrorCode.INVALID_FORM_TOKEN)


def require_register_token(
    settings: AppSettings,
    x_form_token: str | None = Header(default=None, alias="X-Form-Token"),
) -> None:
    _check_form_token(x_form_token, FORM_REGISTER, settings)


def require_extend_token(
    current_user: CurrentUser,
    settings: AppSettings,
    x_form_token: str | None = Header(default=None, alias="X-Form-Token"),
) -> None:
    _check_form_token(x_form_token, FORM_EXTEND, settings, subject=str(current_user.id))


def require_dashboard_token(
    current_manager: CurrentManager,
    settings: AppSettings,
    x_form_token: str | None = Header(default=None, alias="X-Form-Token"),
) -> None:
    _check_form_token(x_form_token, FORM_DASHBOARD, settings, subject=str(current_manager.id))
