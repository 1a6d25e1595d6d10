"""Partner dashboard: invite management and operator actions on students.

Reads need the ``manage_invites`` capability; every mutation also needs the
dashboard form token bound to the operator.
"""

from fastapi import APIRouter, Depends
from starlette import status

from app.api.deps import (
    FORM_DASHBOARD,
    AppSettings,
    CurrentManager,
    DbSession,
    Enrollments,
    Notifier,
    require_dashboard_token,
)
from app.api.serializers import invite_item, student_item
from app.core.security import create_form_token, now_utc
from app.schemas.auth import FormTokenResponse
from app.schemas.invite import CreateInvitesRequest, CreateInvitesResponse, DeleteInviteResponse
from app.schemas.membership import (
    CreateUserRequest,
    DashboardResponse,
    ManagedStudentItem,
    ReenrolRequest,
    SeatPoolOut,
    UpdateExpiryRequest,
)
from app.services import invite_service, membership_service
from app.services.seat_pool import count_active

router = APIRouter(prefix="/v1/dashboard", tags=["dashboard"])


@router.get("/form-token", response_model=FormTokenResponse)
def dashboard_form_token(current_manager: CurrentManager, settings: AppSettings) -> FormTokenResponse:
    return FormTokenResponse(
        form_token=create_form_token(FORM_DASHBOARD, settings, subject=str(current_manager.id)),
        expires_in_seconds=settings.form_token_expire_seconds,
    )


@router.get("", response_model=DashboardResponse)
def dashboard(current_manager: CurrentManager, db: DbSession, settings: AppSettings) -> DashboardResponse:
    now = now_utc()
    scope = membership_service.scope_manager_id(settings, current_manager)
    active = count_active(db, manager_id=scope, now=now)
    cap = settings.global_seat_cap
    return DashboardResponse(
        seat_pool=SeatPoolOut(active=active, cap=cap, available=max(0, cap - active) if cap > 0 else None),
        invites=[invite_item(invite, redeemer) for invite, redeemer in invite_service.list_invites(db, creator_id=scope)],
        students=[student_item(user, now) for user in membership_service.list_managed_students(db, settings, current_manager)],
    )


@router.post(
    "/invites",
    response_model=CreateInvitesResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_dashboard_token)],
)
def create_invites(
    payload: CreateInvitesRequest, current_manager: CurrentManager, db: DbSession
) -> CreateInvitesResponse:
    invites = membership_service.create_invite_codes(db, current_manager, payload.quantity, payload.allotted_days)
    return CreateInvitesResponse(codes=[invite_item(invite) for invite in invites], count=len(invites))


@router.delete(
    "/invites/{invite_id}",
    response_model=DeleteInviteResponse,
    dependencies=[Depends(require_dashboard_token)],
)
def delete_invite(
    invite_id: int, current_manager: CurrentManager, db: DbSession, settings: AppSettings
) -> DeleteInviteResponse:
    membership_service.delete_invite_code(db, settings, current_manager, invite_id)
    return DeleteInviteResponse(deleted=True)


@router.post(
    "/users",
    response_model=ManagedStudentItem,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_dashboard_token)],
)
def create_user(
    payload: CreateUserRequest,
    current_manager: CurrentManager,
    db: DbSession,
    settings: AppSettings,
    enrollment: Enrollments,
    notifier: Notifier,
) -> ManagedStudentItem:
    user = membership_service.create_user_manually(
        db,
        settings,
        enrollment,
        notifier,
        current_manager,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        days=payload.days,
    )
    return student_item(user)


@router.post(
    "/users/{user_id}/revoke",
    response_model=ManagedStudentItem,
    dependencies=[Depends(require_dashboard_token)],
)
def revoke_user(
    user_id: int, current_manager: CurrentManager, db: DbSession, settings: AppSettings, enrollment: Enrollments
) -> ManagedStudentItem:
    return student_item(membership_service.revoke(db, settings, enrollment, current_manager, user_id))


@router.put(
    "/users/{user_id}/expiry",
    response_model=ManagedStudentItem,
    dependencies=[Depends(require_dashboard_token)],
)
def update_user_expiry(
    user_id: int, payload: UpdateExpiryRequest, current_manager: CurrentManager, db: DbSession, settings: AppSettings
) -> ManagedStudentItem:
    return student_item(membership_service.update_expiry(db, settings, current_manager, user_id, payload.expiry_date))


@router.post(
    "/users/{user_id}/reenrol",
    response_model=ManagedStudentItem,
    dependencies=[Depends(require_dashboard_token)],
)
def reenrol_user(
    user_id: int,
    payload: ReenrolRequest,
    current_manager: CurrentManager,
    db: DbSession,
    settings: AppSettings,
    enrollment: Enrollments,
) -> ManagedStudentItem:
    return student_item(
        membership_service.reenrol_student(db, settings, enrollment, current_manager, user_id, payload.days)
    )
