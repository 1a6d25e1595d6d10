from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field

from app.schemas.auth import AuthResponse
from app.schemas.invite import InviteCodeItem


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(max_length=120)
    last_name: str = Field(max_length=120)
    code: str = Field(min_length=4, max_length=32)
    device_id: str = Field(min_length=1, max_length=255)


class RegisterResponse(AuthResponse):
    created: bool
    expiry_at: datetime | None = None


class ExtendMembershipRequest(BaseModel):
    code: str = Field(min_length=4, max_length=32)


class MembershipOut(BaseModel):
    state: str
    active: bool
    expiry_at: datetime | None = None
    days_remaining: int | None = None
    manager_id: int | None = None


class ExtendMembershipResponse(BaseModel):
    message: str
    membership: MembershipOut
    redirect_url: str


class ProfileOut(BaseModel):
    id: int
    email: str
    username: str
    first_name: str
    last_name: str
    display_name: str
    account_role: str
    last_login_at: datetime | None = None
    membership: MembershipOut


class UpdateProfileRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=120)
    last_name: str | None = Field(default=None, min_length=1, max_length=120)
    email: EmailStr | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class ChangePasswordResponse(BaseModel):
    success: bool


class ManagedStudentItem(BaseModel):
    id: int
    email: str
    username: str
    display_name: str
    manager_id: int | None = None
    last_login_at: datetime | None = None
    membership: MembershipOut


class SeatPoolOut(BaseModel):
    active: int
    cap: int
    available: int | None = None


class DashboardResponse(BaseModel):
    seat_pool: SeatPoolOut
    invites: list[InviteCodeItem]
    students: list[ManagedStudentItem]


class CreateUserRequest(BaseModel):
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    days: int = Field(ge=1, le=3650)


class UpdateExpiryRequest(BaseModel):
    expiry_date: date


class ReenrolRequest(BaseModel):
    days: int = Field(ge=1, le=3650)


class SweepResponse(BaseModel):
    notices_sent: int
    expired: int
    skipped: int
    failed_user_ids: list[int]
