from datetime import datetime

from pydantic import BaseModel, Field


class CreateInvitesRequest(BaseModel):
    quantity: int = Field(ge=1, le=10, default=1)
    allotted_days: int | None = Field(default=None, ge=0, le=3650)


class InviteCodeItem(BaseModel):
    id: int
    code: str
    allotted_days: int | None = None
    created_by_user_id: int | None = None
    created_at: datetime
    used: bool
    used_by_user_id: int | None = None
    used_by_email: str | None = None
    used_at: datetime | None = None


class CreateInvitesResponse(BaseModel):
    codes: list[InviteCodeItem]
    count: int


class DeleteInviteResponse(BaseModel):
    deleted: bool
