from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    login: str = Field(min_length=1, max_length=255, description="Email or username")
    password: str = Field(min_length=1, max_length=128)
    device_id: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str
    device_id: str = Field(min_length=1, max_length=255)


class LogoutRequest(BaseModel):
    refresh_token: str


class FormTokenResponse(BaseModel):
    form_token: str
    expires_in_seconds: int


class UserOut(BaseModel):
    id: int
    email: str
    username: str
    display_name: str
    account_role: str


class AuthResponse(BaseModel):
    user: UserOut
    access_token: str
    access_token_expires_in: int
    refresh_token: str
    redirect_url: str


class RefreshResponse(BaseModel):
    access_token: str
    access_token_expires_in: int


class LogoutResponse(BaseModel):
    success: bool
    redirect_url: str
