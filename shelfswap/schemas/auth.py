from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


# ---- 请求 ----

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128, description="密码（6-128位）")
    username: str | None = Field(None, max_length=100, description="用户名")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=6, max_length=128, description="新密码（6-128位）")


# ---- 响应 ----

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="过期时间（秒）")


class UserResponse(BaseModel):
    id: int
    email: str
    username: str | None = None
    bio: str | None = None
    avatar_path: str | None = None
    location: str | None = None
    external_identity: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    id: int
    email: str
    username: str | None = None
    bio: str | None = None
    avatar_path: str | None = None
    location: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    user: UserResponse
    token: TokenResponse
