from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.adapters.base import EmailSender
from shelfswap.config import Settings
from shelfswap.database import get_db
from shelfswap.errors import GoneError
from shelfswap.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    AuthResponse,
    UserResponse,
    TokenResponse,
)
from shelfswap.schemas.request import MessageResponse
from shelfswap.services import auth_service, password_reset_service
from shelfswap.utils.deps import get_email_sender, get_settings

router = APIRouter(prefix="/auth", tags=["认证"])


def _ensure_local_accounts(settings: Settings, action: str) -> None:
    if settings.uses_external_identity:
        raise GoneError(f"Use the identity provider for {action}")


@router.post("/register", response_model=AuthResponse, status_code=201, summary="用户注册")
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """邮箱 + 密码注册，返回用户信息和 JWT Token"""
    _ensure_local_accounts(settings, "registration")
    user = await auth_service.register_user(db, body.email, body.password, body.username)
    token = auth_service.build_token(settings, user)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=TokenResponse(**token),
    )


@router.post("/login", response_model=AuthResponse, summary="用户登录")
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """邮箱 + 密码登录，返回用户信息和 JWT Token"""
    _ensure_local_accounts(settings, "login")
    user = await auth_service.authenticate_user(db, body.email, body.password)
    token = auth_service.build_token(settings, user)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=TokenResponse(**token),
    )


@router.post("/logout", status_code=204, summary="退出登录")
async def logout(settings: Settings = Depends(get_settings)):
    """Token 无状态，服务端无需处理"""
    _ensure_local_accounts(settings, "logout")
    return Response(status_code=204)


@router.post("/forgot-password", response_model=MessageResponse, summary="申请重置密码")
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """无论邮箱是否存在都返回同一句提示"""
    await password_reset_service.issue_reset_token(
        db, body.email, email_sender, settings.PASSWORD_RESET_TTL_MINUTES
    )
    return MessageResponse(message=password_reset_service.GENERIC_RESET_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, summary="重置密码")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Token 一次性有效，成功或过期后都会作废"""
    await password_reset_service.consume_reset_token(db, body.token, body.password)
    return MessageResponse(message="Password updated successfully")
