"""外部身份校验实现：本地 JWT / Clerk"""

import logging
import time

import httpx
from jose import jwt, JWTError

from shelfswap.config import Settings
from shelfswap.utils.security import decode_access_token

from .base import ExternalIdentity, IdentityError, IdentityVerifier

logger = logging.getLogger(__name__)


class LocalTokenVerifier(IdentityVerifier):
    """校验 /auth/login 签发的 HS256 Token"""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    async def verify(self, token: str) -> ExternalIdentity:
        payload = decode_access_token(token, self.secret_key, self.algorithm)
        if not payload or not payload.get("sub") or not payload.get("email"):
            raise IdentityError("Invalid authentication credentials")
        return ExternalIdentity(
            subject=str(payload["sub"]),
            email=payload["email"],
            username=payload.get("username") or "",
            provider="local",
        )


class ClerkIdentityVerifier(IdentityVerifier):
    """
    Clerk 会话 Token 校验：
    1. 用 JWKS 校验 RS256 签名与有效期
    2. 按 sub 拉取用户资料（邮箱、用户名、头像）
    """

    def __init__(
        self,
        secret_key: str,
        api_url: str = "https://api.clerk.com/v1",
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
        jwks_refresh_interval: float = 300,
    ):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.jwks_refresh_interval = jwks_refresh_interval
        self._jwks: dict | None = None
        self._jwks_fetched_at = 0.0

    async def _get(self, path: str) -> dict:
        async with httpx.AsyncClient(
            base_url=self.api_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.get(
                    path, headers={"Authorization": f"Bearer {self.secret_key}"}
                )
            except httpx.HTTPError as exc:
                logger.error(f"Identity provider communication error: {exc}")
                raise IdentityError("Identity provider unavailable") from exc
        if response.status_code != 200:
            logger.warning(f"Identity provider returned {response.status_code} for {path}")
            raise IdentityError("Invalid authentication credentials")
        try:
            return response.json()
        except ValueError as exc:
            logger.warning(f"Identity provider returned a non-JSON body for {path}")
            raise IdentityError("Invalid identity provider response") from exc

    async def _get_jwks(self, refresh: bool = False) -> dict:
        # 未知 kid 触发的刷新在间隔内最多一次
        stale = time.monotonic() - self._jwks_fetched_at >= self.jwks_refresh_interval
        if self._jwks is None or (refresh and stale):
            self._jwks = await self._get("/jwks")
            self._jwks_fetched_at = time.monotonic()
        return self._jwks

    async def _decode(self, token: str) -> dict:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JWTError as exc:
            raise IdentityError("Invalid authentication credentials") from exc

        jwks = await self._get_jwks()
        # 密钥轮换后本地缓存里可能没有新的 kid
        if kid and not any(k.get("kid") == kid for k in jwks.get("keys", [])):
            jwks = await self._get_jwks(refresh=True)

        try:
            return jwt.decode(token, jwks, algorithms=["RS256"], options={"verify_aud": False})
        except JWTError as exc:
            raise IdentityError("Invalid authentication credentials") from exc

    async def verify(self, token: str) -> ExternalIdentity:
        claims = await self._decode(token)
        subject = claims.get("sub")
        if not subject:
            raise IdentityError("Invalid authentication credentials")

        user = await self._get(f"/users/{subject}")
        addresses = user.get("email_addresses") or []
        if not addresses:
            raise IdentityError("External account has no email address")

        primary_id = user.get("primary_email_address_id")
        primary = next((a for a in addresses if a.get("id") == primary_id), addresses[0])

        return ExternalIdentity(
            subject=user.get("id") or subject,
            email=primary["email_address"],
            username=user.get("username") or "",
            avatar_url=user.get("image_url") or "",
        )


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    if settings.CLERK_SECRET_KEY:
        logger.info("Using Clerk identity verification")
        return ClerkIdentityVerifier(settings.CLERK_SECRET_KEY, settings.CLERK_API_URL)
    logger.warning("Using local token verification (set CLERK_SECRET_KEY to use Clerk)")
    return LocalTokenVerifier(settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM)
