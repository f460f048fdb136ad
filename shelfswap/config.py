from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    # 项目信息
    APP_NAME: str = "ShelfSwap"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # 数据库
    DATABASE_DIR: Path = Path(__file__).resolve().parent.parent / "data"
    DATABASE_NAME: str = "shelfswap.db"
    DATABASE_URL: str | None = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        self.DATABASE_DIR.mkdir(parents=True, exist_ok=True)
        return f"sqlite+aiosqlite:///{self.DATABASE_DIR / self.DATABASE_NAME}"

    # JWT（本地账号）
    JWT_SECRET_KEY: str = "dev-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 天

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "https://shelfswap.io",
        "https://www.shelfswap.io",
    ]
    CORS_ORIGIN_REGEX: str | None = r"https://.*\.pages\.dev"

    # 密码重置
    FRONTEND_URL: str = "http://localhost:5173"
    PASSWORD_RESET_TTL_MINUTES: int = 60

    # 邮件（Resend）
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "ShelfSwap Team <hello@shelfswap.io>"
    CONTACT_INBOX: str = "hello@shelfswap.io"

    # 对象存储（Supabase）
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    STORAGE_BUCKET: str = "uploads"
    UPLOAD_DIR: Path = Path("uploads")
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # 外部身份（Clerk）
    CLERK_SECRET_KEY: str | None = None
    CLERK_API_URL: str = "https://api.clerk.com/v1"
    IDENTITY_WEBHOOK_SECRET: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def uses_external_identity(self) -> bool:
        return bool(self.CLERK_SECRET_KEY)
