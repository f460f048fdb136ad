"""测试公共 Fixtures - 每个测试一个独立 app + 内存 SQLite"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shelfswap.adapters.base import EmailDeliveryError, EmailSender
from shelfswap.config import Settings
from shelfswap.database import init_db
from shelfswap.main import create_app
from shelfswap.models.user import User
from shelfswap.services import auth_service
from shelfswap.utils.security import hash_password

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
WEBHOOK_SECRET = "whsec-test"


# ──────────── 邮件替身 ────────────

class RecordingEmailSender(EmailSender):
    """只记录，不发信"""

    def __init__(self):
        self.resets: list[tuple[str, str]] = []
        self.notifications: list[dict] = []
        self.contacts: list[dict] = []

    async def send_password_reset(self, to: str, token: str) -> None:
        self.resets.append((to, token))

    async def send_request_notification(
        self, to: str, owner_name: str, book_title: str, requester_email: str
    ) -> None:
        self.notifications.append({
            "to": to,
            "owner_name": owner_name,
            "book_title": book_title,
            "requester_email": requester_email,
        })

    async def send_contact_message(
        self, name: str, from_email: str, subject: str, message: str
    ) -> None:
        self.contacts.append({
            "name": name,
            "email": from_email,
            "subject": subject,
            "message": message,
        })


class FailingEmailSender(EmailSender):
    """所有发信都失败"""

    async def send_password_reset(self, to: str, token: str) -> None:
        raise EmailDeliveryError("Failed to send email")

    async def send_request_notification(
        self, to: str, owner_name: str, book_title: str, requester_email: str
    ) -> None:
        raise EmailDeliveryError("Failed to send email")

    async def send_contact_message(
        self, name: str, from_email: str, subject: str, message: str
    ) -> None:
        raise EmailDeliveryError("Failed to send email")


# ──────────── App / Client ────────────

@pytest_asyncio.fixture
async def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=TEST_DB_URL,
        JWT_SECRET_KEY="test-secret",
        RESEND_API_KEY=None,
        SUPABASE_URL=None,
        SUPABASE_SERVICE_ROLE_KEY=None,
        CLERK_SECRET_KEY=None,
        IDENTITY_WEBHOOK_SECRET=WEBHOOK_SECRET,
        UPLOAD_DIR=tmp_path / "uploads",
        MAX_UPLOAD_BYTES=1024,
    )


@pytest_asyncio.fixture
async def app(settings: Settings):
    application = create_app(settings)
    application.state.email_sender = RecordingEmailSender()
    # ASGITransport 不触发 lifespan，这里手动建表
    await init_db(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def session_factory(app):
    return app.state.session_factory


@pytest_asyncio.fixture
async def mailbox(app) -> RecordingEmailSender:
    return app.state.email_sender


# ──────────── 测试用户 ────────────

async def create_test_user(
    app, email: str, password: str = "password123", username: str | None = None
) -> User:
    async with app.state.session_factory() as db:
        user = User(email=email, password_hash=hash_password(password), username=username)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


def bearer(app, user: User) -> dict:
    token = auth_service.build_token(app.state.settings, user)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def owner(app) -> User:
    """书主"""
    return await create_test_user(app, "owner@example.com", username="owner")


@pytest_asyncio.fixture
async def reader(app) -> User:
    """发起换书请求的用户"""
    return await create_test_user(app, "reader@example.com", username="reader")


@pytest_asyncio.fixture
async def owner_headers(app, owner: User) -> dict:
    return bearer(app, owner)


@pytest_asyncio.fixture
async def reader_headers(app, reader: User) -> dict:
    return bearer(app, reader)


@pytest_asyncio.fixture
async def dune(client: AsyncClient, owner_headers: dict) -> dict:
    """书主发布的一本书"""
    resp = await client.post("/books", json={
        "title": "Dune",
        "author": "Frank Herbert",
        "description": "Desert planet",
        "genre": "Science Fiction",
    }, headers=owner_headers)
    assert resp.status_code == 201
    return resp.json()
