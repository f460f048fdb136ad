"""认证模块功能测试

覆盖端点：
- POST /auth/register
- POST /auth/login
- POST /auth/logout
- GET /me
"""

import pytest
from httpx import ASGITransport, AsyncClient

from shelfswap.config import Settings
from shelfswap.main import create_app
from shelfswap.utils.security import create_access_token
from tests.conftest import TEST_DB_URL


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_success(self, client: AsyncClient):
        """注册成功 → 返回用户信息 + Token"""
        resp = await client.post("/auth/register", json={
            "email": "new@example.com",
            "password": "123456",
            "username": "newbie",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["user"]["email"] == "new@example.com"
        assert data["user"]["username"] == "newbie"
        assert data["token"]["access_token"]
        assert data["token"]["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient):
        """重复邮箱注册 → 409"""
        payload = {"email": "dup@example.com", "password": "123456"}
        await client.post("/auth/register", json=payload)
        resp = await client.post("/auth/register", json=payload)
        assert resp.status_code == 409
        assert resp.json()["code"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_register_short_password(self, client: AsyncClient):
        """密码太短 → 422"""
        resp = await client.post("/auth/register", json={
            "email": "short@example.com",
            "password": "123",
        })
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_register_invalid_email(self, client: AsyncClient):
        """无效邮箱格式 → 422"""
        resp = await client.post("/auth/register", json={
            "email": "not-an-email",
            "password": "123456",
        })
        assert resp.status_code == 422


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, owner):
        """正确邮箱+密码 → 登录成功，Token 可用于 /me"""
        resp = await client.post("/auth/login", json={
            "email": "owner@example.com",
            "password": "password123",
        })
        assert resp.status_code == 200
        token = resp.json()["token"]["access_token"]

        me = await client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == owner.id

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, owner):
        """密码错误 → 401"""
        resp = await client.post("/auth/login", json={
            "email": "owner@example.com",
            "password": "wrong",
        })
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_nonexistent_user(self, client: AsyncClient):
        """不存在的用户 → 401"""
        resp = await client.post("/auth/login", json={
            "email": "ghost@example.com",
            "password": "whatever",
        })
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_logout(self, client: AsyncClient):
        resp = await client.post("/auth/logout")
        assert resp.status_code == 204


class TestCurrentUser:

    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, owner, owner_headers):
        resp = await client.get("/me", headers=owner_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "owner@example.com"
        assert data["username"] == "owner"
        assert "password" not in data
        assert "password_hash" not in data

    @pytest.mark.asyncio
    async def test_me_without_token(self, client: AsyncClient):
        """无 Token → 401 并带 WWW-Authenticate"""
        resp = await client.get("/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_me_invalid_token(self, client: AsyncClient):
        resp = await client.get("/me", headers={"Authorization": "Bearer invalid-token"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_token_email_must_match(self, client: AsyncClient, owner):
        """Token 中的邮箱与用户不一致 → 401"""
        token = create_access_token(str(owner.id), "test-secret", email="someone@else.com")
        resp = await client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_token_with_wrong_secret(self, client: AsyncClient, owner):
        token = create_access_token(str(owner.id), "other-secret", email=owner.email)
        resp = await client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestExternalIdentityMode:

    @pytest.mark.asyncio
    async def test_local_accounts_disabled(self, tmp_path):
        """配置外部身份后，本地注册/登录/登出返回 410"""
        app = create_app(Settings(
            DATABASE_URL=TEST_DB_URL,
            CLERK_SECRET_KEY="sk_test_123",
            UPLOAD_DIR=tmp_path,
        ))
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.post("/auth/register", json={"email": "a@example.com", "password": "123456"})
            assert resp.status_code == 410
            assert resp.json()["code"] == "GONE"

            resp = await ac.post("/auth/login", json={"email": "a@example.com", "password": "123456"})
            assert resp.status_code == 410

            resp = await ac.post("/auth/logout")
            assert resp.status_code == 410
        await app.state.engine.dispose()
