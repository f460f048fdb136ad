"""分类、统计、上传、联系表单测试"""

import pytest
from httpx import AsyncClient

from tests.conftest import FailingEmailSender


async def _publish(client: AsyncClient, headers: dict, title: str, genre: str) -> None:
    resp = await client.post("/books", json={"title": title, "author": "A", "genre": genre}, headers=headers)
    assert resp.status_code == 201


class TestGenres:

    @pytest.mark.asyncio
    async def test_genres_distinct_sorted(self, client: AsyncClient, owner_headers):
        """去重、去空、按字母排序"""
        await _publish(client, owner_headers, "Dune", "Science Fiction")
        await _publish(client, owner_headers, "Emma", "Classics")
        await _publish(client, owner_headers, "Hyperion", "Science Fiction")
        await _publish(client, owner_headers, "Notes", "")

        resp = await client.get("/genres")
        assert resp.status_code == 200
        assert resp.json() == ["Classics", "Science Fiction"]

    @pytest.mark.asyncio
    async def test_popular_genres(self, client: AsyncClient, owner_headers):
        """按书籍数降序，同数按名称"""
        await _publish(client, owner_headers, "Dune", "Science Fiction")
        await _publish(client, owner_headers, "Hyperion", "Science Fiction")
        await _publish(client, owner_headers, "Emma", "Classics")
        await _publish(client, owner_headers, "Beowulf", "Epic")

        resp = await client.get("/genres/popular")
        assert resp.json() == [
            {"genre": "Science Fiction", "book_count": 2},
            {"genre": "Classics", "book_count": 1},
            {"genre": "Epic", "book_count": 1},
        ]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, client: AsyncClient):
        assert (await client.get("/genres")).json() == []
        assert (await client.get("/genres/popular")).json() == []


class TestStats:

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, owner_headers, reader_headers):
        await _publish(client, owner_headers, "Dune", "Science Fiction")
        await _publish(client, owner_headers, "Emma", "Classics")
        await _publish(client, reader_headers, "Hyperion", "Science Fiction")

        resp = await client.get("/stats")
        assert resp.json() == {"total_books": 3, "active_users": 2, "total_genres": 2}

    @pytest.mark.asyncio
    async def test_stats_empty(self, client: AsyncClient):
        resp = await client.get("/stats")
        assert resp.json() == {"total_books": 0, "active_users": 0, "total_genres": 0}


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_image(self, app, client: AsyncClient, owner_headers):
        """上传后返回可直接用于书籍的 image_path，且可通过 /uploads 访问"""
        resp = await client.post(
            "/upload",
            files={"image": ("cover.JPG", b"jpeg-bytes", "image/jpeg")},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        image_path = resp.json()["image_path"]
        assert image_path.startswith("/uploads/")
        assert image_path.endswith(".jpg")

        served = await client.get(image_path)
        assert served.status_code == 200
        assert served.content == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_upload_too_large(self, client: AsyncClient, owner_headers):
        resp = await client.post(
            "/upload",
            files={"image": ("big.png", b"x" * 2048, "image/png")},
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "File too large"

    @pytest.mark.asyncio
    async def test_upload_unsupported_type(self, client: AsyncClient, owner_headers):
        resp = await client.post(
            "/upload",
            files={"image": ("notes.txt", b"hello", "text/plain")},
            headers=owner_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_upload_requires_auth(self, client: AsyncClient):
        resp = await client.post("/upload", files={"image": ("cover.png", b"x", "image/png")})
        assert resp.status_code == 401


class TestContact:

    @pytest.mark.asyncio
    async def test_contact_forwarded(self, client: AsyncClient, mailbox):
        resp = await client.post("/contact", json={
            "name": "Ann",
            "email": "ann@example.com",
            "subject": "Hello",
            "message": "Love the site",
        })
        assert resp.status_code == 200
        assert resp.json() == {"message": "Message sent successfully"}
        assert mailbox.contacts == [{
            "name": "Ann",
            "email": "ann@example.com",
            "subject": "Hello",
            "message": "Love the site",
        }]

    @pytest.mark.asyncio
    async def test_contact_missing_field(self, client: AsyncClient, mailbox):
        """任一字段为空 → 400"""
        resp = await client.post("/contact", json={"name": "Ann", "email": "ann@example.com", "subject": "Hi"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "All fields are required"
        assert mailbox.contacts == []

    @pytest.mark.asyncio
    async def test_contact_send_failure(self, app, client: AsyncClient):
        app.state.email_sender = FailingEmailSender()
        resp = await client.post("/contact", json={
            "name": "Ann",
            "email": "ann@example.com",
            "subject": "Hello",
            "message": "Love the site",
        })
        assert resp.status_code == 500


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "DENY"
