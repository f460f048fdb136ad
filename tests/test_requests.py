"""换书请求测试

覆盖端点：
- POST/DELETE /books/{id}/request
- GET /wishlist
- GET /books/top-requested
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from shelfswap.models.book import BookRequest
from shelfswap.services import request_service
from tests.conftest import FailingEmailSender, bearer, create_test_user


async def _request_count(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count(BookRequest.id)))).scalar_one()


class TestRequestBook:

    @pytest.mark.asyncio
    async def test_request_notifies_owner(
        self, client: AsyncClient, dune, reader_headers, mailbox, session_factory
    ):
        """申请成功 → 记录请求并通知书主"""
        resp = await client.post(f"/books/{dune['id']}/request", headers=reader_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Request sent successfully."}
        assert await _request_count(session_factory) == 1

        assert mailbox.notifications == [{
            "to": "owner@example.com",
            "owner_name": "owner",
            "book_title": "Dune",
            "requester_email": "reader@example.com",
        }]

    @pytest.mark.asyncio
    async def test_duplicate_request_is_idempotent(
        self, client: AsyncClient, dune, reader_headers, mailbox, session_factory
    ):
        """重复申请 → 仍然 200，只有一条记录、一封邮件"""
        for _ in range(2):
            resp = await client.post(f"/books/{dune['id']}/request", headers=reader_headers)
            assert resp.status_code == 200

        assert await _request_count(session_factory) == 1
        assert len(mailbox.notifications) == 1

    @pytest.mark.asyncio
    async def test_request_own_book(
        self, client: AsyncClient, dune, owner_headers, mailbox, session_factory
    ):
        """申请自己的书 → 400，不留记录"""
        resp = await client.post(f"/books/{dune['id']}/request", headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"
        assert await _request_count(session_factory) == 0
        assert mailbox.notifications == []

    @pytest.mark.asyncio
    async def test_request_missing_book(self, client: AsyncClient, reader_headers):
        resp = await client.post("/books/999/request", headers=reader_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_request_requires_auth(self, client: AsyncClient, dune):
        resp = await client.post(f"/books/{dune['id']}/request")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_email_failure_discards_request(
        self, app, client: AsyncClient, dune, reader_headers, session_factory
    ):
        """通知发送失败 → 500，请求记录回滚"""
        app.state.email_sender = FailingEmailSender()
        resp = await client.post(f"/books/{dune['id']}/request", headers=reader_headers)
        assert resp.status_code == 500
        assert resp.json() == {
            "detail": "Failed to send email notification",
            "code": "INTERNAL_ERROR",
        }
        assert await _request_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_ownerless_book(self, app, client: AsyncClient, reader, reader_headers, session_factory):
        """历史数据中没有书主的书 → 500"""
        from shelfswap.models.book import Book

        async with session_factory() as db:
            book = Book(title="Orphan", author="Unknown")
            db.add(book)
            await db.commit()
            book_id = book.id

        resp = await client.post(f"/books/{book_id}/request", headers=reader_headers)
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Owner not found"

    @pytest.mark.asyncio
    async def test_detail_reports_is_requested(self, client: AsyncClient, dune, reader_headers, owner_headers):
        """详情接口的 is_requested 只反映当前用户"""
        await client.post(f"/books/{dune['id']}/request", headers=reader_headers)

        mine = await client.get(f"/books/{dune['id']}", headers=reader_headers)
        assert mine.json()["is_requested"] is True
        theirs = await client.get(f"/books/{dune['id']}", headers=owner_headers)
        assert theirs.json()["is_requested"] is False


class TestWithdrawAndWishlist:

    @pytest.mark.asyncio
    async def test_wishlist(self, client: AsyncClient, dune, reader, reader_headers):
        await client.post(f"/books/{dune['id']}/request", headers=reader_headers)

        resp = await client.get("/wishlist", headers=reader_headers)
        assert resp.status_code == 200
        items = resp.json()
        assert len(items) == 1
        assert items[0]["book_id"] == dune["id"]
        assert items[0]["requester_id"] == reader.id
        assert items[0]["book_title"] == "Dune"
        assert items[0]["book_author"] == "Frank Herbert"

    @pytest.mark.asyncio
    async def test_withdraw(self, client: AsyncClient, dune, reader_headers):
        await client.post(f"/books/{dune['id']}/request", headers=reader_headers)

        resp = await client.delete(f"/books/{dune['id']}/request", headers=reader_headers)
        assert resp.status_code == 204
        assert (await client.get("/wishlist", headers=reader_headers)).json() == []

    @pytest.mark.asyncio
    async def test_withdraw_without_request(self, client: AsyncClient, dune, reader_headers):
        """撤回不存在的请求 → 什么也不做"""
        resp = await client.delete(f"/books/{dune['id']}/request", headers=reader_headers)
        assert resp.status_code == 204


class TestTopRequested:

    @pytest.mark.asyncio
    async def test_dune_scenario(self, client: AsyncClient, dune, reader, reader_headers, session_factory):
        """发布 → 申请 → 热门计数 1 → 撤回 → 不再出现在热门列表"""
        await client.post(f"/books/{dune['id']}/request", headers=reader_headers)

        top = (await client.get("/books/top-requested")).json()
        assert top == [{
            "book_id": dune["id"],
            "title": "Dune",
            "author": "Frank Herbert",
            "image_path": "",
            "request_count": 1,
        }]

        await client.delete(f"/books/{dune['id']}/request", headers=reader_headers)

        async with session_factory() as db:
            assert await request_service.has_requested(db, reader.id, dune["id"]) is False
        assert (await client.get("/books/top-requested")).json() == []

    @pytest.mark.asyncio
    async def test_ordering_and_limit(self, app, client: AsyncClient, owner_headers):
        """按请求数降序，同数按书 ID 升序"""
        ids = []
        for title in ("One", "Two", "Three"):
            resp = await client.post("/books", json={"title": title, "author": "A"}, headers=owner_headers)
            ids.append(resp.json()["id"])

        readers = [
            bearer(app, await create_test_user(app, f"r{i}@example.com"))
            for i in range(3)
        ]
        # Three: 3 次，One: 1 次，Two: 1 次
        for headers in readers:
            await client.post(f"/books/{ids[2]}/request", headers=headers)
        await client.post(f"/books/{ids[0]}/request", headers=readers[0])
        await client.post(f"/books/{ids[1]}/request", headers=readers[1])

        top = (await client.get("/books/top-requested")).json()
        assert [(b["title"], b["request_count"]) for b in top] == [
            ("Three", 3), ("One", 1), ("Two", 1),
        ]

        top = (await client.get("/books/top-requested", params={"limit": 1})).json()
        assert [b["title"] for b in top] == ["Three"]


class TestAddRequest:

    @pytest.mark.asyncio
    async def test_add_request_twice(self, dune, reader, session_factory):
        """add_request 幂等：第二次返回 False"""
        async with session_factory() as db:
            assert await request_service.add_request(db, dune["id"], reader.id) is True
            assert await request_service.add_request(db, dune["id"], reader.id) is False
            await db.commit()

        assert await _request_count(session_factory) == 1
