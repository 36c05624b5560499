"""Integration tests for the users and search admin endpoints."""

import pytest
from httpx import AsyncClient

from searchsync.models import QueueItem
from searchsync.services.queue_store import (
    count_queue_items,
    current_time_millis,
    insert_queue_items,
    select_for_recovery,
)


class TestUsersApi:
    """Tests for /api/users."""

    @pytest.mark.asyncio
    async def test_create_user_indexes_it(self, client: AsyncClient, db_session, sink):
        response = await client.post(
            "/api/users",
            json={"login": "ada", "name": "Ada Lovelace", "scm_accounts": ["ada", "alovelace"]},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["login"] == "ada"
        assert data["active"] is True
        assert data["scm_accounts"] == ["ada", "alovelace"]
        assert sink.documents["ada"]["name"] == "Ada Lovelace"
        assert await count_queue_items(db_session) == 0

    @pytest.mark.asyncio
    async def test_create_duplicate_login(self, client: AsyncClient, test_users, sink):
        response = await client.post("/api/users", json={"login": "ada"})

        assert response.status_code == 409
        assert sink.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("login", ["a", "ada lovelace", "ada@example.com"])
    async def test_create_invalid_login(self, client: AsyncClient, login):
        response = await client.post("/api/users", json={"login": login})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_with_search_down(self, client: AsyncClient, db_session, sink):
        """The user is created and the queue item left for recovery."""
        sink.unavailable = True

        response = await client.post("/api/users", json={"login": "ada"})

        assert response.status_code == 201
        remaining = await select_for_recovery(db_session, before=10**15, after=-1)
        assert [item.doc_id for item in remaining] == ["ada"]

    @pytest.mark.asyncio
    async def test_get_user(self, client: AsyncClient, test_users):
        response = await client.get("/api/users/ada")

        assert response.status_code == 200
        assert response.json()["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_get_unknown_user(self, client: AsyncClient):
        response = await client.get("/api/users/nobody")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_user(self, client: AsyncClient, test_users, sink):
        response = await client.patch("/api/users/grace", json={"name": "Admiral Hopper"})

        assert response.status_code == 200
        assert response.json()["name"] == "Admiral Hopper"
        assert response.json()["email"] == "grace@example.com"
        assert sink.documents["grace"]["name"] == "Admiral Hopper"

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, client: AsyncClient, sink):
        response = await client.patch("/api/users/nobody", json={"name": "x"})

        assert response.status_code == 404
        assert sink.calls == 0

    @pytest.mark.asyncio
    async def test_deactivate_user(self, client: AsyncClient, test_users, sink):
        response = await client.post("/api/users/ada/deactivate")

        assert response.status_code == 200
        assert response.json()["active"] is False
        assert sink.documents["ada"]["active"] is False
        assert sink.documents["ada"]["scm_accounts"] == []


class TestSearchAdminApi:
    """Tests for /api/search."""

    @pytest.mark.asyncio
    async def test_queue_status(self, client: AsyncClient, db_session):
        await insert_queue_items(db_session, [
            QueueItem.create("user", "ada", current_time_millis() - 60_000),
            QueueItem.create("project", "p1", current_time_millis()),
        ])
        await db_session.commit()

        response = await client.get("/api/search/queue")

        assert response.status_code == 200
        data = response.json()
        assert data["pending"] == 2
        assert data["pending_by_type"] == {"user": 1, "project": 1}
        assert data["oldest_age_seconds"] >= 60
        assert data["supported_types"] == ["user"]

    @pytest.mark.asyncio
    async def test_queue_status_empty(self, client: AsyncClient):
        response = await client.get("/api/search/queue")

        assert response.json()["pending"] == 0
        assert response.json()["oldest_age_seconds"] is None

    @pytest.mark.asyncio
    async def test_run_recovery(self, client: AsyncClient, db_session, test_users, sink):
        await insert_queue_items(
            db_session, QueueItem.create("user", "ada", current_time_millis() - 10 * 60_000)
        )
        await db_session.commit()

        response = await client.post("/api/search/recovery/run")

        assert response.status_code == 200
        assert response.json()["items_by_type"] == {"user": 1}
        assert "ada" in sink.documents
        assert await count_queue_items(db_session) == 0

    @pytest.mark.asyncio
    async def test_reindex(self, client: AsyncClient, test_users, sink):
        response = await client.post("/api/search/reindex")

        assert response.status_code == 200
        assert response.json() == {
            "status": "reindex_completed",
            "results": {"user": {"documents": 3, "failures": 0}},
        }
        assert sorted(sink.documents) == ["ada", "grace", "linus"]

    @pytest.mark.asyncio
    async def test_reindex_unsupported_type(self, client: AsyncClient):
        response = await client.post("/api/search/reindex", params={"doc_type": "project"})

        assert response.status_code == 400
