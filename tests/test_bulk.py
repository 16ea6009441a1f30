# tests/test_bulk.py: Bulk restore / permanent delete
import pytest
from httpx import AsyncClient

from formbase.bulk import BulkRequest, BulkResult
from formbase.errors import InvalidPayloadError
from tests.conftest import (
    OTHER,
    add_row,
    create_database,
    delete_database,
    delete_row,
    get_auth_headers,
)


class TestBulkRequest:
    def test_ids_required_without_selected_all(self):
        with pytest.raises(InvalidPayloadError):
            BulkRequest.from_payload({"ids": []})

    def test_ids_must_be_a_list(self):
        with pytest.raises(InvalidPayloadError):
            BulkRequest.from_payload({"ids": "abc"})

    def test_selected_all_allows_empty_ids(self):
        request = BulkRequest.from_payload({"selectedAll": True, "search": "x", "database_id": "db"})
        assert request.selected_all
        assert request.search == "x"
        assert request.database_id == "db"

    def test_result_counts(self):
        result = BulkResult({"a": "ok", "b": "boom", "c": "ok"})
        assert result.count == 2
        assert result.failed == ["b"]


async def _archived_database(client: AsyncClient, name: str, user_id: str = "alice") -> dict:
    db = await create_database(client, name, user_id)
    await delete_database(client, db["id"], user_id)
    return db


async def _active_names(client: AsyncClient) -> list[str]:
    res = await client.get("/api/databases", headers=get_auth_headers())
    return sorted(db["name"] for db in res.json()["databases"])


@pytest.mark.asyncio
class TestBulkDatabases:
    async def test_selected_all_re_resolves_current_archive(self, client: AsyncClient):
        first = await _archived_database(client, "Report A")
        stale_ids = [first["id"]]
        await _archived_database(client, "Report B")
        await _archived_database(client, "Inventory")

        res = await client.post(
            "/api/databases/archives/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": stale_ids, "selectedAll": True, "search": "report"},
        )
        assert res.status_code == 200
        body = res.json()
        assert body["count"] == 2
        assert body["failed"] == []
        assert await _active_names(client) == ["Report A", "Report B"]

    async def test_unknown_id_aborts_whole_batch(self, client: AsyncClient):
        archived = await _archived_database(client, "Old")
        active = await create_database(client, "Current")

        res = await client.post(
            "/api/databases/archives/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": [archived["id"], active["id"]]},
        )
        assert res.status_code == 404
        assert res.json() == {"error": "Some items were not found (1 of 2 available)"}
        assert await _active_names(client) == ["Current"]

    async def test_name_conflict_rejects_batch(self, client: AsyncClient):
        first = await _archived_database(client, "X")
        second = await _archived_database(client, "Y")
        await create_database(client, "X")

        res = await client.post(
            "/api/databases/archives/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": [first["id"], second["id"]]},
        )
        assert res.status_code == 400
        assert await _active_names(client) == ["X"]

    async def test_same_name_twice_in_batch(self, client: AsyncClient):
        first = await _archived_database(client, "X")
        second = await _archived_database(client, "X")

        res = await client.post(
            "/api/databases/archives/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": [first["id"], second["id"]]},
        )
        assert res.status_code == 400
        assert await _active_names(client) == []

    async def test_bulk_delete_purges_matching(self, client: AsyncClient, storage):
        report = await _archived_database(client, "Report")
        await add_row(client, (await create_database(client, "Keep"))["id"], {"n": 1})
        kept = await _archived_database(client, "Inventory")

        res = await client.post(
            "/api/databases/archives/bulk-delete",
            headers=get_auth_headers(),
            json={"selectedAll": True, "search": "rep"},
        )
        assert res.status_code == 200
        assert res.json()["count"] == 1
        remaining = {db["id"] for db in storage.databases.list_all_databases()}
        assert report["id"] not in remaining
        assert kept["id"] in remaining

        res = await client.get("/api/databases/archives/databases", headers=get_auth_headers())
        assert [db["id"] for db in res.json()["databases"]] == [kept["id"]]

    async def test_nothing_selected(self, client: AsyncClient):
        res = await client.post(
            "/api/databases/archives/bulk-delete", headers=get_auth_headers(), json={"ids": []}
        )
        assert res.status_code == 400
        assert res.json() == {"error": "No items selected"}

    async def test_other_user_ids_are_not_found(self, client: AsyncClient):
        theirs = await _archived_database(client, "Secret", OTHER)
        res = await client.post(
            "/api/databases/archives/bulk-delete",
            headers=get_auth_headers(),
            json={"ids": [theirs["id"]]},
        )
        assert res.status_code == 404


@pytest.mark.asyncio
class TestBulkRows:
    async def test_restore_selected_rows(self, client: AsyncClient):
        db = await create_database(client, "Contacts")
        rows = [await add_row(client, db["id"], {"name": name}) for name in ("Ann", "Bob", "Carl")]
        for row in rows:
            await delete_row(client, db["id"], row["id"])

        res = await client.post(
            "/api/databases/archives/rows/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": [rows[0]["id"], rows[1]["id"]], "database_id": db["id"]},
        )
        assert res.status_code == 200
        assert res.json()["count"] == 2

        res = await client.get(f"/api/databases/{db['id']}/rows", headers=get_auth_headers())
        assert sorted(row["data"]["name"] for row in res.json()["rows"]) == ["Ann", "Bob"]

    async def test_item_failure_does_not_stop_the_batch(
        self, client: AsyncClient, storage, monkeypatch
    ):
        db = await create_database(client, "Contacts")
        rows = [await add_row(client, db["id"], {"name": name}) for name in ("Ann", "Bob", "Carl")]
        for row in rows:
            await delete_row(client, db["id"], row["id"])
        failing_id = rows[1]["id"]
        delete_rows = storage.rows.delete_rows

        def flaky_delete(row_ids):
            if failing_id in row_ids:
                raise RuntimeError("disk full")
            return delete_rows(row_ids)

        monkeypatch.setattr(storage.rows, "delete_rows", flaky_delete)

        res = await client.post(
            "/api/databases/archives/rows/bulk-delete",
            headers=get_auth_headers(),
            json={"ids": [row["id"] for row in rows], "database_id": db["id"]},
        )
        assert res.status_code == 200
        body = res.json()
        assert body["count"] == 2
        assert body["failed"] == [failing_id]

        remaining = storage.rows.list_rows([db["id"]], deleted=True)
        assert [row["id"] for row in remaining] == [failing_id]

    async def test_selected_all_uses_search(self, client: AsyncClient):
        db = await create_database(client, "Contacts")
        for name in ("Ann", "Anderson", "Bob"):
            row = await add_row(client, db["id"], {"name": name})
            await delete_row(client, db["id"], row["id"])

        res = await client.post(
            "/api/databases/archives/rows/bulk-delete",
            headers=get_auth_headers(),
            json={"selectedAll": True, "search": "AN", "database_id": db["id"]},
        )
        assert res.json()["count"] == 2

        res = await client.get(
            "/api/databases/archives/rows",
            headers=get_auth_headers(),
            params={"database_id": db["id"]},
        )
        assert [row["data"]["name"] for row in res.json()["rows"]] == ["Bob"]

    async def test_rows_of_archived_database_are_out_of_scope(self, client: AsyncClient):
        db = await create_database(client, "Contacts")
        row = await add_row(client, db["id"], {"name": "Ann"})
        await delete_database(client, db["id"])

        res = await client.post(
            "/api/databases/archives/rows/bulk-restore",
            headers=get_auth_headers(),
            json={"ids": [row["id"]]},
        )
        assert res.status_code == 404

        res = await client.post(
            "/api/databases/archives/rows/bulk-delete",
            headers=get_auth_headers(),
            json={"selectedAll": True, "database_id": db["id"]},
        )
        assert res.status_code == 404
        assert res.json() == {"error": "Database not found"}
