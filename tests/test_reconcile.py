# tests/test_reconcile.py: Repair of interrupted database archives
import pytest
from httpx import AsyncClient
from typer.testing import CliRunner

from formbase.cli import cli
from formbase.lifecycle import find_inconsistent_rows, reconcile
from formbase.utils import now_utc
from tests.conftest import OTHER, add_row, create_database, get_auth_headers


async def _interrupted_archive(client: AsyncClient, storage, name: str, user_id: str = "alice"):
    """Archive a database without running the row cascade."""
    db = await create_database(client, name, user_id)
    rows = [await add_row(client, db["id"], {"n": i}, user_id) for i in range(2)]
    storage.databases.set_deleted_at([db["id"]], now_utc())
    return db, rows


@pytest.mark.asyncio
class TestReconcile:
    async def test_detect_and_repair(self, client: AsyncClient, storage):
        db, rows = await _interrupted_archive(client, storage, "Contacts")
        healthy = await create_database(client, "Healthy")
        await add_row(client, healthy["id"], {"n": 1})

        res = await client.get(
            "/api/databases/maintenance/inconsistent-rows", headers=get_auth_headers()
        )
        body = res.json()
        assert body["count"] == 2
        assert {row["id"] for row in body["rows"]} == {row["id"] for row in rows}
        assert body["rows"][0]["database_name"] == "Contacts"

        res = await client.post("/api/databases/maintenance/reconcile", headers=get_auth_headers())
        assert res.json()["count"] == 2

        database = storage.databases.list_all_databases(deleted=True)[0]
        archived = storage.rows.list_rows([db["id"]], deleted=True)
        assert {row["deleted_at"] for row in archived} == {database["deleted_at"]}
        assert find_inconsistent_rows(storage) == []

    async def test_scoped_to_user(self, client: AsyncClient, storage):
        await _interrupted_archive(client, storage, "Theirs", OTHER)

        res = await client.get(
            "/api/databases/maintenance/inconsistent-rows", headers=get_auth_headers()
        )
        assert res.json()["count"] == 0
        res = await client.post("/api/databases/maintenance/reconcile", headers=get_auth_headers())
        assert res.json()["count"] == 0
        assert len(find_inconsistent_rows(storage)) == 2

    async def test_restored_rows_become_visible_after_repair(self, client: AsyncClient, storage):
        db, rows = await _interrupted_archive(client, storage, "Contacts")
        assert reconcile(storage) == 2

        res = await client.post(f"/api/databases/{db['id']}/restore", headers=get_auth_headers())
        assert res.status_code == 200
        res = await client.post(
            "/api/databases/archives/rows/bulk-restore",
            headers=get_auth_headers(),
            json={"selectedAll": True, "database_id": db["id"]},
        )
        assert res.json()["count"] == 2

    async def test_cli(self, client: AsyncClient, storage):
        await _interrupted_archive(client, storage, "Contacts")
        await _interrupted_archive(client, storage, "Theirs", OTHER)
        runner = CliRunner()

        result = runner.invoke(cli, ["reconcile", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "4 inconsistent rows" in result.output
        assert len(find_inconsistent_rows(storage)) == 4

        result = runner.invoke(cli, ["reconcile"])
        assert result.exit_code == 0, result.output
        assert "4 rows re-archived" in result.output
        assert find_inconsistent_rows(storage) == []
