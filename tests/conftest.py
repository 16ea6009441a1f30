# tests/conftest.py: Shared test fixtures
from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from formbase.app import create_app
from formbase.auth import USER_HEADER

OWNER = "alice"
OTHER = "mallory"


def get_auth_headers(user_id: str = OWNER) -> dict[str, str]:
    return {USER_HEADER: user_id}


@pytest.fixture(params=["sqlite", "json"])
def backend(request) -> str:
    return request.param


@pytest.fixture
def settings_env(monkeypatch, tmp_path, backend):
    monkeypatch.setenv("STORAGE_BACKEND", backend)
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("JSON_PATH", str(tmp_path / "store.json"))
    monkeypatch.setenv("AUTH_MODE", "header")
    monkeypatch.setenv("PAGE_LIMIT", "10")
    return tmp_path


@pytest.fixture
def app(settings_env):
    return create_app()


@pytest.fixture
def storage(app):
    return app.state.storage


@pytest_asyncio.fixture(scope="function")
async def client(app):
    """HTTP test client bound to a fresh app per test"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def create_database(client: AsyncClient, name: str, user_id: str = OWNER) -> dict[str, Any]:
    res = await client.post("/api/databases", headers=get_auth_headers(user_id), json={"name": name})
    assert res.status_code == 201, res.text
    return res.json()["database"]


async def add_column(
    client: AsyncClient,
    database_id: str,
    name: str,
    column_type: str = "TEXT",
    is_unique: bool = False,
    user_id: str = OWNER,
) -> dict[str, Any]:
    res = await client.post(
        f"/api/databases/{database_id}/columns",
        headers=get_auth_headers(user_id),
        json={"name": name, "type": column_type, "is_unique": is_unique},
    )
    assert res.status_code == 201, res.text
    return res.json()["column"]


async def add_row(
    client: AsyncClient, database_id: str, data: dict[str, Any], user_id: str = OWNER
) -> dict[str, Any]:
    res = await client.post(
        f"/api/databases/{database_id}/rows", headers=get_auth_headers(user_id), json={"data": data}
    )
    assert res.status_code == 201, res.text
    return res.json()["row"]


async def delete_row(client: AsyncClient, database_id: str, row_id: str, user_id: str = OWNER) -> None:
    res = await client.delete(
        f"/api/databases/{database_id}/rows/{row_id}", headers=get_auth_headers(user_id)
    )
    assert res.status_code == 200, res.text


async def delete_database(client: AsyncClient, database_id: str, user_id: str = OWNER) -> None:
    res = await client.delete(f"/api/databases/{database_id}", headers=get_auth_headers(user_id))
    assert res.status_code == 200, res.text


async def create_form(client: AsyncClient, name: str, user_id: str = OWNER) -> dict[str, Any]:
    res = await client.post("/api/forms", headers=get_auth_headers(user_id), json={"name": name})
    assert res.status_code == 201, res.text
    return res.json()["form"]
