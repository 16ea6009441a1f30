# tests/test_rows.py: Row CRUD, uniqueness and filtered listing
import json

import pytest
from httpx import AsyncClient

from tests.conftest import (
    OTHER,
    add_column,
    add_row,
    create_database,
    delete_row,
    get_auth_headers,
)


async def _contacts(client: AsyncClient) -> dict:
    db = await create_database(client, "Contacts")
    await add_column(client, db["id"], "email", "EMAIL", is_unique=True)
    await add_column(client, db["id"], "name")
    return db


@pytest.mark.asyncio
class TestUniqueness:
    async def test_duplicate_is_rejected_until_archived(self, client: AsyncClient):
        db = await _contacts(client)
        ann = await add_row(client, db["id"], {"email": "a@x.com", "name": "Ann"})

        res = await client.post(
            f"/api/databases/{db['id']}/rows",
            headers=get_auth_headers(),
            json={"data": {"email": "a@x.com", "name": "Bob"}},
        )
        assert res.status_code == 400
        assert res.json() == {"error": "Duplicate value for unique column: email"}

        await delete_row(client, db["id"], ann["id"])
        carl = await add_row(client, db["id"], {"email": "a@x.com", "name": "Carl"})
        assert carl["data"]["name"] == "Carl"

    @pytest.mark.parametrize("value", ["", 0, False, None])
    async def test_falsy_values_are_never_checked(self, client: AsyncClient, value):
        db = await _contacts(client)
        await add_row(client, db["id"], {"email": value, "name": "Ann"})
        await add_row(client, db["id"], {"email": value, "name": "Bob"})

    async def test_equality_is_type_strict(self, client: AsyncClient):
        db = await create_database(client, "Scores")
        await add_column(client, db["id"], "code", "NUMBER", is_unique=True)
        await add_row(client, db["id"], {"code": 1})
        await add_row(client, db["id"], {"code": "1"})
        await add_row(client, db["id"], {"code": True})
        res = await client.post(
            f"/api/databases/{db['id']}/rows",
            headers=get_auth_headers(),
            json={"data": {"code": 1.0}},
        )
        assert res.status_code == 400

    async def test_arrays_and_objects_never_collide(self, client: AsyncClient):
        db = await create_database(client, "Tagged")
        await add_column(client, db["id"], "tags", "MULTI_SELECT", is_unique=True)
        await add_column(client, db["id"], "meta", "JSON", is_unique=True)
        await add_row(client, db["id"], {"tags": ["red"], "meta": {"a": 1}})
        await add_row(client, db["id"], {"tags": ["red"], "meta": {"a": 1}})

    async def test_update_excludes_the_row_itself(self, client: AsyncClient):
        db = await _contacts(client)
        ann = await add_row(client, db["id"], {"email": "a@x.com", "name": "Ann"})
        await add_row(client, db["id"], {"email": "b@x.com", "name": "Bob"})

        res = await client.put(
            f"/api/databases/{db['id']}/rows/{ann['id']}",
            headers=get_auth_headers(),
            json={"data": {"email": "a@x.com", "name": "Annie"}},
        )
        assert res.status_code == 200
        assert res.json()["row"]["data"] == {"email": "a@x.com", "name": "Annie"}

        res = await client.put(
            f"/api/databases/{db['id']}/rows/{ann['id']}",
            headers=get_auth_headers(),
            json={"data": {"email": "b@x.com", "name": "Annie"}},
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Duplicate value for unique column: email"


@pytest.mark.asyncio
class TestRowListing:
    async def test_contains_filter_is_case_insensitive(self, client: AsyncClient):
        db = await _contacts(client)
        for name in ("Ann", "Anderson", "Bob"):
            await add_row(client, db["id"], {"email": f"{name}@x.com", "name": name})

        filters = json.dumps([{"column": "name", "operator": "contains", "value": "an"}])
        res = await client.get(
            f"/api/databases/{db['id']}/rows",
            headers=get_auth_headers(),
            params={"filters": filters, "sort_by": "name", "sort_order": "asc"},
        )
        assert res.status_code == 200
        assert [row["data"]["name"] for row in res.json()["rows"]] == ["Anderson", "Ann"]

    async def test_malformed_filters_are_ignored(self, client: AsyncClient):
        db = await _contacts(client)
        await add_row(client, db["id"], {"email": "a@x.com", "name": "Ann"})
        await add_row(client, db["id"], {"email": "b@x.com", "name": "Bob"})
        res = await client.get(
            f"/api/databases/{db['id']}/rows",
            headers=get_auth_headers(),
            params={"filters": "[{oops"},
        )
        assert res.status_code == 200
        assert len(res.json()["rows"]) == 2

    async def test_default_order_is_newest_first(self, client: AsyncClient):
        db = await _contacts(client)
        first = await add_row(client, db["id"], {"name": "first"})
        second = await add_row(client, db["id"], {"name": "second"})
        res = await client.get(f"/api/databases/{db['id']}/rows", headers=get_auth_headers())
        assert [row["id"] for row in res.json()["rows"]] == [second["id"], first["id"]]

    async def test_archived_rows_are_hidden(self, client: AsyncClient):
        db = await _contacts(client)
        ann = await add_row(client, db["id"], {"name": "Ann"})
        await delete_row(client, db["id"], ann["id"])
        res = await client.get(f"/api/databases/{db['id']}/rows", headers=get_auth_headers())
        assert res.json()["rows"] == []


@pytest.mark.asyncio
class TestRowAccess:
    async def test_data_must_be_an_object(self, client: AsyncClient):
        db = await _contacts(client)
        res = await client.post(
            f"/api/databases/{db['id']}/rows", headers=get_auth_headers(), json={"data": [1]}
        )
        assert res.status_code == 400

    async def test_oversized_integer_is_rejected(self, client: AsyncClient):
        db = await _contacts(client)
        ann = await add_row(client, db["id"], {"name": "Ann"})
        body = b'{"data": {"name": 18446744073709551616}}'
        headers = {**get_auth_headers(), "content-type": "application/json"}

        res = await client.post(f"/api/databases/{db['id']}/rows", headers=headers, content=body)
        assert res.status_code == 400
        assert res.json() == {"error": "data contains a value that cannot be stored"}

        res = await client.put(
            f"/api/databases/{db['id']}/rows/{ann['id']}", headers=headers, content=body
        )
        assert res.status_code == 400
        res = await client.get(f"/api/databases/{db['id']}/rows", headers=get_auth_headers())
        assert [row["data"] for row in res.json()["rows"]] == [{"name": "Ann"}]

    async def test_invalid_json_body(self, client: AsyncClient):
        db = await _contacts(client)
        res = await client.post(
            f"/api/databases/{db['id']}/rows",
            headers={**get_auth_headers(), "content-type": "application/json"},
            content=b"{not json",
        )
        assert res.status_code == 400
        assert res.json() == {"error": "Request body must be valid JSON"}

    async def test_missing_identity(self, client: AsyncClient):
        res = await client.get("/api/databases")
        assert res.status_code == 401
        assert res.json() == {"error": "Authentication required"}

    async def test_other_user_gets_not_found(self, client: AsyncClient):
        db = await _contacts(client)
        ann = await add_row(client, db["id"], {"name": "Ann"})
        headers = get_auth_headers(OTHER)

        res = await client.get(f"/api/databases/{db['id']}/rows", headers=headers)
        assert res.status_code == 404
        res = await client.put(
            f"/api/databases/{db['id']}/rows/{ann['id']}", headers=headers, json={"data": {}}
        )
        assert res.status_code == 404
        res = await client.delete(f"/api/databases/{db['id']}/rows/{ann['id']}", headers=headers)
        assert res.status_code == 404

    async def test_row_of_another_database(self, client: AsyncClient):
        first = await _contacts(client)
        second = await create_database(client, "Other")
        ann = await add_row(client, first["id"], {"name": "Ann"})
        res = await client.delete(
            f"/api/databases/{second['id']}/rows/{ann['id']}", headers=get_auth_headers()
        )
        assert res.status_code == 404
        assert res.json() == {"error": "Row not found"}

    async def test_unknown_route(self, client: AsyncClient):
        res = await client.get("/api/nowhere", headers=get_auth_headers())
        assert res.status_code == 404
        assert "error" in res.json()
