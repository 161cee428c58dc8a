"""
User endpoint tests: creating and listing users, and the user detail with
the articles the viewer is allowed to see.
"""
import pytest
from httpx import AsyncClient

from conftest import as_user, create_article, create_user


@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={
        "name": "Ada Lovelace",
        "email": "ada@example.com",
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["name"] == "Ada Lovelace"
    assert user["email"] == "ada@example.com"
    assert user["role"] == "user"
    assert "id" in user
    assert "created_at" in user


@pytest.mark.asyncio
async def test_create_admin(async_client: AsyncClient):
    admin = await create_user(async_client, "Root", role="admin")
    assert admin["role"] == "admin"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"name": "", "email": "empty@example.com"},
    {"name": "No Email"},
    {"name": "Bad Email", "email": "not-an-email"},
    {"name": "Bad Role", "email": "role@example.com", "role": "superuser"},
])
async def test_create_user_validation(async_client: AsyncClient, payload):
    resp = await async_client.post("/api/v1/users", json=payload)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_email_conflicts(async_client: AsyncClient):
    await create_user(async_client, "Twin")
    resp = await async_client.post("/api/v1/users", json={
        "name": "Other Twin",
        "email": "twin@example.com",
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_list_users(async_client: AsyncClient):
    for name in ("Alice", "Bob"):
        await create_user(async_client, name)
    resp = await async_client.get("/api/v1/users")
    assert resp.status_code == 200
    assert [u["name"] for u in resp.json()] == ["Alice", "Bob"]


@pytest.mark.asyncio
async def test_get_user_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_user_detail_hides_drafts_from_others(async_client: AsyncClient):
    author = await create_user(async_client, "Writer")
    reader = await create_user(async_client, "Visitor")
    admin = await create_user(async_client, "Boss", role="admin")
    await create_article(async_client, author, name="Out now")
    await create_article(async_client, author, name="Not yet", is_published=False)

    url = f"/api/v1/users/{author['id']}"

    resp = await async_client.get(url)
    assert resp.status_code == 200
    assert [a["slug"] for a in resp.json()["articles"]] == ["out-now"]

    resp = await async_client.get(url, headers=as_user(reader))
    assert [a["slug"] for a in resp.json()["articles"]] == ["out-now"]

    for viewer in (author, admin):
        resp = await async_client.get(url, headers=as_user(viewer))
        assert {a["slug"] for a in resp.json()["articles"]} == {"out-now", "not-yet"}


@pytest.mark.asyncio
async def test_unknown_viewer_is_rejected(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users", headers={"X-User-Id": "4242"})
    # Listing users does not resolve the viewer; the detail route does.
    assert resp.status_code == 200
    user = await create_user(async_client, "Target")
    resp = await async_client.get(f"/api/v1/users/{user['id']}", headers={"X-User-Id": "4242"})
    assert resp.status_code == 401
