"""
Integration tests for the /api/v1/users endpoints: staff listing through the
query composer, search, role management and bulk actions.
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.models.user import UserRole
from marketplace.testing import create_user, get_auth_headers


@pytest.mark.integration
async def test_list_users_requires_staff(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.get("/api/v1/users/", headers=get_auth_headers(user))

    assert response.status_code == 403


@pytest.mark.integration
async def test_list_users_envelope_hides_password(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    for _ in range(3):
        await create_user(session)

    response = await client.get("/api/v1/users/?limit=2&page=1", headers=get_auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["results"] == 2
    assert body["paginationResults"] == {"currentPage": 1, "limit": 2, "numberOfPages": 2, "nextPage": 2}
    assert all("hashed_password" not in row for row in body["data"])


@pytest.mark.integration
async def test_list_users_filter_by_role(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    await create_user(session, role=UserRole.partner)
    await create_user(session)

    response = await client.get("/api/v1/users/?role=partner", headers=get_auth_headers(admin))

    assert response.status_code == 200
    assert [row["role"] for row in response.json()["data"]] == ["partner"]


@pytest.mark.integration
async def test_list_users_invalid_query_is_bad_request(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    headers = get_auth_headers(admin)

    bad_operator = await client.get("/api/v1/users/?total_uploads[near]=1", headers=headers)
    bad_sort = await client.get("/api/v1/users/?sort=hashed_password", headers=headers)
    bad_page = await client.get("/api/v1/users/?page=0", headers=headers)

    assert bad_operator.status_code == 400
    assert bad_operator.json()["code"] == "invalid_query_parameter"
    assert bad_sort.status_code == 400
    assert bad_sort.json()["code"] == "invalid_sort_field"
    assert bad_page.status_code == 400


@pytest.mark.integration
async def test_search_users(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin, first_name="Admin")
    await create_user(session, first_name="Layla", email="layla@example.com")

    response = await client.get("/api/v1/users/search?keyword=layla", headers=get_auth_headers(admin))
    empty = await client.get("/api/v1/users/search?keyword=", headers=get_auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["search"] == {
        "keyword": "layla",
        "fields": ["first_name", "last_name", "email"],
        "totalResults": 1,
    }
    assert empty.status_code == 400
    assert empty.json()["code"] == "empty_search_keyword"


@pytest.mark.integration
async def test_change_role_is_master_only(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    admin = await create_user(session, role=UserRole.admin)
    user = await create_user(session)

    forbidden = await client.patch(
        f"/api/v1/users/{user.id}/role", json={"role": "partner"}, headers=get_auth_headers(admin)
    )
    changed = await client.patch(
        f"/api/v1/users/{user.id}/role", json={"role": "partner"}, headers=get_auth_headers(master)
    )
    unchanged = await client.patch(
        f"/api/v1/users/{user.id}/role", json={"role": "partner"}, headers=get_auth_headers(master)
    )

    assert forbidden.status_code == 403
    assert changed.status_code == 200
    assert changed.json()["role"] == "partner"
    assert unchanged.status_code == 400
    assert unchanged.json()["code"] == "role_unchanged"


@pytest.mark.integration
async def test_deactivate_and_delete(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    master = await create_user(session, role=UserRole.master)
    user = await create_user(session)
    headers = get_auth_headers(admin)

    deactivated = await client.post(f"/api/v1/users/{user.id}/deactivate", headers=headers)
    master_delete = await client.delete(f"/api/v1/users/{master.id}", headers=headers)
    deleted = await client.delete(f"/api/v1/users/{user.id}", headers=headers)
    missing = await client.get(f"/api/v1/users/{user.id}", headers=headers)

    assert deactivated.json()["is_active"] is False
    assert master_delete.status_code == 403
    assert deleted.status_code == 204
    assert missing.status_code == 404


@pytest.mark.integration
async def test_user_stats(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)

    response = await client.get(f"/api/v1/users/{admin.id}/stats", headers=get_auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == admin.id
    assert body["earnings"]["totalTransactions"] == 0
