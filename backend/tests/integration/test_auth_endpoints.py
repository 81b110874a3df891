"""
Integration tests for registration, login and the current-user endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.security import create_access_token
from marketplace.models.user import UserRole
from marketplace.testing import create_user, get_auth_headers


def _registration(**overrides):
    return {
        "first_name": "Nora",
        "last_name": "Saleh",
        "email": "nora@example.com",
        "password": "supersecret1",
        **overrides,
    }


@pytest.mark.integration
async def test_register_first_user_as_master(client: AsyncClient):
    first = await client.post("/api/v1/auth/register", json=_registration())
    second = await client.post("/api/v1/auth/register", json=_registration(email="second@example.com"))

    assert first.status_code == 201
    assert first.json()["role"] == UserRole.master.value
    assert "hashed_password" not in first.json()
    assert second.json()["role"] == UserRole.user.value


@pytest.mark.integration
async def test_register_duplicate_email_conflicts(client: AsyncClient):
    await client.post("/api/v1/auth/register", json=_registration())
    response = await client.post("/api/v1/auth/register", json=_registration(email="NORA@example.com"))

    assert response.status_code == 409
    assert response.json()["code"] == "email_exists"


@pytest.mark.integration
async def test_login_returns_bearer_token(client: AsyncClient):
    await client.post("/api/v1/auth/register", json=_registration())

    response = await client.post(
        "/api/v1/auth/token",
        data={"username": "nora@example.com", "password": "supersecret1"},
    )
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "nora@example.com"


@pytest.mark.integration
async def test_login_with_wrong_password(client: AsyncClient):
    await client.post("/api/v1/auth/register", json=_registration())

    response = await client.post(
        "/api/v1/auth/token",
        data={"username": "nora@example.com", "password": "nope-nope"},
    )

    assert response.status_code == 400


@pytest.mark.integration
async def test_protected_route_requires_token(client: AsyncClient):
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 401

    response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.integration
async def test_signed_token_with_bad_subject_is_unauthorized(client: AsyncClient):
    token = create_access_token("not-a-user-id")

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.integration
async def test_inactive_user_is_forbidden(client: AsyncClient, session: AsyncSession):
    user = await create_user(session, is_active=False)

    response = await client.get("/api/v1/users/me", headers=get_auth_headers(user))

    assert response.status_code == 403
