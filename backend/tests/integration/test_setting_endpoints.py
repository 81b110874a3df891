"""
Integration tests for the /api/v1/settings endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.models.setting import Setting, SettingCategory, SettingType
from marketplace.models.user import UserRole
from marketplace.services.app_settings import DEFAULT_SETTINGS
from marketplace.testing import create_setting, create_user, get_auth_headers


@pytest.mark.integration
async def test_public_settings_need_no_auth(client: AsyncClient, session: AsyncSession):
    await create_setting(session, key="site_name", value="SkyShot", is_public=True)
    await create_setting(session, key="secret_thing", value="hidden")

    response = await client.get("/api/v1/settings/public")

    assert response.status_code == 200
    assert response.json() == {"site_name": "SkyShot"}


@pytest.mark.integration
async def test_listing_is_master_only(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    admin = await create_user(session, role=UserRole.admin)
    await create_setting(session, category=SettingCategory.payment)
    await create_setting(session, category=SettingCategory.ui)

    denied = await client.get("/api/v1/settings/", headers=get_auth_headers(admin))
    response = await client.get("/api/v1/settings/?category=ui", headers=get_auth_headers(master))

    assert denied.status_code == 403
    body = response.json()
    assert body["results"] == 1
    assert body["categories"] == ["payment", "ui"]


@pytest.mark.integration
async def test_category_listing_hides_private_from_admins(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    admin = await create_user(session, role=UserRole.admin)
    await create_setting(session, key="items_per_page", value=20, type=SettingType.number,
                         category=SettingCategory.ui, is_public=True)
    await create_setting(session, key="theme_secret", category=SettingCategory.ui)

    as_admin = await client.get("/api/v1/settings/category/ui", headers=get_auth_headers(admin))
    as_master = await client.get("/api/v1/settings/category/ui", headers=get_auth_headers(master))

    assert [item["key"] for item in as_admin.json()] == ["items_per_page"]
    assert [item["key"] for item in as_master.json()] == ["items_per_page", "theme_secret"]


@pytest.mark.integration
async def test_master_crud_cycle(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    headers = get_auth_headers(master)
    payload = {
        "key": "Banner_Text",
        "value": "Hello",
        "type": "string",
        "category": "ui",
        "is_public": True,
    }

    created = await client.post("/api/v1/settings/", json=payload, headers=headers)
    duplicate = await client.post("/api/v1/settings/", json=payload, headers=headers)
    fetched = await client.get("/api/v1/settings/banner_text", headers=headers)
    updated = await client.put("/api/v1/settings/banner_text", json={"value": "Welcome"}, headers=headers)
    deleted = await client.delete("/api/v1/settings/banner_text", headers=headers)
    gone = await client.get("/api/v1/settings/banner_text", headers=headers)

    assert created.status_code == 201
    assert created.json()["key"] == "banner_text"
    assert created.json()["last_modified_by_id"] == master.id
    assert duplicate.status_code == 409
    assert fetched.json()["value"] == "Hello"
    assert updated.json()["value"] == "Welcome"
    assert deleted.status_code == 204
    assert gone.status_code == 404


@pytest.mark.integration
async def test_create_rejects_value_of_wrong_type(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)

    response = await client.post(
        "/api/v1/settings/",
        json={"key": "max_things", "value": "many", "type": "number"},
        headers=get_auth_headers(master),
    )

    assert response.status_code == 400


@pytest.mark.integration
async def test_admin_update_respects_security_and_validation(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    await create_setting(session, key="max_login_attempts", value=5, type=SettingType.number,
                         category=SettingCategory.security)
    await create_setting(session, key="commission_rate", value=0.15, type=SettingType.number,
                         category=SettingCategory.payment, validation={"min": 0, "max": 1})
    await create_setting(session, key="locked_value", is_editable=False)
    headers = get_auth_headers(admin)

    security = await client.put("/api/v1/settings/max_login_attempts", json={"value": 3}, headers=headers)
    out_of_range = await client.put("/api/v1/settings/commission_rate", json={"value": 2}, headers=headers)
    locked = await client.put("/api/v1/settings/locked_value", json={"value": "x"}, headers=headers)
    ok = await client.put("/api/v1/settings/commission_rate", json={"value": 0.2}, headers=headers)

    assert security.status_code == 403
    assert out_of_range.status_code == 400
    assert locked.status_code == 400
    assert ok.json()["value"] == 0.2


@pytest.mark.integration
async def test_bulk_update_reports_errors_per_key(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    await create_setting(session, key="featured_items_count", value=8, type=SettingType.number,
                         validation={"min": 1, "max": 20})

    response = await client.put(
        "/api/v1/settings/bulk",
        json={"settings": [{"key": "featured_items_count", "value": 12}, {"key": "nope", "value": 1}]},
        headers=get_auth_headers(master),
    )

    body = response.json()
    assert body["updated"] == ["featured_items_count"]
    assert [error["key"] for error in body["errors"]] == ["nope"]


@pytest.mark.integration
async def test_export_then_import(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    await create_setting(session, key="site_name", value="Old", is_public=True)
    headers = get_auth_headers(master)

    exported = await client.get("/api/v1/settings/export", headers=headers)
    assert exported.json()["count"] == 1
    assert exported.json()["settings"][0]["key"] == "site_name"

    items = [
        {"key": "site_name", "value": "New", "type": "string"},
        {"key": "tagline", "value": "Shoot the sky", "type": "string"},
        {"key": "broken", "value": "x", "type": "number"},
    ]
    kept = await client.post("/api/v1/settings/import", json={"settings": items}, headers=headers)
    overwritten = await client.post(
        "/api/v1/settings/import", json={"settings": items[:1], "overwrite": True}, headers=headers
    )

    assert kept.json()["imported"] == ["tagline"]
    assert kept.json()["totalSkipped"] == 1
    assert kept.json()["totalErrors"] == 1
    assert overwritten.json()["imported"] == ["site_name"]
    site_name = (await session.exec(select(Setting).where(Setting.key == "site_name"))).one()
    assert site_name.value == "New"


@pytest.mark.integration
async def test_initialize_and_reset(client: AsyncClient, session: AsyncSession):
    master = await create_user(session, role=UserRole.master)
    await create_setting(session, key="custom_flag", category=SettingCategory.general)
    headers = get_auth_headers(master)

    initialized = await client.post("/api/v1/settings/initialize", headers=headers)
    again = await client.post("/api/v1/settings/initialize", headers=headers)
    unconfirmed = await client.post("/api/v1/settings/reset", json={}, headers=headers)
    reset = await client.post("/api/v1/settings/reset", json={"confirm": True, "category": "general"}, headers=headers)

    general_defaults = [item for item in DEFAULT_SETTINGS if item["category"] == SettingCategory.general]
    assert initialized.json() == {"count": len(DEFAULT_SETTINGS)}
    assert again.json() == {"count": 0}
    assert unconfirmed.status_code == 400
    assert unconfirmed.json()["code"] == "confirmation_required"
    assert reset.json() == {"count": len(general_defaults)}
    keys = set((await session.exec(select(Setting.key))).all())
    assert "custom_flag" not in keys
    assert len(keys) == len(DEFAULT_SETTINGS)
