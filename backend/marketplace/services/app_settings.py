"""Admin-editable settings stored in the ``settings`` table.

Reads that happen on hot paths (commission rate, auto-approval, page sizes)
go through :class:`SettingsCache`; every write in this module invalidates
the affected keys after the transaction commits.
"""

import asyncio
import logging
import re
import time
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.config import settings as app_config
from marketplace.db.query import ResourceQueryConfig
from marketplace.models.setting import Setting, SettingCategory, SettingType
from marketplace.models.user import User, UserRole
from marketplace.schemas.query import SortField
from marketplace.services import resources

logger = logging.getLogger(__name__)

SETTING_QUERY = ResourceQueryConfig(
    model=Setting,
    searchable_fields=("key", "description"),
    default_limit=50,
    default_sort=(SortField(field="category"), SortField(field="key")),
)

EXPORT_FIELDS = ("key", "value", "type", "category", "description", "is_public", "is_editable", "validation")

DEFAULT_SETTINGS: list[dict[str, Any]] = [
    {
        "key": "site_name",
        "value": "SkyShot",
        "type": SettingType.string,
        "category": SettingCategory.general,
        "description": "Website name",
        "is_public": True,
    },
    {
        "key": "site_description",
        "value": "Professional photography and video marketplace",
        "type": SettingType.string,
        "category": SettingCategory.general,
        "description": "Website description",
        "is_public": True,
    },
    {
        "key": "contact_email",
        "value": "contact@skyshot.com",
        "type": SettingType.string,
        "category": SettingCategory.general,
        "description": "Contact email address",
        "is_public": True,
    },
    {
        "key": "max_file_size",
        "value": 50,
        "type": SettingType.number,
        "category": SettingCategory.upload,
        "description": "Maximum file size in MB",
        "validation": {"min": 1, "max": 500},
    },
    {
        "key": "allowed_file_types",
        "value": ["jpg", "jpeg", "png", "gif", "mp4", "mov", "avi"],
        "type": SettingType.array,
        "category": SettingCategory.upload,
        "description": "Allowed file extensions",
    },
    {
        "key": "auto_approve_uploads",
        "value": False,
        "type": SettingType.boolean,
        "category": SettingCategory.upload,
        "description": "Automatically approve uploads without review",
    },
    {
        "key": "items_per_page",
        "value": 20,
        "type": SettingType.number,
        "category": SettingCategory.ui,
        "description": "Default items per page",
        "is_public": True,
        "validation": {"min": 5, "max": 100},
    },
    {
        "key": "featured_items_count",
        "value": 8,
        "type": SettingType.number,
        "category": SettingCategory.ui,
        "description": "Number of featured items to show",
        "is_public": True,
        "validation": {"min": 1, "max": 20},
    },
    {
        "key": "commission_rate",
        "value": 0.15,
        "type": SettingType.number,
        "category": SettingCategory.payment,
        "description": "Platform commission rate (0-1)",
        "validation": {"min": 0, "max": 1},
    },
    {
        "key": "minimum_payout",
        "value": 50,
        "type": SettingType.number,
        "category": SettingCategory.payment,
        "description": "Minimum amount for payout request",
        "validation": {"min": 1},
    },
    {
        "key": "jwt_expires_in",
        "value": "7d",
        "type": SettingType.string,
        "category": SettingCategory.security,
        "description": "JWT token expiration time",
    },
    {
        "key": "max_login_attempts",
        "value": 5,
        "type": SettingType.number,
        "category": SettingCategory.security,
        "description": "Maximum login attempts before lockout",
        "validation": {"min": 1, "max": 10},
    },
]


class SettingValidationError(ValueError):
    code = "invalid_setting_value"


class SettingLocked(ValueError):
    code = "setting_not_editable"


class SettingExists(ValueError):
    code = "setting_exists"


# ---------------------------------------------------------------------------
# Read-through cache
# ---------------------------------------------------------------------------

_MISSING = object()


class SettingsCache:
    """Process-wide read-through cache of setting values keyed by setting key.

    Entries expire after ``ttl_seconds`` (``0`` disables caching). A read that
    started before an :meth:`invalidate` never stores its stale result.
    """

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, Any]] = {}
        self._generation = 0
        self._lock = asyncio.Lock()

    async def get_value(self, session: AsyncSession, key: str, default: Any = None) -> Any:
        key = normalize_key(key)
        cached = self._lookup(key)
        if cached is not _MISSING:
            return default if cached is None else cached

        generation = self._generation
        result = await session.exec(select(Setting.value).where(Setting.key == key))
        value = result.one_or_none()
        if self.ttl_seconds > 0:
            async with self._lock:
                if generation == self._generation:
                    self._entries[key] = (time.monotonic() + self.ttl_seconds, value)
        return default if value is None else value

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        expires_at, value = entry
        if expires_at < time.monotonic():
            self._entries.pop(key, None)
            return _MISSING
        return value

    def invalidate(self, keys: Iterable[str] | None = None) -> None:
        """Drop ``keys`` (or everything) from the cache."""
        self._generation += 1
        if keys is None:
            self._entries.clear()
            logger.debug("Settings cache cleared")
            return
        dropped = [normalize_key(key) for key in keys]
        for key in dropped:
            self._entries.pop(key, None)
        logger.debug("Settings cache invalidated for %s", dropped)


settings_cache = SettingsCache(app_config.SETTINGS_CACHE_TTL_SECONDS)


def get_settings_cache() -> SettingsCache:
    return settings_cache


async def get_commission_rate(session: AsyncSession, cache: SettingsCache) -> float:
    value = await cache.get_value(session, "commission_rate", app_config.DEFAULT_COMMISSION_RATE)
    return float(value)


async def uploads_auto_approved(session: AsyncSession, cache: SettingsCache) -> bool:
    return bool(await cache.get_value(session, "auto_approve_uploads", False))


async def get_items_per_page(session: AsyncSession, cache: SettingsCache) -> int:
    """Default page size for catalog listings, never above ``MAX_PAGE_SIZE``."""
    value = await cache.get_value(session, "items_per_page", app_config.DEFAULT_PAGE_SIZE)
    return max(1, min(int(value), app_config.MAX_PAGE_SIZE))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def normalize_key(key: str) -> str:
    return key.strip().lower()


def validate_value(setting_type: SettingType | str, value: Any, validation: Mapping[str, Any] | None) -> None:
    """Raise :class:`SettingValidationError` when ``value`` does not fit its type and rules."""
    rules = validation or {}
    kind = SettingType(setting_type)
    if value is None:
        raise SettingValidationError("Setting value is required")

    if kind == SettingType.number:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SettingValidationError("Setting value must be a number")
        if rules.get("min") is not None and value < rules["min"]:
            raise SettingValidationError(f"Setting value is below the minimum of {rules['min']}")
        if rules.get("max") is not None and value > rules["max"]:
            raise SettingValidationError(f"Setting value is above the maximum of {rules['max']}")
    elif kind == SettingType.boolean:
        if not isinstance(value, bool):
            raise SettingValidationError("Setting value must be a boolean")
    elif kind == SettingType.string:
        if not isinstance(value, str):
            raise SettingValidationError("Setting value must be a string")
        pattern = rules.get("pattern")
        if pattern and not re.search(pattern, value):
            raise SettingValidationError("Setting value does not match the required pattern")
        options = rules.get("options")
        if options and value not in options:
            raise SettingValidationError(f"Setting value must be one of: {', '.join(options)}")
    elif kind == SettingType.array:
        if not isinstance(value, list):
            raise SettingValidationError("Setting value must be an array")
    elif kind == SettingType.object:
        if not isinstance(value, dict):
            raise SettingValidationError("Setting value must be an object")


def _ensure_editable(setting: Setting, actor: User) -> None:
    if not setting.is_editable:
        raise SettingLocked(f"Setting '{setting.key}' is not editable")
    if setting.category == SettingCategory.security and actor.role != UserRole.master:
        raise resources.AccessDenied("Only master users can change security settings")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_setting(session: AsyncSession, key: str) -> Setting:
    result = await session.exec(select(Setting).where(Setting.key == normalize_key(key)))
    setting = result.one_or_none()
    if setting is None:
        raise resources.ResourceNotFound(Setting, key)
    return setting


async def public_settings(session: AsyncSession) -> dict[str, Any]:
    result = await session.exec(select(Setting).where(Setting.is_public.is_(True)).order_by(Setting.key))
    return {setting.key: setting.value for setting in result.all()}


async def list_by_category(
    session: AsyncSession,
    category: SettingCategory,
    *,
    include_private: bool,
) -> list[Setting]:
    stmt = select(Setting).where(Setting.category == category.value)
    if not include_private:
        stmt = stmt.where(Setting.is_public.is_(True))
    result = await session.exec(stmt.order_by(Setting.key))
    return list(result.all())


async def list_settings(session: AsyncSession, params: Any) -> dict[str, Any]:
    envelope = await resources.list_resources(session, SETTING_QUERY, params)
    result = await session.exec(select(Setting.category).distinct().order_by(Setting.category))
    envelope["categories"] = list(result.all())
    return envelope


async def export_settings(
    session: AsyncSession,
    *,
    category: SettingCategory | None = None,
    include_private: bool = False,
) -> list[dict[str, Any]]:
    stmt = select(Setting)
    if category is not None:
        stmt = stmt.where(Setting.category == category.value)
    if not include_private:
        stmt = stmt.where(Setting.is_public.is_(True))
    result = await session.exec(stmt.order_by(Setting.category, Setting.key))
    return [{name: getattr(setting, name) for name in EXPORT_FIELDS} for setting in result.all()]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_setting(
    session: AsyncSession,
    cache: SettingsCache,
    *,
    data: Mapping[str, Any],
    actor: User,
) -> Setting:
    key = normalize_key(data["key"])
    existing = await session.exec(select(func.count()).select_from(Setting).where(Setting.key == key))
    if existing.one():
        raise SettingExists(f"Setting '{key}' already exists")
    validate_value(data["type"], data.get("value"), data.get("validation"))
    setting = Setting(**{**data, "key": key, "last_modified_by_id": actor.id})
    session.add(setting)
    await session.commit()
    await session.refresh(setting)
    cache.invalidate([key])
    return setting


async def update_setting(
    session: AsyncSession,
    cache: SettingsCache,
    *,
    key: str,
    changes: Mapping[str, Any],
    actor: User,
) -> Setting:
    setting = await get_setting(session, key)
    _ensure_editable(setting, actor)
    merged_type = changes.get("type", setting.type)
    merged_value = changes.get("value", setting.value)
    merged_validation = changes.get("validation", setting.validation)
    validate_value(merged_type, merged_value, merged_validation)
    resources.apply_changes(setting, {**changes, "last_modified_by_id": actor.id})
    session.add(setting)
    await session.commit()
    await session.refresh(setting)
    cache.invalidate([setting.key])
    logger.info("Setting '%s' updated by user %s", setting.key, actor.id)
    return setting


async def bulk_update(
    session: AsyncSession,
    cache: SettingsCache,
    *,
    items: list[Mapping[str, Any]],
    actor: User,
) -> dict[str, Any]:
    """Update many values; failures are reported per key instead of aborting."""
    updated: list[str] = []
    errors: list[dict[str, str]] = []
    for item in items:
        key = normalize_key(item["key"])
        try:
            setting = await get_setting(session, key)
            _ensure_editable(setting, actor)
            validate_value(setting.type, item.get("value"), setting.validation)
        except (resources.ResourceNotFound, resources.AccessDenied, SettingLocked, SettingValidationError) as exc:
            errors.append({"key": key, "error": str(exc)})
            continue
        resources.apply_changes(setting, {"value": item.get("value"), "last_modified_by_id": actor.id})
        session.add(setting)
        updated.append(key)
    await session.commit()
    cache.invalidate(updated)
    return {"updated": updated, "errors": errors}


async def delete_setting(session: AsyncSession, cache: SettingsCache, *, key: str) -> None:
    setting = await get_setting(session, key)
    if not setting.is_editable:
        raise SettingLocked(f"Setting '{setting.key}' cannot be deleted")
    await session.delete(setting)
    await session.commit()
    cache.invalidate([setting.key])


async def initialize_defaults(session: AsyncSession, cache: SettingsCache) -> int:
    """Insert default settings that are missing; existing values are kept."""
    result = await session.exec(select(Setting.key))
    existing = set(result.all())
    created = 0
    for default in DEFAULT_SETTINGS:
        if default["key"] in existing:
            continue
        session.add(Setting(**default))
        created += 1
    if created:
        await session.commit()
        cache.invalidate()
        logger.info("Initialized %s default settings", created)
    return created


async def import_settings(
    session: AsyncSession,
    cache: SettingsCache,
    *,
    items: list[Mapping[str, Any]],
    overwrite: bool,
    actor: User,
) -> dict[str, Any]:
    imported: list[str] = []
    skipped: list[dict[str, str]] = []
    errors: list[dict[str, str]] = []
    for item in items:
        key = normalize_key(item["key"])
        try:
            validate_value(item["type"], item.get("value"), item.get("validation"))
        except SettingValidationError as exc:
            errors.append({"key": key, "error": str(exc)})
            continue
        result = await session.exec(select(Setting).where(Setting.key == key))
        existing = result.one_or_none()
        if existing is not None and not overwrite:
            skipped.append({"key": key, "reason": "Setting already exists"})
            continue
        values = {**item, "key": key, "last_modified_by_id": actor.id}
        if existing is not None:
            resources.apply_changes(existing, values)
            session.add(existing)
        else:
            session.add(Setting(**values))
        imported.append(key)
    await session.commit()
    cache.invalidate(imported)
    return {
        "imported": imported,
        "skipped": skipped,
        "errors": errors,
        "totalImported": len(imported),
        "totalSkipped": len(skipped),
        "totalErrors": len(errors),
    }


async def reset_to_defaults(
    session: AsyncSession,
    cache: SettingsCache,
    *,
    category: SettingCategory | None = None,
) -> int:
    """Delete settings (optionally one category) and recreate the defaults."""
    stmt = delete(Setting)
    if category is not None:
        stmt = stmt.where(Setting.category == category.value)
    await session.exec(stmt)
    await session.commit()
    cache.invalidate()
    return await initialize_defaults(session, cache)

