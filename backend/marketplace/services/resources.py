"""Generic CRUD building blocks shared by the resource routers.

Each function is parameterized by a model (or a :class:`ResourceQueryConfig`
for listing) so routers only add their own business rules on top.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, func
from sqlalchemy import select as sa_select
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.query import (
    ComposedQuery,
    ResourceQueryConfig,
    build_list_query,
    build_search_query,
    fetch_page,
)

RECENT_ACTIVITY_DAYS = 30


class ResourceNotFound(LookupError):
    code = "not_found"

    def __init__(self, model: Any, resource_id: Any) -> None:
        self.resource = getattr(model, "__name__", str(model))
        self.resource_id = resource_id
        super().__init__(f"{self.resource} not found")


class EmptySearchKeyword(ValueError):
    code = "empty_search_keyword"


class InvalidToggleField(ValueError):
    code = "invalid_toggle_field"


class AccessDenied(PermissionError):
    """The acting user may not touch this resource."""
    code = "forbidden"


class TransitionError(ValueError):
    """A business rule rejected the requested state change."""

    def __init__(self, message: str, code: str = "invalid_transition") -> None:
        super().__init__(message)
        self.code = code


def build_envelope(composed: ComposedQuery, data: list[Any]) -> dict[str, Any]:
    return {
        "results": len(data),
        "pagination_results": composed.pagination,
        "data": data,
    }


async def list_resources(
    session: AsyncSession,
    config: ResourceQueryConfig,
    params: Any,
    *,
    scope: Sequence[Any] = (),
) -> dict[str, Any]:
    composed = await build_list_query(session, params, config, scope=scope)
    data = await fetch_page(session, composed)
    return build_envelope(composed, data)


async def search_resources(
    session: AsyncSession,
    config: ResourceQueryConfig,
    params: Any,
    *,
    scope: Sequence[Any] = (),
    search_fields: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Keyword search over ``search_fields`` (defaults to the config's fields).

    Raises :class:`EmptySearchKeyword` when ``keyword`` is missing or blank.
    """
    keyword = params.get("keyword") if hasattr(params, "get") else None
    if not keyword or not str(keyword).strip():
        raise EmptySearchKeyword("Search keyword is required")

    fields = tuple(search_fields or config.searchable_fields)
    composed = await build_search_query(session, params, fields, config, scope=scope)
    data = await fetch_page(session, composed)
    envelope = build_envelope(composed, data)
    envelope["search"] = {
        "keyword": composed.spec.keyword,
        "fields": list(fields),
        "total_results": composed.total_count,
    }
    return envelope


async def get_resource(session: AsyncSession, model: Any, resource_id: int) -> Any:
    instance = await session.get(model, resource_id)
    if instance is None:
        raise ResourceNotFound(model, resource_id)
    return instance


async def create_resource(session: AsyncSession, model: Any, data: Mapping[str, Any]) -> Any:
    instance = model(**data)
    session.add(instance)
    await session.commit()
    await session.refresh(instance)
    return instance


def apply_changes(instance: Any, changes: Mapping[str, Any]) -> Any:
    for field_name, value in changes.items():
        setattr(instance, field_name, value)
    if hasattr(instance, "updated_at"):
        instance.updated_at = datetime.now(timezone.utc)
    return instance


async def update_resource(
    session: AsyncSession,
    model: Any,
    resource_id: int,
    changes: Mapping[str, Any],
) -> Any:
    instance = await get_resource(session, model, resource_id)
    apply_changes(instance, changes)
    session.add(instance)
    await session.commit()
    await session.refresh(instance)
    return instance


async def delete_resource(session: AsyncSession, model: Any, resource_id: int) -> None:
    instance = await get_resource(session, model, resource_id)
    await session.delete(instance)
    await session.commit()


async def toggle_field(session: AsyncSession, model: Any, resource_id: int, field_name: str) -> Any:
    """Flip a boolean column and return the updated row."""
    column = model.__table__.c.get(field_name)
    if column is None or not isinstance(column.type, Boolean):
        raise InvalidToggleField(f"'{field_name}' is not a boolean field")
    instance = await get_resource(session, model, resource_id)
    apply_changes(instance, {field_name: not getattr(instance, field_name)})
    session.add(instance)
    await session.commit()
    await session.refresh(instance)
    return instance


async def resource_stats(
    session: AsyncSession,
    model: Any,
    *,
    aggregates: Mapping[str, Any] | None = None,
    scope: Sequence[Any] = (),
) -> dict[str, Any]:
    """Totals, per-category counts and per-day creations over the last 30 days.

    ``aggregates`` maps output names to SQL aggregate expressions evaluated
    over the same (scoped) rows as the total.
    """
    table = model.__table__
    labelled = [func.count().label("total_documents")]
    labelled.extend(expr.label(name) for name, expr in (aggregates or {}).items())
    overview_stmt = sa_select(*labelled).select_from(table)
    if scope:
        overview_stmt = overview_stmt.where(*scope)
    overview_row = (await session.exec(overview_stmt)).one()
    overview = {key: _plain_number(value) for key, value in overview_row._mapping.items()}

    categories: list[dict[str, Any]] = []
    if "category" in table.c:
        category = table.c.category
        category_stmt = (
            select(category, func.count().label("count"))
            .select_from(table)
            .group_by(category)
            .order_by(func.count().desc())
        )
        if scope:
            category_stmt = category_stmt.where(*scope)
        for row in (await session.exec(category_stmt)).all():
            categories.append({"category": row[0], "count": row[1]})

    since = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
    day = func.date(table.c.created_at)
    activity_stmt = (
        select(day.label("day"), func.count().label("count"))
        .select_from(table)
        .where(table.c.created_at >= since, *scope)
        .group_by(day)
        .order_by(day)
    )
    recent_activity = [
        {"date": str(row[0]), "count": row[1]} for row in (await session.exec(activity_stmt)).all()
    ]

    return {
        "overview": overview,
        "categories": categories,
        "recentActivity": recent_activity,
        "generatedAt": datetime.now(timezone.utc),
    }


def _plain_number(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, (float, Decimal)):
        return round(float(value), 2)
    return value
