"""Resource query composition for list and search endpoints.

Three pieces, applied in this order for every request:

- parse_query_params: turns raw query-string pairs into a :class:`QuerySpec`
- paginate: pure page metadata from ``(page, limit, total_count)``
- compose / build_list_query / build_search_query: translate a QuerySpec into
  a filtered, searched, sorted, projected and paginated SELECT plus a COUNT
  over the same predicate

Errors are raised, never logged or swallowed here; the API layer maps them
to HTTP responses.
"""

from __future__ import annotations

import json
import math
import re
import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import JSON, Select, String, and_, asc, cast, desc, func, or_
from sqlalchemy import select as sa_select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.schemas.query import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RESERVED_KEYS,
    CompareFilter,
    EqualsFilter,
    FilterOp,
    InFilter,
    PaginationResult,
    QuerySpec,
    SortDir,
    SortField,
)


class InvalidQuery(ValueError):
    """Base class for client errors in a list or search query."""
    code = "invalid_query"


class InvalidQueryParameter(InvalidQuery):
    code = "invalid_query_parameter"


class InvalidSortField(InvalidQuery):
    code = "invalid_sort_field"


class StoreUnavailable(RuntimeError):
    """The database could not answer the count or fetch round trip."""
    code = "store_unavailable"


_BRACKET_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)\[(?P<op>[A-Za-z_]+)\]$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def parse_query_params(
    params: Any,
    *,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int | None = MAX_PAGE_SIZE,
) -> QuerySpec:
    """Build a :class:`QuerySpec` from raw query parameters.

    ``params`` may be a Starlette ``QueryParams``, a mapping (values may be
    lists, or mappings of operator to value), or a sequence of pairs.

    Reserved keys never become filters. ``field[op]=value`` with an unknown
    operator or malformed brackets raises :class:`InvalidQueryParameter`
    rather than degrading to an equality filter, as does the same
    ``field[op]`` given twice.
    """
    page: int | None = None
    limit: int | None = None
    keyword: str | None = None
    sort_tokens: list[str] = []
    field_tokens: list[str] | None = None
    plain: dict[str, list[str]] = {}
    operators: dict[tuple[str, FilterOp], str] = {}

    for key, value in _iter_pairs(params):
        if key == "page":
            page = _parse_positive_int("page", value)
        elif key == "limit":
            limit = _parse_positive_int("limit", value)
        elif key == "sort":
            sort_tokens.extend(_split_csv(value))
        elif key == "fields":
            field_tokens = (field_tokens or []) + _split_csv(value)
        elif key == "keyword":
            keyword = value.strip()
        elif "[" in key or "]" in key:
            name, op = _parse_bracket_key(key)
            if (name, op) in operators:
                raise InvalidQueryParameter(f"'{key}' is given more than once")
            operators[(name, op)] = value
        else:
            plain.setdefault(key, []).append(value)

    filters: list[EqualsFilter | CompareFilter | InFilter] = []
    for name, values in plain.items():
        if len(values) == 1:
            filters.append(EqualsFilter(field=name, value=values[0]))
        else:
            filters.append(InFilter(field=name, values=values))
    for (name, op), value in operators.items():
        if op == FilterOp.in_:
            members = _split_csv(value)
            if not members:
                raise InvalidQueryParameter(f"'{name}[in]' needs at least one value")
            filters.append(InFilter(field=name, values=members))
        else:
            filters.append(CompareFilter(field=name, op=op, value=value))

    effective_limit = limit or default_limit
    if max_limit is not None:
        effective_limit = min(effective_limit, max_limit)

    return QuerySpec(
        filters=filters,
        sort=[_parse_sort_token(token) for token in sort_tokens],
        fields=field_tokens or None,
        keyword=keyword,
        page=page or 1,
        limit=effective_limit,
    )


def _iter_pairs(params: Any) -> Iterator[tuple[str, str]]:
    if params is None:
        return
    if hasattr(params, "multi_items"):
        items: Iterable[tuple[str, Any]] = params.multi_items()
    elif isinstance(params, Mapping):
        items = params.items()
    else:
        items = params

    for key, value in items:
        if isinstance(value, Mapping):
            for op, nested in value.items():
                yield f"{key}[{op}]", str(nested)
        elif isinstance(value, (list, tuple)):
            for item in value:
                yield key, str(item)
        else:
            yield key, str(value)


def _parse_bracket_key(key: str) -> tuple[str, FilterOp]:
    match = _BRACKET_KEY.match(key)
    if match is None:
        raise InvalidQueryParameter(f"Malformed query parameter '{key}'")
    name = match.group("field")
    if name in RESERVED_KEYS:
        raise InvalidQueryParameter(f"'{name}' does not accept operators")
    try:
        op = FilterOp(match.group("op"))
    except ValueError as exc:
        raise InvalidQueryParameter(f"Unsupported operator '{match.group('op')}' in '{key}'") from exc
    return name, op


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise InvalidQueryParameter(f"'{name}' must be a positive integer") from exc
    if value < 1:
        raise InvalidQueryParameter(f"'{name}' must be a positive integer")
    return value


def _parse_sort_token(token: str) -> SortField:
    if token.startswith("-"):
        name = token[1:].strip()
        direction = SortDir.desc
    else:
        name = token.lstrip("+").strip()
        direction = SortDir.asc
    if not name:
        raise InvalidSortField(f"Empty sort field in '{token}'")
    return SortField(field=name, dir=direction)


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def paginate(page: int, limit: int, total_count: int) -> PaginationResult:
    """Page metadata for ``page`` of ``limit`` records out of ``total_count``.

    ``previous_page`` is set whenever ``page > 1`` even when ``page`` lies past
    the last page, so it may point at an empty page.
    """
    if page < 1 or limit < 1 or total_count < 0:
        raise ValueError("page and limit must be positive and total_count non-negative")
    return PaginationResult(
        current_page=page,
        limit=limit,
        number_of_pages=math.ceil(total_count / limit),
        next_page=page + 1 if page * limit < total_count else None,
        previous_page=page - 1 if page > 1 else None,
    )


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

DEFAULT_SORT = (SortField(field="created_at", dir=SortDir.desc),)


@dataclass(frozen=True)
class ResourceQueryConfig:
    """Per-resource knobs for list and search queries."""

    model: Any
    searchable_fields: tuple[str, ...] = ()
    default_limit: int = DEFAULT_PAGE_SIZE
    max_limit: int = MAX_PAGE_SIZE
    default_sort: tuple[SortField, ...] = DEFAULT_SORT
    hidden_fields: frozenset[str] = frozenset()

    @property
    def table(self):
        return self.model.__table__

    def column(self, name: str):
        """Resolve a snake_case or camelCase field name, or ``None``."""
        columns = self.table.c
        for candidate in (name, _CAMEL_BOUNDARY.sub("_", name).lower()):
            if candidate in columns and candidate not in self.hidden_fields:
                return columns[candidate]
        return None

    def visible_columns(self) -> list:
        return [col for col in self.table.c if col.name not in self.hidden_fields]


@dataclass
class ComposedQuery:
    spec: QuerySpec
    statement: Select
    count_statement: Any
    total_count: int | None = None
    pagination: PaginationResult | None = None
    search_fields: tuple[str, ...] = field(default_factory=tuple)


def compose(
    config: ResourceQueryConfig,
    spec: QuerySpec,
    *,
    scope: Sequence[Any] = (),
    search_fields: Sequence[str] | None = None,
) -> ComposedQuery:
    """Translate ``spec`` into a data statement and a matching count statement.

    ``scope`` holds extra predicates imposed by the caller (ownership,
    visibility); they are AND-ed with the filters and the keyword search, and
    the count uses exactly the same predicate.
    """
    predicates = list(scope)
    predicates.extend(_filter_clause(config, item) for item in spec.filters)

    fields_for_search = tuple(search_fields if search_fields is not None else config.searchable_fields)
    if spec.keyword and spec.keyword.strip():
        predicates.append(_search_clause(config, spec.keyword.strip(), fields_for_search))

    where = and_(*predicates) if predicates else None

    statement = sa_select(*_projection(config, spec.fields))
    count_statement = select(func.count()).select_from(config.table)
    if where is not None:
        statement = statement.where(where)
        count_statement = count_statement.where(where)

    statement = statement.order_by(*_orderings(config, spec.sort))
    statement = statement.offset(spec.skip).limit(spec.limit)

    return ComposedQuery(
        spec=spec,
        statement=statement,
        count_statement=count_statement,
        search_fields=fields_for_search,
    )


def _filter_clause(config: ResourceQueryConfig, item: EqualsFilter | CompareFilter | InFilter):
    column = config.column(item.field)
    if column is None:
        raise InvalidQueryParameter(f"Unknown filter field '{item.field}'")

    if isinstance(column.type, JSON):
        if isinstance(item, EqualsFilter):
            return _json_contains(column, item.value)
        if isinstance(item, InFilter):
            return or_(*(_json_contains(column, value) for value in item.values))
        raise InvalidQueryParameter(f"'{item.field}' does not support range operators")

    if isinstance(item, EqualsFilter):
        return column == _coerce(column, item.field, item.value)
    if isinstance(item, InFilter):
        return column.in_([_coerce(column, item.field, value) for value in item.values])

    value = _coerce(column, item.field, item.value)
    if item.op == FilterOp.gt:
        return column > value
    if item.op == FilterOp.gte:
        return column >= value
    if item.op == FilterOp.lt:
        return column < value
    return column <= value


def _coerce(column, name: str, raw: str) -> Any:
    """Convert a query-string value to the column's Python type."""
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return raw

    try:
        if python_type is bool:
            lowered = raw.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ValueError(raw)
        if python_type is int:
            return int(raw)
        if python_type is float:
            return float(raw)
        if python_type is Decimal:
            return Decimal(raw)
        if python_type is datetime:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if python_type is date:
            return date.fromisoformat(raw)
        if python_type is uuid.UUID:
            return uuid.UUID(raw)
    except (ValueError, InvalidOperation) as exc:
        raise InvalidQueryParameter(
            f"Invalid value '{raw}' for field '{name}' (expected {python_type.__name__})"
        ) from exc
    return raw


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _json_contains(column, value: str):
    # Matches one element of a JSON array stored as text.
    needle = _escape_like(json.dumps(value, ensure_ascii=False))
    return cast(column, String).like(f"%{needle}%", escape="\\")


def _search_clause(config: ResourceQueryConfig, keyword: str, fields: Sequence[str]):
    if not fields:
        raise InvalidQueryParameter("Keyword search is not supported for this resource")
    pattern = f"%{_escape_like(keyword)}%"
    clauses = []
    for name in fields:
        column = config.column(name)
        if column is None:
            raise InvalidQueryParameter(f"Unknown search field '{name}'")
        target = cast(column, String) if isinstance(column.type, JSON) else column
        clauses.append(target.ilike(pattern, escape="\\"))
    return or_(*clauses)


def _orderings(config: ResourceQueryConfig, sort: Sequence[SortField]) -> list:
    keys = list(sort) or list(config.default_sort)
    primary_keys = list(config.table.primary_key.columns)
    orderings = []
    seen: set[str] = set()
    for item in keys:
        column = config.column(item.field)
        if column is None:
            raise InvalidSortField(f"Cannot sort by '{item.field}'")
        if column.name in seen:
            continue
        seen.add(column.name)
        # Case-insensitive ordering for text columns.
        target = func.lower(column) if _is_text(column) else column
        order = desc(target) if item.dir == SortDir.desc else asc(target)
        orderings.append(order.nulls_last())
    for pk in primary_keys:
        if pk.name not in seen:
            orderings.append(asc(pk))
    return orderings


def _is_text(column) -> bool:
    return isinstance(column.type, String)


def _projection(config: ResourceQueryConfig, fields: Sequence[str] | None) -> list:
    if fields is None:
        return config.visible_columns()
    columns = list(config.table.primary_key.columns)
    names = {col.name for col in columns}
    for name in fields:
        column = config.column(name)
        if column is None:
            raise InvalidQueryParameter(f"Unknown field '{name}' in fields")
        if column.name not in names:
            names.add(column.name)
            columns.append(column)
    return columns


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

async def build_list_query(
    session: AsyncSession,
    params: Any,
    config: ResourceQueryConfig,
    *,
    scope: Sequence[Any] = (),
) -> ComposedQuery:
    """Parse, compose and count a list request. The data query is not run yet."""
    spec = parse_query_params(params, default_limit=config.default_limit, max_limit=config.max_limit)
    composed = compose(config, spec, scope=scope)
    return await _count(session, composed)


async def build_search_query(
    session: AsyncSession,
    params: Any,
    search_fields: Sequence[str],
    config: ResourceQueryConfig,
    *,
    scope: Sequence[Any] = (),
) -> ComposedQuery:
    """Like :func:`build_list_query` but matches the keyword on ``search_fields``."""
    spec = parse_query_params(params, default_limit=config.default_limit, max_limit=config.max_limit)
    composed = compose(config, spec, scope=scope, search_fields=search_fields)
    return await _count(session, composed)


async def fetch_page(session: AsyncSession, composed: ComposedQuery) -> list[dict[str, Any]]:
    """Run the data statement and return one dict per row."""
    result = await _execute(session, composed.statement)
    return [dict(row._mapping) for row in result.all()]


async def _count(session: AsyncSession, composed: ComposedQuery) -> ComposedQuery:
    result = await _execute(session, composed.count_statement)
    composed.total_count = result.one()
    composed.pagination = paginate(composed.spec.page, composed.spec.limit, composed.total_count)
    return composed


async def _execute(session: AsyncSession, statement):
    try:
        return await session.exec(statement)
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailable("The data store is unavailable") from exc
