"""Shared query schemas for filtering, sorting, projection, and pagination."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

from marketplace.core.config import settings

MAX_PAGE_SIZE = settings.MAX_PAGE_SIZE
DEFAULT_PAGE_SIZE = settings.DEFAULT_PAGE_SIZE

# Query-string keys that drive pagination, sorting, projection and search.
# They are never turned into filters.
RESERVED_KEYS = frozenset({"page", "sort", "limit", "fields", "keyword"})


class FilterOp(str, Enum):
    """Operator tokens accepted in ``field[op]=value`` parameters."""
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    in_ = "in"


COMPARISON_OPS = frozenset({FilterOp.gt, FilterOp.gte, FilterOp.lt, FilterOp.lte})


class SortDir(str, Enum):
    asc = "asc"
    desc = "desc"


class EqualsFilter(BaseModel):
    """``field = value``"""
    kind: Literal["eq"] = "eq"
    field: str
    value: str


class CompareFilter(BaseModel):
    """``field <op> value`` for one of gt/gte/lt/lte."""
    kind: Literal["compare"] = "compare"
    field: str
    op: FilterOp
    value: str

    @field_validator("op")
    @classmethod
    def _comparison_only(cls, value: FilterOp) -> FilterOp:
        if value not in COMPARISON_OPS:
            raise ValueError("compare filters accept gt, gte, lt or lte")
        return value


class InFilter(BaseModel):
    """``field IN (values...)``"""
    kind: Literal["in"] = "in"
    field: str
    values: list[str] = Field(min_length=1)


Filter = Annotated[Union[EqualsFilter, CompareFilter, InFilter], Field(discriminator="kind")]


class SortField(BaseModel):
    field: str
    dir: SortDir = SortDir.asc


class QuerySpec(BaseModel):
    """Structured form of a list or search request, built once per request.

    ``fields`` of ``None`` means the full projection (hidden columns are
    always excluded). ``keyword`` is carried verbatim; callers decide whether
    a blank keyword is acceptable.
    """
    filters: list[Filter] = Field(default_factory=list)
    sort: list[SortField] = Field(default_factory=list)
    fields: list[str] | None = None
    keyword: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class PaginationResult(BaseModel):
    """Page position metadata. ``nextPage``/``previousPage`` are omitted when absent."""
    model_config = ConfigDict(populate_by_name=True)

    current_page: int = Field(alias="currentPage")
    limit: int
    number_of_pages: int = Field(alias="numberOfPages")
    next_page: int | None = Field(default=None, alias="nextPage")
    previous_page: int | None = Field(default=None, alias="previousPage")

    @model_serializer(mode="wrap")
    def _drop_absent_links(self, handler):
        data = handler(self)
        for key in ("next_page", "nextPage", "previous_page", "previousPage"):
            if key in data and data[key] is None:
                del data[key]
        return data


T = TypeVar("T")


class ListEnvelope(BaseModel, Generic[T]):
    """Wire envelope shared by every list endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    results: int
    pagination_results: PaginationResult = Field(alias="paginationResults")
    data: list[T]


class SearchMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keyword: str
    fields: list[str]
    total_results: int = Field(alias="totalResults")


class SearchEnvelope(ListEnvelope[T], Generic[T]):
    search: SearchMeta


Record = dict[str, Any]
