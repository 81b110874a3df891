"""Tests for query-string parsing, pagination and query composition."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.query import (
    InvalidQueryParameter,
    InvalidSortField,
    ResourceQueryConfig,
    build_list_query,
    build_search_query,
    fetch_page,
    paginate,
    parse_query_params,
)
from marketplace.models.upload import Upload, UploadStatus
from marketplace.models.user import User
from marketplace.schemas.query import CompareFilter, EqualsFilter, FilterOp, InFilter, SortDir
from marketplace.testing import create_upload, create_user

UPLOADS = ResourceQueryConfig(model=Upload, searchable_fields=("title", "description", "tags"), default_limit=10)
USERS = ResourceQueryConfig(model=User, searchable_fields=("email",), hidden_fields=frozenset({"hashed_password"}))


# ---------------------------------------------------------------------------
# parse_query_params
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_reserved_keys_never_become_filters():
    spec = parse_query_params(
        {"page": "2", "limit": "5", "sort": "-price", "fields": "title", "keyword": " cat ", "status": "approved"}
    )

    assert spec.page == 2
    assert spec.limit == 5
    assert spec.keyword == "cat"
    assert spec.fields == ["title"]
    assert [(item.field, item.dir) for item in spec.sort] == [("price", SortDir.desc)]
    assert spec.filters == [EqualsFilter(field="status", value="approved")]


@pytest.mark.unit
def test_bracket_operators_become_comparisons():
    spec = parse_query_params({"price[gte]": "10", "price[lt]": "50", "status[in]": "pending,approved"})

    compares = {(item.op, item.value) for item in spec.filters if isinstance(item, CompareFilter)}
    assert compares == {(FilterOp.gte, "10"), (FilterOp.lt, "50")}
    in_filters = [item for item in spec.filters if isinstance(item, InFilter)]
    assert in_filters == [InFilter(field="status", values=["pending", "approved"])]


@pytest.mark.unit
def test_nested_mapping_operators_are_accepted():
    spec = parse_query_params({"price": {"gt": 5}})

    assert spec.filters == [CompareFilter(field="price", op=FilterOp.gt, value="5")]


@pytest.mark.unit
def test_repeated_plain_key_becomes_membership_filter():
    spec = parse_query_params([("category", "video"), ("category", "graphics")])

    assert spec.filters == [InFilter(field="category", values=["video", "graphics"])]


@pytest.mark.unit
@pytest.mark.parametrize("key", ["price[gte", "price]", "price[foo]", "price[gte][lt]", "page[gt]"])
def test_malformed_or_unknown_operators_fail_closed(key):
    with pytest.raises(InvalidQueryParameter):
        parse_query_params({key: "1"})


@pytest.mark.unit
def test_empty_membership_list_is_rejected():
    with pytest.raises(InvalidQueryParameter):
        parse_query_params({"status[in]": " , "})


@pytest.mark.unit
def test_repeated_operator_key_is_rejected():
    with pytest.raises(InvalidQueryParameter):
        parse_query_params([("price[gte]", "1"), ("price[gte]", "2")])


@pytest.mark.unit
@pytest.mark.parametrize("value", ["0", "-1", "abc", "1.5"])
def test_page_and_limit_must_be_positive_integers(value):
    with pytest.raises(InvalidQueryParameter):
        parse_query_params({"page": value})
    with pytest.raises(InvalidQueryParameter):
        parse_query_params({"limit": value})


@pytest.mark.unit
def test_limit_defaults_and_is_capped():
    assert parse_query_params({}, default_limit=7).limit == 7
    assert parse_query_params({"limit": "1000"}, max_limit=100).limit == 100
    assert parse_query_params({}).page == 1


@pytest.mark.unit
def test_empty_fields_means_full_projection():
    assert parse_query_params({"fields": ""}).fields is None


@pytest.mark.unit
def test_bare_minus_sort_is_rejected():
    with pytest.raises(InvalidSortField):
        parse_query_params({"sort": "-"})


# ---------------------------------------------------------------------------
# paginate
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_paginate_middle_page():
    result = paginate(2, 10, 25)

    assert result.current_page == 2
    assert result.number_of_pages == 3
    assert result.next_page == 3
    assert result.previous_page == 1


@pytest.mark.unit
def test_paginate_empty_collection():
    result = paginate(1, 10, 0)

    assert result.number_of_pages == 0
    assert result.next_page is None
    assert result.previous_page is None
    assert result.model_dump(by_alias=True) == {"currentPage": 1, "limit": 10, "numberOfPages": 0}


@pytest.mark.unit
def test_paginate_past_the_end_keeps_previous_link():
    result = paginate(5, 10, 25)

    assert result.next_page is None
    assert result.previous_page == 4


@pytest.mark.unit
def test_paginate_exact_boundary_has_no_next_page():
    assert paginate(2, 10, 20).next_page is None


# ---------------------------------------------------------------------------
# Composition against a database
# ---------------------------------------------------------------------------

async def _seed(session: AsyncSession):
    owner = await create_user(session)
    other = await create_user(session)
    await create_upload(session, owner, title="banana", price=5, tags=["fruit", "yellow"])
    await create_upload(session, owner, title="Apple", price=15, tags=["fruit"])
    await create_upload(session, owner, title="cherry", price=25, tags=["red"], status=UploadStatus.pending)
    await create_upload(session, other, title="50% off poster", price=40, tags=["sale"])
    await create_upload(session, other, title="500 prints", price=60, tags=["print"])
    return owner, other


@pytest.mark.integration
async def test_count_matches_filters_and_scope(session: AsyncSession):
    owner, _ = await _seed(session)

    composed = await build_list_query(
        session,
        {"price[gte]": "10", "limit": "1"},
        UPLOADS,
        scope=(Upload.user_id == owner.id,),
    )
    rows = await fetch_page(session, composed)

    assert composed.total_count == 2
    assert len(rows) == 1
    assert composed.pagination.number_of_pages == 2
    assert composed.pagination.next_page == 2


@pytest.mark.integration
async def test_string_sort_is_case_insensitive(session: AsyncSession):
    owner, _ = await _seed(session)

    composed = await build_list_query(
        session, {"sort": "title"}, UPLOADS, scope=(Upload.user_id == owner.id,)
    )
    rows = await fetch_page(session, composed)

    assert [row["title"] for row in rows] == ["Apple", "banana", "cherry"]


@pytest.mark.integration
async def test_numeric_descending_sort(session: AsyncSession):
    await _seed(session)

    composed = await build_list_query(session, {"sort": "-price"}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert [row["price"] for row in rows] == [60, 40, 25, 15, 5]


@pytest.mark.integration
async def test_projection_keeps_primary_key(session: AsyncSession):
    await _seed(session)

    composed = await build_list_query(session, {"fields": "title,price"}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert set(rows[0]) == {"id", "title", "price"}


@pytest.mark.integration
async def test_camel_case_field_names_resolve(session: AsyncSession):
    owner, _ = await _seed(session)

    composed = await build_list_query(session, {"userId": str(owner.id), "fields": "userId"}, UPLOADS)

    assert composed.total_count == 3


@pytest.mark.integration
async def test_membership_and_json_list_filters(session: AsyncSession):
    await _seed(session)

    by_status = await build_list_query(session, {"status[in]": "pending,rejected"}, UPLOADS)
    by_tag = await build_list_query(session, {"tags": "fruit"}, UPLOADS)

    assert by_status.total_count == 1
    assert by_tag.total_count == 2


@pytest.mark.integration
async def test_keyword_search_escapes_wildcards(session: AsyncSession):
    await _seed(session)

    composed = await build_search_query(session, {"keyword": "50%"}, ("title",), UPLOADS)
    rows = await fetch_page(session, composed)

    assert composed.total_count == 1
    assert rows[0]["title"] == "50% off poster"


@pytest.mark.integration
async def test_keyword_search_combines_with_filters(session: AsyncSession):
    await _seed(session)

    composed = await build_search_query(
        session, {"keyword": "FRUIT", "price[lt]": "10"}, ("title", "tags"), UPLOADS
    )

    assert composed.total_count == 1


@pytest.mark.integration
async def test_invalid_value_for_typed_column(session: AsyncSession):
    with pytest.raises(InvalidQueryParameter):
        await build_list_query(session, {"price[gt]": "cheap"}, UPLOADS)


@pytest.mark.integration
async def test_unknown_filter_and_sort_fields_are_rejected(session: AsyncSession):
    with pytest.raises(InvalidQueryParameter):
        await build_list_query(session, {"colour": "red"}, UPLOADS)
    with pytest.raises(InvalidSortField):
        await build_list_query(session, {"sort": "colour"}, UPLOADS)


@pytest.mark.integration
async def test_hidden_fields_cannot_be_projected_filtered_or_sorted(session: AsyncSession):
    await create_user(session)

    composed = await build_list_query(session, {}, USERS)
    rows = await fetch_page(session, composed)
    assert "hashed_password" not in rows[0]

    with pytest.raises(InvalidQueryParameter):
        await build_list_query(session, {"fields": "hashed_password"}, USERS)
    with pytest.raises(InvalidQueryParameter):
        await build_list_query(session, {"hashed_password": "x"}, USERS)
    with pytest.raises(InvalidSortField):
        await build_list_query(session, {"sort": "hashed_password"}, USERS)


@pytest.mark.integration
async def test_keyword_on_resource_without_search_fields(session: AsyncSession):
    config = ResourceQueryConfig(model=Upload)

    with pytest.raises(InvalidQueryParameter):
        await build_list_query(session, {"keyword": "apple"}, config)


@pytest.mark.integration
async def test_keyword_search_matches_non_ascii_tags(session: AsyncSession):
    owner = await create_user(session)
    await create_upload(session, owner, title="Sunset over Riyadh", tags=["غروب", "desert"])
    await create_upload(session, owner, title="Night skyline", tags=["city"])

    searched = await build_search_query(session, {"keyword": "غروب"}, ("title", "tags"), UPLOADS)
    filtered = await build_list_query(session, {"tags": "غروب"}, UPLOADS)

    assert searched.total_count == 1
    assert filtered.total_count == 1


@pytest.mark.integration
async def test_multi_key_sort_breaks_ties_in_order(session: AsyncSession):
    owner = await create_user(session)
    early = datetime(2026, 1, 1, tzinfo=timezone.utc)
    late = early + timedelta(days=1)
    latest = early + timedelta(days=2)
    await create_upload(session, owner, title="b", created_at=late)
    await create_upload(session, owner, title="c", created_at=early)
    await create_upload(session, owner, title="A", created_at=late)
    await create_upload(session, owner, title="d", created_at=latest)

    composed = await build_list_query(session, {"sort": "-createdAt,title"}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert [row["title"] for row in rows] == ["d", "A", "b", "c"]


@pytest.mark.integration
async def test_range_bounds_are_inclusive(session: AsyncSession):
    owner = await create_user(session)
    for price in (5, 10, 30, 50, 60):
        await create_upload(session, owner, price=price)

    composed = await build_list_query(session, {"price[gte]": "10", "price[lte]": "50", "sort": "price"}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert composed.total_count == 3
    assert [row["price"] for row in rows] == [10, 30, 50]


@pytest.mark.integration
async def test_last_partial_page(session: AsyncSession):
    owner = await create_user(session)
    for _ in range(45):
        await create_upload(session, owner, commit=False)
    await session.commit()

    composed = await build_list_query(session, {"page": "3", "limit": "20"}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert composed.spec.skip == 40
    assert composed.total_count == 45
    assert len(rows) == 5
    assert composed.pagination.model_dump(by_alias=True) == {
        "currentPage": 3,
        "limit": 20,
        "numberOfPages": 3,
        "previousPage": 2,
    }


@pytest.mark.integration
async def test_default_listing_is_newest_first(session: AsyncSession):
    owner = await create_user(session)
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    for offset, title in ((0, "oldest"), (2, "newest"), (1, "middle")):
        await create_upload(session, owner, title=title, created_at=start + timedelta(hours=offset))

    composed = await build_list_query(session, {}, UPLOADS)
    rows = await fetch_page(session, composed)

    assert [row["title"] for row in rows] == ["newest", "middle", "oldest"]
