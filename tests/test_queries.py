from __future__ import annotations

import pytest

from userpanel.queries import (
    MAX_PAGE,
    FilterField,
    ListQuery,
    SortDirection,
    SortField,
    build_user_list_query,
    total_pages,
)


def test_defaults_when_parameters_are_absent() -> None:
    query = build_user_list_query({})

    assert query == ListQuery()
    assert query.page == 1
    assert query.limit == 10
    assert query.search == ""
    assert query.filter_field is None
    assert query.sort_field is SortField.CREATED_AT
    assert query.sort_direction is SortDirection.DESC
    assert query.offset == 0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("500", 100), ("100", 100), ("0", 1), ("-4", 1), ("25", 25), ("abc", 10), ("", 10)],
)
def test_limit_is_clamped(raw: str, expected: int) -> None:
    assert build_user_list_query({"limit": raw}).limit == expected


@pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("-3", 1), ("7", 7), ("two", 1)])
def test_page_is_floored_at_one(raw: str, expected: int) -> None:
    assert build_user_list_query({"page": raw}).page == expected


def test_offset_follows_page_and_limit() -> None:
    query = build_user_list_query({"page": "3", "limit": "20"})
    assert query.offset == 40


def test_unknown_sort_falls_back_to_created_at() -> None:
    assert build_user_list_query({"sort": "dropcolumn"}).sort_field is SortField.CREATED_AT
    assert build_user_list_query({"sort": "name"}).sort_field is SortField.NAME
    assert build_user_list_query({"sort": "id"}).sort_field is SortField.ID
    assert build_user_list_query({"sort": "email"}).sort_field is SortField.EMAIL


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("asc", SortDirection.ASC),
        ("ASC", SortDirection.ASC),
        ("Asc", SortDirection.ASC),
        ("DESC", SortDirection.DESC),
        ("desc", SortDirection.DESC),
        ("sideways", SortDirection.DESC),
    ],
)
def test_direction_is_case_insensitive(raw: str, expected: SortDirection) -> None:
    assert build_user_list_query({"direction": raw}).sort_direction is expected


def test_filter_accepts_only_known_fields() -> None:
    assert build_user_list_query({"filter": "name"}).filter_field is FilterField.NAME
    assert build_user_list_query({"filter": "email"}).filter_field is FilterField.EMAIL
    assert build_user_list_query({"filter": "Name"}).filter_field is None
    assert build_user_list_query({"filter": "password"}).filter_field is None


def test_search_is_trimmed_and_truncated() -> None:
    search = "a" * 150
    query = build_user_list_query({"search": f"  {search}  "})

    assert query.search == "a" * 100
    assert build_user_list_query({"search": "   "}).has_search is False
    assert build_user_list_query({"search": 42}).search == "42"


def test_builder_is_pure() -> None:
    params = {"page": "2", "limit": "5", "search": "bob", "filter": "email", "sort": "name", "direction": "asc"}
    assert build_user_list_query(params) == build_user_list_query(params)
    assert params["page"] == "2"


@pytest.mark.parametrize(("count", "limit", "expected"), [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2)])
def test_total_pages(count: int, limit: int, expected: int) -> None:
    assert total_pages(count, limit) == expected


def test_page_is_capped_so_offset_stays_in_range() -> None:
    query = build_user_list_query({"page": "99999999999999999999", "limit": "100"})

    assert query.page == MAX_PAGE
    assert query.offset < 2**63
