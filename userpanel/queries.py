"""Translate raw listing parameters into a bounded user list query."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_PAGE = 1_000_000
SEARCH_MAX_LENGTH = 100


class FilterField(str, Enum):
    NAME = "name"
    EMAIL = "email"


class SortField(str, Enum):
    ID = "id"
    NAME = "name"
    EMAIL = "email"
    CREATED_AT = "createdAt"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


_SORTABLE = {
    SortField.ID.value: SortField.ID,
    SortField.NAME.value: SortField.NAME,
    SortField.EMAIL.value: SortField.EMAIL,
}


@dataclass(frozen=True)
class ListQuery:
    """Sanitised description of one page of the user listing."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    search: str = ""
    filter_field: Optional[FilterField] = None
    sort_field: SortField = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def has_search(self) -> bool:
        return bool(self.search)


def _parse_int(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def build_user_list_query(params: Mapping[str, object]) -> ListQuery:
    """Build a :class:`ListQuery` from request parameters.

    Every input is clamped or defaulted rather than rejected, so this never
    raises for any mapping of parameters.
    """

    page = min(max(_parse_int(params.get("page"), DEFAULT_PAGE), 1), MAX_PAGE)
    limit = min(max(_parse_int(params.get("limit"), DEFAULT_LIMIT), 1), MAX_LIMIT)

    raw_search = params.get("search")
    search = "" if raw_search is None else str(raw_search).strip()[:SEARCH_MAX_LENGTH]

    raw_filter = params.get("filter")
    filter_field: Optional[FilterField] = None
    if raw_filter == FilterField.NAME.value:
        filter_field = FilterField.NAME
    elif raw_filter == FilterField.EMAIL.value:
        filter_field = FilterField.EMAIL

    sort_field = _SORTABLE.get(str(params.get("sort")), SortField.CREATED_AT)

    raw_direction = params.get("direction")
    if raw_direction is not None and str(raw_direction).lower() == SortDirection.ASC.value:
        sort_direction = SortDirection.ASC
    else:
        sort_direction = SortDirection.DESC

    return ListQuery(
        page=page,
        limit=limit,
        search=search,
        filter_field=filter_field,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


def total_pages(count: int, limit: int) -> int:
    if count <= 0:
        return 0
    return math.ceil(count / limit)


__all__ = [
    "FilterField",
    "ListQuery",
    "SortDirection",
    "SortField",
    "build_user_list_query",
    "total_pages",
]
