"""Core utilities for the user administration panel."""

from __future__ import annotations

from typing import Any

from .database import Database, DuplicateEmailError, RepositoryError, resolve_database_path
from .importer import ImportStatus, ImportSummary, import_users_from_text
from .queries import ListQuery, build_user_list_query


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the admin panel web application."""

    from .web import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "DuplicateEmailError",
    "ImportStatus",
    "ImportSummary",
    "ListQuery",
    "RepositoryError",
    "build_user_list_query",
    "create_app",
    "import_users_from_text",
    "resolve_database_path",
]
