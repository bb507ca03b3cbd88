"""SQLite-backed persistence for user records."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

from .models import NAME_MAX_LENGTH, User, is_valid_email, normalize_email
from .queries import FilterField, ListQuery, SortDirection, SortField

logger = logging.getLogger("userpanel.database")


class RepositoryError(RuntimeError):
    """Raised when the backing store fails for a reason other than a conflict."""


class DuplicateEmailError(ValueError):
    """Raised when a write collides with an existing live user's email."""


class UserRepository(Protocol):
    def create_user(self, name: str, email: str) -> User: ...

    def find_and_count(self, query: ListQuery) -> Tuple[List[User], int]: ...


_SORT_COLUMNS = {
    SortField.ID: "id",
    SortField.NAME: "unicode_lower(name)",
    SortField.EMAIL: "email",
    SortField.CREATED_AT: "created_at",
}


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "userpanel.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _clean_fields(name: str, email: str) -> Tuple[str, str]:
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise ValueError("Name must not be empty")
    if len(cleaned_name) > NAME_MAX_LENGTH:
        raise ValueError(f"Name must be at most {NAME_MAX_LENGTH} characters")

    cleaned_email = normalize_email(email or "")
    if not cleaned_email:
        raise ValueError("Email must not be empty")
    if not is_valid_email(cleaned_email):
        raise ValueError("Email address is not valid")
    return cleaned_name, cleaned_email


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc).upper()


class Database:
    """Simple wrapper around SQLite for persisting users."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.create_function("unicode_lower", 1, str.lower, deterministic=True)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._transaction() as conn:
                yield conn
        except sqlite3.DatabaseError as exc:
            logger.error("Database read failed: %s", exc)
            raise RepositoryError(str(exc)) from exc

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT
                );

                CREATE UNIQUE INDEX IF NOT EXISTS idx_users_live_email
                    ON users(email) WHERE deleted_at IS NULL;
                CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
                """
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str) -> User:
        """Insert a new user and return it.

        Raises :class:`DuplicateEmailError` when a live user already owns the
        email and :class:`RepositoryError` for any other storage failure.
        """

        cleaned_name, cleaned_email = _clean_fields(name, email)
        now = _current_timestamp()
        stamp = _serialize_datetime(now)

        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (cleaned_name, cleaned_email, stamp, stamp),
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateEmailError("A user with that email already exists") from exc
            raise RepositoryError(str(exc)) from exc
        except sqlite3.DatabaseError as exc:
            raise RepositoryError(str(exc)) from exc

        return User(
            id=int(user_id),
            name=cleaned_name,
            email=cleaned_email,
            created_at=now,
            updated_at=now,
        )

    def update_user(self, user_id: int, *, name: str, email: str) -> Optional[User]:
        """Update a live user's name and email, returning ``None`` if it is missing."""

        cleaned_name, cleaned_email = _clean_fields(name, email)
        stamp = _serialize_datetime(_current_timestamp())

        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE users SET name = ?, email = ?, updated_at = ?
                     WHERE id = ? AND deleted_at IS NULL
                    """,
                    (cleaned_name, cleaned_email, stamp, user_id),
                )
                updated = cursor.rowcount > 0
        except sqlite3.IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateEmailError("A user with that email already exists") from exc
            raise RepositoryError(str(exc)) from exc
        except sqlite3.DatabaseError as exc:
            raise RepositoryError(str(exc)) from exc

        if not updated:
            return None
        return self.get_user(user_id)

    def soft_delete_user(self, user_id: int) -> bool:
        return self.soft_delete_users([user_id]) > 0

    def soft_delete_users(self, user_ids: Iterable[int]) -> int:
        """Mark the given live users as deleted and return how many changed."""

        ids = sorted({int(user_id) for user_id in user_ids})
        if not ids:
            return 0

        placeholders = ", ".join("?" for _ in ids)
        stamp = _serialize_datetime(_current_timestamp())
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE users SET deleted_at = ?, updated_at = ?
                 WHERE deleted_at IS NULL AND id IN ({placeholders})
                """,
                (stamp, stamp, *ids),
            )
            deleted = cursor.rowcount
        logger.info("Soft-deleted %s of %s requested user(s)", deleted, len(ids))
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_user(self, user_id: int, *, include_deleted: bool = False) -> Optional[User]:
        sql = "SELECT * FROM users WHERE id = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        with self._transaction() as conn:
            row = conn.execute(sql, (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? AND deleted_at IS NULL",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        """Return every live user, newest first."""

        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE deleted_at IS NULL ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def recent_users(self, limit: int = 5) -> List[User]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT * FROM users WHERE deleted_at IS NULL
                 ORDER BY created_at DESC, id DESC LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_users(self) -> int:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) FROM users WHERE deleted_at IS NULL").fetchone()
        return int(row[0])

    def find_and_count(self, query: ListQuery) -> Tuple[List[User], int]:
        """Return one page of live users matching ``query`` and the total match count."""

        where, params = self._build_filter(query)
        direction = "ASC" if query.sort_direction is SortDirection.ASC else "DESC"
        order_by = f"{_SORT_COLUMNS[query.sort_field]} {direction}, id {direction}"

        with self._reading() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM users WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM users WHERE {where} ORDER BY {order_by} LIMIT ? OFFSET ?",
                (*params, query.limit, query.offset),
            ).fetchall()

        return [self._row_to_user(row) for row in rows], int(total)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_filter(query: ListQuery) -> Tuple[str, Sequence[object]]:
        clauses = ["deleted_at IS NULL"]
        params: List[object] = []
        if query.has_search:
            needle = query.search.lower()
            if query.filter_field is FilterField.NAME:
                clauses.append("instr(unicode_lower(name), ?) > 0")
                params.append(needle)
            elif query.filter_field is FilterField.EMAIL:
                clauses.append("instr(unicode_lower(email), ?) > 0")
                params.append(needle)
            else:
                clauses.append("(instr(unicode_lower(name), ?) > 0 OR instr(unicode_lower(email), ?) > 0)")
                params.extend([needle, needle])
        return " AND ".join(clauses), params

    def _row_to_user(self, row: sqlite3.Row) -> User:
        deleted_at = row["deleted_at"]
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
            deleted_at=_parse_datetime(str(deleted_at)) if deleted_at else None,
        )


__all__ = [
    "Database",
    "DuplicateEmailError",
    "RepositoryError",
    "UserRepository",
    "resolve_database_path",
]
