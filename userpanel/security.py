"""Shared-credential authentication for the admin panel."""
from __future__ import annotations

import secrets


class AdminCredentials:
    """Single username/password pair checked with constant-time comparisons."""

    def __init__(self, username: str, password: str) -> None:
        username = username.strip()
        if not username or not password:
            raise ValueError("Both an admin username and password must be provided")
        self._username = username
        self._password = password

    @property
    def username(self) -> str:
        return self._username

    def verify(self, username: str, password: str) -> bool:
        user_ok = secrets.compare_digest(
            username.strip().encode("utf-8"), self._username.encode("utf-8")
        )
        password_ok = secrets.compare_digest(
            password.encode("utf-8"), self._password.encode("utf-8")
        )
        return user_ok and password_ok


__all__ = ["AdminCredentials"]
