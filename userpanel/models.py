"""Domain models for the user administration panel."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

NAME_MAX_LENGTH = 100

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value: str) -> str:
    """Return the canonical (trimmed, lower-case) form of an email address."""

    return value.strip().lower()


def is_valid_email(value: str) -> bool:
    return EMAIL_PATTERN.match(value) is not None


@dataclass(frozen=True)
class User:
    """Represents a user record stored in the panel database."""

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "deletedAt": self.deleted_at.isoformat() if self.deleted_at else None,
        }


__all__ = [
    "EMAIL_PATTERN",
    "NAME_MAX_LENGTH",
    "User",
    "is_valid_email",
    "normalize_email",
]
