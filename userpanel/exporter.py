"""CSV export of user records."""

from __future__ import annotations

import csv
import io
from typing import Iterable

from .models import User

EXPORT_COLUMNS = ("id", "name", "email", "createdAt", "updatedAt")


def export_users_csv(users: Iterable[User]) -> str:
    """Render users as CSV text with a header row.

    Text values are always quoted so the output can be fed straight back into
    the importer.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for user in users:
        writer.writerow(
            (
                user.id,
                user.name,
                user.email,
                user.created_at.isoformat(),
                user.updated_at.isoformat(),
            )
        )
    return buffer.getvalue()


__all__ = ["EXPORT_COLUMNS", "export_users_csv"]
