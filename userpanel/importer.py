"""CSV import of user records.

The pipeline is split into three layers:

* :func:`tokenize_csv_line` turns one raw line into fields,
* :func:`validate_row` decides whether a tokenized row is acceptable,
* :class:`UserImporter` drives both over a whole file and persists accepted
  rows through a repository, one row at a time.

Every data line produces exactly one :class:`ImportOutcome`, so a failing row
never interrupts the rest of the file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Union

from .database import DuplicateEmailError, RepositoryError, UserRepository
from .models import NAME_MAX_LENGTH, is_valid_email, normalize_email

logger = logging.getLogger("userpanel.importer")

MAX_DISPLAYED_REASONS = 10


class ImportStatus(str, Enum):
    EMPTY_FILE = "empty-file"
    INSUFFICIENT_DATA = "insufficient-data"
    MISSING_COLUMNS = "missing-columns"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial-success"
    NO_NEW_USERS = "no-new-users"


class OutcomeKind(str, Enum):
    IMPORTED = "imported"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    ERROR = "error"


@dataclass(frozen=True)
class ImportOutcome:
    line_number: int
    kind: OutcomeKind
    reason: Optional[str] = None

    def describe(self) -> str:
        return f"Line {self.line_number}: {self.reason or self.kind.value}"


@dataclass
class ImportSummary:
    """Aggregate counts for one processed file."""

    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    reasons: List[str] = field(default_factory=list)
    status: ImportStatus = ImportStatus.NO_NEW_USERS

    def record(self, outcome: ImportOutcome) -> None:
        if outcome.kind is OutcomeKind.IMPORTED:
            self.imported_count += 1
            return
        if outcome.kind is OutcomeKind.SKIPPED_DUPLICATE:
            self.skipped_count += 1
        else:
            self.error_count += 1
        self.reasons.append(outcome.describe())

    def finalize(self) -> "ImportSummary":
        if self.imported_count > 0:
            self.status = ImportStatus.SUCCESS
        elif self.error_count > 0:
            self.status = ImportStatus.PARTIAL_SUCCESS
        else:
            self.status = ImportStatus.NO_NEW_USERS
        return self

    @property
    def displayed_reasons(self) -> List[str]:
        return self.reasons[:MAX_DISPLAYED_REASONS]


@dataclass(frozen=True)
class RowAccepted:
    name: str
    email: str


@dataclass(frozen=True)
class RowRejected:
    reason: str


RowResult = Union[RowAccepted, RowRejected]


def tokenize_csv_line(line: str) -> List[str]:
    """Split a single CSV line into fields.

    Double quotes toggle quoting and ``""`` inside a quoted field yields a
    literal quote. An unterminated quote simply runs to the end of the line.
    """

    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    index = 0
    length = len(line)

    while index < length:
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < length and line[index + 1] == '"':
                current.append('"')
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1

    fields.append("".join(current))
    return fields


def validate_row(fields: Sequence[str], name_index: int, email_index: int) -> RowResult:
    """Check a tokenized data row; first failing rule wins."""

    if len(fields) <= max(name_index, email_index):
        return RowRejected("insufficient columns")

    name = fields[name_index].strip()
    email = fields[email_index].strip()
    if not name or not email:
        return RowRejected("missing name or email")

    if not is_valid_email(email):
        return RowRejected("invalid email format")

    if len(name) > NAME_MAX_LENGTH:
        return RowRejected("name too long")

    return RowAccepted(name=name, email=normalize_email(email))


class UserImporter:
    """Import users from CSV text into a repository."""

    def __init__(self, repository: UserRepository) -> None:
        self._repository = repository

    def run(self, text: str) -> Union[ImportSummary, ImportStatus]:
        """Import ``text`` and return a summary, or a status for unusable files."""

        if not text or not text.strip():
            logger.info("Import rejected: empty file")
            return ImportStatus.EMPTY_FILE

        numbered = [
            (number, raw.strip())
            for number, raw in enumerate(text.split("\n"), start=1)
            if raw.strip()
        ]
        logger.info("Processing CSV with %s non-blank line(s)", len(numbered))
        if len(numbered) < 2:
            logger.info("Import rejected: insufficient data (%s line(s))", len(numbered))
            return ImportStatus.INSUFFICIENT_DATA

        headers = [column.strip().lower() for column in tokenize_csv_line(numbered[0][1])]
        logger.info("Headers found: %s", ", ".join(headers))
        if "name" not in headers or "email" not in headers:
            logger.info("Import rejected: required columns 'name' and 'email' not found")
            return ImportStatus.MISSING_COLUMNS

        name_index = headers.index("name")
        email_index = headers.index("email")

        summary = ImportSummary()
        for line_number, line in numbered[1:]:
            summary.record(self._import_line(line_number, line, name_index, email_index))
        summary.finalize()

        logger.info(
            "Import summary: %s imported, %s skipped, %s errors",
            summary.imported_count,
            summary.skipped_count,
            summary.error_count,
        )
        if summary.reasons:
            logger.info("Import issues (first %s): %s", MAX_DISPLAYED_REASONS, summary.displayed_reasons)
        return summary

    def _import_line(
        self, line_number: int, line: str, name_index: int, email_index: int
    ) -> ImportOutcome:
        try:
            fields = tokenize_csv_line(line)
        except Exception as exc:  # pragma: no cover
            logger.warning("Parse error in line %s: %s", line_number, exc)
            return ImportOutcome(line_number, OutcomeKind.ERROR, f"parse error - {exc}")

        result = validate_row(fields, name_index, email_index)
        if isinstance(result, RowRejected):
            logger.info("Rejected line %s: %s", line_number, result.reason)
            return ImportOutcome(line_number, OutcomeKind.ERROR, result.reason)

        try:
            user = self._repository.create_user(result.name, result.email)
        except DuplicateEmailError:
            logger.info("Duplicate user skipped on line %s: %s", line_number, result.email)
            return ImportOutcome(line_number, OutcomeKind.SKIPPED_DUPLICATE, "duplicate user")
        except (RepositoryError, ValueError) as exc:
            logger.warning("Database error for line %s: %s", line_number, exc)
            return ImportOutcome(line_number, OutcomeKind.ERROR, str(exc))
        except Exception as exc:
            logger.warning("Unexpected error storing line %s: %s", line_number, exc)
            return ImportOutcome(line_number, OutcomeKind.ERROR, str(exc) or exc.__class__.__name__)

        logger.debug("Created user %s on line %s", user.id, line_number)
        return ImportOutcome(line_number, OutcomeKind.IMPORTED)


def import_users_from_text(
    text: str, repository: UserRepository
) -> Union[ImportSummary, ImportStatus]:
    return UserImporter(repository).run(text)


__all__ = [
    "ImportOutcome",
    "ImportStatus",
    "ImportSummary",
    "MAX_DISPLAYED_REASONS",
    "OutcomeKind",
    "RowAccepted",
    "RowRejected",
    "UserImporter",
    "import_users_from_text",
    "tokenize_csv_line",
    "validate_row",
]
