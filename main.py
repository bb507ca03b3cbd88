"""Command-line interface for the user administration panel."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from userpanel.config import Settings, load_settings
from userpanel.database import Database
from userpanel.exporter import export_users_csv
from userpanel.importer import ImportStatus, import_users_from_text

logger = logging.getLogger("userpanel.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User administration panel utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: USERPANEL_CONFIG or config/userpanel.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the user database")
    subparsers.add_parser("list-users", help="Print every live user")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP admin panel")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the panel")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port for the HTTP panel (default: 5000)",
    )

    import_parser = subparsers.add_parser("import-csv", help="Import users from a CSV file")
    import_parser.add_argument("path", help="CSV file with 'name' and 'email' columns")

    export_parser = subparsers.add_parser("export-csv", help="Export users to a CSV file")
    export_parser.add_argument("path", help="Destination file ('-' for stdout)")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "import-csv", "export-csv"}

    # Global options may precede the subcommand; serve is implied when none is given.
    leading: list[str] = []
    rest = list(args_list)
    while rest and rest[0] == "--config" and len(rest) >= 2:
        leading.extend(rest[:2])
        rest = rest[2:]

    if not rest:
        rest = ["serve"]
    else:
        first = rest[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*leading, *rest])
        if first not in known_commands:
            if any(flag in rest for flag in ("-h", "--help")):
                return parser.parse_args([*leading, *rest])
            rest = ["serve", *rest]

    return parser.parse_args([*leading, *rest])


def _open_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str, port: int) -> None:
    from userpanel.web import create_app
    import uvicorn

    logger.info("Starting admin panel on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {created}")


def _import_csv(database: Database, path: Path) -> int:
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        print(f"Failed to read {path}: {exc}", file=sys.stderr)
        return 1

    result = import_users_from_text(text, database)
    if isinstance(result, ImportStatus):
        print(f"Import aborted: {result.value}", file=sys.stderr)
        return 1

    print(
        f"Import {result.status.value}: {result.imported_count} imported, "
        f"{result.skipped_count} skipped, {result.error_count} error(s)"
    )
    for reason in result.displayed_reasons:
        print(f"  {reason}")
    return 0 if result.status is ImportStatus.SUCCESS else 1


def _export_csv(database: Database, destination: str) -> int:
    payload = export_users_csv(database.list_users())
    if destination == "-":
        sys.stdout.write(payload)
        return 0
    try:
        Path(destination).write_text(payload, encoding="utf-8")
    except OSError as exc:
        print(f"Failed to write {destination}: {exc}", file=sys.stderr)
        return 1
    print(f"Exported users to {destination}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)
    database = _open_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "import-csv":
        return _import_csv(database, Path(args.path))
    elif args.command == "export-csv":
        return _export_csv(database, args.path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
