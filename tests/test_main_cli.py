from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from main import _parse_args, main


def _env(monkeypatch, tmp_path: Path) -> Path:
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.setenv("USERPANEL_DB_PATH", str(db_path))
    monkeypatch.setenv("USERPANEL_CONFIG", str(tmp_path / "absent.yaml"))
    return db_path


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 5000


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "0.0.0.0", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "0.0.0.0"
    assert args.port == 8080


def test_global_config_precedes_subcommand() -> None:
    args = _parse_args(["--config", "panel.yaml", "import-csv", "users.csv"])
    assert args.command == "import-csv"
    assert args.config == "panel.yaml"
    assert args.path == "users.csv"


def test_import_and_export_round_through_cli(monkeypatch, tmp_path, capsys) -> None:
    _env(monkeypatch, tmp_path)
    source = tmp_path / "users.csv"
    source.write_text("name,email\nAlice,alice@example.com\nBroken,nope\n", encoding="utf-8")

    assert main(["import-csv", str(source)]) == 0
    output = capsys.readouterr().out
    assert "1 imported, 0 skipped, 1 error(s)" in output
    assert "Line 3: invalid email format" in output

    assert main(["list-users"]) == 0
    assert "alice@example.com" in capsys.readouterr().out

    target = tmp_path / "export.csv"
    assert main(["export-csv", str(target)]) == 0
    assert target.read_text(encoding="utf-8").splitlines()[0] == '"id","name","email","createdAt","updatedAt"'


def test_import_reports_structural_failure(monkeypatch, tmp_path, capsys) -> None:
    _env(monkeypatch, tmp_path)
    source = tmp_path / "users.csv"
    source.write_text("foo,bar\nAlice,alice@example.com\n", encoding="utf-8")

    assert main(["import-csv", str(source)]) == 1
    assert "missing-columns" in capsys.readouterr().err


def test_import_reports_unreadable_file(monkeypatch, tmp_path, capsys) -> None:
    _env(monkeypatch, tmp_path)

    assert main(["import-csv", str(tmp_path / "nope.csv")]) == 1
    assert "Failed to read" in capsys.readouterr().err
