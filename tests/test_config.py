from pathlib import Path

import pytest

from userpanel.config import (
    DEFAULT_MAX_UPLOAD_BYTES,
    Settings,
    load_settings,
    resolve_config_path,
)


def test_defaults_without_file_or_environment(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml", environ={})

    assert settings.admin_username == "admin"
    assert settings.admin_password is None
    assert settings.session_secret is None
    assert settings.secure_cookies is False
    assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert settings.database_path.name == "userpanel.sqlite3"


def test_yaml_file_is_loaded_relative_to_its_directory(tmp_path):
    config = tmp_path / "userpanel.yaml"
    config.write_text(
        "\n".join(
            [
                "database_path: data/panel.sqlite3",
                "session_secret: from-file",
                "admin_username: root",
                "admin_password: file-password",
                "secure_cookies: true",
                "max_upload_bytes: 1024",
                "proxy_timeout: 2.5",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "data" / "panel.sqlite3").resolve()
    assert settings.session_secret == "from-file"
    assert settings.admin_username == "root"
    assert settings.admin_password == "file-password"
    assert settings.secure_cookies is True
    assert settings.max_upload_bytes == 1024
    assert settings.proxy_timeout == 2.5


def test_environment_overrides_file_values(tmp_path):
    config = tmp_path / "userpanel.yaml"
    config.write_text("session_secret: from-file\nadmin_password: file-password\n", encoding="utf-8")

    settings = load_settings(
        config,
        environ={
            "USERPANEL_DB_PATH": str(tmp_path / "env.sqlite3"),
            "USERPANEL_SESSION_SECRET": "from-env",
            "USERPANEL_ADMIN_USERNAME": " operator ",
            "USERPANEL_SESSION_SECURE": "off",
            "USERPANEL_MAX_UPLOAD_BYTES": "2048",
        },
    )

    assert settings.database_path == (tmp_path / "env.sqlite3").resolve()
    assert settings.session_secret == "from-env"
    assert settings.admin_username == "operator"
    assert settings.admin_password == "file-password"
    assert settings.secure_cookies is False
    assert settings.max_upload_bytes == 2048


def test_config_path_comes_from_environment(tmp_path):
    config = tmp_path / "custom.yaml"
    config.write_text("admin_username: custom\n", encoding="utf-8")

    settings = load_settings(environ={"USERPANEL_CONFIG": str(config)})

    assert resolve_config_path(str(config)) == config.resolve()
    assert settings.admin_username == "custom"


def test_invalid_values_are_reported(tmp_path):
    with pytest.raises(ValueError):
        load_settings(tmp_path / "missing.yaml", environ={"USERPANEL_MAX_UPLOAD_BYTES": "lots"})

    config = tmp_path / "list.yaml"
    config.write_text("- one\n- two\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config, environ={})


def test_require_web_credentials():
    base = Settings(database_path=Path("panel.sqlite3"))
    with pytest.raises(ValueError):
        base.require_web_credentials()

    with pytest.raises(ValueError):
        Settings(database_path=Path("panel.sqlite3"), session_secret="s").require_web_credentials()

    Settings(
        database_path=Path("panel.sqlite3"),
        session_secret="s",
        admin_password="p",
    ).require_web_credentials()
