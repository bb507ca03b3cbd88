"""Configuration management for the user administration panel."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_PROXY_TIMEOUT = 10.0


def _as_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"0", "false", "no", "off"}


def _as_int(value: object, default: int, *, name: str) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid integer value {value!r} for {name}") from exc


def _as_float(value: object, default: float, *, name: str) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid number {value!r} for {name}") from exc


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the panel."""

    database_path: Path
    session_secret: Optional[str] = None
    admin_username: str = "admin"
    admin_password: Optional[str] = None
    secure_cookies: bool = False
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    proxy_timeout: float = DEFAULT_PROXY_TIMEOUT

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_db = _optional_str(data.get("database_path"))
        if raw_db is None:
            database_path = resolve_database_path(None)
        else:
            candidate = Path(raw_db).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)

        return Settings(
            database_path=database_path,
            session_secret=_optional_str(data.get("session_secret")),
            admin_username=_optional_str(data.get("admin_username")) or "admin",
            admin_password=_optional_str(data.get("admin_password")),
            secure_cookies=_as_bool(data.get("secure_cookies"), False),
            max_upload_bytes=_as_int(
                data.get("max_upload_bytes"), DEFAULT_MAX_UPLOAD_BYTES, name="max_upload_bytes"
            ),
            proxy_timeout=_as_float(
                data.get("proxy_timeout"), DEFAULT_PROXY_TIMEOUT, name="proxy_timeout"
            ),
        )

    def require_web_credentials(self) -> None:
        if not self.session_secret:
            raise ValueError("USERPANEL_SESSION_SECRET must be configured to serve the web panel")
        if not self.admin_password:
            raise ValueError("USERPANEL_ADMIN_PASSWORD must be configured to serve the web panel")


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "userpanel.yaml").resolve(strict=False)


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERPANEL_CONFIG"))

    data: Dict[str, object] = {}
    if path.is_file():
        data = _read_config_file(path)
    settings = Settings.from_dict(data, base_path=path.parent)

    overrides: Dict[str, object] = {}
    if env.get("USERPANEL_DB_PATH"):
        overrides["database_path"] = resolve_database_path(env["USERPANEL_DB_PATH"])
    if env.get("USERPANEL_SESSION_SECRET"):
        overrides["session_secret"] = env["USERPANEL_SESSION_SECRET"]
    if env.get("USERPANEL_ADMIN_USERNAME"):
        overrides["admin_username"] = env["USERPANEL_ADMIN_USERNAME"].strip()
    if env.get("USERPANEL_ADMIN_PASSWORD"):
        overrides["admin_password"] = env["USERPANEL_ADMIN_PASSWORD"]
    if "USERPANEL_SESSION_SECURE" in env:
        overrides["secure_cookies"] = _as_bool(env["USERPANEL_SESSION_SECURE"], False)
    if env.get("USERPANEL_MAX_UPLOAD_BYTES"):
        overrides["max_upload_bytes"] = _as_int(
            env["USERPANEL_MAX_UPLOAD_BYTES"], DEFAULT_MAX_UPLOAD_BYTES, name="USERPANEL_MAX_UPLOAD_BYTES"
        )
    if env.get("USERPANEL_PROXY_TIMEOUT"):
        overrides["proxy_timeout"] = _as_float(
            env["USERPANEL_PROXY_TIMEOUT"], DEFAULT_PROXY_TIMEOUT, name="USERPANEL_PROXY_TIMEOUT"
        )

    return replace(settings, **overrides) if overrides else settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
