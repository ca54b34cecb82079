from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from opos.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class SyncSettings:
    api_base_url: str = "http://localhost:3000/api"
    sync_interval: float = 30.0
    probe_interval: float = 15.0
    http_timeout: float = 10.0
    db_path: Optional[Path] = None


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "OfflinePOS") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "pos.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number of seconds. Received: {raw}") from e
    if value <= 0:
        raise ValidationError(f"{name} must be > 0. Received: {raw}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> SyncSettings:
    env = os.environ if env is None else env
    defaults = SyncSettings()
    db_override = env.get("OPOS_DB_PATH", "").strip()
    return SyncSettings(
        api_base_url=env.get("OPOS_API_BASE_URL", "").strip() or defaults.api_base_url,
        sync_interval=_seconds(env, "OPOS_SYNC_INTERVAL", defaults.sync_interval),
        probe_interval=_seconds(env, "OPOS_PROBE_INTERVAL", defaults.probe_interval),
        http_timeout=_seconds(env, "OPOS_HTTP_TIMEOUT", defaults.http_timeout),
        db_path=Path(db_override) if db_override else None,
    )
