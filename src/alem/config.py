from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from alem.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


@dataclass(frozen=True)
class AppSettings:
    currency: str = "ETB"
    default_pack_size: int = 12
    low_stock_default: int = 12


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "AlemPOS") -> AppPaths:
    override = os.environ.get("ALEM_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "alem.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    exports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


def _positive_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{key} must be an integer. Received: {raw!r}") from e
    if value <= 0:
        raise ValidationError(f"{key} must be > 0. Received: {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    env = os.environ if environ is None else environ
    defaults = AppSettings()
    currency = env.get("ALEM_CURRENCY", "").strip().upper() or defaults.currency
    return AppSettings(
        currency=currency,
        default_pack_size=_positive_int(env, "ALEM_PACK_SIZE", defaults.default_pack_size),
        low_stock_default=_positive_int(env, "ALEM_LOW_STOCK_DEFAULT", defaults.low_stock_default),
    )
