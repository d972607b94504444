from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from roc.domain.currency import validate_rate


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "RetailOpsConsole") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "roc.db"

    for d in (base, logs, exports):
        d.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


@dataclass(frozen=True)
class Settings:
    db_path: Optional[Path] = None
    default_fx_rate: Optional[Decimal] = None
    fx_timeout: float = 10.0
    lock_timeout: float = 10.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        db = env.get("ROC_DB_PATH")
        rate = env.get("ROC_DEFAULT_FX_RATE")
        return cls(
            db_path=Path(db) if db else None,
            default_fx_rate=validate_rate(rate) if rate else None,
            fx_timeout=float(env.get("ROC_FX_TIMEOUT", "10")),
            lock_timeout=float(env.get("ROC_LOCK_TIMEOUT", "10")),
        )
