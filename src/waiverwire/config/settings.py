"""Process-level settings read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

_DB_PATH_ENV = "WAIVERWIRE_DB_PATH"
_LEASE_TTL_ENV = "WAIVERWIRE_LEASE_TTL_SECONDS"
_MAX_WORKERS_ENV = "WAIVERWIRE_MAX_WORKERS"
_RETENTION_DAYS_ENV = "WAIVERWIRE_RETENTION_DAYS"
_WEBHOOK_URL_ENV = "WAIVERWIRE_WEBHOOK_URL"

_DB_PATH_DEFAULT = "waiverwire.sqlite"
_LEASE_TTL_DEFAULT = 15 * 60.0
_MAX_WORKERS_DEFAULT = 4
_RETENTION_DAYS_DEFAULT = 365


def _env_float(name: str, default: float, *, clamp_min: float | None = None, clamp_max: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    if clamp_max is not None:
        value = min(clamp_max, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


@dataclass(frozen=True)
class Settings:
    db_path: Path | str
    lease_ttl_seconds: float
    max_workers: int
    retention_days: int
    webhook_url: Optional[str]


def load_settings(db_path: Path | str | None = None) -> Settings:
    """Build settings from the environment; ``db_path`` wins over the env var."""

    resolved_db: Path | str
    if db_path is not None:
        resolved_db = db_path
    else:
        env_db = os.getenv(_DB_PATH_ENV)
        if env_db and env_db.startswith("file:"):
            resolved_db = env_db
        else:
            resolved_db = Path(env_db or _DB_PATH_DEFAULT)
    return Settings(
        db_path=resolved_db,
        lease_ttl_seconds=_env_float(_LEASE_TTL_ENV, _LEASE_TTL_DEFAULT, clamp_min=1.0),
        max_workers=_env_int(_MAX_WORKERS_ENV, _MAX_WORKERS_DEFAULT, min_value=1),
        retention_days=_env_int(_RETENTION_DAYS_ENV, _RETENTION_DAYS_DEFAULT, min_value=1),
        webhook_url=os.getenv(_WEBHOOK_URL_ENV) or None,
    )
