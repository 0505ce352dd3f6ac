"""Persist and load CLI processor profiles."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from waiverwire.config import Settings


@dataclass
class ProcessorProfile:
    db_path: Optional[str] = None
    webhook_url: Optional[str] = None
    max_workers: Optional[int] = None
    lease_ttl_seconds: Optional[float] = None
    retention_days: Optional[int] = None
    poll_interval: float = 30.0

    @classmethod
    def load(cls, path: Path) -> "ProcessorProfile":
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            db_path=data.get("db_path"),
            webhook_url=data.get("webhook_url"),
            max_workers=data.get("max_workers"),
            lease_ttl_seconds=data.get("lease_ttl_seconds"),
            retention_days=data.get("retention_days"),
            poll_interval=float(data.get("poll_interval", 30.0)),
        )

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    def apply(self, settings: Settings) -> Settings:
        """Overlay the profile's explicit values on top of ``settings``."""

        return Settings(
            db_path=self.db_path or settings.db_path,
            lease_ttl_seconds=self.lease_ttl_seconds or settings.lease_ttl_seconds,
            max_workers=self.max_workers or settings.max_workers,
            retention_days=self.retention_days or settings.retention_days,
            webhook_url=self.webhook_url or settings.webhook_url,
        )
