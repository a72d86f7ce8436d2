"""Runtime configuration read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo


UNASSIGNED_LABEL = "NÃO INFORMADO"
SYSTEM_LABEL = "SISTEMA"
DEFAULT_TABLE = "vagas"
DEFAULT_FETCH_LIMIT = 5000
DEFAULT_SESSION_TTL = 1800.0
ALL_UNITS = "ALL"


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(slots=True)
class Settings:
    store_url: str | None = None
    store_key: str | None = None
    store_table: str = DEFAULT_TABLE
    store_timeout: float = 30.0
    fetch_limit: int = DEFAULT_FETCH_LIMIT
    seed_file: Path | None = None
    unit_scope: list[str] = field(default_factory=list)
    unassigned_label: str = UNASSIGNED_LABEL
    system_label: str = SYSTEM_LABEL
    timezone: str = "UTC"
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=list)
    # seconds a view session may sit unused; 0 keeps sessions forever
    session_ttl: float = DEFAULT_SESSION_TTL

    @classmethod
    def from_env(cls) -> "Settings":
        seed = os.getenv("VACANCY_SEED_FILE")
        origins = _split_csv(os.getenv("API_CORS_ORIGINS"))
        if not origins:
            origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
        return cls(
            store_url=os.getenv("RECORD_STORE_URL") or None,
            store_key=os.getenv("RECORD_STORE_KEY") or None,
            store_table=os.getenv("RECORD_STORE_TABLE") or DEFAULT_TABLE,
            store_timeout=float(os.getenv("RECORD_STORE_TIMEOUT") or 30.0),
            fetch_limit=int(os.getenv("RECORD_STORE_LIMIT") or DEFAULT_FETCH_LIMIT),
            seed_file=Path(seed).expanduser() if seed else None,
            unit_scope=_split_csv(os.getenv("VACANCY_UNIT_SCOPE")),
            unassigned_label=os.getenv("VACANCY_UNASSIGNED_LABEL") or UNASSIGNED_LABEL,
            system_label=os.getenv("VACANCY_SYSTEM_LABEL") or SYSTEM_LABEL,
            timezone=os.getenv("VACANCY_TIMEZONE") or "UTC",
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            cors_origins=origins,
            session_ttl=float(os.getenv("VACANCY_SESSION_TTL") or DEFAULT_SESSION_TTL),
        )

    @property
    def scoped_units(self) -> list[str] | None:
        """Units the process may see, or ``None`` when access is unrestricted."""

        if not self.unit_scope:
            return None
        if any(unit.strip().upper() == ALL_UNITS for unit in self.unit_scope):
            return None
        return list(self.unit_scope)

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)
