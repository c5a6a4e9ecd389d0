"""Centralized configuration — all env vars in one place."""

import json
import os
from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class SourceConfig:
    """One upstream microsite and the credentials used to reach it."""

    source_id: str
    username: str
    password: str = field(repr=False)
    microsite_id: str
    name: str = ""

    @classmethod
    def from_dict(cls, raw: dict) -> "SourceConfig":
        missing = [key for key in ("username", "password", "microsite_id") if not raw.get(key)]
        if missing:
            label = raw.get("source_id") or raw.get("microsite_id") or "<unnamed>"
            raise ValueError(f"Source {label} is missing: {', '.join(missing)}")
        source_id = raw.get("source_id") or raw["microsite_id"]
        return cls(
            source_id=source_id,
            username=raw["username"],
            password=raw["password"],
            microsite_id=raw["microsite_id"],
            name=raw.get("name") or source_id,
        )


def _parse_sources(raw: str | None) -> list[SourceConfig]:
    if not raw:
        return []
    entries = json.loads(raw)
    if not isinstance(entries, list):
        raise ValueError("TC_SOURCES must be a JSON list")
    sources = [SourceConfig.from_dict(entry) for entry in entries]
    ids = [s.source_id for s in sources]
    if len(ids) != len(set(ids)):
        raise ValueError(f"Duplicate source ids in TC_SOURCES: {ids}")
    return sources


def _parse_windows(raw: str | None) -> list[tuple[str, str]]:
    """Parse "YYYYMMDD:YYYYMMDD,..." into (from, to) pairs."""
    if not raw:
        year = date.today().year
        return [(f"{year}0101", f"{year}1231"), (f"{year + 1}0101", f"{year + 1}1231")]

    windows = []
    for chunk in raw.split(","):
        start, sep, end = chunk.strip().partition(":")
        if not sep or len(start) != 8 or len(end) != 8 or not (start + end).isdigit():
            raise ValueError(f"Invalid booking window: {chunk!r} (expected YYYYMMDD:YYYYMMDD)")
        windows.append((start, end))
    return windows


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Travel Compositor upstream
        self.tc_base_url: str = os.getenv("TC_BASE_URL", "https://online.travelcompositor.com")
        self.sources: list[SourceConfig] = _parse_sources(os.getenv("TC_SOURCES"))
        self.excluded_sources: set[str] = {
            s.strip() for s in os.getenv("TC_EXCLUDED_SOURCES", "").split(",") if s.strip()
        }
        self.booking_windows: list[tuple[str, str]] = _parse_windows(os.getenv("TC_BOOKING_WINDOWS"))
        self.request_timeout: float = float(os.getenv("TC_REQUEST_TIMEOUT", "15"))
        self.page_size: int = int(os.getenv("TC_PAGE_SIZE", "1000"))
        self.max_pages: int = int(os.getenv("TC_MAX_PAGES", "5"))

        # In-memory cache
        self.record_set_ttl: int = int(os.getenv("CACHE_RECORD_SET_TTL", "300"))
        self.lookup_ttl: int = int(os.getenv("CACHE_LOOKUP_TTL", "120"))
        self.sweep_interval: int = int(os.getenv("CACHE_SWEEP_INTERVAL", "300"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def active_sources(self) -> list[SourceConfig]:
        """Configured sources minus the statically excluded ones, in order."""
        return [s for s in self.sources if s.source_id not in self.excluded_sources]

    def validate(self) -> list[str]:
        """Return list of missing required env vars for booking lookups."""
        missing = []
        if not self.sources:
            missing.append("TC_SOURCES")
        elif not self.active_sources:
            missing.append("TC_SOURCES (all sources excluded by TC_EXCLUDED_SOURCES)")
        return missing


settings = Settings()
