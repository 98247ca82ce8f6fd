from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field


def _resolve_home() -> Path:
    override = os.getenv("DEALSCOUT_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd().resolve()


def _resolve_database_path() -> Path:
    override = os.getenv("DEALSCOUT_DB", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return _resolve_home() / "data" / "dealscout.db"


def _resolve_thesis_path() -> Path | None:
    override = os.getenv("DEALSCOUT_THESIS", "").strip()
    return Path(override).expanduser().resolve() if override else None


class Settings(BaseModel):
    home: Path = Field(default_factory=_resolve_home)
    data_dir: Path = Field(default_factory=lambda: _resolve_home() / "data")
    database_path: Path = Field(default_factory=_resolve_database_path)
    thesis_path: Path | None = Field(default_factory=_resolve_thesis_path)

    score_cache_ttl_seconds: float = 900.0
    score_cache_max_entries: int = 2048

    api_host: str = "127.0.0.1"
    api_port: int = 8001


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
