from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _load_env() -> None:
    base_path = Path(__file__).resolve()
    candidates = [
        base_path.parents[1] / ".env",  # api/.env
        base_path.parents[2] / ".env",  # repo root .env
    ]
    for path in candidates:
        if path.exists():
            load_dotenv(dotenv_path=path, override=False)
    # As a fallback, load default .env in current working dir
    load_dotenv(override=False)


_load_env()


@dataclass
class Settings:
    # Base
    app_name: str = "survey-benchmarks-api"
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # CORS/frontends
    cors_origins: list[str] = field(
        default_factory=lambda: os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",")
    )

    # Storage collaborator: memory | sql | supabase
    storage_backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "sql").lower())

    # SQL backend
    db_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./dev.db"))

    # Supabase backend (URL and key are read lazily by supabase_client)
    survey_rows_table: str = field(default_factory=lambda: os.getenv("SUPABASE_SURVEY_ROWS_TABLE", "survey_rows"))
    mappings_table: str = field(default_factory=lambda: os.getenv("SUPABASE_MAPPINGS_TABLE", "survey_mappings"))

    # Variable discovery samples this many rows per survey
    discovery_sample_limit: int = field(default_factory=lambda: int(os.getenv("DISCOVERY_SAMPLE_LIMIT", "100")))


def get_settings() -> Settings:
    return Settings()
