"""Configuration helpers for task execution."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_force_flag(name: str) -> Optional[bool]:
    """Tri-state flag: ``True``/``False`` when set to a boolean word, else ``None``."""

    value = (os.getenv(name) or "").strip().lower()
    if value in {"1", "true"}:
        return True
    if value in {"0", "false"}:
        return False
    return None


@dataclass
class Settings:
    """Container for environment-driven settings.

    Build one instance at the entry point and hand it to the components that
    need it; :func:`get_settings` is only a convenience for entry points.
    """

    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Remote task service
    remote_url: str = field(default_factory=lambda: os.getenv("BROWSEGATE_REMOTE_URL", "http://localhost:8000"))
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("BROWSEGATE_API_KEY"))
    bearer_token: Optional[str] = field(default_factory=lambda: os.getenv("BROWSEGATE_BEARER_TOKEN"))
    request_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_REQUEST_TIMEOUT", "30.0")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("BROWSEGATE_MAX_RETRIES", "3")))
    retry_base_delay_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_RETRY_BASE_DELAY", "0.5")))

    # Polling and logical retries
    polling_interval_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_POLL_INTERVAL", "1.5")))
    workflow_timeout_simple_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_TIMEOUT_SIMPLE", "300")))
    workflow_timeout_complex_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_TIMEOUT_COMPLEX", "600")))
    max_logical_retries: int = field(default_factory=lambda: int(os.getenv("BROWSEGATE_MAX_LOGICAL_RETRIES", "3")))

    # Backend selection: None means "decide per request"
    use_remote: Optional[bool] = field(default_factory=lambda: _env_force_flag("BROWSEGATE_USE_REMOTE"))

    # Local Playwright driver
    playwright_browser: str = field(default_factory=lambda: os.getenv("PLAYWRIGHT_BROWSER", "chromium"))
    playwright_headless: bool = field(default_factory=lambda: _env_flag("PLAYWRIGHT_HEADLESS", default=True))
    playwright_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("PLAYWRIGHT_TIMEOUT", "30.0")))

    # Persistence
    database_url: Optional[str] = field(default_factory=lambda: os.getenv("DATABASE_URL"))
    sqlite_path: str = field(default_factory=lambda: os.getenv("SQLITE_PATH", "./data/browsegate.db"))

    # Task service
    api_server_host: str = field(default_factory=lambda: os.getenv("API_SERVER_HOST", "0.0.0.0"))
    api_server_port: int = field(default_factory=lambda: int(os.getenv("API_SERVER_PORT", "8000")))
    simulated_task_seconds: float = field(default_factory=lambda: float(os.getenv("BROWSEGATE_SIMULATED_TASK_SECONDS", "3.0")))

    def resolved_database_url(self) -> str:
        """Return a SQLAlchemy-compatible database URL."""

        if self.database_url:
            return self.database_url

        sqlite_file = Path(self.sqlite_path)
        if not sqlite_file.is_absolute():
            sqlite_file = Path.cwd() / sqlite_file
        sqlite_file.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{sqlite_file.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
