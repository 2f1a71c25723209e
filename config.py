"""Settings read from the environment (and an optional ``.env`` file)."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Final
from urllib.parse import quote_plus

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)


def _env(name: str) -> str:
    return (os.environ.get(name) or "").strip()


def _env_float(name: str, default: float) -> float:
    """Return a positive float from ``name`` or ``default`` when unset or invalid."""

    try:
        value = float(_env(name) or default)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, _env(name))
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


def _env_path(name: str, default: Path) -> Path:
    raw = _env(name)
    path = Path(raw).expanduser() if raw else default
    return path if path.is_absolute() else BASE_DIR / path


# Logging
LOG_DIR_PATH: Final[Path] = _env_path("LOG_DIR", BASE_DIR / "logs")
LOG_FILE_PATH: Final[Path] = _env_path("LOG_FILE", LOG_DIR_PATH / "catalog.log")
LOG_FILE: Final[str] = os.fspath(LOG_FILE_PATH)


# Database
def _database_dsn() -> str:
    """Return ``DB_DSN``, a MariaDB DSN built from ``DB_*`` parts, or local SQLite."""

    explicit = _env("DB_DSN")
    if explicit:
        return explicit

    host, name, user = _env("DB_HOST"), _env("DB_NAME"), _env("DB_USER")
    if not (host or name or user):
        return f"sqlite:///{(BASE_DIR / 'catalog.db').as_posix()}"

    credentials = ""
    if user:
        password = _env("DB_PASSWORD")
        credentials = f"{user}:{quote_plus(password)}@" if password else f"{user}@"
    port = _env_int("DB_PORT", 3306)
    return f"mariadb://{credentials}{host or 'localhost'}:{port}/{name or 'game_catalog'}"


DB_DSN: Final[str] = _database_dsn()
DB_CONNECT_TIMEOUT_SECONDS: Final[float] = _env_float("DB_CONNECT_TIMEOUT", 10.0)


# IGDB
IGDB_CLIENT_ID: Final[str] = _env("IGDB_CLIENT_ID")
IGDB_CLIENT_SECRET: Final[str] = _env("IGDB_CLIENT_SECRET")
IGDB_USER_AGENT: Final[str] = (
    _env("IGDB_USER_AGENT") or "GameCatalog/1.0 (support@example.com)"
)
# IGDB allows 4 requests per second per client.
IGDB_RATE_LIMIT_INTERVAL: Final[float] = _env_float("IGDB_RATE_LIMIT_INTERVAL", 0.25)
IGDB_MAX_RETRIES: Final[int] = _env_int("IGDB_MAX_RETRIES", 3)
IGDB_REQUEST_TIMEOUT_SECONDS: Final[float] = _env_float("IGDB_REQUEST_TIMEOUT", 30.0)
IGDB_TOKEN_SAFETY_MARGIN_SECONDS: Final[float] = 300.0


# Flask
APP_SECRET_KEY: Final[str] = _env("APP_SECRET_KEY") or "dev-secret"


def validate_igdb_credentials() -> bool:
    """Log and return ``False`` when either IGDB credential is missing."""

    missing = [
        name
        for name, value in (
            ("IGDB_CLIENT_ID", IGDB_CLIENT_ID),
            ("IGDB_CLIENT_SECRET", IGDB_CLIENT_SECRET),
        )
        if not value
    ]
    if missing:
        logger.error("Missing IGDB credentials: %s", ", ".join(missing))
    return not missing


__all__ = [
    "APP_SECRET_KEY",
    "BASE_DIR",
    "DB_CONNECT_TIMEOUT_SECONDS",
    "DB_DSN",
    "IGDB_CLIENT_ID",
    "IGDB_CLIENT_SECRET",
    "IGDB_MAX_RETRIES",
    "IGDB_RATE_LIMIT_INTERVAL",
    "IGDB_REQUEST_TIMEOUT_SECONDS",
    "IGDB_TOKEN_SAFETY_MARGIN_SECONDS",
    "IGDB_USER_AGENT",
    "LOG_FILE",
    "LOG_FILE_PATH",
    "validate_igdb_credentials",
]
