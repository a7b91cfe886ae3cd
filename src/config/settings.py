"""
Configuration settings for the Users API service
"""

import os
import logging
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    """Read an integer environment variable, failing loudly on garbage"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} environment variable must be an integer, got {raw!r}")


# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# Environment configuration
ENV = os.getenv("ENV", "production")
DEVELOPMENT_MODE = ENV.strip().lower() in ("development", "dev")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# HTTP listener
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _int_env("PORT", 3000)
MAX_BODY_BYTES = _int_env("MAX_BODY_BYTES", 100 * 1024)

# Database connection (defaults are for local development only)
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = _int_env("DB_PORT", 5432)
DB_NAME = os.getenv("DB_NAME", "cicd_app")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "password")
DB_MAINTENANCE_DB = os.getenv("DB_MAINTENANCE_DB", "postgres")

# Pool tuning
DB_POOL_MIN_SIZE = _int_env("DB_POOL_MIN_SIZE", 1)
DB_POOL_MAX_SIZE = _int_env("DB_POOL_MAX_SIZE", 10)
DB_COMMAND_TIMEOUT = _int_env("DB_COMMAND_TIMEOUT", 60)
DB_STATEMENT_CACHE_SIZE = _int_env("DB_STATEMENT_CACHE_SIZE", 0)  # 0 keeps pgbouncer happy

# Schema provisioning
MIGRATIONS_DIR = Path(
    os.getenv("MIGRATIONS_DIR", str(Path(__file__).resolve().parents[2] / "migrations"))
)

# CORS settings
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
]

if DB_POOL_MIN_SIZE > DB_POOL_MAX_SIZE:
    raise ValueError("DB_POOL_MIN_SIZE cannot be greater than DB_POOL_MAX_SIZE")

logger.info(f"Environment: {ENV} (development mode: {DEVELOPMENT_MODE})")


def connection_params(database: str = None) -> dict:
    """Keyword arguments for asyncpg.connect/create_pool (database defaults to DB_NAME)"""
    return {
        "host": DB_HOST,
        "port": DB_PORT,
        "user": DB_USER,
        "password": DB_PASSWORD,
        "database": database or DB_NAME,
    }
