"""
ScanTrack — Production Scan Reconciliation
Configuration classes for Flask App Factory.

Every setting can be overridden from the environment:

    APP_ENV                     development | testing | production
    DATABASE_URL                PostgreSQL URL (SQLite file in development when unset)
    SYNC_INTERVAL_SECONDS       seconds between production sync ticks (default 120)
    TRACKING_RETENTION_DAYS     scan-log days kept before the sweeper deletes them (default 10)
    TRACKING_RETENTION_HOUR     local hour of the daily sweep (default 2)
    INVALID_SCAN_HISTORY_LIMIT  invalid scans kept per work order for the audit view (default 100)
    SCHEDULER_ENABLED           start background jobs with the app (default false)
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'scantrack_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random per process; production refuses to start without SECRET_KEY
_DEV_SECRET = secrets.token_hex(32)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _env_flag(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _database_url(fallback=None):
    # Hosted Postgres providers hand out postgres://, SQLAlchemy 2.x wants postgresql://
    url = os.getenv("DATABASE_URL", "")
    return url.replace("postgres://", "postgresql://", 1) if url else fallback


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # ── Production sync ──────────────────────────────────────────────────
    SYNC_INTERVAL_SECONDS = _env_int("SYNC_INTERVAL_SECONDS", 120)
    INVALID_SCAN_HISTORY_LIMIT = _env_int("INVALID_SCAN_HISTORY_LIMIT", 100)

    # ── Scan-log retention ───────────────────────────────────────────────
    TRACKING_RETENTION_DAYS = _env_int("TRACKING_RETENTION_DAYS", 10)
    TRACKING_RETENTION_HOUR = _env_int("TRACKING_RETENTION_HOUR", 2)

    # ── Background jobs ──────────────────────────────────────────────────
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED")

    # ── Rate limits (per client IP) ──────────────────────────────────────
    RATELIMIT_SCHEDULER = os.getenv("RATELIMIT_SCHEDULER", "30/minute")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "200/minute")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite gets a StaticPool from Flask-SQLAlchemy; pool options do not apply
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SYNC_INTERVAL_SECONDS = 120
    TRACKING_RETENTION_DAYS = 10
    INVALID_SCAN_HISTORY_LIMIT = 100
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED", True)

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if self.SYNC_INTERVAL_SECONDS <= 0:
            raise RuntimeError("SYNC_INTERVAL_SECONDS must be positive")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
