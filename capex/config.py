"""
CapEx Tracker
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

from capex.services.completion_engine import (
    DEFAULT_AT_RISK,
    DEFAULT_IMPACTED,
    DEFAULT_ON_TRACK,
    DEFAULT_PHASE_WEIGHTS,
    MIN_THRESHOLD_GAP,
)

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'capex_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(raw: str) -> str:
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Rate limiter storage (memory:// when unset)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2 MB

    # Completion engine defaults, used when the settings row is first created
    CAPEX_DEFAULT_THRESHOLDS = {
        "on_track": float(os.getenv("CAPEX_ON_TRACK_THRESHOLD", DEFAULT_ON_TRACK)),
        "at_risk": float(os.getenv("CAPEX_AT_RISK_THRESHOLD", DEFAULT_AT_RISK)),
        "impacted": float(os.getenv("CAPEX_IMPACTED_THRESHOLD", DEFAULT_IMPACTED)),
    }
    CAPEX_MIN_THRESHOLD_GAP = float(os.getenv("CAPEX_MIN_THRESHOLD_GAP", MIN_THRESHOLD_GAP))
    CAPEX_DEFAULT_PHASE_WEIGHTS = {k: dict(v) for k, v in DEFAULT_PHASE_WEIGHTS.items()}


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _database_url(_raw_db_url) if _raw_db_url else _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False
    CAPEX_DEFAULT_THRESHOLDS = {
        "on_track": DEFAULT_ON_TRACK,
        "at_risk": DEFAULT_AT_RISK,
        "impacted": DEFAULT_IMPACTED,
    }
    CAPEX_MIN_THRESHOLD_GAP = MIN_THRESHOLD_GAP


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _database_url(_raw_db_url) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

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


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
