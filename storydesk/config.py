"""
StoryDesk
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'storydesk_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Rate limiter storage; memory:// when no Redis is available
    REDIS_URL = os.getenv("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Follow-up listings
    FOLLOW_UP_DEFAULT_PAGE_LIMIT = int(os.getenv("FOLLOW_UP_DEFAULT_PAGE_LIMIT", "50"))
    FOLLOW_UP_MAX_PAGE_LIMIT = int(os.getenv("FOLLOW_UP_MAX_PAGE_LIMIT", "200"))

    # Stakeholder registry
    STAKEHOLDER_DEFAULT_PAGE_LIMIT = int(os.getenv("STAKEHOLDER_DEFAULT_PAGE_LIMIT", "50"))
    STAKEHOLDER_MAX_PAGE_LIMIT = 500
    STAKEHOLDER_ENFORCE_UNIQUE_NAMES = _env_bool("STAKEHOLDER_ENFORCE_UNIQUE_NAMES", "true")

    STORYLINE_DEFAULT_PAGE_LIMIT = 20


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "") or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.0
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

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
