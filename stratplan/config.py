"""
Strategy Planner
Configuration classes for the Flask app factory.

The class is chosen by ``APP_ENV`` (development | testing | production) and
instantiated, so ``ProductionConfig`` can refuse to start with missing
secrets:

    app.config.from_object(config[config_name]())
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(default=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme rewritten for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return default
    return raw.replace("postgres://", "postgresql://", 1)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Flask-Limiter storage; memory:// keeps counters per process
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    # Caller identification
    TENANT_HEADER = "X-Tenant-ID"
    ACTOR_HEADER = "X-User-ID"

    # List endpoints
    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 200


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'stratplan_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
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


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
