"""Application configuration classes.

Supports multiple environments via class inheritance.
DATABASE_URL can be set via environment variable; defaults to SQLite for local dev.
"""

import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    """Base configuration shared across all environments."""

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    RESTX_MASK_SWAGGER = False

    # --- Customer defaults applied before a new row is written ---
    CUSTOMER_DEFAULT_AVATAR = os.getenv(
        "CUSTOMER_DEFAULT_AVATAR",
        "https://openscrm.oss-cn-hangzhou.aliyuncs.com/public/avatar.svg",
    )
    CUSTOMER_DEFAULT_NAME = os.getenv("CUSTOMER_DEFAULT_NAME", "未知")

    CUSTOMER_UPSERT_BATCH_SIZE = int(os.getenv("CUSTOMER_UPSERT_BATCH_SIZE", "100"))

    # --- Paging ---
    DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "1000"))

    # Re-run a plain customer-table filter when the joined listing is empty.
    CUSTOMER_QUERY_DIRECT_FALLBACK = _env_bool("CUSTOMER_QUERY_DIRECT_FALLBACK", False)


class DevelopmentConfig(BaseConfig):
    """Development configuration — SQLite fallback for local testing."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///dev.db",
    )


class TestingConfig(BaseConfig):
    """Testing configuration — in-memory SQLite for fast tests."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CUSTOMER_QUERY_DIRECT_FALLBACK = False


class ProductionConfig(BaseConfig):
    """Production configuration — requires DATABASE_URL to be set."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "")


CONFIG_MAP = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
