"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_settings()``
startup gate that refuses to start production without a code salt or catalog.

This module has no imports from the ``haggle`` package, so any module can
import it without creating a cycle.
"""

from __future__ import annotations

import sys
from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``code_salt`` is a ``SecretStr`` so it never appears in logs or error
    output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000
    db_path: Path = Path("data/haggle.db")
    catalog_path: Path = Path("data/catalog.yaml")

    # -- Secrets ---------------------------------------------------------------
    code_salt: SecretStr = SecretStr("")
    sentry_dsn: str = ""

    # -- Negotiations ----------------------------------------------------------
    negotiation_ttl_hours: int = Field(default=72, gt=0)
    floor_ratio: Decimal = Field(default=Decimal("0.7"), gt=0, le=1)
    max_messages_per_hour: int = Field(default=10, gt=0)
    sweep_interval_seconds: int = Field(default=120, gt=0)

    # -- Discount codes --------------------------------------------------------
    negotiated_code_ttl_hours: int = Field(default=48, gt=0)
    welcome_discount_percent: int = Field(default=20, ge=0, le=100)
    welcome_max_discount: int = Field(default=500, ge=0)
    welcome_min_purchase: int = Field(default=100, ge=0)
    welcome_code_ttl_days: int = Field(default=30, gt=0)

    @property
    def negotiation_ttl(self) -> timedelta:
        return timedelta(hours=self.negotiation_ttl_hours)

    @property
    def negotiated_code_ttl(self) -> timedelta:
        return timedelta(hours=self.negotiated_code_ttl_hours)

    @property
    def welcome_code_ttl(self) -> timedelta:
        return timedelta(days=self.welcome_code_ttl_days)


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list, never the raw exception text,
        # which may echo secret values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_settings(settings: Settings) -> None:
    """Enforce required settings at startup.

    In **production** mode the application exits with a clear error block if
    the code salt is empty or the catalog file is missing.  In
    **development** mode each problem is logged as a warning and startup
    continues (codes are then derived with an empty salt).

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.code_salt.get_secret_value():
        errors.append("CODE_SALT is empty or not set")

    if not settings.catalog_path.exists():
        errors.append(f"Catalog file not found: {settings.catalog_path}")

    if not errors:
        logger.info("settings_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("setting_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required settings for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("setting_missing_dev", detail=err)
