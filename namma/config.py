"""
Namma configuration: all environment variables in one place.

Read from environment at import time. Components take explicit arguments
that default to these values, so tests never need the environment.
"""

from __future__ import annotations

import os
from pathlib import Path


class Settings:
    """Application settings from environment variables."""

    # Durable blob keys
    STORAGE_KEY: str = os.environ.get("NAMMA_STORAGE_KEY", "namma_app_data")
    AUTH_KEY: str = os.environ.get("NAMMA_AUTH_KEY", "namma_app_auth")

    # Storage backend: "file", "memory" or "postgres"
    STORAGE_BACKEND: str = os.environ.get("NAMMA_STORAGE_BACKEND", "file")
    DATA_DIR: str = os.environ.get("NAMMA_DATA_DIR", str(Path.home() / ".namma"))

    # Database (postgres backend only)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Reorder reconciler
    REORDER_DEBOUNCE_SECONDS: float = float(os.environ.get("NAMMA_REORDER_DEBOUNCE_SECONDS", "1.0"))

    # Logging
    LOG_LEVEL: str = os.environ.get("NAMMA_LOG_LEVEL", "WARNING")


# Singleton instance
settings = Settings()

if settings.STORAGE_BACKEND not in {"file", "memory", "postgres"}:
    raise RuntimeError(f"NAMMA_STORAGE_BACKEND must be file, memory or postgres, got {settings.STORAGE_BACKEND!r}")
