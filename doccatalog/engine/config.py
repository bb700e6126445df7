"""
doccatalog Configuration — Load and validate doccatalog.yaml.

Usage:
    from doccatalog.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from doccatalog.engine.errors import CatalogConfigError

CONFIG_FILE_NAME = "doccatalog.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for doccatalog.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///doccatalog.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True


class CatalogSettings(BaseModel):
    page_size: int = Field(default=9, ge=1)
    fetch_limit: int = Field(default=100, ge=1)
    default_sort: str = "recent"
    default_view_mode: str = "grid"
    default_language: str = "uk"

    @field_validator("default_sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        if v not in ("recent", "alpha"):
            raise ValueError(f"default_sort must be recent/alpha, got '{v}'")
        return v

    @field_validator("default_view_mode")
    @classmethod
    def validate_view_mode(cls, v: str) -> str:
        if v not in ("grid", "list"):
            raise ValueError(f"default_view_mode must be grid/list, got '{v}'")
        return v


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".doccatalog/logs"
    structured: bool = False
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class CatalogConfig(BaseModel):
    """Root model for doccatalog.yaml."""
    name: str = "Document Catalog"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    catalog: CatalogSettings = CatalogSettings()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[CatalogConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for doccatalog.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILE_NAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> CatalogConfig:
    """
    Load and validate doccatalog.yaml.

    Args:
        config_path: Explicit path to doccatalog.yaml. If None, auto-discovers.

    Returns:
        Validated CatalogConfig instance.

    Raises:
        CatalogConfigError: if the file exists but is not a valid config.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILE_NAME)

    path = Path(config_path)
    if not path.exists():
        _config = CatalogConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CatalogConfigError(f"Cannot parse {path}: {e}", path=str(path)) from e

    if not isinstance(raw, dict):
        raise CatalogConfigError(f"{path} must contain a mapping", path=str(path))

    # The platform block is flattened onto the root model
    platform = raw.get("platform", {}) or {}
    config_data = {
        "name": platform.get("name", raw.get("name", "Document Catalog")),
        "environment": platform.get("environment", raw.get("environment", "dev")),
        "database": raw.get("database", {}) or {},
        "catalog": raw.get("catalog", {}) or {},
        "logging": raw.get("logging", {}) or {},
    }

    try:
        _config = CatalogConfig(**config_data)
    except ValidationError as e:
        raise CatalogConfigError(
            f"Invalid configuration in {path}",
            path=str(path),
            errors=e.errors(),
        ) from e
    return _config


def get_config() -> CatalogConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: CatalogConfig) -> None:
    """Install an already-built config (tests, embedding applications)."""
    global _config
    _config = config
