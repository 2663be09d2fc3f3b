"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

# Folder names that say nothing about the series they contain
DEFAULT_GENERIC_PARENT_FOLDERS = [
    "downloads",
    "download",
    "manga",
    "comics",
    "raw",
    "raws",
    "scans",
    "books",
    "library",
    "import",
    "imports",
    "new folder",
    "temp",
    "tmp",
    "ja",
    "jp",
    "jpn",
    "en",
    "eng",
    "japanese",
    "english",
]


def _default_data_dir() -> Path:
    # __file__ is backend/mokuro_importer/core/config.py, data lives in backend/data
    return (Path(__file__).parent.parent.parent / "data").resolve()


def json_config_settings_source(
    settings: BaseSettings | None = None,
) -> dict[str, Any]:
    """Load settings from settings.json in the config directory.

    This source has the lowest priority: .env and environment variables
    override anything found in the file.

    Args:
        settings: The Settings class being constructed (unused).

    Returns:
        Dictionary with lowercase setting keys, empty if the file is missing
        or unreadable.
    """
    data_dir_env = os.environ.get("MOKURO_DATA_DIR", "")
    data_dir = Path(data_dir_env) if data_dir_env else _default_data_dir()
    settings_file = data_dir / "config" / "settings.json"

    if not settings_file.exists():
        return {}

    try:
        with settings_file.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return {}

    if not isinstance(data, dict):
        return {}

    # The import section may be nested: {"import": {"concurrency": 2}}
    flattened: dict[str, Any] = {}
    for key, value in data.items():
        if key == "import" and isinstance(value, dict):
            for nested_key, nested_value in value.items():
                flattened[f"import_{nested_key}".lower()] = nested_value
        else:
            flattened[key.lower()] = value
    return flattened


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from (lowest to highest priority):
    1. settings.json in the config directory
    2. .env file
    3. Environment variables prefixed with MOKURO_ (e.g. MOKURO_ENV=production)
    4. Values passed to Settings() directly
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MOKURO_",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order sources: JSON file, .env, environment, init kwargs."""
        return (  # type: ignore[return-value]
            json_config_settings_source,
            dotenv_settings,
            env_settings,
            init_settings,
        )

    # Application
    env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment (development, production, testing)",
    )

    host_bind_address: str = Field(
        default="127.0.0.1",
        description="Host address to bind the server to",
    )

    host_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port number to bind the server to",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Base directory for all application data (config, database, logs)",
    )

    # Import pipeline tuning
    count_fallback_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description=(
            "Maximum fraction of pages matched by name for which the positional "
            "count fallback may still run"
        ),
    )
    placeholder_width: int = Field(
        default=800, ge=1, description="Placeholder width when a page declares none"
    )
    placeholder_height: int = Field(
        default=1200, ge=1, description="Placeholder height when a page declares none"
    )
    thumbnail_max_width: int = Field(default=250, ge=1, description="Thumbnail bounding width")
    thumbnail_max_height: int = Field(default=350, ge=1, description="Thumbnail bounding height")
    generic_parent_folders: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GENERIC_PARENT_FOLDERS),
        description="Parent folder names never used as a series name",
    )
    import_image_only: bool = Field(
        default=True,
        description="Import image folders that have no sidecar metadata",
    )
    import_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of queued sources processed at the same time",
    )
    max_nesting_depth: int = Field(
        default=5,
        ge=0,
        description="Deepest archive-in-archive level that is unpacked",
    )

    @property
    def config_dir(self) -> Path:
        """Directory for configuration files (settings.json)."""
        return self.data_dir / "config"

    @property
    def database_dir(self) -> Path:
        """Directory for database files."""
        return self.data_dir / "database"

    @property
    def logs_dir(self) -> Path:
        """Directory for log files."""
        return self.data_dir / "logs"

    @property
    def database_file(self) -> Path:
        """SQLite file holding imported volumes."""
        return self.database_dir / "mokuro_importer.db"

    @property
    def is_debug(self) -> bool:
        """Check if running in debug/development mode."""
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.env == "testing"

    def model_post_init(self, __context: object) -> None:
        """Create data directories if they don't exist."""
        self.data_dir = self.data_dir.resolve()

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.database_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from all sources (JSON, .env, env vars).

    Returns:
        New Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
