"""Configuration management for rangefs."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from rangefs.core.types import Compression

logger = structlog.get_logger()


class ReaderConfig(BaseModel):
    """Archive reader configuration."""

    archive_key: str = Field(
        default="ARCHIVE_FILENAME",
        description="Config store key holding the archive's blob name"
    )
    cache_ttl: float | None = Field(
        default=None,
        description="Seconds before a loaded index is refreshed (None = load once per archive)"
    )
    passthrough_encoding: bool = Field(
        default=True,
        description="Serve compressed entries as-is when the client accepts their encoding"
    )

    @field_validator("archive_key")
    @classmethod
    def validate_archive_key(cls, v: str) -> str:
        """Validate archive key."""
        if not v:
            raise ValueError("Archive key cannot be empty")
        return v

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: float | None) -> float | None:
        """Validate cache TTL value."""
        if v is not None and v < 0:
            raise ValueError("Cache TTL must be non-negative")
        return v


class HttpStoreConfig(BaseModel):
    """HTTP blob store configuration."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    compression: Compression = Field(
        default=Compression.NONE,
        description="Default compression for built archives"
    )
    reader: ReaderConfig = Field(
        default_factory=ReaderConfig,
        description="Archive reader settings"
    )
    http: HttpStoreConfig = Field(
        default_factory=HttpStoreConfig,
        description="HTTP blob store settings"
    )

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "rangefs" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file
        """
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
