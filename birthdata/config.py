"""Configuration management with Pydantic validation."""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from birthdata.errors import ConfigError

SCB_BIRTHS_URL = "https://api.scb.se/OV0104/v1/doris/sv/ssd/START/BE/BE0101/BE0101H/FoddaK"

# Environment variable -> (section, field) in the config tree
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "BIRTHDATA_SCB_API_URL": ("scb", "api_url"),
    "BIRTHDATA_DATABASE_PATH": ("database", "path"),
    "BIRTHDATA_CACHE_TTL": ("cache", "ttl_seconds"),
    "BIRTHDATA_PORT": ("server", "port"),
    "BIRTHDATA_ALLOWED_ORIGIN": ("server", "allowed_origin"),
}


class ScbConfig(BaseModel):
    """Configuration for the SCB PX-Web births query."""

    api_url: str = Field(default=SCB_BIRTHS_URL)
    timeout_seconds: float = Field(default=60.0, gt=0)
    genders: list[str] = Field(default=["1", "2"])
    years: list[int] = Field(default=[2016, 2017, 2018, 2019, 2020])

    @field_validator("years")
    @classmethod
    def validate_years(cls, v: list[int]) -> list[int]:
        """Ensure years look like four-digit calendar years."""
        if not v:
            raise ValueError("At least one year must be configured")
        if not all(1000 <= y <= 9999 for y in v):
            raise ValueError("Years must be four-digit values")
        return v

    @field_validator("genders")
    @classmethod
    def validate_genders(cls, v: list[str]) -> list[str]:
        """Ensure gender codes are non-empty."""
        if not v or not all(code.strip() for code in v):
            raise ValueError("Gender codes must be non-empty strings")
        return v


class DatabaseConfig(BaseModel):
    """Configuration for the DuckDB store."""

    path: str = Field(default="data/birth_data.duckdb")
    memory_limit: str = Field(default="1GB")
    threads: int = Field(default=2, ge=1)


class CacheConfig(BaseModel):
    """Configuration for the all-records read cache."""

    ttl_seconds: float = Field(default=3600.0, gt=0)


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5001, ge=1, le=65535)
    allowed_origin: str = Field(default="http://localhost:3000")


class Config(BaseModel):
    """Main configuration."""

    data_dir: Path = Field(default=Path("data"))
    scb: ScbConfig = Field(default_factory=ScbConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "Config":
        """Load configuration from TOML file.

        Args:
            path: Path to config.toml file

        Returns:
            Validated Config object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If the file is not valid TOML or fails validation
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML syntax in {path}: {e}") from e

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    @classmethod
    def load(
        cls,
        path: Path | str = "config.toml",
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Load configuration from file (if present) and apply environment overrides.

        Args:
            path: Path to config.toml file. Defaults are used when it is missing.
            environ: Environment mapping, defaults to os.environ

        Returns:
            Validated Config object

        Raises:
            ConfigError: If the file or an override fails validation
        """
        path = Path(path)
        config = cls.from_file(path) if path.exists() else cls()
        return config.with_overrides(os.environ if environ is None else environ)

    def with_overrides(self, environ: Mapping[str, str]) -> "Config":
        """Return a copy with BIRTHDATA_* environment overrides applied."""
        data: dict[str, Any] = self.model_dump()
        applied = False
        for env_name, (section, field) in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value is None or value == "":
                continue
            data[section][field] = value
            applied = True

        if not applied:
            return self

        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid environment override: {e}") from e
