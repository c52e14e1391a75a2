"""
Configuration for chainloader.

Settings can be given directly, read from ``CHAINLOADER_*`` environment
variables, or read from the ``[chainloader]`` table of a TOML file.
"""
import logging
import os
from typing import Any, Dict, Mapping, Optional

import tomli
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable -> setting
ENV_VARS = {
    "CHAINLOADER_NETWORK": "network_name",
    "CHAINLOADER_PREFIX": "prefix",
    "CHAINLOADER_KEEPER_URL": "keeper_url",
    "CHAINLOADER_KEEPER_TIMEOUT": "keeper_timeout",
    "CHAINLOADER_KEEPER_RETRIES": "keeper_retry_count",
    "CHAINLOADER_HIGH_WATER_MARK": "high_water_mark",
}


class LoaderConfig(BaseModel):
    """Settings for a Loader and its streaming stage"""
    network_name: str = Field(..., min_length=1)
    prefix: str = Field(..., min_length=1)
    keeper_url: Optional[str] = None
    keeper_timeout: int = Field(30, gt=0)
    keeper_retry_count: int = Field(0, ge=0)
    high_water_mark: int = Field(16, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "LoaderConfig":
        """
        Validate settings.

        Raises:
            ConfigurationError: If a setting is missing or invalid
        """
        try:
            return cls.model_validate(dict(values))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid chainloader configuration: {e}") from e

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "LoaderConfig":
        """
        Read settings from the environment.

        Args:
            environ: Environment to read (defaults to os.environ)
            **overrides: Settings that take precedence over the environment

        Returns:
            LoaderConfig

        Raises:
            ConfigurationError: If a setting is missing or invalid
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            setting: environ[var] for var, setting in ENV_VARS.items() if environ.get(var)
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_mapping(values)

    @classmethod
    def from_toml(cls, path: str, **overrides: Any) -> "LoaderConfig":
        """
        Read settings from the [chainloader] table of a TOML file.

        Args:
            path: Path to the TOML file
            **overrides: Settings that take precedence over the file

        Returns:
            LoaderConfig

        Raises:
            ConfigurationError: If the file cannot be read or a setting is invalid
        """
        try:
            with open(path, "rb") as f:
                data = tomli.load(f)
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration from {path}: {e}") from e

        table = data.get("chainloader")
        if not isinstance(table, dict):
            raise ConfigurationError(f"No [chainloader] table in {path}")
        values = dict(table)
        values.update({k: v for k, v in overrides.items() if v is not None})
        logger.debug(f"Loaded chainloader configuration from {path}")
        return cls.from_mapping(values)
