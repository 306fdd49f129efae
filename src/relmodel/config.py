"""Configuration management for relmodel."""

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from relmodel.exceptions import ConfigError
from relmodel.types import Dialect

CONFIG_FILE = "relmodel.cfg"
CONFIG_SECTION = "relmodel"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_config_file(path: Optional[Path] = None) -> dict[str, str]:
    """Load settings from the [relmodel] section of relmodel.cfg.

    Args:
        path: Config file to read (default: ./relmodel.cfg)

    Returns:
        Dict of raw string values; empty if the file or section is missing

    Raises:
        ConfigError: If the file cannot be parsed
    """
    cfg_path = path or Path.cwd() / CONFIG_FILE
    if not cfg_path.exists():
        return {}

    config = configparser.ConfigParser()
    try:
        config.read(cfg_path)
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e

    if CONFIG_SECTION not in config:
        return {}

    return {key: value.strip() for key, value in config[CONFIG_SECTION].items()}


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


@dataclass
class Config:
    """Configuration for relmodel."""

    dialect: Dialect = Dialect.POSTGRESQL
    schema_path: str = "schema"
    default_namespace: str = "public"
    strict: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        *,
        dialect: Optional[str] = None,
        schema_path: Optional[str] = None,
        default_namespace: Optional[str] = None,
        strict: Optional[bool] = None,
        log_level: Optional[str] = None,
        config_file: Optional[Path] = None,
    ) -> "Config":
        """Load configuration from relmodel.cfg, env vars, with CLI overrides.

        Priority (highest to lowest):
        1. Explicit parameters (CLI args)
        2. Environment variables
        3. [relmodel] section of relmodel.cfg
        """
        file_cfg = load_config_file(config_file)

        def resolve(explicit, env_key, cfg_key, default):
            if explicit is not None:
                return explicit
            env_val = os.environ.get(env_key)
            if env_val is not None:
                return env_val
            if cfg_key in file_cfg:
                return file_cfg[cfg_key]
            return default

        raw_dialect = resolve(dialect, "RELMODEL_DIALECT", "dialect", "postgresql")
        try:
            resolved_dialect = Dialect(str(raw_dialect).strip().lower())
        except ValueError:
            valid = ", ".join(d.value for d in Dialect)
            raise ConfigError(
                f"Unknown dialect '{raw_dialect}'. Valid dialects: {valid}"
            ) from None

        raw_strict = resolve(strict, "RELMODEL_STRICT", "strict", False)
        if not isinstance(raw_strict, bool):
            raw_strict = _parse_bool(raw_strict, "strict")

        level = str(resolve(log_level, "RELMODEL_LOG_LEVEL", "log_level", "INFO"))
        level = level.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level '{level}'. "
                f"Valid levels: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )

        return cls(
            dialect=resolved_dialect,
            schema_path=resolve(
                schema_path, "RELMODEL_SCHEMA_PATH", "schema_path", "schema"
            ),
            default_namespace=resolve(
                default_namespace,
                "RELMODEL_DEFAULT_NAMESPACE",
                "default_namespace",
                "public",
            ),
            strict=raw_strict,
            log_level=level,
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)
