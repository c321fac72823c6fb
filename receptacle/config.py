"""
Configuration loading for Receptacle Rules.

Configuration lives in a YAML file (conventionally ``config.yaml``):

    logging:
      level: INFO
      file: /var/log/receptacle.log
      json_format: true

    evaluation:
      timezone: Europe/London

Every key is optional. The RECEPTACLE_LOG_LEVEL environment variable
overrides ``logging.level``.
"""

import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from receptacle.exceptions import ConfigurationError
from receptacle.logging_config import get_logger

logger = get_logger(__name__)

LOG_LEVEL_ENV_VAR = "RECEPTACLE_LOG_LEVEL"

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class LoggingConfig:
    """
    Logging settings.

    Attributes:
        level: Log level name
        file: Optional log file path (stderr when None)
        json_format: Emit JSON lines instead of console output
    """
    level: str = "INFO"
    file: Optional[Path] = None
    json_format: bool = False


@dataclass
class EvaluationConfig:
    """
    Rule evaluation settings.

    Attributes:
        timezone: IANA zone used for naive item dates and for ``now``
    """
    timezone: str = "UTC"

    def get_tzinfo(self) -> tzinfo:
        if self.timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone)


@dataclass
class ReceptacleConfig:
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return dict(section)


def _build_config(data: Mapping[str, Any]) -> ReceptacleConfig:
    logging_data = _section(data, "logging")
    evaluation_data = _section(data, "evaluation")

    level = str(os.environ.get(LOG_LEVEL_ENV_VAR) or logging_data.get("level", "INFO")).upper()
    if level not in _VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level '{level}'. Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
        )

    json_format = logging_data.get("json_format", False)
    if not isinstance(json_format, bool):
        raise ConfigurationError(
            f"logging.json_format must be true or false, got {json_format!r}"
        )

    log_file = logging_data.get("file")
    logging_config = LoggingConfig(
        level=level,
        file=Path(log_file) if log_file else None,
        json_format=json_format,
    )

    evaluation_config = EvaluationConfig(
        timezone=str(evaluation_data.get("timezone", "UTC")),
    )
    try:
        evaluation_config.get_tzinfo()
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown timezone '{evaluation_config.timezone}'")

    return ReceptacleConfig(logging=logging_config, evaluation=evaluation_config)


def load_config(path: Optional[Union[str, Path]] = None) -> ReceptacleConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the configuration file. If None or missing, defaults are used.

    Returns:
        ReceptacleConfig with defaults filled in

    Raises:
        ConfigurationError: If the file cannot be parsed or holds invalid values
    """
    if path is None or not Path(path).exists():
        if path is not None:
            logger.debug("config_file_not_found", path=str(path))
        return _build_config({})

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse configuration file {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    return _build_config(data)
