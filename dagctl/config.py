"""Controller configuration.

Configuration is read from YAML. Without an explicit path, the first existing
file wins:

1. ``.dagctl/config.yaml`` (project)
2. ``~/.dagctl/config.yaml`` (user)

and built-in defaults apply when neither exists.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import pydantic
import yaml
from pydantic import BaseModel, field_validator

from dagctl.core.errors import ConfigError
from dagctl.core.keys import get_vertex_id_func
from dagctl.core.status import ExecutionStatusEngine, TransitionObserver

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_search_paths() -> list[Path]:
    return [
        Path(".dagctl/config.yaml"),
        Path.home() / ".dagctl/config.yaml",
    ]


class ControllerConfig(BaseModel):
    """Settings for the status engine and CLI."""

    vertex_id_strategy: Literal["identity", "fnv32a"] = "identity"
    strict_transitions: bool = True
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level '{v}'. Must be one of {', '.join(_LOG_LEVELS)}")
        return level


def load_config(path: Path | None = None, search_paths: list[Path] | None = None) -> ControllerConfig:
    """Load configuration from ``path`` or the first existing search path.

    Raises:
        ConfigError: If an explicit path is missing or any file is invalid
    """
    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        candidates = [path]
    else:
        candidates = [p for p in (search_paths or default_search_paths()) if p.exists()]

    if not candidates:
        return ControllerConfig()

    config_path = candidates[0]
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")

    try:
        config = ControllerConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"{config_path}: {e}") from e

    logger.debug(f"Loaded config from {config_path}")
    return config


def build_engine(
    config: ControllerConfig | None = None,
    observers: list[TransitionObserver] | None = None,
) -> ExecutionStatusEngine:
    """Create a status engine wired from ``config``."""
    config = config or ControllerConfig()
    return ExecutionStatusEngine(
        vertex_id=get_vertex_id_func(config.vertex_id_strategy),
        observers=observers,
        strict=config.strict_transitions,
    )
