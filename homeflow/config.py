from __future__ import annotations

import logging
import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_CONFIG_FILE


class EngineConfig(BaseModel):
    """Knobs for workflow resolution."""

    # strict: a dependent needs its own selection and an active prerequisite.
    # automatic: a dependent is pulled in whenever its prerequisite is.
    dependent_inclusion: Literal["strict", "automatic"] = "strict"


class LoggingConfig(BaseModel):
    level: str = "WARNING"


class HomeflowConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    logging: LoggingConfig = LoggingConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> HomeflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to HOMEFLOW_CONFIG env
            variable or 'homeflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("HOMEFLOW_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = HomeflowConfig(**data)
    else:
        config = HomeflowConfig()

    env_db_url = os.getenv("HOMEFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config


def configure_logging(config: Optional[HomeflowConfig] = None) -> None:
    """Apply the configured level to the ``homeflow`` logger tree."""
    config = config or load_config()
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("homeflow").setLevel(config.logging.level.upper())
