from __future__ import annotations

import logging
import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class RedisConfig(BaseModel):
    """Connection settings for the Redis trigger queue."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TriggerQueueConfig(BaseModel):
    """Where queued workflow triggers live."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    topic: str = "workflow-triggers"


class HttpDispatcherConfig(BaseModel):
    """Settings for the HTTP action dispatcher."""

    base_url: str = "http://localhost:3000"
    path: str = "/actions/dispatch"
    timeout: float = 300.0
    max_retries: int = 2
    headers: Dict[str, str] = Field(default_factory=dict)


class DispatcherConfig(BaseModel):
    """Action dispatcher settings."""

    backend: Literal["inmemory", "http"] = "inmemory"
    http: HttpDispatcherConfig = HttpDispatcherConfig()


class PlugflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    dispatcher: DispatcherConfig = DispatcherConfig()
    triggers: TriggerQueueConfig = TriggerQueueConfig()


def load_config(path: Optional[str] = None) -> PlugflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PLUGFLOW_CONFIG env
            variable or 'plugflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PLUGFLOW_CONFIG", "plugflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = PlugflowConfig(**data)
    else:
        config = PlugflowConfig()

    env_db_url = os.getenv("PLUGFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("PLUGFLOW_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level
    return config


def configure_logging(config: Optional[PlugflowConfig] = None) -> None:
    """Apply the configured log level to the root logger."""
    config = config or load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
