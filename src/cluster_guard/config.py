"""Configuration management for cluster checks."""

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import DEFAULT_INTERVAL, DEFAULT_NAMESPACE, KEY_SEPARATOR, lock_key

DEFAULT_CONFIG_PATH = "config/cluster_guard.yaml"


class StoreConfig(BaseModel):
    """Connection settings for the key-value store."""
    host: str = Field(default="localhost", description="Store host")
    port: int = Field(default=6379, ge=1, le=65535, description="Store port")
    timeout: Optional[float] = Field(default=None, gt=0, description="Socket timeout in seconds")


class ClusterCheckConfig(BaseModel):
    """Settings for one recurring cluster check."""

    cluster_name: str = Field(description="Cluster the alerts are sourced from")
    check: str = Field(description="Aggregate check name")
    namespace: str = Field(default=DEFAULT_NAMESPACE, description="Lock key namespace")

    store: StoreConfig = Field(default_factory=StoreConfig)

    interval: Optional[int] = Field(default=None, gt=0, description="Check interval in seconds")
    warning: Optional[int] = Field(default=None, ge=0, le=100, description="Percent non-ok before warning")
    critical: Optional[int] = Field(default=None, ge=0, le=100, description="Percent non-ok before critical")

    force_unlock: bool = Field(default=False, description="Clear any held lock before acquiring (debugging only)")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("cluster_name", "check", "namespace")
    @classmethod
    def _valid_key_component(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        if KEY_SEPARATOR in value:
            raise ValueError(f"must not contain {KEY_SEPARATOR!r}")
        return value

    @property
    def lock_key(self) -> str:
        return lock_key(self.cluster_name, self.check, namespace=self.namespace)

    @property
    def effective_interval(self) -> int:
        return self.interval if self.interval is not None else DEFAULT_INTERVAL


def load_config(config_path: Optional[str] = None, **overrides: Any) -> ClusterCheckConfig:
    """Load configuration from file, environment variables and explicit overrides."""
    if config_path is None:
        config_path = os.getenv("CLUSTER_GUARD_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: Dict[str, Any] = {}

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError("Cannot read config file", config_file=config_path, details=str(e)) from e

    if not isinstance(config_data, dict):
        raise ConfigurationError("Config file must contain a mapping", config_file=config_path)

    store_data = dict(config_data.get("store") or {})
    store_env = {
        "host": os.getenv("CLUSTER_GUARD_REDIS_HOST"),
        "port": os.getenv("CLUSTER_GUARD_REDIS_PORT"),
    }
    store_data.update({k: v for k, v in store_env.items() if v is not None})
    if store_data:
        config_data["store"] = store_data

    log_level = os.getenv("LOG_LEVEL")
    if log_level is not None:
        config_data["log_level"] = log_level

    config_data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ClusterCheckConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError("Invalid cluster check configuration", config_file=config_path, details=str(e)) from e
