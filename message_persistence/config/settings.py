"""
Settings for the message persistence subsystem.

Resolution order, later wins: model defaults, the ``persistence:``
section of an optional YAML file, environment variables.

Expected YAML format:
```yaml
persistence:
  database:
    host: db.internal
    port: 5432
    name: payments
    user: persistence
    pool_min_size: 2
    pool_max_size: 10
  batch_mode: per_item
  logging:
    level: INFO
    format: json
  metrics_port: 8000
```
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

# env var -> (section, key) in the nested settings dict
ENV_OVERRIDES = {
    "DB_HOST": ("database", "host"),
    "DB_PORT": ("database", "port"),
    "DB_NAME": ("database", "name"),
    "DB_USER": ("database", "user"),
    "DB_PASSWORD": ("database", "password"),
    "DB_POOL_MIN_SIZE": ("database", "pool_min_size"),
    "DB_POOL_MAX_SIZE": ("database", "pool_max_size"),
    "DB_TIMEOUT": ("database", "timeout"),
    "BATCH_MODE": (None, "batch_mode"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "METRICS_PORT": (None, "metrics_port"),
}


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = Field(5432, ge=1, le=65535)
    name: str = "payments"
    user: str = "persistence"
    password: str | None = None
    pool_min_size: int = Field(2, ge=1)
    pool_max_size: int = Field(10, ge=1)
    timeout: float = Field(30.0, gt=0)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class PersistenceSettings(BaseModel):
    """
    Complete runtime configuration.

    Attributes:
        database: Connection pool settings
        batch_mode: "per_item" (one transaction per item) or "bulk" (one
            transaction per batch, creation only)
        logging: Log level and format
        metrics_port: Port for the Prometheus endpoint, None to disable it
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    batch_mode: Literal["per_item", "bulk"] = "per_item"
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics_port: int | None = None


def _read_yaml(config_path: str | Path) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {config_path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError("Settings file must contain a mapping")

    section = config.get("persistence", {})
    if not isinstance(section, dict):
        raise ValueError("'persistence' section must be a mapping")
    return section


def load_settings(config_path: str | Path | None = None) -> PersistenceSettings:
    """
    Load settings from an optional YAML file and the environment.

    Args:
        config_path: Optional path to a YAML settings file

    Returns:
        Validated PersistenceSettings

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If the file or a value is invalid
    """
    data: dict[str, Any] = _read_yaml(config_path) if config_path else {}

    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is None or value == "":
            continue
        if section is None:
            data[key] = value
        else:
            data.setdefault(section, {})[key] = value

    if "logging" in data and isinstance(data["logging"], dict):
        if isinstance(data["logging"].get("level"), str):
            data["logging"]["level"] = data["logging"]["level"].upper()
        if isinstance(data["logging"].get("format"), str):
            data["logging"]["format"] = data["logging"]["format"].lower()

    return PersistenceSettings.model_validate(data)
