from __future__ import annotations

import os
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    CONFIG_ENV_VAR,
    DATABASE_URL_ENV_VARS,
    DEFAULT_CONFIG_PATH,
    NOTIFICATIONS_ENV_VAR,
)


class NotificationConfig(BaseModel):
    """Where approval notifications are sent."""

    backend: Literal["outbox", "inmemory"] = "outbox"


class CampgateConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    notifications: NotificationConfig = NotificationConfig()


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    database_url = next(
        (os.environ[name] for name in DATABASE_URL_ENV_VARS if os.getenv(name)), None
    )
    if database_url:
        overrides["database_url"] = database_url
    backend = os.getenv(NOTIFICATIONS_ENV_VAR)
    if backend:
        overrides["notifications"] = {"backend": backend.lower()}
    return overrides


def load_config(path: Optional[str] = None) -> CampgateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to CAMPGATE_CONFIG env
            variable or 'config.yaml' in the current directory.

    ``CAMPGATE_DATABASE_URL`` (or ``DATABASE_URL``) and ``CAMPGATE_NOTIFICATIONS``
    take precedence over the values in the file.
    """

    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    data: dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    overrides = _env_overrides()
    if "notifications" in overrides:
        data["notifications"] = {**(data.get("notifications") or {}), **overrides.pop("notifications")}
    data.update(overrides)
    return CampgateConfig.model_validate(data)
