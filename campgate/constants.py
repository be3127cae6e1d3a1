"""Shared constants for campgate."""

DEFAULT_PRIORITY = "medium"
DEFAULT_CONFIG_PATH = "config.yaml"

CONFIG_ENV_VAR = "CAMPGATE_CONFIG"
DATABASE_URL_ENV_VARS = ("CAMPGATE_DATABASE_URL", "DATABASE_URL")
NOTIFICATIONS_ENV_VAR = "CAMPGATE_NOTIFICATIONS"
