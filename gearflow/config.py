"""Configuration loading: YAML settings file plus environment variables.

Non-secret settings live in ``config/settings.yaml``; backend credentials
come from the process environment (optionally populated from ``.env``).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from gearflow.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

ENV_BACKEND_URL = "SUPABASE_URL"
ENV_ANON_KEY = "SUPABASE_ANON_KEY"
ENV_SERVICE_KEY = "SUPABASE_SERVICE_ROLE_KEY"


def load_environment(env_path: str = ".env") -> bool:
    """Load variables from a dotenv file if it exists.

    Returns:
        True if the file was found and loaded.
    """
    env_file = Path(env_path)
    if not env_file.exists():
        return False
    load_dotenv(env_file)
    logger.info("Loaded environment from %s", env_path)
    return True


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load the YAML configuration file, returning ``{}`` if it is missing."""
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning("Config file not found: %s, using defaults.", config_path)
        return {}
    with open(config_file, "r", encoding="utf-8") as fh:
        config = yaml.safe_load(fh) or {}
    logger.info("Configuration loaded from %s", config_path)
    return config


def get_setting(config: dict[str, Any], dotted_key: str, default: Any = None) -> Any:
    """Look up ``"section.key"`` in a nested config dict.

    Examples:
        >>> get_setting({"reports": {"days": 7}}, "reports.days")
        7
        >>> get_setting({}, "reports.days", 14)
        14
    """
    node: Any = config
    for part in dotted_key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


@dataclass(frozen=True)
class BackendSettings:
    """Connection details for the hosted backend."""

    url: str
    anon_key: str
    service_key: Optional[str] = None
    timeout: float = 30.0

    @property
    def api_key(self) -> str:
        """Key used for server-side calls (service role preferred)."""
        return self.service_key or self.anon_key

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    @classmethod
    def from_env(cls, timeout: float = 30.0) -> "BackendSettings":
        return cls(
            url=os.getenv(ENV_BACKEND_URL, "").strip().rstrip("/"),
            anon_key=os.getenv(ENV_ANON_KEY, "").strip(),
            service_key=os.getenv(ENV_SERVICE_KEY, "").strip() or None,
            timeout=timeout,
        )


def require_backend_settings(timeout: float = 30.0) -> BackendSettings:
    """Return backend settings or raise if the URL or key is absent.

    Raises:
        ConfigurationError: When ``SUPABASE_URL`` or ``SUPABASE_ANON_KEY``
            is not set.
    """
    settings = BackendSettings.from_env(timeout=timeout)
    missing = []
    if not settings.url:
        missing.append(ENV_BACKEND_URL)
    if not settings.anon_key:
        missing.append(ENV_ANON_KEY)
    if missing:
        raise ConfigurationError(
            "Missing required environment variables: " + ", ".join(missing)
        )
    return settings
