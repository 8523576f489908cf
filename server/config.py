"""
DevPilot Agent - Configuration Manager
========================================
Loads the agent configuration from two sources:

1. agent.config.json - Agent identity, listen address, projects, limits
                       (a .yaml / .yml file is accepted as well)
2. .env              - Secrets (the announce shared secret)

The configuration is read once at startup; the agent never writes it back.

Usage:
    manager = ConfigManager("/etc/devpilot/agent.config.json")
    config = manager.load()               # Merged with DEFAULTS
    secret = manager.get_announce_secret()
"""

import json
import os
from typing import Any

import yaml
from dotenv import dotenv_values

from agent.errors import ConfigError


# Default configuration values used when the config file is incomplete.
DEFAULTS = {
    "agentId": "devpilot-agent",
    "listen": {
        "host": "0.0.0.0",
        "port": 8787,
    },
    "projects": [],
    "announce": {
        "url": "",
        "interval": 30,
        "timeout": 10,
    },
    "tools": {
        "command_timeout": 120,
        "max_output_bytes": 1024 * 1024,
        "max_read_bytes": 5 * 1024 * 1024,
        "command_match": "prefix",
    },
    "server": {
        "public_projects": False,
        "log_dir": "data/logs",
    },
}

# Environment variable holding the shared secret sent with announces.
SECRET_ENV_NAME = "DEVPILOT_AGENT_SECRET"

DEFAULT_CONFIG_NAME = "agent.config.json"


class ConfigManager:
    """
    Reads the agent configuration file and its companion .env file.

    Attributes:
        config_path: Full path to the configuration document.
        config_dir:  Directory of the configuration document; relative
                     paths inside the config are resolved against it.
        env_path:    Full path to the .env file next to the config.
    """

    def __init__(self, config_path: str):
        """
        Initialize the config manager.

        Args:
            config_path: Path to agent.config.json (or a YAML equivalent).
        """
        self.config_path = os.path.abspath(config_path)
        self.config_dir = os.path.dirname(self.config_path)
        self.env_path = os.path.join(self.config_dir, ".env")

    def load(self) -> dict:
        """
        Load the configuration document and merge it with DEFAULTS.

        Returns:
            A dictionary containing the full configuration.

        Raises:
            ConfigError: If the file is missing, unreadable, or malformed.
        """
        config = _deep_copy(DEFAULTS)

        if not os.path.exists(self.config_path):
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                if self.config_path.endswith((".yaml", ".yml")):
                    user_config = yaml.safe_load(f) or {}
                else:
                    user_config = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid config file {self.config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {self.config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigError("Config document must be an object")

        _deep_merge(config, user_config)
        _validate(config)
        return config

    def resolve_path(self, path: str) -> str:
        """Resolve a path from the config relative to the config directory."""
        path = os.path.expanduser(path)
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.config_dir, path))

    def get_announce_secret(self) -> str | None:
        """
        Return the shared secret for announce requests.

        The process environment wins; otherwise the .env file next to the
        config is consulted.  Returns None if no secret is configured.
        """
        value = os.environ.get(SECRET_ENV_NAME)
        if value:
            return value
        if os.path.exists(self.env_path):
            return dotenv_values(self.env_path).get(SECRET_ENV_NAME) or None
        return None


# -- Helper Functions ---------------------------------------------------------

def _validate(config: dict) -> None:
    """Check the shape of the sections the agent depends on."""
    if not isinstance(config.get("agentId"), str) or not config["agentId"]:
        raise ConfigError("'agentId' must be a non-empty string")

    listen = config.get("listen")
    if not isinstance(listen, dict):
        raise ConfigError("'listen' must be an object")
    port = listen.get("port")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ConfigError("'listen.port' must be an integer between 1 and 65535")

    for section in ("announce", "tools", "server"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"'{section}' must be an object")


def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
