"""Manages configuration for pyrepoq.

This module loads, merges and saves the application's settings. Values come
from built-in defaults, TOML files and environment variables, and include
the named repositories a user can refer to from the command line.
"""

import copy
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

try:
    import tomllib  # Available in Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for Python versions < 3.11

import tomli_w

from .models import RepoUrl

# The default path for the user-specific global configuration file.
USER_CONFIG_PATH = Path.home() / ".config" / "repoq" / "config.toml"

WORKSPACE_CONFIG_NAME = "repoq-workspace.toml"


class Config:
    """Handles the configuration for the pyrepoq application.

    Sources are applied in this order, later ones winning:
    1.  Default values.
    2.  Project-specific `repoq-workspace.toml` file.
    3.  User-level `~/.config/repoq/config.toml` file.
    4.  A custom configuration file specified at runtime (replaces 2 and 3).
    5.  Environment variables.

    Attributes:
        DEFAULT_CONFIG (Dict[str, Any]): The default configuration values.
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "workers": 20,  # Size of the worker pool used by `batch`.
        "username": None,  # Fallback credentials for repositories without their own.
        "password": None,
        "cache": {
            "root": "/var/tmp",
            "cleanup": True,  # Clear the repoquery cache around every run.
        },
        "repositories": {},  # name -> {url, username, password, repo_id}
    }

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initializes the configuration manager.

        Args:
            config_path (Optional[Path]): A specific configuration file to
                load instead of the default locations.
        """
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self._load_config(config_path)

    def _load_config(self, config_path: Optional[Path] = None) -> None:
        if config_path:
            self._load_file_config(Path(config_path))
        else:
            self._load_default_configs()

        self._load_env_config()

    def _load_default_configs(self) -> None:
        project_config = Path.cwd() / WORKSPACE_CONFIG_NAME
        if project_config.exists():
            self._load_file_config(project_config)

        if USER_CONFIG_PATH.exists():
            self._load_file_config(USER_CONFIG_PATH)

    def _merge_configs(self, base: Dict[str, Any], new: Dict[str, Any]) -> None:
        """Recursively merges a new config dict into a base dict."""
        for key, value in new.items():
            if isinstance(value, dict) and key in base and isinstance(base[key], dict):
                self._merge_configs(base[key], value)
            else:
                base[key] = value

    def _load_file_config(self, config_path: Path) -> None:
        """Loads and merges configuration from a TOML file.

        An unreadable or invalid file is reported on stderr and skipped.
        """
        try:
            with open(config_path, "rb") as f:
                self._merge_configs(self.config, tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}", file=sys.stderr)

    def _load_env_config(self) -> None:
        env_mapping = {
            "REPOQ_WORKERS": "workers",
            "REPOQ_USERNAME": "username",
            "REPOQ_PASSWORD": "password",
            "REPOQ_CACHE_ROOT": "cache.root",
            "REPOQ_CACHE_CLEANUP": "cache.cleanup",
        }

        for env_var, config_key in env_mapping.items():
            value = os.getenv(env_var)
            if value is not None:
                self._set_nested_key(config_key, value)

    def _set_nested_key(self, key_path: str, value: str) -> None:
        """Sets a value from an environment variable, casting by key."""
        keys = key_path.split('.')
        target_config = self.config
        for key in keys[:-1]:
            if key not in target_config or not isinstance(target_config[key], dict):
                target_config[key] = {}
            target_config = target_config[key]

        leaf_key = keys[-1]

        if leaf_key == "cleanup":
            target_config[leaf_key] = value.lower() in ("true", "1", "yes", "on")
        elif leaf_key == "workers":
            try:
                target_config[leaf_key] = int(value)
            except ValueError:
                print(f"Warning: Invalid integer value for {leaf_key}: {value}", file=sys.stderr)
        else:
            target_config[leaf_key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieves a configuration value using a dot-separated key.

        Args:
            key (str): The dot-separated key (e.g., "cache.root").
            default (Any): Returned when the key is not found.
        """
        keys = key.split('.')
        value = self.config
        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        keys = key.split('.')
        target_config = self.config
        for k in keys[:-1]:
            target_config = target_config.setdefault(k, {})
        target_config[keys[-1]] = value

    def repository(self, name: str) -> Tuple[RepoUrl, Optional[str]]:
        """Looks up a named repository.

        Remote (http/https) repositories without their own credentials
        fall back to the top-level `username`/`password`. File
        repositories never pick up the fallback.

        Args:
            name (str): The key under `[repositories]`.

        Returns:
            Tuple[RepoUrl, Optional[str]]: The location and the configured
            repo id, if any.

        Raises:
            KeyError: If no repository of that name is configured.
        """
        repos = self.get("repositories", {}) or {}
        if name not in repos:
            raise KeyError(f"Repository '{name}' is not configured.")
        entry = repos[name]
        repo_url = RepoUrl(entry["url"], entry.get("username"), entry.get("password"))
        self.apply_default_credentials(repo_url)
        return repo_url, entry.get("repo_id")

    def apply_default_credentials(self, repo_url: RepoUrl) -> None:
        """Fills missing credentials of a remote location from the top-level settings."""
        if not repo_url.accepts_credentials():
            return
        if repo_url.username is None:
            repo_url.username = self.get("username")
        if repo_url.password is None:
            repo_url.password = self.get("password")

    def _get_user_config(self) -> Dict[str, Any]:
        if not USER_CONFIG_PATH.exists():
            return {}
        try:
            with open(USER_CONFIG_PATH, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            return {}

    def save_user_config(self) -> None:
        """Saves settings that differ from the defaults to the user config file.

        Credentials read from the environment are never written.

        Raises:
            IOError: If the configuration file cannot be written.
        """
        user_config = self._get_user_config()

        for key, value in self.config.items():
            if key in ("username", "password") and os.getenv(f"REPOQ_{key.upper()}") is not None:
                continue
            if value is None:
                continue
            if key not in self.DEFAULT_CONFIG or value != self.DEFAULT_CONFIG[key]:
                user_config[key] = value

        try:
            USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
            with open(USER_CONFIG_PATH, "wb") as f:
                tomli_w.dump(user_config, f)
        except (OSError, TypeError, ValueError) as e:
            raise IOError(f"Failed to save configuration to {USER_CONFIG_PATH}: {e}") from e

    def reset_user_config(self) -> bool:
        """Deletes the user config file.

        Returns:
            bool: True if a file was removed, False if there was none.
        """
        if not USER_CONFIG_PATH.exists():
            return False
        USER_CONFIG_PATH.unlink()
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self._load_env_config()
        return True

    def __str__(self) -> str:
        return f"Config({self.config})"
