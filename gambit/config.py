"""
Config system - Layered database configuration.

Sources, later overriding earlier:
1. Defaults (``DatabaseConfig``)
2. ``.env`` file (read with python-dotenv)
3. Environment variables (``GAMBIT_*`` prefix, ``__`` for nesting)
4. Manual overrides

    GAMBIT_DATABASE__URL=sqlite:///app.db
    GAMBIT_DATABASE__ECHO=true
    GAMBIT_DATABASE__OPTIONS={"timeout": 5}

Usage:
    from gambit.config import ConfigLoader
    from gambit.db import configure_database

    config = ConfigLoader.load(env_file=".env")
    db = configure_database(config.database_config())
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values

from .faults import ConfigInvalidFault

logger = logging.getLogger("gambit.config")

__all__ = ["DatabaseConfig", "ConfigLoader"]


@dataclass
class DatabaseConfig:
    """Connection settings for one database."""

    url: str = "sqlite:///:memory:"
    echo: bool = False
    connect_retries: int = 3
    connect_retry_delay: float = 0.5
    slow_query_ms: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)


class ConfigLoader:
    """
    Loads and merges configuration with precedence:
    overrides > environment variables > .env file > defaults
    """

    def __init__(self, env_prefix: str = "GAMBIT_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        env_prefix: str = "GAMBIT_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ConfigLoader:
        """
        Load configuration from every source.

        Args:
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_env_file(self, path: str) -> None:
        """Load prefixed keys from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            logger.debug(f"No env file at {env_path}")
            return
        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self, environ: Mapping[str, str]) -> None:
        """Load config from environment variables."""
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """Convert GAMBIT_DATABASE__URL to {"database": {"url": ...}}."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict) -> None:
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def database_config(self, section: str = "database") -> DatabaseConfig:
        """
        Build a ``DatabaseConfig`` from the ``section`` subtree.

        Raises:
            ConfigInvalidFault: unknown keys or values of the wrong type
        """
        data = self.get(section, {}) or {}
        if not isinstance(data, dict):
            raise ConfigInvalidFault(section, "expected a mapping")

        known = {f.name for f in fields(DatabaseConfig)}
        unknown = set(data) - known
        if unknown:
            raise ConfigInvalidFault(section, f"unknown keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        try:
            if "url" in data:
                kwargs["url"] = str(data["url"])
            if "echo" in data:
                kwargs["echo"] = bool(data["echo"])
            if "connect_retries" in data:
                kwargs["connect_retries"] = int(data["connect_retries"])
            if "connect_retry_delay" in data:
                kwargs["connect_retry_delay"] = float(data["connect_retry_delay"])
            if data.get("slow_query_ms") is not None:
                kwargs["slow_query_ms"] = float(data["slow_query_ms"])
        except (TypeError, ValueError) as exc:
            raise ConfigInvalidFault(section, str(exc)) from exc

        options = data.get("options", {})
        if not isinstance(options, dict):
            raise ConfigInvalidFault(f"{section}.options", "expected a mapping")
        kwargs["options"] = dict(options)
        return DatabaseConfig(**kwargs)

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()
