"""
Config system - Layered configuration for Kestrel applications.

Merge precedence (later overrides earlier):
1. KestrelConfig defaults
2. Config files (JSON / YAML)
3. .env file (KESTREL_* keys only)
4. Environment variables (KESTREL_* prefix)
5. Manual overrides
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .faults import ConfigFault


logger = logging.getLogger("kestrel.config")


@dataclass(frozen=True)
class KestrelConfig:
    """
    Process-wide, read-only application settings.

    Attributes:
        debug: Development mode
        expose_traceback: Show the stack and failure class on error pages
        dump_request_body: Include the request body in the request dump
        max_dump_bytes: Body bytes shown before truncation
        server_header: Value of the ``server`` response header
    """

    debug: bool = False
    expose_traceback: bool = True
    dump_request_body: bool = True
    max_dump_bytes: int = 65536
    server_header: str = "kestrel"


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Example:
        >>> config = ConfigLoader.load(paths=["kestrel.yaml"], env_file=".env").to_config()
        >>> config.expose_traceback
        True
    """

    def __init__(self, env_prefix: str = "KESTREL_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[Union[str, Path]]] = None,
        env_prefix: str = "KESTREL_",
        env_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source in precedence order.

        Args:
            paths: Config files (.json, .yaml, .yml)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for path in paths or []:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(Path(env_file))

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader.config_data.update(overrides)

        return loader

    def _load_file(self, path: Path) -> None:
        if not path.exists():
            logger.debug("Config file %s not found, skipping", path)
            return

        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
        elif path.suffix in (".yaml", ".yml"):
            import yaml
            with open(path) as f:
                data = yaml.safe_load(f)
        else:
            raise ConfigFault(message=f"Unsupported config file type: {path.suffix}")

        if data:
            if not isinstance(data, dict):
                raise ConfigFault(message=f"Config file {path} must contain a mapping")
            self.config_data.update(data)

    def _load_env_file(self, path: Path) -> None:
        if not path.exists():
            return

        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                if key.startswith(self.env_prefix):
                    self._set(key, value.strip().strip('"').strip("'"))

    def _load_from_env(self, environ: Dict[str, str]) -> None:
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set(key, value)

    def _set(self, key: str, value: str) -> None:
        """Convert KESTREL_MAX_DUMP_BYTES to max_dump_bytes."""
        self.config_data[key[len(self.env_prefix):].lower()] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False
        try:
            return int(value)
        except ValueError:
            return value

    def get(self, key: str, default: Any = None) -> Any:
        return self.config_data.get(key, default)

    def to_config(self) -> KestrelConfig:
        """
        Build a typed KestrelConfig from the merged data.

        Unknown keys are ignored.

        Raises:
            ConfigFault: If a value has the wrong type
        """
        values: Dict[str, Any] = {}
        for f in fields(KestrelConfig):
            if f.name not in self.config_data:
                continue
            value = self.config_data[f.name]
            expected = type(f.default)

            if expected is bool and isinstance(value, int) and not isinstance(value, bool):
                value = bool(value)
            elif expected is str and not isinstance(value, str):
                value = str(value)

            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise ConfigFault(
                    message=f"Invalid value for {f.name!r}: expected {expected.__name__}, got {value!r}",
                    metadata={"key": f.name},
                )
            values[f.name] = value

        if values.get("max_dump_bytes", 0) < 0:
            raise ConfigFault(message="max_dump_bytes must be >= 0", metadata={"key": "max_dump_bytes"})

        return replace(KestrelConfig(), **values)
