"""
bootstrap/config.py - Application configuration

Provides configuration loading from files, environment variables, and defaults.
Precedence, lowest first: defaults, environment, config file, command-line flags.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional
from pathlib import Path
import os
import json
import logging

from kvshell.errors import ConfigurationError, ErrorCode

logger = logging.getLogger("bootstrap.config")

# Accepted JSON value types, keyed by the annotation string of each config field
_FIELD_TYPES = {
    "str": (str,),
    "bool": (bool,),
    "Optional[str]": (str, type(None)),
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StoreConfig:
    """Store location configuration."""

    dir: str = ""
    value_dir: str = ""
    sync_writes: bool = True

    @classmethod
    def from_env(cls) -> "StoreConfig":
        return cls(
            dir=os.getenv("KVSHELL_DIR", ""),
            value_dir=os.getenv("KVSHELL_VALUE_DIR", ""),
            sync_writes=_env_bool("KVSHELL_SYNC_WRITES", "true"),
        )


@dataclass
class ShellConfig:
    """Interactive shell configuration."""

    # {dir} is replaced with the store directory
    prompt: str = "{dir} > "
    history_file: str = "~/.kvshell_history"
    history_search: bool = True

    @classmethod
    def from_env(cls) -> "ShellConfig":
        return cls(
            prompt=os.getenv("KVSHELL_PROMPT", "{dir} > "),
            history_file=os.getenv("KVSHELL_HISTORY_FILE", "~/.kvshell_history"),
            history_search=_env_bool("KVSHELL_HISTORY_SEARCH", "true"),
        )

    def render_prompt(self, store_dir: str) -> str:
        return self.prompt.replace("{dir}", store_dir)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("KVSHELL_LOG_LEVEL", "WARNING"),
            format=os.getenv("KVSHELL_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("KVSHELL_LOG_FILE"),
            json_logs=_env_bool("KVSHELL_JSON_LOGS", "false"),
        )


@dataclass
class KVShellConfig:
    """Root configuration for kvshell."""

    store: StoreConfig = field(default_factory=StoreConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "KVShellConfig":
        """Create configuration from environment variables."""
        return cls(
            store=StoreConfig.from_env(),
            shell=ShellConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "KVShellConfig":
        """
        Load configuration from a JSON file on top of the environment.

        Raises:
            ConfigurationError: if the file exists but cannot be read or parsed.
        """
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using defaults")
            return cls.from_env()

        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"cannot read config file {filepath}: {e}", code=ErrorCode.CFG_UNREADABLE
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"config file {filepath} must hold a JSON object")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "KVShellConfig":
        """Create config from dictionary."""
        config = cls.from_env()

        # Override with file values
        for section in ("store", "shell", "logging"):
            if section not in data:
                continue
            values = data[section]
            if not isinstance(values, dict):
                raise ConfigurationError(
                    f"config section {section!r} must be an object, got {type(values).__name__}",
                    code=ErrorCode.CFG_INVALID,
                )
            target = getattr(config, section)
            field_types = {f.name: f.type for f in fields(target)}
            for key, value in values.items():
                if key not in field_types:
                    logger.warning(f"Ignoring unknown config key: {section}.{key}")
                    continue
                allowed = _FIELD_TYPES[field_types[key]]
                # bool is an int subclass, so match exactly
                if type(value) not in allowed:
                    raise ConfigurationError(
                        f"config key {section}.{key} must be {field_types[key]}, got {type(value).__name__}",
                        code=ErrorCode.CFG_INVALID,
                    )
                setattr(target, key, value)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "store": {
                "dir": self.store.dir,
                "value_dir": self.store.value_dir,
                "sync_writes": self.store.sync_writes,
            },
            "shell": {
                "prompt": self.shell.prompt,
                "history_file": self.shell.history_file,
                "history_search": self.shell.history_search,
            },
            "logging": {
                "level": self.logging.level,
                "log_file": self.logging.log_file,
                "json_logs": self.logging.json_logs,
            },
        }


DEFAULT_CONFIG_PATHS = (
    "./kvshell.json",
    "~/.kvshell/config.json",
)


def load_config(filepath: Optional[str] = None) -> KVShellConfig:
    """
    Load configuration from file or environment.

    Args:
        filepath: Optional path to JSON config file

    Returns:
        KVShellConfig instance
    """
    if filepath:
        config = KVShellConfig.from_file(filepath)
    else:
        for candidate in DEFAULT_CONFIG_PATHS:
            path = Path(os.path.expanduser(candidate))
            if path.exists():
                logger.info(f"Loading config from: {path}")
                return KVShellConfig.from_file(str(path))

        # Fall back to environment
        config = KVShellConfig.from_env()

    logger.debug(f"Configuration loaded: store.dir={config.store.dir!r}")
    return config
