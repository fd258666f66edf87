"""
Configuration management for drecipe.

Loads config.yaml from the drecipe home directory ($DRECIPE_HOME,
default ~/.config/drecipe). A missing default file yields defaults;
values given on the command line override the file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from drecipe.retry import DEFAULT_INTERVAL_SECONDS, DEFAULT_TIMEOUT_SECONDS

LOG_FORMATS = ("pretty", "structured")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_drecipe_home() -> Path:
    """Directory holding config.yaml ($DRECIPE_HOME or ~/.config/drecipe)."""
    home = os.environ.get("DRECIPE_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".config" / "drecipe"


@dataclass(frozen=True)
class EngineConfig:
    """Engine configuration."""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False
    persist_status: bool = True
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[Path] = None
    config_path: Optional[Path] = None

    def to_dict(self) -> dict[str, Any]:
        """Wire shape as written to config.yaml."""
        return {
            "retry": {
                "timeout_seconds": self.timeout_seconds,
                "interval_seconds": self.interval_seconds,
            },
            "kubeconfig": self.kubeconfig,
            "context": self.context,
            "in_cluster": self.in_cluster,
            "persist_status": self.persist_status,
            "logging": {
                "level": self.log_level,
                "format": self.log_format,
                "file": str(self.log_file) if self.log_file else None,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Optional[Path] = None) -> "EngineConfig":
        """
        Build from parsed YAML.

        Raises:
            ConfigError: If a section or value has the wrong type
        """
        retry = _section(data, "retry")
        logging_cfg = _section(data, "logging")

        log_format = str(logging_cfg.get("format") or "pretty")
        if log_format not in LOG_FORMATS:
            raise ConfigError(f"logging.format must be one of {list(LOG_FORMATS)}, got {log_format!r}")
        log_file = logging_cfg.get("file")

        return cls(
            timeout_seconds=_number(retry, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            interval_seconds=_number(retry, "interval_seconds", DEFAULT_INTERVAL_SECONDS),
            kubeconfig=data.get("kubeconfig"),
            context=data.get("context"),
            in_cluster=_flag(data, "in_cluster", False),
            persist_status=_flag(data, "persist_status", True),
            log_level=str(logging_cfg.get("level") or "INFO").upper(),
            log_format=log_format,
            log_file=Path(log_file).expanduser() if log_file else None,
            config_path=config_path,
        )


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _number(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value < 0:
        raise ConfigError(f"'{key}' must be non-negative, got {value!r}")
    return float(value)


def _flag(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to <drecipe home>/config.yaml

    Returns:
        EngineConfig instance

    Raises:
        FileNotFoundError: If an explicitly given config_path does not exist
        ConfigError: If the file is not valid YAML or has invalid values
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = get_drecipe_home() / "config.yaml"

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return EngineConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        return EngineConfig(config_path=config_path)
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_path}")
    return EngineConfig.from_dict(data, config_path=config_path)
