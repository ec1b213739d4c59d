"""
Configuration management for nukeflow.

Settings live in `$NUKEFLOW_HOME/config.yaml` (default ~/.config/nukeflow).
An optional dotenv file is loaded into the environment, and
NUKEFLOW_MAX_CONCURRENCY / NUKEFLOW_FAILURE_POLICY override the file.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from nukeflow.errors import ConfigError
from nukeflow.executor import FailurePolicy

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("pretty", "structured")


def get_nukeflow_home() -> Path:
    """Directory holding config.yaml and .env."""
    home = os.environ.get("NUKEFLOW_HOME")
    if home:
        return Path(home)
    return Path("~/.config/nukeflow").expanduser()


@dataclass
class NukeflowConfig:
    """Runtime settings for batch execution."""
    max_concurrency: int = 1
    failure_policy: str = "halt_on_first_failure"
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None
    env_file: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ConfigError(f"max_concurrency must be an integer, got {self.max_concurrency!r}")
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        try:
            self.failure_policy = FailurePolicy.from_string(self.failure_policy).value
        except ValueError as e:
            raise ConfigError(str(e)) from e
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {LOG_LEVELS}, got {self.log_level!r}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")

    @property
    def log_path(self) -> Optional[Path]:
        return Path(self.log_file).expanduser() if self.log_file else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NukeflowConfig":
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**data)


def default_config_dict(home: Path) -> dict[str, Any]:
    """Settings written by `nukeflow init`."""
    return {
        "max_concurrency": 1,
        "failure_policy": "halt_on_first_failure",
        "log_level": "INFO",
        "log_format": "pretty",
        "log_file": None,
        "env_file": str(home / ".env"),
    }


def load_config(config_path: Optional[Path] = None) -> NukeflowConfig:
    """
    Load nukeflow configuration.

    Args:
        config_path: Path to config file. Defaults to $NUKEFLOW_HOME/config.yaml

    Returns:
        NukeflowConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is not valid YAML or has invalid values
    """
    if config_path is None:
        config_path = get_nukeflow_home() / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"nukeflow config.yaml not found at {config_path}. Run `nukeflow init` first."
        )

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    env_file = data.get("env_file")
    if env_file:
        env_path = Path(env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    if os.environ.get("NUKEFLOW_MAX_CONCURRENCY"):
        raw = os.environ["NUKEFLOW_MAX_CONCURRENCY"]
        try:
            data["max_concurrency"] = int(raw)
        except ValueError as e:
            raise ConfigError(f"NUKEFLOW_MAX_CONCURRENCY must be an integer, got {raw!r}") from e
    if os.environ.get("NUKEFLOW_FAILURE_POLICY"):
        data["failure_policy"] = os.environ["NUKEFLOW_FAILURE_POLICY"]

    return NukeflowConfig.from_dict(data)
