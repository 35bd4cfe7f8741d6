"""
Agent Configuration

YAML configuration file for the shadow agent. Values given on the command
line or through environment variables override the file.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .osquery import HostIdentifier

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "shadow_agent.yaml"
DEFAULT_SERVER = "hyprwatch.cloud"


@dataclass
class AgentConfig:
    """Shadow agent settings."""
    server: str = DEFAULT_SERVER
    org_token: Optional[str] = None
    ca_cert: Optional[Path] = None
    data_dir: Optional[Path] = None
    osqueryd_path: Optional[Path] = None
    host_identifier: HostIdentifier = HostIdentifier.UUID
    distributed_interval: int = 10
    skip_verify: bool = False
    verbose: bool = False
    log_level: str = "info"
    log_file: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        """Build config from the nested YAML structure."""
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping")

        server = _section(data, "server")
        agent = _section(data, "agent")
        log = _section(data, "logging")

        values = {
            "server": server.get("host"),
            "org_token": server.get("org_token"),
            "ca_cert": server.get("ca_cert"),
            "data_dir": agent.get("data_dir"),
            "osqueryd_path": agent.get("osqueryd_path"),
            "host_identifier": agent.get("host_identifier"),
            "distributed_interval": agent.get("distributed_interval"),
            "skip_verify": agent.get("skip_verify"),
            "log_level": log.get("level"),
            "log_file": log.get("file"),
        }
        return cls().merge(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the nested YAML structure."""
        return {
            "server": {
                "host": self.server,
                "org_token": self.org_token,
                "ca_cert": _str_or_none(self.ca_cert),
            },
            "agent": {
                "data_dir": _str_or_none(self.data_dir),
                "osqueryd_path": _str_or_none(self.osqueryd_path),
                "host_identifier": self.host_identifier.value,
                "distributed_interval": self.distributed_interval,
                "skip_verify": self.skip_verify,
            },
            "logging": {
                "level": self.log_level,
                "file": _str_or_none(self.log_file),
            },
        }

    def merge(self, **overrides: Any) -> "AgentConfig":
        """Return a copy with every non-None override applied and validated."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}

        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"Unknown config option: {key}")
            if value is not None:
                values[key] = value

        return AgentConfig(**_coerce(values))


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def _str_or_none(value: Optional[Path]) -> Optional[str]:
    return str(value) if value is not None else None


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("ca_cert", "data_dir", "osqueryd_path", "log_file"):
        if values[key] is not None:
            values[key] = Path(values[key]).expanduser()

    try:
        values["host_identifier"] = HostIdentifier(str(values["host_identifier"]).lower())
    except ValueError:
        raise ConfigError(
            f"Invalid host_identifier '{values['host_identifier']}' (expected 'uuid' or 'instance')"
        ) from None

    interval = values["distributed_interval"]
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ConfigError(f"distributed_interval must be a positive integer, got {interval!r}")

    for key in ("skip_verify", "verbose"):
        if not isinstance(values[key], bool):
            raise ConfigError(f"{key} must be true or false, got {values[key]!r}")

    level = str(values["log_level"]).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"Invalid logging level: {values['log_level']}")
    values["log_level"] = level.lower()

    if not isinstance(values["server"], str) or not values["server"]:
        raise ConfigError("server host must be a non-empty string")

    return values


def load_config(path: Path) -> AgentConfig:
    """
    Load agent configuration from a YAML file.

    A missing file yields the defaults.
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"Config file {path} not found, using defaults")
        return AgentConfig()

    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    return AgentConfig.from_dict(data)


def save_config(config: AgentConfig, path: Path) -> None:
    """Write agent configuration to a YAML file readable only by its owner."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        # The file holds the organization token
        path.chmod(0o600)
    except OSError as e:
        raise ConfigError(f"Failed to write config file {path}: {e}") from e
