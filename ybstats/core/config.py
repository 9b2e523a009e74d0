"""
Configuration management for ybstats.

Handles loading config from ~/.ybstats/config.yaml and providing
default values for all settings.

Command-line values override the file; the overrides are carried back
in ResolvedTargets.overrides and only written to disk through
Config.save_overrides when execution.remember_overrides is enabled.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ybstats.errors import ConfigError


# Default paths
DEFAULT_BASE_DIR = Path.home() / ".ybstats"
DEFAULT_CONFIG_FILE = DEFAULT_BASE_DIR / "config.yaml"
DEFAULT_SNAPSHOT_DIR = Path("ybstats.snapshots")

# Cluster defaults
DEFAULT_HOSTS = "192.168.66.80,192.168.66.81,192.168.66.82"
DEFAULT_PORTS = "7000,9000,12000,13000,9300"
DEFAULT_PORT_ROLES = {
    "master": 7000,
    "tserver": 9000,
    "ycql": 12000,
    "ysql": 13000,
    "node_exporter": 9300,
}


@dataclass
class ExecutionConfig:
    """Collection settings (can be overridden on the command line)."""

    parallel: int = 1
    timeout: float = 10.0
    probe_timeout: float = 1.0
    remember_overrides: bool = False


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "WARNING"
    file: Optional[Path] = None


@dataclass
class Config:
    """Main configuration container."""

    config_file: Path = DEFAULT_CONFIG_FILE

    # Cluster
    hosts: str = DEFAULT_HOSTS
    ports: str = DEFAULT_PORTS
    port_roles: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PORT_ROLES))
    tls_ports: List[int] = field(default_factory=list)

    # Storage
    snapshot_dir: Path = DEFAULT_SNAPSHOT_DIR

    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default location.
                         Can also be set via YBSTATS_CONFIG env var.

        Returns:
            Config instance with values from file merged with defaults.

        Raises:
            ConfigError: File is not valid YAML or holds invalid values.
        """
        if config_path is None:
            config_path = Path(
                os.environ.get("YBSTATS_CONFIG", str(DEFAULT_CONFIG_FILE))
            )
        config_path = Path(config_path).expanduser()

        config = cls()
        config.config_file = config_path

        # If config file doesn't exist, return defaults
        if not config_path.exists():
            return config

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config YAML in {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config {config_path} must be a mapping")

        try:
            if "hosts" in data:
                config.hosts = _as_list_string(data["hosts"])

            if "ports" in data:
                config.ports = _as_list_string(data["ports"])

            if "port_roles" in data:
                roles = data["port_roles"] or {}
                config.port_roles = {str(role): int(port) for role, port in roles.items()}

            if "tls_ports" in data:
                config.tls_ports = [int(p) for p in (data["tls_ports"] or [])]

            if "snapshot_dir" in data:
                config.snapshot_dir = Path(data["snapshot_dir"]).expanduser()

            if "execution" in data:
                exec_data = data["execution"] or {}
                config.execution = ExecutionConfig(
                    parallel=int(exec_data.get("parallel", 1)),
                    timeout=float(exec_data.get("timeout", 10.0)),
                    probe_timeout=float(exec_data.get("probe_timeout", 1.0)),
                    remember_overrides=bool(exec_data.get("remember_overrides", False)),
                )

            if "logging" in data:
                log_data = data["logging"] or {}
                log_file = log_data.get("file")
                config.logging = LoggingConfig(
                    level=str(log_data.get("level", "WARNING")).upper(),
                    file=Path(log_file).expanduser() if log_file else None,
                )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid value in config {config_path}: {e}")

        return config

    def save_overrides(self, overrides: Dict[str, str]) -> bool:
        """
        Persist command-line overrides as the new defaults.

        Only keys handled by the resolver are written: hosts, ports, parallel.
        Other keys already in the file are preserved.

        Args:
            overrides: Mapping of setting name to the value given on the command line.

        Returns:
            True if the file was written, False if there was nothing to write.

        Raises:
            ConfigError: The file could not be written.
        """
        if not overrides:
            return False

        data: Dict = {}
        if self.config_file.exists():
            try:
                with open(self.config_file) as f:
                    data = yaml.safe_load(f) or {}
            except (yaml.YAMLError, OSError) as e:
                raise ConfigError(f"Cannot update config {self.config_file}: {e}")

        for key, value in overrides.items():
            if key == "parallel":
                data.setdefault("execution", {})["parallel"] = int(value)
                self.execution.parallel = int(value)
            elif key in ("hosts", "ports"):
                data[key] = value
                setattr(self, key, value)

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
        except OSError as e:
            raise ConfigError(f"Cannot write config {self.config_file}: {e}")

        return True


def _as_list_string(value) -> str:
    """Accept either a YAML list or a comma separated string."""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


# Process-wide instance
_config: Optional[Config] = None


def get_config(reload: bool = False, config_path: Optional[Path] = None) -> Config:
    """
    Get the process configuration instance.

    Args:
        reload: Force reload from file.
        config_path: Explicit config file (implies reload).

    Returns:
        Config instance.
    """
    global _config

    if _config is None or reload or config_path is not None:
        _config = Config.load(config_path)

    return _config
