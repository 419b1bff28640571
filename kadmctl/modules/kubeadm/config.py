"""Runtime configuration management.

This module handles configuration loading from multiple sources with the following precedence:
1. Explicitly passed parameters
2. Configuration files
3. Environment variables (through kadmctl.config.Config)
4. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from kadmctl.config import Config

logger = logging.getLogger("kubeadm.config")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/kadmctl/config.yaml"),
    Path("~/.config/kadmctl/config.yaml").expanduser(),
    Path("kadmctl-config.yaml").absolute(),
]


class SSHConfig(BaseModel):
    """SSH connection configuration."""
    user: str = Field(default="root", description="Default SSH username")
    password: Optional[str] = Field(default=None, description="SSH password (key auth is preferred)")
    key_path: Optional[str] = Field(default="~/.ssh/id_rsa", description="Path to SSH private key")
    port: int = Field(default=22, description="SSH port number")
    connect_timeout: int = Field(
        default_factory=lambda: Config.SSH_TIMEOUT,
        description="SSH connection timeout in seconds"
    )

    @field_validator('key_path')
    @classmethod
    def expand_key_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the key path."""
        return os.path.expanduser(v) if v else v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=lambda: Config.LOG_LEVEL, description="Logging level")
    file: Optional[str] = Field(
        default_factory=lambda: Config.LOG_FILE or None,
        description="Path to log file (if None, logs to stdout only)"
    )
    max_size_mb: int = Field(default=100, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


class StaticFile(BaseModel):
    """A rootfs artifact copied to every joining master."""
    src: str
    dst: str


class RuntimeSettings(BaseModel):
    """Knobs of the kubeadm runtime itself."""
    vlog: int = Field(default=0, ge=0, le=10, description="kubeadm -v verbosity")
    rootfs: str = Field(
        default="/var/lib/kadmctl/rootfs",
        description="Remote directory holding etc/kubeadm.yml and the cluster binaries"
    )
    base_path: str = Field(
        default="~/.kadmctl",
        description="Local directory with kubeconfigs, pki/, certs/ and kubeadm.yml per cluster"
    )
    in_container: Optional[bool] = Field(
        default=None,
        description="Force container mode; None detects it at runtime"
    )
    ssh_ready_attempts: int = Field(default_factory=lambda: Config.SSH_READY_ATTEMPTS, ge=1)
    ssh_ready_interval: float = Field(default_factory=lambda: Config.SSH_READY_INTERVAL, ge=0)
    max_workers: int = Field(default_factory=lambda: Config.MAX_WORKERS, ge=0)
    static_files: List[StaticFile] = Field(
        default_factory=lambda: [
            StaticFile(src="statics/audit-policy.yml", dst="/etc/kubernetes/audit-policy.yml"),
        ]
    )
    cert_tool: str = Field(default="bin/kube-certgen", description="Cert generator, relative to rootfs")
    lb_image: str = Field(default="fanux/lvscare:latest", description="Load balancer image, below the registry")

    @field_validator('base_path')
    @classmethod
    def expand_base_path(cls, v: str) -> str:
        return os.path.expanduser(v)

    def cluster_dir(self, cluster_name: str) -> str:
        return os.path.join(self.base_path, cluster_name)


class RuntimeConfig(BaseModel):
    """kadmctl runtime configuration."""
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    model_config = {"extra": "ignore"}

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'RuntimeConfig':
        """Load configuration from file, falling back to defaults."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            config_data = cls._load_config_file(config_path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(exclude_none=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)


# Global configuration instance
_config: Optional[RuntimeConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> RuntimeConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = RuntimeConfig.load(config_path)
    return _config


def set_config(config: Optional[RuntimeConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
