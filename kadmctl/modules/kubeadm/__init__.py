"""
kubeadm Cluster Lifecycle Module

This package drives kubeadm on remote hosts to build and reshape
multi-master Kubernetes clusters.

Key Features:
- Version-aware kubeadm command rendering (flag and config-file families)
- Master0 bootstrap, master and worker join
- Best-effort master and worker removal
- Fail-fast and best-effort per-host fan-out
- lvscare static pod load balancing for workers
"""

# Core functionality
from .models import (
    ClusterState,
    CgroupDriver,
    CommandRole,
    DeleteStage,
    HostOperation,
    JoinStage,
    RegistryConfig,
)
from .errors import (
    BootstrapConfigError,
    ClusterOperationError,
    CommandBuildError,
    CommandExecutionError,
    CredentialFetchError,
    DistributionError,
    PartialCleanupError,
    UnreachableHostError,
    UnsupportedRoleError,
    VersionResolutionWarning,
)
from .version import VersionRule, resolve_rule, check_certs_command
from .commands import KubeadmCommand, build_command
from .fanout import FanoutPolicy, TaskGroup, run_on_each
from .runtime import CertificateAuthority, Runtime
from .join import join_masters, join_nodes
from .delete import delete_masters, delete_nodes
from .init import init, init_master0

# Configuration management
from .config import RuntimeConfig, get_config, set_config, DEFAULT_CONFIG_PATHS

__all__ = [
    # Core classes
    'ClusterState',
    'CgroupDriver',
    'CommandRole',
    'DeleteStage',
    'HostOperation',
    'JoinStage',
    'RegistryConfig',
    'KubeadmCommand',
    'VersionRule',
    'Runtime',
    'CertificateAuthority',
    'TaskGroup',
    'FanoutPolicy',

    # Errors
    'BootstrapConfigError',
    'ClusterOperationError',
    'CommandBuildError',
    'CommandExecutionError',
    'CredentialFetchError',
    'DistributionError',
    'PartialCleanupError',
    'UnreachableHostError',
    'UnsupportedRoleError',
    'VersionResolutionWarning',

    # Configuration management
    'RuntimeConfig',
    'get_config',
    'set_config',
    'DEFAULT_CONFIG_PATHS',

    # Cluster operations
    'build_command',
    'resolve_rule',
    'check_certs_command',
    'run_on_each',
    'init',
    'init_master0',
    'join_masters',
    'join_nodes',
    'delete_masters',
    'delete_nodes',
]
