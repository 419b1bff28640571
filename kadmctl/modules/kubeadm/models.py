"""Data models for the kubeadm runtime."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

DEFAULT_API_SERVER_DOMAIN = 'apiserver.cluster.local'
DEFAULT_REGISTRY_DOMAIN = 'registry.cluster.local'
DEFAULT_REGISTRY_ALIAS = 'hub.cluster.local'
API_SERVER_PORT = 6443


class CommandRole(str, Enum):
    """Roles a kubeadm command can be rendered for."""
    INIT_MASTER = 'initMaster'
    JOIN_MASTER = 'joinMaster'
    JOIN_NODE = 'joinNode'


class CgroupDriver(str, Enum):
    """Cgroup drivers the kubelet can be configured with."""
    SYSTEMD = 'systemd'
    CGROUPFS = 'cgroupfs'


class JoinStage(str, Enum):
    """Stages of the master join pipeline."""
    NO_OP = 'no_op'
    ENSURE_BOOTSTRAP_CONFIG = 'ensure_bootstrap_config'
    WAIT_REACHABLE = 'wait_reachable'
    FETCH_JOIN_CREDENTIALS = 'fetch_join_credentials'
    DISTRIBUTE_STATIC_FILES = 'distribute_static_files'
    RENDER_AND_SEND_JOIN_CONFIG = 'render_and_send_join_config'
    PATCH_KNOWN_VERSION_QUIRK = 'patch_known_version_quirk'
    EXECUTE_JOIN = 'execute_join'
    JOINED = 'joined'
    FAILED = 'failed'


class DeleteStage(str, Enum):
    """Stages of the node removal pipeline."""
    CLEANUP_HOST = 'cleanup_host'
    DELETE_NODE_OBJECT = 'delete_node_object'
    REFRESH_LOAD_BALANCER = 'refresh_load_balancer'


def _unique(ips: Iterable[str]) -> List[str]:
    seen = []
    for ip in ips:
        ip = str(ip).strip()
        if ip and ip not in seen:
            seen.append(ip)
    return seen


@dataclass
class RegistryConfig:
    """Private image registry the cluster pulls from."""
    domain: str = DEFAULT_REGISTRY_DOMAIN
    ip: str = ''
    port: int = 5000
    username: str = ''
    password: str = ''
    alias: str = DEFAULT_REGISTRY_ALIAS

    @property
    def endpoint(self) -> str:
        return f"{self.domain}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def repo(self) -> str:
        """Return the repository prefix images are pulled from."""
        return self.endpoint


@dataclass
class ClusterState:
    """Authoritative view of the cluster shared by all workers of a batch.

    Every mutation happens while holding ``lock``. ``master0`` is derived
    from the first master so it can never drift out of the master list.
    """
    name: str
    kube_version: str
    masters: List[str] = field(default_factory=list)
    nodes: List[str] = field(default_factory=list)
    api_server_domain: str = DEFAULT_API_SERVER_DOMAIN
    vip: str = '10.103.97.2'
    join_token: str = ''
    token_ca_cert_hash: str = ''
    certificate_key: str = ''
    cgroup_driver: CgroupDriver = CgroupDriver.SYSTEMD
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    cert_sans: List[str] = field(default_factory=list)
    svc_cidr: str = '10.96.0.0/12'
    pod_cidr: str = '100.64.0.0/10'
    dns_domain: str = 'cluster.local'
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        self.masters = _unique(self.masters)
        self.nodes = _unique(self.nodes)
        if not self.registry.ip and self.masters:
            self.registry.ip = self.masters[0]

    @property
    def master0(self) -> Optional[str]:
        return self.masters[0] if self.masters else None

    @property
    def has_credentials(self) -> bool:
        return bool(self.join_token and self.token_ca_cert_hash and self.certificate_key)

    def set_credentials(self, token: str, ca_cert_hash: str, certificate_key: str) -> None:
        """Commit a complete credential set for the current batch."""
        with self.lock:
            self.join_token = token
            self.token_ca_cert_hash = ca_cert_hash
            self.certificate_key = certificate_key

    def clear_credentials(self) -> None:
        with self.lock:
            self.join_token = ''
            self.token_ca_cert_hash = ''
            self.certificate_key = ''

    def add_masters(self, ips: Iterable[str]) -> None:
        with self.lock:
            self.masters = _unique(list(self.masters) + list(ips))

    def add_nodes(self, ips: Iterable[str]) -> None:
        with self.lock:
            self.nodes = _unique(list(self.nodes) + list(ips))

    def remove_master(self, ip: str) -> None:
        with self.lock:
            self.masters = [m for m in self.masters if m != ip]

    def remove_node(self, ip: str) -> None:
        with self.lock:
            self.nodes = [n for n in self.nodes if n != ip]

    def remaining_masters(self, excluded: str) -> List[str]:
        """Masters that are left once ``excluded`` is gone."""
        with self.lock:
            return [m for m in self.masters if m != excluded]


@dataclass(frozen=True)
class HostOperation:
    """A batch of commands bound to one target host.

    Built fresh for every dispatch and never shared between workers.
    """
    target: str
    commands: Tuple[str, ...]
    stage: str = ''
    expected_outcome: str = 'exit 0'

    def __post_init__(self):
        object.__setattr__(self, 'commands', tuple(c for c in self.commands if c))

    def describe(self) -> str:
        return f"{self.stage or 'operation'} on {self.target} ({len(self.commands)} commands)"
