"""Clusterfile: the persisted YAML description of a cluster.

Example::

    apiVersion: kadmctl/v1
    kind: Cluster
    metadata:
      name: prod
    spec:
      kubeVersion: v1.23.0
      masters: [10.0.0.1, 10.0.0.2, 10.0.0.3]
      nodes: [10.0.0.10]
      ssh:
        user: root
        keyPath: ~/.ssh/id_rsa
"""
import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kadmctl.modules.kubeadm.models import (
    DEFAULT_API_SERVER_DOMAIN,
    DEFAULT_REGISTRY_ALIAS,
    DEFAULT_REGISTRY_DOMAIN,
    CgroupDriver,
    ClusterState,
    RegistryConfig,
)
from kadmctl.modules.kubeadm.utils import write_yaml_file

logger = logging.getLogger("clusterfile")

API_VERSION = 'kadmctl/v1'
KIND = 'Cluster'


class ClusterfileError(Exception):
    """Raised when a Clusterfile cannot be read or is invalid."""


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class Metadata(_Model):
    name: str


class NetworkSpec(_Model):
    svc_cidr: str = Field(default='10.96.0.0/12', alias='svcCIDR')
    pod_cidr: str = Field(default='100.64.0.0/10', alias='podCIDR')
    dns_domain: str = Field(default='cluster.local', alias='dnsDomain')


class RegistrySpec(_Model):
    domain: str = DEFAULT_REGISTRY_DOMAIN
    ip: str = ''
    port: int = 5000
    username: str = ''
    password: str = ''
    alias: str = DEFAULT_REGISTRY_ALIAS


class SSHSpec(_Model):
    user: Optional[str] = None
    password: Optional[str] = None
    key_path: Optional[str] = Field(default=None, alias='keyPath')
    port: Optional[int] = None


class ClusterSpec(_Model):
    kube_version: str = Field(alias='kubeVersion')
    masters: List[str] = Field(default_factory=list)
    nodes: List[str] = Field(default_factory=list)
    api_server_domain: str = Field(default=DEFAULT_API_SERVER_DOMAIN, alias='apiServerDomain')
    vip: str = '10.103.97.2'
    cert_sans: List[str] = Field(default_factory=list, alias='certSANs')
    cgroup_driver: CgroupDriver = Field(default=CgroupDriver.SYSTEMD, alias='cgroupDriver')
    network: NetworkSpec = Field(default_factory=NetworkSpec)
    registry: RegistrySpec = Field(default_factory=RegistrySpec)
    ssh: SSHSpec = Field(default_factory=SSHSpec)

    @field_validator('masters', 'nodes')
    @classmethod
    def strip_hosts(cls, v: List[str]) -> List[str]:
        return [str(ip).strip() for ip in v if str(ip).strip()]


class Clusterfile(_Model):
    """Desired and last known shape of one cluster."""
    api_version: str = Field(default=API_VERSION, alias='apiVersion')
    kind: str = KIND
    metadata: Metadata
    spec: ClusterSpec

    @field_validator('kind')
    @classmethod
    def check_kind(cls, v: str) -> str:
        if v != KIND:
            raise ValueError(f"kind must be {KIND}, got {v}")
        return v

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Clusterfile':
        """Load a Clusterfile from YAML.

        Raises:
            ClusterfileError: If the file is missing, not YAML, or invalid
        """
        path = Path(path).expanduser()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            return cls.model_validate(data)
        except FileNotFoundError as e:
            raise ClusterfileError(f"Clusterfile not found: {path}") from e
        except yaml.YAMLError as e:
            raise ClusterfileError(f"Invalid YAML in {path}: {e}") from e
        except ValidationError as e:
            raise ClusterfileError(f"Invalid Clusterfile {path}: {e}") from e

    def save(self, path: Union[str, Path]) -> None:
        data = self.model_dump(mode='json', by_alias=True, exclude_none=True)
        write_yaml_file(str(Path(path).expanduser()), data)
        logger.info(f"Saved Clusterfile {path}")

    def to_state(self) -> ClusterState:
        spec = self.spec
        return ClusterState(
            name=self.metadata.name,
            kube_version=spec.kube_version,
            masters=list(spec.masters),
            nodes=list(spec.nodes),
            api_server_domain=spec.api_server_domain,
            vip=spec.vip,
            cgroup_driver=spec.cgroup_driver,
            registry=RegistryConfig(**spec.registry.model_dump()),
            cert_sans=list(spec.cert_sans),
            svc_cidr=spec.network.svc_cidr,
            pod_cidr=spec.network.pod_cidr,
            dns_domain=spec.network.dns_domain,
        )

    def update_from_state(self, state: ClusterState) -> None:
        """Copy the member lists and detected settings back from ``state``."""
        with state.lock:
            self.spec.masters = list(state.masters)
            self.spec.nodes = list(state.nodes)
            self.spec.cgroup_driver = state.cgroup_driver
            self.spec.registry.ip = state.registry.ip
