"""Structured kubeadm configuration documents.

The runtime keeps one set of documents per cluster operation. The join
template is shared by every concurrent render worker, so stamping it and
marshalling the result must happen under ``ClusterState.lock``.
"""
import copy
import logging
import os
from typing import Any, Dict, List, Optional

from .models import API_SERVER_PORT, CgroupDriver, ClusterState
from .utils import dump_yaml_documents, merge_dicts, read_yaml_documents
from .version import KUBEADM_V1BETA2

logger = logging.getLogger("kubeadm.config_documents")

KUBELET_API_VERSION = 'kubelet.config.k8s.io/v1beta1'
KUBE_PROXY_API_VERSION = 'kubeproxy.config.k8s.io/v1alpha1'
DEFAULT_CRI_SOCKET = 'unix:///run/containerd/containerd.sock'
CA_CERT_PATH = '/etc/kubernetes/pki/ca.crt'

INIT_CONFIGURATION = 'InitConfiguration'
CLUSTER_CONFIGURATION = 'ClusterConfiguration'
JOIN_CONFIGURATION = 'JoinConfiguration'
KUBELET_CONFIGURATION = 'KubeletConfiguration'
KUBE_PROXY_CONFIGURATION = 'KubeProxyConfiguration'


class KubeadmConfig:
    """kubeadm Init/Cluster/Join/Kubelet/KubeProxy documents of one cluster."""

    def __init__(self, api_version: str = KUBEADM_V1BETA2):
        self.api_version = api_version
        self.loaded = False
        self.documents: Dict[str, Dict[str, Any]] = {
            INIT_CONFIGURATION: {
                'apiVersion': api_version,
                'kind': INIT_CONFIGURATION,
                'localAPIEndpoint': {'bindPort': API_SERVER_PORT},
                'nodeRegistration': {'criSocket': DEFAULT_CRI_SOCKET},
            },
            CLUSTER_CONFIGURATION: {
                'apiVersion': api_version,
                'kind': CLUSTER_CONFIGURATION,
                'apiServer': {'certSANs': []},
                'networking': {},
            },
            JOIN_CONFIGURATION: {
                'apiVersion': api_version,
                'kind': JOIN_CONFIGURATION,
                'caCertPath': CA_CERT_PATH,
                'discovery': {'bootstrapToken': {}, 'timeout': '5m0s'},
                'nodeRegistration': {'criSocket': DEFAULT_CRI_SOCKET},
            },
            KUBELET_CONFIGURATION: {
                'apiVersion': KUBELET_API_VERSION,
                'kind': KUBELET_CONFIGURATION,
                'cgroupDriver': CgroupDriver.SYSTEMD.value,
            },
            KUBE_PROXY_CONFIGURATION: {
                'apiVersion': KUBE_PROXY_API_VERSION,
                'kind': KUBE_PROXY_CONFIGURATION,
                'mode': 'ipvs',
                'ipvs': {'excludeCIDRs': []},
            },
        }

    @property
    def join_configuration(self) -> Dict[str, Any]:
        return self.documents[JOIN_CONFIGURATION]

    @property
    def kubelet_configuration(self) -> Dict[str, Any]:
        return self.documents[KUBELET_CONFIGURATION]

    def merge_documents(self, documents: List[Dict[str, Any]]) -> None:
        """Overlay user supplied documents on the defaults, matched by kind."""
        for doc in documents:
            if not isinstance(doc, dict):
                raise ValueError(f"kubeadm document must be a mapping, got {type(doc).__name__}")
            kind = doc.get('kind')
            if kind not in self.documents:
                logger.debug(f"Ignoring kubeadm document of kind {kind!r}")
                continue
            self.documents[kind] = merge_dicts(self.documents[kind], doc)

    def load(self, path: str) -> bool:
        """Merge the persisted kubeadm.yml once.

        Returns:
            bool: True if documents were merged by this call
        """
        if self.loaded:
            return False
        if os.path.exists(path):
            self.merge_documents(read_yaml_documents(path))
            logger.info(f"Merged kubeadm configuration from {path}")
        else:
            logger.debug(f"No persisted kubeadm configuration at {path}, using defaults")
        self.loaded = True
        return True

    def apply_cluster_defaults(self, state: ClusterState) -> None:
        """Fill cluster-wide fields from the state. Caller holds state.lock."""
        cluster = self.documents[CLUSTER_CONFIGURATION]
        cluster['kubernetesVersion'] = state.kube_version
        cluster['controlPlaneEndpoint'] = f"{state.api_server_domain}:{API_SERVER_PORT}"
        cluster.setdefault('imageRepository', state.registry.repo())
        networking = cluster.setdefault('networking', {})
        networking.setdefault('podSubnet', state.pod_cidr)
        networking.setdefault('serviceSubnet', state.svc_cidr)
        networking.setdefault('dnsDomain', state.dns_domain)

        sans = cluster.setdefault('apiServer', {}).setdefault('certSANs', [])
        for san in ['127.0.0.1', state.api_server_domain, state.vip, *state.masters, *state.cert_sans]:
            if san and san not in sans:
                sans.append(san)

        excluded = self.documents[KUBE_PROXY_CONFIGURATION].setdefault('ipvs', {}).setdefault('excludeCIDRs', [])
        vip_cidr = f"{state.vip}/32"
        if vip_cidr not in excluded:
            excluded.append(vip_cidr)

    def stamp_join(
        self,
        state: ClusterState,
        endpoint: str,
        cgroup_driver: CgroupDriver,
        advertise_address: Optional[str] = None
    ) -> None:
        """Stamp the shared join template for one host. Caller holds state.lock.

        A ``None`` advertise address renders a worker join (no controlPlane).
        """
        join = self.join_configuration
        join['discovery']['bootstrapToken'] = {
            'apiServerEndpoint': endpoint,
            'token': state.join_token,
            'caCertHashes': [state.token_ca_cert_hash],
        }
        if advertise_address:
            join['controlPlane'] = {
                'localAPIEndpoint': {
                    'advertiseAddress': advertise_address,
                    'bindPort': API_SERVER_PORT,
                },
                'certificateKey': state.certificate_key,
            }
        else:
            join.pop('controlPlane', None)
        self.kubelet_configuration['cgroupDriver'] = CgroupDriver(cgroup_driver).value

    def render_join(self) -> str:
        """Marshal the stamped join and kubelet documents. Caller holds state.lock."""
        return dump_yaml_documents([
            copy.deepcopy(self.join_configuration),
            copy.deepcopy(self.kubelet_configuration),
        ])

    def render_init(self, state: ClusterState, cgroup_driver: CgroupDriver) -> str:
        """Marshal init, cluster, kubelet and kube-proxy documents for master0."""
        with state.lock:
            self.apply_cluster_defaults(state)
            init = self.documents[INIT_CONFIGURATION]
            init.setdefault('localAPIEndpoint', {})['advertiseAddress'] = state.master0
            self.kubelet_configuration['cgroupDriver'] = CgroupDriver(cgroup_driver).value
            return dump_yaml_documents([
                copy.deepcopy(self.documents[INIT_CONFIGURATION]),
                copy.deepcopy(self.documents[CLUSTER_CONFIGURATION]),
                copy.deepcopy(self.kubelet_configuration),
                copy.deepcopy(self.documents[KUBE_PROXY_CONFIGURATION]),
            ])
