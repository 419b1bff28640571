"""Kubernetes version policy.

Maps a Kubernetes version string to the kubeadm command family, the kubeadm
config API version and the per-version quirks the runtime has to work around.
"""
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from .errors import VersionResolutionWarning

logger = logging.getLogger("kubeadm.version")

_VERSION_RE = re.compile(r'^v?(\d+)\.(\d+)\.(\d+)')

V1150 = 'v1.15.0'
V1191 = 'v1.19.1'
V1192 = 'v1.19.2'
V1200 = 'v1.20.0'
V1230 = 'v1.23.0'

KUBEADM_V1BETA1 = 'kubeadm.k8s.io/v1beta1'
KUBEADM_V1BETA2 = 'kubeadm.k8s.io/v1beta2'
KUBEADM_V1BETA3 = 'kubeadm.k8s.io/v1beta3'


class CommandFamily(str, Enum):
    """How join credentials reach kubeadm."""
    FLAGS = 'flags'
    CONFIG_FILE = 'config_file'


class Quirk(str, Enum):
    # kube-controller-manager and kube-scheduler kubeconfigs point at the
    # control plane endpoint instead of the local API server
    CONTROL_PLANE_ENDPOINT_KUBECONFIG = 'control_plane_endpoint_kubeconfig'


QUIRKS = {
    V1191: frozenset({Quirk.CONTROL_PLANE_ENDPOINT_KUBECONFIG}),
    V1192: frozenset({Quirk.CONTROL_PLANE_ENDPOINT_KUBECONFIG}),
}


@dataclass(frozen=True)
class VersionRule:
    """Command templates valid from ``threshold`` upwards."""
    threshold: str
    family: CommandFamily
    init_template: str
    join_master_template: str
    join_node_template: str
    kubeadm_api_version: str = KUBEADM_V1BETA2
    known_quirks: FrozenSet[Quirk] = field(default_factory=frozenset)


FLAG_RULE = VersionRule(
    threshold='v0.0.0',
    family=CommandFamily.FLAGS,
    init_template='kubeadm init --config={rootfs}/etc/kubeadm.yml --experimental-upload-certs',
    join_master_template=(
        'kubeadm join {master0}:6443 --token {token} --discovery-token-ca-cert-hash {ca_cert_hash} '
        '--experimental-control-plane --certificate-key {certificate_key}'
    ),
    join_node_template='kubeadm join {vip}:6443 --token {token} --discovery-token-ca-cert-hash {ca_cert_hash}',
    kubeadm_api_version=KUBEADM_V1BETA1,
)

CONFIG_FILE_RULE = VersionRule(
    threshold=V1150,
    family=CommandFamily.CONFIG_FILE,
    init_template='kubeadm init --config={rootfs}/etc/kubeadm.yml --upload-certs',
    join_master_template='kubeadm join --config={rootfs}/etc/kubeadm.yml',
    join_node_template='kubeadm join --config={rootfs}/etc/kubeadm.yml',
    kubeadm_api_version=KUBEADM_V1BETA2,
)

# Highest threshold first
RULES = (
    replace(CONFIG_FILE_RULE, threshold=V1230, kubeadm_api_version=KUBEADM_V1BETA3),
    CONFIG_FILE_RULE,
    FLAG_RULE,
)


def parse_version(version: str) -> Optional[Tuple[int, int, int]]:
    """Parse ``v1.23.0`` or ``1.23.0`` into a comparable tuple.

    Returns:
        The (major, minor, patch) tuple or None if the string is not a version.
    """
    if not version:
        return None
    match = _VERSION_RE.match(str(version).strip())
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


def normalize_version(version: str) -> str:
    """Return the canonical ``vX.Y.Z`` spelling, or the input if unparseable."""
    parsed = parse_version(version)
    if parsed is None:
        return version
    return 'v{}.{}.{}'.format(*parsed)


def version_at_least(version: str, threshold: str) -> bool:
    """Compare two versions. Unparseable input never satisfies the threshold."""
    left, right = parse_version(version), parse_version(threshold)
    if left is None or right is None:
        return False
    return left >= right


def known_quirks(version: str) -> FrozenSet[Quirk]:
    return QUIRKS.get(normalize_version(version), frozenset())


def resolve_rule(version: str) -> VersionRule:
    """Pick the command rule for a Kubernetes version.

    Unparseable versions fall back to the flag-based family with a warning
    instead of failing the operation.
    """
    if parse_version(version) is None:
        warning = VersionResolutionWarning(
            f"failed to compare Kubernetes version {version!r}, using {FLAG_RULE.family.value} commands"
        )
        logger.warning(str(warning))
        return FLAG_RULE

    for rule in RULES:
        if version_at_least(version, rule.threshold):
            return replace(rule, known_quirks=known_quirks(version))
    return FLAG_RULE


def check_certs_command(version: str) -> str:
    """Certificate expiry check; graduated out of ``kubeadm alpha`` in v1.20."""
    if version_at_least(version, V1200):
        return 'kubeadm certs check-expiration'
    return 'kubeadm alpha certs check-expiration'
