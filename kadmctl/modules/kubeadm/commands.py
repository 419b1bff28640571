"""kubeadm command builder.

Renders the init/join commands for a Kubernetes version as role-tagged
``KubeadmCommand`` objects, plus the shell snippets the runtime runs on
hosts around them (hosts entries, kubeconfig copies, cleanup).
"""
import logging
import os
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .config import RuntimeConfig
from .errors import CommandBuildError, UnsupportedRoleError
from .models import API_SERVER_PORT, ClusterState, CommandRole, RegistryConfig
from .version import CommandFamily, resolve_rule

logger = logging.getLogger("kubeadm.commands")

KUBERNETES_CONFIG_DIR = '/etc/kubernetes'
KUBERNETES_PKI_DIR = '/etc/kubernetes/pki'
KUBE_CONTROLLER_CONFIG_FILE = '/etc/kubernetes/controller-manager.conf'
KUBE_SCHEDULER_CONFIG_FILE = '/etc/kubernetes/scheduler.conf'
DOCKER_CERT_DIR = '/etc/docker/certs.d'
STATIC_POD_DIR = '/etc/kubernetes/manifests'
LVSCARE_MANIFEST = f'{STATIC_POD_DIR}/kube-lvscare.yaml'

ADMIN_CONF = 'admin.conf'
CONTROLLER_CONF = 'controller-manager.conf'
SCHEDULER_CONF = 'scheduler.conf'
KUBELET_CONF = 'kubelet.conf'

ROOT_USER = 'root'

REMOTE_COPY_KUBECONFIG = (
    'rm -rf .kube/config && mkdir -p /root/.kube && cp /etc/kubernetes/admin.conf /root/.kube/config'
)
REMOTE_NON_ROOT_COPY_KUBECONFIG = (
    'rm -rf ${HOME}/.kube/config && mkdir -p ${HOME}/.kube && '
    'cp /etc/kubernetes/admin.conf ${HOME}/.kube/config && chown $(id -u):$(id -g) ${HOME}/.kube/config'
)
REMOVE_KUBECONFIG = 'rm -rf /usr/bin/kube* && rm -rf ~/.kube/'
REMOVE_LVSCARE_STATIC_POD = f'rm -rf {STATIC_POD_DIR}/kube-lvscare*'
KUBECTL_LIST_NODE_NAMES = "kubectl get nodes | grep -v NAME | awk '{print $1}'"
KUBECTL_LIST_NODES_WIDE = 'kubectl get nodes -o wide'
HOSTNAME = 'hostname'
DETECT_CGROUP_DRIVER = (
    "(docker info 2>/dev/null | grep -i 'cgroup driver' | awk -F': ' '{print $2}') || "
    "(grep -q 'SystemdCgroup = true' /etc/containerd/config.toml 2>/dev/null && echo systemd)"
)


class PreflightLevel(str, Enum):
    """How strictly kubeadm preflight checks are enforced."""
    IGNORE_ALL = 'all'
    IGNORE_SYSTEM_VERIFICATION = 'SystemVerification'
    STRICT = ''


@dataclass(frozen=True)
class KubeadmCommand:
    """A rendered kubeadm invocation tagged with the role it is for."""
    role: CommandRole
    base: str
    family: CommandFamily
    vlog: int = 0
    preflight: PreflightLevel = PreflightLevel.STRICT
    config_path: Optional[str] = None

    def render(self) -> str:
        cmd = f"{self.base} -v {self.vlog}"
        if self.preflight is not PreflightLevel.STRICT:
            cmd = f"{cmd} --ignore-preflight-errors={self.preflight.value}"
        return cmd

    def __str__(self) -> str:
        return self.render()


def is_in_container() -> bool:
    """Detect whether kadmctl itself runs inside a container."""
    if os.path.exists('/.dockerenv') or os.path.exists('/run/.containerenv'):
        return True
    try:
        cgroup = Path('/proc/1/cgroup').read_text()
    except OSError:
        return False
    return any(marker in cgroup for marker in ('docker', 'kubepods', 'containerd'))


def preflight_level(role: CommandRole, in_container: bool) -> PreflightLevel:
    if in_container:
        return PreflightLevel.IGNORE_ALL
    if role in (CommandRole.INIT_MASTER, CommandRole.JOIN_MASTER):
        return PreflightLevel.IGNORE_SYSTEM_VERIFICATION
    return PreflightLevel.STRICT


def kubeadm_config_path(rootfs: str) -> str:
    return f"{rootfs}/etc/kubeadm.yml"


def build_command(
    version: str,
    role: CommandRole,
    state: ClusterState,
    config: RuntimeConfig,
    in_container: Optional[bool] = None
) -> KubeadmCommand:
    """Render the kubeadm command for ``role`` at ``version``.

    Args:
        version: Kubernetes version of the cluster
        role: What the command does
        state: Cluster state providing endpoints and join credentials
        config: Runtime configuration (rootfs, verbosity, container mode)
        in_container: Override for container detection

    Returns:
        KubeadmCommand: The validated command

    Raises:
        UnsupportedRoleError: If ``role`` has no template
        CommandBuildError: If a flag-based command lacks its credentials
    """
    try:
        role = CommandRole(role)
    except ValueError:
        raise UnsupportedRoleError(f"unsupported role {role!r}") from None

    rule = resolve_rule(version)
    rootfs = config.runtime.rootfs
    templates = {
        CommandRole.INIT_MASTER: rule.init_template,
        CommandRole.JOIN_MASTER: rule.join_master_template,
        CommandRole.JOIN_NODE: rule.join_node_template,
    }

    if rule.family is CommandFamily.FLAGS and role is not CommandRole.INIT_MASTER:
        required = {
            'token': state.join_token,
            'ca_cert_hash': state.token_ca_cert_hash,
        }
        if role is CommandRole.JOIN_MASTER:
            required['certificate_key'] = state.certificate_key
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise CommandBuildError(
                f"cannot render {role.value} command for {version}: missing {', '.join(missing)}"
            )

    base = templates[role].format(
        rootfs=rootfs,
        master0=state.master0,
        vip=state.vip,
        token=state.join_token,
        ca_cert_hash=state.token_ca_cert_hash,
        certificate_key=state.certificate_key,
    )

    if in_container is None:
        in_container = config.runtime.in_container
    if in_container is None:
        in_container = is_in_container()

    return KubeadmCommand(
        role=role,
        base=base,
        family=rule.family,
        vlog=config.runtime.vlog,
        preflight=preflight_level(role, in_container),
        config_path=kubeadm_config_path(rootfs) if rule.family is CommandFamily.CONFIG_FILE else None,
    )


def upload_certs_command(vlog: int) -> str:
    return f"kubeadm init phase upload-certs --upload-certs -v {vlog}"


def token_create_command(vlog: int) -> str:
    return f"kubeadm token create --print-join-command -v {vlog}"


def hosts_entry(ip: str, domain: str) -> str:
    return f"{ip} {domain}"


def add_hosts_command(ip: str, domain: str) -> str:
    entry = hosts_entry(ip, domain)
    return f"cat /etc/hosts |grep '{entry}' || echo '{entry}' >> /etc/hosts"


def update_hosts_command(old_entry: str, new_entry: str) -> str:
    return f'sed "s/{old_entry}/{new_entry}/g" < /etc/hosts > hosts && cp -f hosts /etc/hosts'


def remove_hosts_command(domain: str) -> str:
    return f'sed -i "/{domain}/d" /etc/hosts'


def remove_registry_certs_command(domain: str) -> str:
    return f"rm -rf {DOCKER_CERT_DIR}/{domain}*"


def registry_hosts_command(registry: RegistryConfig) -> str:
    """Hosts entries for the registry domain and, if different, its alias."""
    cmd = add_hosts_command(registry.ip, registry.domain)
    if registry.alias and registry.alias != registry.domain:
        cmd = f"{cmd} && {add_hosts_command(registry.ip, registry.alias)}"
    return cmd


def registry_cleanup_commands(registry: RegistryConfig) -> List[str]:
    """Remove the registry hosts entries and certs, alias included when it is set."""
    domains = [registry.domain]
    if registry.alias and registry.alias != registry.domain:
        domains.append(registry.alias)
    commands = [remove_hosts_command(domain) for domain in domains]
    commands += [remove_registry_certs_command(domain) for domain in domains]
    return commands


def registry_login_command(registry: RegistryConfig) -> str:
    return (
        f"docker login {registry.endpoint} "
        f"--username {shlex.quote(registry.username)} --password {shlex.quote(registry.password)}"
    )


def registry_cert_destinations(registry: RegistryConfig) -> List[str]:
    """Remote paths the registry CA cert is installed to."""
    names = [registry.domain]
    if registry.alias and registry.alias != registry.domain:
        names.append(registry.alias)
    return [f"{DOCKER_CERT_DIR}/{name}:{registry.port}/{registry.domain}.crt" for name in names]


def replace_kubeconfig_endpoint_command(placeholder: str, master: str) -> str:
    """Point controller-manager and scheduler kubeconfigs at ``master``."""
    return (
        f'grep -qF "{placeholder}" {KUBE_SCHEDULER_CONFIG_FILE} && '
        f"sed -i 's/{placeholder}/{master}/' {KUBE_CONTROLLER_CONFIG_FILE} && "
        f"sed -i 's/{placeholder}/{master}/' {KUBE_SCHEDULER_CONFIG_FILE}"
    )


def clean_node_command(vlog: int) -> str:
    return (
        f"if which kubeadm;then kubeadm reset -f -v {vlog};fi && "
        "modprobe -r ipip && lsmod && "
        "rm -rf /etc/kubernetes/ && "
        "rm -rf /etc/systemd/system/kubelet.service.d && rm -rf /etc/systemd/system/kubelet.service && "
        "rm -rf /usr/bin/kubeadm && rm -rf /usr/bin/kubelet-pre-start.sh && "
        "rm -rf /usr/bin/kubelet && rm -rf /usr/bin/crictl && "
        "rm -rf /etc/cni && rm -rf /opt/cni && "
        "rm -rf /var/lib/etcd && rm -rf /var/etcd"
    )


def kubectl_delete_node_command(name: str) -> str:
    return f"kubectl delete node {name.strip()}"


def write_file_command(path: str, content: str) -> str:
    """Write ``content`` to a remote ``path`` through a quoted heredoc."""
    directory = os.path.dirname(path)
    return f"mkdir -p {directory} && cat > {path} <<'KADMCTL_EOF'\n{content.rstrip()}\nKADMCTL_EOF"


def join_master_host_commands(
    state: ClusterState,
    master: str,
    join_cmd: KubeadmCommand,
    cert_cmd: str,
    non_root: bool = False
) -> Tuple[str, ...]:
    """Commands run on a master, in order, to join it to the control plane."""
    api_server_host = hosts_entry(state.master0, state.api_server_domain)
    commands = [
        registry_hosts_command(state.registry),
        cert_cmd,
        add_hosts_command(state.master0, state.api_server_domain),
    ]
    if state.registry.has_credentials:
        commands.append(registry_login_command(state.registry))
    commands += [
        join_cmd.render(),
        update_hosts_command(api_server_host, hosts_entry(master, state.api_server_domain)),
        REMOTE_COPY_KUBECONFIG,
    ]
    if non_root:
        commands.append(REMOTE_NON_ROOT_COPY_KUBECONFIG)
    return tuple(commands)


def clean_master_host_commands(
    state: ClusterState,
    vlog: int,
    is_local: bool,
    api_server_ip: Optional[str] = None
) -> Tuple[str, ...]:
    """Cleanup bundle for a master leaving the cluster.

    ``api_server_ip`` is the master the local host keeps talking to when it
    is the one being removed; it defaults to master0.
    """
    commands = [clean_node_command(vlog)]
    commands += registry_cleanup_commands(state.registry)
    commands.append(remove_hosts_command(state.api_server_domain))
    if is_local:
        # the execution host stays a kubectl client of the remaining cluster
        commands.append(add_hosts_command(api_server_ip or state.master0, state.api_server_domain))
    else:
        commands.append(REMOVE_KUBECONFIG)
    return tuple(commands)


def clean_worker_host_commands(state: ClusterState, vlog: int) -> Tuple[str, ...]:
    """Cleanup bundle for a worker leaving the cluster."""
    commands = [
        clean_node_command(vlog),
        REMOVE_LVSCARE_STATIC_POD,
        'if which ipvsadm;then ipvsadm -C;fi',
    ]
    commands += registry_cleanup_commands(state.registry)
    commands += [remove_hosts_command(state.api_server_domain), REMOVE_KUBECONFIG]
    return tuple(commands)


def ipvs_run_once_command(rootfs: str, vip: str, masters: List[str]) -> str:
    """Program the VIP once so a worker can reach the API server before lvscare runs."""
    backends = ' '.join(f"--rs {master}:{API_SERVER_PORT}" for master in masters)
    return f"{rootfs}/bin/lvscare care --run-once --vs {vip}:{API_SERVER_PORT} {backends}"
