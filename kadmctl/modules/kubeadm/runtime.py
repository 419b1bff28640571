"""kubeadm runtime.

A ``Runtime`` binds one cluster's state to a remote executor and the runtime
configuration. The join, delete and init pipelines are written against it.
"""
import logging
import os
import time
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Set, Tuple

import yaml

from .commands import (
    ADMIN_CONF,
    CONTROLLER_CONF,
    DETECT_CGROUP_DRIVER,
    HOSTNAME,
    KUBERNETES_CONFIG_DIR,
    KUBERNETES_PKI_DIR,
    SCHEDULER_CONF,
    KubeadmCommand,
    build_command,
    kubeadm_config_path,
    registry_cert_destinations,
    token_create_command,
    upload_certs_command,
    write_file_command,
)
from .config import RuntimeConfig, get_config
from .errors import (
    BootstrapConfigError,
    ClusterOperationError,
    CommandExecutionError,
    CredentialFetchError,
    DistributionError,
    UnreachableHostError,
)
from .fanout import FanoutPolicy, run_on_each
from .kubeadm_config import KubeadmConfig
from .models import CgroupDriver, ClusterState, CommandRole, JoinStage
from .utils import parse_certificate_key, parse_join_command
from .version import check_certs_command, resolve_rule
from kadmctl.modules.net import get_local_host_addresses

if TYPE_CHECKING:
    from kadmctl.modules.ssh import RemoteExecutor

logger = logging.getLogger("kubeadm.runtime")


class CertificateAuthority:
    """Renders the remote cert tool invocation for one host.

    The cert tool signs the API server serving certificate with the cluster
    CA that was distributed to ``/etc/kubernetes/pki``.
    """

    def __init__(self, rootfs: str, cert_tool: str):
        self.rootfs = rootfs
        self.cert_tool = cert_tool

    @property
    def binary(self) -> str:
        if os.path.isabs(self.cert_tool):
            return self.cert_tool
        return f"{self.rootfs}/{self.cert_tool}"

    @staticmethod
    def alt_names(state: ClusterState) -> List[str]:
        names = []
        for name in ['127.0.0.1', 'localhost', state.api_server_domain, state.vip, *state.masters, *state.cert_sans]:
            if name and name not in names:
                names.append(name)
        return names

    def command(self, state: ClusterState, host: str, hostname: str) -> str:
        return (
            f"{self.binary} cert gen --alt-names {','.join(self.alt_names(state))} "
            f"--node-ip {host} --node-name {hostname} "
            f"--service-cidr {state.svc_cidr} --dns-domain {state.dns_domain}"
        )


class Runtime:
    """Everything a cluster operation needs, bound together."""

    def __init__(
        self,
        state: ClusterState,
        executor: 'RemoteExecutor',
        config: Optional[RuntimeConfig] = None,
        ca: Optional[CertificateAuthority] = None,
        local_addresses: Optional[Set[str]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the runtime.

        Args:
            state: Cluster state shared by every worker of a batch
            executor: Remote command transport
            config: Runtime configuration (defaults to the global one)
            ca: Certificate authority collaborator
            local_addresses: Addresses of the execution host; detected when None
            sleep: Sleep function used between readiness polls
        """
        self.state = state
        self.executor = executor
        self.config = config or get_config()
        self.rule = resolve_rule(state.kube_version)
        self.kubeadm = KubeadmConfig(self.rule.kubeadm_api_version)
        self.ca = ca or CertificateAuthority(self.config.runtime.rootfs, self.config.runtime.cert_tool)
        self._local_addresses = local_addresses
        self._sleep = sleep

    @property
    def vlog(self) -> int:
        return self.config.runtime.vlog

    @property
    def rootfs(self) -> str:
        return self.config.runtime.rootfs

    @property
    def cluster_dir(self) -> str:
        return self.config.runtime.cluster_dir(self.state.name)

    @property
    def kubeadm_config_path(self) -> str:
        return kubeadm_config_path(self.rootfs)

    def is_local(self, host: str) -> bool:
        """Whether ``host`` is the machine kadmctl runs on."""
        if self._local_addresses is None:
            self._local_addresses = get_local_host_addresses()
        return host in self._local_addresses

    def run_on_each(
        self,
        hosts: Iterable[str],
        operation: Callable[[str], None],
        policy: FanoutPolicy = FanoutPolicy.FAIL_FAST,
        name: str = 'fanout'
    ) -> Dict[str, BaseException]:
        return run_on_each(
            hosts,
            operation,
            policy=policy,
            max_workers=self.config.runtime.max_workers,
            name=name
        )

    def wait_ssh_ready(self, hosts: Iterable[str], attempts: Optional[int] = None) -> None:
        """Poll every host until it accepts an SSH session.

        Raises:
            UnreachableHostError: If any host is still unreachable after the last attempt
        """
        attempts = attempts or self.config.runtime.ssh_ready_attempts
        interval = self.config.runtime.ssh_ready_interval

        def poll(host: str) -> None:
            last_error = None
            for attempt in range(1, attempts + 1):
                try:
                    self.executor.connect(host)
                    logger.debug(f"[{host}] SSH ready after {attempt} attempt(s)")
                    return
                except ClusterOperationError as e:
                    last_error = e
                    logger.info(f"[{host}] SSH not ready ({attempt}/{attempts}): {e.message}")
                    if attempt < attempts:
                        self._sleep(interval)
            raise UnreachableHostError(
                f"not reachable after {attempts} attempts",
                host=host,
                stage=JoinStage.WAIT_REACHABLE,
                cause=last_error
            )

        self.run_on_each(hosts, poll, name='wait-ssh')

    def cmd_to_string(self, host: str, command: str) -> str:
        """Run a command and return its stripped output."""
        return self.executor.cmd(host, command).strip()

    def get_remote_hostname(self, host: str) -> str:
        hostname = self.cmd_to_string(host, HOSTNAME)
        if not hostname:
            raise CommandExecutionError("hostname returned no output", host=host)
        return hostname

    def detect_cgroup_driver(self, host: str) -> CgroupDriver:
        """Probe the container runtime's cgroup driver on ``host``.

        Falls back to the cluster default when the probe gives no answer.
        """
        try:
            output = self.cmd_to_string(host, DETECT_CGROUP_DRIVER).lower()
        except CommandExecutionError as e:
            logger.warning(f"[{host}] Failed to detect cgroup driver, using {self.state.cgroup_driver.value}: {e}")
            return self.state.cgroup_driver
        if CgroupDriver.CGROUPFS.value in output:
            return CgroupDriver.CGROUPFS
        if CgroupDriver.SYSTEMD.value in output:
            return CgroupDriver.SYSTEMD
        return self.state.cgroup_driver

    def cluster_files(self) -> List[Tuple[str, str]]:
        """Local (src, remote dst) pairs every control plane host receives.

        Static files and the registry CA cert are optional and skipped when
        missing locally; kubeconfigs and the PKI directory are not.
        """
        files = []
        optional = [
            (os.path.join(self.cluster_dir, static.src), static.dst)
            for static in self.config.runtime.static_files
        ]
        registry_cert = os.path.join(self.cluster_dir, 'certs', f"{self.state.registry.domain}.crt")
        optional += [(registry_cert, dst) for dst in registry_cert_destinations(self.state.registry)]
        for src, dst in optional:
            if not os.path.exists(src):
                logger.warning(f"{src} does not exist, not distributing it")
                continue
            files.append((src, dst))
        for name in (ADMIN_CONF, CONTROLLER_CONF, SCHEDULER_CONF):
            files.append((os.path.join(self.cluster_dir, name), f"{KUBERNETES_CONFIG_DIR}/{name}"))
        files.append((os.path.join(self.cluster_dir, 'pki'), KUBERNETES_PKI_DIR))
        return files

    def send_file_to_hosts(
        self,
        hosts: Iterable[str],
        files: List[Tuple[str, str]],
        stage: str = JoinStage.DISTRIBUTE_STATIC_FILES.value
    ) -> None:
        """Copy every file to every host, failing fast.

        Raises:
            DistributionError: On the first failed copy
        """
        def send(host: str) -> None:
            for src, dst in files:
                try:
                    self.executor.copy(host, src, dst)
                except DistributionError as e:
                    raise e.at(host=host, stage=stage)
                except ClusterOperationError as e:
                    raise DistributionError(f"failed to copy {src} to {dst}", host=host, stage=stage, cause=e) from e

        self.run_on_each(hosts, send, name='distribute')

    def write_remote_file(self, host: str, path: str, content: str, stage: str) -> None:
        try:
            self.executor.cmd(host, write_file_command(path, content))
        except ClusterOperationError as e:
            raise DistributionError(f"failed to write {path}", host=host, stage=stage, cause=e) from e

    def merge_kubeadm_config(self) -> bool:
        """Merge the persisted kubeadm.yml of the cluster, once per runtime.

        Raises:
            BootstrapConfigError: If the file cannot be read or holds a non-mapping document
        """
        path = os.path.join(self.cluster_dir, 'kubeadm.yml')
        try:
            return self.kubeadm.load(path)
        except (OSError, yaml.YAMLError, ValueError) as e:
            raise BootstrapConfigError(
                f"failed to load kubeadm configuration {path}",
                stage=JoinStage.ENSURE_BOOTSTRAP_CONFIG,
                cause=e
            ) from e

    def fetch_join_credentials(self) -> None:
        """Fetch certificate key, token and CA cert hash from master0.

        Nothing is committed to the state unless all three are parsed.

        Raises:
            CredentialFetchError: If either command fails or its output is malformed
        """
        stage = JoinStage.FETCH_JOIN_CREDENTIALS
        master0 = self.state.master0
        if not master0:
            raise CredentialFetchError("cluster has no master to fetch credentials from", stage=stage)

        try:
            certificate_key = parse_certificate_key(self.executor.cmd(master0, upload_certs_command(self.vlog)))
            token, ca_cert_hash, _ = parse_join_command(self.executor.cmd(master0, token_create_command(self.vlog)))
        except CredentialFetchError as e:
            raise e.at(host=master0, stage=stage)
        except ClusterOperationError as e:
            raise CredentialFetchError("failed to fetch join credentials", host=master0, stage=stage, cause=e) from e

        self.state.set_credentials(token, ca_cert_hash, certificate_key)
        logger.info(f"[{master0}] Fetched join token and certificate key")

    def command(self, role: CommandRole) -> KubeadmCommand:
        return build_command(self.state.kube_version, role, self.state, self.config)

    def check_certs(self, host: Optional[str] = None) -> str:
        """Return the certificate expiry report of a master (master0 by default)."""
        host = host or self.state.master0
        if not host:
            raise ClusterOperationError("cluster has no master to check certificates on")
        return self.executor.cmd(host, check_certs_command(self.state.kube_version))
