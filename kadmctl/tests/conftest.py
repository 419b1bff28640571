"""Shared fixtures: an in-memory remote executor and runtime factory."""
import threading
from collections import defaultdict

import pytest

from kadmctl.modules.kubeadm import ClusterState, Runtime
from kadmctl.modules.kubeadm.commands import (
    DETECT_CGROUP_DRIVER,
    HOSTNAME,
    KUBECTL_LIST_NODE_NAMES,
    KUBECTL_LIST_NODES_WIDE,
)
from kadmctl.modules.kubeadm.config import RuntimeConfig, RuntimeSettings
from kadmctl.modules.kubeadm.errors import CommandExecutionError, UnreachableHostError
from kadmctl.modules.ssh import RemoteExecutor

CERT_KEY = '8376c70aaaf285b764b3c1a588740728aff493d7c2239684e84a7367c6a437cf'
TOKEN = 'abcdef.0123456789abcdef'
CA_HASH = 'sha256:4ab5f7d52f5b4e8d3cf8ba1e4c2bbdfd2f6b0d1cbd3b8ba0a34a3e1c2e6c5c6a'

UPLOAD_CERTS_OUTPUT = (
    '[upload-certs] Storing the certificates in Secret "kubeadm-certs" in the "kube-system" Namespace\r\n'
    '[upload-certs] Using certificate key:\r\n'
    f'{CERT_KEY}\r\n'
)
TOKEN_CREATE_OUTPUT = (
    f'kubeadm join apiserver.cluster.local:6443 --token {TOKEN} '
    f'--discovery-token-ca-cert-hash {CA_HASH} \n'
)

LOCAL_ADDRESS = '192.168.0.200'


class FakeExecutor(RemoteExecutor):
    """Records every call per host and answers with scripted output."""

    def __init__(self, user='root', unreachable=(), hostnames=None):
        self.user = user
        self.unreachable = set(unreachable)
        self.hostnames = dict(hostnames or {})
        self.outputs = {}
        self.failures = []
        self.calls = defaultdict(list)
        self.copies = defaultdict(list)
        self.connects = defaultdict(int)
        self.lock = threading.Lock()

    def fail_on(self, host, fragment):
        """Make commands on ``host`` containing ``fragment`` exit non-zero."""
        self.failures.append((host, fragment))

    def hostname_of(self, host):
        return self.hostnames.get(host, f"node-{host.replace('.', '-')}")

    def commands(self, host):
        with self.lock:
            return list(self.calls[host])

    def all_commands(self):
        with self.lock:
            return [cmd for cmds in self.calls.values() for cmd in cmds]

    def connect(self, host):
        with self.lock:
            self.connects[host] += 1
        if host in self.unreachable:
            raise UnreachableHostError("connection refused", host=host)

    def _respond(self, host, command):
        for (h, fragment), output in self.outputs.items():
            if h in (host, None) and fragment in command:
                return output
        if command == HOSTNAME:
            return self.hostname_of(host) + '\n'
        if command.startswith('kubeadm init phase upload-certs'):
            return UPLOAD_CERTS_OUTPUT
        if command.startswith('kubeadm token create'):
            return TOKEN_CREATE_OUTPUT
        if command == DETECT_CGROUP_DRIVER:
            return 'systemd\n'
        if command == KUBECTL_LIST_NODE_NAMES:
            return '\n'.join(name.upper() for name in self.hostnames.values()) + '\n'
        if command == KUBECTL_LIST_NODES_WIDE:
            rows = ['NAME STATUS ROLES AGE VERSION INTERNAL-IP']
            rows += [f"{name} Ready <none> 1d v1.23.0 {ip}" for ip, name in self.hostnames.items()]
            return '\n'.join(rows) + '\n'
        return ''

    def cmd(self, host, command):
        self.connect(host)
        with self.lock:
            self.calls[host].append(command)
        for h, fragment in self.failures:
            if h == host and fragment in command:
                raise CommandExecutionError(f"command {command!r} exited with status 1", host=host)
        return self._respond(host, command)

    def cmd_async(self, host, *commands):
        for command in commands:
            if command:
                self.cmd(host, command)

    def copy(self, host, src, dst):
        self.connect(host)
        with self.lock:
            self.copies[host].append((src, dst))

    def username(self, host):
        return self.user


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def runtime_config(tmp_path):
    return RuntimeConfig(runtime=RuntimeSettings(
        base_path=str(tmp_path),
        rootfs='/var/lib/kadmctl/rootfs',
        in_container=False,
        ssh_ready_attempts=2,
        ssh_ready_interval=0,
        max_workers=0,
    ))


@pytest.fixture
def make_runtime(executor, runtime_config):
    """Factory building a Runtime around the fake executor."""
    def _make(masters=('10.0.0.1',), nodes=(), version='v1.23.0', local_addresses=(LOCAL_ADDRESS,), **kwargs):
        state = ClusterState(
            name='test',
            kube_version=version,
            masters=list(masters),
            nodes=list(nodes),
            **kwargs
        )
        return Runtime(
            state,
            executor,
            config=runtime_config,
            local_addresses=set(local_addresses),
            sleep=lambda _: None,
        )
    return _make
