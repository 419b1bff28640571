"""Cluster bootstrap: initialize master0, then join everyone else."""
import logging

from kadmctl.logging import redact_command

from .commands import (
    REMOTE_COPY_KUBECONFIG,
    REMOTE_NON_ROOT_COPY_KUBECONFIG,
    ROOT_USER,
    add_hosts_command,
    registry_hosts_command,
    registry_login_command,
)
from .errors import ClusterOperationError, CommandExecutionError, CredentialFetchError
from .join import join_masters, join_nodes
from .models import CommandRole, HostOperation
from .runtime import Runtime
from .utils import parse_join_command

logger = logging.getLogger("kubeadm.init")

INIT_STAGE = 'init_master0'


def init_master0(runtime: Runtime) -> None:
    """Run ``kubeadm init`` on master0 and capture the join credentials.

    Raises:
        ClusterOperationError: If any step fails; nothing is rolled back
    """
    state = runtime.state
    master0 = state.master0
    if not master0:
        raise ClusterOperationError("cluster has no masters", stage=INIT_STAGE)

    runtime.merge_kubeadm_config()
    runtime.wait_ssh_ready([master0])
    runtime.send_file_to_hosts([master0], runtime.cluster_files(), stage=INIT_STAGE)

    driver = runtime.detect_cgroup_driver(master0)
    with state.lock:
        state.cgroup_driver = driver
    runtime.write_remote_file(
        master0,
        runtime.kubeadm_config_path,
        runtime.kubeadm.render_init(state, driver),
        stage=INIT_STAGE
    )

    init_cmd = runtime.command(CommandRole.INIT_MASTER)
    prepare = [
        registry_hosts_command(state.registry),
        runtime.ca.command(state, master0, runtime.get_remote_hostname(master0)),
        add_hosts_command(master0, state.api_server_domain),
    ]
    if state.registry.has_credentials:
        prepare.append(registry_login_command(state.registry))
    finish = [REMOTE_COPY_KUBECONFIG]
    if runtime.executor.username(master0) != ROOT_USER:
        finish.append(REMOTE_NON_ROOT_COPY_KUBECONFIG)

    operation = HostOperation(target=master0, commands=tuple(prepare), stage=INIT_STAGE)
    logger.info(f"[{master0}] Running {operation.describe()}")
    try:
        runtime.executor.cmd_async(master0, *operation.commands)
        logger.info(f"[{master0}] $ {redact_command(init_cmd.render())}")
        output = runtime.executor.cmd(master0, init_cmd.render())
        runtime.executor.cmd_async(master0, *finish)
    except CommandExecutionError as e:
        raise e.at(host=master0, stage=INIT_STAGE)

    try:
        token, ca_cert_hash, certificate_key = parse_join_command(output)
    except CredentialFetchError as e:
        raise e.at(host=master0, stage=INIT_STAGE)
    if certificate_key:
        state.set_credentials(token, ca_cert_hash, certificate_key)
    else:
        logger.info(f"[{master0}] kubeadm init printed no certificate key, uploading certs again")
        runtime.fetch_join_credentials()
    logger.info(f"[{master0}] Initialized control plane {state.api_server_domain} at {state.kube_version}")


def init(runtime: Runtime) -> None:
    """Bootstrap the cluster described by the runtime's state.

    master0 is initialized first; the other masters and the nodes of the
    state are then joined. The state's member lists are left as they were.
    """
    state = runtime.state
    with state.lock:
        masters = list(state.masters)
        nodes = list(state.nodes)

    init_master0(runtime)
    join_masters(runtime, masters[1:])
    join_nodes(runtime, nodes)
