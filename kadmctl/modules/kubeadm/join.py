"""Master and worker join pipelines."""
import logging
from typing import Iterable, List

from .commands import (
    LVSCARE_MANIFEST,
    ROOT_USER,
    add_hosts_command,
    ipvs_run_once_command,
    join_master_host_commands,
    registry_hosts_command,
    registry_login_command,
    replace_kubeconfig_endpoint_command,
    write_file_command,
)
from .errors import ClusterOperationError, CommandExecutionError
from .lvscare import ManifestError, render_static_pod
from .models import API_SERVER_PORT, CommandRole, HostOperation, JoinStage, _unique
from .runtime import Runtime
from .version import Quirk

logger = logging.getLogger("kubeadm.join")


def _render_and_send_join_config(runtime: Runtime, hosts: List[str], endpoint: str, control_plane: bool) -> None:
    """Write a per-host kubeadm join config to every host, failing fast.

    The cgroup probe and the write happen outside ``state.lock``; only
    stamping the shared template and marshalling it are done under it.
    """
    state = runtime.state
    stage = JoinStage.RENDER_AND_SEND_JOIN_CONFIG

    def send(host: str) -> None:
        driver = runtime.detect_cgroup_driver(host)
        with state.lock:
            runtime.kubeadm.stamp_join(
                state,
                endpoint,
                driver,
                advertise_address=host if control_plane else None
            )
            content = runtime.kubeadm.render_join()
        runtime.write_remote_file(host, runtime.kubeadm_config_path, content, stage=stage.value)
        logger.debug(f"[{host}] Sent join configuration ({driver.value})")

    runtime.run_on_each(hosts, send, name='join-config')


def _patch_known_version_quirk(runtime: Runtime, masters: List[str]) -> None:
    if Quirk.CONTROL_PLANE_ENDPOINT_KUBECONFIG not in runtime.rule.known_quirks:
        return
    placeholder = runtime.state.api_server_domain
    for master in masters:
        try:
            runtime.executor.cmd(master, replace_kubeconfig_endpoint_command(placeholder, master))
            logger.info(f"[{master}] Pointed controller-manager and scheduler kubeconfigs at {master}")
        except ClusterOperationError as e:
            logger.warning(f"[{master}] Failed to patch kubeconfig endpoints for {runtime.state.kube_version}: {e}")


def _execute_master_join(runtime: Runtime, master: str) -> None:
    state = runtime.state
    stage = JoinStage.EXECUTE_JOIN
    try:
        hostname = runtime.get_remote_hostname(master)
        operation = HostOperation(
            target=master,
            commands=join_master_host_commands(
                state,
                master,
                runtime.command(CommandRole.JOIN_MASTER),
                runtime.ca.command(state, master, hostname),
                non_root=runtime.executor.username(master) != ROOT_USER,
            ),
            stage=stage.value,
        )
        logger.info(f"[{master}] Running {operation.describe()}")
        runtime.executor.cmd_async(master, *operation.commands)
    except CommandExecutionError as e:
        raise e.at(host=master, stage=stage)
    except ClusterOperationError as e:
        raise CommandExecutionError("failed to join master", host=master, stage=stage, cause=e) from e
    logger.info(f"[{master}] Joined the control plane")


def join_masters(runtime: Runtime, masters: Iterable[str]) -> JoinStage:
    """Join ``masters`` to the control plane of the runtime's cluster.

    Args:
        runtime: Runtime of the cluster; master0 must already be initialized
        masters: Addresses of the new masters

    Returns:
        JoinStage: ``NO_OP`` for an empty batch, ``JOINED`` otherwise

    Raises:
        ClusterOperationError: The first failure of a fail-fast stage. Masters
            joined before the failure stay joined.
    """
    masters = _unique(masters)
    if not masters:
        logger.info("No masters to join")
        return JoinStage.NO_OP

    state = runtime.state
    stage = JoinStage.ENSURE_BOOTSTRAP_CONFIG
    try:
        if not state.master0:
            raise ClusterOperationError("cluster has no master0, run init first", stage=stage)
        runtime.merge_kubeadm_config()

        stage = JoinStage.WAIT_REACHABLE
        runtime.wait_ssh_ready(masters)

        stage = JoinStage.FETCH_JOIN_CREDENTIALS
        runtime.fetch_join_credentials()

        stage = JoinStage.DISTRIBUTE_STATIC_FILES
        runtime.send_file_to_hosts(masters, runtime.cluster_files(), stage=stage.value)

        stage = JoinStage.RENDER_AND_SEND_JOIN_CONFIG
        _render_and_send_join_config(
            runtime, masters, f"{state.master0}:{API_SERVER_PORT}", control_plane=True
        )

        stage = JoinStage.PATCH_KNOWN_VERSION_QUIRK
        _patch_known_version_quirk(runtime, masters)

        stage = JoinStage.EXECUTE_JOIN
        for master in masters:
            _execute_master_join(runtime, master)
            state.add_masters([master])
    except ClusterOperationError as e:
        e.at(stage=stage)
        logger.error(f"Master join {JoinStage.FAILED.value} at {stage.value}: {e}")
        raise

    logger.info(f"Joined {len(masters)} master(s): {', '.join(masters)}")
    return JoinStage.JOINED


def lvscare_manifest(runtime: Runtime) -> str:
    state = runtime.state
    with state.lock:
        masters = list(state.masters)
    image = f"{state.registry.repo()}/{runtime.config.runtime.lb_image}"
    try:
        return render_static_pod(state.vip, masters, image)
    except ManifestError as e:
        raise ClusterOperationError("failed to render the load balancer manifest", cause=e) from e


def join_nodes(runtime: Runtime, nodes: Iterable[str]) -> JoinStage:
    """Join ``nodes`` as workers behind the VIP load balancer.

    Raises:
        ClusterOperationError: The first failure; nodes joined before it stay joined
    """
    nodes = _unique(nodes)
    if not nodes:
        logger.info("No nodes to join")
        return JoinStage.NO_OP

    state = runtime.state
    stage = JoinStage.ENSURE_BOOTSTRAP_CONFIG
    try:
        if not state.master0:
            raise ClusterOperationError("cluster has no master0, run init first", stage=stage)
        runtime.merge_kubeadm_config()

        stage = JoinStage.WAIT_REACHABLE
        runtime.wait_ssh_ready(nodes)

        stage = JoinStage.FETCH_JOIN_CREDENTIALS
        if not (state.join_token and state.token_ca_cert_hash):
            runtime.fetch_join_credentials()

        stage = JoinStage.RENDER_AND_SEND_JOIN_CONFIG
        _render_and_send_join_config(runtime, nodes, f"{state.vip}:{API_SERVER_PORT}", control_plane=False)

        stage = JoinStage.EXECUTE_JOIN
        join_cmd = runtime.command(CommandRole.JOIN_NODE)
        manifest = lvscare_manifest(runtime)
        with state.lock:
            masters = list(state.masters)

        def join(node: str) -> None:
            commands = [
                registry_hosts_command(state.registry),
                add_hosts_command(state.vip, state.api_server_domain),
            ]
            if state.registry.has_credentials:
                commands.append(registry_login_command(state.registry))
            commands += [
                ipvs_run_once_command(runtime.rootfs, state.vip, masters),
                join_cmd.render(),
                write_file_command(LVSCARE_MANIFEST, manifest),
            ]
            operation = HostOperation(target=node, commands=tuple(commands), stage=stage.value)
            logger.info(f"[{node}] Running {operation.describe()}")
            try:
                runtime.executor.cmd_async(node, *operation.commands)
            except ClusterOperationError as e:
                raise e.at(host=node, stage=stage)
            state.add_nodes([node])
            logger.info(f"[{node}] Joined as worker")

        runtime.run_on_each(nodes, join, name='join-node')
    except ClusterOperationError as e:
        e.at(stage=stage)
        logger.error(f"Node join {JoinStage.FAILED.value} at {stage.value}: {e}")
        raise

    logger.info(f"Joined {len(nodes)} node(s): {', '.join(nodes)}")
    return JoinStage.JOINED
