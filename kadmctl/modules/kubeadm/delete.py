"""Master and worker removal pipelines.

Removal is best-effort: a host that is already gone must not block the
cluster from forgetting it. Every failure is logged as a
``PartialCleanupError`` and returned to the caller keyed by host.
"""
import logging
from typing import Dict, Iterable, List, Optional

from .commands import (
    KUBECTL_LIST_NODE_NAMES,
    KUBECTL_LIST_NODES_WIDE,
    LVSCARE_MANIFEST,
    clean_master_host_commands,
    clean_worker_host_commands,
    kubectl_delete_node_command,
    write_file_command,
)
from .errors import ClusterOperationError, PartialCleanupError
from .fanout import FanoutPolicy
from .join import lvscare_manifest
from .models import DeleteStage, _unique
from .runtime import Runtime
from .utils import match_node_name, parse_kubectl_output

logger = logging.getLogger("kubeadm.delete")


def resolve_node_name(runtime: Runtime, host: str, master: str) -> str:
    """Find the Kubernetes node name of ``host`` by asking ``master``.

    Matches the host's ``hostname`` against ``kubectl get nodes`` and falls
    back to the INTERNAL-IP column of ``kubectl get nodes -o wide``.

    Returns:
        str: The node name, or an empty string if it cannot be resolved
    """
    try:
        hostname = runtime.get_remote_hostname(host)
    except ClusterOperationError as e:
        logger.warning(f"[{host}] Failed to get hostname, matching by INTERNAL-IP instead: {e}")
        hostname = ''

    if hostname:
        names = runtime.executor.cmd(master, KUBECTL_LIST_NODE_NAMES).splitlines()
        name = match_node_name(names, hostname)
        if name:
            return name
        logger.debug(f"[{host}] Hostname {hostname} not found among nodes {names}")

    for row in parse_kubectl_output(runtime.executor.cmd(master, KUBECTL_LIST_NODES_WIDE)):
        if row.get('INTERNAL-IP') == host:
            return row.get('NAME', '')
    return ''


def _delete_node_object(runtime: Runtime, host: str, remaining: List[str]) -> None:
    if not remaining:
        logger.info(f"[{host}] No masters remain, skipping kubectl delete node")
        return
    master = remaining[0]
    name = resolve_node_name(runtime, host, master)
    if not name:
        logger.warning(f"[{host}] Node name could not be resolved, skipping kubectl delete node")
        return
    runtime.executor.cmd(master, kubectl_delete_node_command(name))
    logger.info(f"[{host}] Deleted node {name} via {master}")


def _record(failures: List[PartialCleanupError], host: str, stage: DeleteStage, error: ClusterOperationError) -> None:
    failure = PartialCleanupError(f"{stage.value} failed", host=host, stage=stage, cause=error)
    logger.warning(f"[{host}] {failure.message}, continuing: {error}")
    failures.append(failure)


def refresh_load_balancer(runtime: Runtime) -> Dict[str, BaseException]:
    """Push the lvscare manifest for the current masters to every worker."""
    state = runtime.state
    with state.lock:
        nodes = list(state.nodes)
        masters = list(state.masters)
    if not nodes:
        return {}
    if not masters:
        logger.warning("No masters remain, leaving the load balancer on workers unchanged")
        return {}

    manifest = lvscare_manifest(runtime)

    def push(node: str) -> None:
        runtime.executor.cmd(node, write_file_command(LVSCARE_MANIFEST, manifest))

    logger.info(f"Refreshing load balancer on {len(nodes)} worker(s) with backends {', '.join(masters)}")
    return runtime.run_on_each(nodes, push, policy=FanoutPolicy.BEST_EFFORT, name='refresh-lb')


def delete_masters(runtime: Runtime, masters: Iterable[str]) -> Dict[str, BaseException]:
    """Remove ``masters`` from the cluster.

    Args:
        runtime: Runtime of the cluster
        masters: Addresses of the masters to remove

    Returns:
        dict: host -> PartialCleanupError for every host that did not clean up fully
    """
    targets = _unique(masters)
    if not targets:
        logger.info("No masters to delete")
        return {}

    state = runtime.state

    def delete(master: str) -> None:
        failures: List[PartialCleanupError] = []
        remaining = [m for m in state.remaining_masters(master) if m not in targets]
        api_server_ip: Optional[str] = remaining[0] if remaining else None
        is_local = runtime.is_local(master)

        try:
            runtime.executor.cmd_async(
                master, *clean_master_host_commands(state, runtime.vlog, is_local, api_server_ip)
            )
            logger.info(f"[{master}] Cleaned up master{' (local host)' if is_local else ''}")
        except ClusterOperationError as e:
            _record(failures, master, DeleteStage.CLEANUP_HOST, e)

        try:
            _delete_node_object(runtime, master, remaining)
        except ClusterOperationError as e:
            _record(failures, master, DeleteStage.DELETE_NODE_OBJECT, e)

        state.remove_master(master)
        if failures:
            raise failures[0]

    result = runtime.run_on_each(targets, delete, policy=FanoutPolicy.BEST_EFFORT, name='delete-master')

    for node, error in refresh_load_balancer(runtime).items():
        logger.warning(f"[{node}] {DeleteStage.REFRESH_LOAD_BALANCER.value} failed: {error}")

    logger.info(f"Deleted {len(targets)} master(s), {len(result)} with partial cleanup")
    return result


def delete_nodes(runtime: Runtime, nodes: Iterable[str]) -> Dict[str, BaseException]:
    """Remove worker ``nodes`` from the cluster.

    Returns:
        dict: host -> PartialCleanupError for every host that did not clean up fully
    """
    targets = _unique(nodes)
    if not targets:
        logger.info("No nodes to delete")
        return {}

    state = runtime.state
    with state.lock:
        masters = list(state.masters)

    def delete(node: str) -> None:
        failures: List[PartialCleanupError] = []
        try:
            runtime.executor.cmd_async(node, *clean_worker_host_commands(state, runtime.vlog))
            logger.info(f"[{node}] Cleaned up node")
        except ClusterOperationError as e:
            _record(failures, node, DeleteStage.CLEANUP_HOST, e)

        try:
            _delete_node_object(runtime, node, masters)
        except ClusterOperationError as e:
            _record(failures, node, DeleteStage.DELETE_NODE_OBJECT, e)

        state.remove_node(node)
        if failures:
            raise failures[0]

    result = runtime.run_on_each(targets, delete, policy=FanoutPolicy.BEST_EFFORT, name='delete-node')
    logger.info(f"Deleted {len(targets)} node(s), {len(result)} with partial cleanup")
    return result
