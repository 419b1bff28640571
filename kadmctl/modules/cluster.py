"""Cluster operations shared by the CLI and the HTTP API.

Each operation loads the Clusterfile, builds a runtime for it, runs the
kubeadm pipeline and writes the updated Clusterfile back on success.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from kadmctl.logging import redact
from kadmctl.modules.clusterfile import Clusterfile
from kadmctl.modules.kubeadm import (
    Runtime,
    RuntimeConfig,
    delete_masters,
    delete_nodes,
    get_config,
    init,
    join_masters,
    join_nodes,
)
from kadmctl.modules.ssh import RemoteExecutor, SSHExecutor

logger = logging.getLogger("cluster")


def build_executor(clusterfile: Clusterfile, config: RuntimeConfig) -> SSHExecutor:
    """SSH executor from the Clusterfile ssh section, falling back to the runtime config."""
    ssh = clusterfile.spec.ssh
    logger.debug(f"SSH settings from Clusterfile: {redact(ssh.model_dump(exclude_none=True))}")
    return SSHExecutor(
        user=ssh.user or config.ssh.user,
        password=ssh.password or config.ssh.password,
        key_path=ssh.key_path or config.ssh.key_path,
        port=ssh.port or config.ssh.port,
        timeout=config.ssh.connect_timeout,
    )


@contextmanager
def open_runtime(
    clusterfile: Clusterfile,
    config: Optional[RuntimeConfig] = None,
    executor: Optional[RemoteExecutor] = None
) -> Iterator[Runtime]:
    """Yield a runtime for ``clusterfile``; connections opened here are closed on exit."""
    config = config or get_config()
    owned = executor is None
    executor = executor or build_executor(clusterfile, config)
    try:
        yield Runtime(clusterfile.to_state(), executor, config=config)
    finally:
        if owned:
            executor.close()


def _new_members(requested: Iterable[str], current: List[str], kind: str) -> List[str]:
    members = []
    for ip in requested:
        ip = ip.strip()
        if not ip or ip in members:
            continue
        if ip in current:
            logger.info(f"[{ip}] Already a {kind} of the cluster, skipping")
            continue
        members.append(ip)
    return members


def init_cluster(
    clusterfile_path: Union[str, Path],
    config: Optional[RuntimeConfig] = None,
    executor: Optional[RemoteExecutor] = None
) -> Clusterfile:
    """Bootstrap every master and node listed in the Clusterfile."""
    clusterfile = Clusterfile.load(clusterfile_path)
    logger.info(
        f"Initializing cluster '{clusterfile.metadata.name}' {clusterfile.spec.kube_version} with "
        f"{len(clusterfile.spec.masters)} master(s) and {len(clusterfile.spec.nodes)} node(s)"
    )
    with open_runtime(clusterfile, config, executor) as runtime:
        init(runtime)
        clusterfile.update_from_state(runtime.state)
    clusterfile.save(clusterfile_path)
    return clusterfile


def join_cluster(
    clusterfile_path: Union[str, Path],
    masters: Iterable[str] = (),
    nodes: Iterable[str] = (),
    config: Optional[RuntimeConfig] = None,
    executor: Optional[RemoteExecutor] = None
) -> Clusterfile:
    """Join new masters, then new nodes, to an initialized cluster."""
    clusterfile = Clusterfile.load(clusterfile_path)
    masters = _new_members(masters, clusterfile.spec.masters, 'master')
    nodes = _new_members(nodes, clusterfile.spec.nodes, 'node')
    if not masters and not nodes:
        logger.info("Nothing to join")
        return clusterfile

    with open_runtime(clusterfile, config, executor) as runtime:
        try:
            join_masters(runtime, masters)
            join_nodes(runtime, nodes)
        finally:
            # hosts that joined before a failure are members now
            clusterfile.update_from_state(runtime.state)
            clusterfile.save(clusterfile_path)
    return clusterfile


def delete_from_cluster(
    clusterfile_path: Union[str, Path],
    masters: Iterable[str] = (),
    nodes: Iterable[str] = (),
    config: Optional[RuntimeConfig] = None,
    executor: Optional[RemoteExecutor] = None
) -> Dict[str, BaseException]:
    """Remove masters and nodes, best-effort.

    Returns:
        dict: host -> error for every host that did not clean up fully
    """
    clusterfile = Clusterfile.load(clusterfile_path)
    masters = [ip.strip() for ip in masters if ip.strip()]
    nodes = [ip.strip() for ip in nodes if ip.strip()]
    unknown = [ip for ip in masters if ip not in clusterfile.spec.masters]
    unknown += [ip for ip in nodes if ip not in clusterfile.spec.nodes]
    for ip in unknown:
        logger.warning(f"[{ip}] Not listed in the Clusterfile, cleaning it up anyway")

    with open_runtime(clusterfile, config, executor) as runtime:
        failures = {}
        failures.update(delete_nodes(runtime, nodes))
        failures.update(delete_masters(runtime, masters))
        clusterfile.update_from_state(runtime.state)
    clusterfile.save(clusterfile_path)
    return failures


def check_certs(
    clusterfile_path: Union[str, Path],
    host: Optional[str] = None,
    config: Optional[RuntimeConfig] = None,
    executor: Optional[RemoteExecutor] = None
) -> str:
    """Return the kubeadm certificate expiry report of a master."""
    clusterfile = Clusterfile.load(clusterfile_path)
    with open_runtime(clusterfile, config, executor) as runtime:
        return runtime.check_certs(host)
