"""
Remote execution over SSH using paramiko with a per-host connection pool.
"""
import logging
import os
import posixpath
import shlex
import socket
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import paramiko
from paramiko.ssh_exception import (
    AuthenticationException,
    NoValidConnectionsError,
    SSHException,
)

from kadmctl.logging import redact_command
from kadmctl.modules.kubeadm.errors import (
    CommandExecutionError,
    DistributionError,
    UnreachableHostError,
)

logger = logging.getLogger("ssh")

ROOT_USER = 'root'
RECV_BUFFER = 32768
RECV_INTERVAL = 0.1


def read_channel(channel) -> Tuple[int, bytes, bytes]:
    """Drain stdout and stderr of ``channel`` together until the command exits.

    Reading one stream to the end first stalls once the other fills the
    channel window.
    """
    out, err = [], []
    while True:
        received = False
        if channel.recv_ready():
            out.append(channel.recv(RECV_BUFFER))
            received = True
        if channel.recv_stderr_ready():
            err.append(channel.recv_stderr(RECV_BUFFER))
            received = True
        if received:
            continue
        if channel.exit_status_ready() and not (channel.recv_ready() or channel.recv_stderr_ready()):
            break
        time.sleep(RECV_INTERVAL)
    return channel.recv_exit_status(), b''.join(out), b''.join(err)


class RemoteExecutor(ABC):
    """What the kubeadm runtime needs from a remote shell transport.

    Every method may be called concurrently for different hosts. Failures
    are raised, never returned.
    """

    @abstractmethod
    def connect(self, host: str):
        """Open (or reuse) a session to ``host``.

        Raises:
            UnreachableHostError: If the host cannot be reached or authenticated
        """

    @abstractmethod
    def cmd(self, host: str, command: str) -> str:
        """Run one command and return its stdout.

        Raises:
            CommandExecutionError: If the command exits non-zero
        """

    @abstractmethod
    def cmd_async(self, host: str, *commands: str) -> None:
        """Run commands in order, streaming their output to the log.

        Raises:
            CommandExecutionError: On the first failing command
        """

    @abstractmethod
    def copy(self, host: str, src: str, dst: str) -> None:
        """Copy a local file or directory to ``dst`` on ``host``.

        Raises:
            DistributionError: If the transfer fails
        """

    @abstractmethod
    def username(self, host: str) -> str:
        """Login user of the session to ``host``."""

    def close(self) -> None:
        """Release every connection held by the executor."""


class ConnectionPool:
    """Thread-safe pool of paramiko clients, one per user@host."""

    def __init__(self):
        self.connections: Dict[str, paramiko.SSHClient] = {}
        self.lock = threading.RLock()
        self._host_locks: Dict[str, threading.Lock] = {}

    def _host_lock(self, connection_id: str) -> threading.Lock:
        with self.lock:
            return self._host_locks.setdefault(connection_id, threading.Lock())

    def get_connection(
        self,
        host: str,
        username: str,
        port: int = 22,
        key_path: Optional[str] = None,
        password: Optional[str] = None,
        timeout: int = 10
    ) -> paramiko.SSHClient:
        """Get a live connection from the pool, connecting if needed.

        Raises:
            UnreachableHostError: If the connection cannot be established
        """
        connection_id = f"{username}@{host}:{port}"

        with self._host_lock(connection_id):
            with self.lock:
                client = self.connections.get(connection_id)
            if client is not None:
                transport = client.get_transport()
                if transport is not None and transport.is_active():
                    return client
                logger.debug(f"Connection to {connection_id} went stale, reconnecting")
                client.close()

            logger.debug(f"Creating new SSH connection to {connection_id}")
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            key_filename = key_path if key_path and os.path.exists(key_path) else None
            try:
                client.connect(
                    hostname=host,
                    port=port,
                    username=username,
                    password=password,
                    key_filename=key_filename,
                    timeout=timeout,
                    banner_timeout=timeout,
                    auth_timeout=timeout,
                    allow_agent=key_filename is None and password is None,
                    look_for_keys=key_filename is None and password is None,
                )
            except (AuthenticationException, NoValidConnectionsError, SSHException, socket.error) as e:
                client.close()
                raise UnreachableHostError("failed to connect over SSH", host=host, cause=e) from e

            with self.lock:
                self.connections[connection_id] = client
            return client

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self.lock:
            for connection_id, client in self.connections.items():
                try:
                    client.close()
                except (SSHException, OSError) as e:
                    logger.warning(f"Error closing SSH connection {connection_id}: {e}")
            self.connections.clear()


class SSHExecutor(RemoteExecutor):
    """RemoteExecutor backed by paramiko.

    Commands of a non-root login are wrapped in ``sudo``; file copies go
    through a staging directory and are moved into place with ``sudo``.
    """

    def __init__(
        self,
        user: str = ROOT_USER,
        password: Optional[str] = None,
        key_path: Optional[str] = None,
        port: int = 22,
        timeout: int = 10,
        pool: Optional[ConnectionPool] = None
    ):
        self.user = user
        self.password = password
        self.key_path = os.path.expanduser(key_path) if key_path else None
        self.port = port
        self.timeout = timeout
        self.pool = pool or ConnectionPool()

    def connect(self, host: str) -> paramiko.SSHClient:
        return self.pool.get_connection(
            host=host,
            username=self.user,
            port=self.port,
            key_path=self.key_path,
            password=self.password,
            timeout=self.timeout,
        )

    def username(self, host: str) -> str:
        return self.user

    def _wrap(self, command: str) -> str:
        if self.user == ROOT_USER:
            return command
        return f"sudo -E /bin/bash -c {shlex.quote(command)}"

    def _exec(self, host: str, command: str):
        client = self.connect(host)
        try:
            _, stdout, _ = client.exec_command(self._wrap(command))
            status, out, err = read_channel(stdout.channel)
        except (SSHException, socket.error) as e:
            raise CommandExecutionError(f"failed to run {redact_command(command)!r}", host=host, cause=e) from e
        return status, out.decode('utf-8', 'replace'), err.decode('utf-8', 'replace')

    def cmd(self, host: str, command: str) -> str:
        logger.debug(f"[{host}] $ {redact_command(command)}")
        status, out, err = self._exec(host, command)
        if status != 0:
            raise CommandExecutionError(
                f"command {redact_command(command)!r} exited with status {status}: {(err or out).strip()}",
                host=host
            )
        return out

    def cmd_async(self, host: str, *commands: str) -> None:
        for command in commands:
            if not command:
                continue
            output = self.cmd(host, command)
            for line in output.splitlines():
                logger.info(f"[{host}] {line}")

    def copy(self, host: str, src: str, dst: str) -> None:
        if not os.path.exists(src):
            raise DistributionError(f"local path {src} does not exist", host=host)

        staging = dst if self.user == ROOT_USER else f"/tmp/kadmctl-{uuid.uuid4().hex}"
        try:
            if staging == dst:
                self.cmd(host, f"mkdir -p {posixpath.dirname(dst.rstrip('/')) or '/'}")
            sftp = self.connect(host).open_sftp()
            try:
                if os.path.isdir(src):
                    self._put_dir(sftp, src, staging)
                else:
                    sftp.put(src, staging)
            finally:
                sftp.close()
            if staging != dst:
                parent = posixpath.dirname(dst.rstrip('/')) or '/'
                self.cmd(host, f"mkdir -p {parent} && rm -rf {dst} && mv {staging} {dst}")
        except (CommandExecutionError, SSHException, OSError) as e:
            raise DistributionError(f"failed to copy {src} to {dst}", host=host, cause=e) from e
        logger.debug(f"[{host}] Copied {src} to {dst}")

    @staticmethod
    def _sftp_mkdir(sftp, path: str) -> None:
        try:
            sftp.stat(path)
        except IOError:
            sftp.mkdir(path)

    def _put_dir(self, sftp, src: str, dst: str) -> None:
        self._sftp_mkdir(sftp, dst)
        for root, dirs, files in os.walk(src):
            rel = os.path.relpath(root, src)
            remote_root = dst if rel == '.' else posixpath.join(dst, *rel.split(os.sep))
            for name in dirs:
                self._sftp_mkdir(sftp, posixpath.join(remote_root, name))
            for name in files:
                sftp.put(os.path.join(root, name), posixpath.join(remote_root, name))

    def close(self) -> None:
        self.pool.close_all()
