"""Concurrent per-host execution with explicit failure policies."""
import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .errors import ClusterOperationError, PartialCleanupError

logger = logging.getLogger("kubeadm.fanout")


class FanoutPolicy(str, Enum):
    """What a batch does when one host fails."""
    FAIL_FAST = 'fail_fast'
    BEST_EFFORT = 'best_effort'


class _Cancelled(Exception):
    """Raised inside a queued task that was reached after the batch failed."""


class TaskGroup:
    """Runs one operation per host on a thread pool.

    ``FAIL_FAST`` raises the first error and stops dispatching queued hosts.
    Operations already running are not interrupted; their remote side may
    still complete. ``BEST_EFFORT`` runs every host to completion, logs each
    failure and returns them keyed by host.
    """

    def __init__(
        self,
        policy: FanoutPolicy,
        max_workers: int = 0,
        name: str = 'fanout'
    ):
        self.policy = FanoutPolicy(policy)
        self.max_workers = max_workers
        self.name = name
        self._cancel = threading.Event()

    def _pool_size(self, hosts: List[str]) -> int:
        if self.max_workers and self.max_workers > 0:
            return min(self.max_workers, len(hosts))
        return len(hosts)

    def _guarded(self, operation: Callable[[str], None], host: str) -> None:
        if self._cancel.is_set():
            raise _Cancelled(host)
        try:
            operation(host)
        except Exception:
            # set before this worker picks up its next queued host
            self._cancel.set()
            raise

    def run(self, hosts: Iterable[str], operation: Callable[[str], None]) -> Dict[str, BaseException]:
        """Run ``operation(host)`` for every host.

        Args:
            hosts: Target hosts
            operation: Callable receiving its own host; its return value is ignored

        Returns:
            dict: host -> exception for every failed host (BEST_EFFORT only)

        Raises:
            Exception: The first failure, in FAIL_FAST mode
        """
        hosts = list(hosts)
        if not hosts:
            return {}
        if self.policy is FanoutPolicy.FAIL_FAST:
            self._run_fail_fast(hosts, operation)
            return {}
        return self._run_best_effort(hosts, operation)

    def _run_fail_fast(self, hosts: List[str], operation: Callable[[str], None]) -> None:
        executor = ThreadPoolExecutor(
            max_workers=self._pool_size(hosts),
            thread_name_prefix=self.name
        )
        try:
            # host is bound as an argument at submit time, never read from the loop later
            future_to_host = {
                executor.submit(self._guarded, operation, host): host
                for host in hosts
            }
            pending = set(future_to_host)
            while pending:
                done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                for future in done:
                    error = future.exception()
                    if error is None or isinstance(error, _Cancelled):
                        continue
                    self._cancel.set()
                    for other in pending:
                        other.cancel()
                    logger.error(f"[{future_to_host[future]}] {self.name} failed: {error}")
                    raise error
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_best_effort(self, hosts: List[str], operation: Callable[[str], None]) -> Dict[str, BaseException]:
        failures: Dict[str, BaseException] = {}
        with ThreadPoolExecutor(max_workers=self._pool_size(hosts), thread_name_prefix=self.name) as executor:
            future_to_host = {executor.submit(operation, host): host for host in hosts}
            for future, host in future_to_host.items():
                error = future.exception()
                if error is None:
                    continue
                if not isinstance(error, ClusterOperationError):
                    error = PartialCleanupError(f"{self.name} failed", host=host, cause=error)
                failures[host] = error
                logger.error(f"[{host}] {self.name} failed, continuing with other hosts: {error}")
        return failures


def run_on_each(
    hosts: Iterable[str],
    operation: Callable[[str], None],
    policy: FanoutPolicy = FanoutPolicy.FAIL_FAST,
    max_workers: int = 0,
    name: str = 'fanout'
) -> Dict[str, BaseException]:
    """Convenience wrapper around :class:`TaskGroup`."""
    return TaskGroup(policy, max_workers=max_workers, name=name).run(hosts, operation)
