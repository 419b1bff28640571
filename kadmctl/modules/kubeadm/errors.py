"""Error taxonomy for the kubeadm runtime.

Fail-fast stages raise these wrapped with the failing host and stage so the
operator can tell what to clean up. Best-effort stages log them instead.
"""
from typing import Optional


class ClusterOperationError(Exception):
    """Base class for every orchestrator failure."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.host = host
        self.stage = getattr(stage, "value", stage)
        self.cause = cause

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.host:
            context.append(f"host={self.host}")
        prefix = f"[{' '.join(context)}] " if context else ""
        suffix = f": {self.cause}" if self.cause is not None else ""
        return f"{prefix}{self.message}{suffix}"

    def at(self, host: Optional[str] = None, stage: Optional[str] = None) -> "ClusterOperationError":
        """Fill in host and stage where they are still unknown."""
        self.host = self.host or host
        self.stage = self.stage or getattr(stage, "value", stage)
        return self


class BootstrapConfigError(ClusterOperationError):
    """The persisted kubeadm configuration of the cluster is unreadable."""


class UnreachableHostError(ClusterOperationError):
    """A host did not answer over SSH within the readiness budget."""


class CredentialFetchError(ClusterOperationError):
    """upload-certs or token create output could not be obtained or parsed."""


class DistributionError(ClusterOperationError):
    """A file copy or remote file write failed."""


class CommandExecutionError(ClusterOperationError):
    """A remote command exited non-zero or the transport failed."""


class UnsupportedRoleError(ClusterOperationError):
    """A kubeadm command was requested for a role with no template."""


class CommandBuildError(ClusterOperationError):
    """A command could not be rendered from the current cluster state."""


class PartialCleanupError(ClusterOperationError):
    """One host of a best-effort batch failed. Logged, never raised to callers."""


class VersionResolutionWarning(UserWarning):
    """A Kubernetes version could not be parsed; the flag-based family is used."""
