"""kadmctl CLI commands."""
from typing import List, Optional

import typer

from kadmctl.modules.clusterfile import ClusterfileError
from kadmctl.modules.kubeadm import ClusterOperationError

# Errors turned into a one-line message and exit code 1
OPERATION_ERRORS = (ClusterOperationError, ClusterfileError)


def split_hosts(value: Optional[str]) -> List[str]:
    """Split a comma separated host list, dropping blanks."""
    if not value:
        return []
    return [host.strip() for host in value.split(',') if host.strip()]


def fail(error: Exception) -> None:
    typer.echo(f"❌ {error}", err=True)
    raise typer.Exit(code=1)
