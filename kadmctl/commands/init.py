import typer

from kadmctl.commands import OPERATION_ERRORS, fail
from kadmctl.modules import cluster


def init_command(
    clusterfile: str = typer.Option(..., "--clusterfile", "-f", help="Path to the Clusterfile"),
):
    """Initialize master0 and join every other host of the Clusterfile."""
    typer.echo(f"🚀 Initializing cluster from {clusterfile}")
    try:
        result = cluster.init_cluster(clusterfile)
    except OPERATION_ERRORS as e:
        fail(e)
    typer.echo(
        f"✅ Cluster '{result.metadata.name}' initialized with "
        f"{len(result.spec.masters)} master(s) and {len(result.spec.nodes)} node(s)"
    )
