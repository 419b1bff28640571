import typer

from kadmctl.commands import OPERATION_ERRORS, fail, split_hosts
from kadmctl.modules import cluster


def delete_command(
    clusterfile: str = typer.Option(..., "--clusterfile", "-f", help="Path to the Clusterfile"),
    masters: str = typer.Option("", "--masters", "-m", help="Comma separated masters to delete"),
    nodes: str = typer.Option("", "--nodes", "-n", help="Comma separated nodes to delete"),
    force: bool = typer.Option(False, "--force", help="Do not ask for confirmation"),
):
    """Reset and remove masters and nodes from the cluster."""
    master_list, node_list = split_hosts(masters), split_hosts(nodes)
    if not master_list and not node_list:
        typer.echo("❌ Nothing to delete, pass --masters and/or --nodes", err=True)
        raise typer.Exit(code=1)

    if not force:
        hosts = ', '.join(master_list + node_list)
        if not typer.confirm(f"Are you sure you want to reset and remove {hosts}?", default=False):
            typer.echo("❌ Deletion cancelled.")
            raise typer.Exit()

    try:
        failures = cluster.delete_from_cluster(clusterfile, masters=master_list, nodes=node_list)
    except OPERATION_ERRORS as e:
        fail(e)

    for host, error in failures.items():
        typer.echo(f"⚠️  {host}: {error}")
    typer.echo(f"🗑️ Removed {len(master_list)} master(s) and {len(node_list)} node(s)")
