import typer

from kadmctl.commands import OPERATION_ERRORS, fail, split_hosts
from kadmctl.modules import cluster


def join_command(
    clusterfile: str = typer.Option(..., "--clusterfile", "-f", help="Path to the Clusterfile"),
    masters: str = typer.Option("", "--masters", "-m", help="Comma separated masters to join"),
    nodes: str = typer.Option("", "--nodes", "-n", help="Comma separated nodes to join"),
):
    """Join masters and nodes to an initialized cluster."""
    master_list, node_list = split_hosts(masters), split_hosts(nodes)
    if not master_list and not node_list:
        typer.echo("❌ Nothing to join, pass --masters and/or --nodes", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"🔗 Joining {len(master_list)} master(s) and {len(node_list)} node(s)")
    try:
        result = cluster.join_cluster(clusterfile, masters=master_list, nodes=node_list)
    except OPERATION_ERRORS as e:
        fail(e)
    typer.echo(f"✅ Cluster now has {len(result.spec.masters)} master(s) and {len(result.spec.nodes)} node(s)")
