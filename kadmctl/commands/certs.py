import typer

from kadmctl.commands import OPERATION_ERRORS, fail
from kadmctl.modules import cluster

app = typer.Typer()


@app.command("check")
def check_certs_command(
    clusterfile: str = typer.Option(..., "--clusterfile", "-f", help="Path to the Clusterfile"),
    host: str = typer.Option(None, "--host", help="Master to check (default: master0)"),
):
    """Show certificate expiration on a master."""
    try:
        report = cluster.check_certs(clusterfile, host=host)
    except OPERATION_ERRORS as e:
        fail(e)
    typer.echo(report)
