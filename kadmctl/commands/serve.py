import typer
import uvicorn

from kadmctl.config import Config


def serve_command(
    host: str = typer.Option("127.0.0.1", help="Address to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
):
    """Run the HTTP API."""
    try:
        Config.validate()
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"🌐 Serving kadmctl API on http://{host}:{port}")
    uvicorn.run("kadmctl.api.main:app", host=host, port=port)
