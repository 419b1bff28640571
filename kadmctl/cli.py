import logging
import sys

import typer

from kadmctl.commands import certs, delete, init, join, serve
from kadmctl.logging import setup_logger
from kadmctl.modules.kubeadm import RuntimeConfig, set_config

app = typer.Typer(help="kadmctl - kubeadm cluster lifecycle over SSH.")

# Add all commands
app.command("init")(init.init_command)
app.command("join")(join.join_command)
app.command("delete")(delete.delete_command)
app.command("serve")(serve.serve_command)
app.add_typer(certs.app, name="certs", help="Certificate operations")


def setup_logging(config: RuntimeConfig, debug_mode: bool = False) -> None:
    """Configure the root logger from the runtime config."""
    if debug_mode:
        level = logging.DEBUG
    else:
        level = getattr(logging, config.logging.level.upper(), logging.INFO)
    setup_logger(
        level=level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('paramiko').setLevel(logging.WARNING)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: str = typer.Option(None, "--config", "-c", help="Path to the runtime config file"),
):
    """kadmctl - kubeadm cluster lifecycle over SSH."""
    try:
        runtime_config = RuntimeConfig.load(config)
    except FileNotFoundError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    set_config(runtime_config)
    setup_logging(runtime_config, debug)
    if debug:
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        logging.error(f"Error: {e}")
        sys.exit(1)
