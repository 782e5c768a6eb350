"""Command-line entry point for Clippy."""

import typer

from clippy.config import Config, set_config
from clippy.logging import configure_logging, log
from clippy.server import run_web_server

cli = typer.Typer(help="Clippy - conversational assistant backend")


def main(
    config: str = "",
    host: str = "",
    port: int = 0,
    provider: str = "",
    model: str = "",
    verbose: bool = False,
) -> None:
    """Load config, apply overrides and run the HTTP server."""
    cfg = Config.load(config or None)
    if host:
        cfg.server.host = host
    if port:
        cfg.server.port = port
    if provider:
        cfg.model.provider = provider
    if model:
        cfg.model.model = model
    if verbose:
        cfg.logging.level = "DEBUG"
    set_config(cfg)

    configure_logging(cfg)
    log.info("Starting the server...")
    run_web_server(cfg)


@cli.command()
def serve(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    host: str = typer.Option("", "--host", help="Override listen host"),
    port: int = typer.Option(0, "--port", help="Override listen port"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run the HTTP API."""
    main(config, host, port, provider, model, verbose)


@cli.command()
def version() -> None:
    """Show version information."""
    from clippy import __version__
    typer.echo(f"Clippy v{__version__}")


def run() -> None:
    cli()


if __name__ == "__main__":
    run()
