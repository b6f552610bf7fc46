from pathlib import Path
from typing import Optional

import typer

from tollgate import __version__
from tollgate.cli import changes, promotion
from tollgate.cli.config import CLIConfig
from tollgate.logging_config import logger, setup_logging

app = typer.Typer()


# Global CLI callback for flags that apply to all commands
@app.callback()
def global_options(
    human: bool = typer.Option(
        False,
        "--human",
        "-H",
        help="Enable human mode: tables and colors (also via TOLLGATE_HUMAN_MODE env var)"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to tollgate.toml (default: $TOLLGATE_CONFIG, ./tollgate.toml, ~/.config/tollgate/config.toml)",
        dir_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    """
    Tollgate: safe mutation and promotion pipeline.

    Machine mode is DEFAULT (JSON output, no console logging).
    Use --human/-H for tables and logs.
    """
    CLIConfig.set_config_path(config)
    level = "DEBUG" if verbose else "INFO"
    if human:
        CLIConfig.set_machine_mode(False)
        setup_logging(level=level, suppress_console=False, force=True)
    else:
        # Machine mode is default - suppress console logging
        CLIConfig.set_machine_mode(True)
        setup_logging(level=level, suppress_console=True, force=True)


app.add_typer(promotion.app, name="promote", help="Promotion commands (diff, check, run, rollback, history)")

app.command(name="classify")(changes.classify_cmd)
app.command(name="apply")(changes.apply_cmd)
app.command(name="status")(changes.status_cmd)
app.command(name="log")(changes.log_cmd)


@app.command()
def version():
    """
    Prints the current version of Tollgate.
    """
    typer.echo(f"Tollgate v{__version__}")


@app.command()
def serve():
    """
    Run the MCP server on stdio.
    """
    from tollgate.mcp import run_server

    logger.info("Starting Tollgate MCP server")
    run_server()


if __name__ == "__main__":
    app()
