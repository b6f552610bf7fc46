"""
CLI Promotion Commands

diff, check, run, rollback, history
"""

from typing import Optional

import typer
from rich.table import Table

from tollgate.events import LoggingSink
from tollgate.exceptions import GitCommandError
from tollgate.schemas import PromotionResult

from .common import EXIT_REJECTED, EXIT_USAGE, exit_code_for, load_pipeline_or_exit, promotion_or_exit
from .config import CLIConfig
from .output import get_console, print_error, print_json

app = typer.Typer()
console = get_console()

STATUS_STYLES = {"added": "green", "modified": "yellow", "deleted": "red"}


@app.command("diff")
def diff_cmd():
    """
    Show what staging would bring into production.
    """
    pipeline = load_pipeline_or_exit()
    manager = promotion_or_exit(pipeline)
    try:
        diff = manager.get_diff()
    except GitCommandError as e:
        print_error("GIT_ERROR", str(e))
        raise typer.Exit(code=EXIT_USAGE)
    finally:
        pipeline.shutdown()

    if CLIConfig.is_machine_mode():
        print_json({"status": "ok", **diff.model_dump(mode="json")})
        return

    console.print(f"Staging is [bold]{diff.ahead_count}[/bold] ahead, [bold]{diff.behind_count}[/bold] behind production")
    if diff.commits:
        commits = Table(title="Commits")
        commits.add_column("Hash", style="cyan")
        commits.add_column("Author", style="magenta")
        commits.add_column("Message")
        for commit in diff.commits:
            commits.add_row(commit.hash[:8], commit.author, commit.message)
        console.print(commits)
    if diff.files:
        files = Table(title="Files")
        files.add_column("Path", style="cyan")
        files.add_column("Status")
        files.add_column("+", justify="right", style="green")
        files.add_column("-", justify="right", style="red")
        for f in diff.files:
            style = STATUS_STYLES[f.status]
            files.add_row(f.path, f"[{style}]{f.status}[/{style}]", str(f.additions), str(f.deletions))
        console.print(files)


@app.command("check")
def check_cmd():
    """
    Run promotion safety checks without promoting.
    """
    pipeline = load_pipeline_or_exit()
    manager = promotion_or_exit(pipeline)
    try:
        result = manager.run_safety_checks()
    finally:
        pipeline.shutdown()

    if CLIConfig.is_machine_mode():
        print_json({"status": "ok" if result.passed else "error", **result.model_dump(mode="json")})
    elif result.passed:
        console.print("[green]All safety checks passed[/green]")
    else:
        console.print("[red]Safety checks failed:[/red]")
        for issue in result.issues:
            console.print(f"  - {issue}")

    if not result.passed:
        raise typer.Exit(code=EXIT_REJECTED)


@app.command("run")
def run_cmd(
    performed_by: str = typer.Option(..., "--by", help="Operator name recorded in the merge commit"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Merge commit title"),
):
    """
    Promote staging to production (safety checks, merge --no-ff, push).
    """
    pipeline = load_pipeline_or_exit()
    manager = promotion_or_exit(pipeline)
    try:
        result = manager.promote(performed_by, message, sink=LoggingSink())
    finally:
        pipeline.shutdown()
    _finish(result)


@app.command("rollback")
def rollback_cmd(
    commit: str = typer.Argument(..., help="Production commit to reset to"),
    performed_by: str = typer.Option(..., "--by", help="Operator name"),
    yes: bool = typer.Option(False, "--yes", help="Confirm the hard reset and force-push"),
):
    """
    Hard-reset production to COMMIT and force-push. Irreversible.
    """
    if not yes:
        print_error(
            "CONFIRMATION_REQUIRED",
            "Rollback hard-resets production and force-pushes it; pass --yes to confirm",
            input_value=commit,
        )
        raise typer.Exit(code=EXIT_USAGE)

    pipeline = load_pipeline_or_exit()
    manager = promotion_or_exit(pipeline)
    try:
        result = manager.rollback(commit, performed_by, sink=LoggingSink())
    finally:
        pipeline.shutdown()
    _finish(result)


@app.command("history")
def history_cmd(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of commits to show", min=1),
):
    """
    Show recent production history, marking promotions.
    """
    pipeline = load_pipeline_or_exit()
    manager = promotion_or_exit(pipeline)
    try:
        entries = manager.get_history(limit)
    except GitCommandError as e:
        print_error("GIT_ERROR", str(e))
        raise typer.Exit(code=EXIT_USAGE)
    finally:
        pipeline.shutdown()

    if CLIConfig.is_machine_mode():
        print_json({"status": "ok", "history": [entry.model_dump(mode="json") for entry in entries]})
        return

    table = Table(title="Production history")
    table.add_column("Hash", style="cyan")
    table.add_column("Date", style="green")
    table.add_column("Author", style="magenta")
    table.add_column("Message")
    for entry in entries:
        marker = "[bold]* [/bold]" if entry.is_promotion else ""
        table.add_row(entry.hash[:8], entry.date, entry.author, f"{marker}{entry.message}")
    console.print(table)


def _finish(result: PromotionResult) -> None:
    code = exit_code_for(result.success, result.kind)
    if CLIConfig.is_machine_mode():
        print_json({"status": "ok" if result.success else "error", **result.model_dump(mode="json")})
    else:
        color = "green" if result.success else ("red" if result.fatal else "yellow")
        console.print(f"[{color}]{result.message}[/{color}]")
        for issue in result.issues:
            console.print(f"  - {issue}")
        if result.error:
            console.print(result.error)
    if code:
        raise typer.Exit(code=code)
