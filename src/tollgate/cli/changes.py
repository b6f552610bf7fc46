"""
CLI Modification Commands

classify, apply, status, log
"""

from pathlib import Path
from typing import List

import typer
from pydantic import ValidationError
from rich.table import Table

from tollgate.config import load_settings
from tollgate.events import LoggingSink
from tollgate.exceptions import ConfigError, GitCommandError, PolicyViolation
from tollgate.mutation import ProtectionPolicy
from tollgate.schemas import ModificationRequest, PathClass

from .common import EXIT_REJECTED, EXIT_USAGE, exit_code_for, load_pipeline_or_exit
from .config import CLIConfig
from .output import get_console, print_error, print_json

console = get_console()

CLASS_STYLES = {
    PathClass.PROTECTED: "red",
    PathClass.SENSITIVE: "yellow",
    PathClass.ORDINARY: "green",
}


def classify_cmd(
    paths: List[str] = typer.Argument(..., help="Paths relative to the working tree root"),
):
    """
    Show how the protection policy classifies each path.
    """
    try:
        settings = load_settings(CLIConfig.config_path())
    except ConfigError as e:
        print_error("CONFIG_ERROR", str(e))
        raise typer.Exit(code=EXIT_USAGE)

    policy = ProtectionPolicy.from_settings(settings.mutation)
    results = [policy.explain(p) for p in paths]

    if CLIConfig.is_machine_mode():
        print_json({"status": "ok", "paths": results})
        return

    table = Table(title="Path classification")
    table.add_column("Path", style="cyan")
    table.add_column("Class")
    table.add_column("Matched by", style="dim")
    for item in results:
        path_class = PathClass(item["class"])
        style = CLASS_STYLES[path_class]
        matched = item["protected_by"] if path_class is PathClass.PROTECTED else item["sensitive_by"]
        table.add_row(item["path"], f"[{style}]{path_class.value}[/{style}]", ", ".join(matched))
    console.print(table)


def apply_cmd(
    request_file: Path = typer.Argument(..., help="JSON file with {description, fileChanges, skipTests}", exists=True, dir_okay=False, readable=True),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Commit without running the test gate"),
):
    """
    Apply a modification request: mutate, migrate, commit, test.
    """
    try:
        request = ModificationRequest.model_validate_json(request_file.read_text(encoding="utf-8"))
    except ValidationError as e:
        print_error("INVALID_REQUEST", f"Malformed modification request: {e}", input_value=str(request_file))
        raise typer.Exit(code=EXIT_USAGE)
    if skip_tests:
        request = request.model_copy(update={"skip_tests": True})

    pipeline = load_pipeline_or_exit()
    try:
        result = pipeline.run(request, sink=LoggingSink())
    except PolicyViolation as e:
        print_error(
            "POLICY_VIOLATION",
            str(e),
            reason=e.reason,
            paths=e.paths,
            suggestions=["Resubmit without the listed paths"],
        )
        raise typer.Exit(code=EXIT_REJECTED)
    finally:
        pipeline.shutdown()

    code = exit_code_for(result.success, result.kind)
    if CLIConfig.is_machine_mode():
        print_json({"status": "ok" if result.success else "error", **result.model_dump(mode="json")})
    else:
        _print_modification(result)
    if code:
        raise typer.Exit(code=code)


def _print_modification(result) -> None:
    if result.success:
        if result.commit:
            console.print(f"[green]Committed {result.commit.hash[:8]}[/green] {result.commit.message.splitlines()[0]}")
        else:
            console.print("[yellow]No changes on disk, nothing committed[/yellow]")
        if result.tests:
            console.print(f"Tests: {result.tests.passed}/{result.tests.total} passed")
        elif result.tests_skipped:
            console.print("Tests: skipped")
    else:
        color = "red" if result.fatal else "yellow"
        console.print(f"[{color}]{result.kind.value if result.kind else 'failed'}[/{color}]: {result.error}")
        if result.revert_commit:
            console.print(f"Reverted with {result.revert_commit[:8]}")
        if result.details:
            console.print(result.details)
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def status_cmd():
    """
    Show the staging working copy and pipeline state.
    """
    pipeline = load_pipeline_or_exit()
    try:
        repo_status = pipeline.staging.status()
    except GitCommandError as e:
        print_error("GIT_ERROR", str(e))
        raise typer.Exit(code=EXIT_USAGE)
    finally:
        pipeline.shutdown()

    data = {"status": "ok", "pipeline": pipeline.status(), "repository": repo_status.model_dump(mode="json")}
    if CLIConfig.is_machine_mode():
        print_json(data)
        return

    table = Table(title=f"Staging: {pipeline.staging.path}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Branch", repo_status.branch or "(detached)")
    table.add_row("Upstream", repo_status.upstream or "-")
    table.add_row("Ahead / behind", f"{repo_status.ahead_of_remote} / {repo_status.behind_remote}")
    table.add_row("Clean", "yes" if repo_status.clean else "no")
    table.add_row("Modified", "\n".join(repo_status.modified_paths) or "-")
    table.add_row("Created", "\n".join(repo_status.created_paths) or "-")
    table.add_row("Deleted", "\n".join(repo_status.deleted_paths) or "-")
    table.add_row("Pipeline state", pipeline.status()["state"])
    console.print(table)


def log_cmd(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of commits to show", min=1),
):
    """
    Show recent staging commits.
    """
    pipeline = load_pipeline_or_exit()
    try:
        commits = pipeline.staging.log(max_count=limit)
    except GitCommandError as e:
        print_error("GIT_ERROR", str(e))
        raise typer.Exit(code=EXIT_USAGE)
    finally:
        pipeline.shutdown()

    if CLIConfig.is_machine_mode():
        print_json({"status": "ok", "commits": [c.model_dump(mode="json") for c in commits]})
        return

    table = Table(title="Recent commits")
    table.add_column("Hash", style="cyan")
    table.add_column("Author", style="magenta")
    table.add_column("Date", style="green")
    table.add_column("Message")
    for commit in commits:
        table.add_row(commit.hash[:8], commit.author.name, commit.date or "", commit.message.splitlines()[0] if commit.message else "")
    console.print(table)
