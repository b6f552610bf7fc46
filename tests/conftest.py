"""
Pytest configuration for Tollgate test suite.

This conftest.py provides:
- Machine-mode logging (suppresses console output)
- Temp directories and throwaway git remotes (bare origin, staging clone,
  production clone)
- Fake test-suite and migration commands built on the running interpreter
"""

import os
import shutil
import subprocess
import sys
import tempfile
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import List

import pytest

from tollgate.config import DEFAULTS, Settings, deep_merge
from tollgate.logging_config import setup_logging


# ============================================================================
# GLOBAL CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configure pytest for machine-mode operation."""
    os.environ.setdefault("TOLLGATE_MACHINE_MODE", "1")


# ============================================================================
# LOGGING FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def setup_test_logging():
    """
    Machine mode by default - suppress console logs for clean test output.
    """
    setup_logging(level="DEBUG", suppress_console=True, force=True)


# ============================================================================
# TEMPORARY DIRECTORY FIXTURES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory that's cleaned up after the test."""
    tmp = Path(tempfile.mkdtemp(prefix="tollgate_test_")).resolve()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


# ============================================================================
# GIT HELPERS
# ============================================================================

requires_git = pytest.mark.skipif(
    shutil.which("git") is None,
    reason="Git not available"
)


def run_git(repo: Path, *args: str) -> str:
    """Run a git command and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def configure_identity(repo: Path) -> None:
    run_git(repo, "config", "user.email", "test@example.com")
    run_git(repo, "config", "user.name", "Test User")
    run_git(repo, "config", "commit.gpgsign", "false")


def init_repo(repo: Path, branch: str = "main") -> None:
    """Initialize a git repo with default user config."""
    repo.mkdir(parents=True, exist_ok=True)
    init = subprocess.run(
        ["git", "init", "-b", branch],
        cwd=repo,
        capture_output=True,
        text=True,
    )
    if init.returncode != 0:
        run_git(repo, "init")
        run_git(repo, "checkout", "-b", branch)
    configure_identity(repo)


def write_file(repo: Path, relative: str, content: str) -> Path:
    path = repo / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def commit_file(repo: Path, relative: str, content: str, message: str) -> str:
    """Write, stage and commit one file; returns the new HEAD hash."""
    write_file(repo, relative, content)
    run_git(repo, "add", "--", relative)
    run_git(repo, "commit", "-m", message)
    return head(repo)


def head(repo: Path) -> str:
    return run_git(repo, "rev-parse", "HEAD").strip()


@dataclass
class Remotes:
    """A bare origin with a staging clone and a production clone."""
    origin: Path
    staging: Path
    production: Path


@pytest.fixture
def remotes(temp_dir):
    """
    Throwaway deployment: origin.git holds `main` and `staging` at the same
    commit; staging/ is checked out on staging, production/ on main.
    """
    origin = temp_dir / "origin.git"
    run_git(temp_dir, "init", "--bare", str(origin))
    run_git(origin, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = temp_dir / "seed"
    init_repo(seed)
    write_file(seed, "README.md", "# app\n")
    write_file(seed, "src/app.py", "def hello():\n    return 'hello'\n")
    run_git(seed, "add", ".")
    run_git(seed, "commit", "-m", "Initial commit")
    run_git(seed, "remote", "add", "origin", str(origin))
    run_git(seed, "push", "origin", "main")
    run_git(seed, "push", "origin", "main:staging")

    staging = temp_dir / "staging"
    run_git(temp_dir, "clone", "--branch", "staging", str(origin), str(staging))
    configure_identity(staging)

    production = temp_dir / "production"
    run_git(temp_dir, "clone", "--branch", "main", str(origin), str(production))
    configure_identity(production)

    return Remotes(origin=origin, staging=staging, production=production)


# ============================================================================
# FAKE COMMANDS
# ============================================================================

def junit_script(directory: Path, name: str, tests: int, failures: int = 0,
                 errors: int = 0, skipped: int = 0, exit_code: int = 0,
                 coverage: float = None, output: bytes = None) -> List[str]:
    """
    Write a script that produces a JUnit report with the given counts and
    return the argv template that runs it.

    The script takes the report path as argv[1] and, when `coverage` is
    set, a coverage JSON path as argv[2]. `output` replaces the summary line
    with raw bytes on stdout.
    """
    script = directory / f"{name}.py"
    script.write_text(textwrap.dedent(f"""
        import json
        import sys

        with open(sys.argv[1], "w") as f:
            f.write(
                '<?xml version="1.0" encoding="utf-8"?>'
                '<testsuites><testsuite name="{name}" tests="{tests}" failures="{failures}" '
                'errors="{errors}" skipped="{skipped}"></testsuite></testsuites>'
            )
        if len(sys.argv) > 2 and {coverage!r} is not None:
            with open(sys.argv[2], "w") as f:
                json.dump({{"totals": {{"percent_covered": {coverage!r}}}}}, f)
        if {output!r} is None:
            print("{name}: ran {tests} tests")
        else:
            sys.stdout.flush()
            sys.stdout.buffer.write({output!r})
        sys.exit({exit_code})
    """), encoding="utf-8")
    return [sys.executable, str(script), "{junit}"]


def exit_command(code: int, stdout: str = "", stderr: str = "") -> List[str]:
    """argv for a command that prints and exits with `code`."""
    program = (
        "import sys; "
        f"sys.stdout.write({stdout!r}); "
        f"sys.stderr.write({stderr!r}); "
        f"sys.exit({code})"
    )
    return [sys.executable, "-c", program]


def raw_output_command(code: int, data: bytes) -> List[str]:
    """argv for a command that writes raw `data` to stdout and exits with `code`."""
    program = f"import sys; sys.stdout.buffer.write({data!r}); sys.exit({code})"
    return [sys.executable, "-c", program]


def make_settings(remotes: Remotes, **sections) -> Settings:
    """
    Settings for a `remotes` deployment with passing unit tests, no
    integration subset and successful migration commands.

    Keyword arguments are section overrides, e.g. tests={...}.
    """
    tools = remotes.staging.parent / "tools"
    tools.mkdir(exist_ok=True)
    base = {
        "repository": {
            "staging_path": str(remotes.staging),
            "production_path": str(remotes.production),
        },
        "tests": {
            "unit_command": junit_script(tools, "unit_ok", tests=3),
            "run_integration": False,
            "timeout": 30.0,
        },
        "migration": {
            "validate_command": exit_command(0, "schema ok"),
            "generate_command": exit_command(0, "migration {name} applied"),
            "client_command": exit_command(0, "client generated"),
            "status_command": exit_command(0, "up to date"),
        },
        "pipeline": {
            "lock_timeout": 2.0,
        },
    }
    return Settings.model_validate(deep_merge(deep_merge(DEFAULTS, base), sections))
