"""
Thin subprocess wrapper around the git executable.
"""

import os
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence

from tollgate.exceptions import GitCommandError
from tollgate.logging_config import logger


DEFAULT_TIMEOUT = 60.0


def git_env() -> Dict[str, str]:
    env = dict(os.environ)
    # Never block on a credential prompt
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    return env


def run_git(
    args: Sequence[str],
    cwd: Path,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    check: bool = True,
    config: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run `git <args>` in `cwd`.

    Args:
        args: Arguments after `git`
        cwd: Working copy to run in
        timeout: Seconds before the command counts as failed
        check: Raise on non-zero exit
        config: Per-invocation `-c key=value` settings

    Returns:
        The completed process (text mode)

    Raises:
        GitCommandError: On non-zero exit (when check), timeout, or missing git
    """
    argv = ["git"]
    for key, value in (config or {}).items():
        argv.extend(["-c", f"{key}={value}"])
    argv.extend(args)

    logger.debug(f"Running {' '.join(argv)} in {cwd}")
    try:
        result = subprocess.run(
            argv,
            cwd=str(cwd),
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            env=git_env(),
        )
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(argv, None, _text(e.stdout), _text(e.stderr)) from e
    except FileNotFoundError as e:
        raise GitCommandError(argv, 127, "", f"git executable not found: {e}") from e

    if check and result.returncode != 0:
        raise GitCommandError(argv, result.returncode, result.stdout, result.stderr)
    return result


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
