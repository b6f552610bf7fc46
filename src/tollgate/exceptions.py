# Custom exceptions for Tollgate

from typing import List, Optional, Sequence


class TollgateError(Exception):
    """Base exception for all application-specific errors."""
    pass


class PolicyViolation(TollgateError):
    """
    Raised when a mutation targets a path the agent may never write.

    This is the one failure that is raised instead of returned: callers
    must resubmit without the offending paths.
    """

    def __init__(self, paths: Sequence[str], reason: str = "protected"):
        self.paths: List[str] = list(paths)
        self.reason = reason
        if reason == "outside_root":
            detail = "path resolves outside the working tree"
        else:
            detail = "file is protected and cannot be modified by the agent"
        super().__init__(f"Cannot modify {', '.join(self.paths)}: {detail}")


class ConfigError(TollgateError):
    """Raised for configuration-related problems."""
    pass


class GitCommandError(TollgateError):
    """Raised when a git subprocess exits non-zero or times out."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if returncode is None:
            message = f"'{' '.join(self.argv)}' timed out"
        else:
            output = (stderr or stdout).strip()
            message = f"'{' '.join(self.argv)}' failed with exit code {returncode}"
            if output:
                message += f": {output}"
        super().__init__(message)


class LockTimeout(TollgateError):
    """Raised when a pipeline lock cannot be acquired in time."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(
            f"Another {name} is already in flight (waited {timeout:.1f}s)"
        )
