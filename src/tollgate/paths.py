"""
Tollgate Path Configuration

Centralized path management for everything Tollgate writes next to a
managed working copy. All paths are relative to the project root (the
staging working copy, or the current working directory by default).

Directory Structure:
<project root>/
├── .backups/            # Pre-mutation file copies (never pruned)
│   └── .gitignore       # "*" so git never stages or cleans backups
└── .tollgate/
    ├── .gitignore       # "*"
    ├── locks/           # Advisory lock files
    └── logs/            # Log files
"""

from pathlib import Path
from typing import Optional


class TollgatePaths:
    """
    Centralized path configuration for Tollgate.

    All paths are lazily resolved relative to project_root.
    Default project_root is current working directory.
    """

    STATE_DIR = ".tollgate"
    BACKUPS_DIR = ".backups"

    # Subdirectory names
    LOGS_DIR = "logs"
    LOCKS_DIR = "locks"

    IGNORE_ALL = "*\n"

    def __init__(self, project_root: Optional[Path] = None, backups_dir: Optional[Path] = None):
        """
        Initialize paths configuration.

        Args:
            project_root: Root directory for the project. Defaults to CWD.
            backups_dir: Override for the backups directory.
        """
        self._project_root = Path(project_root) if project_root is not None else None
        self._backups_dir = Path(backups_dir) if backups_dir is not None else None

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        if self._project_root is None:
            return Path.cwd()
        return self._project_root

    @property
    def state_dir(self) -> Path:
        """Get the .tollgate directory path."""
        return self.project_root / self.STATE_DIR

    @property
    def backups_dir(self) -> Path:
        """Get the backups directory path."""
        if self._backups_dir is not None:
            if self._backups_dir.is_absolute():
                return self._backups_dir
            return self.project_root / self._backups_dir
        return self.project_root / self.BACKUPS_DIR

    @property
    def logs_dir(self) -> Path:
        return self.state_dir / self.LOGS_DIR

    @property
    def locks_dir(self) -> Path:
        return self.state_dir / self.LOCKS_DIR

    def lock_file(self, name: str) -> Path:
        """Get the advisory lock file for a named lock."""
        return self.locks_dir / f"{name}.lock"

    def ensure_dirs(self) -> None:
        """Create all necessary directories if they don't exist."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(exist_ok=True)
        self.locks_dir.mkdir(exist_ok=True)
        _write_ignore_file(self.state_dir)

    def ensure_backups_dir(self) -> Path:
        """Create the backups directory with its self-ignoring .gitignore."""
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        _write_ignore_file(self.backups_dir)
        return self.backups_dir


def _write_ignore_file(directory: Path) -> None:
    ignore_file = directory / ".gitignore"
    if not ignore_file.exists():
        ignore_file.write_text(TollgatePaths.IGNORE_ALL, encoding="utf-8")


# Global instance for convenience
_default_paths: Optional[TollgatePaths] = None


def get_paths(project_root: Optional[Path] = None) -> TollgatePaths:
    """
    Get the paths configuration.

    Args:
        project_root: Optional project root override

    Returns:
        TollgatePaths instance
    """
    global _default_paths
    if project_root is not None:
        return TollgatePaths(project_root)
    if _default_paths is None:
        _default_paths = TollgatePaths()
    return _default_paths


def reset_paths() -> None:
    """Reset the global paths instance (useful for testing)."""
    global _default_paths
    _default_paths = None
