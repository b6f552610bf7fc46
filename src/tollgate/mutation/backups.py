"""
BackupStore: timestamped copies of files taken before they are mutated.

Backups live in `.backups/` beside the working copy. The directory
carries a `.gitignore` of `*`, so git never stages or cleans them, and
nothing in Tollgate ever deletes a backup.
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from tollgate.logging_config import logger


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write bytes atomically using temp file + rename.

    The result keeps the permission bits of the file it replaces; a new
    file gets the umask default.

    Raises:
        OSError: If the temp file cannot be written or renamed
    """
    # Same directory as the target so the rename stays on one filesystem
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if path.exists():
            shutil.copymode(str(path), temp_path)
        else:
            os.chmod(temp_path, _default_file_mode())
        os.replace(temp_path, str(path))
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def backup_name(relative_path: str, when: datetime) -> str:
    """`src/app/page.tsx` -> `src_app_page.tsx_20260101T120000123456Z`"""
    sanitized = relative_path.replace("/", "_")
    return f"{sanitized}_{when.strftime('%Y%m%dT%H%M%S%fZ')}"


class BackupStore:
    """Create, restore and list file backups."""

    def __init__(self, backup_dir: Path):
        self.backup_dir = Path(backup_dir)

    def _ensure_dir(self) -> None:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        ignore_file = self.backup_dir / ".gitignore"
        if not ignore_file.exists():
            ignore_file.write_text("*\n", encoding="utf-8")

    def create(self, relative_path: str, source: Path) -> Path:
        """
        Copy the current bytes of `source` into the store.

        Args:
            relative_path: Root-relative path, used to name the backup
            source: File to copy

        Returns:
            Path to the backup file

        Raises:
            OSError: If the copy fails
        """
        self._ensure_dir()
        name = backup_name(relative_path, datetime.now(timezone.utc))
        backup_path = self.backup_dir / name
        suffix = 1
        while backup_path.exists():
            backup_path = self.backup_dir / f"{name}.{suffix}"
            suffix += 1

        shutil.copy2(str(source), str(backup_path))
        logger.debug(f"Created backup: {backup_path}")
        return backup_path

    def restore(self, backup_path: Path, target: Path) -> None:
        """
        Restore a backup over `target` atomically, recreating parents.

        Raises:
            OSError: If the backup cannot be read or the target written
        """
        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(target, Path(backup_path).read_bytes())
        shutil.copystat(str(backup_path), str(target))
        logger.info(f"Restored {target} from backup")

    def list(self) -> List[Path]:
        """All backups, oldest name first."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(p for p in self.backup_dir.iterdir() if p.is_file() and p.name != ".gitignore")
