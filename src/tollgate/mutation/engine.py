"""
MutationEngine: apply a batch of file operations as one atomic unit.

Every batch is checked against the protection policy (and optionally the
content validator) before any I/O. Existing files are backed up before
they are overwritten, deleted or moved onto. If any operation fails, all
operations already applied in the batch are undone in reverse order, so
the working tree ends byte-identical to how it started.
"""

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from tollgate.exceptions import PolicyViolation
from tollgate.logging_config import logger
from tollgate.schemas import ApplyResult, ErrorKind, FileChange, OperationKind, OperationRecord, PathClass

from .backups import BackupStore, atomic_write
from .ledger import OperationLedger
from .policy import ProtectionPolicy, escapes_root, normalize_path
from .validator import validate_content


@dataclass(frozen=True)
class WriteOp:
    path: str
    content: str
    create_if_missing: bool = False
    exclusive: bool = False  # fail if the file already exists


@dataclass(frozen=True)
class DeleteOp:
    path: str


@dataclass(frozen=True)
class MoveOp:
    source: str
    destination: str


Operation = Union[WriteOp, DeleteOp, MoveOp]


class OperationFailed(Exception):
    """A precondition of one operation did not hold."""


@dataclass
class _Undo:
    """How to put one path back the way it was."""
    target: Path
    backup: Optional[Path]
    created_dirs: List[Path] = field(default_factory=list)


def _op_paths(op: Operation) -> List[str]:
    if isinstance(op, MoveOp):
        return [op.source, op.destination]
    return [op.path]


def _encodable(content: str) -> bool:
    try:
        content.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class MutationEngine:
    """
    Policy-enforced file mutation with backup and rollback.

    Holds no per-batch state between calls; the backup journal of a batch
    lives only for the duration of apply_operations().
    """

    def __init__(
        self,
        root: Path,
        policy: ProtectionPolicy,
        backups: BackupStore,
        ledger: Optional[OperationLedger] = None,
        validate_content: bool = True,
    ):
        self.root = Path(root).resolve()
        self.policy = policy
        self.backups = backups
        self.ledger = ledger or OperationLedger()
        self.validate_content = validate_content

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(self, batch: Sequence[FileChange]) -> ApplyResult:
        """Apply FileChanges as one atomic batch."""
        ops = [WriteOp(c.path, c.new_content, c.create_if_missing) for c in batch]
        return self.apply_operations(ops)

    def write(self, path: str, content: str, create_if_missing: bool = False) -> ApplyResult:
        return self.apply_operations([WriteOp(path, content, create_if_missing)])

    def create(self, path: str, content: str = "") -> ApplyResult:
        """Create a new file; fails if it already exists."""
        return self.apply_operations([WriteOp(path, content, create_if_missing=True, exclusive=True)])

    def delete(self, path: str) -> ApplyResult:
        return self.apply_operations([DeleteOp(path)])

    def move(self, source: str, destination: str) -> ApplyResult:
        return self.apply_operations([MoveOp(source, destination)])

    def read(self, path: str) -> str:
        """
        Read a file under the root.

        Raises:
            PolicyViolation: If the path resolves outside the root
            OSError: If the file cannot be read
        """
        normalized = self._check_paths([path])[0]
        target = self.root / normalized
        try:
            content = target.read_text(encoding="utf-8")
        except OSError as e:
            self._record(normalized, "read", "error", message=str(e))
            raise
        self._record(normalized, "read", "ok")
        return content

    def apply_operations(self, ops: Sequence[Operation]) -> ApplyResult:
        """
        Apply operations in order, all or nothing.

        Raises:
            PolicyViolation: If any path is protected or outside the root.
                Raised before any I/O.
        """
        all_paths = [p for op in ops for p in _op_paths(op)]
        self._check_paths(all_paths)

        unencodable = [op.path for op in ops if isinstance(op, WriteOp) and not _encodable(op.content)]
        if unencodable:
            message = f"Content is not valid UTF-8 text: {', '.join(unencodable)}"
            logger.warning(f"Rejected batch: {message}")
            return ApplyResult(success=False, error=message, kind=ErrorKind.VALIDATION_FAILURE)

        if self.validate_content:
            invalid = [
                error
                for op in ops
                if isinstance(op, WriteOp)
                for error in [validate_content(op.path, op.content)]
                if error is not None
            ]
            if invalid:
                message = "; ".join(invalid)
                logger.warning(f"Rejected batch: {message}")
                return ApplyResult(success=False, error=message, kind=ErrorKind.VALIDATION_FAILURE)

        records: List[OperationRecord] = []
        journal: List[_Undo] = []
        changed: List[str] = []
        sensitive: List[str] = []

        for op in ops:
            try:
                record = self._apply_one(op, journal)
            except Exception as e:
                failed_path = normalize_path(_op_paths(op)[0])
                if not isinstance(e, (OSError, OperationFailed)):
                    logger.exception(f"Unexpected error applying {failed_path}")
                records.append(
                    self._record(failed_path, _kind_of(op), "error", message=str(e))
                )
                logger.error(f"Mutation failed on {failed_path}: {e}")
                rollback_errors = self._rollback(journal)
                error = f"{failed_path}: {e}"
                if rollback_errors:
                    logger.critical(
                        f"Rollback incomplete after failed batch: {'; '.join(rollback_errors)}"
                    )
                return ApplyResult(
                    success=False,
                    records=records,
                    error=error,
                    kind=ErrorKind.MUTATION_FAILURE,
                    rolled_back=bool(journal) and not rollback_errors,
                    rollback_errors=rollback_errors,
                )

            records.append(record)
            if record.message != "unchanged":
                for p in [record.path, record.destination]:
                    if p and p not in changed:
                        changed.append(p)
            if record.sensitive and record.path not in sensitive:
                sensitive.append(record.path)

        logger.info(f"Applied {len(records)} operation(s), {len(changed)} path(s) changed")
        return ApplyResult(
            success=True,
            records=records,
            changed_paths=changed,
            sensitive_paths=sensitive,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_paths(self, paths: Sequence[str]) -> List[str]:
        normalized = [normalize_path(p) for p in paths]

        outside = [
            p for p, n in zip(paths, normalized)
            if not n or escapes_root(n) or not self._resolves_inside(n)
        ]
        if outside:
            logger.warning(f"Rejected paths outside the working tree: {outside}")
            raise PolicyViolation(outside, reason="outside_root")

        protected = [p for p, n in zip(paths, normalized) if self.policy.classify(n) is PathClass.PROTECTED]
        if protected:
            logger.warning(f"Rejected protected paths: {protected}")
            raise PolicyViolation(protected, reason="protected")

        return normalized

    def _resolves_inside(self, normalized: str) -> bool:
        # Symlinks must not lead out of the tree either
        resolved = (self.root / normalized).resolve()
        return resolved == self.root or self.root in resolved.parents

    def _is_sensitive(self, normalized: str) -> bool:
        if self.policy.classify(normalized) is PathClass.SENSITIVE:
            logger.warning(f"Modifying sensitive file: {normalized}")
            return True
        return False

    def _make_parents(self, directory: Path, created: List[Path]) -> None:
        """mkdir -p, appending each directory it creates to `created`, outermost first."""
        missing = []
        current = directory
        while not current.exists():
            missing.append(current)
            current = current.parent
        for d in reversed(missing):
            d.mkdir()
            created.append(d)

    def _apply_one(self, op: Operation, journal: List[_Undo]) -> OperationRecord:
        if isinstance(op, WriteOp):
            return self._apply_write(op, journal)
        if isinstance(op, DeleteOp):
            return self._apply_delete(op, journal)
        return self._apply_move(op, journal)

    def _apply_write(self, op: WriteOp, journal: List[_Undo]) -> OperationRecord:
        rel = normalize_path(op.path)
        target = self.root / rel
        existed = target.exists()

        if target.is_dir():
            raise OperationFailed("target is a directory")
        if existed and op.exclusive:
            raise OperationFailed("file already exists")
        if not existed and not op.create_if_missing:
            raise OperationFailed("file does not exist and createIfMissing is false")

        sensitive = self._is_sensitive(rel)
        data = op.content.encode("utf-8")
        kind: OperationKind = "write" if existed else "create"

        if existed and target.read_bytes() == data:
            return self._record(rel, kind, "ok", sensitive=sensitive, message="unchanged")

        backup = self.backups.create(rel, target) if existed else None
        undo = _Undo(target, backup)
        journal.append(undo)
        self._make_parents(target.parent, undo.created_dirs)
        atomic_write(target, data)

        return self._record(
            rel, kind, "ok",
            backup_path=str(backup) if backup else None,
            sensitive=sensitive,
        )

    def _apply_delete(self, op: DeleteOp, journal: List[_Undo]) -> OperationRecord:
        rel = normalize_path(op.path)
        target = self.root / rel
        if not target.is_file():
            raise OperationFailed("file does not exist")

        sensitive = self._is_sensitive(rel)
        backup = self.backups.create(rel, target)
        journal.append(_Undo(target, backup))
        target.unlink()

        return self._record(rel, "delete", "ok", backup_path=str(backup), sensitive=sensitive)

    def _apply_move(self, op: MoveOp, journal: List[_Undo]) -> OperationRecord:
        src_rel = normalize_path(op.source)
        dst_rel = normalize_path(op.destination)
        source = self.root / src_rel
        destination = self.root / dst_rel

        if src_rel == dst_rel:
            raise OperationFailed("source and destination are the same")
        if not source.is_file():
            raise OperationFailed("source file does not exist")
        if destination.is_dir():
            raise OperationFailed("destination is a directory")

        sensitive = self._is_sensitive(src_rel) | self._is_sensitive(dst_rel)

        dst_backup = self.backups.create(dst_rel, destination) if destination.exists() else None
        dst_undo = _Undo(destination, dst_backup)
        journal.append(dst_undo)
        src_backup = self.backups.create(src_rel, source)
        journal.append(_Undo(source, src_backup))

        self._make_parents(destination.parent, dst_undo.created_dirs)
        os.replace(str(source), str(destination))

        return self._record(
            src_rel, "move", "ok",
            backup_path=str(src_backup),
            destination=dst_rel,
            sensitive=sensitive,
        )

    def _rollback(self, journal: List[_Undo]) -> List[str]:
        """Undo journal entries newest first. Returns the errors it hit."""
        errors = []
        for undo in reversed(journal):
            try:
                if undo.backup is not None:
                    self.backups.restore(undo.backup, undo.target)
                elif undo.target.exists():
                    undo.target.unlink()
                    logger.info(f"Removed {undo.target} created by failed batch")
            except OSError as e:
                errors.append(f"{undo.target}: {e}")
                logger.error(f"Failed to roll back {undo.target}: {e}")
                continue

            for directory in reversed(undo.created_dirs):
                try:
                    if directory.is_dir() and not any(directory.iterdir()):
                        directory.rmdir()
                except OSError as e:
                    errors.append(f"{directory}: {e}")
                    logger.error(f"Failed to remove {directory}: {e}")
        return errors

    def _record(
        self,
        path: str,
        kind: OperationKind,
        outcome: str,
        backup_path: Optional[str] = None,
        destination: Optional[str] = None,
        sensitive: bool = False,
        message: str = "",
    ) -> OperationRecord:
        record = OperationRecord(
            path=path,
            kind=kind,
            outcome=outcome,
            backup_path=backup_path,
            destination=destination,
            sensitive=sensitive,
            message=message,
            timestamp=time.time(),
        )
        self.ledger.append(record)
        return record


def _kind_of(op: Operation) -> OperationKind:
    if isinstance(op, DeleteOp):
        return "delete"
    if isinstance(op, MoveOp):
        return "move"
    return "create" if op.exclusive else "write"
