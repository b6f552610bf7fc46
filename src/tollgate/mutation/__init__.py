"""
Mutation package: policy-checked, atomic file changes with backups.
"""

from .policy import PathMatcher, PathPartition, ProtectionPolicy, normalize_path
from .validator import ContentKind, content_kind, validate_content, validate_batch
from .ledger import OperationLedger
from .backups import BackupStore, atomic_write
from .engine import DeleteOp, MoveOp, MutationEngine, Operation, WriteOp

__all__ = [
    "MutationEngine",
    "ProtectionPolicy",
    "PathMatcher",
    "PathPartition",
    "BackupStore",
    "OperationLedger",
    "ContentKind",
    "WriteOp",
    "DeleteOp",
    "MoveOp",
    "Operation",
    "normalize_path",
    "content_kind",
    "validate_content",
    "validate_batch",
    "atomic_write",
]
