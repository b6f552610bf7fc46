from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PathClass(str, Enum):
    """Classification of a path by the protection policy."""
    ORDINARY = "ordinary"
    SENSITIVE = "sensitive"
    PROTECTED = "protected"


class ErrorKind(str, Enum):
    """Failure taxonomy surfaced by the orchestrator and promotion manager."""
    POLICY_VIOLATION = "policy_violation"
    VALIDATION_FAILURE = "validation_failure"
    MUTATION_FAILURE = "mutation_failure"
    MIGRATION_FAILURE = "migration_failure"
    COMMIT_FAILURE = "commit_failure"
    TEST_FAILURE = "test_failure"
    SAFETY_CHECK_FAILURE = "safety_check_failure"
    PUSH_FAILURE = "push_failure"
    MERGE_FAILURE = "merge_failure"
    POST_MERGE_PUSH_FAILURE = "post_merge_push_failure"
    ROLLBACK_FAILURE = "rollback_failure"
    BUSY = "busy"

    @property
    def fatal(self) -> bool:
        return self in (ErrorKind.POST_MERGE_PUSH_FAILURE, ErrorKind.ROLLBACK_FAILURE)

    @property
    def rejected_before_mutation(self) -> bool:
        return self in (
            ErrorKind.POLICY_VIOLATION,
            ErrorKind.VALIDATION_FAILURE,
            ErrorKind.SAFETY_CHECK_FAILURE,
            ErrorKind.BUSY,
        )


class PipelineState(str, Enum):
    """Orchestrator states."""
    IDLE = "idle"
    MUTATING = "mutating"
    MIGRATING = "migrating"
    COMMITTING = "committing"
    TESTING = "testing"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


# ============================================================================
# Mutation Engine
# ============================================================================

class FileChange(BaseModel):
    """
    One file write submitted by the change-producer.
    Accepts both snake_case and camelCase keys (newContent, createIfMissing).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    path: str
    new_content: str
    create_if_missing: bool = False


OperationKind = Literal["read", "write", "create", "delete", "move"]


class OperationRecord(BaseModel):
    """Audit entry for a single file operation."""
    path: str
    kind: OperationKind
    outcome: Literal["ok", "error"]
    backup_path: Optional[str] = None
    destination: Optional[str] = None  # move target
    sensitive: bool = False
    message: str = ""
    timestamp: float = 0.0


class ApplyResult(BaseModel):
    """Result of a Mutation Engine apply call."""
    success: bool
    records: List[OperationRecord] = Field(default_factory=list)
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    rolled_back: bool = False
    rollback_errors: List[str] = Field(default_factory=list)
    changed_paths: List[str] = Field(default_factory=list)
    sensitive_paths: List[str] = Field(default_factory=list)


# ============================================================================
# Repository Manager
# ============================================================================

class Author(BaseModel):
    name: str
    email: str


class CommitRecord(BaseModel):
    """A commit as reported by git. Immutable once produced."""
    model_config = ConfigDict(frozen=True)

    hash: str
    message: str
    author: Author
    date: Optional[str] = None
    files_touched: List[str] = Field(default_factory=list)
    parents: List[str] = Field(default_factory=list)


class RepoStatus(BaseModel):
    """Working copy status."""
    branch: Optional[str]
    upstream: Optional[str] = None
    modified_paths: List[str] = Field(default_factory=list)
    created_paths: List[str] = Field(default_factory=list)
    deleted_paths: List[str] = Field(default_factory=list)
    clean: bool = True
    ahead_of_remote: int = 0
    behind_remote: int = 0


class GitOperationResult(BaseModel):
    """Result of a mutating version-control operation."""
    success: bool
    operation: str
    message: Optional[str] = None
    error: Optional[str] = None
    commit: Optional[CommitRecord] = None


# ============================================================================
# Test Gate
# ============================================================================

class CoverageReport(BaseModel):
    percent: float
    threshold: float
    meets_threshold: bool


class SubsetOutcome(BaseModel):
    """Outcome of one test subset (unit, integration, e2e)."""
    name: str
    success: bool = False
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    duration_ms: int = 0
    exit_code: Optional[int] = None
    parsed: bool = False
    error_text: Optional[str] = None


class TestOutcome(BaseModel):
    """
    Merged outcome of all requested subsets.

    total == 0 is inconclusive and never counts as success.
    """
    __test__ = False

    success: bool
    passed: int = 0
    failed: int = 0
    total: int = 0
    duration_ms: int = 0
    error_text: Optional[str] = None
    coverage: Optional[CoverageReport] = None
    subsets: List[SubsetOutcome] = Field(default_factory=list)

    @property
    def inconclusive(self) -> bool:
        return self.total == 0


# ============================================================================
# Migration Trigger
# ============================================================================

class MigrationStep(BaseModel):
    name: Literal["validate", "generate", "client", "status"]
    success: bool
    command: List[str] = Field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration_ms: int = 0


class MigrationResult(BaseModel):
    success: bool
    migration_name: str
    steps: List[MigrationStep] = Field(default_factory=list)
    error: Optional[str] = None


class MigrationStatus(BaseModel):
    """Migration history on disk plus what the status command reports."""
    up_to_date: bool
    migrations: List[str] = Field(default_factory=list)
    output: str = ""
    error: Optional[str] = None


# ============================================================================
# Promotion Manager
# ============================================================================

class DiffFile(BaseModel):
    path: str
    status: Literal["added", "modified", "deleted"]
    additions: int = 0
    deletions: int = 0


class DiffCommit(BaseModel):
    hash: str
    message: str
    author: str
    date: str


class PromotionDiff(BaseModel):
    """Staging/production divergence. Recomputed on every call."""
    ahead_count: int = 0
    behind_count: int = 0
    files: List[DiffFile] = Field(default_factory=list)
    commits: List[DiffCommit] = Field(default_factory=list)


class SafetyCheckResult(BaseModel):
    passed: bool
    issues: List[str] = Field(default_factory=list)


class PromotionRecord(BaseModel):
    performed_by: str
    message: str
    files_changed: int
    insertions: int
    deletions: int
    commits_promoted: int
    merge_commit: Optional[str] = None


class PromotionResult(BaseModel):
    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    record: Optional[PromotionRecord] = None
    issues: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def fatal(self) -> bool:
        return self.kind is not None and self.kind.fatal


class HistoryEntry(BaseModel):
    hash: str
    message: str
    author: str
    date: str
    is_promotion: bool = False


# ============================================================================
# Orchestrator
# ============================================================================

class ModificationRequest(BaseModel):
    """Input contract from the change-producer."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    description: str
    file_changes: List[FileChange]
    skip_tests: bool = False


class ModificationResult(BaseModel):
    success: bool
    state: PipelineState
    kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    details: Optional[str] = None  # raw tool output behind the error
    apply: Optional[ApplyResult] = None
    migration: Optional[MigrationResult] = None
    commit: Optional[CommitRecord] = None
    revert_commit: Optional[str] = None
    tests: Optional[TestOutcome] = None
    tests_skipped: bool = False
    pushed: Optional[bool] = None
    warnings: List[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def fatal(self) -> bool:
        return self.kind is not None and self.kind.fatal
