"""
Orchestrator: the day-to-day modification pipeline.

    Idle -> Mutating -> (Migrating) -> Committing -> Testing -> Done | RolledBack

- Mutating fails: the engine has already rolled itself back; back to Idle.
- Migrating fails: discard every working-copy change; back to Idle.
- Committing fails: no commit exists, so discard as above.
- Testing fails: revert the commit (history preserved) -> RolledBack.
  A crash inside the test gate counts as a test failure.

A ModificationRequest with a protected path raises PolicyViolation
before anything is touched. Every other failure comes back as a
ModificationResult carrying the ErrorKind and the raw tool error.
"""

import time
from typing import List, Optional

from tollgate.events import EventEmitter, EventSink
from tollgate.exceptions import LockTimeout, PolicyViolation
from tollgate.gate import GateConfig, TestGate
from tollgate.locks import PipelineLocks
from tollgate.logging_config import logger
from tollgate.migration import MIGRATIONS_DIR, MigrationTrigger, is_schema_change
from tollgate.mutation import MutationEngine
from tollgate.schemas import (
    ApplyResult,
    Author,
    ErrorKind,
    ModificationRequest,
    ModificationResult,
    PipelineState,
    TestOutcome,
)
from tollgate.vcs import Repository


COMMIT_TITLE_CHARS = 100


def build_commit_message(description: str) -> str:
    """`AI: <first 100 chars>` title, full description as the body."""
    flattened = " ".join(description.split())
    title = f"AI: {flattened[:COMMIT_TITLE_CHARS]}"
    body = description.strip()
    if not body:
        return title
    return f"{title}\n\n{body}"


class Orchestrator:
    """Sequences engine, migration, commit and test gate for one staging copy."""

    def __init__(
        self,
        engine: MutationEngine,
        repository: Repository,
        test_gate: TestGate,
        migrations: MigrationTrigger,
        locks: PipelineLocks,
        author: Author,
        branch: str = "staging",
        push_after_commit: bool = True,
        gate_config: Optional[GateConfig] = None,
    ):
        self.engine = engine
        self.repository = repository
        self.test_gate = test_gate
        self.migrations = migrations
        self.locks = locks
        self.author = author
        self.branch = branch
        self.push_after_commit = push_after_commit
        self.gate_config = gate_config
        self.state = PipelineState.IDLE

    def _enter(self, state: PipelineState) -> None:
        logger.debug(f"Orchestrator: {self.state.value} -> {state.value}")
        self.state = state

    def run(self, request: ModificationRequest, sink: Optional[EventSink] = None) -> ModificationResult:
        """
        Run one modification request to completion.

        Raises:
            PolicyViolation: If any change targets a protected path or a
                path outside the working tree. Nothing is touched.
        """
        events = EventEmitter(sink, "modification")
        started = time.monotonic()
        logger.info(f"Modification requested: {request.description[:80]!r} ({len(request.file_changes)} file(s))")

        try:
            with self.locks.modification():
                try:
                    result = self._run_locked(request, events)
                finally:
                    self._enter(PipelineState.IDLE)
        except LockTimeout as e:
            logger.warning(str(e))
            events.failed("lock", error=str(e))
            result = ModificationResult(
                success=False,
                state=PipelineState.IDLE,
                kind=ErrorKind.BUSY,
                error=str(e),
            )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        events.done(
            success=result.success,
            state=result.state.value,
            kind=result.kind.value if result.kind else None,
        )
        return result

    def _run_locked(self, request: ModificationRequest, events: EventEmitter) -> ModificationResult:
        warnings: List[str] = []

        # Mutating
        self._enter(PipelineState.MUTATING)
        events.started("mutating", files=[c.path for c in request.file_changes])
        try:
            applied = self.engine.apply(request.file_changes)
        except PolicyViolation as e:
            events.failed("mutating", reason=e.reason, paths=e.paths)
            raise

        if not applied.success:
            events.failed("mutating", error=applied.error)
            if applied.rollback_errors:
                warnings.append(f"Rollback incomplete: {'; '.join(applied.rollback_errors)}")
            return ModificationResult(
                success=False,
                state=PipelineState.IDLE,
                kind=applied.kind or ErrorKind.MUTATION_FAILURE,
                error=applied.error,
                apply=applied,
                warnings=warnings,
            )
        events.ok("mutating", changed=applied.changed_paths, sensitive=applied.sensitive_paths)
        if applied.sensitive_paths:
            warnings.append(f"Sensitive files modified: {', '.join(applied.sensitive_paths)}")

        if not applied.changed_paths:
            logger.info("Nothing changed on disk, skipping commit")
            events.skipped("committing", reason="no changes")
            events.skipped("testing", reason="no changes")
            self._enter(PipelineState.DONE)
            return ModificationResult(
                success=True,
                state=PipelineState.DONE,
                apply=applied,
                tests_skipped=True,
                warnings=warnings,
            )

        # Migrating
        migration = None
        paths_to_commit = list(applied.changed_paths)
        if is_schema_change(applied.changed_paths):
            self._enter(PipelineState.MIGRATING)
            events.started("migrating")
            migration = self.migrations.handle_schema_change()
            if not migration.success:
                events.failed("migrating", error=migration.error)
                failed_step = migration.steps[-1] if migration.steps else None
                return self._discard_after_failure(
                    ErrorKind.MIGRATION_FAILURE,
                    migration.error,
                    details=(failed_step.stderr or failed_step.stdout) if failed_step else None,
                    applied=applied,
                    warnings=warnings,
                    migration=migration,
                )
            events.ok("migrating", migration=migration.migration_name)
            if self.migrations.migrations_dir.is_dir():
                paths_to_commit.append(MIGRATIONS_DIR)

        # Committing
        self._enter(PipelineState.COMMITTING)
        events.started("committing")
        committed = self.repository.commit(
            build_commit_message(request.description),
            files=paths_to_commit,
            author=self.author,
        )
        if not committed.success or committed.commit is None:
            events.failed("committing", error=committed.error)
            return self._discard_after_failure(
                ErrorKind.COMMIT_FAILURE,
                committed.error,
                applied=applied,
                warnings=warnings,
                migration=migration,
            )
        commit = committed.commit
        events.ok("committing", commit=commit.hash)

        # Testing
        tests = None
        if request.skip_tests:
            logger.info("Tests skipped by caller")
            events.skipped("testing", reason="skip_tests")
        else:
            self._enter(PipelineState.TESTING)
            events.started("testing")
            tests = self._run_tests()
            if not tests.success:
                events.failed("testing", passed=tests.passed, failed=tests.failed, total=tests.total)
                return self._revert_after_test_failure(commit, applied, migration, tests, warnings)
            events.ok("testing", passed=tests.passed, total=tests.total)

        # Done
        self._enter(PipelineState.DONE)
        pushed = None
        if self.push_after_commit:
            events.started("pushing", branch=self.branch)
            push = self.repository.push(branch=self.branch)
            pushed = push.success
            if push.success:
                events.ok("pushing")
            else:
                events.failed("pushing", error=push.error)
                warnings.append(f"Push to {self.repository.remote}/{self.branch} failed: {push.error}")

        logger.info(f"Modification committed as {commit.hash[:8]}")
        return ModificationResult(
            success=True,
            state=PipelineState.DONE,
            apply=applied,
            migration=migration,
            commit=commit,
            tests=tests,
            tests_skipped=request.skip_tests,
            pushed=pushed,
            warnings=warnings,
        )

    def _run_tests(self) -> TestOutcome:
        """Run the gate; a crash of the gate itself counts as a failed run."""
        try:
            return self.test_gate.run(self.gate_config)
        except Exception as e:
            logger.exception("Test gate crashed")
            return TestOutcome(success=False, error_text=f"Test gate crashed: {type(e).__name__}: {e}")

    def _discard_after_failure(
        self,
        kind: ErrorKind,
        error: Optional[str],
        applied: ApplyResult,
        warnings: List[str],
        details: Optional[str] = None,
        migration=None,
    ) -> ModificationResult:
        """Nothing is committed yet: throw away every working-copy change."""
        discard = self.repository.discard_all_changes()
        if not discard.success:
            logger.critical(f"Could not discard changes after {kind.value}: {discard.error}")
            return ModificationResult(
                success=False,
                state=self.state,
                kind=ErrorKind.ROLLBACK_FAILURE,
                error=f"{error}; discarding changes also failed: {discard.error}",
                details=details,
                apply=applied,
                migration=migration,
                warnings=warnings,
            )
        logger.warning(f"Discarded working copy changes after {kind.value}")
        return ModificationResult(
            success=False,
            state=PipelineState.IDLE,
            kind=kind,
            error=error,
            details=details,
            apply=applied,
            migration=migration,
            warnings=warnings,
        )

    def _revert_after_test_failure(self, commit, applied, migration, tests, warnings) -> ModificationResult:
        commit_hash = commit.hash
        reverted = self.repository.revert_commit(commit_hash, author=self.author)
        if not reverted.success or reverted.commit is None:
            logger.critical(f"Tests failed and reverting {commit_hash[:8]} failed: {reverted.error}")
            return ModificationResult(
                success=False,
                state=PipelineState.TESTING,
                kind=ErrorKind.ROLLBACK_FAILURE,
                error=f"Tests failed and revert of {commit_hash} failed: {reverted.error}",
                details=tests.error_text,
                apply=applied,
                migration=migration,
                commit=commit,
                tests=tests,
                warnings=warnings,
            )

        self._enter(PipelineState.ROLLED_BACK)
        logger.warning(f"Tests failed, reverted {commit_hash[:8]} with {reverted.commit.hash[:8]}")
        return ModificationResult(
            success=False,
            state=PipelineState.ROLLED_BACK,
            kind=ErrorKind.TEST_FAILURE,
            error=f"Tests failed: {tests.failed} failed of {tests.total}",
            details=tests.error_text,
            apply=applied,
            migration=migration,
            commit=commit,
            revert_commit=reverted.commit.hash,
            tests=tests,
            warnings=warnings,
        )
