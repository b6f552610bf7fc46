"""
PromotionManager: move validated staging history into production.

Works on two working copies that share one remote: staging (on the
staging branch) and production (on the production branch). Nothing here
runs automatically. Promotion and rollback are operator actions, and
both hold the promotion lock, which is only ever taken after the
modification lock.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from tollgate.events import EventEmitter, EventSink
from tollgate.exceptions import GitCommandError, LockTimeout
from tollgate.locks import PipelineLocks
from tollgate.logging_config import logger
from tollgate.schemas import (
    Author,
    DiffCommit,
    DiffFile,
    ErrorKind,
    HistoryEntry,
    PromotionDiff,
    PromotionRecord,
    PromotionResult,
    SafetyCheckResult,
)
from tollgate.vcs import Repository


DEFAULT_MERGE_TITLE = "Promote staging to production"


def classify_file(additions: int, deletions: int) -> str:
    if deletions == 0 and additions > 0:
        return "added"
    if additions == 0 and deletions > 0:
        return "deleted"
    return "modified"


def build_merge_message(performed_by: str, diff: PromotionDiff, title: Optional[str] = None) -> str:
    """Caller title (or the default) followed by the generated body."""
    timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    body = (
        f"Performed by: {performed_by}\n"
        f"Date: {timestamp}\n"
        f"\n"
        f"Commits included: {len(diff.commits)}\n"
        f"Files changed: {len(diff.files)}"
    )
    return f"{(title or DEFAULT_MERGE_TITLE).strip()}\n\n{body}"


class PromotionManager:
    """Diff, safety checks, guarded merge and manual rollback."""

    def __init__(
        self,
        staging: Repository,
        production: Repository,
        locks: PipelineLocks,
        remote: str = "origin",
        staging_branch: str = "staging",
        production_branch: str = "main",
        author: Optional[Author] = None,
    ):
        self.staging = staging
        self.production = production
        self.locks = locks
        self.remote = remote
        self.staging_branch = staging_branch
        self.production_branch = production_branch
        self.author = author

    @property
    def staging_ref(self) -> str:
        return f"{self.remote}/{self.staging_branch}"

    @property
    def production_ref(self) -> str:
        return f"{self.remote}/{self.production_branch}"

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def get_diff(self, fetch: bool = True) -> PromotionDiff:
        """
        Compare the remote staging and production refs.

        Raises:
            GitCommandError: If fetching or any git query fails
        """
        if fetch:
            fetched = self.staging.fetch(self.remote)
            if not fetched.success:
                raise GitCommandError(["git", "fetch", self.remote], 1, "", fetched.error or "")

        ahead, behind = self.staging.left_right_count(self.staging_ref, self.production_ref)

        commits = [
            DiffCommit(
                hash=c.hash,
                message=c.message.splitlines()[0] if c.message else "",
                author=c.author.name,
                date=c.date or "",
            )
            for c in self.staging.log(max_count=None, rev_range=f"{self.production_ref}..{self.staging_ref}")
        ]

        files = [
            DiffFile(path=path, status=classify_file(added, removed), additions=added, deletions=removed)
            for path, added, removed in self.staging.diff_numstat(f"{self.production_ref}...{self.staging_ref}")
        ]

        return PromotionDiff(ahead_count=ahead, behind_count=behind, files=files, commits=commits)

    def run_safety_checks(self) -> SafetyCheckResult:
        """Evaluate every promotion precondition and report all violations together."""
        issues: List[str] = []

        def check(run: Callable[[], Optional[str]]) -> None:
            try:
                issue = run()
            except GitCommandError as e:
                issue = f"Safety check failed: {e}"
            if issue:
                issues.append(issue)

        check(lambda: "Staging has uncommitted changes. Commit or discard them first."
              if self.staging.has_tracked_changes() else None)
        check(lambda: "Production has uncommitted changes. This should never happen - investigate."
              if self.production.has_tracked_changes() else None)
        check(lambda: self._wrong_branch("Staging", self.staging, self.staging_branch))
        check(lambda: self._wrong_branch("Production", self.production, self.production_branch))
        check(self._staging_behind_remote)
        check(lambda: "No changes to promote. Staging and production are already in sync."
              if self.get_diff(fetch=False).ahead_count == 0 else None)

        for issue in issues:
            logger.warning(f"Safety check: {issue}")
        return SafetyCheckResult(passed=not issues, issues=issues)

    def _wrong_branch(self, label: str, repo: Repository, expected: str) -> Optional[str]:
        branch = repo.current_branch()
        if branch != expected:
            return f"{label} is on wrong branch: {branch or 'detached HEAD'} (expected: {expected})"
        return None

    def _staging_behind_remote(self) -> Optional[str]:
        fetched = self.staging.fetch(self.remote)
        if not fetched.success:
            return f"Safety check failed: could not fetch {self.remote}: {fetched.error}"
        if self.staging.rev_count(f"HEAD..{self.staging_ref}") > 0:
            return "Staging is behind remote. Pull latest changes first."
        return None

    def get_history(self, limit: int = 20) -> List[HistoryEntry]:
        """
        Recent production history, newest first.

        Raises:
            GitCommandError: If the production log cannot be read
        """
        entries = []
        for commit in self.production.log(max_count=limit, rev_range=self.production_ref):
            title = commit.message.splitlines()[0] if commit.message else ""
            lowered = title.lower()
            entries.append(
                HistoryEntry(
                    hash=commit.hash,
                    message=title,
                    author=commit.author.name,
                    date=commit.date or "",
                    is_promotion=len(commit.parents) > 1 or "promote" in lowered or "production" in lowered,
                )
            )
        return entries

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    def promote(
        self,
        performed_by: str,
        message: Optional[str] = None,
        sink: Optional[EventSink] = None,
    ) -> PromotionResult:
        """
        Merge staging into production and push.

        Safety checks are always re-run here. A failed merge is aborted.
        A failed push after a successful merge is fatal and left for an
        operator: resetting a half-pushed branch could drop a commit
        another process already saw.
        """
        events = EventEmitter(sink, "promotion")
        try:
            with self.locks.promotion():
                result = self._promote_locked(performed_by, message, events)
        except LockTimeout as e:
            logger.warning(str(e))
            events.failed("lock", error=str(e))
            result = PromotionResult(success=False, message="Promotion is busy", kind=ErrorKind.BUSY, error=str(e))

        events.done(success=result.success, kind=result.kind.value if result.kind else None)
        return result

    def _promote_locked(self, performed_by: str, message: Optional[str], events: EventEmitter) -> PromotionResult:
        logger.info(f"Promotion requested by {performed_by}")

        events.started("safety_checks")
        safety = self.run_safety_checks()
        if not safety.passed:
            events.failed("safety_checks", issues=safety.issues)
            return PromotionResult(
                success=False,
                message="Safety checks failed",
                kind=ErrorKind.SAFETY_CHECK_FAILURE,
                issues=safety.issues,
            )
        events.ok("safety_checks")

        events.started("diff")
        try:
            diff = self.get_diff(fetch=False)
        except GitCommandError as e:
            events.failed("diff", error=str(e))
            return PromotionResult(
                success=False,
                message="Could not compute promotion diff",
                kind=ErrorKind.SAFETY_CHECK_FAILURE,
                error=str(e),
            )
        events.ok("diff", commits=len(diff.commits), files=len(diff.files))

        events.started("push_staging")
        pushed = self.staging.push(self.remote, self.staging_branch)
        if not pushed.success:
            events.failed("push_staging", error=pushed.error)
            return PromotionResult(
                success=False,
                message="Failed to push staging",
                kind=ErrorKind.PUSH_FAILURE,
                error=pushed.error,
            )
        events.ok("push_staging")

        events.started("merge")
        fetched = self.production.fetch(self.remote)
        if not fetched.success:
            events.failed("merge", error=fetched.error)
            return PromotionResult(
                success=False,
                message="Failed to fetch into production",
                kind=ErrorKind.MERGE_FAILURE,
                error=fetched.error,
            )

        merge_message = build_merge_message(performed_by, diff, message)
        merged = self.production.merge(self.staging_ref, no_ff=True, message=merge_message, author=self.author)
        if not merged.success:
            events.failed("merge", error=merged.error)
            return self._abort_merge(merged.error)
        try:
            merge_commit = self.production.head()
        except GitCommandError as e:
            logger.error(f"Could not read production HEAD after merge: {e}")
            merge_commit = None
        events.ok("merge", commit=merge_commit)

        events.started("push_production")
        pushed = self.production.push(self.remote, self.production_branch)
        if not pushed.success:
            events.failed("push_production", error=pushed.error, fatal=True)
            logger.critical(
                f"Merged {merge_commit} into production but pushing {self.production_ref} failed: "
                f"{pushed.error}. Operator intervention required; no automatic rollback attempted."
            )
            return PromotionResult(
                success=False,
                message="Merge succeeded but pushing production failed. Manual intervention required.",
                kind=ErrorKind.POST_MERGE_PUSH_FAILURE,
                error=pushed.error,
            )
        events.ok("push_production")

        record = PromotionRecord(
            performed_by=performed_by,
            message=merge_message,
            files_changed=len(diff.files),
            insertions=sum(f.additions for f in diff.files),
            deletions=sum(f.deletions for f in diff.files),
            commits_promoted=len(diff.commits),
            merge_commit=merge_commit,
        )
        logger.info(
            f"Promoted {record.commits_promoted} commit(s), {record.files_changed} file(s) to production"
        )
        return PromotionResult(success=True, message="Successfully promoted staging to production", record=record)

    def _abort_merge(self, error: Optional[str]) -> PromotionResult:
        aborted = self.production.abort_merge()
        if not aborted.success:
            logger.critical(f"Merge failed and merge --abort also failed: {aborted.error}")
            return PromotionResult(
                success=False,
                message="Merge failed and could not be aborted. Manual intervention required.",
                kind=ErrorKind.ROLLBACK_FAILURE,
                error=f"{error}; abort failed: {aborted.error}",
            )
        logger.warning("Merge into production failed and was aborted")
        return PromotionResult(
            success=False,
            message="Merge failed and was aborted",
            kind=ErrorKind.MERGE_FAILURE,
            error=error,
        )

    # ------------------------------------------------------------------
    # Manual rollback
    # ------------------------------------------------------------------

    def rollback(self, to_commit: str, performed_by: str, sink: Optional[EventSink] = None) -> PromotionResult:
        """
        Hard-reset production to an earlier commit and force-push it.

        Destructive and not reversible by Tollgate.
        """
        events = EventEmitter(sink, "rollback")
        try:
            with self.locks.promotion():
                result = self._rollback_locked(to_commit, performed_by, events)
        except LockTimeout as e:
            logger.warning(str(e))
            events.failed("lock", error=str(e))
            result = PromotionResult(success=False, message="Rollback is busy", kind=ErrorKind.BUSY, error=str(e))

        events.done(success=result.success, kind=result.kind.value if result.kind else None)
        return result

    def _rollback_locked(self, to_commit: str, performed_by: str, events: EventEmitter) -> PromotionResult:
        logger.warning(f"Production rollback to {to_commit} requested by {performed_by}")

        events.started("verify")
        try:
            problem = self._rollback_precondition(to_commit)
        except GitCommandError as e:
            problem = str(e)
        if problem:
            events.failed("verify", error=problem)
            return PromotionResult(
                success=False,
                message="Invalid rollback target",
                kind=ErrorKind.SAFETY_CHECK_FAILURE,
                error=problem,
            )
        events.ok("verify")

        events.started("reset")
        reset = self.production.reset_to_commit(to_commit, hard=True)
        if not reset.success:
            events.failed("reset", error=reset.error)
            logger.critical(f"Hard reset of production to {to_commit} failed: {reset.error}")
            return PromotionResult(
                success=False,
                message="Rollback failed",
                kind=ErrorKind.ROLLBACK_FAILURE,
                error=reset.error,
            )
        events.ok("reset")

        events.started("force_push")
        pushed = self.production.force_push(self.remote, self.production_branch)
        if not pushed.success:
            events.failed("force_push", error=pushed.error, fatal=True)
            logger.critical(
                f"Production reset to {to_commit} locally but force-push failed: {pushed.error}"
            )
            return PromotionResult(
                success=False,
                message="Production reset locally but force-push failed. Manual intervention required.",
                kind=ErrorKind.ROLLBACK_FAILURE,
                error=pushed.error,
            )
        events.ok("force_push")

        logger.warning(f"Production rolled back to {to_commit} by {performed_by}")
        return PromotionResult(success=True, message=f"Successfully rolled back to {to_commit}")

    def _rollback_precondition(self, to_commit: str) -> Optional[str]:
        if not to_commit or to_commit.startswith("-"):
            return f"Invalid commit reference: {to_commit!r}"
        if not self.production.commit_exists(to_commit):
            return f"Commit {to_commit} does not exist"
        branch = self.production.current_branch()
        if branch != self.production_branch:
            return f"Production is on wrong branch: {branch or 'detached HEAD'} (expected: {self.production_branch})"
        if not self.production.is_ancestor(to_commit, "HEAD"):
            return f"Commit {to_commit} is not in production history"
        return None
