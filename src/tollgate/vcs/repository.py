"""
Repository: version-control primitives against one working copy.

Query methods (status, log, diff, branch introspection) raise
GitCommandError. Mutating methods never raise for git failures: they
return a GitOperationResult carrying git's own error text. Only queries
run under the kill timeout.

Destructive operations are separate named methods (reset_to_commit,
discard_all_changes, force_push) so every call site is easy to audit.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from tollgate.exceptions import GitCommandError
from tollgate.logging_config import logger
from tollgate.schemas import Author, CommitRecord, GitOperationResult, RepoStatus

from .git import DEFAULT_TIMEOUT, run_git


RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
LOG_FORMAT = "%x1e%H%x1f%P%x1f%an%x1f%ae%x1f%aI%x1f%B%x1f"


def parse_branch_header(header: str) -> Tuple[Optional[str], Optional[str], int, int]:
    """
    Parse the `## ...` line of `git status --porcelain --branch`.

    Returns:
        (branch, upstream, ahead, behind); branch is None when detached
    """
    ahead = behind = 0
    tracking = ""
    if header.endswith("]") and " [" in header:
        header, _, tracking = header.partition(" [")
        tracking = tracking[:-1]
    for part in tracking.split(", "):
        if part.startswith("ahead "):
            ahead = int(part[len("ahead "):])
        elif part.startswith("behind "):
            behind = int(part[len("behind "):])

    for prefix in ("No commits yet on ", "Initial commit on "):
        if header.startswith(prefix):
            return header[len(prefix):], None, ahead, behind
    if header.startswith("HEAD (no branch)"):
        return None, None, ahead, behind

    branch, _, upstream = header.partition("...")
    return branch, upstream or None, ahead, behind


def parse_status(output: str) -> RepoStatus:
    """Parse `git status --porcelain=v1 --branch -z` output."""
    branch: Optional[str] = None
    upstream: Optional[str] = None
    ahead = behind = 0
    modified: List[str] = []
    created: List[str] = []
    deleted: List[str] = []

    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if not entry:
            continue
        if entry.startswith("## "):
            branch, upstream, ahead, behind = parse_branch_header(entry[3:])
            continue

        xy, path = entry[:2], entry[3:]
        if xy[0] in "RC":
            # -z puts the original path in the next entry
            original = entries[i] if i < len(entries) else ""
            i += 1
            created.append(path)
            if xy[0] == "R" and original:
                deleted.append(original)
        elif xy == "??" or "A" in xy:
            created.append(path)
        elif "D" in xy:
            deleted.append(path)
        else:
            modified.append(path)

    return RepoStatus(
        branch=branch,
        upstream=upstream,
        modified_paths=modified,
        created_paths=created,
        deleted_paths=deleted,
        clean=not (modified or created or deleted),
        ahead_of_remote=ahead,
        behind_remote=behind,
    )


def parse_log(output: str) -> List[CommitRecord]:
    """Parse `git log --format=LOG_FORMAT --name-only` output."""
    commits = []
    for chunk in output.split(RECORD_SEP):
        if not chunk.strip():
            continue
        fields = chunk.split(FIELD_SEP)
        if len(fields) < 7:
            logger.warning(f"Skipping unparseable log entry: {chunk[:80]!r}")
            continue
        hash_, parents, name, email, date, body = fields[:6]
        files = [line for line in FIELD_SEP.join(fields[6:]).splitlines() if line.strip()]
        commits.append(
            CommitRecord(
                hash=hash_,
                message=body.strip(),
                author=Author(name=name, email=email),
                date=date or None,
                files_touched=files,
                parents=parents.split(),
            )
        )
    return commits


class Repository:
    """One git working copy."""

    def __init__(
        self,
        path: Path,
        remote: str = "origin",
        timeout: float = DEFAULT_TIMEOUT,
        author: Optional[Author] = None,
    ):
        self.path = Path(path)
        self.remote = remote
        self.timeout = timeout
        self.author = author

    def __repr__(self) -> str:
        return f"Repository({str(self.path)!r})"

    def _git(self, *args: str, check: bool = True, config: Optional[Dict[str, str]] = None):
        return run_git(args, cwd=self.path, timeout=self.timeout, check=check, config=config)

    def _identity(self, author: Optional[Author]) -> Dict[str, str]:
        author = author or self.author
        config = {"commit.gpgsign": "false"}
        if author is not None:
            config["user.name"] = author.name
            config["user.email"] = author.email
        return config

    def _attempt(self, operation: str, *args: str, config: Optional[Dict[str, str]] = None) -> GitOperationResult:
        # No kill timeout: a mutating command always runs to completion
        try:
            result = run_git(args, cwd=self.path, timeout=None, config=config)
        except GitCommandError as e:
            logger.error(f"git {operation} failed in {self.path}: {e}")
            return GitOperationResult(success=False, operation=operation, error=str(e))
        return GitOperationResult(
            success=True,
            operation=operation,
            message=(result.stdout or result.stderr).strip() or None,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_repository(self) -> bool:
        try:
            result = self._git("rev-parse", "--is-inside-work-tree", check=False)
        except GitCommandError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def status(self) -> RepoStatus:
        result = self._git("status", "--porcelain=v1", "--branch", "-z", "--untracked-files=all")
        return parse_status(result.stdout)

    def has_tracked_changes(self) -> bool:
        """Uncommitted changes to tracked files; untracked files are ignored."""
        result = self._git("status", "--porcelain", "-uno")
        return bool(result.stdout.strip())

    def current_branch(self) -> Optional[str]:
        """Checked-out branch, or None when HEAD is detached."""
        result = self._git("branch", "--show-current")
        return result.stdout.strip() or None

    def head(self) -> str:
        return self._git("rev-parse", "HEAD").stdout.strip()

    def list_branches(self) -> List[str]:
        result = self._git("for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def log(self, max_count: Optional[int] = 10, rev_range: Optional[str] = None) -> List[CommitRecord]:
        """
        Commit history, newest first.

        Args:
            max_count: Limit on commits returned; None for no limit
            rev_range: Revision or range (e.g. "origin/main..origin/staging")
        """
        args = ["log", f"--format={LOG_FORMAT}", "--name-only"]
        if max_count is not None:
            args.append(f"--max-count={max_count}")
        if rev_range:
            args.append(rev_range)
        args.append("--")
        return parse_log(self._git(*args).stdout)

    def diff(self, ref_a: str, ref_b: str) -> str:
        return self._git("diff", ref_a, ref_b).stdout

    def diff_numstat(self, rev_range: str) -> List[Tuple[str, int, int]]:
        """
        Per-file (path, additions, deletions) for a range.

        Binary files report zero for both counts.
        """
        result = self._git("diff", "--numstat", "--no-renames", rev_range)
        stats = []
        for line in result.stdout.splitlines():
            parts = line.split("\t", 2)
            if len(parts) != 3:
                continue
            added, removed, path = parts
            stats.append((path, int(added) if added.isdigit() else 0, int(removed) if removed.isdigit() else 0))
        return stats

    def commit_exists(self, ref: str) -> bool:
        result = self._git("cat-file", "-e", f"{ref}^{{commit}}", check=False)
        return result.returncode == 0

    def is_ancestor(self, ref: str, of: str) -> bool:
        result = self._git("merge-base", "--is-ancestor", ref, of, check=False)
        if result.returncode in (0, 1):
            return result.returncode == 0
        raise GitCommandError(["git", "merge-base", "--is-ancestor", ref, of], result.returncode, result.stdout, result.stderr)

    def rev_count(self, rev_range: str) -> int:
        return int(self._git("rev-list", "--count", rev_range).stdout.strip() or 0)

    def left_right_count(self, left: str, right: str) -> Tuple[int, int]:
        """Commits only in `left` and only in `right`."""
        output = self._git("rev-list", "--left-right", "--count", f"{left}...{right}").stdout.split()
        return int(output[0]), int(output[1])

    # ------------------------------------------------------------------
    # Non-destructive mutations
    # ------------------------------------------------------------------

    def stage(self, paths: Optional[Sequence[str]] = None) -> GitOperationResult:
        """Stage paths (additions, modifications and deletions); all changes if None."""
        if paths:
            return self._attempt("stage", "add", "-A", "--", *paths)
        return self._attempt("stage", "add", "-A")

    def commit(
        self,
        message: str,
        files: Optional[Sequence[str]] = None,
        author: Optional[Author] = None,
    ) -> GitOperationResult:
        """
        Commit staged changes, staging `files` first if given.

        Fails when there is nothing to commit.
        """
        if files:
            staged = self.stage(files)
            if not staged.success:
                return GitOperationResult(success=False, operation="commit", error=staged.error)

        try:
            nothing_staged = self._git("diff", "--cached", "--quiet", check=False).returncode == 0
        except GitCommandError as e:
            return GitOperationResult(success=False, operation="commit", error=str(e))
        if nothing_staged:
            return GitOperationResult(success=False, operation="commit", error="nothing to commit")

        result = self._attempt("commit", "commit", "-m", message, config=self._identity(author))
        if not result.success:
            return result

        try:
            record = self.log(max_count=1)[0]
        except (GitCommandError, IndexError) as e:
            return GitOperationResult(success=False, operation="commit", error=f"commit created but unreadable: {e}")

        logger.info(f"Committed {record.hash[:8]}: {record.message.splitlines()[0]}")
        return GitOperationResult(success=True, operation="commit", message=result.message, commit=record)

    def revert_commit(self, commit_hash: str, author: Optional[Author] = None) -> GitOperationResult:
        """Create the inverse of a commit. History is preserved."""
        result = self._attempt("revert", "revert", "--no-edit", commit_hash, config=self._identity(author))
        if not result.success:
            # Leave no half-applied revert behind
            try:
                self._git("revert", "--abort", check=False)
            except GitCommandError as e:
                logger.error(f"git revert --abort failed in {self.path}: {e}")
            return result

        try:
            record = self.log(max_count=1)[0]
        except (GitCommandError, IndexError) as e:
            return GitOperationResult(success=False, operation="revert", error=f"revert created but unreadable: {e}")

        logger.info(f"Reverted {commit_hash[:8]} with {record.hash[:8]}")
        return GitOperationResult(success=True, operation="revert", message=result.message, commit=record)

    def push(self, remote: Optional[str] = None, branch: Optional[str] = None) -> GitOperationResult:
        args = ["push", remote or self.remote]
        if branch:
            args.append(branch)
        return self._attempt("push", *args)

    def fetch(self, remote: Optional[str] = None) -> GitOperationResult:
        return self._attempt("fetch", "fetch", remote or self.remote)

    def merge(
        self,
        ref: str,
        no_ff: bool = True,
        message: Optional[str] = None,
        author: Optional[Author] = None,
    ) -> GitOperationResult:
        args = ["merge"]
        if no_ff:
            args.append("--no-ff")
        if message:
            args.extend(["-m", message])
        else:
            args.append("--no-edit")
        args.append(ref)
        return self._attempt("merge", *args, config=self._identity(author))

    def abort_merge(self) -> GitOperationResult:
        return self._attempt("merge_abort", "merge", "--abort")

    def checkout(self, branch: str) -> GitOperationResult:
        return self._attempt("checkout", "checkout", branch)

    def create_branch(self, name: str, start_point: Optional[str] = None) -> GitOperationResult:
        args = ["branch", name]
        if start_point:
            args.append(start_point)
        return self._attempt("create_branch", *args)

    # ------------------------------------------------------------------
    # Destructive operations
    # ------------------------------------------------------------------

    def reset_to_commit(self, commit_hash: str, hard: bool = False) -> GitOperationResult:
        mode = "--hard" if hard else "--mixed"
        logger.warning(f"Resetting {self.path} to {commit_hash[:8]} ({mode})")
        return self._attempt("reset", "reset", mode, commit_hash)

    def discard_all_changes(self) -> GitOperationResult:
        """Hard reset to HEAD and remove untracked files and directories."""
        logger.warning(f"Discarding all working copy changes in {self.path}")
        reset = self._attempt("discard", "reset", "--hard", "HEAD")
        if not reset.success:
            return reset
        return self._attempt("discard", "clean", "-fd")

    def force_push(self, remote: Optional[str] = None, branch: Optional[str] = None) -> GitOperationResult:
        logger.warning(f"Force-pushing {branch or 'HEAD'} to {remote or self.remote}")
        args = ["push", "--force", remote or self.remote]
        if branch:
            args.append(branch)
        return self._attempt("force_push", *args)
