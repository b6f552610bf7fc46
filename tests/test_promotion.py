"""
Tests for staging-to-production promotion: diff, safety checks, guarded
merge, manual rollback and history.
"""

import threading

import pytest

from tollgate.events import CollectingSink
from tollgate.pipeline import Pipeline
from tollgate.promotion import build_merge_message, classify_file
from tollgate.schemas import ErrorKind, GitOperationResult, PromotionDiff

from .conftest import commit_file, head, make_settings, requires_git, run_git, write_file


@pytest.fixture
def pipeline(remotes):
    built = Pipeline.from_settings(make_settings(remotes))
    yield built
    built.shutdown()


@pytest.fixture
def manager(pipeline):
    return pipeline.promotion


def _stage_commits(remotes, count=3):
    """Commit `count` files on staging and push them."""
    hashes = []
    for i in range(count):
        hashes.append(commit_file(remotes.staging, f"feature_{i}.txt", f"feature {i}\n", f"Add feature {i}"))
    run_git(remotes.staging, "push", "origin", "staging")
    return hashes


class TestHelpers:

    @pytest.mark.parametrize("additions,deletions,status", [
        (10, 0, "added"),
        (0, 4, "deleted"),
        (3, 2, "modified"),
        (0, 0, "modified"),
    ])
    def test_classify_file(self, additions, deletions, status):
        assert classify_file(additions, deletions) == status

    def test_merge_message(self):
        diff = PromotionDiff(ahead_count=2)
        message = build_merge_message("alice", diff)
        lines = message.splitlines()
        assert lines[0] == "Promote staging to production"
        assert lines[2] == "Performed by: alice"
        assert "Commits included: 0" in message
        assert "Files changed: 0" in message

    def test_merge_message_custom_title(self):
        assert build_merge_message("bob", PromotionDiff(), "Release 1.2").startswith("Release 1.2\n\n")


@requires_git
class TestDiff:

    def test_identical_refs(self, manager):
        diff = manager.get_diff()
        assert diff.ahead_count == 0
        assert diff.behind_count == 0
        assert diff.files == []
        assert diff.commits == []

    def test_staging_ahead(self, manager, remotes):
        write_file(remotes.staging, "src/app.py", "def hello():\n    return 'hi'\n")
        (remotes.staging / "README.md").unlink()
        run_git(remotes.staging, "add", "-A")
        run_git(remotes.staging, "commit", "-m", "Edit app, drop readme")
        _stage_commits(remotes, count=2)

        diff = manager.get_diff()

        assert diff.ahead_count == 3
        assert diff.behind_count == 0
        assert [c.message for c in diff.commits] == ["Add feature 1", "Add feature 0", "Edit app, drop readme"]
        statuses = {f.path: f.status for f in diff.files}
        assert statuses == {
            "README.md": "deleted",
            "feature_0.txt": "added",
            "feature_1.txt": "added",
            "src/app.py": "modified",
        }

    def test_unpushed_commits_are_not_counted(self, manager, remotes):
        commit_file(remotes.staging, "local.txt", "x\n", "Local only")
        assert manager.get_diff().ahead_count == 0

    def test_production_ahead(self, manager, remotes):
        commit_file(remotes.production, "hotfix.txt", "fix\n", "Hotfix")
        run_git(remotes.production, "push", "origin", "main")

        diff = manager.get_diff()
        assert diff.ahead_count == 0
        assert diff.behind_count == 1


@requires_git
class TestSafetyChecks:

    def test_all_pass(self, manager, remotes):
        _stage_commits(remotes, count=3)
        result = manager.run_safety_checks()
        assert result.passed, result.issues
        assert result.issues == []

    def test_staging_dirty_reports_one_staging_issue(self, manager, remotes):
        _stage_commits(remotes, count=3)
        write_file(remotes.staging, "src/app.py", "uncommitted\n")

        result = manager.run_safety_checks()

        assert not result.passed
        assert result.issues == ["Staging has uncommitted changes. Commit or discard them first."]

    def test_every_violation_reported(self, manager, remotes):
        _stage_commits(remotes, count=1)
        write_file(remotes.staging, "src/app.py", "uncommitted\n")
        run_git(remotes.production, "checkout", "-b", "hotfix")

        result = manager.run_safety_checks()

        assert not result.passed
        assert len(result.issues) == 2
        assert result.issues[1] == "Production is on wrong branch: hotfix (expected: main)"

    def test_production_dirty(self, manager, remotes):
        _stage_commits(remotes, count=1)
        write_file(remotes.production, "src/app.py", "edited on the server\n")
        result = manager.run_safety_checks()
        assert result.issues == ["Production has uncommitted changes. This should never happen - investigate."]

    def test_untracked_files_do_not_block(self, manager, remotes):
        _stage_commits(remotes, count=1)
        write_file(remotes.staging, "scratch.log", "x")
        assert manager.run_safety_checks().passed

    def test_nothing_to_promote(self, manager):
        result = manager.run_safety_checks()
        assert result.issues == ["No changes to promote. Staging and production are already in sync."]

    def test_staging_behind_remote(self, manager, remotes, temp_dir):
        _stage_commits(remotes, count=1)
        other = temp_dir / "other"
        run_git(temp_dir, "clone", "--branch", "staging", str(remotes.origin), str(other))
        run_git(other, "config", "user.email", "other@example.com")
        run_git(other, "config", "user.name", "Other")
        commit_file(other, "theirs.txt", "theirs\n", "Someone else")
        run_git(other, "push", "origin", "staging")

        result = manager.run_safety_checks()

        assert result.issues == ["Staging is behind remote. Pull latest changes first."]


@requires_git
class TestPromote:

    def test_promote(self, manager, remotes):
        _stage_commits(remotes, count=3)
        base = head(remotes.production)
        sink = CollectingSink()

        result = manager.promote("alice", "Release 1", sink=sink)

        assert result.success, result.error
        assert result.record.performed_by == "alice"
        assert result.record.commits_promoted == 3
        assert result.record.files_changed == 3
        assert result.record.insertions == 3
        assert result.record.deletions == 0
        merge = head(remotes.production)
        assert result.record.merge_commit == merge
        assert run_git(remotes.origin, "rev-parse", "refs/heads/main").strip() == merge
        parents = run_git(remotes.production, "rev-list", "--parents", "-n", "1", merge).split()
        assert parents[1] == base
        assert len(parents) == 3
        subject = run_git(remotes.production, "log", "-1", "--format=%s").strip()
        assert subject == "Release 1"
        assert sink.steps("ok") == ["safety_checks", "diff", "push_staging", "merge", "push_production"]
        assert manager.get_diff().ahead_count == 0

    def test_second_promote_is_refused(self, manager, remotes):
        _stage_commits(remotes, count=2)
        assert manager.promote("alice").success
        merged = head(remotes.production)

        again = manager.promote("alice")

        assert not again.success
        assert again.kind is ErrorKind.SAFETY_CHECK_FAILURE
        assert again.issues == ["No changes to promote. Staging and production are already in sync."]
        assert head(remotes.production) == merged

    def test_safety_failure_blocks(self, manager, remotes):
        base = head(remotes.production)
        result = manager.promote("alice")
        assert not result.success
        assert result.kind is ErrorKind.SAFETY_CHECK_FAILURE
        assert result.issues
        assert head(remotes.production) == base

    def test_merge_conflict_is_aborted(self, manager, remotes):
        commit_file(remotes.staging, "src/app.py", "staging\n", "Staging edit")
        run_git(remotes.staging, "push", "origin", "staging")
        commit_file(remotes.production, "src/app.py", "production\n", "Hotfix")
        run_git(remotes.production, "push", "origin", "main")
        before = head(remotes.production)

        result = manager.promote("alice")

        assert result.kind is ErrorKind.MERGE_FAILURE
        assert not result.fatal
        assert head(remotes.production) == before
        assert (remotes.production / "src" / "app.py").read_text() == "production\n"
        assert not manager.production.has_tracked_changes()

    def test_push_failure_after_merge_is_fatal(self, manager, remotes):
        _stage_commits(remotes, count=1)
        manager.production.push = lambda remote=None, branch=None: GitOperationResult(
            success=False, operation="push", error="remote rejected"
        )

        result = manager.promote("alice")

        assert result.kind is ErrorKind.POST_MERGE_PUSH_FAILURE
        assert result.fatal
        # The merge stays in place for an operator
        assert len(run_git(remotes.production, "rev-list", "--parents", "-n", "1", "HEAD").split()) == 3

    def test_busy_while_modification_runs(self, manager, pipeline, remotes):
        _stage_commits(remotes, count=1)
        pipeline.locks.timeout = 0.2
        holding = threading.Event()
        release = threading.Event()

        def hold_lock():
            with pipeline.locks.modification():
                holding.set()
                release.wait(10)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            holding.wait(10)
            result = manager.promote("alice")
        finally:
            release.set()
            holder.join()

        assert result.kind is ErrorKind.BUSY


@requires_git
class TestRollbackAndHistory:

    def test_rollback_to_before_promotion(self, manager, remotes):
        _stage_commits(remotes, count=2)
        base = head(remotes.production)
        assert manager.promote("alice").success

        result = manager.rollback(base, "bob")

        assert result.success, result.error
        assert head(remotes.production) == base
        assert run_git(remotes.origin, "rev-parse", "refs/heads/main").strip() == base

    @pytest.mark.parametrize("target", ["", "--hard", "0" * 40])
    def test_invalid_targets(self, manager, remotes, target):
        before = head(remotes.production)
        result = manager.rollback(target, "bob")
        assert result.kind is ErrorKind.SAFETY_CHECK_FAILURE
        assert head(remotes.production) == before

    def test_target_outside_production_history(self, manager, remotes):
        staged = _stage_commits(remotes, count=1)
        run_git(remotes.production, "fetch", "origin")

        result = manager.rollback(staged[0], "bob")

        assert result.kind is ErrorKind.SAFETY_CHECK_FAILURE
        assert "not in production history" in result.error

    def test_history_flags_promotions(self, manager, remotes):
        _stage_commits(remotes, count=1)
        assert manager.promote("alice").success

        history = manager.get_history(limit=10)

        assert history[0].is_promotion
        assert history[0].message == "Promote staging to production"
        assert not history[-1].is_promotion
        assert history[-1].message == "Initial commit"
        assert len(manager.get_history(limit=1)) == 1
