"""
Tests for BackupStore, atomic_write, OperationLedger and the content
validator.
"""

import os
import stat
from datetime import datetime, timezone

import pytest

from tollgate.mutation import BackupStore, ContentKind, OperationLedger, atomic_write, content_kind, validate_batch, validate_content
from tollgate.mutation.backups import backup_name
from tollgate.schemas import FileChange, OperationRecord


class TestAtomicWrite:

    def test_replaces_content(self, temp_dir):
        target = temp_dir / "file.txt"
        target.write_text("old")
        atomic_write(target, b"new")
        assert target.read_bytes() == b"new"

    def test_no_temp_files_left(self, temp_dir):
        target = temp_dir / "file.txt"
        atomic_write(target, b"data")
        assert [p.name for p in temp_dir.iterdir()] == ["file.txt"]

    def test_keeps_mode_of_replaced_file(self, temp_dir):
        target = temp_dir / "run.sh"
        target.write_text("#!/bin/sh\n")
        target.chmod(0o755)
        atomic_write(target, b"#!/bin/sh\necho hi\n")
        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    def test_new_file_follows_umask(self, temp_dir):
        previous = os.umask(0o027)
        try:
            atomic_write(temp_dir / "new.txt", b"data")
        finally:
            os.umask(previous)
        assert stat.S_IMODE((temp_dir / "new.txt").stat().st_mode) == 0o640

    def test_missing_parent_raises(self, temp_dir):
        with pytest.raises(OSError):
            atomic_write(temp_dir / "nope" / "file.txt", b"data")


class TestBackupStore:

    def test_backup_name(self):
        when = datetime(2026, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
        assert backup_name("src/app/page.tsx", when) == "src_app_page.tsx_20260102T030405678901Z"

    def test_create_and_restore(self, temp_dir):
        store = BackupStore(temp_dir / ".backups")
        source = temp_dir / "a.txt"
        source.write_text("v1")

        backup = store.create("a.txt", source)
        source.write_text("v2")
        store.restore(backup, source)

        assert source.read_text() == "v1"
        assert backup.read_text() == "v1"

    def test_restore_recreates_parents(self, temp_dir):
        store = BackupStore(temp_dir / ".backups")
        source = temp_dir / "deep" / "a.txt"
        source.parent.mkdir()
        source.write_text("v1")
        backup = store.create("deep/a.txt", source)

        source.unlink()
        source.parent.rmdir()
        store.restore(backup, source)

        assert source.read_text() == "v1"

    def test_same_instant_does_not_collide(self, temp_dir, monkeypatch):
        import tollgate.mutation.backups as backups_module

        frozen = datetime(2026, 1, 1, tzinfo=timezone.utc)

        class FrozenDatetime(datetime):
            @classmethod
            def now(cls, tz=None):
                return frozen

        monkeypatch.setattr(backups_module, "datetime", FrozenDatetime)
        store = BackupStore(temp_dir / ".backups")
        source = temp_dir / "a.txt"
        source.write_text("x")

        first = store.create("a.txt", source)
        second = store.create("a.txt", source)

        assert first != second
        assert len(store.list()) == 2

    def test_list_skips_ignore_file(self, temp_dir):
        store = BackupStore(temp_dir / ".backups")
        assert store.list() == []
        source = temp_dir / "a.txt"
        source.write_text("x")
        store.create("a.txt", source)
        assert (temp_dir / ".backups" / ".gitignore").exists()
        assert len(store.list()) == 1


class TestOperationLedger:

    def _record(self, path):
        return OperationRecord(path=path, kind="write", outcome="ok")

    def test_evicts_oldest(self):
        ledger = OperationLedger(max_entries=3)
        for name in ["a", "b", "c", "d"]:
            ledger.append(self._record(name))
        assert len(ledger) == 3
        assert [r.path for r in ledger.records()] == ["b", "c", "d"]

    def test_recent_newest_first(self):
        ledger = OperationLedger()
        for name in ["a", "b", "c"]:
            ledger.append(self._record(name))
        assert [r.path for r in ledger.recent(2)] == ["c", "b"]
        assert ledger.recent(0) == []

    def test_clear(self):
        ledger = OperationLedger()
        ledger.append(self._record("a"))
        ledger.clear()
        assert len(ledger) == 0

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            OperationLedger(max_entries=0)


class TestContentValidator:

    @pytest.mark.parametrize("path,kind", [
        ("a.py", ContentKind.PYTHON),
        ("types.pyi", ContentKind.PYTHON),
        ("data.JSON", ContentKind.JSON),
        ("pyproject.toml", ContentKind.TOML),
        ("page.tsx", ContentKind.TEXT),
        ("Makefile", ContentKind.TEXT),
    ])
    def test_content_kind(self, path, kind):
        assert content_kind(path) is kind

    def test_valid_content(self):
        assert validate_content("a.py", "x = 1\n") is None
        assert validate_content("a.json", '{"a": 1}') is None
        assert validate_content("a.toml", "[tool]\nname = 'x'\n") is None
        assert validate_content("a.tsx", "<<< anything >>>") is None

    def test_invalid_toml(self):
        error = validate_content("conf.toml", "[broken")
        assert error is not None
        assert error.startswith("conf.toml: invalid toml content")

    def test_validate_batch(self):
        errors = validate_batch([
            FileChange(path="ok.json", new_content="[]"),
            FileChange(path="bad.json", new_content="["),
        ])
        assert [path for path, _ in errors] == ["bad.json"]
