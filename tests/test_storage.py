"""Tests for the SQLAlchemy-backed audit store."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import BASE_AUDIT, URL, make_audit
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from lighthouse_pulse.exceptions import AuditNotFoundError, AuditStorageError
from lighthouse_pulse.models import NUMERIC_FIELDS
from lighthouse_pulse.storage import AuditStore


class TestStoreLifecycle:
    def test_open_creates_directories_and_schema(self, tmp_path: Path) -> None:
        store = AuditStore(str(tmp_path / "data" / "audits.db"), str(tmp_path / "data" / "results"))
        store.open()
        try:
            assert (tmp_path / "data" / "audits.db").is_file()
            assert (tmp_path / "data" / "results").is_dir()
            assert store.count() == 0
        finally:
            store.close()

    def test_context_manager_closes(self, tmp_path: Path) -> None:
        with AuditStore(str(tmp_path / "audits.db")) as store:
            assert store.is_open
        assert not store.is_open

    def test_closed_store_raises_storage_error(self, tmp_path: Path) -> None:
        store = AuditStore(str(tmp_path / "audits.db"))
        with pytest.raises(AuditStorageError):
            store.insert(make_audit())

    def test_reopen_keeps_records(self, tmp_path: Path) -> None:
        db_path = str(tmp_path / "audits.db")
        with AuditStore(db_path) as store:
            saved = store.insert(make_audit())
        with AuditStore(db_path) as store:
            assert store.get(saved.id).performance_score == 78

    def test_unopenable_path_raises_storage_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        store = AuditStore(str(blocker / "audits.db"))
        with pytest.raises(AuditStorageError):
            store.open()

    def test_close_twice_is_harmless(self, memory_store: AuditStore) -> None:
        memory_store.close()
        memory_store.close()
        assert not memory_store.is_open


class TestInsertAndGet:
    def test_insert_assigns_id(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        assert saved.id == 1
        assert saved.url == URL
        assert saved.performance_score == 78
        assert saved.artifact_path is None

    def test_ids_autoincrement(self, audit_store: AuditStore) -> None:
        first = audit_store.insert(make_audit())
        second = audit_store.insert(make_audit())
        assert second.id == first.id + 1

    def test_round_trip_every_field(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        loaded = audit_store.get(saved.id)
        for name, value in BASE_AUDIT.items():
            assert getattr(loaded, name) == value, name
        assert loaded.artifact_path is None

    def test_absent_fields_stay_absent(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit(
            performance_score=None,
            cls=None,
            git_commit=None,
            git_branch=None,
        ))
        loaded = audit_store.get(saved.id)
        assert loaded.performance_score is None
        assert loaded.cls is None
        assert loaded.git_commit is None
        assert loaded.git_branch is None
        # Absence of one field never implies absence of another.
        assert loaded.accessibility_score == 95
        assert loaded.lcp == 2450.0

    def test_zero_values_are_not_absent(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit(performance_score=0, tbt=0.0, cls=0.0))
        loaded = audit_store.get(saved.id)
        assert loaded.performance_score == 0
        assert loaded.tbt == 0.0
        assert loaded.cls == 0.0

    def test_all_numeric_fields_absent(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit(**{name: None for name in NUMERIC_FIELDS}))
        loaded = audit_store.get(saved.id)
        assert all(getattr(loaded, name) is None for name in NUMERIC_FIELDS)

    def test_get_nonexistent_raises(self, audit_store: AuditStore) -> None:
        with pytest.raises(AuditNotFoundError, match="Audit with id 999 not found"):
            audit_store.get(999)


class TestLatest:
    def test_none_when_no_audits(self, audit_store: AuditStore) -> None:
        assert audit_store.latest(URL) is None

    def test_returns_max_timestamp(self, audit_store: AuditStore) -> None:
        for ts in (1000, 3000, 2000):
            audit_store.insert(make_audit(timestamp=ts))
        latest = audit_store.latest(URL)
        assert latest is not None
        assert latest.timestamp == 3000

    def test_filters_by_branch(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main", timestamp=1000))
        audit_store.insert(make_audit(git_branch="feature", timestamp=2000))
        latest = audit_store.latest(URL, "main")
        assert latest is not None
        assert latest.git_branch == "main"
        assert latest.timestamp == 1000

    def test_branch_match_is_exact(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main-old"))
        audit_store.insert(make_audit(git_branch="feature/main"))
        assert audit_store.latest(URL, "main") is None

    def test_none_when_branch_unmatched(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main"))
        assert audit_store.latest(URL, "feature") is None

    def test_without_branch_considers_all_branches(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main", timestamp=1000))
        audit_store.insert(make_audit(git_branch=None, timestamp=5000))
        latest = audit_store.latest(URL)
        assert latest is not None
        assert latest.timestamp == 5000

    def test_other_urls_ignored(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(url="https://other.example.com", timestamp=9000))
        audit_store.insert(make_audit(timestamp=1000))
        latest = audit_store.latest(URL)
        assert latest is not None
        assert latest.timestamp == 1000

    def test_timestamp_tie_prefers_later_insert(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(timestamp=1000))
        second = audit_store.insert(make_audit(timestamp=1000))
        latest = audit_store.latest(URL)
        assert latest is not None
        assert latest.id == second.id


class TestHistory:
    def test_empty_when_no_audits(self, audit_store: AuditStore) -> None:
        assert audit_store.history(URL, 10) == []

    def test_empty_for_unmatched_branch(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main"))
        assert audit_store.history(URL, 10, branch="release") == []

    def test_ordered_newest_first(self, audit_store: AuditStore) -> None:
        for ts in (1000, 3000, 2000):
            audit_store.insert(make_audit(timestamp=ts))
        history = audit_store.history(URL, 10)
        assert [a.timestamp for a in history] == [3000, 2000, 1000]

    def test_respects_limit(self, audit_store: AuditStore) -> None:
        for i in range(5):
            audit_store.insert(make_audit(timestamp=i * 1000))
        history = audit_store.history(URL, 3)
        assert len(history) == 3
        assert [a.timestamp for a in history] == [4000, 3000, 2000]

    def test_filters_by_branch(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit(git_branch="main"))
        audit_store.insert(make_audit(git_branch="main"))
        audit_store.insert(make_audit(git_branch="feature"))
        history = audit_store.history(URL, 10, branch="main")
        assert len(history) == 2
        assert all(a.git_branch == "main" for a in history)

    def test_invalid_limit_raises(self, audit_store: AuditStore) -> None:
        with pytest.raises(ValueError):
            audit_store.history(URL, 0)


class TestAttachArtifact:
    def test_sets_artifact_path(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        audit_store.attach_artifact(saved.id, "/tmp/result.json")
        assert audit_store.get(saved.id).artifact_path == "/tmp/result.json"

    def test_second_call_overwrites(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        audit_store.attach_artifact(saved.id, "/tmp/first.json")
        audit_store.attach_artifact(saved.id, "/tmp/second.json")
        assert audit_store.get(saved.id).artifact_path == "/tmp/second.json"

    def test_does_not_touch_measurements(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        audit_store.attach_artifact(saved.id, "/tmp/result.json")
        loaded = audit_store.get(saved.id)
        assert loaded.model_dump(exclude={"artifact_path"}) == saved.model_dump(exclude={"artifact_path"})

    def test_unknown_id_raises_and_leaves_table_unchanged(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert(make_audit())
        before = audit_store.get(saved.id)
        with pytest.raises(AuditNotFoundError):
            audit_store.attach_artifact(999, "/tmp/result.json")
        assert audit_store.count() == 1
        assert audit_store.get(saved.id) == before


class TestSaveRawResult:
    def test_writes_json_file(self, audit_store: AuditStore) -> None:
        path = audit_store.save_raw_result(7, {"lighthouseVersion": "12.0.0"})
        file_path = Path(path)
        assert file_path.parent == audit_store.results_path
        assert file_path.name.startswith("7-")
        assert json.loads(file_path.read_text())["lighthouseVersion"] == "12.0.0"

    def test_memory_store_returns_placeholder(self, memory_store: AuditStore) -> None:
        assert memory_store.save_raw_result(3, {"a": 1}) == "<memory:3>"


class TestInsertWithArtifact:
    def test_stores_row_and_report_together(self, audit_store: AuditStore) -> None:
        saved = audit_store.insert_with_artifact(make_audit(), {"lighthouseVersion": "12.0.0"})
        assert saved.id == 1
        assert saved.artifact_path is not None
        assert Path(saved.artifact_path).name.startswith(f"{saved.id}-")
        assert json.loads(Path(saved.artifact_path).read_text())["lighthouseVersion"] == "12.0.0"
        assert audit_store.get(saved.id) == saved

    def test_memory_store_uses_placeholder(self, memory_store: AuditStore) -> None:
        saved = memory_store.insert_with_artifact(make_audit(), {"a": 1})
        assert saved.artifact_path == f"<memory:{saved.id}>"
        assert memory_store.get(saved.id).artifact_path == saved.artifact_path

    def test_failed_report_write_leaves_no_row(self, audit_store: AuditStore) -> None:
        results = audit_store.results_path
        results.rmdir()
        results.write_text("not a directory")
        with pytest.raises(AuditStorageError):
            audit_store.insert_with_artifact(make_audit(), {"lighthouseVersion": "12.0.0"})
        assert audit_store.count() == 0

    def test_unserializable_payload_leaves_no_row_or_file(self, audit_store: AuditStore) -> None:
        with pytest.raises(AuditStorageError):
            audit_store.insert_with_artifact(make_audit(), {"bad": object()})
        assert audit_store.count() == 0
        assert list(audit_store.results_path.iterdir()) == []

    def test_failure_after_write_removes_report(self, audit_store: AuditStore) -> None:
        with patch.object(AuditStore, "_to_record", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                audit_store.insert_with_artifact(make_audit(), {"a": 1})
        assert audit_store.count() == 0
        assert list(audit_store.results_path.iterdir()) == []

    def test_ids_continue_after_rollback(self, audit_store: AuditStore) -> None:
        first = audit_store.insert(make_audit())
        with pytest.raises(AuditStorageError):
            audit_store.insert_with_artifact(make_audit(), {"bad": object()})
        second = audit_store.insert(make_audit())
        assert second.id > first.id
        assert audit_store.count() == 2


class TestStorageFailures:
    def test_database_errors_are_wrapped(self, audit_store: AuditStore) -> None:
        with audit_store._session() as session:
            session.execute(text("DROP TABLE audits"))
        with pytest.raises(AuditStorageError) as exc_info:
            audit_store.insert(make_audit())
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    def test_unserializable_payload_raises_storage_error(self, audit_store: AuditStore) -> None:
        with pytest.raises(AuditStorageError, match="Could not write raw result"):
            audit_store.save_raw_result(1, {"bad": object()})

    def test_count_by_url(self, audit_store: AuditStore) -> None:
        audit_store.insert(make_audit())
        audit_store.insert(make_audit(url="https://other.example.com"))
        assert audit_store.count() == 2
        assert audit_store.count(URL) == 1
