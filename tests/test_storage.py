"""Tests for the JSON-based audit storage layer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from site_audit_workflow.exceptions import AuditNotFoundError, StaleStageError
from site_audit_workflow.models import (
    Audit,
    ComplianceJob,
    InventoryUpload,
    Thresholds,
    TrailEvent,
    WorkflowStage,
)
from site_audit_workflow.storage import AuditStorage, FileJobStore, InMemoryJobStore


class TestAuditStorage:
    def test_creates_directories(self, tmp_path: Path) -> None:
        AuditStorage(str(tmp_path / "new-storage"))
        assert (tmp_path / "new-storage" / "audits").is_dir()
        assert (tmp_path / "new-storage" / "uploads").is_dir()
        assert (tmp_path / "new-storage" / "trail").is_dir()

    def test_save_and_load_audit(self, audit_storage: AuditStorage) -> None:
        audit = Audit(code="AUD-1", provider_id="prov-1", thresholds=Thresholds(min_ram_gb=8))
        aid = audit_storage.save_audit(audit)
        loaded = audit_storage.load_audit(aid)
        assert loaded.id == audit.id
        assert loaded.stage is WorkflowStage.CONFIGURATION
        assert loaded.thresholds.min_ram_gb == 8

    def test_load_nonexistent_raises(self, audit_storage: AuditStorage) -> None:
        with pytest.raises(AuditNotFoundError):
            audit_storage.load_audit("nonexistent-id")

    def test_list_audits_empty(self, audit_storage: AuditStorage) -> None:
        assert audit_storage.list_audits() == []

    def test_list_audits_with_stage_filter(self, audit_storage: AuditStorage) -> None:
        audit_storage.save_audit(Audit(code="A"))
        audit_storage.save_audit(Audit(code="B"))
        audit_storage.save_audit(Audit(code="C", stage=WorkflowStage.INVENTORY_UPLOAD))
        assert len(audit_storage.list_audits()) == 3
        at_four = audit_storage.list_audits(stage=4)
        assert [a["code"] for a in at_four] == ["C"]
        assert at_four[0]["state"] == "InventoryUpload"

    def test_list_audits_limit(self, audit_storage: AuditStorage) -> None:
        for i in range(5):
            audit_storage.save_audit(Audit(code=f"A{i}"))
        assert len(audit_storage.list_audits(limit=2)) == 2

    def test_list_skips_corrupt_files(self, audit_storage: AuditStorage) -> None:
        audit_storage.save_audit(Audit(code="A"))
        (audit_storage.audits_path / "broken.json").write_text("{not json")
        assert len(audit_storage.list_audits()) == 1


class TestCompareAndSwap:
    def test_matching_stage_saves(self, audit_storage: AuditStorage) -> None:
        audit = Audit(code="A")
        audit_storage.save_audit(audit)
        moved = audit.model_copy(update={"stage": WorkflowStage.NOTIFICATION})
        audit_storage.save_audit(moved, expected_stage=1)
        assert audit_storage.load_audit(audit.id).stage == 2

    def test_stale_stage_rejected(self, audit_storage: AuditStorage) -> None:
        audit = Audit(code="A", stage=WorkflowStage.NOTIFICATION)
        audit_storage.save_audit(audit)
        with pytest.raises(StaleStageError) as exc_info:
            audit_storage.save_audit(audit.model_copy(update={"stage": WorkflowStage(2)}), expected_stage=1)
        assert exc_info.value.expected_stage == 1
        assert exc_info.value.actual_stage == 2

    def test_new_audit_ignores_expected_stage(self, audit_storage: AuditStorage) -> None:
        audit = Audit(code="A")
        audit_storage.save_audit(audit, expected_stage=3)
        assert audit_storage.load_audit(audit.id).code == "A"


class TestInventoryUploads:
    def test_round_trip(self, audit_storage: AuditStorage) -> None:
        upload = InventoryUpload(audit_id="a1", filename="inv.xlsx", content_hash="abc", validated=True)
        audit_storage.save_inventory_upload(upload, b"content")
        assert audit_storage.load_inventory_upload("a1").filename == "inv.xlsx"
        assert audit_storage.load_inventory_content("a1") == b"content"

    def test_latest_upload_replaces_previous(self, audit_storage: AuditStorage) -> None:
        audit_storage.save_inventory_upload(InventoryUpload(audit_id="a1", filename="v1.xlsx", content_hash="1"), b"1")
        audit_storage.save_inventory_upload(InventoryUpload(audit_id="a1", filename="v2.xlsx", content_hash="2"), b"2")
        assert audit_storage.load_inventory_upload("a1").filename == "v2.xlsx"
        assert audit_storage.load_inventory_content("a1") == b"2"

    def test_missing(self, audit_storage: AuditStorage) -> None:
        assert audit_storage.load_inventory_upload("none") is None
        with pytest.raises(FileNotFoundError):
            audit_storage.load_inventory_content("none")


class TestTrail:
    def test_append_and_list(self, audit_storage: AuditStorage) -> None:
        audit_storage.append_trail_event(TrailEvent(audit_id="a1", type="audit_created"))
        audit_storage.append_trail_event(TrailEvent(audit_id="a1", type="stage_advanced", actor="ana"))
        audit_storage.append_trail_event(TrailEvent(audit_id="a2", type="audit_created"))
        events = audit_storage.list_trail_events("a1")
        assert [e.type for e in events] == ["audit_created", "stage_advanced"]
        assert events[1].actor == "ana"

    def test_limit_keeps_most_recent(self, audit_storage: AuditStorage) -> None:
        for _ in range(3):
            audit_storage.append_trail_event(TrailEvent(audit_id="a1", type="audit_configured"))
        audit_storage.append_trail_event(TrailEvent(audit_id="a1", type="stage_advanced"))
        events = audit_storage.list_trail_events("a1", limit=2)
        assert [e.type for e in events] == ["audit_configured", "stage_advanced"]

    def test_unknown_audit(self, audit_storage: AuditStorage) -> None:
        assert audit_storage.list_trail_events("none") == []


class TestJobStores:
    @pytest.fixture(params=["memory", "file"])
    def store(self, request: pytest.FixtureRequest, tmp_path: Path):
        if request.param == "memory":
            return InMemoryJobStore()
        return FileJobStore(str(tmp_path))

    def test_put_get(self, store) -> None:
        job = ComplianceJob(audit_id="a1", source_hash="h")
        store.put(job)
        assert store.get(job.id).source_hash == "h"
        assert store.get("missing") is None

    def test_put_replaces(self, store) -> None:
        job = ComplianceJob(audit_id="a1", source_hash="h")
        store.put(job)
        store.put(job.model_copy(update={"status": "completed"}))
        assert store.get(job.id).status == "completed"
        assert len(store.list()) == 1

    def test_list_filters_by_audit(self, store) -> None:
        base = datetime(2024, 5, 10, tzinfo=UTC)
        store.put(ComplianceJob(audit_id="a1", source_hash="3", created_at=base + timedelta(minutes=2)))
        store.put(ComplianceJob(audit_id="a2", source_hash="2", created_at=base + timedelta(minutes=1)))
        store.put(ComplianceJob(audit_id="a1", source_hash="1", created_at=base))
        assert [j.source_hash for j in store.list("a1")] == ["1", "3"]
        assert len(store.list()) == 3

    def test_file_store_persists(self, tmp_path: Path) -> None:
        job = ComplianceJob(audit_id="a1", source_hash="h")
        FileJobStore(str(tmp_path)).put(job)
        assert FileJobStore(str(tmp_path)).get(job.id) is not None
