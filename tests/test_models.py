"""Tests for the pydantic data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from site_audit_workflow.models import (
    UNKNOWN,
    AIScore,
    AssetRecord,
    Audit,
    ComplianceJob,
    StageGuardResult,
    Thresholds,
    TrailEvent,
    WorkflowStage,
)


class TestWorkflowStage:
    def test_values_are_stage_numbers(self) -> None:
        assert [int(s) for s in WorkflowStage] == list(range(1, 9))

    def test_state_names(self) -> None:
        assert WorkflowStage.CONFIGURATION.state_name == "Configuration"
        assert WorkflowStage.ONSITE_PRESENTATION_UPLOAD.state_name == "OnsitePresentationUpload"
        assert WorkflowStage.COMPLETED.state_name == "Completed"

    def test_next(self) -> None:
        assert WorkflowStage.INVENTORY_UPLOAD.next is WorkflowStage.AUTOMATIC_VALIDATION
        assert WorkflowStage.COMPLETED.next is None

    def test_terminal_and_automatic(self) -> None:
        assert WorkflowStage.COMPLETED.is_terminal
        assert not WorkflowStage.AUDITOR_REVIEW.is_terminal
        automatic = {s for s in WorkflowStage if s.is_automatic}
        assert automatic == {
            WorkflowStage.NOTIFICATION,
            WorkflowStage.AUTOMATIC_VALIDATION,
            WorkflowStage.RESULT_NOTIFICATION,
            WorkflowStage.COMPLETED,
        }

    def test_from_state_name(self) -> None:
        assert WorkflowStage.from_state_name("AuditorReview") is WorkflowStage.AUDITOR_REVIEW
        with pytest.raises(ValueError):
            WorkflowStage.from_state_name("Archived")


class TestAudit:
    def test_defaults(self) -> None:
        audit = Audit(code="AUD-1")
        assert audit.stage is WorkflowStage.CONFIGURATION
        assert audit.state == "Configuration"
        assert audit.progress == {}
        assert audit.archived is False
        assert audit.id

    def test_state_follows_stage(self) -> None:
        audit = Audit(code="AUD-1", stage=5)
        assert audit.stage is WorkflowStage.AUTOMATIC_VALIDATION
        assert audit.state == "AutomaticValidation"

    def test_json_roundtrip_keeps_stage(self) -> None:
        audit = Audit(code="AUD-1", stage=WorkflowStage.AUDITOR_REVIEW, thresholds=Thresholds())
        loaded = Audit.model_validate_json(audit.model_dump_json())
        assert loaded.stage is WorkflowStage.AUDITOR_REVIEW
        assert loaded.thresholds == audit.thresholds

    def test_dump_includes_state(self) -> None:
        data = Audit(code="AUD-1", stage=2).model_dump(mode="json")
        assert data["stage"] == 2
        assert data["state"] == "Notification"

    def test_invalid_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Audit(code="AUD-1", stage=9)


class TestThresholds:
    def test_defaults(self) -> None:
        t = Thresholds()
        assert t.min_ram_gb == 16
        assert t.min_storage_gb == 500
        assert t.allowed_storage_types == ("SSD", "NVMe")
        assert t.required_os == "Windows 11"
        assert t.link_minimums["Remoto"].download_mbps == 15
        assert t.link_minimums["Remoto"].upload_mbps == 6
        assert t.min_quality_score == 0

    def test_default_cpu_rules(self) -> None:
        rules = {(r.brand, r.model): r for r in Thresholds().cpu_rules}
        assert rules[("Intel", "Core i5")].min_generation == 8
        assert rules[("Intel", "Core i5")].min_speed_ghz == 3.0
        assert rules[("AMD", "Ryzen 5")].min_speed_ghz == 3.7
        assert rules[("Intel", "Core i7")].min_speed_ghz == 0

    def test_frozen(self) -> None:
        t = Thresholds()
        with pytest.raises(ValidationError):
            t.min_ram_gb = 8

    def test_quality_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Thresholds(min_quality_score=101)


class TestAssetRecord:
    def test_defaults_unknown(self) -> None:
        record = AssetRecord(row_number=1)
        assert record.cpu_brand == UNKNOWN
        assert record.ram_gb == 0
        assert record.overall_compliant is False

    def test_frozen(self) -> None:
        record = AssetRecord(row_number=1)
        with pytest.raises(ValidationError):
            record.ram_gb = 32


class TestSmallModels:
    def test_guard_result_helpers(self) -> None:
        assert StageGuardResult.allow().allowed
        denied = StageGuardResult.deny("nope", ["do it"])
        assert not denied.allowed
        assert denied.reason == "nope"
        assert denied.required_actions == ["do it"]

    def test_job_defaults(self) -> None:
        job = ComplianceJob(audit_id="a", source_hash="h")
        assert job.status == "running"
        assert job.records == []
        assert job.stats.total_rows == 0

    def test_ai_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            AIScore(score=120)

    def test_trail_event_type_checked(self) -> None:
        with pytest.raises(ValidationError):
            TrailEvent(audit_id="a", type="unknown_event")
