"""Audit lifecycle MCP tools: create, configure, advance and inspect audits."""

from __future__ import annotations

from datetime import date

from site_audit_workflow.engine import WorkflowOrchestrator
from site_audit_workflow.exceptions import WorkflowStateError
from site_audit_workflow.models import Thresholds
from site_audit_workflow.storage import AuditStorage


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise WorkflowStateError(
            f"Invalid date '{value}', expected YYYY-MM-DD",
            details={"value": value},
        ) from exc


def create_audit(
    orchestrator: WorkflowOrchestrator,
    code: str,
    provider_id: str | None = None,
    auditor_id: str | None = None,
    scheduled_date: str | None = None,
    deadline: str | None = None,
    min_quality_score: int | None = None,
    actor: str | None = None,
) -> dict:
    """Open a new audit at the Configuration stage.

    Args:
        orchestrator: Workflow orchestrator.
        code: Human-readable audit code.
        provider_id: Audited provider.
        auditor_id: Assigned auditor.
        scheduled_date: ISO date of the site visit.
        deadline: ISO date by which the audit must close.
        min_quality_score: Minimum inventory quality score to pass automatic
            validation; the default thresholds are used for everything else.
        actor: Who created the audit.

    Returns:
        The created audit as a dict.
    """
    thresholds = Thresholds() if min_quality_score is None else Thresholds(min_quality_score=min_quality_score)
    audit = orchestrator.create_audit(
        code,
        provider_id=provider_id,
        auditor_id=auditor_id,
        scheduled_date=_parse_date(scheduled_date),
        deadline=_parse_date(deadline),
        thresholds=thresholds,
        actor=actor,
    )
    return audit.model_dump(mode="json")


def configure_audit(
    orchestrator: WorkflowOrchestrator,
    audit_id: str,
    provider_id: str | None = None,
    auditor_id: str | None = None,
    scheduled_date: str | None = None,
    deadline: str | None = None,
    actor: str | None = None,
) -> dict:
    audit = orchestrator.configure_audit(
        audit_id,
        provider_id=provider_id,
        auditor_id=auditor_id,
        scheduled_date=_parse_date(scheduled_date),
        deadline=_parse_date(deadline),
        actor=actor,
    )
    return audit.model_dump(mode="json")


def advance_audit(
    orchestrator: WorkflowOrchestrator,
    audit_id: str,
    expected_stage: int | None = None,
    force: bool = False,
    actor: str | None = None,
) -> dict:
    """Request a stage transition and report the outcome."""
    result = orchestrator.advance_stage(audit_id, expected_stage=expected_stage, force=force, actor=actor)
    return result.model_dump(mode="json")


def workflow_status(orchestrator: WorkflowOrchestrator, audit_id: str) -> dict:
    return orchestrator.get_workflow_status(audit_id).model_dump(mode="json")


def list_audits(storage: AuditStorage, stage: int | None = None, limit: int = 20) -> dict:
    """List stored audits, optionally only those at one stage."""
    audits = storage.list_audits(stage=stage, limit=limit)
    return {
        "audits": audits,
        "total_returned": len(audits),
        "filter": {"stage": stage},
    }
