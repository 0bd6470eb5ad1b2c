"""FastMCP server entry point for the site audit workflow.

Registers the MCP tools and starts the server. Workflow state is kept in
local JSON storage; document sections, evaluations, notifications, AI
scoring and report rendering are delegated to the audit portal API.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from fastmcp import FastMCP

from site_audit_workflow.actions import ActionExecutor
from site_audit_workflow.client import PortalClient
from site_audit_workflow.collaborators import (
    PortalAIDocumentScorer,
    PortalDocumentStore,
    PortalEvaluationStore,
    PortalNotificationSender,
    PortalReportGenerator,
    StorageTrailRecorder,
)
from site_audit_workflow.config import WorkflowConfig, get_config
from site_audit_workflow.engine import WorkflowOrchestrator
from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.exceptions import AuditError
from site_audit_workflow.guards import StageGuardRegistry
from site_audit_workflow.storage import AuditStorage, FileJobStore
from site_audit_workflow.tools import history, inventory, workflow
from site_audit_workflow.tools.compliance import list_compliance_rules
from site_audit_workflow.tools.reports import generate_compliance_report

logger = logging.getLogger(__name__)

mcp = FastMCP("site-audit-workflow")


class Services(NamedTuple):
    config: WorkflowConfig
    client: PortalClient
    storage: AuditStorage
    trail: StorageTrailRecorder
    pipeline: CompliancePipeline
    orchestrator: WorkflowOrchestrator


def build_services(config: WorkflowConfig) -> Services:
    """Wire storage, the portal collaborators, the pipeline and the orchestrator."""
    client = PortalClient(config)
    storage = AuditStorage(config.audit_storage_path)
    trail = StorageTrailRecorder(storage)
    pipeline = CompliancePipeline(
        storage,
        FileJobStore(config.audit_storage_path),
        trail=trail,
        workers=config.ingestion_workers,
        row_workers=config.ingestion_row_workers,
    )
    guards = StageGuardRegistry(
        storage,
        pipeline,
        PortalDocumentStore(client, config.mandatory_section_list),
        PortalEvaluationStore(client),
        mandatory_sections=config.mandatory_section_list,
    )
    executor = ActionExecutor(
        storage,
        pipeline,
        PortalNotificationSender(client),
        PortalAIDocumentScorer(client),
        PortalReportGenerator(client),
        timeout_seconds=config.action_timeout_seconds,
    )
    orchestrator = WorkflowOrchestrator(storage, guards, executor, trail=trail)
    return Services(config, client, storage, trail, pipeline, orchestrator)


# Initialized on first tool call
_services: Services | None = None


def _get_dependencies() -> Services:
    """Lazily build and return the shared services."""
    global _services  # noqa: PLW0603
    if _services is None:
        _services = build_services(get_config())
    return _services


def _error(exc: AuditError) -> dict:
    return {"status": "error", "error_type": type(exc).__name__, "message": str(exc), "details": exc.details}


def _call(fn, *args, **kwargs) -> dict:  # noqa: ANN001
    try:
        return fn(*args, **kwargs)
    except AuditError as exc:
        logger.warning("%s failed: %s", fn.__name__, exc)
        return _error(exc)


@mcp.tool()
def create_audit(
    code: str = "",
    provider_id: str | None = None,
    auditor_id: str | None = None,
    scheduled_date: str | None = None,
    deadline: str | None = None,
    min_quality_score: int | None = None,
    actor: str | None = None,
) -> dict:
    """Open a new audit at the Configuration stage with the default compliance thresholds."""
    if not code:
        return {"status": "error", "message": "code is required"}
    services = _get_dependencies()
    return _call(
        workflow.create_audit, services.orchestrator, code,
        provider_id=provider_id, auditor_id=auditor_id, scheduled_date=scheduled_date,
        deadline=deadline, min_quality_score=min_quality_score, actor=actor,
    )


@mcp.tool()
def configure_audit(
    audit_id: str = "",
    provider_id: str | None = None,
    auditor_id: str | None = None,
    scheduled_date: str | None = None,
    deadline: str | None = None,
    actor: str | None = None,
) -> dict:
    """Assign provider, auditor and dates to an audit still in Configuration."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(
        workflow.configure_audit, services.orchestrator, audit_id,
        provider_id=provider_id, auditor_id=auditor_id, scheduled_date=scheduled_date,
        deadline=deadline, actor=actor,
    )


@mcp.tool()
def advance_stage(
    audit_id: str = "",
    expected_stage: int | None = None,
    force: bool = False,
    actor: str | None = None,
) -> dict:
    """Advance an audit to its next workflow stage if the current stage's requirements are met."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(
        workflow.advance_audit, services.orchestrator, audit_id,
        expected_stage=expected_stage, force=force, actor=actor,
    )


@mcp.tool()
def workflow_status(audit_id: str = "") -> dict:
    """Show an audit's stage, whether it can advance and what is still required."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(workflow.workflow_status, services.orchestrator, audit_id)


@mcp.tool()
def list_audits(stage: int | None = None, limit: int = 20) -> dict:
    """List stored audits, optionally filtered by stage number."""
    services = _get_dependencies()
    return _call(workflow.list_audits, services.storage, stage=stage, limit=limit)


@mcp.tool()
def upload_inventory(
    audit_id: str = "",
    filename: str | None = None,
    content_base64: str | None = None,
    file_path: str | None = None,
    actor: str | None = None,
) -> dict:
    """Upload and validate an audit's inventory spreadsheet (.xlsx or .csv)."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(
        inventory.upload_inventory, services.pipeline, audit_id,
        filename=filename, content_base64=content_base64, file_path=file_path, actor=actor,
    )


@mcp.tool()
def submit_inventory(
    audit_id: str = "",
    filename: str | None = None,
    content_base64: str | None = None,
    file_path: str | None = None,
    strict: bool = False,
    actor: str | None = None,
) -> dict:
    """Start a compliance ingestion job for an inventory spreadsheet and return its job id."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(
        inventory.submit_inventory, services.pipeline, audit_id,
        filename=filename, content_base64=content_base64, file_path=file_path, strict=strict, actor=actor,
    )


@mcp.tool()
def job_status(job_id: str = "", include_records: bool = False) -> dict:
    """Get the status and statistics of a compliance ingestion job."""
    if not job_id:
        return {"status": "error", "message": "job_id is required"}
    services = _get_dependencies()
    return _call(inventory.job_status, services.pipeline, job_id, include_records=include_records)


@mcp.tool()
def cancel_job(job_id: str = "", actor: str | None = None) -> dict:
    """Cancel a running compliance ingestion job, discarding its records."""
    if not job_id:
        return {"status": "error", "message": "job_id is required"}
    services = _get_dependencies()
    return _call(inventory.cancel_job, services.pipeline, job_id, actor=actor)


@mcp.tool()
def list_jobs(audit_id: str | None = None, limit: int = 10) -> dict:
    """List recent compliance jobs, optionally for one audit."""
    services = _get_dependencies()
    return _call(history.list_jobs, services.pipeline, audit_id=audit_id, limit=limit)


@mcp.tool()
def compare_jobs(job_id_1: str = "", job_id_2: str = "") -> dict:
    """Compare two compliance jobs showing score deltas and failure changes."""
    if not job_id_1 or not job_id_2:
        return {"status": "error", "message": "Both job_id_1 and job_id_2 are required"}
    services = _get_dependencies()
    return _call(history.compare_jobs, services.pipeline, job_id_1, job_id_2)


@mcp.tool()
def audit_trail(audit_id: str = "", limit: int = 50) -> dict:
    """Show the recorded trail of an audit's transitions and ingestion events."""
    if not audit_id:
        return {"status": "error", "message": "audit_id is required"}
    services = _get_dependencies()
    return _call(history.audit_trail, services.trail, audit_id, limit=limit)


@mcp.tool()
def compliance_rules(audit_id: str | None = None, component: str | None = None) -> dict:
    """List the asset compliance rules with the thresholds of an audit or the defaults."""
    storage = _get_dependencies().storage if audit_id else None
    return _call(list_compliance_rules, storage, audit_id=audit_id, component=component)


@mcp.tool()
def compliance_report(job_id: str | None = None, audit_id: str | None = None) -> dict:
    """Generate a structured compliance report for a job or an audit's latest job."""
    if not job_id and not audit_id:
        return {"status": "error", "message": "job_id or audit_id is required"}
    services = _get_dependencies()
    return _call(generate_compliance_report, services.pipeline, job_id=job_id, audit_id=audit_id)


@mcp.tool()
def health_check() -> dict:
    """Verify the workflow server is running and can reach the audit portal."""
    try:
        services = _get_dependencies()
        services.client.ping()
        return {"status": "healthy", "portal": services.config.portal_api_url}
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}


def main() -> None:
    """Entry point for the site-audit-workflow MCP server."""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting site-audit-workflow MCP server")
    mcp.run()
