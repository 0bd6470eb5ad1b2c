"""Job history, job comparison and audit trail MCP tools.

Provides tools to browse the compliance jobs of an audit, compare two jobs
for trend analysis (score deltas, new/resolved failure reasons) and read the
audit trail.
"""

from __future__ import annotations

from site_audit_workflow.collaborators import StorageTrailRecorder
from site_audit_workflow.etl.pipeline import CompliancePipeline


def list_jobs(pipeline: CompliancePipeline, audit_id: str | None = None, limit: int = 10) -> dict:
    """List the most recent compliance jobs, newest first.

    Args:
        pipeline: Ingestion pipeline.
        audit_id: Optional filter by audit.
        limit: Maximum number of jobs to return.

    Returns:
        Dict with job summaries.
    """
    jobs = list(reversed(pipeline.list_jobs(audit_id)))[:limit]
    return {
        "jobs": [
            {
                "job_id": job.id,
                "audit_id": job.audit_id,
                "filename": job.filename,
                "status": job.status,
                "strict": job.strict,
                "mean_quality_score": job.stats.mean_quality_score,
                "compliance_rate": job.stats.compliance_rate,
                "created_at": job.created_at.isoformat(),
            }
            for job in jobs
        ],
        "total_returned": len(jobs),
        "filter": audit_id,
    }


def compare_jobs(pipeline: CompliancePipeline, job_id_1: str, job_id_2: str) -> dict:
    """Compare two compliance jobs.

    Args:
        pipeline: Ingestion pipeline.
        job_id_1: The older job ID.
        job_id_2: The newer job ID.

    Returns:
        Dict with score and rate deltas and the failure reasons that appeared,
        disappeared or persisted between the two jobs.
    """
    job_1 = pipeline.get_job(job_id_1)
    job_2 = pipeline.get_job(job_id_2)

    score_1 = job_1.stats.mean_quality_score
    score_2 = job_2.stats.mean_quality_score
    score_delta = score_2 - score_1
    rate_delta = round(job_2.stats.compliance_rate - job_1.stats.compliance_rate, 2)

    reasons_1 = set(job_1.stats.failure_reasons)
    reasons_2 = set(job_2.stats.failure_reasons)

    trend = "improving" if score_delta > 0 else "declining" if score_delta < 0 else "stable"

    return {
        "job_id_1": job_id_1,
        "job_id_2": job_id_2,
        "score_1": score_1,
        "score_2": score_2,
        "score_delta": score_delta,
        "compliance_rate_delta": rate_delta,
        "trend": trend,
        "new_failures": sorted(reasons_2 - reasons_1),
        "resolved_failures": sorted(reasons_1 - reasons_2),
        "persistent_failures": sorted(reasons_1 & reasons_2),
        "rows_1": job_1.stats.processed_rows,
        "rows_2": job_2.stats.processed_rows,
    }


def audit_trail(recorder: StorageTrailRecorder, audit_id: str, limit: int = 50) -> dict:
    events = recorder.list_events(audit_id, limit=limit)
    return {
        "audit_id": audit_id,
        "events": [e.model_dump(mode="json") for e in events],
        "total_returned": len(events),
    }
