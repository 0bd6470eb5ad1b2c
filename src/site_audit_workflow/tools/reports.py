"""Compliance report MCP tool.

Builds a structured report from a compliance job with an executive summary,
per-component pass rates, the most common failure reasons and
recommendations.
"""

from __future__ import annotations

from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.exceptions import JobNotFoundError
from site_audit_workflow.models import ComplianceJob

TOP_FAILURES = 10


def _grade(score: int) -> tuple[str, str]:
    if score >= 90:
        return "A", "low"
    if score >= 75:
        return "B", "moderate"
    if score >= 60:
        return "C", "elevated"
    if score >= 40:
        return "D", "high"
    return "F", "critical"


def _build_report(job: ComplianceJob) -> dict:
    """Build a structured report dict from a ComplianceJob."""
    stats = job.stats
    grade, risk_level = _grade(stats.mean_quality_score)

    weakest = sorted(stats.component_pass_rate.items(), key=lambda item: item[1])
    top_failures = sorted(stats.failure_reasons.items(), key=lambda item: (-item[1], item[0]))[:TOP_FAILURES]

    recommendations: list[str] = []
    for component, rate in weakest:
        if rate < 50:
            recommendations.append(f"Replace or upgrade {component} on most assets ({rate:g}% pass)")
        elif rate < 100:
            recommendations.append(f"Remediate {component} on the non-compliant assets ({rate:g}% pass)")
    if stats.unresolved_fields:
        recommendations.append(f"Add the missing inventory columns: {', '.join(stats.unresolved_fields)}")
    if not recommendations:
        recommendations.append("All assets comply; keep the inventory current")

    non_compliant = [
        {"row_number": r.row_number, "hostname": r.hostname, "failure_reasons": r.failure_reasons}
        for r in job.records
        if not r.overall_compliant
    ]

    return {
        "job_id": job.id,
        "audit_id": job.audit_id,
        "status": job.status,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "executive_summary": {
            "quality_score": stats.mean_quality_score,
            "grade": grade,
            "risk_level": risk_level,
            "total_assets": stats.processed_rows,
            "compliant_assets": stats.compliant_rows,
            "compliance_rate": stats.compliance_rate,
        },
        "component_pass_rate": stats.component_pass_rate,
        "top_failure_reasons": [{"reason": reason, "count": count} for reason, count in top_failures],
        "non_compliant_assets": non_compliant,
        "recommendations": recommendations,
    }


def generate_compliance_report(
    pipeline: CompliancePipeline,
    job_id: str | None = None,
    audit_id: str | None = None,
) -> dict:
    """Generate a compliance report for a job, or for an audit's latest job.

    Args:
        pipeline: Ingestion pipeline.
        job_id: Specific job to report on.
        audit_id: Report on this audit's latest job when job_id is omitted.

    Returns:
        Structured report dict.

    Raises:
        JobNotFoundError: If no matching job exists.
    """
    if job_id:
        job = pipeline.get_job(job_id)
    else:
        job = pipeline.latest_job(audit_id) if audit_id else None
        if job is None:
            raise JobNotFoundError(f"No compliance job found for audit {audit_id}", details={"audit_id": audit_id})
    return _build_report(job)
