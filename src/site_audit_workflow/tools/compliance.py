"""Compliance rule catalogue MCP tool.

Lists the per-component compliance rules together with the thresholds that
apply, either an audit's snapshot or the defaults.
"""

from __future__ import annotations

from site_audit_workflow.models import Thresholds
from site_audit_workflow.storage import AuditStorage

# Registry of the component predicates applied to every inventory asset
COMPLIANCE_RULES: list[dict[str, str]] = [
    {
        "name": "cpu",
        "description": "Processor must be an approved family at or above its minimum generation and clock speed",
    },
    {"name": "ram", "description": "Installed memory must reach the minimum in GB"},
    {"name": "storage", "description": "Disk must be an allowed type (SSD/NVMe) with the minimum capacity"},
    {"name": "os", "description": "Operating system must match the required version"},
    {
        "name": "network",
        "description": "Download/upload speeds must reach the minimum for the asset's attention type",
    },
]


def _threshold_view(thresholds: Thresholds, component: str) -> dict:
    if component == "cpu":
        return {"approved": [r.model_dump() for r in thresholds.cpu_rules]}
    if component == "ram":
        return {"min_ram_gb": thresholds.min_ram_gb}
    if component == "storage":
        return {
            "allowed_storage_types": list(thresholds.allowed_storage_types),
            "min_storage_gb": thresholds.min_storage_gb,
        }
    if component == "os":
        return {"required_os": thresholds.required_os}
    return {"link_minimums": {k: v.model_dump() for k, v in thresholds.link_minimums.items()}}


def list_compliance_rules(
    storage: AuditStorage | None = None,
    audit_id: str | None = None,
    component: str | None = None,
) -> dict:
    """List compliance rules with their effective thresholds.

    Args:
        storage: Audit storage, needed only when audit_id is given.
        audit_id: Show the thresholds snapshotted on this audit.
        component: Optional filter by component (cpu, ram, storage, os, network).

    Returns:
        Dict with rules, total count and the quality score gate.
    """
    thresholds = Thresholds()
    if audit_id and storage is not None:
        thresholds = storage.load_audit(audit_id).thresholds or thresholds

    rules = COMPLIANCE_RULES
    if component:
        rules = [r for r in rules if r["name"] == component]

    return {
        "rules": [{**r, "thresholds": _threshold_view(thresholds, r["name"])} for r in rules],
        "total_count": len(rules),
        "min_quality_score": thresholds.min_quality_score,
        "source": audit_id or "defaults",
    }
