"""Compliance evaluation of normalized asset records against an audit's thresholds.

Five component predicates (CPU, RAM, storage, OS, network) each return a
pass/fail with a human-readable reason. Evaluation never raises: an asset
with unknown fields fails the affected predicates with "data missing".
"""

from __future__ import annotations

from dataclasses import dataclass

from site_audit_workflow.models import COMPONENTS, UNKNOWN, AssetRecord, Thresholds
from site_audit_workflow.scoring import QualityScorer

DATA_MISSING = "data missing"


@dataclass(frozen=True)
class ComponentResult:
    passed: bool
    reason: str = ""

    @classmethod
    def ok(cls) -> ComponentResult:
        return cls(True)

    @classmethod
    def fail(cls, reason: str) -> ComponentResult:
        return cls(False, reason)


def _fmt(value: float) -> str:
    return f"{value:g}"


def check_cpu(record: AssetRecord, thresholds: Thresholds) -> ComponentResult:
    if record.cpu_brand == UNKNOWN and record.cpu_model == UNKNOWN and not record.cpu_speed_ghz:
        return ComponentResult.fail(DATA_MISSING)

    rule = next(
        (
            r for r in thresholds.cpu_rules
            if r.brand.lower() == record.cpu_brand.lower() and r.model.lower() == record.cpu_model.lower()
        ),
        None,
    )
    if rule is None:
        return ComponentResult.fail(f"Processor not approved: {record.cpu_brand} {record.cpu_model}")

    if rule.min_generation is not None and (record.cpu_generation or 0) < rule.min_generation:
        found = record.cpu_generation if record.cpu_generation is not None else "unknown"
        return ComponentResult.fail(
            f"Processor generation insufficient: {found} (requires generation {rule.min_generation} or newer)"
        )

    if record.cpu_speed_ghz < rule.min_speed_ghz:
        found = f"{_fmt(record.cpu_speed_ghz)} GHz" if record.cpu_speed_ghz else "unknown"
        return ComponentResult.fail(
            f"Clock speed insufficient: {found} (requires {_fmt(rule.min_speed_ghz)} GHz or more)"
        )
    return ComponentResult.ok()


def check_ram(record: AssetRecord, thresholds: Thresholds) -> ComponentResult:
    if not record.ram_gb:
        return ComponentResult.fail(DATA_MISSING)
    if record.ram_gb < thresholds.min_ram_gb:
        return ComponentResult.fail(
            f"Memory insufficient: {_fmt(record.ram_gb)} GB (requires {_fmt(thresholds.min_ram_gb)} GB or more)"
        )
    return ComponentResult.ok()


def check_storage(record: AssetRecord, thresholds: Thresholds) -> ComponentResult:
    if record.storage_type == UNKNOWN and not record.storage_gb:
        return ComponentResult.fail(DATA_MISSING)

    allowed = {t.lower() for t in thresholds.allowed_storage_types}
    if record.storage_type.lower() not in allowed:
        return ComponentResult.fail(
            f"Storage type not allowed: {record.storage_type} "
            f"(requires {' or '.join(thresholds.allowed_storage_types)})"
        )
    if record.storage_gb < thresholds.min_storage_gb:
        found = f"{_fmt(record.storage_gb)} GB" if record.storage_gb else "unknown"
        return ComponentResult.fail(
            f"Storage capacity insufficient: {found} (requires {_fmt(thresholds.min_storage_gb)} GB or more)"
        )
    return ComponentResult.ok()


def check_os(record: AssetRecord, thresholds: Thresholds) -> ComponentResult:
    if record.os_name == UNKNOWN:
        return ComponentResult.fail(DATA_MISSING)
    if record.os_name.lower() != thresholds.required_os.lower():
        return ComponentResult.fail(f"Operating system {record.os_name} does not meet required {thresholds.required_os}")
    return ComponentResult.ok()


def check_network(record: AssetRecord, thresholds: Thresholds) -> ComponentResult:
    if record.attention_type == UNKNOWN:
        return ComponentResult.fail(DATA_MISSING)

    minimum = thresholds.link_minimums.get(record.attention_type)
    if minimum is None or (not minimum.download_mbps and not minimum.upload_mbps):
        return ComponentResult.ok()

    if not record.download_mbps and not record.upload_mbps:
        return ComponentResult.fail(DATA_MISSING)
    if record.download_mbps < minimum.download_mbps or record.upload_mbps < minimum.upload_mbps:
        return ComponentResult.fail(
            f"Link speed insufficient for {record.attention_type}: "
            f"{_fmt(record.download_mbps)}/{_fmt(record.upload_mbps)} Mbps "
            f"(requires {_fmt(minimum.download_mbps)}/{_fmt(minimum.upload_mbps)} Mbps)"
        )
    return ComponentResult.ok()


COMPONENT_CHECKS = {
    "cpu": check_cpu,
    "ram": check_ram,
    "storage": check_storage,
    "os": check_os,
    "network": check_network,
}


class ComplianceEvaluator:
    """Applies the component predicates and scores the result."""

    def __init__(self, scorer: QualityScorer | None = None) -> None:
        self.scorer = scorer or QualityScorer()

    def evaluate(self, record: AssetRecord, thresholds: Thresholds) -> AssetRecord:
        """Evaluate one normalized record.

        Args:
            record: A normalized AssetRecord (compliance fields not yet set).
            thresholds: The audit's threshold snapshot.

        Returns:
            A new AssetRecord carrying component compliance, failure reasons,
            overall compliance and quality score.
        """
        compliance: dict[str, bool] = {}
        reasons: dict[str, str] = {}
        for component in COMPONENTS:
            result = COMPONENT_CHECKS[component](record, thresholds)
            compliance[component] = result.passed
            if not result.passed:
                reasons[component] = result.reason

        return record.model_copy(
            update={
                "component_compliance": compliance,
                "failure_reasons": reasons,
                "overall_compliant": all(compliance.values()),
                "quality_score": self.scorer.score_asset(compliance),
            }
        )
