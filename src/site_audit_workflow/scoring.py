"""Quality scoring for evaluated inventory assets and ingestion jobs.

Each asset starts at 100 and loses a fixed penalty per failing component.
A job's score is the rounded mean of the scores of the records it keeps.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from site_audit_workflow.models import COMPONENTS, AssetRecord, JobStats


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.floor(value + 0.5))


class QualityScorer:
    """Calculates per-asset and per-job quality scores."""

    PENALTY_PER_COMPONENT: int = 20
    MAX_SCORE: int = 100

    def score_asset(self, component_compliance: Mapping[str, bool]) -> int:
        """Score one asset from its component pass/fail map.

        Components absent from the map count as failing.

        Args:
            component_compliance: Mapping of component name to pass/fail.

        Returns:
            Integer score between 0 and 100.
        """
        failing = sum(1 for c in COMPONENTS if not component_compliance.get(c, False))
        return max(0, self.MAX_SCORE - self.PENALTY_PER_COMPONENT * failing)

    def aggregate_score(self, records: Iterable[AssetRecord]) -> int:
        """Mean quality score of the given records, rounded; 0 when empty."""
        scores = [r.quality_score for r in records]
        if not scores:
            return 0
        return round_half_up(sum(scores) / len(scores))

    def calculate_stats(
        self,
        evaluated: list[AssetRecord],
        kept: list[AssetRecord],
        total_rows: int,
    ) -> JobStats:
        """Build job statistics.

        Rates are computed over every evaluated row; the mean quality score
        only over the records the job keeps, so strict mode reports the
        score of what it persisted.

        Args:
            evaluated: Every record produced by the sweep.
            kept: The records persisted on the job.
            total_rows: Number of data rows read from the file.

        Returns:
            JobStats without column-mapping details.
        """
        processed = len(evaluated)
        compliant = sum(1 for r in evaluated if r.overall_compliant)

        component_pass_rate: dict[str, float] = {}
        for component in COMPONENTS:
            passed = sum(1 for r in evaluated if r.component_compliance.get(component, False))
            component_pass_rate[component] = round(passed / processed * 100.0, 2) if processed else 0.0

        attention: dict[str, int] = {}
        cpu_brands: dict[str, int] = {}
        storage_types: dict[str, int] = {}
        reasons: dict[str, int] = {}
        for record in evaluated:
            attention[record.attention_type] = attention.get(record.attention_type, 0) + 1
            cpu_brands[record.cpu_brand] = cpu_brands.get(record.cpu_brand, 0) + 1
            storage_types[record.storage_type] = storage_types.get(record.storage_type, 0) + 1
            for reason in record.failure_reasons.values():
                reasons[reason] = reasons.get(reason, 0) + 1

        return JobStats(
            total_rows=total_rows,
            processed_rows=processed,
            persisted_rows=len(kept),
            rejected_rows=processed - len(kept),
            compliant_rows=compliant,
            compliance_rate=round(compliant / processed * 100.0, 2) if processed else 0.0,
            component_pass_rate=component_pass_rate,
            mean_quality_score=self.aggregate_score(kept),
            attention_distribution=attention,
            cpu_brand_distribution=cpu_brands,
            storage_type_distribution=storage_types,
            failure_reasons=reasons,
        )
