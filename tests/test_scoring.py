"""Tests for quality scoring."""

from __future__ import annotations

import pytest

from site_audit_workflow.models import COMPONENTS, AssetRecord
from site_audit_workflow.scoring import QualityScorer, round_half_up


def _record(row: int, failing: int, **kwargs: object) -> AssetRecord:
    compliance = {c: i >= failing for i, c in enumerate(COMPONENTS)}
    return AssetRecord(
        row_number=row,
        component_compliance=compliance,
        overall_compliant=failing == 0,
        quality_score=100 - 20 * failing,
        **kwargs,
    )


class TestRoundHalfUp:
    def test_halves_round_up(self) -> None:
        assert round_half_up(62.5) == 63
        assert round_half_up(0.5) == 1

    def test_regular(self) -> None:
        assert round_half_up(62.4) == 62
        assert round_half_up(100.0) == 100


class TestScoreAsset:
    def setup_method(self) -> None:
        self.scorer = QualityScorer()

    @pytest.mark.parametrize("failing", range(0, 6))
    def test_penalty_per_failing_component(self, failing: int) -> None:
        compliance = {c: i >= failing for i, c in enumerate(COMPONENTS)}
        assert self.scorer.score_asset(compliance) == max(0, 100 - 20 * failing)

    def test_missing_component_counts_as_failing(self) -> None:
        assert self.scorer.score_asset({"cpu": True, "ram": True, "storage": True, "os": True}) == 80

    def test_empty_map_scores_zero(self) -> None:
        assert self.scorer.score_asset({}) == 0


class TestAggregate:
    def setup_method(self) -> None:
        self.scorer = QualityScorer()

    def test_empty_is_zero(self) -> None:
        assert self.scorer.aggregate_score([]) == 0

    def test_rounded_mean(self) -> None:
        records = [_record(1, 0), _record(2, 1), _record(3, 1)]
        # (100 + 80 + 80) / 3 = 86.67
        assert self.scorer.aggregate_score(records) == 87

    def test_half_rounds_up(self) -> None:
        records = [_record(1, 0), _record(2, 0), _record(3, 0), _record(4, 0), _record(5, 0),
                   _record(6, 0), _record(7, 0), _record(8, 5)]
        # 700 / 8 = 87.5
        assert self.scorer.aggregate_score(records) == 88


class TestCalculateStats:
    def setup_method(self) -> None:
        self.scorer = QualityScorer()

    def test_rates_and_counts(self) -> None:
        evaluated = [_record(i, 0) for i in range(1, 8)] + [_record(i, 5) for i in range(8, 11)]
        stats = self.scorer.calculate_stats(evaluated, evaluated, total_rows=10)
        assert stats.total_rows == 10
        assert stats.processed_rows == 10
        assert stats.persisted_rows == 10
        assert stats.rejected_rows == 0
        assert stats.compliant_rows == 7
        assert stats.compliance_rate == 70.0
        assert stats.component_pass_rate["cpu"] == 70.0
        assert stats.mean_quality_score == 70

    def test_strict_mean_over_kept_records(self) -> None:
        evaluated = [_record(i, 0) for i in range(1, 8)] + [_record(i, 5) for i in range(8, 11)]
        kept = [r for r in evaluated if r.overall_compliant]
        stats = self.scorer.calculate_stats(evaluated, kept, total_rows=10)
        assert stats.persisted_rows == 7
        assert stats.rejected_rows == 3
        assert stats.compliance_rate == 70.0
        assert stats.mean_quality_score == 100

    def test_distributions(self) -> None:
        evaluated = [
            _record(1, 0, attention_type="Remoto", cpu_brand="Intel"),
            _record(2, 0, attention_type="Remoto", cpu_brand="AMD"),
            _record(3, 0, attention_type="Presencial", cpu_brand="Intel"),
        ]
        stats = self.scorer.calculate_stats(evaluated, evaluated, total_rows=3)
        assert stats.attention_distribution == {"Remoto": 2, "Presencial": 1}
        assert stats.cpu_brand_distribution == {"Intel": 2, "AMD": 1}

    def test_failure_reason_counts(self) -> None:
        failing = AssetRecord(row_number=1, failure_reasons={"ram": "Memory insufficient", "os": "data missing"})
        other = AssetRecord(row_number=2, failure_reasons={"os": "data missing"})
        stats = self.scorer.calculate_stats([failing, other], [failing, other], total_rows=2)
        assert stats.failure_reasons == {"Memory insufficient": 1, "data missing": 2}

    def test_empty(self) -> None:
        stats = self.scorer.calculate_stats([], [], total_rows=0)
        assert stats.compliance_rate == 0.0
        assert stats.mean_quality_score == 0
        assert stats.component_pass_rate == {c: 0.0 for c in COMPONENTS}
