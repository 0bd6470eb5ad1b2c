"""Stage guard registry.

Each workflow stage owns one guard that decides whether an audit may leave
it. Guards are keyed by the audit's current stage, read collaborators and
storage only, and never mutate anything. A rejection is a value, not an
exception.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from site_audit_workflow.collaborators import DocumentStore, EvaluationStore
from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.exceptions import AuditError
from site_audit_workflow.models import Audit, StageGuardResult, Thresholds, WorkflowStage
from site_audit_workflow.storage import AuditStorage

logger = logging.getLogger(__name__)

Guard = Callable[[Audit, bool], StageGuardResult]


class StageGuardRegistry:
    """Evaluates the exit condition of an audit's current stage."""

    def __init__(
        self,
        storage: AuditStorage,
        pipeline: CompliancePipeline,
        documents: DocumentStore,
        evaluations: EvaluationStore,
        mandatory_sections: list[str] | None = None,
    ) -> None:
        self.storage = storage
        self.pipeline = pipeline
        self.documents = documents
        self.evaluations = evaluations
        self.mandatory_sections = list(mandatory_sections or [])
        self._guards: dict[WorkflowStage, Guard] = {
            WorkflowStage.CONFIGURATION: self._configuration_complete,
            WorkflowStage.NOTIFICATION: self._always,
            WorkflowStage.ONSITE_PRESENTATION_UPLOAD: self._mandatory_documents_uploaded,
            WorkflowStage.INVENTORY_UPLOAD: self._inventory_validated,
            WorkflowStage.AUTOMATIC_VALIDATION: self._compliance_job_completed,
            WorkflowStage.AUDITOR_REVIEW: self._sections_evaluated,
            WorkflowStage.RESULT_NOTIFICATION: self._report_generated,
            WorkflowStage.COMPLETED: self._terminal,
        }

    def check(self, audit: Audit, force: bool = False) -> StageGuardResult:
        """Evaluate the guard of the audit's current stage.

        Args:
            audit: The audit as currently stored.
            force: Override the soft gates (quality score, critical verdicts).

        Returns:
            StageGuardResult. A collaborator error denies the transition.
        """
        guard = self._guards[audit.stage]
        try:
            return guard(audit, force)
        except AuditError as exc:
            logger.warning("Guard for stage %s of audit %s could not be evaluated: %s", audit.state, audit.id, exc)
            return StageGuardResult.deny(f"Could not verify stage requirements: {exc}")

    # -- guards -------------------------------------------------------------

    @staticmethod
    def _always(audit: Audit, force: bool) -> StageGuardResult:
        return StageGuardResult.allow()

    @staticmethod
    def _terminal(audit: Audit, force: bool) -> StageGuardResult:
        return StageGuardResult.deny("Audit is completed")

    @staticmethod
    def _configuration_complete(audit: Audit, force: bool) -> StageGuardResult:
        missing: list[str] = []
        if not audit.provider_id:
            missing.append("Assign a provider")
        if not audit.auditor_id:
            missing.append("Assign an auditor")
        if audit.scheduled_date is None:
            missing.append("Set the scheduled date")
        if audit.thresholds is None:
            missing.append("Set the compliance thresholds")
        if missing:
            return StageGuardResult.deny("Audit configuration is incomplete", missing)
        return StageGuardResult.allow()

    def _mandatory_documents_uploaded(self, audit: Audit, force: bool) -> StageGuardResult:
        sections = self.documents.list_sections(audit.id)
        required = list(self.mandatory_sections)
        required += sorted(s.section for s in sections if s.is_mandatory and s.section not in required)
        uploaded = {s.section for s in sections if s.has_active_upload}

        missing = [name for name in required if name not in uploaded]
        if missing:
            return StageGuardResult.deny(
                f"Missing mandatory documents: {', '.join(missing)}",
                [f"Upload section {name}" for name in missing],
            )
        return StageGuardResult.allow()

    def _inventory_validated(self, audit: Audit, force: bool) -> StageGuardResult:
        upload = self.storage.load_inventory_upload(audit.id)
        if upload is None:
            return StageGuardResult.deny("No inventory file has been uploaded", ["Upload the inventory spreadsheet"])
        if not upload.validated:
            return StageGuardResult.deny(
                f"Inventory file failed validation: {upload.validation_error}",
                ["Upload a corrected inventory spreadsheet"],
            )
        return StageGuardResult.allow()

    def _compliance_job_completed(self, audit: Audit, force: bool) -> StageGuardResult:
        job = self.pipeline.latest_job(audit.id)
        if job is None:
            return StageGuardResult.deny("No compliance job has run for this audit", ["Submit the inventory for ingestion"])
        if job.status == "running":
            return StageGuardResult.deny(f"Compliance job {job.id} is still running", ["Wait for the compliance job"])
        if job.status != "completed":
            return StageGuardResult.deny(
                f"Latest compliance job {job.status}: {job.error or 'no result'}",
                ["Resubmit the inventory for ingestion"],
            )

        minimum = (audit.thresholds or Thresholds()).min_quality_score
        score = job.stats.mean_quality_score
        if score < minimum and not force:
            return StageGuardResult.deny(
                f"Quality score {score} is below the minimum of {minimum}",
                ["Review non-compliant assets or advance with force"],
            )
        return StageGuardResult.allow()

    def _sections_evaluated(self, audit: Audit, force: bool) -> StageGuardResult:
        evaluations = self.evaluations.list_evaluations(audit.id)
        pending = [e.section for e in evaluations if not e.verdict]
        if pending:
            return StageGuardResult.deny(
                f"Sections without a verdict: {', '.join(pending)}",
                [f"Evaluate section {name}" for name in pending],
            )
        critical = [e.section for e in evaluations if e.critical and not e.resolved]
        if critical and not force:
            return StageGuardResult.deny(
                f"Unresolved critical findings: {', '.join(critical)}",
                [f"Resolve critical finding in {name}" for name in critical],
            )
        return StageGuardResult.allow()

    @staticmethod
    def _report_generated(audit: Audit, force: bool) -> StageGuardResult:
        if not audit.progress.get("report_artifact"):
            return StageGuardResult.deny("The final report has not been generated", ["Generate the final report"])
        return StageGuardResult.allow()
