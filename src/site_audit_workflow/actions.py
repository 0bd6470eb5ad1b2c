"""Automatic actions run when an audit enters a stage.

Actions for a stage run strictly in order, each on its own daemon thread
bounded by a timeout. A handler that outlives its timeout is abandoned on
that thread, so a hung collaborator never holds up later actions of this or
any other audit. A failing action is logged and recorded; the remaining actions
still run unless the failed one is blocking. Each action may return progress
updates that are merged into the audit's progress projection.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from site_audit_workflow.collaborators import AIDocumentScorer, NotificationSender, ReportGenerator
from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.exceptions import ActionFailedError, DuplicateSubmissionError
from site_audit_workflow.models import ActionLogEntry, ActionOutcome, Audit, WorkflowStage
from site_audit_workflow.storage import AuditStorage

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

ActionHandler = Callable[[Audit], dict | None]


@dataclass(frozen=True)
class ActionSpec:
    name: str
    handler: ActionHandler
    blocking: bool = False


@dataclass
class ActionRun:
    """Outcome of running one stage's actions."""

    log: list[ActionLogEntry] = field(default_factory=list)
    progress: dict = field(default_factory=dict)
    degraded: bool = False
    aborted: bool = False


def _now() -> str:
    return datetime.now(UTC).isoformat()


class _HandlerThread(threading.Thread):
    """Daemon thread that runs one action handler and keeps its outcome."""

    def __init__(self, action: ActionSpec, audit: Audit) -> None:
        super().__init__(name=f"workflow-action-{action.name}", daemon=True)
        self.action = action
        self.audit = audit
        self.updates: dict | None = None
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            self.updates = self.action.handler(self.audit)
        except Exception as exc:
            self.error = exc


class ActionExecutor:
    """Runs the automatic actions of workflow stages."""

    def __init__(
        self,
        storage: AuditStorage,
        pipeline: CompliancePipeline,
        notifier: NotificationSender,
        ai_scorer: AIDocumentScorer,
        reports: ReportGenerator,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.storage = storage
        self.pipeline = pipeline
        self.notifier = notifier
        self.ai_scorer = ai_scorer
        self.reports = reports
        self.timeout_seconds = timeout_seconds
        self.actions: dict[WorkflowStage, list[ActionSpec]] = {
            WorkflowStage.NOTIFICATION: [
                ActionSpec("send_start_notification", self.send_start_notification),
            ],
            WorkflowStage.AUTOMATIC_VALIDATION: [
                ActionSpec("run_ingestion", self.run_ingestion, blocking=True),
                ActionSpec("run_ai_scoring", self.run_ai_scoring),
                ActionSpec("record_validation", self.record_validation),
            ],
            WorkflowStage.RESULT_NOTIFICATION: [
                ActionSpec("generate_report", self.generate_report, blocking=True),
                ActionSpec("send_results_notification", self.send_results_notification),
            ],
            WorkflowStage.COMPLETED: [
                ActionSpec("archive_audit", self.archive_audit, blocking=True),
                ActionSpec("record_archive_metrics", self.record_archive_metrics),
            ],
        }

    def run(self, audit: Audit, stage: WorkflowStage) -> ActionRun:
        """Run the actions registered for ``stage`` against ``audit``.

        Each handler sees the progress produced by the handlers before it.

        Returns:
            ActionRun with the action log and the merged progress updates.
        """
        result = ActionRun()
        current = audit
        actions = self.actions.get(stage, [])
        for index, action in enumerate(actions):
            started = time.monotonic()
            error: str | None = None
            worker = _HandlerThread(action, current)
            worker.start()
            worker.join(timeout=self.timeout_seconds)
            if worker.is_alive():
                error = f"timed out after {self.timeout_seconds:g}s"
            elif worker.error is not None:
                error = str(worker.error) or type(worker.error).__name__
            elif worker.updates:
                result.progress.update(worker.updates)
                current = current.model_copy(update={"progress": {**current.progress, **worker.updates}})

            duration_ms = int((time.monotonic() - started) * 1000)
            if error is None:
                logger.info("Action %s for audit %s ok (%dms)", action.name, audit.id, duration_ms)
                result.log.append(ActionLogEntry(
                    action=action.name, outcome="ok", blocking=action.blocking, duration_ms=duration_ms,
                ))
                continue

            logger.error("Action %s for audit %s failed: %s", action.name, audit.id, error)
            result.log.append(ActionLogEntry(
                action=action.name, outcome="failed", error=error, blocking=action.blocking, duration_ms=duration_ms,
            ))
            result.degraded = True
            if action.blocking:
                skipped = [s.name for s in actions[index + 1:]]
                if skipped:
                    logger.warning("Skipping %s for audit %s after blocking failure", ", ".join(skipped), audit.id)
                result.aborted = True
                break
        return result

    # -- actions ------------------------------------------------------------

    @staticmethod
    def _recipients(audit: Audit) -> list[str]:
        return [r for r in (audit.provider_id, audit.auditor_id) if r]

    @staticmethod
    def _require_ok(outcome: ActionOutcome, what: str) -> None:
        if not outcome.ok:
            raise ActionFailedError(f"{what}: {outcome.reason or 'unknown error'}")

    def send_start_notification(self, audit: Audit) -> dict:
        outcome = self.notifier.send(audit.id, "audit_started", self._recipients(audit))
        self._require_ok(outcome, "Start notification not delivered")
        return {"start_notified_at": _now()}

    def run_ingestion(self, audit: Audit) -> dict:
        upload = self.storage.load_inventory_upload(audit.id)
        if upload is None or not upload.validated:
            raise ActionFailedError("No validated inventory upload to ingest")
        content = self.storage.load_inventory_content(audit.id)
        try:
            job_id = self.pipeline.submit_inventory(audit.id, content, upload.filename, actor=SYSTEM_ACTOR)
        except DuplicateSubmissionError as exc:
            logger.info("Inventory for audit %s already ingested by job %s", audit.id, exc.existing_job_id)
            job_id = exc.existing_job_id
        return {"latest_job_id": job_id}

    def run_ai_scoring(self, audit: Audit) -> dict:
        result = self.ai_scorer.score(audit.id)
        return {"ai_score": result.score, "ai_details": result.details}

    def record_validation(self, audit: Audit) -> dict:
        return {
            "validation_started_at": _now(),
            "validation_job_id": audit.progress.get("latest_job_id"),
        }

    def generate_report(self, audit: Audit) -> dict:
        return {"report_artifact": self.reports.generate(audit.id), "report_generated_at": _now()}

    def send_results_notification(self, audit: Audit) -> dict:
        outcome = self.notifier.send(audit.id, "audit_results", self._recipients(audit))
        self._require_ok(outcome, "Results notification not delivered")
        return {"results_notified_at": _now()}

    def archive_audit(self, audit: Audit) -> dict:
        return {"archived_at": _now()}

    def record_archive_metrics(self, audit: Audit) -> dict:
        job = self.pipeline.latest_job(audit.id)
        days_open = (datetime.now(UTC) - audit.created_at).days
        return {
            "archive_metrics": {
                "days_open": days_open,
                "quality_score": job.stats.mean_quality_score if job is not None else None,
                "compliance_rate": job.stats.compliance_rate if job is not None else None,
                "ai_score": audit.progress.get("ai_score"),
            }
        }
