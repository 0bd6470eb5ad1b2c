"""Workflow orchestrator driving audits through the eight workflow stages.

The WorkflowOrchestrator is the only writer of an audit's stage. A
transition evaluates the current stage's guard, persists the next stage
with a compare-and-swap, runs the new stage's automatic actions and records
a trail event. Transitions on the same audit are serialized by a per-audit
lock; a stage advance is never rolled back when actions fail.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, date, datetime, timedelta

from site_audit_workflow.actions import ActionExecutor
from site_audit_workflow.collaborators import AuditTrailRecorder, record_event
from site_audit_workflow.exceptions import StaleStageError, WorkflowStateError
from site_audit_workflow.guards import StageGuardRegistry
from site_audit_workflow.models import (
    Audit,
    Thresholds,
    TrailEvent,
    TransitionResult,
    WorkflowStage,
    WorkflowStatus,
)
from site_audit_workflow.scoring import round_half_up
from site_audit_workflow.storage import AuditStorage

logger = logging.getLogger(__name__)

STAGE_COUNT = len(WorkflowStage)


def format_time_in_stage(elapsed: timedelta) -> str:
    """Render a duration as "2 days 3h", "1 day 0h" or "5 hours"."""
    seconds = max(0, int(elapsed.total_seconds()))
    days, remainder = divmod(seconds, 86400)
    hours = remainder // 3600
    if days > 0:
        return f"{days} day{'s' if days != 1 else ''} {hours}h"
    return f"{hours} hour{'s' if hours != 1 else ''}"


def _stage_snapshot(audit: Audit) -> dict:
    return {"stage": int(audit.stage), "state": audit.state}


class WorkflowOrchestrator:
    """Creates audits and moves them through the workflow."""

    def __init__(
        self,
        storage: AuditStorage,
        guards: StageGuardRegistry,
        executor: ActionExecutor,
        trail: AuditTrailRecorder | None = None,
    ) -> None:
        self.storage = storage
        self.guards = guards
        self.executor = executor
        self.trail = trail
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _audit_lock(self, audit_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(audit_id, threading.Lock())

    def _release_lock(self, audit_id: str) -> None:
        # Completed audits never transition again.
        with self._locks_guard:
            self._locks.pop(audit_id, None)

    # -- audit lifecycle ----------------------------------------------------

    def create_audit(
        self,
        code: str,
        provider_id: str | None = None,
        auditor_id: str | None = None,
        scheduled_date: date | None = None,
        deadline: date | None = None,
        thresholds: Thresholds | None = None,
        actor: str | None = None,
    ) -> Audit:
        """Open a new audit at the Configuration stage.

        Omitted thresholds are snapshotted from the defaults.
        """
        audit = Audit(
            code=code,
            provider_id=provider_id,
            auditor_id=auditor_id,
            scheduled_date=scheduled_date,
            deadline=deadline,
            thresholds=thresholds or Thresholds(),
        )
        self.storage.save_audit(audit)
        logger.info("Created audit %s (%s)", audit.id, code)
        record_event(self.trail, TrailEvent(
            audit_id=audit.id,
            type="audit_created",
            after=_stage_snapshot(audit),
            actor=actor,
            metadata={"code": code},
        ))
        return audit

    def configure_audit(
        self,
        audit_id: str,
        provider_id: str | None = None,
        auditor_id: str | None = None,
        scheduled_date: date | None = None,
        deadline: date | None = None,
        actor: str | None = None,
    ) -> Audit:
        """Fill in assignment and schedule details of an audit in Configuration.

        Only the given fields change. Thresholds are fixed at creation.

        Raises:
            WorkflowStateError: If the audit has left the Configuration stage.
        """
        changes = {
            key: value
            for key, value in {
                "provider_id": provider_id,
                "auditor_id": auditor_id,
                "scheduled_date": scheduled_date,
                "deadline": deadline,
            }.items()
            if value is not None
        }
        with self._audit_lock(audit_id):
            audit = self.storage.load_audit(audit_id)
            if audit.stage != WorkflowStage.CONFIGURATION:
                raise WorkflowStateError(
                    f"Audit {audit_id} can only be configured in {WorkflowStage.CONFIGURATION.state_name}",
                    details={"stage": int(audit.stage), "state": audit.state},
                )
            updated = audit.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            self.storage.save_audit(updated, expected_stage=int(audit.stage))

        record_event(self.trail, TrailEvent(
            audit_id=audit_id,
            type="audit_configured",
            actor=actor,
            metadata={k: str(v) for k, v in changes.items()},
        ))
        return updated

    # -- transitions --------------------------------------------------------

    def advance_stage(
        self,
        audit_id: str,
        expected_stage: int | None = None,
        force: bool = False,
        actor: str | None = None,
    ) -> TransitionResult:
        """Move an audit to its next stage if the current stage's guard allows it.

        Args:
            audit_id: The audit to advance.
            expected_stage: The stage the caller believes the audit is in.
            force: Override the soft gates of the current stage's guard.
            actor: Who requested the transition, for the audit trail.

        Returns:
            TransitionResult. When the guard rejects, ``allowed`` is False and
            the audit is untouched.

        Raises:
            AuditNotFoundError: If the audit does not exist.
            StaleStageError: If the audit is no longer at ``expected_stage``.
        """
        with self._audit_lock(audit_id):
            audit = self.storage.load_audit(audit_id)
            from_stage = audit.stage
            if expected_stage is not None and int(from_stage) != expected_stage:
                raise StaleStageError(
                    f"Audit {audit_id} is at stage {int(from_stage)}, expected {expected_stage}",
                    expected_stage=expected_stage,
                    actual_stage=int(from_stage),
                )

            guard = self.guards.check(audit, force=force)
            if not guard.allowed:
                logger.info("Audit %s cannot leave %s: %s", audit_id, audit.state, guard.reason)
                if from_stage.is_terminal:
                    self._release_lock(audit_id)
                return TransitionResult(
                    audit_id=audit_id,
                    allowed=False,
                    from_stage=int(from_stage),
                    to_stage=int(from_stage),
                    new_state=audit.state,
                    reason=guard.reason,
                    required_actions=guard.required_actions,
                )

            to_stage = from_stage.next
            if to_stage is None:
                raise WorkflowStateError(
                    f"Audit {audit_id} is already completed",
                    details={"audit_id": audit_id, "stage": int(from_stage)},
                )
            now = datetime.now(UTC)
            advanced = audit.model_copy(update={
                "stage": to_stage,
                "updated_at": now,
                "stage_entered_at": now,
                "completed_at": now if to_stage.is_terminal else audit.completed_at,
            })
            self.storage.save_audit(advanced, expected_stage=int(from_stage))
            logger.info("Audit %s advanced %s -> %s", audit_id, audit.state, advanced.state)

            run = self.executor.run(advanced, to_stage)
            if run.progress:
                updates: dict = {
                    "progress": {**advanced.progress, **run.progress},
                    "updated_at": datetime.now(UTC),
                }
                if "archived_at" in run.progress:
                    updates["archived"] = True
                advanced = advanced.model_copy(update=updates)
                self.storage.save_audit(advanced, expected_stage=int(to_stage))

        if to_stage.is_terminal:
            self._release_lock(audit_id)
        if run.degraded:
            logger.warning("Transition of audit %s to %s is degraded", audit_id, advanced.state)
        record_event(self.trail, TrailEvent(
            audit_id=audit_id,
            type="stage_advanced",
            before=_stage_snapshot(audit),
            after=_stage_snapshot(advanced),
            actor=actor,
            metadata={
                "forced": force,
                "degraded": run.degraded,
                "aborted": run.aborted,
                "action_log": [entry.model_dump(mode="json") for entry in run.log],
            },
        ))
        return TransitionResult(
            audit_id=audit_id,
            allowed=True,
            from_stage=int(from_stage),
            to_stage=int(to_stage),
            new_state=advanced.state,
            action_log=run.log,
            degraded=run.degraded,
            aborted=run.aborted,
        )

    # -- queries ------------------------------------------------------------

    def get_workflow_status(self, audit_id: str) -> WorkflowStatus:
        """Evaluate where an audit stands without changing it."""
        audit = self.storage.load_audit(audit_id)
        guard = self.guards.check(audit)
        next_stage = audit.stage.next
        return WorkflowStatus(
            audit_id=audit.id,
            stage=int(audit.stage),
            state=audit.state,
            can_advance=guard.allowed,
            blocking_reason=guard.reason,
            required_actions=guard.required_actions,
            next_state=next_stage.state_name if next_stage is not None else None,
            progress_pct=round_half_up(int(audit.stage) / STAGE_COUNT * 100),
            time_in_stage=format_time_in_stage(datetime.now(UTC) - audit.stage_entered_at),
        )

    def get_audit(self, audit_id: str) -> Audit:
        return self.storage.load_audit(audit_id)
