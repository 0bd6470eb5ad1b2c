"""Contracts for the external services the workflow talks to, with portal HTTP adapters.

The orchestrator, guards and actions depend only on the Protocols below and
receive implementations through their constructors. The Portal* adapters
call the portal REST API through PortalClient; StorageTrailRecorder writes
the audit trail to local storage.
"""

from __future__ import annotations

import logging
from typing import Protocol

from site_audit_workflow.client import PortalClient
from site_audit_workflow.exceptions import AuditAPIError, AuditError
from site_audit_workflow.models import ActionOutcome, AIScore, DocumentSection, SectionEvaluation, TrailEvent
from site_audit_workflow.storage import AuditStorage

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def list_sections(self, audit_id: str) -> list[DocumentSection]: ...


class EvaluationStore(Protocol):
    def list_evaluations(self, audit_id: str) -> list[SectionEvaluation]: ...


class AuditTrailRecorder(Protocol):
    def record(self, event: TrailEvent) -> None: ...


class NotificationSender(Protocol):
    def send(self, audit_id: str, template: str, recipients: list[str]) -> ActionOutcome: ...


class AIDocumentScorer(Protocol):
    def score(self, audit_id: str) -> AIScore: ...


class ReportGenerator(Protocol):
    def generate(self, audit_id: str) -> str: ...


def record_event(recorder: AuditTrailRecorder | None, event: TrailEvent) -> None:
    """Hand an event to the trail recorder. Recorder failures are logged, never raised."""
    if recorder is None:
        return
    try:
        recorder.record(event)
    except Exception as exc:
        logger.error("Could not record %s trail event for audit %s: %s", event.type, event.audit_id, exc)


class StorageTrailRecorder:
    """Audit trail kept in the local JSON storage."""

    def __init__(self, storage: AuditStorage) -> None:
        self.storage = storage

    def record(self, event: TrailEvent) -> None:
        self.storage.append_trail_event(event)

    def list_events(self, audit_id: str, limit: int = 100) -> list[TrailEvent]:
        return self.storage.list_trail_events(audit_id, limit=limit)


def _as_list(payload: object, path: str) -> list[dict]:
    if not isinstance(payload, list):
        raise AuditAPIError(f"Expected a list from {path}", details={"payload": str(payload)[:200]})
    return [item for item in payload if isinstance(item, dict)]


class PortalDocumentStore:
    """Document sections of an audit as reported by the portal."""

    def __init__(self, client: PortalClient, mandatory_sections: list[str] | None = None) -> None:
        self.client = client
        self.mandatory_sections = set(mandatory_sections or [])

    def list_sections(self, audit_id: str) -> list[DocumentSection]:
        path = f"auditorias/{audit_id}/documentos"
        sections: list[DocumentSection] = []
        for item in _as_list(self.client.get_json(path), path):
            name = str(item.get("seccion") or item.get("section") or "")
            if not name:
                continue
            sections.append(DocumentSection(
                section=name,
                has_active_upload=bool(item.get("documento_actual") or item.get("has_active_upload")),
                is_mandatory=bool(item.get("obligatoria", name in self.mandatory_sections)),
            ))
        return sections


class PortalEvaluationStore:
    """Auditor verdicts per evaluation section."""

    def __init__(self, client: PortalClient) -> None:
        self.client = client

    def list_evaluations(self, audit_id: str) -> list[SectionEvaluation]:
        path = f"auditorias/{audit_id}/evaluaciones"
        return [
            SectionEvaluation(
                section=str(item.get("seccion") or item.get("section") or ""),
                verdict=item.get("veredicto") or item.get("verdict"),
                critical=bool(item.get("critico") or item.get("critical")),
                resolved=bool(item.get("resuelto") or item.get("resolved")),
            )
            for item in _as_list(self.client.get_json(path), path)
        ]


class PortalNotificationSender:
    """Sends templated notifications through the portal's notification endpoint."""

    def __init__(self, client: PortalClient) -> None:
        self.client = client

    def send(self, audit_id: str, template: str, recipients: list[str]) -> ActionOutcome:
        try:
            self.client.post_json(
                "notificaciones",
                {"auditoria_id": audit_id, "plantilla": template, "destinatarios": recipients},
            )
        except AuditError as exc:
            logger.warning("Notification %s for audit %s failed: %s", template, audit_id, exc)
            return ActionOutcome.failure(str(exc))
        return ActionOutcome.success()


class PortalAIDocumentScorer:
    """Requests the AI document analysis score of an audit."""

    def __init__(self, client: PortalClient) -> None:
        self.client = client

    def score(self, audit_id: str) -> AIScore:
        payload = self.client.post_json(f"auditorias/{audit_id}/analisis-ia")
        if not isinstance(payload, dict) or "score" not in payload:
            raise AuditAPIError("AI scoring response carries no score", details={"audit_id": audit_id})
        return AIScore(score=float(payload["score"]), details=payload.get("details") or {})


class PortalReportGenerator:
    """Asks the portal to render the final audit report."""

    def __init__(self, client: PortalClient) -> None:
        self.client = client

    def generate(self, audit_id: str) -> str:
        payload = self.client.post_json(f"auditorias/{audit_id}/reporte")
        ref = (payload.get("artifact") or payload.get("url")) if isinstance(payload, dict) else payload
        if not ref:
            raise AuditAPIError("Report generation returned no artifact", details={"audit_id": audit_id})
        return str(ref)
