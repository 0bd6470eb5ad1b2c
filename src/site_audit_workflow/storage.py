"""JSON-based file storage for audits, compliance jobs, inventory uploads and the audit trail.

Persists everything under the configured audit_storage_path. Audit saves
support a compare-and-swap on the stored stage so two writers racing from
the same stage cannot both win.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from site_audit_workflow.exceptions import AuditNotFoundError, StaleStageError
from site_audit_workflow.models import Audit, ComplianceJob, InventoryUpload, TrailEvent

logger = logging.getLogger(__name__)


class AuditStorage:
    """Manages persistence of audits, inventory uploads and trail events."""

    def __init__(self, base_path: str) -> None:
        self.base_path = Path(base_path)
        self.audits_path = self.base_path / "audits"
        self.uploads_path = self.base_path / "uploads"
        self.trail_path = self.base_path / "trail"
        for path in (self.audits_path, self.uploads_path, self.trail_path):
            path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save_audit(self, audit: Audit, expected_stage: int | None = None) -> str:
        """Persist an audit.

        Args:
            audit: The Audit to save.
            expected_stage: When given, the stage currently on disk must equal
                it, otherwise the save is rejected.

        Returns:
            The audit ID.

        Raises:
            StaleStageError: If the stored stage differs from expected_stage.
        """
        file_path = self.audits_path / f"{audit.id}.json"
        with self._lock:
            if expected_stage is not None and file_path.exists():
                stored = json.loads(file_path.read_text())
                if stored.get("stage") != expected_stage:
                    raise StaleStageError(
                        f"Audit {audit.id} is at stage {stored.get('stage')}, expected {expected_stage}",
                        expected_stage=expected_stage,
                        actual_stage=int(stored.get("stage", 0)),
                    )
            file_path.write_text(audit.model_dump_json(indent=2))
        logger.info("Saved audit %s at stage %d (%s)", audit.id, audit.stage, audit.state)
        return audit.id

    def load_audit(self, audit_id: str) -> Audit:
        """Load an audit by ID.

        Raises:
            AuditNotFoundError: If the audit file does not exist.
        """
        file_path = self.audits_path / f"{audit_id}.json"
        if not file_path.exists():
            raise AuditNotFoundError(f"Audit not found: {audit_id}", details={"audit_id": audit_id})
        return Audit.model_validate_json(file_path.read_text())

    def list_audits(self, stage: int | None = None, limit: int = 50) -> list[dict]:
        """List stored audits, most recently updated first.

        Args:
            stage: Optional filter by stage number.
            limit: Maximum number of audits to return.

        Returns:
            List of summary dicts with id, code, stage, state, archived and updated_at.
        """
        results: list[dict] = []
        files = sorted(self.audits_path.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)

        for file_path in files:
            if len(results) >= limit:
                break
            try:
                data = json.loads(file_path.read_text())
                if stage is not None and data.get("stage") != stage:
                    continue
                results.append({
                    "id": data["id"],
                    "code": data.get("code", ""),
                    "stage": data["stage"],
                    "state": data.get("state"),
                    "archived": data.get("archived", False),
                    "updated_at": data.get("updated_at"),
                })
            except (json.JSONDecodeError, KeyError) as exc:
                logger.warning("Skipping corrupt audit file %s: %s", file_path, exc)
                continue

        return results

    def save_inventory_upload(self, upload: InventoryUpload, content: bytes) -> None:
        """Store the latest inventory spreadsheet of an audit, replacing any previous one."""
        (self.uploads_path / f"{upload.audit_id}.bin").write_bytes(content)
        (self.uploads_path / f"{upload.audit_id}.json").write_text(upload.model_dump_json(indent=2))
        logger.info("Saved inventory upload %s for audit %s", upload.filename, upload.audit_id)

    def load_inventory_upload(self, audit_id: str) -> InventoryUpload | None:
        file_path = self.uploads_path / f"{audit_id}.json"
        if not file_path.exists():
            return None
        return InventoryUpload.model_validate_json(file_path.read_text())

    def load_inventory_content(self, audit_id: str) -> bytes:
        file_path = self.uploads_path / f"{audit_id}.bin"
        if not file_path.exists():
            raise FileNotFoundError(f"Inventory file not found for audit: {audit_id}")
        return file_path.read_bytes()

    def append_trail_event(self, event: TrailEvent) -> None:
        file_path = self.trail_path / f"{event.audit_id}.jsonl"
        with self._lock, file_path.open("a", encoding="utf-8") as fh:
            fh.write(event.model_dump_json() + "\n")

    def list_trail_events(self, audit_id: str, limit: int = 100) -> list[TrailEvent]:
        """Return the most recent trail events of an audit, oldest first."""
        file_path = self.trail_path / f"{audit_id}.jsonl"
        if not file_path.exists():
            return []
        events: list[TrailEvent] = []
        for line in file_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                events.append(TrailEvent.model_validate_json(line))
            except ValueError as exc:
                logger.warning("Skipping corrupt trail line for %s: %s", audit_id, exc)
        return events[-limit:]


class JobStore(Protocol):
    """Storage for compliance jobs."""

    def get(self, job_id: str) -> ComplianceJob | None: ...

    def put(self, job: ComplianceJob) -> None: ...

    def list(self, audit_id: str | None = None) -> list[ComplianceJob]: ...


class InMemoryJobStore:
    """Process-local job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, ComplianceJob] = {}
        self._lock = threading.Lock()

    def get(self, job_id: str) -> ComplianceJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def put(self, job: ComplianceJob) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list(self, audit_id: str | None = None) -> list[ComplianceJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if audit_id is None or j.audit_id == audit_id]
        return sorted(jobs, key=lambda j: j.created_at)


class FileJobStore:
    """Job store persisting each job as a JSON file."""

    def __init__(self, base_path: str) -> None:
        self.jobs_path = Path(base_path) / "jobs"
        self.jobs_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def get(self, job_id: str) -> ComplianceJob | None:
        file_path = self.jobs_path / f"{job_id}.json"
        if not file_path.exists():
            return None
        return ComplianceJob.model_validate_json(file_path.read_text())

    def put(self, job: ComplianceJob) -> None:
        with self._lock:
            (self.jobs_path / f"{job.id}.json").write_text(job.model_dump_json(indent=2))
        logger.info("Saved compliance job %s (%s)", job.id, job.status)

    def list(self, audit_id: str | None = None) -> list[ComplianceJob]:
        jobs: list[ComplianceJob] = []
        for file_path in self.jobs_path.glob("*.json"):
            try:
                job = ComplianceJob.model_validate_json(file_path.read_text())
            except ValueError as exc:
                logger.warning("Skipping corrupt job file %s: %s", file_path, exc)
                continue
            if audit_id is None or job.audit_id == audit_id:
                jobs.append(job)
        return sorted(jobs, key=lambda j: j.created_at)
