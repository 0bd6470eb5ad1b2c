"""Compliance ingestion pipeline.

Turns an uploaded inventory spreadsheet into a ComplianceJob: read the
table, resolve its columns once, then normalize, evaluate and score every
row on a worker pool. Submission returns immediately; the sweep runs on a
separate job pool and its outcome is read back with get_job_status().
"""

from __future__ import annotations

import hashlib
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime

from site_audit_workflow.collaborators import AuditTrailRecorder, record_event
from site_audit_workflow.etl.columns import ColumnResolution, ColumnResolver
from site_audit_workflow.etl.evaluator import ComplianceEvaluator
from site_audit_workflow.etl.normalizer import FieldNormalizer
from site_audit_workflow.etl.reader import Table, read_table
from site_audit_workflow.exceptions import (
    DuplicateSubmissionError,
    IngestionError,
    InvalidInventoryFileError,
    JobNotFoundError,
)
from site_audit_workflow.models import (
    AssetRecord,
    ComplianceJob,
    InventoryUpload,
    Thresholds,
    TrailEvent,
)
from site_audit_workflow.scoring import QualityScorer
from site_audit_workflow.storage import AuditStorage, JobStore

logger = logging.getLogger(__name__)

# Statuses that make a resubmission of identical bytes a duplicate.
DUPLICATE_BLOCKING_STATUSES = frozenset({"running", "completed"})


def content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class CompliancePipeline:
    """Runs inventory ingestion jobs for audits."""

    def __init__(
        self,
        audit_store: AuditStorage,
        job_store: JobStore,
        trail: AuditTrailRecorder | None = None,
        workers: int = 2,
        row_workers: int = 4,
        resolver: ColumnResolver | None = None,
        normalizer: FieldNormalizer | None = None,
        evaluator: ComplianceEvaluator | None = None,
    ) -> None:
        self.audit_store = audit_store
        self.job_store = job_store
        self.trail = trail
        self.resolver = resolver or ColumnResolver()
        self.normalizer = normalizer or FieldNormalizer()
        self.scorer = QualityScorer()
        self.evaluator = evaluator or ComplianceEvaluator(self.scorer)
        self._job_pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingestion-job")
        self._row_pool = ThreadPoolExecutor(max_workers=row_workers, thread_name_prefix="ingestion-row")
        self._lock = threading.Lock()
        self._cancel_events: dict[str, threading.Event] = {}
        self._futures: dict[str, Future] = {}

    # -- submission ---------------------------------------------------------

    def submit_inventory(
        self,
        audit_id: str,
        file_bytes: bytes,
        filename: str | None = None,
        strict: bool = False,
        actor: str | None = None,
    ) -> str:
        """Start an ingestion job for an inventory file.

        Args:
            audit_id: The audit the inventory belongs to.
            file_bytes: Raw spreadsheet content.
            filename: Original filename, used as a format hint.
            strict: Keep only fully compliant records on the job.
            actor: Who triggered the submission, for the audit trail.

        Returns:
            The new job ID. The job is ``running`` when this returns.

        Raises:
            AuditNotFoundError: If the audit does not exist.
            DuplicateSubmissionError: If the same content is already running
                or completed for this audit.
        """
        audit = self.audit_store.load_audit(audit_id)
        thresholds = audit.thresholds or Thresholds()
        source_hash = content_hash(file_bytes)

        with self._lock:
            for existing in self.job_store.list(audit_id):
                if existing.source_hash == source_hash and existing.status in DUPLICATE_BLOCKING_STATUSES:
                    raise DuplicateSubmissionError(
                        f"Inventory already submitted for audit {audit_id} as job {existing.id}",
                        existing_job_id=existing.id,
                        details={"audit_id": audit_id, "source_hash": source_hash, "status": existing.status},
                    )
            job = ComplianceJob(audit_id=audit_id, source_hash=source_hash, filename=filename, strict=strict)
            self.job_store.put(job)
            self._cancel_events[job.id] = threading.Event()
            self._futures[job.id] = self._job_pool.submit(self._run_job, job.id, file_bytes, thresholds, actor)

        logger.info("Submitted ingestion job %s for audit %s (%s, strict=%s)", job.id, audit_id, filename, strict)
        return job.id

    # -- job execution ------------------------------------------------------

    def _run_job(self, job_id: str, content: bytes, thresholds: Thresholds, actor: str | None) -> None:
        try:
            self._execute_job(job_id, content, thresholds, actor)
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)
                self._futures.pop(job_id, None)

    def _execute_job(self, job_id: str, content: bytes, thresholds: Thresholds, actor: str | None) -> None:
        job = self._require_job(job_id)
        cancel = self._cancel_events[job_id]
        try:
            table = read_table(content, job.filename)
            resolution = self.resolver.resolve(table.headers)
            if resolution.resolved_count == 0:
                raise IngestionError(
                    "No inventory columns could be resolved",
                    details={"headers": table.headers},
                )
            logger.info(
                "Job %s: %d rows, resolved %d/%d columns",
                job_id, table.row_count, resolution.resolved_count, len(self.resolver.fields),
            )
            evaluated = self._sweep(table, resolution, thresholds, cancel)
        except IngestionError as exc:
            self._fail(job_id, str(exc), actor)
            return
        except Exception as exc:
            logger.exception("Ingestion job %s crashed", job_id)
            self._fail(job_id, f"Unexpected ingestion failure: {exc}", actor)
            return

        kept = [r for r in evaluated if r.overall_compliant] if job.strict else evaluated
        stats = self.scorer.calculate_stats(evaluated, kept, table.row_count)
        stats.column_mapping = dict(resolution.header_to_field)
        stats.unresolved_fields = list(resolution.unresolved)

        with self._lock:
            current = self._require_job(job_id)
            if current.status != "running":
                logger.info("Job %s finished after being %s; results discarded", job_id, current.status)
                return
            done = current.model_copy(update={
                "status": "completed",
                "records": kept,
                "stats": stats,
                "completed_at": datetime.now(UTC),
            })
            self.job_store.put(done)

        logger.info(
            "Job %s completed: %d/%d compliant, %d kept, score %d",
            job_id, stats.compliant_rows, stats.processed_rows, stats.persisted_rows, stats.mean_quality_score,
        )
        record_event(self.trail, TrailEvent(
            audit_id=job.audit_id,
            type="ingestion_completed",
            after={"job_id": job_id, "status": "completed"},
            actor=actor,
            metadata={
                "mean_quality_score": stats.mean_quality_score,
                "compliance_rate": stats.compliance_rate,
                "persisted_rows": stats.persisted_rows,
                "rejected_rows": stats.rejected_rows,
            },
        ))

    def _sweep(
        self,
        table: Table,
        resolution: ColumnResolution,
        thresholds: Thresholds,
        cancel: threading.Event,
    ) -> list[AssetRecord]:
        futures: list[Future] = []
        for row_number, row in enumerate(table.rows, start=1):
            if cancel.is_set():
                break
            cells = {f: row.get(header) for f, header in resolution.field_to_header.items()}
            futures.append(self._row_pool.submit(self._process_row, row_number, cells, thresholds, cancel))

        records = [r for r in (f.result() for f in futures) if r is not None]
        records.sort(key=lambda r: r.row_number)
        return records

    def _process_row(
        self,
        row_number: int,
        cells: dict[str, object],
        thresholds: Thresholds,
        cancel: threading.Event,
    ) -> AssetRecord | None:
        if cancel.is_set():
            return None
        try:
            record = AssetRecord(row_number=row_number, **self.normalizer.normalize_row(cells))
        except Exception as exc:
            logger.warning("Row %d could not be normalized, keeping it as unknown: %s", row_number, exc)
            record = AssetRecord(row_number=row_number)
        return self.evaluator.evaluate(record, thresholds)

    def _fail(self, job_id: str, error: str, actor: str | None) -> None:
        with self._lock:
            job = self._require_job(job_id)
            if job.status != "running":
                return
            self.job_store.put(job.model_copy(update={
                "status": "failed",
                "error": error,
                "completed_at": datetime.now(UTC),
            }))
        logger.error("Ingestion job %s failed: %s", job_id, error)
        record_event(self.trail, TrailEvent(
            audit_id=job.audit_id,
            type="ingestion_failed",
            after={"job_id": job_id, "status": "failed"},
            actor=actor,
            metadata={"error": error},
        ))

    # -- queries and control ------------------------------------------------

    def _require_job(self, job_id: str) -> ComplianceJob:
        job = self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Compliance job not found: {job_id}", details={"job_id": job_id})
        return job

    def get_job(self, job_id: str) -> ComplianceJob:
        return self._require_job(job_id)

    def get_job_status(self, job_id: str) -> dict:
        """Return ``{job_id, status, stats, error}`` for a job.

        Raises:
            JobNotFoundError: If the job ID is unknown.
        """
        job = self._require_job(job_id)
        return {
            "job_id": job.id,
            "status": job.status,
            "stats": job.stats.model_dump(mode="json"),
            "error": job.error,
        }

    def cancel_job(self, job_id: str, actor: str | None = None) -> str:
        """Cancel a running job.

        Rows not yet started are skipped and every record the job produced
        is discarded. Finished jobs are left untouched.

        Returns:
            The job status after the call.
        """
        with self._lock:
            job = self._require_job(job_id)
            if job.status != "running":
                return job.status
            event = self._cancel_events.get(job_id)
            if event is not None:
                event.set()
            self.job_store.put(job.model_copy(update={
                "status": "cancelled",
                "records": [],
                "completed_at": datetime.now(UTC),
            }))

        logger.info("Cancelled ingestion job %s", job_id)
        record_event(self.trail, TrailEvent(
            audit_id=job.audit_id,
            type="ingestion_cancelled",
            before={"status": "running"},
            after={"job_id": job_id, "status": "cancelled"},
            actor=actor,
        ))
        return "cancelled"

    def wait(self, job_id: str, timeout: float | None = None) -> ComplianceJob:
        """Block until the job's sweep has finished and return the job.

        Raises:
            TimeoutError: If the sweep is still running after ``timeout`` seconds.
        """
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self._require_job(job_id)

    def list_jobs(self, audit_id: str | None = None) -> list[ComplianceJob]:
        return self.job_store.list(audit_id)

    def latest_job(self, audit_id: str) -> ComplianceJob | None:
        jobs = self.job_store.list(audit_id)
        return jobs[-1] if jobs else None

    # -- inventory upload (stage 4) -----------------------------------------

    def validate_inventory_file(self, file_bytes: bytes, filename: str | None = None) -> ColumnResolution:
        """Check that a file is a usable inventory spreadsheet.

        The file must parse, hold at least one data row and resolve the
        processor column.

        Raises:
            InvalidInventoryFileError: Describing the first problem found.
        """
        try:
            table = read_table(file_bytes, filename)
        except IngestionError as exc:
            raise InvalidInventoryFileError(str(exc), details={"filename": filename}) from exc
        if table.row_count == 0:
            raise InvalidInventoryFileError("Inventory file has no data rows", details={"filename": filename})
        resolution = self.resolver.resolve(table.headers)
        if "cpu" not in resolution.field_to_header:
            raise InvalidInventoryFileError(
                "Inventory file has no processor column",
                details={"filename": filename, "headers": table.headers, "unresolved": resolution.unresolved},
            )
        return resolution

    def record_inventory_upload(
        self,
        audit_id: str,
        file_bytes: bytes,
        filename: str,
        actor: str | None = None,
    ) -> InventoryUpload:
        """Validate and store an audit's inventory spreadsheet.

        The upload is stored even when invalid so the validation error is
        visible; only a validated upload satisfies the inventory stage.
        """
        self.audit_store.load_audit(audit_id)
        try:
            resolution = self.validate_inventory_file(file_bytes, filename)
            upload = InventoryUpload(
                audit_id=audit_id,
                filename=filename,
                content_hash=content_hash(file_bytes),
                validated=True,
                resolved_fields=list(resolution.field_to_header),
            )
        except InvalidInventoryFileError as exc:
            upload = InventoryUpload(
                audit_id=audit_id,
                filename=filename,
                content_hash=content_hash(file_bytes),
                validation_error=str(exc),
            )

        self.audit_store.save_inventory_upload(upload, file_bytes)
        record_event(self.trail, TrailEvent(
            audit_id=audit_id,
            type="inventory_uploaded",
            after={"filename": filename, "validated": upload.validated},
            actor=actor,
            metadata={"content_hash": upload.content_hash, "validation_error": upload.validation_error},
        ))
        return upload

    def shutdown(self, wait: bool = True) -> None:
        self._job_pool.shutdown(wait=wait)
        self._row_pool.shutdown(wait=wait)
