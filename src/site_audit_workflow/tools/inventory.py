"""Inventory upload and ingestion job MCP tools.

File content arrives either base64-encoded or as a path readable by the
server process.
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path

from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.exceptions import InvalidInventoryFileError


def _load_content(content_base64: str | None, file_path: str | None) -> tuple[bytes, str | None]:
    if file_path:
        path = Path(file_path)
        if not path.is_file():
            raise InvalidInventoryFileError(f"Inventory file not found: {file_path}")
        return path.read_bytes(), path.name
    if content_base64:
        try:
            return base64.b64decode(content_base64, validate=True), None
        except (binascii.Error, ValueError) as exc:
            raise InvalidInventoryFileError(f"Inventory content is not valid base64: {exc}") from exc
    raise InvalidInventoryFileError("Either content_base64 or file_path is required")


def upload_inventory(
    pipeline: CompliancePipeline,
    audit_id: str,
    filename: str | None = None,
    content_base64: str | None = None,
    file_path: str | None = None,
    actor: str | None = None,
) -> dict:
    """Validate and store the inventory spreadsheet of an audit.

    Returns:
        The stored upload record, including whether it validated.
    """
    content, name = _load_content(content_base64, file_path)
    upload = pipeline.record_inventory_upload(audit_id, content, filename or name or "inventory.xlsx", actor=actor)
    return upload.model_dump(mode="json")


def submit_inventory(
    pipeline: CompliancePipeline,
    audit_id: str,
    filename: str | None = None,
    content_base64: str | None = None,
    file_path: str | None = None,
    strict: bool = False,
    actor: str | None = None,
) -> dict:
    """Start an ingestion job directly, outside of the workflow actions."""
    content, name = _load_content(content_base64, file_path)
    job_id = pipeline.submit_inventory(audit_id, content, filename or name, strict=strict, actor=actor)
    return {"job_id": job_id, "status": "running"}


def job_status(pipeline: CompliancePipeline, job_id: str, include_records: bool = False) -> dict:
    """Report a job's status and statistics, optionally with its asset records."""
    status = pipeline.get_job_status(job_id)
    if include_records:
        job = pipeline.get_job(job_id)
        status["records"] = [r.model_dump(mode="json") for r in job.records]
    return status


def cancel_job(pipeline: CompliancePipeline, job_id: str, actor: str | None = None) -> dict:
    return {"job_id": job_id, "status": pipeline.cancel_job(job_id, actor=actor)}
