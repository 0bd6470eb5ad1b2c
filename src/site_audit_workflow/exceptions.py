"""Custom exception hierarchy for the site audit workflow.

Maps portal REST API errors, workflow concurrency conflicts and ingestion
failures to typed exceptions. Guard rejections are not exceptions; they are
returned as StageGuardResult values.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base exception for all audit-related errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class AuditNotFoundError(AuditError):
    """Raised when a requested audit or portal resource does not exist (404)."""


class JobNotFoundError(AuditError):
    """Raised when a compliance job id is unknown."""


class StaleStageError(AuditError):
    """Raised when an audit moved on since the caller read its stage.

    Retryable: re-read the workflow status and advance again.
    """

    def __init__(self, message: str, expected_stage: int, actual_stage: int, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.expected_stage = expected_stage
        self.actual_stage = actual_stage


class DuplicateSubmissionError(AuditError):
    """Raised when an inventory file with the same content hash was already submitted for the audit."""

    def __init__(self, message: str, existing_job_id: str, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.existing_job_id = existing_job_id


class IngestionError(AuditError):
    """Raised when a whole ingestion job cannot proceed (unreadable file, no columns resolved)."""


class InvalidInventoryFileError(IngestionError):
    """Raised when an uploaded inventory file fails format validation."""


class AuditConnectionError(AuditError):
    """Raised when the portal API is unreachable."""


class AuditAuthError(AuditError):
    """Raised when authentication to the portal API fails (401)."""


class AuditPermissionError(AuditError):
    """Raised when the token lacks permission for the requested operation (403)."""


class AuditRateLimitError(AuditError):
    """Raised when the portal API returns a rate-limit response (429)."""

    def __init__(self, message: str, retry_after: int | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class AuditAPIError(AuditError):
    """Raised for unexpected portal API errors (5xx, malformed response, etc)."""

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class WorkflowStateError(AuditError):
    """Raised when an operation is not permitted at the audit's current stage."""


class ActionFailedError(AuditError):
    """Raised by an automatic action whose collaborator reported a failure."""
