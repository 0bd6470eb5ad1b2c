"""Site Audit Workflow - eight-stage audit orchestrator with inventory compliance ingestion, served over MCP."""

__version__ = "0.1.0"

from site_audit_workflow.config import WorkflowConfig, get_config
from site_audit_workflow.exceptions import (
    AuditAPIError,
    AuditAuthError,
    AuditConnectionError,
    AuditError,
    AuditNotFoundError,
    AuditPermissionError,
    AuditRateLimitError,
    DuplicateSubmissionError,
    IngestionError,
    InvalidInventoryFileError,
    JobNotFoundError,
    StaleStageError,
    WorkflowStateError,
)
from site_audit_workflow.models import (
    AssetRecord,
    Audit,
    ComplianceJob,
    JobStats,
    StageGuardResult,
    Thresholds,
    TransitionResult,
    WorkflowStage,
    WorkflowStatus,
)

__all__ = [
    "__version__",
    "WorkflowConfig",
    "get_config",
    "AuditError",
    "AuditNotFoundError",
    "JobNotFoundError",
    "StaleStageError",
    "DuplicateSubmissionError",
    "IngestionError",
    "InvalidInventoryFileError",
    "WorkflowStateError",
    "AuditConnectionError",
    "AuditAuthError",
    "AuditPermissionError",
    "AuditRateLimitError",
    "AuditAPIError",
    "WorkflowStage",
    "Audit",
    "Thresholds",
    "StageGuardResult",
    "TransitionResult",
    "WorkflowStatus",
    "AssetRecord",
    "JobStats",
    "ComplianceJob",
]
