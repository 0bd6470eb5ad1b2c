"""Pydantic v2 data models for audits, workflow transitions, compliance jobs and asset records.

All core data structures shared by the orchestrator, the guard registry, the
action executor and the ingestion pipeline live here.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from enum import IntEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

UNKNOWN = "Desconocido"

COMPONENTS: tuple[str, ...] = ("cpu", "ram", "storage", "os", "network")

ActionStatus = Literal["ok", "failed"]
JobStatus = Literal["running", "completed", "failed", "cancelled"]
TrailEventType = Literal[
    "audit_created",
    "audit_configured",
    "stage_advanced",
    "inventory_uploaded",
    "ingestion_completed",
    "ingestion_failed",
    "ingestion_cancelled",
]


class WorkflowStage(IntEnum):
    """The eight ordered audit stages. The enum value is the stage number."""

    CONFIGURATION = 1
    NOTIFICATION = 2
    ONSITE_PRESENTATION_UPLOAD = 3
    INVENTORY_UPLOAD = 4
    AUTOMATIC_VALIDATION = 5
    AUDITOR_REVIEW = 6
    RESULT_NOTIFICATION = 7
    COMPLETED = 8

    @property
    def state_name(self) -> str:
        return _STATE_NAMES[self]

    @property
    def is_terminal(self) -> bool:
        return self is WorkflowStage.COMPLETED

    @property
    def is_automatic(self) -> bool:
        """Whether entering this stage runs automatic actions."""
        return self in _AUTOMATIC_STAGES

    @property
    def next(self) -> WorkflowStage | None:
        if self.is_terminal:
            return None
        return WorkflowStage(self.value + 1)

    @classmethod
    def from_state_name(cls, name: str) -> WorkflowStage:
        for stage, state in _STATE_NAMES.items():
            if state == name:
                return stage
        raise ValueError(f"Unknown workflow state: {name}")


_STATE_NAMES: dict[WorkflowStage, str] = {
    WorkflowStage.CONFIGURATION: "Configuration",
    WorkflowStage.NOTIFICATION: "Notification",
    WorkflowStage.ONSITE_PRESENTATION_UPLOAD: "OnsitePresentationUpload",
    WorkflowStage.INVENTORY_UPLOAD: "InventoryUpload",
    WorkflowStage.AUTOMATIC_VALIDATION: "AutomaticValidation",
    WorkflowStage.AUDITOR_REVIEW: "AuditorReview",
    WorkflowStage.RESULT_NOTIFICATION: "ResultNotification",
    WorkflowStage.COMPLETED: "Completed",
}

_AUTOMATIC_STAGES = frozenset({
    WorkflowStage.NOTIFICATION,
    WorkflowStage.AUTOMATIC_VALIDATION,
    WorkflowStage.RESULT_NOTIFICATION,
    WorkflowStage.COMPLETED,
})


class CpuRule(BaseModel):
    """An approved processor family with its minimum generation and clock speed."""

    model_config = ConfigDict(frozen=True)

    brand: str
    model: str
    min_generation: int | None = None
    min_speed_ghz: float = 0.0


class LinkMinimum(BaseModel):
    """Minimum link speeds for one attention type."""

    model_config = ConfigDict(frozen=True)

    download_mbps: float = 0.0
    upload_mbps: float = 0.0


def _default_cpu_rules() -> tuple[CpuRule, ...]:
    return (
        CpuRule(brand="Intel", model="Core i5", min_generation=8, min_speed_ghz=3.0),
        CpuRule(brand="Intel", model="Core i7"),
        CpuRule(brand="Intel", model="Core i9"),
        CpuRule(brand="AMD", model="Ryzen 5", min_speed_ghz=3.7),
        CpuRule(brand="AMD", model="Ryzen 7"),
        CpuRule(brand="AMD", model="Ryzen 9"),
    )


def _default_link_minimums() -> dict[str, LinkMinimum]:
    return {
        "Remoto": LinkMinimum(download_mbps=15, upload_mbps=6),
        "Presencial": LinkMinimum(),
    }


class Thresholds(BaseModel):
    """Compliance rule set snapshotted onto an audit when it is configured."""

    model_config = ConfigDict(frozen=True)

    cpu_rules: tuple[CpuRule, ...] = Field(default_factory=_default_cpu_rules)
    min_ram_gb: float = 16
    allowed_storage_types: tuple[str, ...] = ("SSD", "NVMe")
    min_storage_gb: float = 500
    required_os: str = "Windows 11"
    link_minimums: dict[str, LinkMinimum] = Field(default_factory=_default_link_minimums)
    min_quality_score: int = Field(0, ge=0, le=100)


class Audit(BaseModel):
    """An audit record. Mutated only by the workflow orchestrator."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    code: str = ""
    stage: WorkflowStage = WorkflowStage.CONFIGURATION
    provider_id: str | None = None
    auditor_id: str | None = None
    scheduled_date: date | None = None
    deadline: date | None = None
    thresholds: Thresholds | None = None
    progress: dict = Field(default_factory=dict)
    archived: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stage_entered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def state(self) -> str:
        return self.stage.state_name


class StageGuardResult(BaseModel):
    """Outcome of evaluating the guard of an audit's current stage."""

    allowed: bool
    reason: str | None = None
    required_actions: list[str] = Field(default_factory=list)

    @classmethod
    def allow(cls) -> StageGuardResult:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, required_actions: list[str] | None = None) -> StageGuardResult:
        return cls(allowed=False, reason=reason, required_actions=required_actions or [])


class ActionOutcome(BaseModel):
    """Result of a best-effort call to a collaborator."""

    ok: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> ActionOutcome:
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> ActionOutcome:
        return cls(ok=False, reason=reason)


class ActionLogEntry(BaseModel):
    """One automatic action attempted during a transition."""

    action: str
    outcome: ActionStatus
    error: str | None = None
    blocking: bool = False
    duration_ms: int = 0


class TransitionResult(BaseModel):
    """Result of an advance-stage request."""

    audit_id: str
    allowed: bool
    from_stage: int
    to_stage: int
    new_state: str
    reason: str | None = None
    required_actions: list[str] = Field(default_factory=list)
    action_log: list[ActionLogEntry] = Field(default_factory=list)
    degraded: bool = False
    aborted: bool = False


class WorkflowStatus(BaseModel):
    """Read-only projection of where an audit stands in the workflow."""

    audit_id: str
    stage: int
    state: str
    can_advance: bool
    blocking_reason: str | None = None
    required_actions: list[str] = Field(default_factory=list)
    next_state: str | None = None
    progress_pct: int = 0
    time_in_stage: str = ""


class AssetRecord(BaseModel):
    """One normalized, evaluated inventory row. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    row_number: int
    provider: str = UNKNOWN
    site: str = UNKNOWN
    attention_type: str = UNKNOWN
    user_id: str = UNKNOWN
    hostname: str = UNKNOWN
    cpu_brand: str = UNKNOWN
    cpu_model: str = UNKNOWN
    cpu_generation: int | None = None
    cpu_speed_ghz: float = 0.0
    ram_gb: float = 0.0
    storage_type: str = UNKNOWN
    storage_gb: float = 0.0
    os_name: str = UNKNOWN
    browser: str = UNKNOWN
    antivirus: str = UNKNOWN
    antivirus_updated: bool | None = None
    headset: str = UNKNOWN
    isp_name: str = UNKNOWN
    connection_type: str = UNKNOWN
    download_mbps: float = 0.0
    upload_mbps: float = 0.0
    component_compliance: dict[str, bool] = Field(default_factory=dict)
    failure_reasons: dict[str, str] = Field(default_factory=dict)
    overall_compliant: bool = False
    quality_score: int = Field(0, ge=0, le=100)


class JobStats(BaseModel):
    """Aggregate statistics of one ingestion run."""

    total_rows: int = 0
    processed_rows: int = 0
    persisted_rows: int = 0
    rejected_rows: int = 0
    compliant_rows: int = 0
    compliance_rate: float = 0.0
    component_pass_rate: dict[str, float] = Field(default_factory=dict)
    mean_quality_score: int = 0
    column_mapping: dict[str, str] = Field(default_factory=dict)
    unresolved_fields: list[str] = Field(default_factory=list)
    attention_distribution: dict[str, int] = Field(default_factory=dict)
    cpu_brand_distribution: dict[str, int] = Field(default_factory=dict)
    storage_type_distribution: dict[str, int] = Field(default_factory=dict)
    failure_reasons: dict[str, int] = Field(default_factory=dict)


class ComplianceJob(BaseModel):
    """One run of the inventory ingestion pipeline over a submitted spreadsheet."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    audit_id: str
    source_hash: str
    filename: str | None = None
    strict: bool = False
    status: JobStatus = "running"
    records: list[AssetRecord] = Field(default_factory=list)
    stats: JobStats = Field(default_factory=JobStats)
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None


class InventoryUpload(BaseModel):
    """The inventory spreadsheet a provider uploaded during the inventory stage."""

    audit_id: str
    filename: str
    content_hash: str
    validated: bool = False
    validation_error: str | None = None
    resolved_fields: list[str] = Field(default_factory=list)
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DocumentSection(BaseModel):
    """A document section as reported by the document store."""

    section: str
    has_active_upload: bool = False
    is_mandatory: bool = False


class SectionEvaluation(BaseModel):
    """An auditor's verdict on one assigned evaluation section."""

    section: str
    verdict: str | None = None
    critical: bool = False
    resolved: bool = False


class AIScore(BaseModel):
    """Result contract of the AI document scorer."""

    score: float = Field(ge=0, le=100)
    details: dict = Field(default_factory=dict)


class TrailEvent(BaseModel):
    """An entry handed to the audit trail recorder."""

    audit_id: str
    type: TrailEventType
    before: dict | None = None
    after: dict | None = None
    actor: str | None = None
    metadata: dict = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
