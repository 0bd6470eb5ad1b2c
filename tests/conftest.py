"""Shared test fixtures for the site audit workflow test suite.

Unit tests use MagicMock for the portal HTTP session and for collaborators.
Integration tests (tests/integration/) require a reachable audit portal.
"""

from __future__ import annotations

import csv
import io
import os
import threading
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from openpyxl import Workbook

from site_audit_workflow.actions import ActionExecutor
from site_audit_workflow.client import PortalClient
from site_audit_workflow.collaborators import StorageTrailRecorder
from site_audit_workflow.config import WorkflowConfig
from site_audit_workflow.engine import WorkflowOrchestrator
from site_audit_workflow.etl.normalizer import FieldNormalizer
from site_audit_workflow.etl.pipeline import CompliancePipeline
from site_audit_workflow.guards import StageGuardRegistry
from site_audit_workflow.models import (
    ActionOutcome,
    AIScore,
    Audit,
    DocumentSection,
    SectionEvaluation,
    Thresholds,
)
from site_audit_workflow.storage import AuditStorage, InMemoryJobStore

MANDATORY_SECTIONS = ["cuarto_tecnologia", "energia", "seguridad_informatica"]

INVENTORY_HEADERS = [
    "Proveedor",
    "Sitio",
    "Atención",
    "Usuario",
    "Hostname",
    "Procesador",
    "Memoria RAM",
    "Disco",
    "Sistema Operativo",
    "Navegador",
    "Antivirus",
    "Diadema",
    "ISP",
    "Tipo de Conexión",
    "Velocidad de Bajada (Mbps)",
    "Velocidad de Subida (Mbps)",
]

COMPLIANT_ROW = [
    "Grupo Activo", "Sede Norte", "Remoto", "u001", "PC-001",
    "Intel Core i7-10700 @ 2.90GHz", "16 GB", "SSD 512 GB", "Windows 11 Pro",
    "Chrome", "Windows Defender", "Jabra", "Telecentro", "Fibra", "100", "20",
]

NON_COMPLIANT_ROW = [
    "Grupo Activo", "Sede Norte", "Remoto", "u002", "PC-002",
    "Intel Core i3-7100 @ 3.90GHz", "8 GB", "HDD 1 TB", "Windows 10 Pro",
    "Firefox", "ESET", "Logitech", "Claro", "ADSL", "10", "2",
]


def inventory_rows(compliant: int, non_compliant: int) -> list[list[object]]:
    rows: list[list[object]] = []
    for i in range(compliant):
        rows.append([*COMPLIANT_ROW[:3], f"ok{i:03d}", f"PC-OK-{i:03d}", *COMPLIANT_ROW[5:]])
    for i in range(non_compliant):
        rows.append([*NON_COMPLIANT_ROW[:3], f"ko{i:03d}", f"PC-KO-{i:03d}", *NON_COMPLIANT_ROW[5:]])
    return rows


class BlockingNormalizer(FieldNormalizer):
    """Normalizer that holds every row until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()
        self.started = threading.Event()

    def normalize_row(self, cells):  # noqa: ANN001, ANN201
        self.started.set()
        self.release.wait(timeout=10)
        return super().normalize_row(cells)


def build_xlsx(headers: list[str], rows: list[list[object]]) -> bytes:
    """Return an in-memory .xlsx workbook with one sheet."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(headers)
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_csv(headers: list[str], rows: list[list[object]], delimiter: str = ",") -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def env_configured() -> bool:
    """Check whether the portal environment variables are configured."""
    return bool(os.environ.get("PORTAL_API_URL"))


@pytest.fixture
def workflow_config(tmp_path: Path) -> WorkflowConfig:
    """Return a WorkflowConfig with test values."""
    return WorkflowConfig(
        PORTAL_API_URL="https://portal.test/api",
        PORTAL_API_TOKEN="test-token",
        PORTAL_TIMEOUT=10,
        PORTAL_MAX_RETRIES=1,
        AUDIT_STORAGE_PATH=str(tmp_path / "workflow-storage"),
        ACTION_TIMEOUT_SECONDS=5,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def mock_session() -> MagicMock:
    """Return a MagicMock that simulates a requests.Session."""
    session = MagicMock()
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    response.content = b'{"success": true, "data": []}'
    response.json.return_value = {"success": True, "data": []}
    session.request.return_value = response
    return session


@pytest.fixture
def portal_client(workflow_config: WorkflowConfig, mock_session: MagicMock) -> PortalClient:
    """Return a PortalClient with a mocked HTTP session."""
    client = PortalClient(workflow_config)
    client.session = mock_session
    return client


@pytest.fixture
def audit_storage(tmp_path: Path) -> AuditStorage:
    """Return an AuditStorage using a temp directory."""
    return AuditStorage(str(tmp_path / "audit-storage"))


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def trail(audit_storage: AuditStorage) -> StorageTrailRecorder:
    return StorageTrailRecorder(audit_storage)


@pytest.fixture
def pipeline(audit_storage: AuditStorage, job_store: InMemoryJobStore, trail: StorageTrailRecorder):
    """Return a CompliancePipeline over temp storage; worker pools are shut down after the test."""
    pipe = CompliancePipeline(audit_storage, job_store, trail=trail, workers=2, row_workers=4)
    yield pipe
    pipe.shutdown(wait=True)


@pytest.fixture
def stored_audit(audit_storage: AuditStorage) -> Audit:
    """A fully configured audit saved at stage 1."""
    audit = Audit(
        code="AUD-2024-001",
        provider_id="prov-1",
        auditor_id="auditor-1",
        scheduled_date=date(2024, 5, 10),
        thresholds=Thresholds(),
    )
    audit_storage.save_audit(audit)
    return audit


@pytest.fixture
def documents() -> MagicMock:
    """Document store where every mandatory section has an active upload."""
    store = MagicMock()
    store.list_sections.return_value = [
        DocumentSection(section=name, has_active_upload=True, is_mandatory=True) for name in MANDATORY_SECTIONS
    ]
    return store


@pytest.fixture
def evaluations() -> MagicMock:
    store = MagicMock()
    store.list_evaluations.return_value = [
        SectionEvaluation(section=name, verdict="approved") for name in MANDATORY_SECTIONS
    ]
    return store


@pytest.fixture
def notifier() -> MagicMock:
    sender = MagicMock()
    sender.send.return_value = ActionOutcome.success()
    return sender


@pytest.fixture
def ai_scorer() -> MagicMock:
    scorer = MagicMock()
    scorer.score.return_value = AIScore(score=87.5, details={"documents": 3})
    return scorer


@pytest.fixture
def report_generator() -> MagicMock:
    generator = MagicMock()
    generator.generate.return_value = "reports/AUD-2024-001.pdf"
    return generator


@pytest.fixture
def guards(audit_storage, pipeline, documents, evaluations) -> StageGuardRegistry:
    return StageGuardRegistry(audit_storage, pipeline, documents, evaluations, mandatory_sections=MANDATORY_SECTIONS)


@pytest.fixture
def executor(audit_storage, pipeline, notifier, ai_scorer, report_generator) -> ActionExecutor:
    return ActionExecutor(audit_storage, pipeline, notifier, ai_scorer, report_generator, timeout_seconds=5)


@pytest.fixture
def orchestrator(audit_storage, guards, executor, trail) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(audit_storage, guards, executor, trail=trail)
