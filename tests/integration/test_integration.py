"""Integration tests requiring a reachable audit portal.

These tests are skipped unless the PORTAL_API_URL environment variable is
set (PORTAL_API_TOKEN as well, when the portal requires one).

Run with: pytest tests/integration -m integration
"""

from __future__ import annotations

import os

import pytest

pytestmark = pytest.mark.integration

SKIP_REASON = "Audit portal not configured"
HAS_PORTAL = bool(os.environ.get("PORTAL_API_URL"))


@pytest.fixture
def live_config():
    from site_audit_workflow.config import WorkflowConfig

    return WorkflowConfig()


@pytest.fixture
def live_client(live_config):
    from site_audit_workflow.client import PortalClient

    return PortalClient(live_config)


@pytest.fixture
def live_services(tmp_path, live_config):
    from site_audit_workflow.server import build_services

    config = live_config.model_copy(update={"audit_storage_path": str(tmp_path / "integration-audit")})
    services = build_services(config)
    yield services
    services.pipeline.shutdown()


@pytest.mark.skipif(not HAS_PORTAL, reason=SKIP_REASON)
def test_client_connectivity(live_client) -> None:
    """Verify the client can reach the portal health endpoint."""
    assert live_client.ping() is True


@pytest.mark.skipif(not HAS_PORTAL, reason=SKIP_REASON)
def test_first_transition_live(live_services) -> None:
    """Create a configured audit and send its start notification through the portal."""
    from datetime import date

    orchestrator = live_services.orchestrator
    audit = orchestrator.create_audit(
        "AUD-INTEGRATION", provider_id="integration-provider", auditor_id="integration-auditor",
        scheduled_date=date.today(), actor="integration",
    )
    result = orchestrator.advance_stage(audit.id, expected_stage=1, actor="integration")
    assert result.allowed
    assert result.to_stage == 2
    assert [e.action for e in result.action_log] == ["send_start_notification"]
