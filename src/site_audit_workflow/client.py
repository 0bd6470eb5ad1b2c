"""Portal REST client with token authentication, retry logic, and error mapping.

Used by the HTTP collaborator adapters (document store, evaluations,
notifications, AI scoring, report generation). Transient failures are
retried with exponential backoff; HTTP errors become typed exceptions.
"""

from __future__ import annotations

import logging
import time

import requests

from site_audit_workflow.config import WorkflowConfig
from site_audit_workflow.exceptions import (
    AuditAPIError,
    AuditAuthError,
    AuditConnectionError,
    AuditNotFoundError,
    AuditPermissionError,
    AuditRateLimitError,
)

logger = logging.getLogger(__name__)


class PortalClient:
    """JSON client for the audit portal API."""

    def __init__(self, config: WorkflowConfig) -> None:
        self.config = config
        self.base_url = config.portal_api_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        if config.portal_api_token:
            self.session.headers["Authorization"] = f"Bearer {config.portal_api_token}"
        self.timeout = config.portal_timeout
        self.max_retries = config.portal_max_retries

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: object) -> requests.Response:
        """Send a request, retrying rate limits and connection failures.

        Makes up to ``max_retries + 1`` attempts. Auth, permission, not-found
        and other API errors are raised immediately.
        """
        url = self._url(path)
        attempts = self.max_retries + 1
        last_exception: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)  # type: ignore[arg-type]
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_exception = AuditConnectionError(
                    f"Portal unreachable: {exc}",
                    details={"url": url, "attempt": attempt},
                )
                delay = 2 ** (attempt - 1)
            else:
                try:
                    self._raise_for_status(response)
                    return response
                except AuditRateLimitError as exc:
                    last_exception = exc
                    delay = exc.retry_after or 2 ** (attempt - 1)

            if attempt < attempts:
                logger.warning("%s %s failed (%s), retry %d/%d in %ds",
                               method, path, last_exception, attempt, self.max_retries, delay)
                time.sleep(delay)
        raise last_exception  # type: ignore[misc]

    def _raise_for_status(self, response: requests.Response) -> None:
        if response.ok:
            return
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:500]}

        if status == 401:
            raise AuditAuthError("Portal rejected the API token", details=body)
        if status == 403:
            raise AuditPermissionError("Portal denied the operation", details=body)
        if status == 404:
            raise AuditNotFoundError("Portal resource not found", details=body)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise AuditRateLimitError(
                "Portal rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                details=body,
            )
        raise AuditAPIError(f"Portal error: HTTP {status}", status_code=status, details=body)

    @staticmethod
    def _payload(response: requests.Response) -> object:
        """Unwrap the portal's ``{"success": ..., "data": ...}`` envelope."""
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise AuditAPIError("Portal returned a non-JSON body", status_code=response.status_code) from exc
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def get_json(self, path: str, params: dict | None = None) -> object:
        """GET a portal resource and return its data payload."""
        return self._payload(self._request("GET", path, params=params or {}))

    def post_json(self, path: str, payload: dict | None = None) -> object:
        """POST a JSON body and return the data payload of the response."""
        return self._payload(self._request("POST", path, json=payload or {}))

    def ping(self) -> bool:
        """Check that the portal answers its health endpoint."""
        self._request("GET", "health")
        return True
