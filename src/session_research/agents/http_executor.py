"""HTTP client for a remote workflow service."""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
import logfire

from session_research.core.config import config as global_config
from session_research.core.exceptions import ExternalServiceError, MalformedResponseError
from session_research.core.resilience import retry_async


class HTTPWorkflowExecutor:
    """Executes workflows by POSTing to ``{base_url}/workflows/{name}``.

    Transport failures and 5xx responses are retried with backoff; 4xx
    responses and non-JSON bodies fail immediately.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        attempts: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        url = base_url or global_config.workflow_service_url
        if not url:
            raise ValueError("HTTPWorkflowExecutor requires a base_url or WORKFLOW_SERVICE_URL")
        self.base_url = url.rstrip("/")
        self.timeout = timeout or global_config.workflow_timeout_seconds
        self.attempts = attempts
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

    async def __aenter__(self) -> HTTPWorkflowExecutor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _post_once(self, name: str, payload: dict[str, Any]) -> Any:
        try:
            resp = await self.client.post(
                f"{self.base_url}/workflows/{name}", json={"input": payload}
            )
        except httpx.TransportError as e:
            raise ExternalServiceError(
                service="workflow-service", message=f"{name} transport failure", original_error=e
            ) from e

        if resp.status_code >= 500:
            raise ExternalServiceError(
                service="workflow-service",
                message=f"{name} returned HTTP {resp.status_code}",
            )
        if resp.status_code >= 400:
            raise MalformedResponseError(name, f"HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedResponseError(name, "response body is not JSON") from e

        # Services may wrap the workflow output in {"result": ...}
        if isinstance(body, dict) and set(body) == {"result"}:
            return body["result"]
        return body

    async def execute_workflow(self, name: str, payload: dict[str, Any]) -> Any:
        logfire.debug("Dispatching workflow over HTTP", workflow=name, base_url=self.base_url)
        return await retry_async(self._post_once, name, payload, attempts=self.attempts, operation=name)


__all__ = ["HTTPWorkflowExecutor"]
