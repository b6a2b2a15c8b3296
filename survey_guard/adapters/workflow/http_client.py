"""HTTP workflow client adapter (e.g. an automation flow's HTTP trigger)."""

import logging
from typing import Any

import httpx

from survey_guard.adapters.workflow.base import AbstractWorkflowClient
from survey_guard.core.errors import UpstreamAppError
from survey_guard.core.logging import diagnostics_enabled

logger = logging.getLogger(__name__)


class HttpWorkflowClient(AbstractWorkflowClient):
    """POST submissions as JSON to a workflow trigger URL."""

    def __init__(
        self,
        submit_url: str | None,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            submit_url: Trigger URL; None leaves the client unconfigured.
            timeout_seconds: Total timeout applied to each call.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self.submit_url = submit_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def submit(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send the payload and return the workflow's JSON answer.

        Raises:
            UpstreamAppError: If unconfigured, unreachable or non-2xx.
        """
        if not self.submit_url:
            raise UpstreamAppError(
                code="workflow_not_configured",
                message="Submission backend is not configured",
                details={"hint": "Set WORKFLOW_SUBMIT_URL", "http_status": 500},
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.submit_url, json=payload)
        except httpx.HTTPError as exc:
            extra = {"error_type": type(exc).__name__}
            if diagnostics_enabled():
                extra["error_msg"] = str(exc)
            logger.error("workflow.unreachable", extra=extra)
            raise UpstreamAppError(
                code="workflow_unreachable",
                message="Failed to submit data to the workflow backend",
            ) from exc

        if not response.is_success:
            extra = {"status_code": response.status_code}
            if diagnostics_enabled():
                extra["response_text"] = response.text[:500]
            logger.error("workflow.rejected", extra=extra)
            raise UpstreamAppError(
                code="workflow_rejected",
                message="Failed to submit data to the workflow backend",
                details={"context": {"upstream_status": response.status_code}},
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"result": data}
