"""Workflow execution emitters.

A trigger whose condition is met hands its identity and output payload to an
ExecutionEmitter, which creates the workflow execution. Two emitters ship
with Composekit:

- RecordingExecutionEmitter keeps executions in memory (CLI display, tests,
  embedding in a host that drains them).
- WebhookExecutionEmitter posts each execution to an HTTP endpoint, such as
  a workflow engine's webhook trigger.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from composekit.config import WebhookConfig
from composekit.exceptions import ExecutionEmitError
from composekit.logging import get_logger


class TriggerRef(BaseModel):
    """Identity of the trigger that produced an execution."""

    id: str
    namespace: str = "default"
    flow_id: str | None = None


class Execution(BaseModel):
    """A workflow execution created by a trigger.

    Attributes:
        id: Unique execution identifier
        namespace: Namespace of the triggered flow
        flow_id: Triggered flow, when the trigger is bound to one
        trigger_id: Identifier of the emitting trigger
        outputs: Trigger output payload
        created_at: Creation timestamp (UTC)
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    namespace: str
    flow_id: str | None = None
    trigger_id: str
    outputs: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def new_execution(trigger: TriggerRef, output: BaseModel) -> Execution:
    return Execution(
        namespace=trigger.namespace,
        flow_id=trigger.flow_id,
        trigger_id=trigger.id,
        outputs=output.model_dump(mode="json", by_alias=True),
    )


class ExecutionEmitter(Protocol):
    """Creates a workflow execution for a trigger."""

    async def emit(self, trigger: TriggerRef, output: BaseModel) -> Execution: ...


class RecordingExecutionEmitter:
    """Emitter that records executions in memory."""

    def __init__(self) -> None:
        self.executions: list[Execution] = []
        self.logger = get_logger(__name__)

    async def emit(self, trigger: TriggerRef, output: BaseModel) -> Execution:
        execution = new_execution(trigger, output)
        self.executions.append(execution)
        self.logger.info(
            "execution_recorded",
            execution_id=execution.id,
            trigger_id=trigger.id,
        )
        return execution


class WebhookExecutionEmitter:
    """Emitter that posts executions to a webhook endpoint.

    The request body is the execution serialised as JSON. A non-success
    status or a transport error raises ExecutionEmitError, so that the
    scheduler records the cycle as failed.
    """

    def __init__(self, config: WebhookConfig) -> None:
        if not config.url:
            raise ValueError("Webhook emitter requires a URL")
        self.config = config
        self.logger = get_logger(__name__)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def emit(self, trigger: TriggerRef, output: BaseModel) -> Execution:
        execution = new_execution(trigger, output)

        if not self.config.enabled:
            self.logger.debug("webhook_disabled", trigger_id=trigger.id)
            return execution

        headers = {"Content-Type": "application/json"}
        if self.config.auth_header:
            headers["Authorization"] = self.config.auth_header

        try:
            client = await self._get_client()
            response = await client.post(
                self.config.url,
                json=execution.model_dump(mode="json"),
                headers=headers,
            )
        except httpx.RequestError as e:
            self.logger.error(
                "webhook_request_error",
                trigger_id=trigger.id,
                error=str(e),
            )
            raise ExecutionEmitError(f"Webhook request failed: {e}") from e

        if not response.is_success:
            self.logger.warning(
                "webhook_rejected",
                trigger_id=trigger.id,
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise ExecutionEmitError(
                f"Webhook returned HTTP {response.status_code} for trigger {trigger.id}"
            )

        self.logger.info(
            "webhook_execution_sent",
            execution_id=execution.id,
            trigger_id=trigger.id,
            status_code=response.status_code,
        )
        return execution
