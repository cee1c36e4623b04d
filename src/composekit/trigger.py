"""Docker Compose status polling trigger.

Each poll cycle runs ``docker-compose --project-name <p> ps -a --format=json``,
parses the containers it reports, evaluates the trigger condition against
them and, only when the condition holds, emits one workflow execution.

Cycle states:
    IDLE -> RUNNING_COMMAND -> COLLECTING_OUTPUT -> PARSING
         -> EVALUATING_CONDITION -> EMITTING | SUPPRESSED -> IDLE

A cycle never keeps state for the next one. Failures are split in two
families:

- Data-level failures (non-zero compose exit, malformed output lines) are
  logged and reduce the cycle to "nothing to report".
- Infrastructure failures (ConfigurationError, ProcessLaunchError,
  CommandTimeoutError, ConditionEvaluationError, ExecutionEmitError)
  propagate to the caller.

Example usage:
    >>> trigger = ComposeStatusTrigger(
    ...     id="poll-web",
    ...     project_name="web-stack",
    ...     condition="{{ containers | selectattr('State', 'ne', 'running') | list | length > 0 }}",
    ... )
    >>> poller = ComposeStatusPoller()
    >>> result = await poller.poll(trigger)
    >>> result.execution
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from composekit.compose.collector import LogLineCollector
from composekit.compose.commands import ComposeOperation, build_command
from composekit.compose.environment import compose_environment
from composekit.compose.runner import ProcessRunner, SubprocessRunner
from composekit.compose.status import ContainerStatus, parse_status_lines
from composekit.config import ComposeConfig
from composekit.exceptions import ConditionEvaluationError, ConfigurationError
from composekit.executions import (
    Execution,
    ExecutionEmitter,
    RecordingExecutionEmitter,
    TriggerRef,
)
from composekit.logging import bind_trigger_context, get_logger, start_cycle_context
from composekit.templating import TemplateRenderer

CONTAINERS_VARIABLE = "containers"


class PollState(str, Enum):
    """States of a single poll cycle."""

    IDLE = "idle"
    RUNNING_COMMAND = "running_command"
    COLLECTING_OUTPUT = "collecting_output"
    PARSING = "parsing"
    EVALUATING_CONDITION = "evaluating_condition"
    EMITTING = "emitting"
    SUPPRESSED = "suppressed"


class ComposeStatusTrigger(BaseModel):
    """Definition of a status polling trigger.

    ``project_name``, ``docker_host`` and ``env`` values are templates
    rendered at every cycle with ``trigger`` and ``env`` (the process
    environment) as variables. ``condition`` is rendered with ``containers``.

    Attributes:
        id: Trigger identifier
        namespace: Namespace of the triggered flow
        flow_id: Triggered flow
        project_name: Compose project to watch (required)
        docker_host: Docker daemon address; empty clears any inherited value
        condition: Condition template; truthy output triggers the flow
        fire_without_condition: Result used when no condition is set
        interval_seconds: Time between two cycles
        env: Additional variables for the compose process
        working_dir: Directory the compose command runs in
    """

    id: str = Field(min_length=1)
    namespace: str = Field(default="default")
    flow_id: str | None = Field(default=None)
    project_name: str | None = Field(default=None)
    docker_host: str | None = Field(default=None)
    condition: str | None = Field(default=None)
    fire_without_condition: bool = Field(default=True)
    interval_seconds: float = Field(default=60.0, gt=0.0)
    env: dict[str, str] = Field(default_factory=dict)
    working_dir: Path | None = Field(default=None)

    @property
    def ref(self) -> TriggerRef:
        return TriggerRef(id=self.id, namespace=self.namespace, flow_id=self.flow_id)


class TriggerOutput(BaseModel):
    """Payload attached to an emitted execution."""

    containers: list[ContainerStatus] = Field(default_factory=list)


class PollResult(BaseModel):
    """Outcome of one poll cycle.

    Attributes:
        trigger_id: Trigger that ran the cycle
        containers: Parsed containers in compose output order
        exit_code: Exit code of the compose command
        condition_met: Whether an execution was requested
        parse_errors: Number of output lines that were skipped
        execution: Emitted execution, if any
        states: Cycle states visited, from IDLE back to IDLE
    """

    trigger_id: str
    containers: list[ContainerStatus] = Field(default_factory=list)
    exit_code: int
    condition_met: bool = False
    parse_errors: int = Field(default=0, ge=0)
    execution: Execution | None = None
    states: list[PollState] = Field(default_factory=list)


class _Cycle:
    """Tracks the states of the cycle in progress."""

    def __init__(self, logger: Any) -> None:
        self.logger = logger
        self.states: list[PollState] = [PollState.IDLE]

    @property
    def state(self) -> PollState:
        return self.states[-1]

    def advance(self, target: PollState) -> None:
        self.logger.debug("poll_state_changed", from_state=self.state.value, to_state=target.value)
        self.states.append(target)


class ComposeStatusPoller:
    """Runs poll cycles for status triggers.

    The poller itself holds no per-cycle state; one instance can serve many
    triggers, including concurrently.

    Attributes:
        runner: Process runner executing compose
        renderer: Template renderer for properties and conditions
        emitter: Execution emitter
        config: Compose configuration
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        renderer: TemplateRenderer | None = None,
        emitter: ExecutionEmitter | None = None,
        config: ComposeConfig | None = None,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.renderer = renderer or TemplateRenderer()
        self.emitter = emitter or RecordingExecutionEmitter()
        self.config = config or ComposeConfig()
        self.logger = get_logger(__name__)

    def _property_variables(self, trigger: ComposeStatusTrigger) -> dict[str, Any]:
        return {
            "trigger": {"id": trigger.id, "namespace": trigger.namespace, "flow_id": trigger.flow_id},
            "env": dict(os.environ),
        }

    def _render_property(self, name: str, template: str | None, variables: dict[str, Any]) -> str | None:
        try:
            return self.renderer.render(template, variables)
        except ConditionEvaluationError as e:
            raise ConfigurationError(f"Unable to render '{name}': {e.reason}") from e

    def render_project_name(self, trigger: ComposeStatusTrigger) -> str:
        """Render the project name.

        Raises:
            ConfigurationError: If the project name is unset, blank or unrenderable.
        """
        project_name = self._render_property(
            "project_name", trigger.project_name, self._property_variables(trigger)
        )
        if project_name is None or not project_name.strip():
            raise ConfigurationError(f"Trigger '{trigger.id}' has no Docker Compose project name")
        return project_name

    def build_environment(self, trigger: ComposeStatusTrigger) -> dict[str, str]:
        variables = self._property_variables(trigger)
        docker_host = self._render_property("docker_host", trigger.docker_host, variables)
        extra_env = {
            key: self._render_property(f"env.{key}", value, variables) or ""
            for key, value in trigger.env.items()
        }
        return compose_environment(docker_host, extra_env, self.config)

    async def poll(self, trigger: ComposeStatusTrigger) -> PollResult:
        """Run one complete poll cycle.

        Args:
            trigger: Trigger definition

        Returns:
            PollResult describing the cycle; ``execution`` is set only when
            the condition held

        Raises:
            ConfigurationError: If the project name cannot be resolved.
            ProcessLaunchError: If compose cannot be started.
            CommandTimeoutError: If compose exceeds the configured timeout.
            ConditionEvaluationError: If the condition fails to render.
            ExecutionEmitError: If the emitter cannot create the execution.
        """
        start_cycle_context(trigger.id)
        cycle = _Cycle(self.logger)

        project_name = self.render_project_name(trigger)
        bind_trigger_context(trigger.id, project_name)
        env = self.build_environment(trigger)
        command = build_command(project_name, ComposeOperation.PS, binary=self.config.binary)

        self.logger.info("poll_cycle_started", command=command)

        collector = LogLineCollector()
        cycle.advance(PollState.RUNNING_COMMAND)
        cycle.advance(PollState.COLLECTING_OUTPUT)
        result = await self.runner.run(
            command,
            env=env,
            sink=collector,
            cwd=trigger.working_dir,
            timeout=self.config.command_timeout_seconds or None,
        )

        if result.exit_code != 0:
            self.logger.error(
                "compose_command_failed",
                exit_code=result.exit_code,
                stderr=collector.stderr_lines()[-20:],
            )
            cycle.advance(PollState.IDLE)
            return PollResult(
                trigger_id=trigger.id,
                exit_code=result.exit_code,
                states=cycle.states,
            )

        self.logger.debug("compose_output", lines=collector.lines())

        cycle.advance(PollState.PARSING)
        report = parse_status_lines(collector.lines())

        cycle.advance(PollState.EVALUATING_CONDITION)
        variables = {CONTAINERS_VARIABLE: [c.to_output() for c in report.containers]}
        condition_met = self.renderer.evaluate_condition(
            trigger.condition,
            variables,
            default=trigger.fire_without_condition,
        )

        execution: Execution | None = None
        if condition_met:
            cycle.advance(PollState.EMITTING)
            self.logger.info(
                "trigger_condition_met",
                container_count=len(report.containers),
            )
            execution = await self.emitter.emit(
                trigger.ref, TriggerOutput(containers=report.containers)
            )
        else:
            cycle.advance(PollState.SUPPRESSED)
            self.logger.info(
                "trigger_condition_not_met",
                container_count=len(report.containers),
            )

        cycle.advance(PollState.IDLE)
        return PollResult(
            trigger_id=trigger.id,
            containers=report.containers,
            exit_code=result.exit_code,
            condition_met=condition_met,
            parse_errors=report.errors,
            execution=execution,
            states=cycle.states,
        )

    async def evaluate(self, trigger: ComposeStatusTrigger) -> Execution | None:
        """Run one poll cycle and return the emitted execution, if any."""
        result = await self.poll(trigger)
        return result.execution
