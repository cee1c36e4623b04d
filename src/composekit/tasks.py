"""Runnable Docker Compose tasks.

Each task renders its templated properties, prepares a working directory,
builds the compose command line and runs it through a ProcessRunner. Unlike
the polling trigger, a task fails when compose exits with a non-zero code:
a workflow step that could not bring a stack up must fail the workflow.

Example usage:
    >>> task = Up(project_name="web-stack", yaml=COMPOSE_YAML, detached=True, wait=True)
    >>> output = await task.run()
    >>> output.exit_code
    0
"""

from __future__ import annotations

import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from composekit.compose.collector import LogLineCollector
from composekit.compose.commands import ComposeOperation, ComposeOptions, RemoveImages, build_command
from composekit.compose.environment import compose_environment
from composekit.compose.runner import ProcessRunner, SubprocessRunner
from composekit.compose.status import ContainerStatus, parse_status_lines
from composekit.config import ComposeConfig
from composekit.exceptions import CommandExitError, ConditionEvaluationError, ConfigurationError
from composekit.logging import get_logger
from composekit.templating import TemplateRenderer

logger = get_logger(__name__)

COMPOSE_FILE_NAME = "docker-compose.yaml"


class ScriptOutput(BaseModel):
    """Result of a compose task.

    Attributes:
        exit_code: Exit code of the compose command
        stdout_line_count: Lines printed on stdout
        stderr_line_count: Lines printed on stderr
        duration_seconds: Command duration
        lines: Collected output, stdout and stderr interleaved
    """

    exit_code: int
    stdout_line_count: int = 0
    stderr_line_count: int = 0
    duration_seconds: float = 0.0
    lines: list[str] = Field(default_factory=list)


class PsOutput(ScriptOutput):
    """Result of the Ps task."""

    containers: list[ContainerStatus] = Field(default_factory=list)


class TaskContext:
    """Collaborators shared by task runs."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        renderer: TemplateRenderer | None = None,
        config: ComposeConfig | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.renderer = renderer or TemplateRenderer()
        self.config = config or ComposeConfig()
        self.variables = dict(variables or {})

    def render(self, name: str, template: str | None) -> str | None:
        try:
            return self.renderer.render(template, self.variables)
        except ConditionEvaluationError as e:
            raise ConfigurationError(f"Unable to render '{name}': {e.reason}") from e


class ComposeTask(BaseModel):
    """Base class for tasks driving one compose operation.

    Attributes:
        project_name: Compose project name (required, templated)
        docker_host: Docker daemon address (templated)
        env: Additional variables for the compose process (templated values)
    """

    operation: ClassVar[ComposeOperation]

    project_name: str | None = Field(default=None)
    docker_host: str | None = Field(default=None)
    env: dict[str, str] = Field(default_factory=dict)

    def options(self) -> ComposeOptions:
        return ComposeOptions()

    def prepare(self, working_dir: Path, context: TaskContext) -> None:
        """Write the files the command needs into the working directory."""

    def build_output(self, output: ScriptOutput, collector: LogLineCollector) -> ScriptOutput:
        return output

    def build_commands(self, context: TaskContext) -> list[str]:
        project_name = context.render("project_name", self.project_name)
        return build_command(
            project_name, self.operation, self.options(), binary=context.config.binary
        )

    def build_environment(self, context: TaskContext) -> dict[str, str]:
        extra_env = {
            key: context.render(f"env.{key}", value) or "" for key, value in self.env.items()
        }
        docker_host = context.render("docker_host", self.docker_host)
        return compose_environment(docker_host, extra_env, context.config)

    async def run(
        self,
        context: TaskContext | None = None,
        working_dir: Path | None = None,
    ) -> ScriptOutput:
        """Run the task.

        Args:
            context: Runner, renderer and configuration; defaults are used if None
            working_dir: Directory to run in; a temporary directory otherwise

        Returns:
            ScriptOutput of the compose command

        Raises:
            ConfigurationError: If a required property is missing or unrenderable.
            ProcessLaunchError: If compose cannot be started.
            CommandTimeoutError: If compose exceeds the configured timeout.
            CommandExitError: If compose exits with a non-zero code.
        """
        context = context or TaskContext()
        if working_dir is not None:
            return await self._execute(working_dir, context)
        with tempfile.TemporaryDirectory(prefix="composekit-") as tmp:
            return await self._execute(Path(tmp), context)

    async def _execute(self, working_dir: Path, context: TaskContext) -> ScriptOutput:
        command = self.build_commands(context)
        env = self.build_environment(context)
        self.prepare(working_dir, context)

        logger.info("compose_task_running", operation=self.operation.value, command=command)

        collector = LogLineCollector()
        result = await context.runner.run(
            command,
            env=env,
            sink=collector,
            cwd=working_dir,
            timeout=context.config.command_timeout_seconds or None,
        )

        if result.exit_code != 0:
            logger.error(
                "compose_task_failed",
                operation=self.operation.value,
                exit_code=result.exit_code,
            )
            raise CommandExitError(command, result.exit_code, collector.lines())

        logger.info(
            "compose_task_succeeded",
            operation=self.operation.value,
            duration_seconds=round(result.duration_seconds, 2),
        )
        output = ScriptOutput(
            exit_code=result.exit_code,
            stdout_line_count=result.stdout_line_count,
            stderr_line_count=result.stderr_line_count,
            duration_seconds=result.duration_seconds,
            lines=collector.lines(),
        )
        return self.build_output(output, collector)


def _write_input_files(working_dir: Path, files: Mapping[str, str], context: TaskContext) -> None:
    root = working_dir.resolve()
    for name, content in files.items():
        target = (root / name).resolve()
        if root not in target.parents:
            raise ConfigurationError(f"Input file '{name}' escapes the working directory")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(context.render(f"input_files.{name}", content) or "", encoding="utf-8")


class _StartupTask(ComposeTask):
    """Fields shared by Up and Start."""

    yaml: str | None = Field(default=None, description="Compose stack definition (YAML)")
    input_files: dict[str, str] = Field(default_factory=dict)
    detached: bool = Field(default=False)
    force_recreate: bool = Field(default=False)
    wait: bool = Field(default=False)
    wait_timeout: int = Field(default=0, ge=0)

    def options(self) -> ComposeOptions:
        return ComposeOptions(
            detach=self.detached,
            force_recreate=self.force_recreate,
            wait=self.wait,
            wait_timeout=self.wait_timeout,
        )

    def prepare(self, working_dir: Path, context: TaskContext) -> None:
        if self.yaml is not None:
            rendered = context.render("yaml", self.yaml) or ""
            (working_dir / COMPOSE_FILE_NAME).write_text(rendered, encoding="utf-8")
        _write_input_files(working_dir, self.input_files, context)


class Up(_StartupTask):
    """Create and start the containers of a compose stack."""

    operation: ClassVar[ComposeOperation] = ComposeOperation.UP

    yaml: str = Field(min_length=1, description="Compose stack definition (YAML)")


class Start(_StartupTask):
    """Start the existing containers of a compose project."""

    operation: ClassVar[ComposeOperation] = ComposeOperation.START


class Down(ComposeTask):
    """Stop and remove containers and networks, optionally images."""

    operation: ClassVar[ComposeOperation] = ComposeOperation.DOWN

    remove_images: RemoveImages | None = Field(default=None)

    def options(self) -> ComposeOptions:
        return ComposeOptions(remove_images=self.remove_images)


class Stop(ComposeTask):
    """Stop running containers without removing them."""

    operation: ClassVar[ComposeOperation] = ComposeOperation.STOP


class Ps(ComposeTask):
    """List the containers of a compose project with their status."""

    operation: ClassVar[ComposeOperation] = ComposeOperation.PS

    def build_output(self, output: ScriptOutput, collector: LogLineCollector) -> PsOutput:
        report = parse_status_lines(collector.lines())
        return PsOutput(**output.model_dump(), containers=report.containers)
