"""Exception hierarchy for Composekit.

Infrastructure failures (configuration, process launch, timeouts, condition
evaluation, execution emission) propagate to the caller. Data-level failures
(non-zero compose exit inside a trigger, malformed output lines) are raised
here but absorbed by the polling trigger.
"""

from __future__ import annotations


class ComposekitError(Exception):
    """Base exception for all Composekit errors."""


class ConfigurationError(ComposekitError):
    """Raised when a required property is unset or cannot be rendered."""


class ProcessLaunchError(ComposekitError):
    """Raised when the compose command could not be started.

    Attributes:
        command: Argument list that failed to start.
    """

    def __init__(self, command: list[str], reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Unable to start {command[0] if command else '<empty>'}: {reason}")


class CommandTimeoutError(ComposekitError):
    """Raised when a compose command exceeds its timeout and is killed."""

    def __init__(self, command: list[str], timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout} seconds: {' '.join(command)}")


class CommandExitError(ComposekitError):
    """Raised when a compose command ran but exited with a non-zero code.

    Attributes:
        exit_code: Process exit code.
        lines: Output lines collected before the process exited.
    """

    def __init__(self, command: list[str], exit_code: int, lines: list[str] | None = None) -> None:
        self.command = command
        self.exit_code = exit_code
        self.lines = lines or []
        super().__init__(f"Command exited with code {exit_code}: {' '.join(command)}")


class ParseError(ComposekitError):
    """Raised when one line of ``ps --format=json`` output cannot be decoded.

    Attributes:
        line: The offending output line.
        cause: Underlying decode or validation error.
    """

    def __init__(self, line: str, cause: Exception) -> None:
        self.line = line
        self.cause = cause
        super().__init__(f"Invalid container status line: {cause}")


class ConditionEvaluationError(ComposekitError):
    """Raised when a condition or templated property fails to render.

    Attributes:
        expression: Template source that failed.
    """

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Failed to evaluate '{expression}': {reason}")


class ExecutionEmitError(ComposekitError):
    """Raised when an execution emitter cannot create the execution."""
