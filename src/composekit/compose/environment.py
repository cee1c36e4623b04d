"""Environment variables passed to compose commands."""

from __future__ import annotations

from collections.abc import Mapping

from composekit.config import ComposeConfig


def compose_environment(
    docker_host: str | None,
    extra_env: Mapping[str, str] | None = None,
    config: ComposeConfig | None = None,
) -> dict[str, str]:
    """Build the environment for a compose invocation.

    The Docker host variable is always set, to an empty string when no host
    is configured, so that a value inherited from the parent process never
    leaks into the command. Status output is redirected to stdout unless the
    caller already chose a value.

    Args:
        docker_host: Rendered Docker host, or None
        extra_env: Caller-supplied variables
        config: Compose configuration naming the managed variables

    Returns:
        New environment mapping
    """
    config = config or ComposeConfig()
    env = dict(extra_env or {})
    env[config.docker_host_variable] = docker_host or ""
    env.setdefault(config.status_stdout_variable, "1")
    return env
