"""Status-polling trigger CLI commands.

``poll`` runs a single cycle and prints its outcome; ``watch`` runs every
configured trigger on its interval until interrupted with Ctrl+C.
"""

from __future__ import annotations

import asyncio
import json
import signal
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from composekit.cli.compose import containers_table, parse_key_value
from composekit.config import ComposekitConfig
from composekit.exceptions import ComposekitError
from composekit.executions import ExecutionEmitter, RecordingExecutionEmitter, WebhookExecutionEmitter
from composekit.scheduler import TriggerScheduler
from composekit.trigger import ComposeStatusPoller, ComposeStatusTrigger, PollResult

app = typer.Typer(help="Status-polling trigger commands")
console = Console()


def build_emitter(config: ComposekitConfig) -> ExecutionEmitter:
    if config.webhook.url:
        return WebhookExecutionEmitter(config.webhook)
    return RecordingExecutionEmitter()


def load_triggers(config: ComposekitConfig) -> list[ComposeStatusTrigger]:
    """Validate the trigger definitions of the configuration.

    Raises:
        ValidationError: If a definition is invalid.
    """
    defaults: dict[str, Any] = {
        "interval_seconds": config.trigger_defaults.interval_seconds,
        "fire_without_condition": config.trigger_defaults.fire_without_condition,
    }
    return [ComposeStatusTrigger(**{**defaults, **raw}) for raw in config.triggers]


def select_trigger(
    config: ComposekitConfig,
    trigger_id: str | None,
    project_name: str | None,
    condition: str | None,
    docker_host: str | None,
    env: list[str] | None,
) -> ComposeStatusTrigger:
    if trigger_id is not None:
        for trigger in load_triggers(config):
            if trigger.id == trigger_id:
                return trigger
        console.print(f"[red]Trigger '{trigger_id}' is not defined in the configuration[/red]")
        raise typer.Exit(code=1)

    if project_name is None:
        console.print("[red]Either --id or --project is required[/red]")
        raise typer.Exit(code=2)

    return ComposeStatusTrigger(
        id=f"cli-{project_name}",
        project_name=project_name,
        condition=condition,
        docker_host=docker_host,
        env=parse_key_value(env or []),
        interval_seconds=config.trigger_defaults.interval_seconds,
        fire_without_condition=config.trigger_defaults.fire_without_condition,
    )


def print_result(result: PollResult) -> None:
    if result.exit_code != 0:
        console.print(
            f"[red]{result.trigger_id}: compose exited with code {result.exit_code}, "
            f"nothing to report[/red]"
        )
        return

    if result.parse_errors:
        console.print(f"[yellow]{result.parse_errors} output line(s) could not be parsed[/yellow]")

    if result.execution is None:
        console.print(
            f"[dim]{result.trigger_id}: condition not met "
            f"({len(result.containers)} container(s))[/dim]"
        )
        return

    console.print(
        Panel(
            json.dumps(result.execution.model_dump(mode="json"), indent=2),
            title=f"Execution {result.execution.id}",
            border_style="green",
        )
    )


TriggerIdOption = Annotated[
    Optional[str], typer.Option("--id", help="Trigger defined in the configuration file")
]
ProjectOption = Annotated[
    Optional[str], typer.Option("--project", "-p", help="Docker Compose project name")
]
ConditionOption = Annotated[
    Optional[str],
    typer.Option("--condition", help="Condition template evaluated with `containers`"),
]
DockerHostOption = Annotated[
    Optional[str],
    typer.Option("--docker-host", "-H", help="Docker daemon address (DOCKER_HOST)"),
]
EnvOption = Annotated[
    Optional[list[str]],
    typer.Option("--env", "-e", help="Extra environment variable, KEY=VALUE (repeatable)"),
]


@app.command()
def poll(
    trigger_id: TriggerIdOption = None,
    project_name: ProjectOption = None,
    condition: ConditionOption = None,
    docker_host: DockerHostOption = None,
    env: EnvOption = None,
) -> None:
    """Run a single poll cycle and print its outcome."""
    from composekit.main import get_app_context

    ctx = get_app_context()
    try:
        trigger = select_trigger(ctx.config, trigger_id, project_name, condition, docker_host, env)
    except ValidationError as e:
        console.print(f"[red]Invalid trigger definition:[/red] {e}")
        raise typer.Exit(code=1)

    poller = ComposeStatusPoller(emitter=build_emitter(ctx.config), config=ctx.config.compose)

    async def _poll() -> PollResult:
        try:
            return await poller.poll(trigger)
        finally:
            if isinstance(poller.emitter, WebhookExecutionEmitter):
                await poller.emitter.close()

    try:
        result = asyncio.run(_poll())
    except ComposekitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if result.containers:
        console.print(containers_table(result.containers, f"Containers of {trigger.project_name}"))
    print_result(result)


@app.command()
def watch(
    trigger_id: TriggerIdOption = None,
    project_name: ProjectOption = None,
    condition: ConditionOption = None,
    docker_host: DockerHostOption = None,
    env: EnvOption = None,
    cycle_timeout: Annotated[
        Optional[float],
        typer.Option("--cycle-timeout", min=0.0, help="Cancel cycles lasting longer (seconds)"),
    ] = None,
) -> None:
    """Run triggers on their interval until interrupted.

    Without --id or --project every trigger of the configuration file runs.
    """
    from composekit.main import get_app_context

    ctx = get_app_context()
    try:
        if trigger_id is None and project_name is None:
            triggers = load_triggers(ctx.config)
        else:
            triggers = [
                select_trigger(ctx.config, trigger_id, project_name, condition, docker_host, env)
            ]
    except ValidationError as e:
        console.print(f"[red]Invalid trigger definition:[/red] {e}")
        raise typer.Exit(code=1)

    if not triggers:
        console.print("[yellow]No triggers configured[/yellow]")
        raise typer.Exit(code=1)

    emitter = build_emitter(ctx.config)
    poller = ComposeStatusPoller(emitter=emitter, config=ctx.config.compose)

    async def _on_result(result: PollResult) -> None:
        print_result(result)

    scheduler = TriggerScheduler(poller, cycle_timeout_seconds=cycle_timeout, on_result=_on_result)
    for trigger in triggers:
        scheduler.add(trigger)

    console.print(
        Panel(
            "\n".join(
                f"[bold]{t.id}[/bold]: {t.project_name} every {t.interval_seconds:g}s"
                for t in triggers
            ),
            title="Watching Docker Compose projects",
            border_style="cyan",
        )
    )
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    async def _watch() -> None:
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def signal_handler(sig, frame):
            loop.call_soon_threadsafe(shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        await scheduler.start()
        try:
            await shutdown_event.wait()
        finally:
            console.print("[yellow]Stopping triggers...[/yellow]")
            await scheduler.stop()
            if isinstance(emitter, WebhookExecutionEmitter):
                await emitter.close()

    asyncio.run(_watch())
    console.print("[green]Stopped[/green]")
