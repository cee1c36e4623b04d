"""Unit tests for TriggerScheduler."""

from __future__ import annotations

import asyncio

import pytest

from composekit.config import ComposeConfig
from composekit.exceptions import ProcessLaunchError
from composekit.executions import RecordingExecutionEmitter
from composekit.scheduler import TriggerScheduler
from composekit.trigger import ComposeStatusPoller, ComposeStatusTrigger, PollResult


class SlowPoller(ComposeStatusPoller):
    """Poller whose cycles never finish in time."""

    def __init__(self) -> None:
        super().__init__(config=ComposeConfig(command_timeout_seconds=0))
        self.cancelled = False

    async def poll(self, trigger: ComposeStatusTrigger) -> PollResult:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return PollResult(trigger_id=trigger.id, exit_code=0)


@pytest.fixture
def emitter() -> RecordingExecutionEmitter:
    return RecordingExecutionEmitter()


def make_trigger(trigger_id: str = "poll-web", interval: float = 0.01) -> ComposeStatusTrigger:
    return ComposeStatusTrigger(
        id=trigger_id,
        project_name="proj-x",
        condition="{{ containers | length > 0 }}",
        interval_seconds=interval,
    )


class TestRegistration:
    """Test adding triggers."""

    def test_duplicate_trigger_rejected(self, make_runner) -> None:
        """Test two triggers cannot share an id."""
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=make_runner()))
        scheduler.add(make_trigger())

        with pytest.raises(ValueError, match="already registered"):
            scheduler.add(make_trigger())

    def test_triggers_listed(self, make_runner) -> None:
        """Test registered triggers are exposed in order."""
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=make_runner()))
        scheduler.add(make_trigger("a"))
        scheduler.add(make_trigger("b"))

        assert [t.id for t in scheduler.triggers] == ["a", "b"]
        assert scheduler.running is False


class TestRunOnce:
    """Test single cycle execution."""

    @pytest.mark.asyncio
    async def test_run_once_reports_result(self, make_runner, exited_web_line: str, emitter) -> None:
        """Test run_once runs a cycle and forwards the result."""
        results: list[PollResult] = []

        async def collect(result: PollResult) -> None:
            results.append(result)

        poller = ComposeStatusPoller(runner=make_runner(stdout=[exited_web_line]), emitter=emitter)
        scheduler = TriggerScheduler(poller, on_result=collect)
        scheduler.add(make_trigger())

        result = await scheduler.run_once("poll-web")

        assert result.execution is not None
        assert results == [result]
        assert len(emitter.executions) == 1

    @pytest.mark.asyncio
    async def test_run_once_unknown_trigger(self, make_runner) -> None:
        """Test an unknown id raises KeyError."""
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=make_runner()))

        with pytest.raises(KeyError):
            await scheduler.run_once("missing")

    @pytest.mark.asyncio
    async def test_run_once_propagates_errors(self, make_runner) -> None:
        """Test infrastructure errors of a single cycle reach the caller."""
        runner = make_runner(error=ProcessLaunchError(["docker-compose"], "not found"))
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))
        scheduler.add(make_trigger())

        with pytest.raises(ProcessLaunchError):
            await scheduler.run_once("poll-web")

    @pytest.mark.asyncio
    async def test_cycle_timeout_cancels_poll(self) -> None:
        """Test a cycle exceeding its timeout is cancelled."""
        poller = SlowPoller()
        scheduler = TriggerScheduler(poller, cycle_timeout_seconds=0.05)
        scheduler.add(make_trigger())

        with pytest.raises(asyncio.TimeoutError):
            await scheduler.run_once("poll-web")

        assert poller.cancelled is True


class TestLoops:
    """Test the background polling loops."""

    @pytest.mark.asyncio
    async def test_loop_polls_repeatedly(self, make_runner, exited_web_line: str, emitter) -> None:
        """Test each trigger is polled once per interval until stopped."""
        runner = make_runner(stdout=[exited_web_line])
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner, emitter=emitter))
        scheduler.add(make_trigger())

        await scheduler.start()
        assert scheduler.running is True
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert scheduler.running is False
        assert len(runner.calls) >= 2
        assert len(emitter.executions) == len(runner.calls)

    @pytest.mark.asyncio
    async def test_failing_cycle_does_not_stop_loop(self, make_runner) -> None:
        """Test a raising cycle is logged and the next interval still runs."""
        runner = make_runner(error=ProcessLaunchError(["docker-compose"], "not found"))
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))
        scheduler.add(make_trigger())

        await scheduler.start()
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert len(runner.calls) >= 2

    @pytest.mark.asyncio
    async def test_triggers_poll_independently(self, make_runner) -> None:
        """Test every registered trigger gets its own loop."""
        runner = make_runner()
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))
        scheduler.add(make_trigger("a"))
        scheduler.add(make_trigger("b"))

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        polled_projects = {call["command"][2] for call in runner.calls}
        assert polled_projects == {"proj-x"}
        assert len(runner.calls) >= 2

    @pytest.mark.asyncio
    async def test_add_while_running_starts_loop(self, make_runner) -> None:
        """Test a trigger added to a running scheduler is polled."""
        runner = make_runner()
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))
        scheduler.add(make_trigger("a", interval=10))

        await scheduler.start()
        await asyncio.sleep(0.05)
        calls_before = len(runner.calls)
        scheduler.add(make_trigger("b", interval=10))
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert calls_before == 1
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_add_after_empty_start_starts_loop(self, make_runner) -> None:
        """Test a scheduler started without triggers polls triggers added later."""
        runner = make_runner()
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))

        await scheduler.start()
        assert scheduler.running is True
        scheduler.add(make_trigger("late", interval=10))
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert len(runner.calls) == 1
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_add_after_stop_does_not_poll(self, make_runner) -> None:
        """Test triggers added to a stopped scheduler wait for the next start."""
        runner = make_runner()
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=runner))

        await scheduler.start()
        await scheduler.stop()
        scheduler.add(make_trigger("late", interval=10))
        await asyncio.sleep(0.05)

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, make_runner) -> None:
        """Test stop is safe without start."""
        scheduler = TriggerScheduler(ComposeStatusPoller(runner=make_runner()))
        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_cancels_long_cycles(self) -> None:
        """Test cycles outlasting the stop timeout are cancelled."""
        poller = SlowPoller()
        scheduler = TriggerScheduler(poller)
        scheduler.add(make_trigger())

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop(timeout=0.05)

        assert poller.cancelled is True
        assert scheduler.running is False
