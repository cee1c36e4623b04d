"""Fixed-interval scheduler for status triggers.

Each registered trigger gets its own asyncio task. The task awaits a full
poll cycle before sleeping for the trigger's interval, so two cycles of the
same trigger never overlap, while distinct triggers poll concurrently.

A cycle that raises is logged and the loop carries on with the next
interval; the trigger itself never retries. A cycle exceeding
``cycle_timeout_seconds`` is cancelled, which kills the compose process and
discards its partial output.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from composekit.logging import get_logger
from composekit.trigger import ComposeStatusPoller, ComposeStatusTrigger, PollResult

ResultCallback = Callable[[PollResult], Awaitable[None]]


class TriggerScheduler:
    """Runs registered triggers at their configured interval.

    Attributes:
        poller: Poller running the cycles
        cycle_timeout_seconds: Maximum duration of one cycle (None for no limit)
        on_result: Optional coroutine called with every completed PollResult
    """

    def __init__(
        self,
        poller: ComposeStatusPoller,
        cycle_timeout_seconds: float | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        self.poller = poller
        self.cycle_timeout_seconds = cycle_timeout_seconds
        self.on_result = on_result
        self.logger = get_logger(__name__)
        self._triggers: dict[str, ComposeStatusTrigger] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_event: asyncio.Event = asyncio.Event()
        self._started = False

    @property
    def triggers(self) -> list[ComposeStatusTrigger]:
        return list(self._triggers.values())

    @property
    def running(self) -> bool:
        return self._started

    def add(self, trigger: ComposeStatusTrigger) -> None:
        """Register a trigger.

        Raises:
            ValueError: If a trigger with the same id is already registered.
        """
        if trigger.id in self._triggers:
            raise ValueError(f"Trigger '{trigger.id}' is already registered")
        self._triggers[trigger.id] = trigger
        self.logger.info(
            "trigger_registered",
            trigger_id=trigger.id,
            interval_seconds=trigger.interval_seconds,
        )
        if self._started:
            self._tasks[trigger.id] = asyncio.create_task(self._trigger_loop(trigger))

    async def run_once(self, trigger_id: str) -> PollResult:
        """Run a single cycle of a registered trigger immediately.

        Exceptions raised by the cycle propagate.
        """
        try:
            trigger = self._triggers[trigger_id]
        except KeyError as exc:
            raise KeyError(f"Unknown trigger '{trigger_id}'") from exc
        return await self._run_cycle(trigger)

    async def _run_cycle(self, trigger: ComposeStatusTrigger) -> PollResult:
        if self.cycle_timeout_seconds:
            result = await asyncio.wait_for(
                self.poller.poll(trigger), timeout=self.cycle_timeout_seconds
            )
        else:
            result = await self.poller.poll(trigger)
        if self.on_result is not None:
            await self.on_result(result)
        return result

    async def start(self) -> None:
        """Start one polling loop per registered trigger."""
        if self.running:
            self.logger.warning("scheduler_already_running")
            return

        self._stop_event.clear()
        self._started = True
        for trigger in self._triggers.values():
            self._tasks[trigger.id] = asyncio.create_task(self._trigger_loop(trigger))

        self.logger.info("scheduler_started", trigger_count=len(self._tasks))

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop every polling loop.

        Loops finish their current cycle unless it outlasts ``timeout``, in
        which case they are cancelled. Safe to call when not running.
        """
        if not self._started:
            self.logger.debug("scheduler_not_running")
            return

        self._started = False
        self._stop_event.set()
        tasks = list(self._tasks.values())

        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                self.logger.warning("scheduler_stop_timeout", pending=len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self._tasks.clear()
        self.logger.info("scheduler_stopped")

    async def _trigger_loop(self, trigger: ComposeStatusTrigger) -> None:
        """Internal polling loop for one trigger."""
        self.logger.debug("trigger_loop_started", trigger_id=trigger.id)

        while not self._stop_event.is_set():
            try:
                await self._run_cycle(trigger)
            except asyncio.TimeoutError:
                self.logger.error(
                    "trigger_cycle_timeout",
                    trigger_id=trigger.id,
                    timeout=self.cycle_timeout_seconds,
                )
            except Exception as e:
                self.logger.error(
                    "trigger_cycle_failed",
                    trigger_id=trigger.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=trigger.interval_seconds)
            except asyncio.TimeoutError:
                # Normal timeout, continue polling
                pass

        self.logger.debug("trigger_loop_exited", trigger_id=trigger.id)
