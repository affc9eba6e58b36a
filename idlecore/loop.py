"""Asynchronous tick scheduler with an error boundary.

The loop measures real elapsed time between ticks, scales it by the dev-mode
time multiplier and hands the effective delta to ``on_tick``. Consumers treat
that delta as simulated time. Cadence is ``base_tick_ms`` while visible and
``idle_tick_ms`` while hidden.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from idlecore import events
from idlecore._types import Clock, monotonic_ms
from idlecore.definition import DevModeConfig, TimingConfig
from idlecore.events import EventBus

logger = logging.getLogger(__name__)

TickHandler = Callable[[float], None]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class LoopState:
    is_running: bool
    is_paused: bool
    is_visible: bool
    total_time_ms: float
    last_tick_time: float
    tick_count: int
    consecutive_errors: int
    time_multiplier: float


class GameLoop:
    def __init__(
        self,
        timing: TimingConfig,
        on_tick: TickHandler,
        dev_mode: DevModeConfig | None = None,
        clock: Clock = monotonic_ms,
        bus: EventBus | None = None,
        on_error_limit: Callable[[], None] | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.timing = timing
        self.on_tick = on_tick
        self.dev_mode = dev_mode if dev_mode is not None else DevModeConfig()
        self.clock = clock
        self.bus = bus if bus is not None else EventBus()
        self.on_error_limit = on_error_limit
        self._sleep = sleep

        self.is_running = False
        self.is_paused = False
        self.is_visible = True
        self.total_time_ms = 0.0
        self.last_tick_time = 0.0
        self.tick_count = 0
        self.consecutive_errors = 0
        self.time_multiplier = 1.0
        if self.dev_mode.enabled and self.dev_mode.time_multiplier > 1:
            self.time_multiplier = self.dev_mode.time_multiplier
            logger.info("Dev mode time multiplier %sx", self.time_multiplier)

        self._task: asyncio.Task[None] | None = None
        self._resumed = asyncio.Event()
        self._resumed.set()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Schedule the tick task on the running event loop."""
        if self.is_running:
            return
        self.is_running = True
        self.is_paused = False
        self._resumed.set()
        self.last_tick_time = self.clock()
        self.bus.emit(events.GAME_START, {})
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self.is_running = False
        self._resumed.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def pause(self) -> None:
        if self.is_paused:
            return
        self.is_paused = True
        self._resumed.clear()
        self.bus.emit(events.GAME_PAUSE, {})

    def resume(self) -> None:
        if not self.is_paused:
            return
        self.is_paused = False
        self.consecutive_errors = 0
        self.last_tick_time = self.clock()
        self._resumed.set()
        self.bus.emit(events.GAME_RESUME, {})

    def set_visible(self, visible: bool) -> None:
        if visible and not self.is_visible:
            self.last_tick_time = self.clock()
        self.is_visible = visible

    def set_time_multiplier(self, multiplier: float) -> None:
        if not self.dev_mode.enabled:
            logger.warning("Time multiplier is only available in dev mode")
            return
        self.time_multiplier = max(1.0, multiplier)

    @property
    def current_interval_ms(self) -> float:
        return self.timing.base_tick_ms if self.is_visible else self.timing.idle_tick_ms

    # ── Ticks ────────────────────────────────────────────────────────

    def tick_now(self) -> float:
        """Dispatch one tick for the real time since the previous one."""
        now = self.clock()
        real_delta = max(0.0, now - self.last_tick_time)
        self.last_tick_time = now
        effective = real_delta * self.time_multiplier
        self.process_tick(effective)
        return effective

    def process_tick(self, delta_ms: float) -> bool:
        """Run ``on_tick`` inside the error boundary. Returns ``True`` on success."""
        try:
            self.on_tick(delta_ms)
        except Exception as exc:
            self.consecutive_errors += 1
            logger.exception(
                "Tick failed (%d consecutive)", self.consecutive_errors
            )
            self.bus.emit(
                events.GAME_ERROR,
                {"error": str(exc), "consecutive_errors": self.consecutive_errors},
            )
            if self.consecutive_errors >= self.timing.max_consecutive_errors:
                logger.error(
                    "Pausing after %d consecutive tick failures", self.consecutive_errors
                )
                self.pause()
                if self.on_error_limit is not None:
                    self.on_error_limit()
            return False

        self.consecutive_errors = 0
        self.total_time_ms += delta_ms
        self.tick_count += 1
        self.bus.emit(events.GAME_TICK, {"delta_ms": delta_ms, "total_ms": self.total_time_ms})
        return True

    def process_offline_time(self, offline_ms: float) -> float:
        """Replay time away as one capped, efficiency-scaled tick.

        Returns the effective milliseconds dispatched.
        """
        capped = min(max(0.0, offline_ms), self.timing.max_offline_seconds * 1000.0)
        effective = capped * self.timing.offline_efficiency
        if effective > 0:
            self.process_tick(effective)
        return effective

    def get_state(self) -> LoopState:
        return LoopState(
            is_running=self.is_running,
            is_paused=self.is_paused,
            is_visible=self.is_visible,
            total_time_ms=self.total_time_ms,
            last_tick_time=self.last_tick_time,
            tick_count=self.tick_count,
            consecutive_errors=self.consecutive_errors,
            time_multiplier=self.time_multiplier,
        )

    async def _run(self) -> None:
        while self.is_running:
            await self._sleep(self.current_interval_ms / 1000.0)
            if self.is_paused:
                await self._resumed.wait()
                continue
            if self.is_running:
                self.tick_now()
