from __future__ import annotations

import asyncio

from updown_bot.errors import ConfigError
from updown_bot.runtime.engine import StakingEngine


class Controller:
    """Drives the staking engine on a fixed cadence and reports status."""

    def __init__(self, engine: StakingEngine, gateway, *, interval_ms: int = 5000, store=None, events=None, log=None):
        self.engine = engine
        self.gateway = gateway
        self.interval_ms = int(interval_ms)
        self.store = store
        self.events = events
        self.log = log
        self._task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._running = False
        self.last_tick = ""

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        # credential failure propagates; nothing is scheduled
        await self.gateway.initialize()
        self._running = True
        if self.log is not None:
            self.log.info(
                "controller started strategy=%s side=%s stake=%.2f interval=%dms",
                self.engine.strategy.name,
                self.engine.state.side,
                self.engine.state.current_amount,
                self.interval_ms,
            )
        if self.events is not None:
            self.events.emit("controller.start", strategy=self.engine.strategy.name, side=self.engine.state.side)
        await self.run_once()
        self._task = asyncio.create_task(self._loop(), name="staking-tick-loop")

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_ms / 1000.0)
            if not self._running:
                return
            # detached so a slow tick does not delay the cadence; overlaps are skipped by the engine
            task = asyncio.create_task(self.run_once())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def run_once(self) -> str:
        outcome = await self.engine.tick()
        self.last_tick = outcome
        if self.store is not None:
            try:
                self.store.write(self.status())
            except OSError as exc:
                if self.log is not None:
                    self.log.warning("snapshot write failed: %s", exc)
        return outcome

    def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.log is not None:
            self.log.info("controller stopped")
        if self.events is not None:
            self.events.emit("controller.stop")

    def set_interval(self, interval_ms: int) -> None:
        if int(interval_ms) <= 0:
            raise ConfigError("Check Interval must be greater than 0")
        self.interval_ms = int(interval_ms)

    def status(self) -> dict:
        return {"running": self._running, "last_tick": self.last_tick, **self.engine.snapshot()}
