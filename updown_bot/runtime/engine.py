from __future__ import annotations

import asyncio
from collections import deque

from updown_bot.config.settings import MAX_GATE_RUN
from updown_bot.domain import HISTORY_LIMIT, MarketWindow, StakeState, TrackedPosition, normalize_side
from updown_bot.errors import ConfigError
from updown_bot.infra import short_id
from updown_bot.strategy import EntryDecision, EntryStrategy


class StakingEngine:
    """Martingale staking state machine for one account.

    One ``tick()`` resolves tracked markets (stake update per result), then
    checks the entry gate and places at most one order per market window.
    Ticks are serialized by ``_tick_lock``; order placement additionally runs
    under ``_order_lock`` with the position recorded before the network call.
    """

    def __init__(
        self,
        *,
        state: StakeState,
        strategy: EntryStrategy,
        settlement,
        locator,
        quotes,
        gate,
        gateway,
        gate_run_length: int = 3,
        target_offsets: tuple[int, ...] = (0, 1),
        log=None,
        events=None,
    ):
        self.state = state
        self.strategy = strategy
        self.settlement = settlement
        self.locator = locator
        self.quotes = quotes
        self.gate = gate
        self.gateway = gateway
        self.gate_run_length = int(gate_run_length)
        self.target_offsets = tuple(target_offsets)
        self.log = log
        self.events = events

        self.positions: dict[str, TrackedPosition] = {}
        self._tick_lock = asyncio.Lock()
        self._order_lock = asyncio.Lock()
        # condition ids settled this session; never re-entered
        self.settled: deque = deque(maxlen=HISTORY_LIMIT)

    def _info(self, msg: str, *args) -> None:
        if self.log is not None:
            self.log.info(msg, *args)

    @property
    def order_locked(self) -> bool:
        return self._order_lock.locked()

    def is_tracked(self, window: MarketWindow) -> bool:
        if window.market_id in self.positions:
            return True
        return any(p.condition_id == window.condition_id for p in self.positions.values())

    async def tick(self) -> str:
        if self._tick_lock.locked():
            self._info("previous tick still running; skipping")
            return "busy"
        async with self._tick_lock:
            try:
                return await self._run_tick()
            except Exception as exc:
                if self.log is not None:
                    self.log.exception("tick error: %s", exc)
                if self.events is not None:
                    self.events.emit("tick.error", error=str(exc))
                return "error"

    async def _run_tick(self) -> str:
        resolved = await self.settlement.resolve(self.state, self.positions, await_gate=self.strategy.uses_gate)
        self.settled.extend(r.condition_id for r in resolved)

        reading = None
        if self.strategy.uses_gate:
            reading = await self.gate.is_uniform_run(self.gate_run_length)
            if reading is None or not reading.uniform:
                if self.state.awaiting_gate_clear:
                    self._info("waiting for %d uniform candles after last win", self.gate_run_length)
                return "gate_closed"
            if self.state.awaiting_gate_clear:
                self.state.awaiting_gate_clear = False
                self._info("gate cleared: %d %s candles in a row", self.gate_run_length, reading.color)

        target = await self._target_market()
        if target is None:
            self._info("no active market in current or next window")
            return "no_market"
        if target.condition_id in self.settled:
            return "settled"
        if self.is_tracked(target):
            return "tracked"
        if await self.gateway.has_open_order(target.condition_id):
            self._info("open order already exists market=%s", short_id(target.condition_id))
            return "open_order"

        quote = await self.quotes.quote(target)
        if quote is None:
            return "no_quote"
        self._info(
            "market=%s up=%.1fc down=%.1fc stake=%.2f (initial %.2f) side=%s",
            target.market_id,
            quote.up_price * 100,
            quote.down_price * 100,
            self.state.current_amount,
            self.state.initial_amount,
            self.state.side,
        )

        decision, reason = self.strategy.decide(reading, quote, self.state)
        if decision is None:
            self._info("no entry market=%s reason=%s", target.market_id, reason)
            return reason
        return await self._place(target, decision)

    async def _target_market(self) -> MarketWindow | None:
        for offset in self.target_offsets:
            window = await self.locator.locate(offset)
            if window is not None:
                return window
        return None

    async def _place(self, target: MarketWindow, decision: EntryDecision) -> str:
        if self._order_lock.locked():
            return "locked"
        async with self._order_lock:
            stake = self.state.current_amount
            if self.is_tracked(target):
                return "tracked"
            if await self.gateway.has_open_order(target.condition_id):
                return "open_order"

            self.positions[target.market_id] = TrackedPosition(
                market_id=target.market_id,
                condition_id=target.condition_id,
                side=decision.side,
                stake=stake,
            )
            self._info(
                "placing %s order market=%s stake=%.2f price=%.1fc",
                decision.side,
                target.market_id,
                stake,
                decision.price * 100,
            )
            try:
                result = await self.gateway.place_buy(target.condition_id, decision.token_id, decision.price, stake)
            except BaseException:
                self.positions.pop(target.market_id, None)
                raise

            if result.uncertain:
                if self.log is not None:
                    self.log.warning("order outcome unknown market=%s reason=%s; keeping it tracked", target.market_id,
                                     result.reason)
                if self.events is not None:
                    self.events.emit("order.unknown", market_id=target.market_id, side=decision.side, stake=stake)
                return "order_unknown"

            if not result.ok:
                self.positions.pop(target.market_id, None)
                if self.log is not None:
                    self.log.warning("order failed market=%s reason=%s; will retry", target.market_id, result.reason)
                if self.events is not None:
                    self.events.emit("order.failed", market_id=target.market_id, reason=result.reason)
                return "order_failed"

            self._info("order placed id=%s size=%.2f stake=%.2f", result.order_id, result.size, stake)
            if self.events is not None:
                self.events.emit(
                    "order.placed",
                    market_id=target.market_id,
                    condition_id=target.condition_id,
                    side=decision.side,
                    stake=stake,
                    price=decision.price,
                    order_id=result.order_id,
                )
            return "order_placed"

    def set_initial_amount(self, amount: float, *, running: bool) -> None:
        amount = float(amount)
        if amount <= 0:
            raise ConfigError(f"Investment Amount must be greater than 0 (got {amount})")
        old = self.state.initial_amount
        self.state.initial_amount = amount
        if running:
            # stake never drops below the initial amount
            self.state.current_amount = max(self.state.current_amount, amount)
        else:
            self.state.current_amount = amount
        self._info("initial amount %.2f -> %.2f, current stake %.2f", old, amount, self.state.current_amount)

    def set_trading_side(self, side: str) -> None:
        try:
            self.state.side = normalize_side(side)
        except ValueError as exc:
            raise ConfigError("Trading Side must be UP or DOWN") from exc

    def set_gate_run_length(self, count: int) -> None:
        count = int(count)
        if not 1 <= count <= MAX_GATE_RUN:
            raise ConfigError(f"Consecutive Candles Count must be between 1 and {MAX_GATE_RUN}")
        self.gate_run_length = count

    def snapshot(self) -> dict:
        s = self.state
        return {
            "current_stake_amount": s.current_amount,
            "initial_amount": s.initial_amount,
            "win_count": s.win_count,
            "loss_count": s.loss_count,
            "consecutive_losses": s.consecutive_losses,
            "last_result": s.last_result,
            "last_market_id": s.last_market_id,
            "history": [h.as_dict() for h in s.history],
            "tracked_market_count": len(self.positions),
            "trading_side": s.side,
            "gate_run_length": self.gate_run_length,
            "strategy": self.strategy.name,
            "awaiting_gate_clear": s.awaiting_gate_clear,
        }
