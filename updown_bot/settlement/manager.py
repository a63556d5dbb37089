from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from updown_bot.domain import StakeState, TrackedPosition
from updown_bot.infra import short_id
from updown_bot.strategy import MartingalePolicy, StakeUpdate


@dataclass(frozen=True)
class SettlementResult:
    market_id: str
    condition_id: str
    won: bool
    side: str
    price: float
    update: StakeUpdate


class SettlementManager:
    """Resolves tracked positions at window close and applies the stake policy.

    A position is settled once its market is within ``grace_sec`` of close.
    Win means the bet side quotes at or above ``win_threshold``; this is a
    price proxy, not the on-chain payout.
    """

    def __init__(
        self,
        locator,
        quotes,
        policy: MartingalePolicy,
        *,
        grace_sec: float = 5.0,
        win_threshold: float = 0.99,
        offsets: tuple[int, ...] = (0, 1),
        clock: Callable[[], float] = time.time,
        log=None,
        events=None,
    ):
        self.locator = locator
        self.quotes = quotes
        self.policy = policy
        self.grace_sec = float(grace_sec)
        self.win_threshold = float(win_threshold)
        self.offsets = tuple(offsets)
        self.clock = clock
        self.log = log
        self.events = events

    async def resolve(
        self,
        state: StakeState,
        positions: dict[str, TrackedPosition],
        *,
        await_gate: bool,
    ) -> list[SettlementResult]:
        if not positions:
            return []
        windows = await self.locator.locate_many(self.offsets)
        by_condition = {w.condition_id: w for w in windows}
        results: list[SettlementResult] = []

        for market_id, pos in list(positions.items()):
            window = by_condition.get(pos.condition_id)
            if window is None:
                continue
            left = window.seconds_left(self.clock())
            if left is None:
                if self.log is not None:
                    self.log.warning("unparseable close time market=%s raw=%r", market_id, window.close_time)
                continue
            if left > self.grace_sec:
                continue

            positions.pop(market_id, None)
            quote = await self.quotes.quote(window)
            if quote is None:
                positions[market_id] = pos
                if self.log is not None:
                    self.log.info("no quote for closing market=%s; retry next tick", short_id(pos.condition_id))
                continue

            price = quote.price_for(pos.side)
            won = price >= self.win_threshold
            update, _ = self.policy.apply(
                state,
                won=won,
                market_id=market_id,
                bet_amount=pos.stake,
                bet_side=pos.side,
                await_gate=await_gate,
            )
            results.append(
                SettlementResult(
                    market_id=market_id,
                    condition_id=pos.condition_id,
                    won=won,
                    side=pos.side,
                    price=price,
                    update=update,
                )
            )

            if self.log is not None:
                self.log.info(
                    "resolved market=%s bet=%s up=%.2fc down=%.2fc result=%s stake %.2f -> %.2f side=%s%s",
                    short_id(pos.condition_id),
                    pos.side,
                    quote.up_price * 100,
                    quote.down_price * 100,
                    update.result.upper(),
                    update.previous_amount,
                    update.next_amount,
                    update.side,
                    " (breaker: side flipped)" if update.breaker_tripped else "",
                )
            if self.events is not None:
                self.events.emit(
                    "market.resolved",
                    market_id=market_id,
                    condition_id=pos.condition_id,
                    side=pos.side,
                    result=update.result,
                    stake=pos.stake,
                    next_stake=update.next_amount,
                    breaker=update.breaker_tripped,
                )
        return results
