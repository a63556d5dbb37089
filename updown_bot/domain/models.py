from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

UP = "UP"
DOWN = "DOWN"
HISTORY_LIMIT = 50


def normalize_side(raw: str) -> str:
    side = str(raw or "").strip().upper()
    if side not in (UP, DOWN):
        raise ValueError(f"invalid side: {raw!r}")
    return side


def opposite(side: str) -> str:
    return DOWN if normalize_side(side) == UP else UP


def parse_close_time(raw: str) -> float | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


@dataclass(frozen=True)
class MarketWindow:
    market_id: str
    condition_id: str
    up_token_id: str
    down_token_id: str
    close_time: str
    window_start: int = 0
    snapshot_prices: tuple[float, float] = (0.0, 0.0)

    def seconds_left(self, now: float | None = None) -> float | None:
        end_ts = parse_close_time(self.close_time)
        if end_ts is None:
            return None
        return end_ts - (time.time() if now is None else now)


@dataclass(frozen=True)
class Quote:
    up_price: float
    down_price: float
    up_token_id: str
    down_token_id: str

    def price_for(self, side: str) -> float:
        return self.up_price if normalize_side(side) == UP else self.down_price

    def token_for(self, side: str) -> str:
        return self.up_token_id if normalize_side(side) == UP else self.down_token_id


@dataclass(frozen=True)
class Candle:
    open: float
    high: float
    low: float
    close: float
    time: int

    @property
    def color(self) -> str:
        # close == open counts as a down bar
        return UP if self.close > self.open else DOWN


@dataclass(frozen=True)
class GateReading:
    uniform: bool
    color: str


@dataclass(frozen=True)
class TrackedPosition:
    market_id: str
    condition_id: str
    side: str
    stake: float
    placed_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class HistoryEntry:
    market_id: str
    result: str
    bet_amount: float
    side: str
    timestamp: str

    def as_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "result": self.result,
            "bet_amount": self.bet_amount,
            "side": self.side,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class OrderResult:
    ok: bool
    reason: str
    order_id: str = ""
    status: str = ""
    price: float = 0.0
    size: float = 0.0
    notional_usdc: float = 0.0
    # post outcome unknown (timed out); the order may be live
    uncertain: bool = False


@dataclass
class StakeState:
    """Process-wide stake/side state. Mutated only by market resolution."""

    initial_amount: float
    current_amount: float
    side: str = UP
    awaiting_gate_clear: bool = False
    win_count: int = 0
    loss_count: int = 0
    last_result: str | None = None
    last_market_id: str | None = None
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))

    @classmethod
    def fresh(cls, initial_amount: float, side: str = UP) -> "StakeState":
        if initial_amount <= 0:
            raise ValueError("initial amount must be positive")
        return cls(
            initial_amount=float(initial_amount),
            current_amount=float(initial_amount),
            side=normalize_side(side),
        )

    @property
    def consecutive_losses(self) -> int:
        if self.initial_amount <= 0 or self.current_amount <= self.initial_amount:
            return 0
        return int(round(math.log2(self.current_amount / self.initial_amount)))

    def record(self, market_id: str, result: str, bet_amount: float, side: str) -> HistoryEntry:
        entry = HistoryEntry(
            market_id=market_id,
            result=result,
            bet_amount=bet_amount,
            side=side,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.history.append(entry)
        if result == "win":
            self.win_count += 1
        else:
            self.loss_count += 1
        self.last_result = result
        self.last_market_id = market_id
        return entry
