from __future__ import annotations

from dataclasses import dataclass

from updown_bot.domain import GateReading, Quote, StakeState, opposite


@dataclass(frozen=True)
class EntryDecision:
    side: str
    token_id: str
    price: float
    reason: str = "ok"


class EntryStrategy:
    """Chooses which outcome to buy once the gate (if any) has passed."""

    name = "base"
    uses_gate = False

    def decide(self, reading: GateReading | None, quote: Quote, state: StakeState) -> tuple[EntryDecision | None, str]:
        raise NotImplementedError


class ContrarianGateStrategy(EntryStrategy):
    """Bet against a uniform run of candles."""

    name = "contrarian"
    uses_gate = True

    def decide(self, reading, quote, state):
        if reading is None or not reading.uniform:
            return None, "gate_closed"
        side = opposite(reading.color)
        price = quote.price_for(side)
        if price <= 0:
            return None, "no_price"
        return EntryDecision(side=side, token_id=quote.token_for(side), price=price), "ok"


class FixedSideStrategy(EntryStrategy):
    """Always the configured side, only while it trades below ``max_entry_price``."""

    name = "fixed"
    uses_gate = False

    def __init__(self, max_entry_price: float = 0.50):
        self.max_entry_price = float(max_entry_price)

    def decide(self, reading, quote, state):
        side = state.side
        price = quote.price_for(side)
        if price <= 0:
            return None, "no_price"
        if price >= self.max_entry_price:
            return None, "price_above_max"
        return EntryDecision(side=side, token_id=quote.token_for(side), price=price), "ok"


def build_strategy(name: str, *, max_entry_price: float = 0.50) -> EntryStrategy:
    key = str(name or "").strip().lower()
    if key == "contrarian":
        return ContrarianGateStrategy()
    if key == "fixed":
        return FixedSideStrategy(max_entry_price=max_entry_price)
    raise ValueError(f"unknown strategy: {name!r}")
