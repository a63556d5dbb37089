from __future__ import annotations

from dataclasses import dataclass

from updown_bot.domain import HistoryEntry, StakeState, opposite

BREAKER_TOLERANCE = 0.01


@dataclass(frozen=True)
class StakeUpdate:
    result: str
    previous_amount: float
    next_amount: float
    side: str
    breaker_tripped: bool = False


class MartingalePolicy:
    """Win resets the stake, loss doubles it.

    With ``breaker_losses = N`` the Nth consecutive loss (previous stake equal
    to ``initial * 2**(N-1)``) resets the stake and flips the trading side
    instead of doubling. ``0`` disables the breaker.
    """

    def __init__(self, breaker_losses: int = 0):
        if breaker_losses < 0:
            raise ValueError("breaker_losses must be >= 0")
        self.breaker_losses = int(breaker_losses)

    def _breaker_due(self, state: StakeState) -> bool:
        if self.breaker_losses <= 0:
            return False
        trip_at = state.initial_amount * (2 ** (self.breaker_losses - 1))
        return abs(state.current_amount - trip_at) < BREAKER_TOLERANCE

    def apply_win(self, state: StakeState, *, await_gate: bool) -> StakeUpdate:
        previous = state.current_amount
        state.current_amount = state.initial_amount
        if await_gate:
            state.awaiting_gate_clear = True
        return StakeUpdate("win", previous, state.current_amount, state.side)

    def apply_loss(self, state: StakeState) -> StakeUpdate:
        previous = state.current_amount
        if self._breaker_due(state):
            state.current_amount = state.initial_amount
            state.side = opposite(state.side)
            return StakeUpdate("loss", previous, state.current_amount, state.side, breaker_tripped=True)
        state.current_amount = 2 * state.current_amount
        return StakeUpdate("loss", previous, state.current_amount, state.side)

    def apply(self, state: StakeState, *, won: bool, market_id: str, bet_amount: float, bet_side: str,
              await_gate: bool) -> tuple[StakeUpdate, HistoryEntry]:
        update = self.apply_win(state, await_gate=await_gate) if won else self.apply_loss(state)
        entry = state.record(market_id, update.result, bet_amount, bet_side)
        return update, entry
