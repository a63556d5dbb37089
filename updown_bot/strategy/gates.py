from __future__ import annotations

from collections.abc import Sequence

from updown_bot.domain import Candle, GateReading


def classify_bar(candle: Candle) -> str:
    return candle.color


def uniform_run(candles: Sequence[Candle], count: int) -> GateReading | None:
    """All of the last `count` bars share one color. None when data is short."""
    if count < 1 or len(candles) < count:
        return None
    recent = list(candles)[-count:]
    first = classify_bar(recent[0])
    uniform = all(classify_bar(c) == first for c in recent)
    return GateReading(uniform=uniform, color=first)
