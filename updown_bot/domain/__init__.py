from .models import (
    DOWN,
    HISTORY_LIMIT,
    UP,
    Candle,
    GateReading,
    HistoryEntry,
    MarketWindow,
    OrderResult,
    Quote,
    StakeState,
    TrackedPosition,
    normalize_side,
    opposite,
    parse_close_time,
)

__all__ = [
    "DOWN",
    "HISTORY_LIMIT",
    "UP",
    "Candle",
    "GateReading",
    "HistoryEntry",
    "MarketWindow",
    "OrderResult",
    "Quote",
    "StakeState",
    "TrackedPosition",
    "normalize_side",
    "opposite",
    "parse_close_time",
]
