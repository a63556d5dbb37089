from .entries import ContrarianGateStrategy, EntryDecision, EntryStrategy, FixedSideStrategy, build_strategy
from .gates import classify_bar, uniform_run
from .staking import MartingalePolicy, StakeUpdate

__all__ = [
    "ContrarianGateStrategy",
    "EntryDecision",
    "EntryStrategy",
    "FixedSideStrategy",
    "MartingalePolicy",
    "StakeUpdate",
    "build_strategy",
    "classify_bar",
    "uniform_run",
]
