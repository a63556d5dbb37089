from .controller import Controller
from .engine import StakingEngine

__all__ = ["Controller", "StakingEngine"]
