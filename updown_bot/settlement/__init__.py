from .manager import SettlementManager, SettlementResult

__all__ = ["SettlementManager", "SettlementResult"]
