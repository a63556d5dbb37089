from .candles import CandleFeed, CandleGate
from .http_service import HttpError, HttpService
from .market_locator import MarketLocator
from .quote_reader import QuoteReader
from .snapshot_store import SnapshotStore

__all__ = [
    "CandleFeed",
    "CandleGate",
    "HttpError",
    "HttpService",
    "MarketLocator",
    "QuoteReader",
    "SnapshotStore",
]
