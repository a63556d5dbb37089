from __future__ import annotations

import time
from collections.abc import Callable

from updown_bot.data.http_service import HttpError
from updown_bot.domain import Candle, GateReading
from updown_bot.strategy.gates import uniform_run


class CandleFeed:
    """Recent closed OHLC bars from the Binance klines endpoint, oldest first."""

    def __init__(self, http, *, base_url: str, clock: Callable[[], float] = time.time):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.clock = clock

    async def recent_bars(self, symbol: str, interval_minutes: int, count: int) -> list[Candle]:
        rows = await self.http.get_json(
            f"{self.base_url}/api/v3/klines",
            params={"symbol": symbol, "interval": f"{int(interval_minutes)}m", "limit": str(int(count) + 1)},
        )
        if not isinstance(rows, list):
            raise ValueError("klines payload is not a list")
        now_ms = self.clock() * 1000.0
        bars = []
        for row in rows:
            # [open_time, open, high, low, close, volume, close_time, ...]
            if len(row) > 6 and float(row[6]) > now_ms:
                continue
            bars.append(
                Candle(
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    time=int(row[0]),
                )
            )
        return bars[-int(count):]


class CandleGate:
    def __init__(self, feed: CandleFeed, *, symbol: str, interval_minutes: int, log=None):
        self.feed = feed
        self.symbol = symbol
        self.interval_minutes = int(interval_minutes)
        self.log = log

    async def is_uniform_run(self, count: int) -> GateReading | None:
        try:
            bars = await self.feed.recent_bars(self.symbol, self.interval_minutes, count)
        except (HttpError, ValueError, TypeError, IndexError) as exc:
            if self.log is not None:
                self.log.warning("candle fetch failed symbol=%s err=%s", self.symbol, exc)
            return None
        if len(bars) < count:
            if self.log is not None:
                self.log.info("candle gate: %d/%d bars available", len(bars), count)
            return None
        return uniform_run(bars, count)
