from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from updown_bot.data import HttpError
from updown_bot.domain import GateReading, MarketWindow, OrderResult, Quote

NOW = 1_700_000_123.0


def iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def make_window(market_id: str = "btc-updown-15m-1700000100", cid: str = "0xcond-a", close_in: float = 600.0,
                now: float = NOW, snapshot=(0.0, 0.0)) -> MarketWindow:
    return MarketWindow(
        market_id=market_id,
        condition_id=cid,
        up_token_id=f"{cid}-up",
        down_token_id=f"{cid}-down",
        close_time=iso(now + close_in),
        window_start=1_700_000_100,
        snapshot_prices=snapshot,
    )


def make_quote(window: MarketWindow, up: float, down: float) -> Quote:
    return Quote(up_price=up, down_price=down, up_token_id=window.up_token_id, down_token_id=window.down_token_id)


class FakeLocator:
    def __init__(self, windows: dict[int, MarketWindow] | None = None):
        self.windows = dict(windows or {})
        self.calls: list[int] = []

    async def locate(self, offset: int = 0):
        self.calls.append(offset)
        return self.windows.get(offset)

    async def locate_many(self, offsets=(0, 1)):
        out = []
        for offset in offsets:
            w = await self.locate(offset)
            if w is not None:
                out.append(w)
        return out


class FakeQuotes:
    def __init__(self, quotes: dict[str, Quote | None] | None = None):
        self.quotes = dict(quotes or {})
        self.calls: list[str] = []

    async def quote(self, window: MarketWindow):
        self.calls.append(window.market_id)
        return self.quotes.get(window.market_id)


class FakeGate:
    def __init__(self, reading: GateReading | None = None):
        self.reading = reading
        self.calls: list[int] = []

    async def is_uniform_run(self, count: int):
        self.calls.append(count)
        return self.reading


class FakeGateway:
    def __init__(self, *, open_orders=(), result: OrderResult | None = None, raise_on_place: Exception | None = None,
                 init_error: Exception | None = None, hold: asyncio.Event | None = None):
        self.open_orders = set(open_orders)
        self.result = result or OrderResult(ok=True, reason="posted", order_id="oid-1", status="live")
        self.raise_on_place = raise_on_place
        self.init_error = init_error
        self.hold = hold
        self.initialized = 0
        self.open_checks: list[str] = []
        self.placed: list[tuple[str, str, float, float]] = []

    async def initialize(self):
        self.initialized += 1
        if self.init_error is not None:
            raise self.init_error

    async def has_open_order(self, condition_id: str) -> bool:
        self.open_checks.append(condition_id)
        return condition_id in self.open_orders

    async def place_buy(self, condition_id, token_id, price, stake):
        self.placed.append((condition_id, token_id, price, stake))
        if self.hold is not None:
            await self.hold.wait()
        if self.raise_on_place is not None:
            raise self.raise_on_place
        return self.result


class FakeHttp:
    """Route table keyed by URL suffix; values are payloads, exceptions or callables."""

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, dict | None]] = []

    async def get_json(self, url: str, *, params: dict | None = None, timeout: float | None = None):
        self.calls.append((url, params))
        for suffix, value in self.routes.items():
            if url.endswith(suffix):
                if callable(value):
                    value = value(params or {})
                if isinstance(value, Exception):
                    raise value
                return value
        raise HttpError(f"http 404 {url}")

    async def close(self):
        return None
