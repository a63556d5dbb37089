from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable

from updown_bot.data.http_service import HttpError
from updown_bot.domain import MarketWindow


def _coerce_json_list(v) -> list:
    """Gamma encodes token ids and outcome prices as JSON strings."""
    if isinstance(v, list):
        return v
    if isinstance(v, str) and v.strip():
        try:
            out = json.loads(v)
        except ValueError:
            return []
        return out if isinstance(out, list) else []
    return []


def _as_float(v, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


class MarketLocator:
    """Resolves window offsets to active up/down markets via Gamma."""

    def __init__(
        self,
        http,
        *,
        gamma_url: str,
        asset: str = "btc",
        window_minutes: int = 15,
        clock: Callable[[], float] = time.time,
        log=None,
    ):
        self.http = http
        self.gamma_url = gamma_url.rstrip("/")
        self.asset = asset
        self.window_seconds = int(window_minutes) * 60
        self.window_minutes = int(window_minutes)
        self.clock = clock
        self.log = log

    def window_start(self, offset: int = 0, now: float | None = None) -> int:
        now = self.clock() if now is None else now
        current = int(now // self.window_seconds) * self.window_seconds
        return current + int(offset) * self.window_seconds

    def slug_for(self, offset: int = 0, now: float | None = None) -> str:
        return f"{self.asset}-updown-{self.window_minutes}m-{self.window_start(offset, now)}"

    def _normalize(self, market: dict, slug: str, start: int) -> MarketWindow | None:
        cid = str(market.get("conditionId") or market.get("condition_id") or "")
        tokens = _coerce_json_list(market.get("clobTokenIds"))
        if not cid or len(tokens) < 2 or not tokens[0] or not tokens[1]:
            return None
        prices = _coerce_json_list(market.get("outcomePrices"))
        up_px = _as_float(prices[0]) if len(prices) > 0 else 0.0
        down_px = _as_float(prices[1]) if len(prices) > 1 else 0.0
        return MarketWindow(
            market_id=slug,
            condition_id=cid,
            up_token_id=str(tokens[0]),
            down_token_id=str(tokens[1]),
            close_time=str(market.get("endDate") or market.get("end_date_iso") or ""),
            window_start=start,
            snapshot_prices=(up_px, down_px),
        )

    def _first_active(self, payload, slug: str, start: int) -> MarketWindow | None:
        events = payload if isinstance(payload, list) else [payload]
        for event in events:
            if not isinstance(event, dict):
                continue
            markets = event.get("markets") or [event]
            for market in markets:
                if not isinstance(market, dict) or market.get("closed"):
                    continue
                window = self._normalize(market, slug, start)
                if window is not None:
                    return window
        return None

    async def locate(self, offset: int = 0) -> MarketWindow | None:
        now = self.clock()
        slug = self.slug_for(offset, now)
        start = self.window_start(offset, now)
        try:
            payload = await self.http.get_json(f"{self.gamma_url}/events", params={"slug": slug})
        except HttpError as exc:
            if self.log is not None:
                self.log.warning("market lookup failed slug=%s err=%s", slug, exc)
            return None
        if not payload:
            return None
        return self._first_active(payload, slug, start)

    async def locate_many(self, offsets: Iterable[int] = (0, 1)) -> list[MarketWindow]:
        found = []
        for offset in offsets:
            window = await self.locate(offset)
            if window is not None:
                found.append(window)
        return found
