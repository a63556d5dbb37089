from __future__ import annotations

from updown_bot.data.http_service import HttpError
from updown_bot.domain import MarketWindow, Quote


class QuoteReader:
    """Best BUY prices for both outcomes, falling back to the Gamma snapshot."""

    def __init__(self, http, *, clob_host: str, log=None):
        self.http = http
        self.clob_host = clob_host.rstrip("/")
        self.log = log

    async def _buy_price(self, token_id: str) -> float:
        data = await self.http.get_json(
            f"{self.clob_host}/price",
            params={"token_id": token_id, "side": "BUY"},
        )
        if not isinstance(data, dict) or "price" not in data:
            raise ValueError(f"malformed price payload for {token_id[:10]}")
        return float(data["price"])

    async def quote(self, window: MarketWindow) -> Quote | None:
        try:
            up_price = await self._buy_price(window.up_token_id)
            down_price = await self._buy_price(window.down_token_id)
        except (HttpError, ValueError, TypeError) as exc:
            if self.log is not None:
                self.log.info("clob price unavailable market=%s err=%s; using snapshot", window.market_id, exc)
            up_price, down_price = window.snapshot_prices

        if up_price == 0 and down_price == 0:
            return None
        return Quote(
            up_price=float(up_price),
            down_price=float(down_price),
            up_token_id=window.up_token_id,
            down_token_id=window.down_token_id,
        )
