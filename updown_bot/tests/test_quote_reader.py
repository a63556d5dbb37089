import asyncio

from updown_bot.data import HttpError, QuoteReader
from updown_bot.tests.fakes import FakeHttp, make_window


def _price_route(prices: dict):
    def route(params: dict):
        return {"price": prices[params["token_id"]]}

    return route


def test_quote_from_clob_prices() -> None:
    window = make_window(cid="0xq")
    http = FakeHttp({"/price": _price_route({"0xq-up": "0.62", "0xq-down": "0.39"})})
    quote = asyncio.run(QuoteReader(http, clob_host="https://clob.test").quote(window))
    assert quote.up_price == 0.62
    assert quote.down_price == 0.39
    assert quote.token_for("DOWN") == "0xq-down"
    assert http.calls[0][1] == {"token_id": "0xq-up", "side": "BUY"}


def test_quote_falls_back_to_snapshot() -> None:
    window = make_window(snapshot=(0.3, 0.7))
    http = FakeHttp({"/price": HttpError("http 500")})
    quote = asyncio.run(QuoteReader(http, clob_host="https://clob.test").quote(window))
    assert quote.up_price == 0.3
    assert quote.down_price == 0.7


def test_malformed_payload_falls_back() -> None:
    window = make_window(snapshot=(0.4, 0.6))
    http = FakeHttp({"/price": {"unexpected": True}})
    quote = asyncio.run(QuoteReader(http, clob_host="https://clob.test").quote(window))
    assert quote.price_for("UP") == 0.4


def test_no_quote_when_both_prices_zero() -> None:
    window = make_window(snapshot=(0.0, 0.0))
    http = FakeHttp({"/price": HttpError("http 500")})
    assert asyncio.run(QuoteReader(http, clob_host="https://clob.test").quote(window)) is None
