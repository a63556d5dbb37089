import asyncio
import time
from types import SimpleNamespace

from py_clob_client.clob_types import OrderType

from updown_bot.errors import GatewayInitError
from updown_bot.execution import OrderGateway, share_size


class FakeClob:
    def __init__(self, host, *, chain_id, key, signature_type, funder):
        self.host = host
        self.key = key
        self.funder = funder
        self.creds = None
        self.orders: list = []
        self.posted: list = []
        self.post_response = {"orderID": "0xorder", "status": "live"}
        self.fail_orders = False
        self.post_delay = 0.0

    def get_address(self):
        return "0xsigner"

    def create_or_derive_api_creds(self):
        return SimpleNamespace(api_key="key-1234567890")

    def set_api_creds(self, creds):
        self.creds = creds

    def get_orders(self, params):
        if self.fail_orders:
            raise RuntimeError("clob down")
        return self.orders

    def get_market(self, condition_id):
        return {"minimum_tick_size": 0.01, "neg_risk": False}

    def create_order(self, order_args, options):
        return {"signed": order_args}

    def post_order(self, signed, order_type):
        if self.post_delay:
            time.sleep(self.post_delay)
        self.posted.append((signed, order_type))
        if isinstance(self.post_response, Exception):
            raise self.post_response
        return self.post_response


def _live_gateway() -> OrderGateway:
    return OrderGateway(host="https://clob.test", private_key="0xabc", dry_run=False, client_factory=FakeClob)


def test_share_size_floors_to_cents() -> None:
    assert share_size(10, 0.53) == 18.86
    assert share_size(20, 0.5) == 40.0


def test_dry_run_simulates_fill() -> None:
    gw = OrderGateway(host="https://clob.test")
    asyncio.run(gw.initialize())
    out = asyncio.run(gw.place_buy("0xcid", "tok", 0.5, 10))
    assert out.ok
    assert out.reason == "dry_run"
    assert out.order_id.startswith("dry-")
    assert out.size == 20.0
    assert asyncio.run(gw.has_open_order("0xcid")) is False


def test_invalid_price_rejected() -> None:
    gw = OrderGateway(host="https://clob.test")
    assert not asyncio.run(gw.place_buy("0xcid", "tok", 0, 10)).ok
    assert not asyncio.run(gw.place_buy("0xcid", "tok", "abc", 10)).ok
    assert asyncio.run(gw.place_buy("0xcid", "tok", 0.99, 0.001)).reason == "size rounds to zero"


def test_live_initialize_and_post() -> None:
    gw = _live_gateway()
    asyncio.run(gw.initialize())
    assert gw.funder == "0xsigner"
    assert gw.client.creds.api_key == "key-1234567890"

    out = asyncio.run(gw.place_buy("0xcid", "tok-up", 0.4, 10))
    assert out.ok
    assert out.order_id == "0xorder"
    assert out.size == 25.0
    signed, order_type = gw.client.posted[0]
    assert order_type == OrderType.GTC
    assert signed["signed"].token_id == "tok-up"


def test_live_post_without_order_id_fails() -> None:
    gw = _live_gateway()
    asyncio.run(gw.initialize())
    gw.client.post_response = {"errorMsg": "not enough balance"}
    out = asyncio.run(gw.place_buy("0xcid", "tok-up", 0.4, 10))
    assert not out.ok
    assert out.reason == "not enough balance"

    gw.client.post_response = RuntimeError("timeout")
    assert not asyncio.run(gw.place_buy("0xcid", "tok-up", 0.4, 10)).ok


def test_open_order_lookup() -> None:
    gw = _live_gateway()
    asyncio.run(gw.initialize())
    gw.client.orders = [{"market": "0xcid", "id": "1"}]
    assert asyncio.run(gw.has_open_order("0xcid")) is True
    assert asyncio.run(gw.has_open_order("0xother")) is False
    gw.client.fail_orders = True
    assert asyncio.run(gw.has_open_order("0xcid")) is False


def test_initialize_failures() -> None:
    no_key = OrderGateway(host="https://clob.test", dry_run=False, client_factory=FakeClob)
    try:
        asyncio.run(no_key.initialize())
    except GatewayInitError:
        pass
    else:
        raise AssertionError("expected GatewayInitError")

    def broken_factory(*args, **kwargs):
        raise RuntimeError("bad signer")

    gw = OrderGateway(host="https://clob.test", private_key="0xabc", dry_run=False, client_factory=broken_factory)
    try:
        asyncio.run(gw.initialize())
    except GatewayInitError as exc:
        assert "bad signer" in str(exc)
    else:
        raise AssertionError("expected GatewayInitError")
    assert gw.client is None


def test_post_timeout_is_reported_as_uncertain() -> None:
    gw = OrderGateway(host="https://clob.test", private_key="0xabc", dry_run=False, timeout=0.2,
                      client_factory=FakeClob)
    asyncio.run(gw.initialize())
    gw.client.post_delay = 1.0
    out = asyncio.run(gw.place_buy("0xcid", "tok-up", 0.4, 10))
    assert not out.ok
    assert out.uncertain is True
    assert out.status == "unknown"

    gw.client.post_response = RuntimeError("rejected")
    gw.client.post_delay = 0.0
    out = asyncio.run(gw.place_buy("0xcid", "tok-up", 0.4, 10))
    assert not out.ok
    assert out.uncertain is False
