from __future__ import annotations

import asyncio
import math
import uuid

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import OpenOrderParams, OrderArgs, OrderType, PartialCreateOrderOptions
from py_clob_client.order_builder.constants import BUY

from updown_bot.domain import OrderResult
from updown_bot.errors import GatewayInitError
from updown_bot.infra import short_id

TICK_SIZES = {0.1: "0.1", 0.01: "0.01", 0.001: "0.001", 0.0001: "0.0001"}


def share_size(stake: float, price: float) -> float:
    return math.floor((stake / price) * 100) / 100


class OrderGateway:
    """Order boundary over py-clob-client. Never raises after initialize()."""

    def __init__(
        self,
        *,
        host: str,
        chain_id: int = 137,
        private_key: str = "",
        funder: str = "",
        signature_type: int = 1,
        timeout: float = 10.0,
        dry_run: bool = True,
        client_factory=ClobClient,
        log=None,
    ):
        self.host = host
        self.chain_id = int(chain_id)
        self.private_key = private_key
        self.funder = funder
        self.signature_type = int(signature_type)
        self.timeout = float(timeout)
        self.dry_run = dry_run
        self._client_factory = client_factory
        self.log = log
        self.client = None

    async def _call(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(None, lambda: fn(*args)), timeout=self.timeout)

    async def initialize(self) -> None:
        if self.dry_run:
            if self.log is not None:
                self.log.info("gateway dry-run: orders are simulated, no CLOB session")
            return
        if not self.private_key:
            raise GatewayInitError("private key is required for live trading")
        try:
            client = self._client_factory(
                self.host,
                chain_id=self.chain_id,
                key=self.private_key,
                signature_type=self.signature_type,
                funder=self.funder or None,
            )
            if not self.funder:
                self.funder = client.get_address()
            creds = await self._call(client.create_or_derive_api_creds)
            client.set_api_creds(creds)
        except Exception as exc:
            raise GatewayInitError(f"CLOB authentication failed: {exc}") from exc
        self.client = client
        if self.log is not None:
            self.log.info(
                "clob session ready funder=%s signature_type=%s api_key=%s...",
                self.funder,
                self.signature_type,
                short_id(getattr(creds, "api_key", "") or ""),
            )

    async def has_open_order(self, condition_id: str) -> bool:
        if self.dry_run or self.client is None:
            return False
        try:
            orders = await self._call(self.client.get_orders, OpenOrderParams(market=condition_id))
        except Exception as exc:
            if self.log is not None:
                self.log.warning("open-order check failed market=%s err=%s", short_id(condition_id), exc)
            return False
        if not isinstance(orders, list):
            return False
        return any(str(o.get("market", "")) == condition_id for o in orders if isinstance(o, dict))

    async def place_buy(self, condition_id: str, token_id: str, price: float, stake: float) -> OrderResult:
        try:
            price = float(price)
        except (TypeError, ValueError):
            return OrderResult(ok=False, reason=f"invalid price {price!r}")
        if math.isnan(price) or price <= 0:
            return OrderResult(ok=False, reason=f"invalid price {price}")
        size = share_size(stake, price)
        if size <= 0:
            return OrderResult(ok=False, reason="size rounds to zero")

        if self.dry_run:
            return OrderResult(
                ok=True,
                reason="dry_run",
                order_id=f"dry-{uuid.uuid4().hex[:12]}",
                status="simulated",
                price=price,
                size=size,
                notional_usdc=stake,
            )
        if self.client is None:
            return OrderResult(ok=False, reason="clob client not initialized")

        try:
            market = await self._call(self.client.get_market, condition_id)
            tick_size = TICK_SIZES.get(float(market.get("minimum_tick_size", 0.01) or 0.01), "0.01")
            options = PartialCreateOrderOptions(tick_size=tick_size, neg_risk=bool(market.get("neg_risk", False)))
            order_args = OrderArgs(token_id=token_id, price=price, size=size, side=BUY)
            signed = await self._call(self.client.create_order, order_args, options)
        except Exception as exc:
            return OrderResult(ok=False, reason=f"order error: {exc}", price=price, size=size)

        try:
            resp = await self._call(self.client.post_order, signed, OrderType.GTC)
        except asyncio.TimeoutError:
            # the executor thread may still post it
            return OrderResult(ok=False, reason="post timed out", status="unknown", price=price, size=size,
                               notional_usdc=stake, uncertain=True)
        except Exception as exc:
            return OrderResult(ok=False, reason=f"order error: {exc}", price=price, size=size)

        resp = resp or {}
        order_id = str(resp.get("orderID") or resp.get("orderId") or "")
        if not order_id:
            return OrderResult(ok=False, reason=str(resp.get("errorMsg") or "no order id"), price=price, size=size)
        return OrderResult(
            ok=True,
            reason="posted",
            order_id=order_id,
            status=str(resp.get("status", "")),
            price=price,
            size=size,
            notional_usdc=stake,
        )
