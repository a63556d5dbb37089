from __future__ import annotations

import asyncio
import time

from updown_bot.config import Settings
from updown_bot.data import CandleFeed, CandleGate, HttpService, MarketLocator, QuoteReader, SnapshotStore
from updown_bot.domain import StakeState
from updown_bot.execution import OrderGateway
from updown_bot.infra import RuntimeEventLogger, get_logger
from updown_bot.runtime.controller import Controller
from updown_bot.runtime.engine import StakingEngine
from updown_bot.settlement import SettlementManager
from updown_bot.strategy import MartingalePolicy, build_strategy


def build_controller(
    settings: Settings,
    *,
    http=None,
    events: RuntimeEventLogger | None = None,
    store: SnapshotStore | None = None,
    client_factory=None,
    clock=time.time,
    log=None,
) -> Controller:
    """Wire collaborators, strategy and stake policy into a controller."""
    log = log or get_logger("updown-bot.engine", settings.log_level)
    http = http or HttpService(timeout=settings.http_timeout_sec, log=log)

    locator = MarketLocator(
        http,
        gamma_url=settings.gamma_api_url,
        asset=settings.market_asset,
        window_minutes=settings.window_minutes,
        clock=clock,
        log=log,
    )
    quotes = QuoteReader(http, clob_host=settings.clob_host, log=log)
    gate = CandleGate(
        CandleFeed(http, base_url=settings.binance_api_url, clock=clock),
        symbol=settings.candle_symbol,
        interval_minutes=settings.window_minutes,
        log=log,
    )
    gateway_kwargs = {} if client_factory is None else {"client_factory": client_factory}
    gateway = OrderGateway(
        host=settings.clob_host,
        chain_id=settings.chain_id,
        private_key=settings.private_key,
        funder=settings.funder_address,
        signature_type=settings.signature_type,
        timeout=settings.http_timeout_sec,
        dry_run=settings.dry_run,
        log=log,
        **gateway_kwargs,
    )
    policy = MartingalePolicy(breaker_losses=settings.circuit_breaker_losses)
    settlement = SettlementManager(
        locator,
        quotes,
        policy,
        grace_sec=settings.resolve_grace_sec,
        win_threshold=settings.win_threshold,
        clock=clock,
        log=log,
        events=events,
    )
    engine = StakingEngine(
        state=StakeState.fresh(settings.investment_amount, settings.trading_side),
        strategy=build_strategy(settings.strategy, max_entry_price=settings.max_entry_price),
        settlement=settlement,
        locator=locator,
        quotes=quotes,
        gate=gate,
        gateway=gateway,
        gate_run_length=settings.consecutive_candles,
        log=log,
        events=events,
    )
    return Controller(engine, gateway, interval_ms=settings.check_interval_ms, store=store, events=events, log=log)


class App:
    """Top-level orchestrator: control surface plus (optionally) an auto-started bot."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.log = get_logger("updown-bot", settings.log_level)

    async def run(self) -> None:
        from updown_bot.dashboard import BotManager, run_dashboard

        self.log.info(
            "starting app strategy=%s dry_run=%s dashboard=%s port=%s",
            self.settings.strategy,
            self.settings.dry_run,
            self.settings.dashboard_mode,
            self.settings.control_port,
        )
        manager = BotManager(self.settings, log=self.log)
        if self.settings.auto_start and self.settings.dashboard_mode != "external":
            await manager.start()
        try:
            await run_dashboard(manager, host=self.settings.control_host, port=self.settings.control_port)
        finally:
            await manager.shutdown()


def run_main(settings: Settings) -> None:
    asyncio.run(App(settings).run())
