import asyncio

from updown_bot.domain import DOWN, UP, GateReading, OrderResult, StakeState
from updown_bot.errors import ConfigError
from updown_bot.runtime import StakingEngine
from updown_bot.settlement import SettlementManager
from updown_bot.strategy import MartingalePolicy, build_strategy
from updown_bot.tests.fakes import NOW, FakeGate, FakeGateway, FakeLocator, FakeQuotes, make_quote, make_window


def _engine(*, windows=None, quotes=None, reading=GateReading(True, UP), gateway=None, strategy="contrarian",
            state=None, clock=lambda: NOW) -> StakingEngine:
    locator = FakeLocator(windows)
    quote_reader = FakeQuotes(quotes)
    settlement = SettlementManager(locator, quote_reader, MartingalePolicy(), clock=clock)
    return StakingEngine(
        state=state or StakeState.fresh(10, UP),
        strategy=build_strategy(strategy, max_entry_price=0.5),
        settlement=settlement,
        locator=locator,
        quotes=quote_reader,
        gate=FakeGate(reading),
        gateway=gateway or FakeGateway(),
    )


def _one_market(up: float = 0.48, down: float = 0.53):
    w = make_window()
    return {0: w}, {w.market_id: make_quote(w, up, down)}, w


def test_contrarian_bets_against_run_once_per_market() -> None:
    windows, quotes, w = _one_market()
    gateway = FakeGateway()
    engine = _engine(windows=windows, quotes=quotes, gateway=gateway)

    assert asyncio.run(engine.tick()) == "order_placed"
    assert asyncio.run(engine.tick()) == "tracked"
    assert len(gateway.placed) == 1
    cid, token, price, stake = gateway.placed[0]
    assert cid == w.condition_id
    assert token == w.down_token_id
    assert price == 0.53
    assert stake == 10
    assert engine.positions[w.market_id].side == DOWN


def test_skips_market_with_existing_open_order() -> None:
    windows, quotes, w = _one_market()
    gateway = FakeGateway(open_orders={w.condition_id})
    engine = _engine(windows=windows, quotes=quotes, gateway=gateway)
    assert asyncio.run(engine.tick()) == "open_order"
    assert gateway.placed == []


def test_order_failure_releases_lock_and_keeps_stake() -> None:
    windows, quotes, w = _one_market()
    gateway = FakeGateway(result=OrderResult(ok=False, reason="rejected"))
    engine = _engine(windows=windows, quotes=quotes, gateway=gateway)

    assert asyncio.run(engine.tick()) == "order_failed"
    assert not engine.order_locked
    assert engine.positions == {}
    assert engine.state.current_amount == 10

    gateway.result = OrderResult(ok=True, reason="posted", order_id="oid-2")
    assert asyncio.run(engine.tick()) == "order_placed"
    assert len(gateway.placed) == 2


def test_order_exception_is_contained() -> None:
    windows, quotes, _ = _one_market()
    gateway = FakeGateway(raise_on_place=RuntimeError("boom"))
    engine = _engine(windows=windows, quotes=quotes, gateway=gateway)
    assert asyncio.run(engine.tick()) == "error"
    assert not engine.order_locked
    assert engine.positions == {}


def test_overlapping_ticks_place_one_order() -> None:
    windows, quotes, _ = _one_market()

    async def scenario():
        hold = asyncio.Event()
        gateway = FakeGateway(hold=hold)
        engine = _engine(windows=windows, quotes=quotes, gateway=gateway)
        first = asyncio.create_task(engine.tick())
        await asyncio.sleep(0)
        while not gateway.placed:
            await asyncio.sleep(0)
        second = await engine.tick()
        hold.set()
        return await first, second, gateway

    first, second, gateway = asyncio.run(scenario())
    assert first == "order_placed"
    assert second == "busy"
    assert len(gateway.placed) == 1


def test_no_market_in_either_window_is_a_noop() -> None:
    gateway = FakeGateway()
    engine = _engine(windows={}, gateway=gateway)
    assert asyncio.run(engine.tick()) == "no_market"
    assert engine.locator.calls == [0, 1]
    assert gateway.placed == []


def test_falls_through_to_next_window() -> None:
    w = make_window(market_id="btc-updown-15m-1700001000", cid="0xnext")
    engine = _engine(windows={1: w}, quotes={w.market_id: make_quote(w, 0.4, 0.6)})
    assert asyncio.run(engine.tick()) == "order_placed"
    assert "btc-updown-15m-1700001000" in engine.positions


def test_gate_closed_blocks_entry() -> None:
    windows, quotes, _ = _one_market()
    for reading in (None, GateReading(False, UP)):
        gateway = FakeGateway()
        engine = _engine(windows=windows, quotes=quotes, reading=reading, gateway=gateway)
        engine.state.awaiting_gate_clear = True
        assert asyncio.run(engine.tick()) == "gate_closed"
        assert engine.state.awaiting_gate_clear is True
        assert gateway.placed == []


def test_uniform_run_clears_gate_wait() -> None:
    windows, quotes, _ = _one_market()
    engine = _engine(windows=windows, quotes=quotes, reading=GateReading(True, DOWN))
    engine.state.awaiting_gate_clear = True
    assert asyncio.run(engine.tick()) == "order_placed"
    assert engine.state.awaiting_gate_clear is False
    assert engine.positions[make_window().market_id].side == UP


def test_fixed_strategy_respects_max_entry_price() -> None:
    windows, quotes, w = _one_market(up=0.55, down=0.46)
    engine = _engine(windows=windows, quotes=quotes, strategy="fixed", reading=None)
    assert asyncio.run(engine.tick()) == "price_above_max"

    engine.state.side = DOWN
    assert asyncio.run(engine.tick()) == "order_placed"
    assert engine.gateway.placed[0][1] == w.down_token_id
    assert engine.gate.calls == []


def test_no_quote_skips_entry() -> None:
    windows, _, _ = _one_market()
    gateway = FakeGateway()
    engine = _engine(windows=windows, quotes={}, gateway=gateway)
    assert asyncio.run(engine.tick()) == "no_quote"
    assert gateway.placed == []


def test_loss_then_next_order_uses_doubled_stake() -> None:
    now = [NOW]
    first = make_window(close_in=600)
    second = make_window(market_id="btc-updown-15m-1700001000", cid="0xcond-b", close_in=1500)
    gateway = FakeGateway()
    engine = _engine(
        windows={0: first},
        quotes={first.market_id: make_quote(first, 0.48, 0.53)},
        gateway=gateway,
        clock=lambda: now[0],
    )

    assert asyncio.run(engine.tick()) == "order_placed"

    # bet DOWN; market closes with UP winning
    now[0] = NOW + 598
    engine.quotes.quotes[first.market_id] = make_quote(first, 0.995, 0.005)
    engine.locator.windows[1] = second
    engine.quotes.quotes[second.market_id] = make_quote(second, 0.5, 0.5)
    assert asyncio.run(engine.tick()) == "settled"

    assert engine.state.current_amount == 20
    assert engine.state.last_result == "loss"
    assert first.market_id not in engine.positions

    engine.locator.windows.pop(0)
    assert asyncio.run(engine.tick()) == "order_placed"
    assert gateway.placed[-1][3] == 20


def test_setters_validate_and_apply() -> None:
    engine = _engine()
    engine.set_trading_side("down")
    assert engine.state.side == DOWN
    engine.set_gate_run_length(5)
    assert engine.gate_run_length == 5
    engine.set_initial_amount(3, running=True)
    assert engine.state.initial_amount == 3
    assert engine.state.current_amount == 10
    engine.set_initial_amount(4, running=False)
    assert engine.state.current_amount == 4

    for call in (
        lambda: engine.set_trading_side("sideways"),
        lambda: engine.set_gate_run_length(0),
        lambda: engine.set_initial_amount(-1, running=True),
    ):
        try:
            call()
        except ConfigError:
            continue
        raise AssertionError("expected ConfigError")


def test_raising_initial_amount_while_running_lifts_stake() -> None:
    engine = _engine()
    engine.set_initial_amount(30, running=True)
    assert engine.state.initial_amount == 30
    assert engine.state.current_amount == 30
    assert engine.state.consecutive_losses == 0

    engine.state.current_amount = 120
    engine.set_initial_amount(40, running=True)
    assert engine.state.current_amount == 120


def test_unknown_order_outcome_stays_tracked() -> None:
    windows, quotes, w = _one_market()
    gateway = FakeGateway(result=OrderResult(ok=False, reason="post timed out", status="unknown", uncertain=True))
    engine = _engine(windows=windows, quotes=quotes, gateway=gateway)

    assert asyncio.run(engine.tick()) == "order_unknown"
    assert not engine.order_locked
    assert engine.positions[w.market_id].stake == 10
    assert asyncio.run(engine.tick()) == "tracked"
    assert len(gateway.placed) == 1


def test_snapshot_fields() -> None:
    engine = _engine()
    snap = engine.snapshot()
    assert snap["current_stake_amount"] == 10
    assert snap["trading_side"] == UP
    assert snap["strategy"] == "contrarian"
    assert snap["history"] == []
    assert snap["tracked_market_count"] == 0
