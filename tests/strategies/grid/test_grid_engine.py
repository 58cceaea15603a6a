"""
Tests for the grid engine: intents on level crossings, bracket halts,
retry classification and balance bookkeeping.
"""

import asyncio
from decimal import Decimal

import pytest

from exchange_clients.base_models import Balance, OrderSide, OrderStatus
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    ExchangeTimeoutError,
    InvalidConfigurationError,
    NetworkError,
)
from strategies.grid.engine import GridEngine
from strategies.grid.exceptions import EngineHaltedError
from strategies.grid.models import EngineStatus, HaltReason


def make_engine(exchange, config, retry_policy=None, **kwargs) -> GridEngine:
    return GridEngine(
        exchange,
        config,
        symbol="btcusdt",
        retry_policy=retry_policy,
        **kwargs,
    )


async def feed(engine: GridEngine, *prices: str) -> list:
    """Feed prices in order and wait for placements; returns all intents."""
    intents = []
    for price in prices:
        intents.extend(await engine.on_price(Decimal(price)))
        await engine.wait_for_placements()
    return intents


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestLevelCrossings:
    @pytest.mark.asyncio
    async def test_first_observation_only_seeds_price(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        assert await engine.on_price(Decimal("27400")) == []
        assert engine.last_price == Decimal("27400")
        assert fake_exchange.placed == []

    @pytest.mark.asyncio
    async def test_upward_crossing_emits_sell(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        intents = await feed(engine, "27400", "27600")

        assert len(intents) == 1
        intent = intents[0]
        assert intent.side == OrderSide.SELL
        assert intent.price == Decimal("27500")
        assert intent.quantity == Decimal("100")
        assert intent.symbol == "BTCUSDT"

        order = engine.ledger.get(intent.order_id)
        assert order.status == OrderStatus.OPEN
        assert fake_exchange.placed[0].order_id == intent.order_id

    @pytest.mark.asyncio
    async def test_downward_crossing_emits_buys_nearest_first(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        intents = await feed(engine, "27600", "26400")

        assert [intent.side for intent in intents] == [OrderSide.BUY] * 3
        assert [intent.price for intent in intents] == [Decimal("27500"), Decimal("27000"), Decimal("26500")]

    @pytest.mark.asyncio
    async def test_no_duplicate_order_at_resting_level(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        await feed(engine, "27400", "27600", "27400")
        intents = await feed(engine, "27600")

        assert intents == []
        sells = [o for o in engine.ledger.active_orders() if o.side == OrderSide.SELL]
        assert len(sells) == 1

    @pytest.mark.asyncio
    async def test_order_ids_are_unique(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        intents = await feed(engine, "25100", "29900")

        ids = [intent.order_id for intent in intents]
        assert len(ids) == len(set(ids)) == 9


class TestBracket:
    @pytest.mark.asyncio
    async def test_stop_loss_cancels_open_orders_and_halts(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        await feed(engine, "27400", "27600", "26900")
        open_ids = {order.order_id for order in engine.ledger.open_orders()}
        assert len(open_ids) == 3

        intents = await engine.on_price(Decimal("24000"))

        assert intents == []
        assert engine.status == EngineStatus.HALTED
        assert engine.halt_reason == HaltReason.STOP_LOSS.value
        assert set(fake_exchange.cancelled) == open_ids
        assert engine.ledger.active_orders() == ()
        assert all(order.status == OrderStatus.CANCELLED for order in engine.ledger.all_orders())

        placed = len(fake_exchange.placed)
        assert await feed(engine, "26900", "27600") == []
        assert len(fake_exchange.placed) == placed

    @pytest.mark.asyncio
    async def test_stop_loss_cancels_order_during_status_query(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        intents = await feed(engine, "27400", "27600")
        order_id = intents[0].order_id

        fake_exchange.gates["get_order"] = asyncio.Event()
        reconcile = asyncio.create_task(engine.reconcile_orders())
        await wait_until(lambda: fake_exchange.calls.get("get_order", 0) == 1)

        await engine.on_price(Decimal("24000"))

        assert fake_exchange.cancelled == [order_id]
        assert engine.ledger.get(order_id).status == OrderStatus.CANCELLED
        assert engine.last_error is None

        fake_exchange.gates["get_order"].set()
        assert await reconcile == []
        assert engine.ledger.get(order_id).status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_take_profit_halts(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        await feed(engine, "29000", "31000")

        assert engine.status == EngineStatus.HALTED
        assert engine.halt_reason == HaltReason.TAKE_PROFIT.value
        assert fake_exchange.placed == []

    @pytest.mark.asyncio
    async def test_breach_on_first_observation(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        await engine.on_price(Decimal("23000"))

        assert engine.status == EngineStatus.HALTED
        with pytest.raises(EngineHaltedError):
            await engine.start()

    @pytest.mark.asyncio
    async def test_liquidation_on_halt(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry, liquidate_on_halt=True)
        await feed(engine, "25500")
        await engine.on_price(Decimal("24000"))

        liquidation = fake_exchange.placed[-1]
        assert liquidation.side == OrderSide.SELL
        assert liquidation.price is None
        assert liquidation.quantity == Decimal("1")
        assert engine.ledger.get(liquidation.order_id).status == OrderStatus.FILLED

    @pytest.mark.asyncio
    async def test_cancel_failure_is_reported(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        await feed(engine, "27400", "27600")
        fake_exchange.failures["cancel_order"] = [NetworkError("connection reset")]

        report = await engine.halt("manual")

        assert not report.success
        assert report.failures[0][1].kind == "NetworkError"
        assert engine.last_error.kind == "NetworkError"
        assert len(engine.ledger.open_orders()) == 1


class TestRetryClassification:
    @pytest.mark.asyncio
    async def test_timeouts_are_retried_then_surfaced(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(
            fake_exchange, grid_config, fast_retry,
            price_poll_seconds=3600, balance_poll_seconds=3600, reconcile_poll_seconds=3600,
        )
        fake_exchange.failures["get_price"] = [ExchangeTimeoutError("timed out")] * 3

        await engine.start()
        try:
            await wait_until(lambda: engine.last_error is not None)

            assert fake_exchange.calls["get_price"] == 3
            assert engine.last_error.kind == "Timeout"
            assert engine.status == EngineStatus.RUNNING
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_transient_timeout_recovers(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.failures["get_price"] = [ExchangeTimeoutError("timed out")]

        price = await engine.poll_price()

        assert price == Decimal("27000")
        assert fake_exchange.calls["get_price"] == 2
        assert engine.last_error is None

    @pytest.mark.asyncio
    async def test_authentication_failure_is_not_retried_and_halts(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.failures["place_order"] = [AuthenticationError("Invalid API-key")]

        intents = await feed(engine, "27400", "27600")

        assert fake_exchange.calls["place_order"] == 1
        assert engine.status == EngineStatus.HALTED
        assert engine.halt_reason == HaltReason.AUTHENTICATION_FAILED.value
        assert engine.last_error.kind == "AuthenticationError"
        assert engine.ledger.get(intents[0].order_id).status == OrderStatus.REJECTED
        assert fake_exchange.calls.get("cancel_order", 0) == 0

    @pytest.mark.asyncio
    async def test_authentication_failure_on_poll_halts(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.failures["get_balance"] = [AuthenticationError("signature")]

        assert await engine.poll_balance() is None
        assert fake_exchange.calls["get_balance"] == 1
        assert engine.status == EngineStatus.HALTED

    @pytest.mark.asyncio
    async def test_exchange_rejection_marks_order_rejected(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.failures["place_order"] = [ExchangeAPIError("Account has insufficient balance", code=-2010)]

        intents = await feed(engine, "27400", "27600")

        assert engine.ledger.get(intents[0].order_id).status == OrderStatus.REJECTED
        assert engine.last_error.kind == "ExchangeError"
        assert engine.accepts_orders

    @pytest.mark.asyncio
    async def test_unknown_placement_outcome_is_reconciled(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.failures["place_order"] = [NetworkError("connection reset")]

        intents = await feed(engine, "27400", "27600")
        order_id = intents[0].order_id
        assert engine.ledger.get(order_id).status == OrderStatus.PENDING

        await engine.reconcile_orders()

        assert engine.ledger.get(order_id).status == OrderStatus.REJECTED


class TestBalance:
    @pytest.mark.asyncio
    async def test_fill_adjusts_cached_balance(self, fake_exchange, grid_config, fast_retry):
        config = grid_config.with_updates(initial_investment=Decimal("0.1"))
        engine = make_engine(fake_exchange, config, fast_retry)
        await engine.poll_balance()
        intents = await feed(engine, "27400", "27600")

        fake_exchange.fill(intents[0].order_id)
        filled = await engine.reconcile_orders()

        assert [order.order_id for order in filled] == [intents[0].order_id]
        assert engine.balance == Balance(base=Decimal("0.99"), quote=Decimal("10275.00"))


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        await feed(engine, "27400", "27600")

        report = await engine.stop()

        assert report.success
        assert report.reason == HaltReason.OPERATOR_STOP.value
        assert len(report.cancelled_order_ids) == 1
        assert engine.status == EngineStatus.STOPPED
        assert engine.ledger.active_orders() == ()

    @pytest.mark.asyncio
    async def test_stop_aborts_in_flight_placement(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        fake_exchange.gates["place_order"] = asyncio.Event()
        await engine.on_price(Decimal("27400"))
        intents = await engine.on_price(Decimal("27600"))
        await asyncio.sleep(0)

        report = await engine.stop()

        assert report.aborted_placements == 1
        assert engine.ledger.get(intents[0].order_id).status == OrderStatus.REJECTED
        assert fake_exchange.placed == []

    @pytest.mark.asyncio
    async def test_snapshots_are_published(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)
        snapshots = []
        unsubscribe = engine.subscribe(snapshots.append)

        await feed(engine, "27400", "27600")
        unsubscribe()
        count = len(snapshots)
        await feed(engine, "27700")

        assert count > 0
        assert len(snapshots) == count
        latest = snapshots[-1]
        assert latest.last_price == Decimal("27600")
        assert len(latest.open_orders) == 1
        assert latest.to_dict()["levels"][0] == "25000"

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_engine(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        def broken(snapshot):
            raise RuntimeError("render failed")

        engine.subscribe(broken)
        intents = await feed(engine, "27400", "27600")
        assert len(intents) == 1

    @pytest.mark.asyncio
    async def test_update_configuration_rederives_levels(self, fake_exchange, grid_config, fast_retry):
        engine = make_engine(fake_exchange, grid_config, fast_retry)

        levels = await engine.update_configuration({**grid_config.model_dump(), "grid_number": 5})

        assert levels == engine.levels
        assert len(levels) == 6
        with pytest.raises(InvalidConfigurationError):
            await engine.update_configuration({**grid_config.model_dump(), "grid_number": 0})
        assert len(engine.levels) == 6
