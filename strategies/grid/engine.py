"""
Grid Engine - orchestrates levels, orders and polling for one trading session.

Flow per price observation:

1. Bracket check (stop-loss / take-profit) first; a breach halts the run
2. Level crossings since the previous observation become order intents
3. Intents are recorded PENDING, then placed as tracked asyncio tasks
4. Exchange confirmations update the ledger; a snapshot is published

All in-memory state changes happen under a single ``asyncio.Lock``; network
calls are made outside it so a slow exchange cannot block other timers.
"""

import asyncio
import itertools
import uuid
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from tenacity import RetryCallState

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.base_models import (
    Balance,
    ErrorInfo,
    OrderInfo,
    OrderSide,
    OrderStatus,
    RetryPolicy,
    call_with_retry,
)
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    OrderNotFoundError,
    TradingError,
)
from helpers.unified_logger import get_strategy_logger, log_stage

from .config import GridConfiguration, load_grid_configuration
from .exceptions import EngineHaltedError, InvalidOrderTransitionError
from .ledger import OrderLedger
from .levels import compute_levels, crossed_levels, order_quantity
from .models import EngineSnapshot, EngineStatus, HaltReason, HaltReport, Order, OrderIntent

SnapshotSubscriber = Callable[[EngineSnapshot], Any]


class GridEngine:
    """
    Single grid trading session.

    The engine owns the ``GridConfiguration`` and the level set derived from
    it, drives the ``ExchangeAccess`` capability and records every order in
    its ``OrderLedger``. It does not open or close the exchange connection.
    """

    def __init__(
        self,
        exchange: ExchangeAccess,
        config: GridConfiguration,
        *,
        symbol: str,
        retry_policy: Optional[RetryPolicy] = None,
        price_poll_seconds: float = 10.0,
        balance_poll_seconds: float = 60.0,
        reconcile_poll_seconds: float = 15.0,
        liquidate_on_halt: bool = False,
        order_id_prefix: str = "grid",
    ):
        self.exchange = exchange
        self.symbol = symbol.upper()
        self.retry_policy = retry_policy or RetryPolicy()
        self.price_poll_seconds = price_poll_seconds
        self.balance_poll_seconds = balance_poll_seconds
        self.reconcile_poll_seconds = reconcile_poll_seconds
        self.liquidate_on_halt = liquidate_on_halt

        self.logger = get_strategy_logger("grid", symbol=self.symbol)

        self._lock = asyncio.Lock()
        self.ledger = OrderLedger(lock=self._lock)

        self._config = config
        self._levels: Tuple[Decimal, ...] = compute_levels(config)
        self._status = EngineStatus.IDLE
        self._halt_reason: Optional[str] = None
        self._last_price: Optional[Decimal] = None
        self._balance: Optional[Balance] = None
        self._last_error: Optional[ErrorInfo] = None
        self._cleanup_task: Optional[asyncio.Task] = None

        self._subscribers: List[SnapshotSubscriber] = []
        self._timers: List[asyncio.Task] = []
        self._placements: Dict[str, asyncio.Task] = {}
        self._halted = asyncio.Event()

        self._order_prefix = f"{order_id_prefix}-{uuid.uuid4().hex[:8]}"
        self._order_seq = itertools.count(1)

        self._warn_bracket(config)

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def config(self) -> GridConfiguration:
        return self._config

    @property
    def levels(self) -> Tuple[Decimal, ...]:
        return self._levels

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def halt_reason(self) -> Optional[str]:
        return self._halt_reason

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        return self._last_error

    @property
    def last_price(self) -> Optional[Decimal]:
        return self._last_price

    @property
    def balance(self) -> Optional[Balance]:
        return self._balance

    @property
    def accepts_orders(self) -> bool:
        return self._status in (EngineStatus.IDLE, EngineStatus.RUNNING)

    # ========================================================================
    # Configuration
    # ========================================================================

    async def update_configuration(
        self, config: Union[GridConfiguration, Mapping[str, Any]]
    ) -> Tuple[Decimal, ...]:
        """
        Replace the configuration and re-derive the level set in one step.

        Raises:
            InvalidConfigurationError: the new configuration is rejected and
                the previous one stays in effect
        """
        if not isinstance(config, GridConfiguration):
            config = load_grid_configuration(config)
        levels = compute_levels(config)

        async with self._lock:
            self._config = config
            self._levels = levels

        self._warn_bracket(config)
        self.logger.info(
            f"Grid configured: {config.lower_limit} - {config.upper_limit}, "
            f"{config.grid_number} grids, investment {config.initial_investment}"
        )
        self._publish()
        return levels

    def _warn_bracket(self, config: GridConfiguration) -> None:
        for issue in config.bracket_issues():
            self.logger.warning(f"⚠️ Bracket does not enclose the grid: {issue}")

    # ========================================================================
    # Snapshots
    # ========================================================================

    def subscribe(self, callback: SnapshotSubscriber) -> Callable[[], None]:
        """Register a snapshot consumer; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            symbol=self.symbol,
            levels=self._levels,
            status=self._status,
            last_price=self._last_price,
            balance=self._balance,
            open_orders=self.ledger.active_orders(),
            completed_orders=self.ledger.completed_orders(),
            halt_reason=self._halt_reason,
            last_error=self._last_error,
        )

    def _publish(self) -> EngineSnapshot:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:
                self.logger.error(f"Snapshot subscriber {callback!r} failed: {exc}")
        return snapshot

    def _record_error(self, context: str, exc: BaseException) -> None:
        self._last_error = ErrorInfo.from_exception(exc)
        self.logger.error(f"{context} failed [{self._last_error.kind}]: {self._last_error.message}")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        name = getattr(retry_state.fn, "__name__", "call")
        self.logger.warning(f"Retrying {name} (attempt {retry_state.attempt_number}) after: {exc}")

    # ========================================================================
    # Price observations
    # ========================================================================

    async def on_price(self, price: Decimal) -> List[OrderIntent]:
        """
        Process one price observation.

        The bracket is checked before level logic. The first observation of
        a session only seeds the reference price.

        Returns:
            Intents emitted for this observation (empty when halted).
        """
        price = Decimal(str(price))
        intents: List[OrderIntent] = []
        breach: Optional[HaltReason] = None

        async with self._lock:
            previous = self._last_price
            self._last_price = price

            if not self.accepts_orders:
                self.logger.debug(f"Price {price} ignored: engine {self._status.value}")
            else:
                breach = self._bracket_breach(price)
                if breach is not None:
                    self._mark_halted(breach.value)
                elif previous is not None:
                    intents = self._build_intents(previous, price)
                    for intent in intents:
                        self.ledger.submit(intent)
                        self.ledger.claim(intent.order_id)
                        self._placements[intent.order_id] = asyncio.create_task(
                            self._place(intent), name=f"place-{intent.order_id}"
                        )

        if breach is not None:
            self.logger.warning(f"🛑 {breach.value} triggered at {price}; halting and cancelling orders")
            await self._run_cleanup(breach.value, liquidate=self.liquidate_on_halt)
        else:
            self._publish()
        return intents

    def _bracket_breach(self, price: Decimal) -> Optional[HaltReason]:
        if price <= self._config.stop_loss:
            return HaltReason.STOP_LOSS
        if price >= self._config.take_profit_level:
            return HaltReason.TAKE_PROFIT
        return None

    def _build_intents(self, previous: Decimal, price: Decimal) -> List[OrderIntent]:
        upward, downward = crossed_levels(self._levels, previous, price)
        intents: List[OrderIntent] = []
        # Nearest level first in the direction of travel
        for side, crossed in ((OrderSide.SELL, upward), (OrderSide.BUY, tuple(reversed(downward)))):
            for level in crossed:
                if self.ledger.has_resting(side, level):
                    self.logger.debug(f"{side.value} already resting at {level}")
                    continue
                quantity = order_quantity(self._config, level)
                if quantity <= 0:
                    self.logger.warning(f"Skipping {side.value} at {level}: order quantity is {quantity}")
                    continue
                intents.append(
                    OrderIntent(
                        order_id=self._next_order_id(),
                        symbol=self.symbol,
                        side=side,
                        price=level,
                        quantity=quantity,
                        level_index=self._levels.index(level),
                    )
                )
                self.logger.info(f"Level {level} crossed ({previous} -> {price}): {side.value} {quantity}")
        return intents

    def _next_order_id(self) -> str:
        return f"{self._order_prefix}-{next(self._order_seq)}"

    # ========================================================================
    # Order placement
    # ========================================================================

    async def _place(self, intent: OrderIntent) -> None:
        """Submit one intent; the in-flight slot was claimed when it was recorded."""
        try:
            info = await call_with_retry(
                self.retry_policy,
                self.exchange.place_order,
                intent.symbol,
                intent.side,
                intent.quantity,
                intent.price,
                client_order_id=intent.order_id,
                on_retry=self._log_retry,
            )
        except asyncio.CancelledError:
            self.logger.warning(f"Placement of {intent.order_id} aborted")
            raise
        except AuthenticationError as exc:
            async with self._lock:
                self.ledger.transition(intent.order_id, OrderStatus.REJECTED)
            await self._on_authentication_failure(exc)
            return
        except ExchangeAPIError as exc:
            async with self._lock:
                self.ledger.transition(intent.order_id, OrderStatus.REJECTED)
            self._record_error(f"Placing {intent.side.value} {intent.order_id}", exc)
            self._publish()
            return
        except TradingError as exc:
            # Outcome unknown; left PENDING until reconciliation asks the exchange
            self._record_error(f"Placing {intent.side.value} {intent.order_id}", exc)
            self._publish()
            return
        else:
            async with self._lock:
                self._apply_confirmation(intent.order_id, info)
        finally:
            self.ledger.release(intent.order_id)
            self._placements.pop(intent.order_id, None)
        self._publish()

    def _apply_confirmation(self, order_id: str, info: OrderInfo) -> Optional[Order]:
        """Apply an exchange answer; callers hold the state lock."""
        before = self.ledger.get(order_id)
        try:
            updated = self.ledger.apply(order_id, info)
        except InvalidOrderTransitionError as exc:
            self.logger.warning(f"Ignoring confirmation for {order_id}: {exc}")
            return None
        if updated.status == OrderStatus.FILLED and before is not None and before.status != OrderStatus.FILLED:
            self._apply_fill(updated)
        return updated

    def _apply_fill(self, order: Order) -> None:
        """Adjust the cached balance for a confirmed fill."""
        if self._balance is None or order.price is None:
            return
        quantity = order.filled_quantity if order.filled_quantity > 0 else order.quantity
        notional = quantity * order.price
        if order.side == OrderSide.BUY:
            self._balance = Balance(base=self._balance.base + quantity, quote=self._balance.quote - notional)
        else:
            self._balance = Balance(base=self._balance.base - quantity, quote=self._balance.quote + notional)
        self.logger.log_transaction(order.order_id, order.side.value, quantity, order.price, "FILLED")

    async def wait_for_placements(self) -> None:
        """Wait until every placement task started so far has finished."""
        tasks = list(self._placements.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _abort_placements(self) -> int:
        """Cancel outstanding placement tasks (other than the caller's own)."""
        current = asyncio.current_task()
        tasks = [task for task in self._placements.values() if task is not current and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    # ========================================================================
    # Polling
    # ========================================================================

    async def poll_price(self) -> Optional[Decimal]:
        try:
            price = await call_with_retry(
                self.retry_policy, self.exchange.get_price, self.symbol, on_retry=self._log_retry
            )
        except AuthenticationError as exc:
            await self._on_authentication_failure(exc)
            return None
        except TradingError as exc:
            self._record_error("Price poll", exc)
            self._publish()
            return None
        await self.on_price(price)
        return price

    async def poll_balance(self) -> Optional[Balance]:
        try:
            balance = await call_with_retry(
                self.retry_policy, self.exchange.get_balance, on_retry=self._log_retry
            )
        except AuthenticationError as exc:
            await self._on_authentication_failure(exc)
            return None
        except TradingError as exc:
            self._record_error("Balance poll", exc)
            self._publish()
            return None
        async with self._lock:
            self._balance = balance
        self._publish()
        return balance

    async def reconcile_orders(self) -> List[Order]:
        """Refresh non-terminal orders from the exchange; returns newly filled ones."""

        def _on_error(order: Order, exc: TradingError) -> None:
            self._record_error(f"Reconciling {order.order_id}", exc)

        try:
            filled = await self.ledger.reconcile(
                self.exchange, retry_policy=self.retry_policy, on_error=_on_error
            )
        except AuthenticationError as exc:
            await self._on_authentication_failure(exc)
            return []

        if filled:
            async with self._lock:
                for order in filled:
                    self._apply_fill(order)
        self._publish()
        return filled

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """Start the price, balance and reconciliation timers."""
        if self._status == EngineStatus.RUNNING:
            return
        if not self.accepts_orders:
            raise EngineHaltedError(
                f"Engine is {self._status.value} ({self._halt_reason}); start a new session to trade again"
            )

        log_stage(self.logger, f"Starting grid engine for {self.symbol}")
        self.logger.info(f"Levels: {', '.join(str(level) for level in self._levels)}")
        self._status = EngineStatus.RUNNING
        self._timers = [
            self._spawn_timer("balance", self.balance_poll_seconds, self.poll_balance),
            self._spawn_timer("price", self.price_poll_seconds, self.poll_price),
            self._spawn_timer("reconcile", self.reconcile_poll_seconds, self.reconcile_orders),
        ]
        self._publish()

    def _spawn_timer(
        self, name: str, interval: float, func: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task:
        async def _loop() -> None:
            while True:
                try:
                    await func()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self._record_error(f"{name} timer", exc)
                    self._publish()
                await asyncio.sleep(interval)

        return asyncio.create_task(_loop(), name=f"grid-{name}-timer")

    async def _stop_timers(self) -> None:
        current = asyncio.current_task()
        timers = [task for task in self._timers if task is not current]
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers = []

    async def wait_until_halted(self) -> None:
        await self._halted.wait()

    def _mark_halted(self, reason: str, status: EngineStatus = EngineStatus.HALTED) -> None:
        """Set the halt flag; callers hold the state lock."""
        self._status = status
        self._halt_reason = reason
        self._halted.set()

    async def halt(self, reason: str) -> HaltReport:
        """
        Halt trading: no new intents from now on, then cancel everything resting.

        Idempotent; a later call waits for a running cleanup or retries the
        cancellation of orders that are still active.
        """
        async with self._lock:
            if self.accepts_orders:
                self._mark_halted(reason)
        self.logger.warning(f"🛑 Halt requested: {reason}")
        return await self._run_cleanup(self._halt_reason or reason, liquidate=False)

    async def stop(self) -> HaltReport:
        """
        Operator stop: stop timers, abort in-flight placements and cancel all
        active orders. A halted engine keeps its halt reason.

        A halt cleanup that is still running is awaited first and its report
        merged into the returned one.
        """
        async with self._lock:
            if self.accepts_orders:
                self._mark_halted(HaltReason.OPERATOR_STOP.value, EngineStatus.STOPPED)
        await self._stop_timers()

        previous: Optional[HaltReport] = None
        if self._cleanup_task is not None:
            outcome = (await asyncio.gather(self._cleanup_task, return_exceptions=True))[0]
            if isinstance(outcome, HaltReport):
                previous = outcome
            elif isinstance(outcome, BaseException):
                self._record_error("Halt cleanup", outcome)

        report = await self._cleanup(self._halt_reason or HaltReason.OPERATOR_STOP.value, liquidate=False)
        if previous is not None:
            report = previous.merged_with(report)
        log_stage(self.logger, f"Grid engine stopped ({self._halt_reason})")
        return report

    async def _run_cleanup(self, reason: str, *, liquidate: bool) -> HaltReport:
        """
        Run the cleanup as its own task so cancelling the caller (a timer being
        stopped) does not interrupt cancels that are already on the wire.
        """
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(
                self._cleanup(reason, liquidate=liquidate), name="grid-halt-cleanup"
            )
        return await asyncio.shield(self._cleanup_task)

    async def _on_authentication_failure(self, exc: AuthenticationError) -> None:
        """Credentials rejected: stop placing orders. No cancels are attempted."""
        async with self._lock:
            self._record_error("Exchange authentication", exc)
            if self.accepts_orders:
                self._mark_halted(HaltReason.AUTHENTICATION_FAILED.value)
                self.logger.critical("🛑 Authentication failed; order placement halted until restart")
        await self._abort_placements()
        self._publish()

    async def _cleanup(self, reason: str, *, liquidate: bool) -> HaltReport:
        """Abort placements, cancel every active order and optionally liquidate."""
        aborted = await self._abort_placements()
        cancelled: List[str] = []
        failures: List[Tuple[str, ErrorInfo]] = []

        for order in self.ledger.active_orders():
            try:
                async with self.ledger.operation(order.order_id):
                    info = await call_with_retry(
                        self.retry_policy,
                        self.exchange.cancel_order,
                        order.symbol,
                        order.order_id,
                        on_retry=self._log_retry,
                    )
            except OrderNotFoundError as exc:
                if order.status == OrderStatus.PENDING:
                    # Placement never reached the book
                    async with self._lock:
                        self.ledger.transition(order.order_id, OrderStatus.REJECTED)
                    continue
                failures.append((order.order_id, ErrorInfo.from_exception(exc)))
                continue
            except TradingError as exc:
                failures.append((order.order_id, ErrorInfo.from_exception(exc)))
                continue

            async with self._lock:
                updated = self._apply_confirmation(order.order_id, info)
            if updated is not None and updated.status == OrderStatus.CANCELLED:
                cancelled.append(order.order_id)

        liquidation_id = None
        if liquidate:
            liquidation_id = await self._liquidate(failures)

        for order_id, error in failures:
            self.logger.error(f"Cleanup of {order_id} failed [{error.kind}]: {error.message}")
        if failures:
            self._last_error = failures[0][1]

        report = HaltReport(
            reason=reason,
            cancelled_order_ids=tuple(cancelled),
            aborted_placements=aborted,
            failures=tuple(failures),
            liquidation_order_id=liquidation_id,
        )
        self.logger.info(
            f"Cleanup after {reason}: {len(cancelled)} cancelled, {aborted} placements aborted, "
            f"{len(failures)} failures"
        )
        self._publish()
        return report

    async def _liquidate(self, failures: List[Tuple[str, ErrorInfo]]) -> Optional[str]:
        """Sell the free base balance at market."""
        try:
            balance = await call_with_retry(self.retry_policy, self.exchange.get_balance)
        except TradingError as exc:
            failures.append(("liquidation", ErrorInfo.from_exception(exc)))
            return None
        if balance.base <= 0:
            self.logger.info("Nothing to liquidate")
            return None

        intent = OrderIntent(
            order_id=self._next_order_id(),
            symbol=self.symbol,
            side=OrderSide.SELL,
            price=None,
            quantity=balance.base,
        )
        async with self._lock:
            self._balance = balance
            self.ledger.submit(intent)
        self.logger.warning(f"Liquidating {balance.base} at market ({intent.order_id})")
        try:
            async with self.ledger.operation(intent.order_id):
                info = await call_with_retry(
                    self.retry_policy,
                    self.exchange.place_order,
                    intent.symbol,
                    intent.side,
                    intent.quantity,
                    None,
                    client_order_id=intent.order_id,
                )
        except TradingError as exc:
            failures.append((intent.order_id, ErrorInfo.from_exception(exc)))
            return intent.order_id
        async with self._lock:
            self._apply_confirmation(intent.order_id, info)
        return intent.order_id
