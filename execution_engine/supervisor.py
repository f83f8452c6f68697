"""
Execution Engine - Order Supervisor.

============================================================
PURPOSE
============================================================
Supervises an entry order from submission to a protected
position, and the position until it is closed.

RESPONSIBILITIES:
- Poll the entry until it fills, dies or times out
- Attach the take-profit / stop-loss bracket on fill, with
  bounded retries per missing leg
- Replace bracket legs (new TP / SL price)
- Cancel brackets and close positions
- Reconcile a bracket when one child fills

SAFETY:
- A trade only reaches OCO_ATTACHED with at least one live
  child; with none it goes to ERROR and an alert is raised
- Bracket attachment is idempotent per parent order: existing
  live legs are reused, never duplicated
- Polling is bounded; a timeout never changes trade state

============================================================
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from core.exceptions import (
    InvalidInput,
    InvalidStateTransition,
    TradeNotFound,
)

from .alerting import (
    TelegramAlerter,
    create_bracket_failed_alert,
    create_cancel_failed_alert,
    create_fill_timeout_alert,
)
from .audit import AuditEventType, AuditLog
from .brackets import (
    build_exit_legs,
    build_stop_loss_request,
    build_take_profit_request,
    calculate_sl_price,
    calculate_tp_price,
)
from .config import ExecutionEngineConfig
from .errors import is_retryable_exception
from .order_registry import OrderRegistry
from .state_machine import VALID_TRANSITIONS, TradeStateMachine
from .types import (
    BracketGroup,
    BracketLeg,
    FillOutcome,
    FillStatus,
    OrderLeg,
    OrderRequest,
    OrderStatus,
    OrderType,
    PriceEffect,
    TimeInForce,
    Trade,
    TradeState,
)

if TYPE_CHECKING:
    from .execution_service import ExecutionService


logger = logging.getLogger(__name__)


TAKE_PROFIT = "take_profit"
STOP_LOSS = "stop_loss"


def _cents(amount: float) -> int:
    return int(round(amount * 100))


class OrderSupervisor:
    """
    Fill and bracket supervisor.

    Usage:
        supervisor = OrderSupervisor(service, state_machine, registry, audit)
        outcome = await supervisor.monitor_fill(
            trade_id, order_id, account_id, legs,
            entry_price=1.20, tp_pct=50, sl_pct=100,
        )
    """

    def __init__(
        self,
        service: "ExecutionService",
        state_machine: TradeStateMachine,
        registry: Optional[OrderRegistry] = None,
        audit: Optional[AuditLog] = None,
        alerter: Optional[TelegramAlerter] = None,
        config: Optional[ExecutionEngineConfig] = None,
    ):
        self._config = config or ExecutionEngineConfig()
        self._service = service
        self._state_machine = state_machine
        self._registry = registry or OrderRegistry(self._config.idempotency)
        self._audit = audit or AuditLog()
        self._alerter = alerter or TelegramAlerter(self._config.alerting)
        self._bracket_locks: Dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> OrderRegistry:
        return self._registry

    # --------------------------------------------------------
    # FILL MONITORING
    # --------------------------------------------------------

    async def monitor_fill(
        self,
        trade_id: str,
        order_id: str,
        account_id: str,
        entry_legs: List[OrderLeg],
        entry_price: float,
        tp_pct: float,
        sl_pct: float,
        stop_event: Optional[asyncio.Event] = None,
    ) -> FillOutcome:
        """
        Poll the entry order until a terminal status or timeout.

        On FILLED the bracket is attached before returning.
        """
        monitor = self._config.fill_monitor
        polls = 0

        for attempt in range(monitor.max_poll_attempts):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Fill monitor for trade {trade_id} stopped after {polls} polls")
                return FillOutcome(status=FillStatus.STOPPED, order_id=order_id, polls=polls)

            if attempt > 0:
                await asyncio.sleep(monitor.poll_interval_seconds)

            polls += 1
            try:
                order = await self._service.get_order(account_id, order_id)
            except Exception as e:
                logger.warning(f"Fill poll {polls} failed for order {order_id}: {e}")
                continue

            if order.status == OrderStatus.WORKING:
                self._advance(trade_id, TradeState.WORKING, only_from=TradeState.SUBMITTED)
                continue

            if order.status == OrderStatus.FILLED:
                fill_price = order.fill_price if order.fill_price is not None else entry_price
                self._advance(
                    trade_id,
                    TradeState.FILLED,
                    metadata={"order_id": order_id, "fill_price": fill_price},
                )
                self._audit.record(
                    AuditEventType.FILL,
                    trade_id,
                    {"order_id": order_id, "fill_price": fill_price, "polls": polls},
                )
                logger.info(f"Trade {trade_id} filled @ {fill_price} after {polls} polls")

                bracket = await self.attach_bracket(
                    trade_id, order_id, account_id, entry_legs, fill_price, tp_pct, sl_pct
                )
                return FillOutcome(
                    status=FillStatus.FILLED,
                    order_id=order_id,
                    fill_price=fill_price,
                    polls=polls,
                    bracket=bracket,
                )

            if order.status in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
                target = (
                    TradeState.CANCELLED
                    if order.status == OrderStatus.CANCELLED
                    else TradeState.REJECTED
                )
                self._advance(trade_id, target, error=f"Entry order {order.status.value.lower()}")
                logger.info(f"Trade {trade_id} entry {order.status.value} after {polls} polls")
                return FillOutcome(
                    status=FillStatus(order.status.value),
                    order_id=order_id,
                    polls=polls,
                )

        logger.warning(f"Fill monitor for trade {trade_id} timed out after {polls} polls")
        self._audit.record(AuditEventType.TIMEOUT, trade_id, {"order_id": order_id, "polls": polls})
        await self._alert(create_fill_timeout_alert(trade_id, order_id, polls))
        return FillOutcome(status=FillStatus.TIMEOUT, order_id=order_id, polls=polls)

    # --------------------------------------------------------
    # BRACKETS
    # --------------------------------------------------------

    async def attach_bracket(
        self,
        trade_id: str,
        parent_order_id: str,
        account_id: str,
        entry_legs: List[OrderLeg],
        entry_price: float,
        tp_pct: float,
        sl_pct: float,
    ) -> BracketGroup:
        """
        Place (or repair) the TP/SL pair for a filled entry.

        Existing live legs at the same price are kept; repriced
        legs are replaced; missing or dead legs are resubmitted.
        """
        tp_price = calculate_tp_price(entry_price, tp_pct)
        sl_price = calculate_sl_price(entry_price, sl_pct)

        exited = False
        async with self._lock_for(parent_order_id):
            group = self._registry.get_bracket(parent_order_id)
            if group is not None:
                await self._refresh_leg_statuses(group)
                exited = self._filled_side(group) is not None

        # a filled child means the position is already flat; never re-arm it
        if exited:
            logger.warning(f"Bracket for order {parent_order_id} already filled; reconciling instead of repairing")
            await self.reconcile_bracket(parent_order_id)
            return group

        async with self._lock_for(parent_order_id):
            group = self._registry.get_bracket(parent_order_id)
            if group is None:
                group = BracketGroup(
                    parent_order_id=parent_order_id,
                    trade_id=trade_id,
                    account_id=account_id,
                    entry_price=entry_price,
                    tp_pct=tp_pct,
                    sl_pct=sl_pct,
                    entry_legs=list(entry_legs),
                )
            else:
                group.entry_price = entry_price
                group.tp_pct = tp_pct
                group.sl_pct = sl_pct

            submitted = False
            if not self._leg_current(group.take_profit, tp_price):
                await self._retire_leg(group, group.take_profit)
                group.take_profit = await self._submit_leg(
                    TAKE_PROFIT,
                    lambda cid: build_take_profit_request(account_id, group.entry_legs, tp_price, client_order_id=cid),
                    tp_price,
                )
                submitted = True

            if not self._leg_current(group.stop_loss, sl_price):
                await self._retire_leg(group, group.stop_loss)
                group.stop_loss = await self._submit_leg(
                    STOP_LOSS,
                    lambda cid: build_stop_loss_request(account_id, group.entry_legs, sl_price, client_order_id=cid),
                    sl_price,
                )
                submitted = True

            self._registry.register_bracket(group)

        if not submitted:
            logger.info(f"Bracket for order {parent_order_id} already in place")
            return group

        await self._settle_bracket(group)
        return group

    async def update_take_profit(self, parent_order_id: str, new_price: float) -> BracketGroup:
        """Replace the take-profit child with a new limit price."""
        return await self._replace_leg(parent_order_id, TAKE_PROFIT, new_price)

    async def update_stop_loss(self, parent_order_id: str, new_price: float) -> BracketGroup:
        """Replace the stop-loss child with a new trigger price."""
        return await self._replace_leg(parent_order_id, STOP_LOSS, new_price)

    async def cancel_bracket(self, parent_order_id: str) -> List[str]:
        """
        Cancel every live child of a bracket.

        Returns:
            Order IDs that were cancelled
        """
        group = self._registry.get_bracket(parent_order_id)
        if group is None:
            return []

        cancelled: List[str] = []
        async with self._lock_for(parent_order_id):
            for leg in (group.take_profit, group.stop_loss):
                if leg is None or not leg.is_live:
                    continue
                result = await self._service.cancel_order(group.account_id, leg.order_id)
                if result.success:
                    leg.status = OrderStatus.CANCELLED
                    cancelled.append(leg.order_id)
                else:
                    logger.warning(f"Failed to cancel bracket order {leg.order_id}: {result.error}")
                    await self._alert(create_cancel_failed_alert(group.trade_id, leg.order_id, result.error or ""))
            self._registry.register_bracket(group)

        self._audit.record(
            AuditEventType.BRACKET,
            group.trade_id,
            {"action": "cancel", "parent_order_id": parent_order_id, "cancelled": cancelled},
        )
        return cancelled

    # --------------------------------------------------------
    # POSITION CLOSE
    # --------------------------------------------------------

    async def close_position(
        self,
        trade_id: str,
        close_price: Optional[float] = None,
        submit_close: bool = True,
    ) -> Trade:
        """
        Flatten a filled trade.

        Cancels live bracket children, optionally submits the
        closing order (LIMIT at close_price, else MARKET) and
        moves the trade to CLOSED.

        Raises:
            TradeNotFound: Unknown trade
            InvalidStateTransition: Trade holds no position
            OrderRejection: Closing order refused
        """
        trade = self._state_machine.get_trade(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)
        if not TradeStateMachine.is_valid_transition(trade.state, TradeState.CLOSED):
            raise InvalidStateTransition(
                trade_id=trade_id,
                from_state=trade.state.value,
                to_state=TradeState.CLOSED.value,
                valid_targets=[s.value for s in VALID_TRANSITIONS.get(trade.state, set())],
            )

        group = self._registry.get_bracket_for_trade(trade_id)
        if group is not None:
            await self.cancel_bracket(group.parent_order_id)

        account_id = group.account_id if group else trade.metadata.get("account_id")
        entry_legs = group.entry_legs if group else trade.metadata.get("entry_legs", [])

        close_order_id: Optional[str] = None
        if submit_close:
            if not account_id or not entry_legs:
                logger.warning(f"No entry legs known for trade {trade_id}; closing without an order")
            else:
                request = OrderRequest(
                    account_id=account_id,
                    legs=build_exit_legs(entry_legs),
                    order_type=OrderType.LIMIT if close_price is not None else OrderType.MARKET,
                    time_in_force=TimeInForce.DAY,
                    price=close_price,
                    price_effect=PriceEffect.CREDIT,
                    client_order_id=self._registry.generate_client_order_id(),
                )
                ack = await self._service.submit_order(request)
                close_order_id = ack.order_id

        trade = self._state_machine.transition_state(
            trade_id,
            TradeState.CLOSED,
            metadata={
                "exit_reason": "manual",
                "close_order_id": close_order_id,
                "close_price": close_price,
            },
        )
        self._audit.record(
            AuditEventType.ORDER,
            trade_id,
            {"action": "close", "close_order_id": close_order_id, "close_price": close_price},
        )
        return trade

    async def reconcile_bracket(self, parent_order_id: str) -> Optional[str]:
        """
        Close the trade if either bracket child has filled.

        Returns:
            "take_profit", "stop_loss", or None if neither filled
        """
        group = self._registry.get_bracket(parent_order_id)
        if group is None:
            return None

        async with self._lock_for(parent_order_id):
            await self._refresh_leg_statuses(group)
            filled_side = None
            for side, leg, sibling in (
                (TAKE_PROFIT, group.take_profit, group.stop_loss),
                (STOP_LOSS, group.stop_loss, group.take_profit),
            ):
                if leg is not None and leg.status == OrderStatus.FILLED:
                    filled_side = side
                    if sibling is not None and sibling.is_live:
                        result = await self._service.cancel_order(group.account_id, sibling.order_id)
                        if result.success:
                            sibling.status = OrderStatus.CANCELLED
                        else:
                            logger.warning(f"Failed to cancel sibling {sibling.order_id}: {result.error}")
                            await self._alert(
                                create_cancel_failed_alert(group.trade_id, sibling.order_id, result.error or "")
                            )
                    break
            self._registry.register_bracket(group)

        if filled_side is None:
            return None

        leg = group.take_profit if filled_side == TAKE_PROFIT else group.stop_loss
        self._advance(
            group.trade_id,
            TradeState.CLOSED,
            metadata={"exit_reason": filled_side, "exit_order_id": leg.order_id, "exit_price": leg.price},
        )
        self._audit.record(
            AuditEventType.BRACKET,
            group.trade_id,
            {"action": "reconcile", "filled": filled_side, "parent_order_id": parent_order_id},
        )
        return filled_side

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _lock_for(self, parent_order_id: str) -> asyncio.Lock:
        lock = self._bracket_locks.get(parent_order_id)
        if lock is None:
            lock = self._bracket_locks[parent_order_id] = asyncio.Lock()
        return lock

    def _advance(
        self,
        trade_id: str,
        target: TradeState,
        only_from: Optional[TradeState] = None,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Move the trade toward target, inserting WORKING when the
        table requires it (SUBMITTED -> CANCELLED).

        No-op if the trade is unknown or already at target.
        """
        trade = self._state_machine.get_trade(trade_id)
        if trade is None or trade.state == target:
            return
        if trade.state.is_terminal():
            logger.warning(
                f"Trade {trade_id} already {trade.state.value}; not moving to {target.value}"
            )
            return
        if only_from is not None and trade.state != only_from:
            return

        if (
            not TradeStateMachine.is_valid_transition(trade.state, target)
            and TradeStateMachine.is_valid_transition(trade.state, TradeState.WORKING)
            and TradeStateMachine.is_valid_transition(TradeState.WORKING, target)
        ):
            self._state_machine.transition_state(trade_id, TradeState.WORKING)

        self._state_machine.transition_state(trade_id, target, error=error, metadata=metadata)

    @staticmethod
    def _leg_current(leg: Optional[BracketLeg], price: float) -> bool:
        return leg is not None and leg.is_live and _cents(leg.price) == _cents(price)

    @staticmethod
    def _filled_side(group: BracketGroup) -> Optional[str]:
        for side, leg in ((TAKE_PROFIT, group.take_profit), (STOP_LOSS, group.stop_loss)):
            if leg is not None and leg.status == OrderStatus.FILLED:
                return side
        return None

    async def _refresh_leg_statuses(self, group: BracketGroup) -> None:
        for leg in (group.take_profit, group.stop_loss):
            if leg is None or not leg.is_live:
                continue
            try:
                order = await self._service.get_order(group.account_id, leg.order_id)
                leg.status = order.status
            except Exception as e:
                logger.warning(f"Could not refresh bracket order {leg.order_id}: {e}")

    async def _retire_leg(self, group: BracketGroup, leg: Optional[BracketLeg]) -> None:
        """Cancel a live leg that is about to be replaced."""
        if leg is None or not leg.is_live:
            return
        result = await self._service.cancel_order(group.account_id, leg.order_id)
        if result.success:
            leg.status = OrderStatus.CANCELLED
        else:
            logger.warning(f"Failed to cancel bracket order {leg.order_id} before replace: {result.error}")

    async def _submit_leg(self, kind: str, build_request, price: float) -> BracketLeg:
        """
        Submit one bracket child: 1 attempt plus max_retries
        retries, backing off between them. Only retryable broker
        errors and timeouts are retried.
        """
        retry = self._config.retry
        client_order_id = self._registry.generate_client_order_id()
        last_error: Optional[str] = None

        for attempt in range(retry.max_retries + 1):
            if attempt > 0:
                await asyncio.sleep(retry.delay_for(attempt))
            try:
                ack = await self._service.submit_order(build_request(client_order_id))
                logger.info(f"Bracket {kind} placed: order {ack.order_id} @ {price}")
                return BracketLeg(order_id=ack.order_id, price=price, status=ack.status)
            except Exception as e:
                last_error = str(e)
                cause = getattr(e, "cause", None) or e
                if not is_retryable_exception(cause):
                    logger.error(f"Bracket {kind} submission failed (not retryable): {e}")
                    break
                logger.warning(
                    f"Bracket {kind} submission attempt {attempt + 1}/{retry.max_retries + 1} failed: {e}"
                )

        return BracketLeg(order_id=None, price=price, status=OrderStatus.REJECTED, error=last_error)

    async def _settle_bracket(self, group: BracketGroup) -> None:
        """Transition, audit and alert after bracket submission."""
        missing = [
            name for name, leg in ((TAKE_PROFIT, group.take_profit), (STOP_LOSS, group.stop_loss))
            if leg is None or not leg.order_id
        ]
        errors = {
            name: leg.error
            for name, leg in ((TAKE_PROFIT, group.take_profit), (STOP_LOSS, group.stop_loss))
            if leg is not None and leg.error
        }

        self._audit.record(AuditEventType.BRACKET, group.trade_id, {"action": "attach", **group.to_dict()})

        if len(missing) == 2:
            logger.error(f"No bracket orders placed for trade {group.trade_id}: {errors}")
            self._advance(group.trade_id, TradeState.ERROR, error="Bracket submission failed")
            await self._alert(create_bracket_failed_alert(group.trade_id, group.parent_order_id, missing, errors))
            return

        metadata = {
            "tp_order_id": group.take_profit.order_id if group.take_profit else None,
            "sl_order_id": group.stop_loss.order_id if group.stop_loss else None,
        }
        trade = self._state_machine.get_trade(group.trade_id)
        if trade is not None and trade.state == TradeState.FILLED:
            self._state_machine.transition_state(group.trade_id, TradeState.OCO_ATTACHED, metadata=metadata)
        elif trade is not None:
            self._state_machine.update_trade_metadata(group.trade_id, metadata)

        if missing:
            logger.warning(f"Bracket for trade {group.trade_id} incomplete, missing {missing}")
            await self._alert(create_bracket_failed_alert(group.trade_id, group.parent_order_id, missing, errors))

    async def _replace_leg(self, parent_order_id: str, kind: str, new_price: float) -> BracketGroup:
        if not isinstance(new_price, (int, float)) or new_price <= 0:
            raise InvalidInput("Bracket price must be positive", field="new_price", value=new_price)

        group = self._registry.get_bracket(parent_order_id)
        if group is None:
            raise InvalidInput(
                f"No bracket registered for order {parent_order_id}",
                field="parent_order_id",
                value=parent_order_id,
            )

        async with self._lock_for(parent_order_id):
            await self._refresh_leg_statuses(group)
            old = group.take_profit if kind == TAKE_PROFIT else group.stop_loss

            # the old child stays working until its replacement is accepted
            if kind == TAKE_PROFIT:
                new_leg = await self._submit_leg(
                    kind,
                    lambda cid: build_take_profit_request(group.account_id, group.entry_legs, new_price, client_order_id=cid),
                    new_price,
                )
            else:
                new_leg = await self._submit_leg(
                    kind,
                    lambda cid: build_stop_loss_request(group.account_id, group.entry_legs, new_price, client_order_id=cid),
                    new_price,
                )

            if new_leg.order_id is not None:
                await self._retire_leg(group, old)
                if kind == TAKE_PROFIT:
                    group.take_profit = new_leg
                else:
                    group.stop_loss = new_leg
            elif old is None or not old.is_live:
                if kind == TAKE_PROFIT:
                    group.take_profit = new_leg
                else:
                    group.stop_loss = new_leg
            self._registry.register_bracket(group)

        live = [leg for leg in (group.take_profit, group.stop_loss) if leg is not None and leg.is_live]
        if not live:
            errors = {kind: new_leg.error or ""}
            logger.error(f"Trade {group.trade_id} has no working bracket orders after {kind} update")
            self._advance(group.trade_id, TradeState.ERROR, error="Bracket has no working orders")
            await self._alert(
                create_bracket_failed_alert(group.trade_id, parent_order_id, [TAKE_PROFIT, STOP_LOSS], errors)
            )
        elif new_leg.order_id is None:
            logger.warning(f"Bracket {kind} update failed for order {parent_order_id}; previous order kept")
            await self._alert(
                create_bracket_failed_alert(group.trade_id, parent_order_id, [kind], {kind: new_leg.error or ""})
            )
        else:
            self._state_machine.update_trade_metadata(
                group.trade_id, {f"{'tp' if kind == TAKE_PROFIT else 'sl'}_order_id": new_leg.order_id}
            )

        self._audit.record(
            AuditEventType.BRACKET,
            group.trade_id,
            {"action": f"update_{kind}", "price": new_price, "order_id": new_leg.order_id},
        )
        return group

    async def _alert(self, alert) -> None:
        try:
            await self._alerter.send_alert(alert)
        except Exception as e:
            logger.error(f"Alert delivery failed ({alert.alert_type.value}): {e}")
