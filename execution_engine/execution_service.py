"""
Execution Engine - Execution Service.

============================================================
PURPOSE
============================================================
ExecutionService: the only component that talks to the
broker adapter. Adds idempotency, timeouts and error
normalization on top of the raw adapter.

TradeOrchestrator: runs one signal through the complete
pipeline, from decision to a protected position.

============================================================
DESIGN PRINCIPLES
============================================================
- REACTIVE: Only executes trades approved upstream
- IDEMPOTENT: Repeated submits of a confirmed client order ID
  return the cached acknowledgement
- AUDITABLE: Every step is written to the audit log
- SUBORDINATE: Never overrides decision or rule outcomes

============================================================
EXECUTION WORKFLOW
============================================================
1. Decision engine approves the signal
2. Risk rules pass
3. Vertical selected from the chain
4. Entry thresholds pass (window, account risk, credit floor)
5. Trade created (PENDING) and entry submitted (SUBMITTED)
6. Optional chase toward the market
7. Fill monitoring, which attaches the bracket on fill
8. ExecutionOutcome returned

============================================================
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from core.exceptions import (
    BrokerError,
    OrderRejection,
    RiskRuleViolation,
    StrikeNotFound,
    TimeWindowViolation,
)
from decision_engine.engine import DecisionEngine
from decision_engine.types import MarketContext, PortfolioContext, TradeSignal
from options.chain import fetch_option_chain
from options.selector import select_vertical
from options.types import OptionInstrument, VerticalLegs
from risk_management.config import RiskThresholdConfig
from risk_management.portfolio_tracker import PortfolioSnapshot, PortfolioTracker
from risk_management.thresholds import validate_order_submission
from risk_rules.engine import RiskRuleEngine
from risk_rules.types import RuleEvaluationContext, TradeSnapshot

from .adapters.base import BrokerAdapter, map_order_status
from .alerting import TelegramAlerter, create_entry_rejected_alert
from .audit import AuditEventType, AuditLog
from .chase import ChaseEngine
from .config import ExecutionEngineConfig
from .order_registry import OrderRegistry
from .state_machine import TradeStateMachine
from .supervisor import OrderSupervisor
from .types import (
    BrokerOrder,
    CancelResult,
    ChaseAbortReason,
    ChaseDirection,
    ExecutionOutcome,
    ExecutionStatus,
    FillStatus,
    OrderAck,
    OrderAction,
    OrderLeg,
    OrderRequest,
    OrderStatus,
    OrderType,
    PriceEffect,
    TimeInForce,
    TradeState,
)


logger = logging.getLogger(__name__)


# ============================================================
# EXECUTION SERVICE
# ============================================================

class ExecutionService:
    """
    Broker facade.

    AUTHORITY BOUNDARIES:
    - CAN: Submit, replace and cancel orders, query status
    - MUST NOT: Decide whether a trade should happen
    """

    def __init__(
        self,
        adapter: BrokerAdapter,
        config: Optional[ExecutionEngineConfig] = None,
        registry: Optional[OrderRegistry] = None,
    ):
        self._adapter = adapter
        self._config = config or ExecutionEngineConfig()
        self._registry = registry or OrderRegistry(self._config.idempotency)

    @property
    def registry(self) -> OrderRegistry:
        return self._registry

    @property
    def adapter(self) -> BrokerAdapter:
        return self._adapter

    async def submit_order(self, request: OrderRequest) -> OrderAck:
        """
        Submit an order.

        Raises:
            OrderRejection: Broker failure, timeout or rejected ack
        """
        if request.client_order_id is None and self._config.idempotency.enabled:
            request.client_order_id = self._registry.generate_client_order_id()

        client_order_id = request.client_order_id
        if client_order_id:
            existing = self._registry.get_client_order(client_order_id)
            if existing is not None and existing.ack is not None:
                logger.warning(
                    f"Duplicate submit for {client_order_id}, returning order {existing.broker_order_id}"
                )
                return existing.ack
            self._registry.begin_submission(client_order_id)

        timeout = self._config.timeout.order_submission_timeout_seconds
        try:
            ack = await asyncio.wait_for(self._adapter.submit_order(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._fail(client_order_id, "timeout")
            raise OrderRejection(
                f"Order submission timed out after {timeout}s",
                reason="timeout",
                code="TIMEOUT",
                cause=e,
            )
        except BrokerError as e:
            self._fail(client_order_id, e.message)
            raise OrderRejection(
                f"Order submission failed: {e.message}",
                reason=e.message,
                code=e.code,
                cause=e,
            )
        except Exception as e:
            logger.error(f"Unexpected broker failure submitting {client_order_id}: {type(e).__name__}: {e}")
            self._fail(client_order_id, str(e))
            raise OrderRejection(
                f"Order submission failed: {type(e).__name__}: {e}",
                reason=str(e) or type(e).__name__,
                code="UNKNOWN_ERROR",
                cause=e,
            )

        ack = OrderAck(order_id=ack.order_id, status=map_order_status(ack.status), raw=ack.raw)
        if ack.status == OrderStatus.REJECTED:
            self._fail(client_order_id, "rejected")
            raise OrderRejection(
                f"Order {ack.order_id} rejected by broker",
                order_id=ack.order_id,
                reason="rejected",
                code="REJECTED",
            )

        if client_order_id:
            self._registry.confirm(client_order_id, ack)
        logger.info(f"Order {ack.order_id} submitted ({request.order_type.value} @ {request.price}): {ack.status.value}")
        return ack

    async def cancel_order(self, account_id: str, order_id: str) -> CancelResult:
        """Cancel an order. Never raises."""
        timeout = self._config.timeout.order_cancel_timeout_seconds
        try:
            await asyncio.wait_for(self._adapter.cancel_order(account_id, order_id), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Cancel of order {order_id} timed out")
            return CancelResult(success=False, error="timeout")
        except BrokerError as e:
            logger.warning(f"Cancel of order {order_id} failed: {e.message}")
            return CancelResult(success=False, error=e.message)
        except Exception as e:
            logger.error(f"Unexpected broker failure cancelling {order_id}: {type(e).__name__}: {e}")
            return CancelResult(success=False, error=str(e) or type(e).__name__)

        logger.info(f"Order {order_id} cancelled")
        return CancelResult(success=True)

    async def replace_order(
        self,
        account_id: str,
        order_id: str,
        request: OrderRequest,
    ) -> OrderAck:
        """
        Replace a working order.

        Raises:
            OrderRejection: Broker failure or timeout
        """
        timeout = self._config.timeout.order_submission_timeout_seconds
        try:
            ack = await asyncio.wait_for(
                self._adapter.replace_order(account_id, order_id, request),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise OrderRejection(
                f"Replace of order {order_id} timed out",
                order_id=order_id,
                reason="timeout",
                code="TIMEOUT",
                cause=e,
            )
        except BrokerError as e:
            raise OrderRejection(
                f"Replace of order {order_id} failed: {e.message}",
                order_id=order_id,
                reason=e.message,
                code=e.code,
                cause=e,
            )
        except Exception as e:
            raise OrderRejection(
                f"Replace of order {order_id} failed: {type(e).__name__}: {e}",
                order_id=order_id,
                reason=str(e) or type(e).__name__,
                code="UNKNOWN_ERROR",
                cause=e,
            )

        ack = OrderAck(order_id=ack.order_id, status=map_order_status(ack.status), raw=ack.raw)
        if ack.status == OrderStatus.REJECTED:
            raise OrderRejection(
                f"Replacement for order {order_id} rejected",
                order_id=ack.order_id,
                reason="rejected",
                code="REJECTED",
            )
        logger.info(f"Order {order_id} replaced by {ack.order_id} @ {request.price}")
        return ack

    async def get_order(self, account_id: str, order_id: str) -> BrokerOrder:
        timeout = self._config.timeout.query_timeout_seconds
        order = await asyncio.wait_for(self._adapter.get_order(account_id, order_id), timeout=timeout)
        return replace(order, status=map_order_status(order.status))

    async def get_option_chain(self, symbol: str, expiration: str) -> List[OptionInstrument]:
        """
        Fetch a normalized chain.

        Raises:
            ChainFetchFailure: Broker failure or empty chain
        """
        return await fetch_option_chain(self._adapter, symbol, expiration)

    async def get_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.wait_for(
                self._adapter.get_quote(symbol),
                timeout=self._config.timeout.query_timeout_seconds,
            )
        except (asyncio.TimeoutError, BrokerError) as e:
            logger.warning(f"Quote for {symbol} unavailable: {e}")
            return None

    def _fail(self, client_order_id: Optional[str], error: str) -> None:
        if client_order_id:
            self._registry.fail(client_order_id, error)


# ============================================================
# ACCOUNT SETTINGS
# ============================================================

@dataclass
class AccountSettings:
    """Account values the entry thresholds are checked against."""

    account_id: str
    account_value: float
    contract_multiplier: int = 100


# ============================================================
# TRADE ORCHESTRATOR
# ============================================================

class TradeOrchestrator:
    """
    Runs one signal end to end.

    Usage:
        orchestrator = TradeOrchestrator(
            decision_engine, rule_engine, service, state_machine,
            account=AccountSettings("ACC-1", 100_000),
        )
        outcome = await orchestrator.execute(signal, market, portfolio, chain, width=5)
    """

    def __init__(
        self,
        decision_engine: DecisionEngine,
        rule_engine: RiskRuleEngine,
        service: ExecutionService,
        state_machine: TradeStateMachine,
        account: AccountSettings,
        thresholds: Optional[RiskThresholdConfig] = None,
        config: Optional[ExecutionEngineConfig] = None,
        audit: Optional[AuditLog] = None,
        alerter: Optional[TelegramAlerter] = None,
        supervisor: Optional[OrderSupervisor] = None,
        chase_engine: Optional[ChaseEngine] = None,
        portfolio_tracker: Optional[PortfolioTracker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or ExecutionEngineConfig()
        self._thresholds = thresholds or RiskThresholdConfig()
        self._decision_engine = decision_engine
        self._rule_engine = rule_engine
        self._service = service
        self._state_machine = state_machine
        self._account = account
        self._audit = audit or AuditLog()
        self._alerter = alerter or TelegramAlerter(self._config.alerting)
        self._supervisor = supervisor or OrderSupervisor(
            service,
            state_machine,
            registry=service.registry,
            audit=self._audit,
            alerter=self._alerter,
            config=self._config,
        )
        self._chase = chase_engine or ChaseEngine(service, self._audit)
        self._portfolio_tracker = portfolio_tracker
        self._clock = clock or SystemClock()

    @property
    def supervisor(self) -> OrderSupervisor:
        return self._supervisor

    async def execute(
        self,
        signal: TradeSignal,
        market: MarketContext,
        portfolio: PortfolioContext,
        chain: Sequence[OptionInstrument],
        width: float,
        rule_set: Optional[str] = None,
        alert_credit: Optional[float] = None,
        now: Optional[datetime] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> ExecutionOutcome:
        now = now or self._clock.now()
        trade_id = f"trade-{uuid.uuid4().hex[:12]}"

        # 1. Decision
        decision = self._decision_engine.decide(signal, market, portfolio)
        self._audit.record(AuditEventType.DECISION, trade_id, decision.to_dict())
        if not decision.should_trade:
            return ExecutionOutcome(
                status=ExecutionStatus.REJECTED_BY_DECISION,
                reason=decision.reason,
                decision=decision,
            )
        spec = decision.trade_spec

        # 2. Risk rules
        context = RuleEvaluationContext(
            trade=TradeSnapshot(
                underlying=spec.underlying,
                strategy=spec.strategy,
                direction=spec.direction.value,
                strikes=list(spec.strikes),
                quantity=spec.quantity,
                target_delta=spec.target_delta,
                trade_id=trade_id,
            ),
            portfolio=PortfolioSnapshot(
                underlying=spec.underlying,
                short_delta=portfolio.exposures.get(spec.underlying, 0.0),
                margin_usage=portfolio.buying_power_used,
            ),
            evaluation_time=now,
        )
        rule_result = self._rule_engine.evaluate(context, rule_set=rule_set)
        self._audit.record(
            AuditEventType.RISK_CHECK,
            trade_id,
            {
                "passed": rule_result.passed,
                "blocking_reason": rule_result.blocking_reason,
                "triggered": [t.rule_name for t in rule_result.triggered_rules],
            },
        )
        if not rule_result.passed:
            return ExecutionOutcome(
                status=ExecutionStatus.REJECTED_BY_RULES,
                reason=rule_result.blocking_reason,
                decision=decision,
                rule_result=rule_result,
            )

        # 3. Contract selection
        try:
            legs = select_vertical(chain, spec.target_delta_fraction, width, spec.direction.value)
        except StrikeNotFound as e:
            logger.info(f"No contract for signal {signal.signal_id}: {e.message}")
            return ExecutionOutcome(
                status=ExecutionStatus.NO_CONTRACT,
                reason=e.message,
                decision=decision,
                rule_result=rule_result,
                error=e,
            )

        entry_price = spec.price if spec.price > 0 else (legs.natural_credit or 0.0)
        quantity = max(spec.quantity, 1)
        max_loss = max(legs.width - entry_price, 0.0) * self._account.contract_multiplier * quantity

        # 4. Entry thresholds
        try:
            validate_order_submission(
                account_value=self._account.account_value,
                max_loss=max_loss,
                credit=entry_price if alert_credit is not None else None,
                underlying=spec.underlying,
                alert_credit=alert_credit,
                current_time=now if self._thresholds.enforce_trading_windows else None,
                windows=self._thresholds.trading_windows,
                max_risk_pct=self._thresholds.max_risk_pct,
                slippage_table=self._thresholds.credit_floor_slippage,
            )
        except (RiskRuleViolation, TimeWindowViolation) as e:
            logger.info(f"Signal {signal.signal_id} rejected by thresholds: {e.message}")
            return ExecutionOutcome(
                status=ExecutionStatus.REJECTED_BY_THRESHOLDS,
                reason=e.message,
                decision=decision,
                rule_result=rule_result,
                legs=legs,
                error=e,
            )

        if self._portfolio_tracker is not None and legs.short_leg.delta is not None:
            check = self._portfolio_tracker.can_add_trade(
                spec.underlying,
                abs(legs.short_leg.delta) * 100,
                quantity,
                entry_price,
            )
            if not check.can_add:
                logger.info(f"Signal {signal.signal_id} rejected by portfolio limits: {check.reason}")
                return ExecutionOutcome(
                    status=ExecutionStatus.REJECTED_BY_THRESHOLDS,
                    reason=check.reason,
                    decision=decision,
                    rule_result=rule_result,
                    legs=legs,
                )

        # 5. Trade
        entry_legs = self._entry_legs(legs, quantity)
        self._state_machine.create_trade(trade_id, metadata={
            "signal_id": signal.signal_id,
            "decision_id": decision.decision_id,
            "underlying": spec.underlying,
            "account_id": self._account.account_id,
            "entry_legs": entry_legs,
            "entry_price": entry_price,
            "short_strike": legs.short_leg.strike,
            "long_strike": legs.long_leg.strike,
            "expiration": legs.expiration,
        })

        # 6. Entry submission
        request = self._entry_request(entry_legs, entry_price)
        try:
            ack = await self._service.submit_order(request)
        except OrderRejection as e:
            self._state_machine.transition_state(trade_id, TradeState.ERROR, error=e.message)
            await self._alert_rejection(trade_id, e)
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                trade_id=trade_id,
                reason=e.message,
                decision=decision,
                rule_result=rule_result,
                legs=legs,
                error=e,
            )

        self._state_machine.transition_state(trade_id, TradeState.SUBMITTED, metadata={"order_id": ack.order_id})
        self._audit.record(
            AuditEventType.ORDER,
            trade_id,
            {"action": "submit", "order_id": ack.order_id, "price": entry_price, "status": ack.status.value},
        )

        outcome = ExecutionOutcome(
            status=ExecutionStatus.NOT_FILLED,
            trade_id=trade_id,
            decision=decision,
            rule_result=rule_result,
            legs=legs,
            entry_order_id=ack.order_id,
        )
        order_id = ack.order_id
        fill_price = entry_price

        # 7. Chase
        if self._config.chase.enabled and ack.status != OrderStatus.FILLED:
            chase_config = replace(
                self._config.chase,
                initial_price=entry_price,
                direction=ChaseDirection.DOWN,
            )
            chase = await self._chase.chase(
                trade_id,
                order_id,
                self._account.account_id,
                request_factory=lambda price: self._entry_request(entry_legs, price),
                config=chase_config,
                symbol=legs.short_leg.streamer_symbol,
                stop_event=stop_event,
            )
            outcome.chase = chase
            if chase.order_id != order_id:
                order_id = chase.order_id
                self._state_machine.update_trade_metadata(trade_id, {"order_id": order_id})
            if chase.filled and chase.fill_price is not None:
                fill_price = chase.fill_price
            elif not chase.filled:
                if await self._handle_chase_abort(outcome, order_id):
                    return outcome

        # 8. Fill monitoring and bracket
        fill = await self._supervisor.monitor_fill(
            trade_id,
            order_id,
            self._account.account_id,
            entry_legs,
            fill_price,
            spec.rule_bundle.take_profit_pct,
            spec.rule_bundle.stop_loss_pct,
            stop_event=stop_event,
        )
        outcome.fill = fill
        if fill.status == FillStatus.FILLED:
            outcome.status = ExecutionStatus.FILLED
            if self._portfolio_tracker is not None and legs.short_leg.delta is not None:
                self._portfolio_tracker.apply_fill(
                    spec.underlying,
                    abs(legs.short_leg.delta) * 100,
                    quantity,
                    fill.fill_price or fill_price,
                )
        elif outcome.status == ExecutionStatus.CHASE_ABORTED:
            outcome.reason = f"{outcome.reason}; entry {fill.status.value.lower()}"
        else:
            outcome.reason = f"Entry {fill.status.value.lower()}"
        return outcome

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    @staticmethod
    def _entry_legs(legs: VerticalLegs, quantity: int) -> List[OrderLeg]:
        return [
            OrderLeg(symbol=legs.short_leg.streamer_symbol, quantity=quantity, action=OrderAction.SELL_TO_OPEN),
            OrderLeg(symbol=legs.long_leg.streamer_symbol, quantity=quantity, action=OrderAction.BUY_TO_OPEN),
        ]

    def _entry_request(self, entry_legs: List[OrderLeg], price: float) -> OrderRequest:
        return OrderRequest(
            account_id=self._account.account_id,
            legs=list(entry_legs),
            order_type=OrderType.LIMIT,
            time_in_force=TimeInForce.DAY,
            price=price,
            price_effect=PriceEffect.CREDIT,
        )

    async def _handle_chase_abort(self, outcome: ExecutionOutcome, order_id: str) -> bool:
        """
        Settle the entry after an aborted chase.

        Returns:
            False when the order could not be cancelled and must
            still be supervised for a fill, else True
        """
        chase = outcome.chase
        trade_id = outcome.trade_id
        reason = chase.abort_reason.value if chase.abort_reason else "unknown"
        outcome.status = ExecutionStatus.CHASE_ABORTED
        outcome.reason = f"Chase aborted: {reason}"

        trade = self._state_machine.get_trade(trade_id)
        if trade is None or trade.state.is_terminal():
            return True

        if chase.abort_reason == ChaseAbortReason.REJECTED:
            if trade.state == TradeState.SUBMITTED:
                self._state_machine.transition_state(trade_id, TradeState.WORKING)
            self._state_machine.transition_state(trade_id, TradeState.REJECTED, error=outcome.reason)
            return True

        if not self._config.cancel_on_chase_abort:
            logger.info(f"Chase for trade {trade_id} aborted; order {order_id} left working")
            return True

        result = await self._service.cancel_order(self._account.account_id, order_id)
        if not result.success:
            # the order may have filled in the meantime
            logger.warning(
                f"Cancel after chase abort failed for order {order_id}: {result.error}; supervising for a fill"
            )
            self._audit.record(
                AuditEventType.ORDER,
                trade_id,
                {"action": "cancel_failed", "order_id": order_id, "error": result.error},
            )
            return False

        if trade.state == TradeState.SUBMITTED:
            self._state_machine.transition_state(trade_id, TradeState.WORKING)
        self._state_machine.transition_state(trade_id, TradeState.CANCELLED, metadata={"cancel_reason": outcome.reason})
        return True

    async def _alert_rejection(self, trade_id: str, error: OrderRejection) -> None:
        try:
            await self._alerter.send_alert(create_entry_rejected_alert(trade_id, error.reason, error.code))
        except Exception as e:
            logger.error(f"Alert delivery failed for trade {trade_id}: {e}")
