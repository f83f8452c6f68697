"""
Execution Engine - Chase Engine.

============================================================
PURPOSE
============================================================
Walk the limit price of an unfilled entry toward the market
in bounded steps until it fills or a limit is hit.

LOOP (per attempt):
1. Max-steps check (validate_chase_attempts)
2. Wait step_interval_seconds (not before the first attempt)
3. Poll the order: FILLED ends, CANCELLED/REJECTED abort
4. Next price: initial ± step * n, or a declarative strategy
   when a quote is available
5. Abort if the price would exceed max_slippage
6. Record the attempt, replace the order, carry the new ID

SAFETY:
- Never submits a price beyond max_slippage
- Never exceeds max_steps replacements
- Cooperative stop via stop_event

============================================================
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from core.exceptions import RiskRuleViolation
from risk_management.thresholds import validate_chase_attempts

from .audit import AuditEventType, AuditLog
from .chase_strategies import ChaseContext, get_chase_strategy
from .config import ChaseConfig
from .types import (
    ChaseAbortReason,
    ChaseAttempt,
    ChaseDirection,
    ChaseResult,
    OrderRequest,
    OrderStatus,
)

if TYPE_CHECKING:
    from .execution_service import ExecutionService


logger = logging.getLogger(__name__)


RequestFactory = Callable[[float], OrderRequest]


def _cents(amount: float) -> int:
    return int(round(amount * 100))


class ChaseEngine:
    """
    Bounded price-improvement loop.

    Usage:
        engine = ChaseEngine(service, audit)
        result = await engine.chase(
            trade_id, order_id, account_id,
            request_factory=lambda price: build_entry(price),
            config=replace(config.chase, initial_price=1.20),
        )
    """

    def __init__(
        self,
        service: "ExecutionService",
        audit: Optional[AuditLog] = None,
    ):
        self._service = service
        self._audit = audit

    async def chase(
        self,
        trade_id: str,
        order_id: str,
        account_id: str,
        request_factory: RequestFactory,
        config: ChaseConfig,
        symbol: Optional[str] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> ChaseResult:
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = ChaseResult(filled=False, order_id=order_id, final_price=config.initial_price)
        completed = 0

        logger.info(
            f"Chase started for trade {trade_id}: order {order_id} @ {config.initial_price} "
            f"({config.direction.value}, step {config.step_size}, max {config.max_steps})"
        )

        while True:
            if stop_event is not None and stop_event.is_set():
                return self._abort(trade_id, result, ChaseAbortReason.STOPPED)

            try:
                validate_chase_attempts(completed, config.max_steps)
            except RiskRuleViolation as e:
                logger.info(f"Chase for trade {trade_id} stopped: {e.message}")
                return self._abort(trade_id, result, ChaseAbortReason.MAX_STEPS)

            if completed > 0:
                await asyncio.sleep(config.step_interval_seconds)
                if stop_event is not None and stop_event.is_set():
                    return self._abort(trade_id, result, ChaseAbortReason.STOPPED)

            try:
                order = await self._service.get_order(account_id, result.order_id)
            except Exception as e:
                logger.warning(f"Chase poll failed for order {result.order_id}: {e}")
                order = None

            if order is not None:
                if order.status == OrderStatus.FILLED:
                    result.filled = True
                    result.fill_price = order.fill_price if order.fill_price is not None else result.final_price
                    logger.info(f"Chase for trade {trade_id} filled @ {result.fill_price}")
                    return result
                if order.status == OrderStatus.CANCELLED:
                    return self._abort(trade_id, result, ChaseAbortReason.CANCELLED)
                if order.status == OrderStatus.REJECTED:
                    return self._abort(trade_id, result, ChaseAbortReason.REJECTED)

            attempt_number = completed + 1
            elapsed_ms = int((loop.time() - started) * 1000)
            price, market = await self._next_price(config, attempt_number, elapsed_ms, symbol)

            if abs(_cents(price) - _cents(config.initial_price)) > _cents(config.max_slippage):
                logger.info(
                    f"Chase for trade {trade_id}: next price {price} exceeds max slippage "
                    f"{config.max_slippage} from {config.initial_price}"
                )
                return self._abort(trade_id, result, ChaseAbortReason.MAX_SLIPPAGE)

            attempt = ChaseAttempt(
                attempt=attempt_number,
                elapsed_ms=elapsed_ms,
                price=price,
                order_id=result.order_id,
                market=market,
            )
            result.attempts.append(attempt)
            self._record(trade_id, attempt)

            try:
                ack = await self._service.replace_order(
                    account_id, result.order_id, request_factory(price)
                )
            except Exception as e:
                logger.error(f"Chase replace failed for trade {trade_id} @ {price}: {e}")
                return self._abort(trade_id, result, ChaseAbortReason.REJECTED)

            completed += 1
            result.order_id = ack.order_id
            result.final_price = price

            if ack.status == OrderStatus.FILLED:
                result.filled = True
                result.fill_price = price
                logger.info(f"Chase for trade {trade_id} filled on replace @ {price}")
                return result

    # --------------------------------------------------------
    # PRICING
    # --------------------------------------------------------

    async def _next_price(
        self,
        config: ChaseConfig,
        attempt: int,
        elapsed_ms: int,
        symbol: Optional[str],
    ) -> Tuple[float, Dict[str, Any]]:
        sign = config.direction.sign
        linear = round(config.initial_price + sign * config.step_size * attempt, 2)

        if not config.strategy or not symbol:
            return linear, {}

        quote = await self._service.get_quote(symbol)
        if not quote or quote.get("bid") is None or quote.get("ask") is None:
            return linear, {}

        bid, ask = float(quote["bid"]), float(quote["ask"])
        ctx = ChaseContext(
            attempt=attempt,
            elapsed_ms=elapsed_ms,
            bid=bid,
            ask=ask,
            step_size=config.step_size,
            delta=quote.get("delta"),
            underlying=quote.get("underlying"),
        )
        price = get_chase_strategy(config.strategy)(ctx)
        if config.direction == ChaseDirection.DOWN:
            # strategies walk up from the bid; selling mirrors down from the ask
            price = round(ask - (price - bid), 2)
        return price, dict(quote)

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    def _abort(self, trade_id: str, result: ChaseResult, reason: ChaseAbortReason) -> ChaseResult:
        result.abort_reason = reason
        logger.info(
            f"Chase for trade {trade_id} aborted ({reason.value}) after "
            f"{len(result.attempts)} attempts, last price {result.final_price}"
        )
        return result

    def _record(self, trade_id: str, attempt: ChaseAttempt) -> None:
        if self._audit is None:
            return
        self._audit.record(
            AuditEventType.CHASE_ATTEMPT,
            trade_id,
            {
                "attempt": attempt.attempt,
                "elapsed_ms": attempt.elapsed_ms,
                "price": attempt.price,
                "order_id": attempt.order_id,
                "market": attempt.market,
            },
        )
