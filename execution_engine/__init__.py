"""
Execution Engine Package.

============================================================
PURPOSE
============================================================
Handles all order execution for approved trades.

CRITICAL PRINCIPLE:
    "Execution Engine is REACTIVE, not decision-making."
    "It executes only after the decision engine approves and
     the risk rules pass."

AUTHORITY BOUNDARIES:
    CAN:
        - Submit, replace and cancel orders
        - Chase a working entry toward the market
        - Attach and maintain take-profit / stop-loss brackets
        - Retry transient broker failures

    MUST NOT:
        - Override decision or rule outcomes
        - Resize trades
        - Generate trade ideas

============================================================
MODULES
============================================================
- types: Trade states, orders, brackets, outcomes
- config: Execution configuration
- errors: Error taxonomy and codes
- state_machine: Trade lifecycle
- brackets: TP/SL pricing and exit orders
- chase_strategies / chase: Price-improvement loop
- order_registry: Idempotency keys and bracket groups
- supervisor: Fill polling, brackets, replace and close
- execution_service: Broker facade and trade orchestrator
- audit: Execution audit trail
- alerting: Telegram alerts
- adapters: Broker adapters (Mock)
- models / repository: Persistence

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    TradeState,
    StateTransitionEvent,
    Trade,
    OrderAction,
    OrderType,
    TimeInForce,
    PriceEffect,
    OrderStatus,
    OrderLeg,
    OrderRequest,
    OrderAck,
    BrokerOrder,
    CancelResult,
    ChaseDirection,
    ChaseAbortReason,
    ChaseAttempt,
    ChaseResult,
    FillStatus,
    BracketLeg,
    BracketGroup,
    FillOutcome,
    ExecutionStatus,
    ExecutionOutcome,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    ChaseConfig,
    FillMonitorConfig,
    RetryConfig,
    TimeoutConfig,
    IdempotencyConfig,
    AlertingConfig,
    ExecutionEngineConfig,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorCodeInfo,
    ERROR_CODES,
    get_error_info,
    is_retryable,
    is_retryable_exception,
    map_http_status,
)

# ============================================================
# COMPONENTS
# ============================================================
from .state_machine import VALID_TRANSITIONS, TradeStateMachine
from .brackets import (
    calculate_tp_price,
    calculate_sl_price,
    build_exit_legs,
    build_take_profit_request,
    build_stop_loss_request,
)
from .chase_strategies import (
    CHASE_STRATEGIES,
    ChaseContext,
    get_chase_strategy,
    cap_chase_price,
    compute_slippage,
)
from .chase import ChaseEngine
from .order_registry import ClientOrderStatus, ClientOrderRecord, OrderRegistry
from .audit import (
    AuditEventType,
    AuditEvent,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    SqlAuditSink,
    AuditLog,
)
from .alerting import (
    AlertSeverity,
    AlertType,
    Alert,
    TelegramAlerter,
)
from .supervisor import OrderSupervisor
from .execution_service import AccountSettings, ExecutionService, TradeOrchestrator
from .adapters import BrokerAdapter, MockBrokerAdapter, MockConfig, map_order_status

# ============================================================
# PERSISTENCE
# ============================================================
from .models import ExecutionEventModel, TradeRecordModel
from .repository import ExecutionRepository


__all__ = [
    # Types
    "TradeState",
    "StateTransitionEvent",
    "Trade",
    "OrderAction",
    "OrderType",
    "TimeInForce",
    "PriceEffect",
    "OrderStatus",
    "OrderLeg",
    "OrderRequest",
    "OrderAck",
    "BrokerOrder",
    "CancelResult",
    "ChaseDirection",
    "ChaseAbortReason",
    "ChaseAttempt",
    "ChaseResult",
    "FillStatus",
    "BracketLeg",
    "BracketGroup",
    "FillOutcome",
    "ExecutionStatus",
    "ExecutionOutcome",
    # Config
    "ChaseConfig",
    "FillMonitorConfig",
    "RetryConfig",
    "TimeoutConfig",
    "IdempotencyConfig",
    "AlertingConfig",
    "ExecutionEngineConfig",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "get_error_info",
    "is_retryable",
    "is_retryable_exception",
    "map_http_status",
    # Components
    "VALID_TRANSITIONS",
    "TradeStateMachine",
    "calculate_tp_price",
    "calculate_sl_price",
    "build_exit_legs",
    "build_take_profit_request",
    "build_stop_loss_request",
    "CHASE_STRATEGIES",
    "ChaseContext",
    "get_chase_strategy",
    "cap_chase_price",
    "compute_slippage",
    "ChaseEngine",
    "ClientOrderStatus",
    "ClientOrderRecord",
    "OrderRegistry",
    "AuditEventType",
    "AuditEvent",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "SqlAuditSink",
    "AuditLog",
    "AlertSeverity",
    "AlertType",
    "Alert",
    "TelegramAlerter",
    "OrderSupervisor",
    "AccountSettings",
    "ExecutionService",
    "TradeOrchestrator",
    "BrokerAdapter",
    "MockBrokerAdapter",
    "MockConfig",
    "map_order_status",
    # Persistence
    "ExecutionEventModel",
    "TradeRecordModel",
    "ExecutionRepository",
]
