"""
Risk Rules - Types.

============================================================
PURPOSE
============================================================
Data-driven risk rules and their evaluation context/results.

RiskRule records are owned by the rule store and are treated
as read-only during an evaluation.

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from risk_management.portfolio_tracker import PortfolioSnapshot


# ============================================================
# ENUMS
# ============================================================

class ConditionType(Enum):
    """What a rule checks."""

    DELTA_BREACH = "delta_breach"
    TIME_EXIT = "time_exit"
    PORTFOLIO_LIMIT = "portfolio_limit"
    CUSTOM = "custom"


class RuleAction(Enum):
    """What a triggered rule asks for."""

    BLOCK_TRADE = "block_trade"
    """Stop evaluation; the trade must not proceed."""

    CLOSE_TRADE = "close_trade"
    """Existing position should be closed."""

    ALERT = "alert"
    """Notify only."""

    WARN = "warn"
    """Notify only."""

    def is_blocking(self) -> bool:
        return self == RuleAction.BLOCK_TRADE


# ============================================================
# RULE
# ============================================================

@dataclass
class RiskRule:
    """A single prioritized rule."""

    rule_id: str
    """Unique rule ID."""

    name: str
    """Human-readable name."""

    rule_set: str
    """Rule-set tag (e.g. conservative)."""

    condition_type: ConditionType
    """What the rule checks."""

    action: RuleAction
    """What happens when it triggers."""

    condition_params: Dict[str, Any] = field(default_factory=dict)
    """Opaque parameters for the condition."""

    priority: int = 10
    """Lower evaluates first."""

    enabled: bool = True
    """Disabled rules are never loaded for evaluation."""

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================
# EVALUATION CONTEXT
# ============================================================

@dataclass(frozen=True)
class TradeSnapshot:
    """The trade being evaluated."""

    underlying: str
    strategy: str = "Vertical"
    direction: str = "CALL"
    strikes: List[float] = field(default_factory=list)
    quantity: int = 1
    target_delta: Optional[float] = None
    trade_id: Optional[str] = None


@dataclass(frozen=True)
class RuleEvaluationContext:
    """Trade plus portfolio snapshot, and optionally the time to evaluate at."""

    trade: TradeSnapshot
    portfolio: PortfolioSnapshot
    evaluation_time: Optional[Union[datetime, time, str]] = None


# ============================================================
# RESULTS
# ============================================================

@dataclass(frozen=True)
class TriggeredRule:
    """One rule that fired."""

    rule_id: str
    rule_name: str
    action: RuleAction
    reason: str


@dataclass
class RuleEvaluationResult:
    """Outcome of evaluating a rule set."""

    passed: bool
    triggered_rules: List[TriggeredRule] = field(default_factory=list)
    actions: List[RuleAction] = field(default_factory=list)
    blocking_reason: Optional[str] = None

    @property
    def should_close(self) -> bool:
        return RuleAction.CLOSE_TRADE in self.actions


@dataclass
class RiskEvent:
    """Audit record of a triggered rule."""

    rule_name: str
    rule_set: str
    action: RuleAction
    trade_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: f"risk-{uuid.uuid4().hex[:12]}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
