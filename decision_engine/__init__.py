"""
Decision Engine Package.

Approves or rejects trade signals and emits normalized trade
specifications. It is the first gate before execution.

Modules:
- types: signal, context, trade spec and decision types
- schemas: pydantic validation for inbound signals
- engine: market and portfolio gates
- repository: append-only decision log
- models: ORM model for the decision log
"""

from .engine import DecisionConfig, DecisionEngine
from .repository import DecisionLog, InMemoryDecisionLog, SqlDecisionLog
from .schemas import TradeSignalSchema
from .types import (
    Decision,
    Direction,
    MarketContext,
    PortfolioContext,
    RuleBundle,
    SignalSource,
    TradeSignal,
    TradeSpec,
)

__all__ = [
    "DecisionConfig",
    "DecisionEngine",
    "DecisionLog",
    "InMemoryDecisionLog",
    "SqlDecisionLog",
    "TradeSignalSchema",
    "Decision",
    "Direction",
    "MarketContext",
    "PortfolioContext",
    "RuleBundle",
    "SignalSource",
    "TradeSignal",
    "TradeSpec",
]
