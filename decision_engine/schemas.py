"""
Pydantic Schemas for inbound trade signals.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator

from .types import Direction, SignalSource, TradeSignal


class TradeSignalSchema(BaseModel):
    """Validated signal payload from a webhook, preset or manual form."""

    signal_id: str = Field(default_factory=lambda: f"signal-{uuid.uuid4().hex[:12]}")
    source: SignalSource = SignalSource.MANUAL
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    underlying: str = Field(min_length=1, max_length=16)
    strategy_type: str = "Vertical"
    direction: Direction
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("underlying")
    @classmethod
    def upper_underlying(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("direction", mode="before")
    @classmethod
    def parse_direction(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip().upper()
            return {"C": "CALL", "P": "PUT"}.get(text, text)
        return value

    def to_signal(self) -> TradeSignal:
        return TradeSignal(
            signal_id=self.signal_id,
            source=self.source,
            timestamp=self.timestamp,
            underlying=self.underlying,
            strategy_type=self.strategy_type,
            direction=self.direction,
            raw_payload=dict(self.raw_payload),
            metadata=dict(self.metadata),
        )
