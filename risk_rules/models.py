"""
Risk Rules - ORM Models.

============================================================
TABLES
============================================================
- risk_rules: rule store
- risk_events: one row per triggered rule

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


class RiskRuleModel(Base):
    """Persisted risk rule."""

    __tablename__ = "risk_rules"
    __table_args__ = (UniqueConstraint("name", "rule_set", name="uq_risk_rules_name_set"),)

    rule_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    rule_set: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    condition_type: Mapped[str] = mapped_column(String(32), nullable=False)
    condition_params: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=10)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class RiskEventModel(Base):
    """Persisted triggered-rule record."""

    __tablename__ = "risk_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    trade_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    rule_name: Mapped[str] = mapped_column(String(128), nullable=False)
    rule_set: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    context: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    event_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(nullable=False, index=True)
