"""
Risk Rules - Rule Store.

============================================================
PURPOSE
============================================================
Source of rules for evaluation and sink for triggered-rule
events.

- InMemoryRuleStore: tests and dry runs
- SqlRuleStore: risk_rules / risk_events tables

Rules are returned ordered by ascending priority.

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope

from .models import RiskEventModel, RiskRuleModel
from .types import ConditionType, RiskEvent, RiskRule, RuleAction


logger = logging.getLogger(__name__)


# ============================================================
# INTERFACE
# ============================================================

class RuleStore(ABC):
    """Rule source and risk-event sink."""

    @abstractmethod
    def list_rules(
        self,
        rule_set: Optional[str] = None,
        enabled_only: bool = True,
    ) -> List[RiskRule]:
        """Rules for a set (or all sets), ordered by priority."""
        pass

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[RiskRule]:
        pass

    @abstractmethod
    def find_rule(self, name: str, rule_set: str) -> Optional[RiskRule]:
        """Rule by its (name, rule_set) key."""
        pass

    @abstractmethod
    def save_rule(self, rule: RiskRule) -> None:
        """Insert or replace by rule_id."""
        pass

    @abstractmethod
    def record_event(self, event: RiskEvent) -> None:
        pass

    @abstractmethod
    def list_events(self, trade_id: Optional[str] = None) -> List[RiskEvent]:
        pass


# ============================================================
# IN-MEMORY
# ============================================================

class InMemoryRuleStore(RuleStore):
    """Process-local rule store."""

    def __init__(self, rules: Optional[List[RiskRule]] = None):
        self._rules: Dict[str, RiskRule] = {}
        self._events: List[RiskEvent] = []
        self._lock = threading.Lock()
        for rule in rules or []:
            self.save_rule(rule)

    def list_rules(
        self,
        rule_set: Optional[str] = None,
        enabled_only: bool = True,
    ) -> List[RiskRule]:
        with self._lock:
            rules = [
                r for r in self._rules.values()
                if (rule_set is None or r.rule_set == rule_set)
                and (r.enabled or not enabled_only)
            ]
        return sorted(rules, key=lambda r: r.priority)

    def get_rule(self, rule_id: str) -> Optional[RiskRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def find_rule(self, name: str, rule_set: str) -> Optional[RiskRule]:
        with self._lock:
            for rule in self._rules.values():
                if rule.name == name and rule.rule_set == rule_set:
                    return rule
        return None

    def save_rule(self, rule: RiskRule) -> None:
        with self._lock:
            self._rules[rule.rule_id] = rule

    def record_event(self, event: RiskEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list_events(self, trade_id: Optional[str] = None) -> List[RiskEvent]:
        with self._lock:
            return [e for e in self._events if trade_id is None or e.trade_id == trade_id]


# ============================================================
# SQL
# ============================================================

def _rule_from_row(row: RiskRuleModel) -> RiskRule:
    return RiskRule(
        rule_id=row.rule_id,
        name=row.name,
        rule_set=row.rule_set,
        condition_type=ConditionType(row.condition_type),
        action=RuleAction(row.action),
        condition_params=dict(row.condition_params or {}),
        priority=row.priority,
        enabled=row.enabled,
        created_at=row.created_at,
    )


def _event_from_row(row: RiskEventModel) -> RiskEvent:
    return RiskEvent(
        rule_name=row.rule_name,
        rule_set=row.rule_set,
        action=RuleAction(row.action),
        trade_id=row.trade_id,
        context=dict(row.context or {}),
        metadata=dict(row.event_metadata or {}),
        event_id=row.event_id,
        timestamp=row.timestamp,
    )


class SqlRuleStore(RuleStore):
    """Rule store backed by the risk_rules and risk_events tables."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def list_rules(
        self,
        rule_set: Optional[str] = None,
        enabled_only: bool = True,
    ) -> List[RiskRule]:
        stmt = select(RiskRuleModel)
        if rule_set is not None:
            stmt = stmt.where(RiskRuleModel.rule_set == rule_set)
        if enabled_only:
            stmt = stmt.where(RiskRuleModel.enabled.is_(True))
        stmt = stmt.order_by(RiskRuleModel.priority, RiskRuleModel.rule_id)

        with transaction_scope(self._session_factory) as session:
            return [_rule_from_row(row) for row in session.scalars(stmt).all()]

    def get_rule(self, rule_id: str) -> Optional[RiskRule]:
        with transaction_scope(self._session_factory) as session:
            row = session.get(RiskRuleModel, rule_id)
            return _rule_from_row(row) if row else None

    def find_rule(self, name: str, rule_set: str) -> Optional[RiskRule]:
        with transaction_scope(self._session_factory) as session:
            row = session.scalars(
                select(RiskRuleModel)
                .where(RiskRuleModel.name == name)
                .where(RiskRuleModel.rule_set == rule_set)
            ).first()
            return _rule_from_row(row) if row else None

    def save_rule(self, rule: RiskRule) -> None:
        with transaction_scope(self._session_factory) as session:
            session.merge(RiskRuleModel(
                rule_id=rule.rule_id,
                name=rule.name,
                rule_set=rule.rule_set,
                condition_type=rule.condition_type.value,
                condition_params=dict(rule.condition_params),
                action=rule.action.value,
                priority=rule.priority,
                enabled=rule.enabled,
                created_at=rule.created_at,
            ))
        logger.debug(f"Risk rule {rule.rule_id} ({rule.name}/{rule.rule_set}) saved")

    def record_event(self, event: RiskEvent) -> None:
        with transaction_scope(self._session_factory) as session:
            session.add(RiskEventModel(
                event_id=event.event_id,
                trade_id=event.trade_id,
                rule_name=event.rule_name,
                rule_set=event.rule_set,
                action=event.action.value,
                context=dict(event.context),
                event_metadata=dict(event.metadata),
                timestamp=event.timestamp,
            ))

    def list_events(self, trade_id: Optional[str] = None) -> List[RiskEvent]:
        stmt = select(RiskEventModel).order_by(RiskEventModel.id)
        if trade_id is not None:
            stmt = stmt.where(RiskEventModel.trade_id == trade_id)
        with transaction_scope(self._session_factory) as session:
            return [_event_from_row(row) for row in session.scalars(stmt).all()]
