"""
Fixtures shared by the execution engine tests.
"""

import pytest

from execution_engine.adapters.mock import MockBrokerAdapter
from execution_engine.audit import AuditLog, InMemoryAuditSink
from execution_engine.config import ExecutionEngineConfig
from execution_engine.execution_service import ExecutionService
from execution_engine.state_machine import TradeStateMachine
from execution_engine.supervisor import OrderSupervisor
from execution_engine.types import OrderAction, OrderLeg


@pytest.fixture
def config():
    return ExecutionEngineConfig.for_testing()


@pytest.fixture
def broker():
    return MockBrokerAdapter()


@pytest.fixture
def service(broker, config):
    return ExecutionService(broker, config)


@pytest.fixture
def state_machine():
    return TradeStateMachine()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    return AuditLog([audit_sink])


@pytest.fixture
def supervisor(service, state_machine, audit, config):
    return OrderSupervisor(service, state_machine, service.registry, audit, config=config)


@pytest.fixture
def entry_legs():
    return [
        OrderLeg(symbol="SPX_2025-10-31_6855C", quantity=1, action=OrderAction.SELL_TO_OPEN),
        OrderLeg(symbol="SPX_2025-10-31_6860C", quantity=1, action=OrderAction.BUY_TO_OPEN),
    ]
