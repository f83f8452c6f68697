"""
Risk Rules - Custom Predicates.

Extension point for `custom` rules. A custom rule names a
predicate (condition_params["predicate"], falling back to the
rule name); the predicate receives the evaluation context and
the rule's params and returns True when the rule triggers.

Unregistered names never trigger.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .types import RuleEvaluationContext


logger = logging.getLogger(__name__)


Predicate = Callable[[RuleEvaluationContext, Dict[str, Any]], bool]


class CustomPredicateRegistry:
    """Named predicates for custom rules."""

    def __init__(self):
        self._predicates: Dict[str, Predicate] = {}
        self._lock = threading.Lock()

    def register(self, name: str, predicate: Optional[Predicate] = None):
        """
        Register a predicate; usable directly or as a decorator.

        Usage:
            @registry.register("max_quantity")
            def max_quantity(ctx, params):
                return ctx.trade.quantity > params["limit"]
        """
        def _add(fn: Predicate) -> Predicate:
            with self._lock:
                if name in self._predicates:
                    logger.warning(f"Replacing custom predicate '{name}'")
                self._predicates[name] = fn
            return fn

        if predicate is not None:
            return _add(predicate)
        return _add

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._predicates.pop(name, None) is not None

    def get(self, name: str) -> Optional[Predicate]:
        with self._lock:
            return self._predicates.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._predicates)
