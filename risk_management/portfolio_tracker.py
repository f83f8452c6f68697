"""
Risk Management - Portfolio Tracker.

============================================================
PURPOSE
============================================================
Per-underlying exposure book (short delta, net credit, margin).

RESPONSIBILITIES:
- Provide read-only snapshots to the decision and rule engines
- Project exposure of a candidate trade before entry
- Apply fills and closes

The tracker is the only writer of exposure; engines treat the
snapshots they receive as immutable input.

============================================================
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


MAX_DELTA_PER_UNDERLYING = 100.0
MAX_MARGIN_PCT = 90.0


# ============================================================
# SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class PortfolioSnapshot:
    """Exposure for one underlying at a point in time."""

    underlying: str
    """Underlying symbol."""

    short_delta: float = 0.0
    """Aggregate short delta (delta x 100 per contract)."""

    net_credit: float = 0.0
    """Net credit received."""

    margin_usage: float = 0.0
    """Margin usage (percent)."""

    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the snapshot was taken."""


@dataclass
class PortfolioCheckResult:
    """Outcome of a pre-entry exposure projection."""

    can_add: bool
    current: PortfolioSnapshot
    projected: PortfolioSnapshot
    reason: Optional[str] = None


# ============================================================
# TRACKER
# ============================================================

class PortfolioTracker:
    """Thread-safe exposure book keyed by underlying."""

    def __init__(
        self,
        max_delta: float = MAX_DELTA_PER_UNDERLYING,
        max_margin_pct: float = MAX_MARGIN_PCT,
    ):
        self._max_delta = max_delta
        self._max_margin_pct = max_margin_pct
        self._book: Dict[str, PortfolioSnapshot] = {}
        self._lock = threading.Lock()

    def get_exposure(self, underlying: str) -> PortfolioSnapshot:
        """Current snapshot for an underlying (zeros when flat)."""
        key = underlying.upper()
        with self._lock:
            return self._book.get(key) or PortfolioSnapshot(underlying=key)

    def exposures(self) -> Dict[str, float]:
        """Short delta per underlying."""
        with self._lock:
            return {k: v.short_delta for k, v in self._book.items()}

    def can_add_trade(
        self,
        underlying: str,
        delta: float,
        quantity: int = 1,
        price: float = 0.0,
    ) -> PortfolioCheckResult:
        """
        Project exposure after adding a trade.

        Args:
            underlying: Underlying symbol
            delta: Target delta of the short leg (x100 scale)
            quantity: Number of spreads
            price: Credit per spread
        """
        current = self.get_exposure(underlying)
        projected = replace(
            current,
            short_delta=current.short_delta + delta * quantity,
            net_credit=current.net_credit + price * quantity,
            margin_usage=current.margin_usage + price * quantity,
        )

        if abs(projected.short_delta) > self._max_delta:
            return PortfolioCheckResult(
                can_add=False,
                current=current,
                projected=projected,
                reason=f"Max delta limit exceeded: {projected.short_delta} > {self._max_delta}",
            )

        if projected.margin_usage > self._max_margin_pct:
            return PortfolioCheckResult(
                can_add=False,
                current=current,
                projected=projected,
                reason=(
                    f"Max margin usage exceeded: {projected.margin_usage}% > "
                    f"{self._max_margin_pct}%"
                ),
            )

        return PortfolioCheckResult(can_add=True, current=current, projected=projected)

    def apply_fill(self, underlying: str, delta: float, quantity: int, fill_price: float) -> PortfolioSnapshot:
        """Add a filled trade to the book."""
        key = underlying.upper()
        with self._lock:
            current = self._book.get(key) or PortfolioSnapshot(underlying=key)
            updated = PortfolioSnapshot(
                underlying=key,
                short_delta=current.short_delta + delta * quantity,
                net_credit=current.net_credit + fill_price * quantity,
                margin_usage=current.margin_usage + fill_price * quantity,
            )
            self._book[key] = updated

        logger.info(
            f"Portfolio updated for {key}: delta={updated.short_delta} "
            f"credit={updated.net_credit} margin={updated.margin_usage}"
        )
        return updated

    def set_exposure(self, snapshot: PortfolioSnapshot) -> None:
        """Overwrite an underlying's exposure (external refresh)."""
        with self._lock:
            self._book[snapshot.underlying.upper()] = snapshot

    def remove_position(self, underlying: str) -> bool:
        with self._lock:
            return self._book.pop(underlying.upper(), None) is not None

    def summary(self) -> Tuple[float, float, float, List[PortfolioSnapshot]]:
        """Totals (delta, credit, margin) and the per-underlying rows."""
        with self._lock:
            rows = list(self._book.values())
        return (
            sum(r.short_delta for r in rows),
            sum(r.net_credit for r in rows),
            sum(r.margin_usage for r in rows),
            rows,
        )
