"""
Risk Threshold Library Tests.

============================================================
PURPOSE
============================================================
Boundary tests for the entry/exit validators:
1. Account risk
2. Trading windows
3. Chase attempts
4. Credit floor
5. Exit predicates
6. Combined pre-flight

============================================================
"""

from datetime import datetime, time, timezone

import pytest

from core.exceptions import InvalidInput, RiskRuleViolation, TimeWindowViolation
from risk_management.config import RiskThresholdConfig
from risk_management.thresholds import (
    calculate_max_contracts,
    format_hhmm,
    get_slippage_allowance,
    is_within_trading_window,
    should_exit_by_delta,
    should_exit_by_time,
    to_minutes,
    validate_account_risk,
    validate_chase_attempts,
    validate_credit_floor,
    validate_order_submission,
    validate_time_window,
)


# ============================================================
# TIME HELPERS
# ============================================================

class TestTimeHelpers:
    """Tests for clock value parsing."""

    def test_to_minutes_accepts_strings(self):
        assert to_minutes("10:15") == 615
        assert to_minutes("10:15:59") == 615

    def test_to_minutes_accepts_time_and_datetime(self):
        assert to_minutes(time(13, 45)) == 825
        # 15:30 UTC in January is 10:30 Eastern
        assert to_minutes(datetime(2025, 1, 15, 15, 30, tzinfo=timezone.utc)) == 630

    @pytest.mark.parametrize("value", ["", "10", "25:00", "10:61", "ab:cd", 1030])
    def test_to_minutes_rejects_malformed(self, value):
        with pytest.raises(InvalidInput):
            to_minutes(value)

    def test_format_hhmm(self):
        assert format_hhmm("9:05") == "09:05"


# ============================================================
# ACCOUNT RISK
# ============================================================

class TestAccountRisk:
    """Tests for validate_account_risk."""

    def test_exactly_at_threshold_passes(self):
        """Test 1% of 100k passes."""
        validate_account_risk(100_000, 1_000)

    def test_just_over_threshold_fails(self):
        """Test 1000.01 on 100k fails with the breached values."""
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_account_risk(100_000, 1_000.01)

        assert exc_info.value.rule == "account_risk"
        assert exc_info.value.threshold == 1.0
        assert exc_info.value.value > 1.0

    def test_custom_risk_pct(self):
        validate_account_risk(50_000, 1_000, max_risk_pct=2.0)

    @pytest.mark.parametrize("account_value,max_loss", [(0, 100), (-1, 100), (100_000, -5)])
    def test_invalid_input(self, account_value, max_loss):
        with pytest.raises(InvalidInput):
            validate_account_risk(account_value, max_loss)

    def test_calculate_max_contracts(self):
        assert calculate_max_contracts(100_000, 470) == 2
        assert calculate_max_contracts(100_000, 500) == 2
        assert calculate_max_contracts(100_000, 1_001) == 0
        assert calculate_max_contracts(0, 470) == 0

    def test_calculate_max_contracts_rejects_zero_loss(self):
        with pytest.raises(InvalidInput):
            calculate_max_contracts(100_000, 0)


# ============================================================
# TRADING WINDOWS
# ============================================================

class TestTradingWindows:
    """Tests for window checks (inclusive both ends)."""

    @pytest.mark.parametrize("hhmm", ["10:15", "10:30", "10:45", "13:15", "13:45"])
    def test_inside_windows(self, hhmm):
        assert is_within_trading_window(hhmm)
        validate_time_window(hhmm)

    @pytest.mark.parametrize("hhmm", ["10:14", "10:46", "12:00", "13:46", "09:30"])
    def test_outside_windows(self, hhmm):
        assert not is_within_trading_window(hhmm)
        with pytest.raises(TimeWindowViolation) as exc_info:
            validate_time_window(hhmm)

        assert exc_info.value.current_time == hhmm
        assert ("10:15", "10:45") in exc_info.value.windows

    def test_custom_windows(self):
        assert is_within_trading_window("09:31", [("09:30", "16:00")])


# ============================================================
# CHASE ATTEMPTS
# ============================================================

class TestChaseAttempts:
    """Tests for validate_chase_attempts."""

    def test_below_max_passes(self):
        validate_chase_attempts(0)
        validate_chase_attempts(1)

    def test_at_max_fails(self):
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_chase_attempts(2)

        assert exc_info.value.rule == "chase_attempts"
        assert exc_info.value.threshold == 2

    def test_custom_max(self):
        validate_chase_attempts(9, max_attempts=10)
        with pytest.raises(RiskRuleViolation):
            validate_chase_attempts(10, max_attempts=10)


# ============================================================
# CREDIT FLOOR
# ============================================================

class TestCreditFloor:
    """Tests for validate_credit_floor (cent precision)."""

    def test_spx_within_allowance(self):
        """Test 0.14 short on SPX passes."""
        validate_credit_floor(2.36, "SPX", 2.50)

    def test_spx_exactly_at_floor(self):
        """Test exactly 0.15 short passes."""
        validate_credit_floor(2.35, "SPX", 2.50)

    def test_spx_beyond_allowance(self):
        """Test 0.16 short on SPX fails."""
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_credit_floor(2.34, "SPX", 2.50)

        assert exc_info.value.rule == "credit_floor"
        assert exc_info.value.threshold == pytest.approx(2.35)

    def test_qqq_uses_penny_allowance(self):
        validate_credit_floor(1.42, "QQQ", 1.45)
        with pytest.raises(RiskRuleViolation):
            validate_credit_floor(1.41, "QQQ", 1.45)

    def test_better_credit_passes(self):
        validate_credit_floor(2.60, "SPX", 2.50)

    def test_unknown_underlying_uses_index_allowance(self):
        assert get_slippage_allowance("XYZ") == 0.15
        assert get_slippage_allowance("spy") == 0.03

    def test_custom_slippage_table(self):
        with pytest.raises(RiskRuleViolation):
            validate_credit_floor(2.40, "SPX", 2.50, slippage_table={"SPX": 0.05})


# ============================================================
# EXIT PREDICATES
# ============================================================

class TestExitPredicates:
    """Tests for should_exit_by_time / should_exit_by_delta."""

    def test_exit_by_time(self):
        assert not should_exit_by_time("11:59")
        assert should_exit_by_time("12:00")
        assert should_exit_by_time("15:00")
        assert should_exit_by_time("11:00", exit_time="11:00")

    def test_exit_by_delta(self):
        assert not should_exit_by_delta(0.64)
        assert should_exit_by_delta(0.65)
        assert should_exit_by_delta(-0.70)


# ============================================================
# COMBINED PRE-FLIGHT
# ============================================================

class TestOrderSubmission:
    """Tests for validate_order_submission."""

    def test_all_checks_pass(self):
        validate_order_submission(
            account_value=100_000,
            max_loss=470,
            credit=0.30,
            underlying="SPX",
            alert_credit=0.30,
            current_time="10:30",
        )

    def test_time_window_checked_first(self):
        with pytest.raises(TimeWindowViolation):
            validate_order_submission(
                account_value=100_000,
                max_loss=5_000,
                current_time="12:00",
            )

    def test_window_skipped_without_time(self):
        validate_order_submission(account_value=100_000, max_loss=900)

    def test_account_risk_violation(self):
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_order_submission(account_value=10_000, max_loss=470)

        assert exc_info.value.rule == "account_risk"

    def test_chase_attempts_only_when_positive(self):
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_order_submission(account_value=100_000, max_loss=100, chase_attempts=2)

        assert exc_info.value.rule == "chase_attempts"

    def test_credit_floor_needs_both_credits(self):
        validate_order_submission(account_value=100_000, max_loss=100, credit=0.01)
        with pytest.raises(RiskRuleViolation) as exc_info:
            validate_order_submission(
                account_value=100_000,
                max_loss=100,
                credit=0.01,
                alert_credit=0.50,
                underlying="SPX",
            )

        assert exc_info.value.rule == "credit_floor"


# ============================================================
# CONFIGURATION
# ============================================================

class TestRiskThresholdConfig:
    """Tests for RiskThresholdConfig."""

    def test_defaults(self):
        config = RiskThresholdConfig()

        assert config.trading_windows == [("10:15", "10:45"), ("13:15", "13:45")]
        assert config.enforce_trading_windows
        assert config.max_chase_attempts == 2
        assert config.credit_floor_slippage["SPX"] == 0.15

    def test_for_testing_disables_windows(self):
        assert not RiskThresholdConfig.for_testing().enforce_trading_windows

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text(
            "trading_windows:\n"
            "  - {start: '09:45', end: '11:00'}\n"
            "max_risk_pct: 2\n"
            "credit_floor_slippage:\n"
            "  spx: 0.10\n"
        )

        config = RiskThresholdConfig.from_yaml(path)

        assert config.trading_windows == [("09:45", "11:00")]
        assert config.max_risk_pct == 2.0
        assert config.credit_floor_slippage["SPX"] == 0.10
        assert config.credit_floor_slippage["QQQ"] == 0.03
        assert config.exit_time == "12:00"
