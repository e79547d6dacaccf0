"""
Tests for RiskGate - pre-trade validation and sizing.

Tests cover:
- Rule order (exposure, cooldown, stacking)
- Cooldown reporting
- Confidence-scaled sizing and bounds
- Exposure-headroom shrink
- Status reporting
"""
import pytest

from strategy_arena.config import RiskConfig
from strategy_arena.risk_manager import RiskGate, RiskRule
from strategy_arena.trade_ledger import Action, MarketPrices

MARKET = "bitcoin-up-or-down-january-1"


class TestRuleOrder:
    """The first failing rule wins."""

    def test_exposure_checked_before_cooldown_and_stacking(self, ledger, risk_gate):
        # 100 / 500 = 20%: exposure, cooldown and stacking all fail
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 100.0)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.5, 500.0)

        assert decision.valid is False
        assert decision.rule == RiskRule.MAX_EXPOSURE
        assert "20.0% >= 20%" in decision.reason

    def test_cooldown_checked_before_stacking(self, ledger, risk_gate, clock):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 10.0)
        clock.advance(minutes=4)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.5, 500.0)

        assert decision.rule == RiskRule.COOLDOWN
        assert decision.reason == "Cooldown active (6min remaining)"
        assert decision.remaining_sec == pytest.approx(360.0)

    def test_stacking_after_cooldown_expires(self, ledger, risk_gate, clock):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 10.0)
        clock.advance(minutes=11)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.5, 500.0)

        assert decision.rule == RiskRule.NO_STACKING

    def test_opposite_direction_is_not_stacking(self, ledger, risk_gate, clock):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 10.0)
        clock.advance(minutes=11)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_DOWN, 0.5, 500.0)

        assert decision.valid is True

    def test_stacking_can_be_disabled(self, ledger, clock):
        gate = RiskGate(ledger, RiskConfig(no_stacking=False), clock=clock)
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 10.0)
        clock.advance(minutes=11)

        assert gate.validate("baseline", MARKET, Action.BUY_UP, 0.5, 500.0).valid is True


class TestCooldown:
    """Tests for the per-strategy cooldown."""

    def test_cooldown_uses_normalized_strategy(self, ledger, risk_gate, clock):
        ledger.log_trade("creative:momentum", "other-market", Action.BUY_UP, 0.5, 10.0)
        clock.advance(minutes=1)

        decision = risk_gate.validate("momentum", MARKET, Action.BUY_UP, 0.5, 500.0)

        assert decision.rule == RiskRule.COOLDOWN
        assert decision.reason == "Cooldown active (9min remaining)"

    def test_remaining_minutes_round_up(self, ledger, risk_gate, clock):
        ledger.log_trade("baseline", "other-market", Action.BUY_UP, 0.5, 10.0)
        clock.advance(seconds=9 * 60 + 30)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.5, 500.0)

        assert decision.reason == "Cooldown active (1min remaining)"

    def test_other_strategies_unaffected(self, ledger, risk_gate):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 10.0)

        assert risk_gate.validate("momentum", MARKET, Action.BUY_UP, 0.5, 500.0).valid is True


class TestSizing:
    """Tests for position sizing."""

    @pytest.mark.parametrize("confidence,expected", [
        (0.0, 12.5),   # 500 * 5% * 0.5
        (0.5, 18.75),  # 500 * 5% * 0.75
        (1.0, 25.0),   # 500 * 5% * 1.0
    ])
    def test_confidence_scaling(self, risk_gate, confidence, expected):
        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, confidence, 500.0)

        assert decision.valid is True
        assert decision.size == pytest.approx(expected)
        assert decision.adjusted is False

    def test_min_size_floor(self, risk_gate):
        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.0, 100.0)
        assert decision.size == 5.0

    def test_max_size_cap(self, risk_gate):
        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 1.0, 5000.0)
        assert decision.size == 50.0

    def test_size_rounded_to_cents(self, risk_gate):
        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 0.333, 333.33)
        assert decision.size == round(decision.size, 2)


class TestExposureShrink:
    """Tests for fitting the size into remaining exposure."""

    def test_size_shrunk_to_headroom(self, ledger, risk_gate):
        # Cap is 100; 80 already committed leaves 20 of headroom for a 25 trade
        ledger.log_trade("momentum", MARKET, Action.BUY_UP, 0.5, 80.0)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 1.0, 500.0)

        assert decision.valid is True
        assert decision.adjusted is True
        assert decision.size == pytest.approx(20.0)

    def test_headroom_below_minimum_rejected(self, ledger, risk_gate):
        ledger.log_trade("momentum", MARKET, Action.BUY_UP, 0.5, 97.0)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 1.0, 500.0)

        assert decision.valid is False
        assert decision.rule == RiskRule.MAX_EXPOSURE
        assert decision.reason.startswith("Would exceed market exposure limit")

    def test_result_never_exceeds_cap(self, ledger, risk_gate):
        ledger.log_trade("momentum", MARKET, Action.BUY_UP, 0.5, 61.337)

        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 1.0, 333.33)

        assert decision.valid is True
        assert 61.337 + decision.size <= 0.20 * 333.33

    def test_non_positive_portfolio_rejected(self, risk_gate):
        decision = risk_gate.validate("baseline", MARKET, Action.BUY_UP, 1.0, 0.0)

        assert decision.valid is False
        assert decision.rule == RiskRule.MAX_EXPOSURE


class TestRiskStatus:
    """Tests for status reporting."""

    def test_portfolio_estimate_includes_open_positions(self, ledger, risk_gate):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 30.0)
        assert risk_gate.estimate_portfolio_value(500.0) == 530.0

    def test_portfolio_estimate_marks_to_market(self, ledger, risk_gate):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 30.0)

        # 60 shares now worth 0.6 each
        value = risk_gate.estimate_portfolio_value(500.0, {MARKET: MarketPrices(up=0.6, down=0.4)})

        assert value == pytest.approx(536.0)

    def test_get_status_groups_by_market(self, ledger, risk_gate):
        ledger.log_trade("baseline", MARKET, Action.BUY_UP, 0.5, 30.0)
        ledger.log_trade("momentum", MARKET, Action.BUY_DOWN, 0.5, 20.0)

        status = risk_gate.get_status(500.0)

        assert status["open_trades"] == 2
        assert status["market_exposures"][MARKET]["total"] == 50.0
        assert status["market_exposures"][MARKET]["pct"] == pytest.approx(0.1)
        assert status["risk_config"]["max_exposure_per_market"] == 0.20
