"""Tests for financial metric and ranking helpers."""

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from tests.conftest import make_change, make_scenario
from moneylens.core.metrics import (
    MAX_PROJECTION_MONTHS,
    add_months,
    build_recommendations,
    compute_position,
    months_to_reach,
    rank_by_impact,
    risk_score,
    success_probability,
)
from moneylens.core.scenario_engine import neutral_result
from moneylens.models.results import RankedScenario


def ranked(name, impact, created=datetime(2025, 1, 1, tzinfo=timezone.utc), risk=5):
    scenario = make_scenario(name=name, created_at=created)
    result = neutral_result(scenario, date(2025, 1, 1))
    return RankedScenario(
        scenario=scenario,
        result=replace(result, net_worth_impact=impact, risk_score=risk),
    )


class TestAddMonths:
    def test_simple(self):
        assert add_months(date(2025, 1, 15), 1) == date(2025, 2, 15)

    def test_crosses_year(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)

    def test_leap_year(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_zero(self):
        assert add_months(date(2025, 6, 30), 0) == date(2025, 6, 30)


class TestComputePosition:
    def test_splits_income_and_expenses(self):
        position = compute_position(100, [1200, -600, 0])
        assert position.total_income == 1200
        assert position.total_expenses == 600
        assert position.net_assets == 700
        assert position.monthly_income == 100
        assert position.monthly_expenses == 50

    def test_projected_flows_use_horizon(self):
        position = compute_position(0, [], [300, 300, 300], horizon_months=3)
        assert position.monthly_income == 300

    def test_debt_reduces_net_worth(self):
        position = compute_position(1000, [], total_debt=400)
        assert position.net_worth == 600

    def test_ratios_with_no_income(self):
        position = compute_position(0, [-100])
        assert position.savings_rate == 0
        assert position.debt_to_income == 0

    def test_emergency_fund_without_expenses(self):
        assert compute_position(5000, [1200]).emergency_fund_months == 0

    def test_rejects_non_positive_horizon(self):
        with pytest.raises(ValueError):
            compute_position(0, [], horizon_months=0)

    def test_key_metrics_are_rounded(self):
        metrics = compute_position(0, [1200, -400]).key_metrics()
        assert metrics.savings_rate == 66.67
        assert metrics.monthly_cash_flow == 66.67


class TestMonthsToReach:
    def test_rounds_up(self):
        assert months_to_reach(1000, 300) == 4

    def test_nothing_remaining(self):
        assert months_to_reach(0, 100) == 0

    def test_no_progress_caps(self):
        assert months_to_reach(1000, 0) == MAX_PROJECTION_MONTHS
        assert months_to_reach(1000, -50) == MAX_PROJECTION_MONTHS

    def test_very_slow_progress_caps(self):
        assert months_to_reach(1_000_000, 1) == MAX_PROJECTION_MONTHS


class TestScores:
    def test_base_values(self):
        assert risk_score([]) == 5
        assert success_probability([]) == 70

    def test_expense_and_large_change(self):
        assert risk_score([make_change(kind="expense", amount=-1500)]) == 7

    def test_threshold_is_exclusive(self):
        assert risk_score([make_change(amount=1000)]) == 5

    def test_income_penalty(self):
        assert success_probability([make_change(amount=10)]) == 60

    def test_goal_changes_are_neutral(self):
        change = make_change(kind="goal", amount=-100)
        assert risk_score([change]) == 5
        assert success_probability([change]) == 70


class TestRanking:
    def test_higher_impact_first(self):
        entries = [ranked("Low", -10), ranked("High", 50), ranked("Mid", 0)]
        assert [e.scenario.name for e in rank_by_impact(entries)] == ["High", "Mid", "Low"]

    def test_tie_break_by_creation_then_id(self):
        early = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = datetime(2024, 2, 1, tzinfo=timezone.utc)
        entries = [ranked("C", 0, late), ranked("B", 0, early), ranked("A", 0, early)]
        assert [e.scenario.name for e in rank_by_impact(entries)] == ["A", "B", "C"]


class TestRecommendations:
    def test_none_for_empty(self):
        assert build_recommendations([]) == []

    def test_no_positive_recommendation_for_losses(self):
        assert build_recommendations([ranked("Loss", -5)]) == []

    def test_high_risk_warning(self):
        recs = build_recommendations([ranked("Safe", 10), ranked("Risky", -5, risk=8)])
        assert len(recs) == 2
        assert recs[1].startswith("Some scenarios show high risk")

    def test_risk_at_threshold_is_not_high(self):
        assert build_recommendations([ranked("Edge", 0, risk=7)]) == []
