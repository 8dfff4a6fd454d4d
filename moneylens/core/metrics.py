"""Shared financial metric and ranking helpers.

Pure functions used by the scenario engine. The risk and probability
heuristics are fixed constants, not a calibrated model; callers and tests
depend on the exact values.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from moneylens.models.results import KeyMetrics, RankedScenario
from moneylens.models.schemas import ChangeKind, ScenarioChange

MONTHS_PER_YEAR = 12
MAX_PROJECTION_MONTHS = 600  # 50 years; stands in for "never"

BASE_RISK = 5
DEBT_RISK = 2
EXPENSE_RISK = 1
LARGE_CHANGE_RISK = 1
LARGE_CHANGE_THRESHOLD = 1000.0

BASE_PROBABILITY = 70
INCOME_PROBABILITY_PENALTY = 10
INVESTMENT_PROBABILITY_PENALTY = 20

HIGH_RISK_THRESHOLD = 7


def add_months(d: date, months: int) -> date:
    """Shift *d* by whole calendar months, clamping to the month's last day."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


# --- Financial position ---


@dataclass(frozen=True)
class FinancialPosition:
    """Totals and derived metrics for one projection (baseline or modified)."""
    total_income: float
    total_expenses: float
    total_debt: float
    net_assets: float
    net_worth: float
    monthly_income: float
    monthly_expenses: float
    monthly_debt_payment: float

    @property
    def monthly_cash_flow(self) -> float:
        return self.monthly_income - self.monthly_expenses

    @property
    def savings_rate(self) -> float:
        if self.monthly_income <= 0:
            return 0.0
        return (self.monthly_income - self.monthly_expenses) / self.monthly_income * 100

    @property
    def debt_to_income(self) -> float:
        if self.monthly_income <= 0:
            return 0.0
        return self.total_debt / self.monthly_income * 100

    @property
    def emergency_fund_months(self) -> float:
        if self.monthly_expenses <= 0:
            return 0.0
        return self.net_assets / self.monthly_expenses

    def key_metrics(self) -> KeyMetrics:
        return KeyMetrics(
            monthly_cash_flow=round(self.monthly_cash_flow, 2),
            savings_rate=round(self.savings_rate, 2),
            debt_to_income=round(self.debt_to_income, 2),
            emergency_fund_months=round(self.emergency_fund_months, 2),
        )


def compute_position(
    starting_balance: float,
    history: Iterable[float],
    projected: Iterable[float] = (),
    total_debt: float = 0.0,
    monthly_debt_payment: float = 0.0,
    horizon_months: int = MONTHS_PER_YEAR,
) -> FinancialPosition:
    """Build a position from signed cash flows.

    *history* holds the snapshot's transaction amounts and is treated as one
    year of activity. *projected* holds scenario occurrences spread over
    *horizon_months*. Both are annualized to monthly figures separately.
    """
    if horizon_months <= 0:
        raise ValueError("horizon_months must be positive")

    hist_income, hist_expenses = _split_flows(history)
    proj_income, proj_expenses = _split_flows(projected)

    total_income = hist_income + proj_income
    total_expenses = hist_expenses + proj_expenses
    net_assets = starting_balance + total_income - total_expenses

    return FinancialPosition(
        total_income=total_income,
        total_expenses=total_expenses,
        total_debt=total_debt,
        net_assets=net_assets,
        net_worth=net_assets - total_debt,
        monthly_income=hist_income / MONTHS_PER_YEAR + proj_income / horizon_months,
        monthly_expenses=hist_expenses / MONTHS_PER_YEAR + proj_expenses / horizon_months,
        monthly_debt_payment=monthly_debt_payment,
    )


def _split_flows(amounts: Iterable[float]) -> tuple[float, float]:
    income = 0.0
    expenses = 0.0
    for amount in amounts:
        if amount > 0:
            income += amount
        elif amount < 0:
            expenses += abs(amount)
    return income, expenses


def months_to_reach(remaining: float, monthly_rate: float) -> int:
    """Whole months needed to cover *remaining* at *monthly_rate* per month."""
    if remaining <= 0:
        return 0
    if monthly_rate <= 0:
        return MAX_PROJECTION_MONTHS
    return min(MAX_PROJECTION_MONTHS, math.ceil(remaining / monthly_rate))


# --- Heuristic scores ---


def risk_score(changes: Sequence[ScenarioChange]) -> int:
    risk = BASE_RISK
    for change in changes:
        if change.kind is ChangeKind.DEBT:
            risk += DEBT_RISK
        if change.kind is ChangeKind.EXPENSE:
            risk += EXPENSE_RISK
        if abs(change.amount) > LARGE_CHANGE_THRESHOLD:
            risk += LARGE_CHANGE_RISK
    return clamp(risk, 1, 10)


def success_probability(changes: Sequence[ScenarioChange]) -> int:
    probability = BASE_PROBABILITY
    for change in changes:
        if change.kind is ChangeKind.INCOME:
            probability -= INCOME_PROBABILITY_PENALTY
        if change.kind is ChangeKind.INVESTMENT:
            probability -= INVESTMENT_PROBABILITY_PENALTY
    return clamp(probability, 0, 100)


# --- Ranking ---


def rank_by_impact(entries: Iterable[RankedScenario]) -> list[RankedScenario]:
    """Sort best first; equal impacts keep the earlier-created scenario ahead."""
    return sorted(
        entries,
        key=lambda e: (
            -e.result.net_worth_impact,
            e.scenario.created_at,
            e.scenario.id,
        ),
    )


def build_recommendations(ranked: Sequence[RankedScenario]) -> list[str]:
    recommendations: list[str] = []
    if not ranked:
        return recommendations

    best = ranked[0]
    if best.result.net_worth_impact > 0:
        recommendations.append(
            f'Consider implementing "{best.scenario.name}" as it shows positive '
            f"net worth impact."
        )
    if any(e.result.risk_score > HIGH_RISK_THRESHOLD for e in ranked):
        recommendations.append(
            "Some scenarios show high risk. Consider more conservative approaches."
        )
    return recommendations
