"""What-if scenario engine.

Builds a hypothetical projection from a financial snapshot plus a list of
proposed changes, measures its impact against the baseline, and ranks
scenarios against each other. Everything here is pure computation over
already-fetched data; the only state is the optional result cache.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Sequence

from moneylens.core.metrics import (
    BASE_PROBABILITY,
    BASE_RISK,
    add_months,
    build_recommendations,
    compute_position,
    months_to_reach,
    rank_by_impact,
    risk_score,
    success_probability,
)
from moneylens.models.results import (
    KeyMetrics,
    RankedScenario,
    ScenarioComparison,
    ScenarioResult,
    TimelineEvent,
)
from moneylens.models.schemas import (
    ChangeKind,
    FinancialSnapshot,
    Frequency,
    ScenarioChange,
    TimelineEventKind,
    WhatIfScenario,
)

logger = logging.getLogger("moneylens")

DEFAULT_HORIZON_MONTHS = 12
DEFAULT_PROJECTION_YEARS = 5

_FREQUENCY_MONTHS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


class ScenarioResultCache:
    """Computed results keyed by scenario id and a hash of its changes.

    Editing a scenario's ``modified_changes`` produces a new hash, so a stale
    result can never be served for the edited scenario.
    """

    def __init__(self):
        self._results: dict[tuple[str, str], ScenarioResult] = {}

    @staticmethod
    def _key(scenario: WhatIfScenario) -> tuple[str, str]:
        return scenario.id, scenario.changes_digest()

    def get(self, scenario: WhatIfScenario) -> ScenarioResult | None:
        return self._results.get(self._key(scenario))

    def put(self, scenario: WhatIfScenario, result: ScenarioResult) -> None:
        self._results[self._key(scenario)] = result

    def invalidate(self, scenario_id: str) -> None:
        for key in [k for k in self._results if k[0] == scenario_id]:
            del self._results[key]

    def __contains__(self, scenario: WhatIfScenario) -> bool:
        return self._key(scenario) in self._results

    def __len__(self) -> int:
        return len(self._results)


# --- Occurrence expansion ---


def expand_occurrences(change: ScenarioChange, horizon_end: date) -> list[date]:
    """List the dates on which *change* applies.

    One-time changes apply once on their start date. Recurring changes repeat
    from the start date until their end date (inclusive) or the horizon end
    (exclusive), whichever comes first.
    """
    if change.end_date is not None and change.end_date < change.start_date:
        return []
    if change.frequency is Frequency.ONE_TIME:
        return [change.start_date]

    step = _FREQUENCY_MONTHS[change.frequency]
    dates: list[date] = []
    i = 0
    while True:
        when = add_months(change.start_date, i * step)
        if when >= horizon_end:
            break
        if change.end_date is not None and when > change.end_date:
            break
        dates.append(when)
        i += 1
    return dates


def _event_kind(change: ScenarioChange) -> TimelineEventKind:
    if change.kind is ChangeKind.DEBT and change.amount < 0:
        return TimelineEventKind.DEBT_PAYMENT
    return TimelineEventKind(change.kind.value)


def _start_milestone(scenario: WhatIfScenario, start: date) -> TimelineEvent:
    return TimelineEvent(
        date=start,
        kind=TimelineEventKind.MILESTONE,
        amount=0.0,
        description=f'Scenario "{scenario.name}" started',
    )


def neutral_result(scenario: WhatIfScenario, start: date) -> ScenarioResult:
    """The zeroed result reported when a scenario cannot be computed."""
    return ScenarioResult(
        scenario_id=scenario.id,
        net_worth_impact=0.0,
        goal_timeline_changes={},
        debt_free_date_change=0,
        risk_score=BASE_RISK,
        probability=BASE_PROBABILITY,
        key_metrics=KeyMetrics(
            monthly_cash_flow=0.0,
            savings_rate=0.0,
            debt_to_income=0.0,
            emergency_fund_months=0.0,
        ),
        timeline=(_start_milestone(scenario, start),),
    )


class ScenarioEngine:
    """Creates, evaluates and compares what-if scenarios."""

    def __init__(
        self,
        reference_date: date | None = None,
        horizon_months: int = DEFAULT_HORIZON_MONTHS,
        cache: ScenarioResultCache | None = None,
    ):
        if horizon_months <= 0:
            raise ValueError("horizon_months must be positive")
        self.reference_date = reference_date
        self.horizon_months = horizon_months
        self.cache = cache if cache is not None else ScenarioResultCache()

    def _start_date(self, scenario: WhatIfScenario) -> date:
        return self.reference_date or scenario.created_at.date()

    # --- Construction ---

    def create_scenario(
        self,
        name: str,
        description: str,
        base_changes: Sequence[ScenarioChange],
        modified_changes: Sequence[ScenarioChange],
    ) -> WhatIfScenario:
        """Build a new scenario. Results are not computed here."""
        return WhatIfScenario(
            id=f"scenario_{uuid.uuid4().hex}",
            name=name,
            description=description,
            created_at=datetime.now(timezone.utc),
            base_changes=tuple(base_changes),
            modified_changes=tuple(modified_changes),
        )

    def update_scenario(
        self,
        scenario: WhatIfScenario,
        modified_changes: Sequence[ScenarioChange],
    ) -> WhatIfScenario:
        """Return *scenario* with new changes and drop its cached results."""
        self.cache.invalidate(scenario.id)
        return scenario.with_changes(list(modified_changes))

    # --- Impact ---

    def calculate_scenario_impact(
        self,
        snapshot: FinancialSnapshot,
        scenario: WhatIfScenario,
    ) -> ScenarioResult:
        """Compute the scenario's impact relative to the unmodified snapshot.

        Never raises for bad financial input: arithmetic or value problems are
        logged and reported as a neutral result.
        """
        start = self._start_date(scenario)
        try:
            return self._compute(snapshot, scenario, start)
        except (ArithmeticError, ValueError) as e:
            logger.warning(
                "Scenario %s could not be computed, using neutral result: %s",
                scenario.id, e,
            )
            return neutral_result(scenario, start)

    def _compute(
        self,
        snapshot: FinancialSnapshot,
        scenario: WhatIfScenario,
        start: date,
    ) -> ScenarioResult:
        horizon_end = add_months(start, self.horizon_months)
        history = [t.amount for t in snapshot.transactions]
        total_debt = sum(d.remaining_amount for d in snapshot.debts)
        minimum_payments = sum(d.minimum_payment for d in snapshot.debts)

        baseline = compute_position(
            snapshot.starting_balance,
            history,
            total_debt=total_debt,
            monthly_debt_payment=minimum_payments,
            horizon_months=self.horizon_months,
        )

        projected: list[float] = []
        events: list[TimelineEvent] = []
        debt_delta = 0.0
        extra_repayment = 0.0

        for change in scenario.modified_changes:
            occurrences = expand_occurrences(change, horizon_end)
            for when in occurrences:
                projected.append(change.amount)
                events.append(TimelineEvent(
                    date=when,
                    kind=_event_kind(change),
                    amount=change.amount,
                    description=f"{change.kind.value}: {change.name}",
                    category=change.category,
                ))
            if change.kind is not ChangeKind.DEBT:
                continue
            # borrowing adds to liabilities, repayments reduce them
            debt_delta += change.amount * len(occurrences)
            if change.amount < 0 and occurrences and change.frequency in _FREQUENCY_MONTHS:
                extra_repayment += abs(change.amount) / _FREQUENCY_MONTHS[change.frequency]

        modified = compute_position(
            snapshot.starting_balance,
            history,
            projected,
            total_debt=max(0.0, total_debt + debt_delta),
            monthly_debt_payment=minimum_payments + extra_repayment,
            horizon_months=self.horizon_months,
        )

        goal_changes: dict[str, int] = {}
        for goal in snapshot.goals:
            if goal.is_completed:
                goal_changes[goal.id] = 0
                continue
            remaining = goal.remaining_amount
            goal_changes[goal.id] = (
                months_to_reach(remaining, modified.monthly_cash_flow)
                - months_to_reach(remaining, baseline.monthly_cash_flow)
            )

        debt_free_change = (
            months_to_reach(modified.total_debt, modified.monthly_debt_payment)
            - months_to_reach(baseline.total_debt, baseline.monthly_debt_payment)
        )

        timeline = [_start_milestone(scenario, start), *events]
        timeline.sort(key=lambda e: e.date)

        return ScenarioResult(
            scenario_id=scenario.id,
            net_worth_impact=round(modified.net_worth - baseline.net_worth, 2),
            goal_timeline_changes=goal_changes,
            debt_free_date_change=debt_free_change,
            risk_score=risk_score(scenario.modified_changes),
            probability=success_probability(scenario.modified_changes),
            key_metrics=modified.key_metrics(),
            timeline=tuple(timeline),
        )

    def results_for(
        self,
        snapshot: FinancialSnapshot,
        scenario: WhatIfScenario,
    ) -> ScenarioResult:
        """Return the cached result for *scenario*, computing it if missing."""
        cached = self.cache.get(scenario)
        if cached is not None:
            return cached
        result = self.calculate_scenario_impact(snapshot, scenario)
        self.cache.put(scenario, result)
        return result

    # --- Comparison ---

    def compare_scenarios(
        self,
        snapshot: FinancialSnapshot,
        scenarios: Sequence[WhatIfScenario],
    ) -> ScenarioComparison:
        """Rank scenarios by net worth impact and produce recommendations.

        Scenarios that already have cached results are not recomputed.
        """
        ranked = rank_by_impact(
            RankedScenario(scenario=s, result=self.results_for(snapshot, s))
            for s in scenarios
        )
        return ScenarioComparison(
            scenarios=ranked,
            best_scenario=ranked[0] if ranked else None,
            worst_scenario=ranked[-1] if ranked else None,
            recommendations=build_recommendations(ranked),
        )

    # --- Long-range projection ---

    def generate_timeline_projection(
        self,
        scenario: WhatIfScenario,
        years: int = DEFAULT_PROJECTION_YEARS,
        start: date | None = None,
    ) -> list[TimelineEvent]:
        """Project recurring changes over *years* with quarterly and yearly reviews.

        Each recurring change repeats from its own start date. One-time
        changes are left out.
        """
        if years < 0:
            raise ValueError(f"years must be non-negative, got {years}")

        start = start or self._start_date(scenario)
        events = [TimelineEvent(
            date=start,
            kind=TimelineEventKind.MILESTONE,
            amount=0.0,
            description="Current financial position",
        )]

        # recurring changes keep their own cadence from start_date
        end = add_months(start, years * 12) + timedelta(days=1)
        for change in scenario.modified_changes:
            if change.frequency is Frequency.ONE_TIME:
                continue
            for when in expand_occurrences(change, end):
                if when <= start:
                    continue
                events.append(TimelineEvent(
                    date=when,
                    kind=_event_kind(change),
                    amount=change.amount,
                    description=(
                        f"{change.frequency.value.capitalize()} "
                        f"{change.kind.value}: {change.name}"
                    ),
                    category=change.category,
                ))

        for i in range(1, years * 12 + 1):
            when = add_months(start, i)
            if i % 3 == 0:
                events.append(TimelineEvent(
                    date=when,
                    kind=TimelineEventKind.MILESTONE,
                    amount=0.0,
                    description=f"Quarter {(i + 2) // 3} review",
                ))
            if i % 12 == 0:
                events.append(TimelineEvent(
                    date=when,
                    kind=TimelineEventKind.MILESTONE,
                    amount=0.0,
                    description=f"Year {i // 12} financial review",
                ))

        return sorted(events, key=lambda e: e.date)

    # --- Samples ---

    def sample_scenarios(self, start: date | None = None) -> list[WhatIfScenario]:
        """Demonstration scenarios for users who have not built their own."""
        start = start or self.reference_date or date.today()
        samples = [
            (
                "Salary Increase Scenario",
                "Test the impact of a 10% salary increase",
                ScenarioChange(
                    id="salary_increase",
                    name="10% Salary Increase",
                    description="Hypothetical salary increase",
                    kind=ChangeKind.INCOME,
                    start_date=start,
                    amount=500,
                    frequency=Frequency.MONTHLY,
                    category="Salary",
                ),
            ),
            (
                "Debt Payoff Strategy",
                "Accelerated debt payoff with extra payments",
                ScenarioChange(
                    id="extra_debt_payment",
                    name="Extra Debt Payment",
                    description="Additional 200 monthly debt payment",
                    kind=ChangeKind.DEBT,
                    start_date=start,
                    amount=-200,
                    frequency=Frequency.MONTHLY,
                    category="Debt Reduction",
                ),
            ),
            (
                "Investment Growth",
                "Regular monthly investment contributions",
                ScenarioChange(
                    id="monthly_investment",
                    name="Monthly Investment",
                    description="300 monthly investment contribution",
                    kind=ChangeKind.INVESTMENT,
                    start_date=start,
                    amount=300,
                    frequency=Frequency.MONTHLY,
                    category="Investments",
                ),
            ),
        ]
        return [
            self.create_scenario(name, description, [], [change])
            for name, description, change in samples
        ]
