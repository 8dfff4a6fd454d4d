"""Result dataclasses for scenario and allocation engine outputs.

These are derived values handed back to callers: lightweight dataclasses
rather than Pydantic models since they don't need validation.
"""

from dataclasses import dataclass, field
from datetime import date

from moneylens.models.schemas import PotStatus, TimelineEventKind, WhatIfScenario


# --- Scenarios ---


@dataclass(frozen=True)
class TimelineEvent:
    """A dated entry on a scenario timeline."""
    date: date
    kind: TimelineEventKind
    amount: float
    description: str
    category: str | None = None


@dataclass(frozen=True)
class KeyMetrics:
    monthly_cash_flow: float
    savings_rate: float          # percent
    debt_to_income: float        # percent
    emergency_fund_months: float


@dataclass(frozen=True)
class ScenarioResult:
    """Impact of a scenario against the baseline. Replaced, never mutated."""
    scenario_id: str
    net_worth_impact: float
    goal_timeline_changes: dict[str, int]  # goal id -> months (negative = sooner)
    debt_free_date_change: int             # months (negative = sooner)
    risk_score: int                        # 1-10
    probability: int                       # 0-100
    key_metrics: KeyMetrics
    timeline: tuple[TimelineEvent, ...] = ()


@dataclass(frozen=True)
class RankedScenario:
    scenario: WhatIfScenario
    result: ScenarioResult


@dataclass
class ScenarioComparison:
    """Scenarios ranked by net worth impact, best first."""
    scenarios: list[RankedScenario] = field(default_factory=list)
    best_scenario: RankedScenario | None = None
    worst_scenario: RankedScenario | None = None
    recommendations: list[str] = field(default_factory=list)


# --- Allocation ---


@dataclass
class AllocationResult:
    """Money routed to one pot during an allocation run."""
    pot_id: str
    pot_name: str
    allocated_amount: float
    remaining_balance: float  # income still unallocated after this pot
    rule_applied: str


@dataclass
class AllocationSummary:
    total_allocated: float = 0.0
    allocations: list[AllocationResult] = field(default_factory=list)
    remaining_income: float = 0.0
    errors: list[str] = field(default_factory=list)


@dataclass
class PotCreditOutcome:
    """Outcome of crediting a single pot: either an allocation or an error."""
    pot_id: str
    allocation: AllocationResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PotAllocationNeed:
    pot_id: str
    pot_name: str
    target_amount: float
    current_balance: float
    allocation_needed: float
    shortfall: float  # never negative
    status: PotStatus


@dataclass
class OperationResult:
    """Success flag plus a human-readable reason when it failed."""
    success: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class TransferResult:
    success: bool
    from_pot_id: str
    to_pot_id: str
    amount: float
    error: str | None = None

    def __bool__(self) -> bool:
        return self.success
