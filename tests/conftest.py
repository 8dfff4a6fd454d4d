"""Shared test fixtures for MoneyLens tests."""

from datetime import date, datetime, timezone

from moneylens.core.store_client import StoreError
from moneylens.models.schemas import (
    AllocationRule,
    AllocationTransaction,
    ChangeKind,
    Debt,
    FinancialSnapshot,
    FlatSchedule,
    Frequency,
    Goal,
    PercentageSchedule,
    Pot,
    ScenarioChange,
    SnapshotTransaction,
    WhatIfScenario,
)

USER_ID = "user-1"


def make_pot(
    name: str = "Bills",
    current_balance: float = 0.0,
    target_amount: float = 500.0,
    priority: int = 1,
) -> Pot:
    return Pot(
        id=f"pot-{name.lower().replace(' ', '-')}",
        user_id=USER_ID,
        name=name,
        target_amount=target_amount,
        current_balance=current_balance,
        priority=priority,
    )


def make_rule(
    pot_id: str = "pot-bills",
    amount: float = 100.0,
    priority: int = 1,
    percent_of_income: float | None = None,
    enabled: bool = True,
    id: str | None = None,
) -> AllocationRule:
    if percent_of_income is not None:
        schedule = PercentageSchedule(percent_of_income=percent_of_income)
        amount = percent_of_income
    else:
        schedule = FlatSchedule(amount=amount)
    return AllocationRule(
        id=id or f"rule-{pot_id}-{priority}",
        user_id=USER_ID,
        pot_id=pot_id,
        amount=amount,
        schedule=schedule,
        priority=priority,
        enabled=enabled,
    )


def make_record(
    pot_id: str = "pot-bills",
    amount: float = 50.0,
    allocation_date: date = date(2025, 1, 15),
    rule_id: str | None = None,
) -> AllocationTransaction:
    return AllocationTransaction(
        id=f"alloc-{pot_id}-{allocation_date.isoformat()}",
        user_id=USER_ID,
        pot_id=pot_id,
        rule_id=rule_id,
        amount=amount,
        allocation_date=allocation_date,
    )


def make_change(
    kind: str = "income",
    amount: float = 500.0,
    frequency: str = "one-time",
    start_date: date = date(2025, 1, 1),
    end_date: date | None = None,
    name: str = "Change",
    category: str | None = None,
) -> ScenarioChange:
    return ScenarioChange(
        id=f"chg-{name.lower().replace(' ', '-')}-{kind}",
        name=name,
        kind=ChangeKind(kind),
        start_date=start_date,
        end_date=end_date,
        amount=amount,
        frequency=Frequency(frequency),
        category=category,
    )


def make_scenario(
    changes: list[ScenarioChange] | None = None,
    name: str = "Scenario",
    created_at: datetime = datetime(2025, 1, 1, tzinfo=timezone.utc),
    id: str | None = None,
) -> WhatIfScenario:
    return WhatIfScenario(
        id=id or f"scenario-{name.lower().replace(' ', '-')}",
        name=name,
        created_at=created_at,
        modified_changes=tuple(changes or ()),
    )


def make_snapshot(
    income: float = 0.0,
    expenses: float = 0.0,
    starting_balance: float = 0.0,
    goals: list[Goal] | None = None,
    debts: list[Debt] | None = None,
) -> FinancialSnapshot:
    """Snapshot with one year of income and expenses as single transactions."""
    transactions = []
    if income:
        transactions.append(
            SnapshotTransaction(date=date(2024, 6, 1), amount=income, category="Salary")
        )
    if expenses:
        transactions.append(
            SnapshotTransaction(date=date(2024, 6, 2), amount=-expenses, category="Rent")
        )
    return FinancialSnapshot(
        transactions=transactions,
        goals=goals or [],
        debts=debts or [],
        starting_balance=starting_balance,
    )


def store_failure(detail: str = "boom") -> StoreError:
    return StoreError(500, "XX000", "internal_error", detail)


class FakeStore:
    """In-memory PotStore with failure injection.

    ``fail_methods`` makes whole methods raise; ``failing_pots`` makes balance
    increments for those pots raise; ``failing_record_pots`` makes history
    inserts for those pots raise.
    """

    def __init__(
        self,
        pots: list[Pot] | None = None,
        rules: list[AllocationRule] | None = None,
        records: list[AllocationTransaction] | None = None,
        snapshot: FinancialSnapshot | None = None,
    ):
        self.pots = {p.id: p for p in pots or []}
        self.rules = {r.id: r for r in rules or []}
        self.records = list(records or [])
        self.snapshot = snapshot or FinancialSnapshot()
        self.fail_methods: set[str] = set()
        self.failing_pots: set[str] = set()
        self.failing_record_pots: set[str] = set()
        self.increments: list[tuple[str, float]] = []
        self._next_id = 1

    def _check(self, method: str):
        if method in self.fail_methods:
            raise store_failure(f"{method} unavailable")

    def balance(self, pot_id: str) -> float:
        return self.pots[pot_id].current_balance

    async def get_pots(self, user_id):
        self._check("get_pots")
        return [p for p in self.pots.values() if p.user_id == user_id]

    async def get_allocation_rules(self, user_id, enabled_only=True):
        self._check("get_allocation_rules")
        return [
            r for r in self.rules.values()
            if r.user_id == user_id and (r.enabled or not enabled_only)
        ]

    async def upsert_allocation_rule(self, user_id, rule):
        self._check("upsert_allocation_rule")
        if rule.id is None:
            rule = rule.model_copy(update={"id": f"rule-new-{self._next_id}"})
            self._next_id += 1
        rule = rule.model_copy(update={"user_id": user_id})
        self.rules[rule.id] = rule
        return rule

    async def create_allocation_rules(self, user_id, rules):
        self._check("create_allocation_rules")
        return [await self.upsert_allocation_rule(user_id, r) for r in rules]

    async def delete_allocation_rule(self, user_id, rule_id):
        self._check("delete_allocation_rule")
        rule = self.rules.get(rule_id)
        if rule is None or rule.user_id != user_id:
            return False
        del self.rules[rule_id]
        return True

    async def increment_pot_balance(self, user_id, pot_id, delta):
        self._check("increment_pot_balance")
        if pot_id in self.failing_pots:
            raise store_failure(f"could not update {pot_id}")
        pot = self.pots.get(pot_id)
        if pot is None or pot.user_id != user_id:
            raise StoreError(404, "not_found", "pot_not_found", f"Pot {pot_id} not found")
        pot = pot.model_copy(update={"current_balance": round(pot.current_balance + delta, 2)})
        self.pots[pot_id] = pot
        self.increments.append((pot_id, delta))
        return pot

    async def insert_allocation_transaction(self, user_id, record):
        self._check("insert_allocation_transaction")
        if record.pot_id in self.failing_record_pots:
            raise store_failure(f"could not record {record.pot_id}")
        record = record.model_copy(update={"id": f"alloc-{self._next_id}", "user_id": user_id})
        self._next_id += 1
        self.records.append(record)
        return record

    async def get_allocation_transactions(self, user_id, start_date, end_date):
        self._check("get_allocation_transactions")
        return [
            r for r in self.records
            if r.user_id == user_id and start_date <= r.allocation_date <= end_date
        ]

    async def get_financial_snapshot(self, user_id):
        self._check("get_financial_snapshot")
        return self.snapshot
