"""Allocation engine: routes incoming money into savings pots.

Rules are served strictly in priority order (lower number first, then rule
id), each taking ``min(requested, remaining)``. Every pot credit is its own
atomic unit: a failure on one pot is reported in the run's errors and its
money stays unallocated, while earlier credits stand.

Amounts are handled in whole cents internally so the allocated total can
never exceed the incoming amount.
"""

import logging
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Optional

from moneylens.core.error_handling import STORE_FAILURES, describe_failure, report_failures
from moneylens.core.resolvers import ResolverError, find_pot_by_keywords, resolve_pot
from moneylens.core.store_client import PotStore
from moneylens.models.results import (
    AllocationResult,
    AllocationSummary,
    OperationResult,
    PotAllocationNeed,
    PotCreditOutcome,
    TransferResult,
)
from moneylens.models.schemas import (
    AllocationRule,
    AllocationRuleInput,
    AllocationStatus,
    AllocationTransaction,
    PercentageSchedule,
    Pot,
    RuleType,
    TransferInput,
    from_cents,
    to_cents,
)

logger = logging.getLogger("moneylens")

# (name keywords, percent of income, priority)
DEFAULT_RULE_TEMPLATES: list[tuple[tuple[str, ...], float, int]] = [
    (("bill",), 40, 1),
    (("food",), 15, 2),
    (("petrol", "transport"), 10, 3),
    (("saving",), 20, 4),
    (("buffer", "emergency"), 10, 5),
]


# --- Pure helpers ---


def order_rules(rules: Iterable[AllocationRule]) -> list[AllocationRule]:
    """Enabled rules sorted by (priority, id) for a deterministic order."""
    return sorted(
        (r for r in rules if r.enabled),
        key=lambda r: (r.priority, r.id or ""),
    )


def resolve_rule_amount(rule: AllocationRule, income_amount: float) -> float:
    """How much *rule* asks for out of *income_amount*."""
    schedule = rule.schedule
    if isinstance(schedule, PercentageSchedule):
        return income_amount * schedule.percent_of_income / 100
    return schedule.amount


def _requested_cents(rule: AllocationRule, income_cents: int) -> int:
    schedule = rule.schedule
    if isinstance(schedule, PercentageSchedule):
        share = Decimal(income_cents) * Decimal(str(schedule.percent_of_income)) / 100
        return int(share.to_integral_value(rounding=ROUND_DOWN))
    return to_cents(schedule.amount)


def compute_pot_needs(
    pots: list[Pot],
    rules: list[AllocationRule],
    income_amount: Optional[float] = None,
) -> list[PotAllocationNeed]:
    """Sum each pot's enabled rule amounts and compare with its balance.

    Without *income_amount* the raw rule ``amount`` is summed; with it,
    percentage rules are resolved against that income first.
    """
    enabled = [r for r in rules if r.enabled]
    needs = []
    for pot in pots:
        needed = 0.0
        for rule in enabled:
            if rule.pot_id != pot.id:
                continue
            if income_amount is None:
                needed += rule.amount
            else:
                needed += resolve_rule_amount(rule, income_amount)

        needs.append(PotAllocationNeed(
            pot_id=pot.id,
            pot_name=pot.name,
            target_amount=round(pot.target_amount, 2),
            current_balance=round(pot.current_balance, 2),
            allocation_needed=round(needed, 2),
            shortfall=round(max(0.0, needed - pot.current_balance), 2),
            status=pot.status,
        ))
    return needs


def build_default_rules(pots: list[Pot]) -> list[AllocationRule]:
    """Starter percentage rules for whichever standard pots the user has.

    Categories with no matching pot are skipped.
    """
    rules = []
    for keywords, percent, priority in DEFAULT_RULE_TEMPLATES:
        pot = find_pot_by_keywords(pots, keywords)
        if pot is None:
            continue
        rules.append(AllocationRule(
            pot_id=pot.id,
            rule_type=RuleType.MONTHLY,
            amount=percent,
            schedule=PercentageSchedule(percent_of_income=percent),
            priority=priority,
            enabled=True,
        ))
    return rules


# --- Engine ---


class AllocationEngine:
    """Allocation operations for one user against a :class:`PotStore`."""

    def __init__(self, store: PotStore, user_id: str):
        self.store = store
        self.user_id = user_id

    # --- Pot credit units ---

    async def _credit_pot(
        self,
        pot: Pot,
        cents: int,
        allocation_date: date,
        rule_id: Optional[str],
        remaining_after: int,
    ) -> PotCreditOutcome:
        """Add money to a pot and record it; undo the balance change if the
        record cannot be written."""
        amount = from_cents(cents)
        try:
            await self.store.increment_pot_balance(self.user_id, pot.id, amount)
        except STORE_FAILURES as e:
            return PotCreditOutcome(pot_id=pot.id, error=f"{pot.name}: {describe_failure(e)}")

        record = AllocationTransaction(
            pot_id=pot.id,
            rule_id=rule_id,
            amount=amount,
            allocation_date=allocation_date,
            status=AllocationStatus.COMPLETED,
        )
        try:
            await self.store.insert_allocation_transaction(self.user_id, record)
        except STORE_FAILURES as e:
            await self._reverse_increment(pot.id, amount)
            return PotCreditOutcome(pot_id=pot.id, error=f"{pot.name}: {describe_failure(e)}")

        return PotCreditOutcome(
            pot_id=pot.id,
            allocation=AllocationResult(
                pot_id=pot.id,
                pot_name=pot.name,
                allocated_amount=amount,
                remaining_balance=from_cents(remaining_after),
                rule_applied=rule_id or "manual",
            ),
        )

    async def _reverse_increment(self, pot_id: str, delta: float) -> None:
        """Undo an earlier ``increment_pot_balance(pot_id, delta)``."""
        try:
            await self.store.increment_pot_balance(self.user_id, pot_id, -delta)
        except STORE_FAILURES as e:
            logger.error(
                "Could not reverse %.2f on pot %s; balance needs reconciling: %s",
                delta, pot_id, e,
            )

    # --- Allocation runs ---

    async def allocate_income(
        self,
        amount: float,
        allocation_date: Optional[date] = None,
    ) -> AllocationSummary:
        """Distribute *amount* across pots according to the enabled rules."""
        if amount < 0:
            raise ValueError(f"Allocation amount must be non-negative, got {amount}")

        allocation_date = allocation_date or date.today()
        summary = AllocationSummary(remaining_income=amount)

        try:
            rules = await self.store.get_allocation_rules(self.user_id, enabled_only=True)
            pots = await self.store.get_pots(self.user_id)
        except STORE_FAILURES as e:
            logger.error("Allocation for user %s failed: %s", self.user_id, e)
            summary.errors.append(f"Allocation failed: {describe_failure(e)}")
            return summary

        pots_by_id = {p.id: p for p in pots}
        income_cents = to_cents(amount)
        remaining = income_cents

        for rule in order_rules(rules):
            if remaining <= 0:
                break
            requested = _requested_cents(rule, income_cents)
            if requested <= 0:
                continue

            pot = pots_by_id.get(rule.pot_id)
            if pot is None:
                summary.errors.append(str(ResolverError("pot", rule.pot_id)))
                continue

            cents = min(requested, remaining)
            outcome = await self._credit_pot(
                pot, cents, allocation_date,
                rule_id=rule.id,
                remaining_after=remaining - cents,
            )
            if not outcome.ok:
                summary.errors.append(outcome.error)
                continue
            remaining -= cents
            summary.allocations.append(outcome.allocation)

        summary.total_allocated = from_cents(income_cents - remaining)
        summary.remaining_income = round(max(0.0, amount - summary.total_allocated), 2)

        logger.info(
            "Allocated %.2f of %.2f across %d pot(s) for user %s",
            summary.total_allocated, amount, len(summary.allocations), self.user_id,
        )
        if summary.errors:
            logger.warning(
                "Allocation for user %s finished with %d error(s)",
                self.user_id, len(summary.errors),
            )
        return summary

    @report_failures
    async def allocate_to_pot(
        self,
        pot_id: str,
        amount: float,
        description: Optional[str] = None,
    ) -> OperationResult:
        """Manually credit a single pot."""
        if amount <= 0:
            raise ValueError(f"Allocation amount must be positive, got {amount}")
        cents = to_cents(amount)
        if cents <= 0:
            raise ValueError(f"Allocation amount must be at least 0.01, got {amount}")

        pots = await self.store.get_pots(self.user_id)
        pot = resolve_pot(pots, pot_id)
        outcome = await self._credit_pot(
            pot, cents, date.today(), rule_id=None, remaining_after=0
        )
        if not outcome.ok:
            return OperationResult(success=False, error=outcome.error)

        logger.info(
            "Allocated %.2f to pot %s%s",
            from_cents(cents), pot.name, f" ({description})" if description else "",
        )
        return OperationResult(success=True)

    async def transfer_between_pots(
        self,
        from_pot_id: str,
        to_pot_id: str,
        amount: float,
    ) -> TransferResult:
        """Move money between two of the user's pots.

        Validation failures change nothing. If a later step fails, the
        completed steps are reversed.
        """
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        # blank ids raise ValidationError, a ValueError
        request = TransferInput(from_pot_id=from_pot_id, to_pot_id=to_pot_id, amount=amount)
        from_pot_id, to_pot_id = request.from_pot_id, request.to_pot_id

        def failed(reason: str) -> TransferResult:
            return TransferResult(
                success=False,
                from_pot_id=from_pot_id,
                to_pot_id=to_pot_id,
                amount=amount,
                error=reason,
            )

        if from_pot_id == to_pot_id:
            return failed("Cannot transfer a pot to itself.")

        try:
            pots = await self.store.get_pots(self.user_id)
            source = resolve_pot(pots, from_pot_id)
            target = resolve_pot(pots, to_pot_id)
        except (ResolverError, *STORE_FAILURES) as e:
            return failed(describe_failure(e))

        cents = to_cents(amount)
        if to_cents(source.current_balance) < cents:
            return failed(
                f"Insufficient funds in {source.name}: "
                f"{source.current_balance:,.2f} available, {amount:,.2f} requested."
            )
        moved = from_cents(cents)

        try:
            await self.store.increment_pot_balance(self.user_id, source.id, -moved)
        except STORE_FAILURES as e:
            return failed(describe_failure(e))

        try:
            await self.store.increment_pot_balance(self.user_id, target.id, moved)
        except STORE_FAILURES as e:
            await self._reverse_increment(source.id, -moved)
            return failed(describe_failure(e))

        record = AllocationTransaction(
            pot_id=target.id,
            amount=moved,
            allocation_date=date.today(),
            status=AllocationStatus.COMPLETED,
        )
        try:
            await self.store.insert_allocation_transaction(self.user_id, record)
        except STORE_FAILURES as e:
            await self._reverse_increment(target.id, moved)
            await self._reverse_increment(source.id, -moved)
            return failed(describe_failure(e))

        logger.info("Transferred %.2f from %s to %s", moved, source.name, target.name)
        return TransferResult(
            success=True,
            from_pot_id=source.id,
            to_pot_id=target.id,
            amount=moved,
        )

    # --- Rules ---

    @report_failures
    async def save_allocation_rule(
        self, rule: AllocationRule | AllocationRuleInput
    ) -> OperationResult:
        """Create or update a rule. The rule's pot must belong to the user."""
        if isinstance(rule, AllocationRuleInput):
            rule = rule.to_rule()
        pots = await self.store.get_pots(self.user_id)
        resolve_pot(pots, rule.pot_id)
        await self.store.upsert_allocation_rule(self.user_id, rule)
        return OperationResult(success=True)

    @report_failures
    async def delete_allocation_rule(self, rule_id: str) -> OperationResult:
        deleted = await self.store.delete_allocation_rule(self.user_id, rule_id)
        if not deleted:
            raise ResolverError("allocation rule", rule_id)
        return OperationResult(success=True)

    @report_failures
    async def create_default_allocation_rules(self, pots: list[Pot]) -> OperationResult:
        """Seed the standard percentage rules for the pots that exist."""
        rules = build_default_rules(pots)
        if not rules:
            return OperationResult(success=True)
        await self.store.create_allocation_rules(self.user_id, rules)
        logger.info("Created %d default allocation rule(s) for user %s", len(rules), self.user_id)
        return OperationResult(success=True)

    # --- Read-only views ---

    async def get_allocation_history(
        self,
        start_date: date,
        end_date: date,
    ) -> list[AllocationTransaction]:
        """Allocation records between two dates (inclusive), newest first."""
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")
        try:
            records = await self.store.get_allocation_transactions(
                self.user_id, start_date, end_date
            )
        except STORE_FAILURES as e:
            logger.error("Could not load allocation history: %s", e)
            return []

        in_range = [r for r in records if start_date <= r.allocation_date <= end_date]
        return sorted(in_range, key=lambda r: r.allocation_date, reverse=True)

    async def get_pot_allocation_needs(
        self,
        income_amount: Optional[float] = None,
    ) -> list[PotAllocationNeed]:
        try:
            pots = await self.store.get_pots(self.user_id)
            rules = await self.store.get_allocation_rules(self.user_id, enabled_only=True)
        except STORE_FAILURES as e:
            logger.error("Could not load pot allocation needs: %s", e)
            return []
        return compute_pot_needs(pots, rules, income_amount)
