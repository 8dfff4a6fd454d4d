"""Pydantic models for MoneyLens data types.

Field names follow the store's snake_case column names so rows can be
validated directly from the REST responses.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


# --- Allocation math is done in whole cents (100 = 1.00) ---

def to_cents(amount: float) -> int:
    """Convert a currency amount to cents, truncating sub-cent fractions."""
    return int((Decimal(str(amount)) * 100).to_integral_value(rounding=ROUND_DOWN))


def from_cents(cents: int) -> float:
    """Convert cents back to a currency amount."""
    return cents / 100.0


# --- Enums ---

class ChangeKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    DEBT = "debt"
    INVESTMENT = "investment"
    GOAL = "goal"


class Frequency(str, Enum):
    ONE_TIME = "one-time"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class TimelineEventKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    DEBT = "debt"
    DEBT_PAYMENT = "debt_payment"
    INVESTMENT = "investment"
    GOAL = "goal"
    MILESTONE = "milestone"


class RuleType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class AllocationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PotStatus(str, Enum):
    UNDERFUNDED = "underfunded"
    FUNDED = "funded"


# nullable columns come back as null from the store; let the defaults apply
def _drop_nulls(data: Any, keys: tuple[str, ...]) -> Any:
    if not isinstance(data, dict):
        return data
    return {k: v for k, v in data.items() if not (k in keys and v is None)}


# --- Financial snapshot ---

class SnapshotTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: date
    amount: float  # positive = income, negative = expense
    category: str = "Uncategorized"

    @model_validator(mode="before")
    @classmethod
    def _null_columns_to_defaults(cls, data: Any) -> Any:
        return _drop_nulls(data, ("category",))


class Goal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    target_amount: float
    current_amount: float = 0.0
    deadline: Optional[date] = Field(
        None, validation_alias=AliasChoices("deadline", "target_date")
    )
    is_completed: bool = False

    @model_validator(mode="before")
    @classmethod
    def _null_columns_to_defaults(cls, data: Any) -> Any:
        return _drop_nulls(data, ("current_amount", "is_completed", "title"))

    @property
    def remaining_amount(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)


class Debt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    remaining_amount: float
    minimum_payment: float = 0.0
    due_date: Optional[date] = None

    @model_validator(mode="before")
    @classmethod
    def _null_columns_to_defaults(cls, data: Any) -> Any:
        return _drop_nulls(data, ("minimum_payment", "name"))


class FinancialSnapshot(BaseModel):
    """Everything the scenario engine reads about a user's finances."""
    model_config = ConfigDict(extra="ignore")

    transactions: list[SnapshotTransaction] = []
    goals: list[Goal] = []
    debts: list[Debt] = []
    starting_balance: float = 0.0
    currency: str = "GBP"  # display only


# --- Scenarios ---

class ScenarioChange(BaseModel):
    """A single hypothetical modification to the user's finances."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", frozen=True)

    id: str = Field(..., description="Change identifier")
    name: str = Field(..., description="Short label for the change")
    description: str = Field(default="", description="Longer explanation")
    kind: ChangeKind
    start_date: date
    end_date: Optional[date] = Field(
        None, description="Last active date; open-ended when omitted"
    )
    amount: float = Field(
        ..., description="Signed amount per occurrence (positive = money in)"
    )
    frequency: Frequency = Frequency.ONE_TIME
    category: Optional[str] = None


class WhatIfScenario(BaseModel):
    """A named set of hypothetical changes compared against the baseline."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    created_at: datetime
    base_changes: tuple[ScenarioChange, ...] = ()
    modified_changes: tuple[ScenarioChange, ...] = ()

    def changes_digest(self) -> str:
        """Content hash of ``modified_changes``; changes whenever they do."""
        payload = [c.model_dump(mode="json") for c in self.modified_changes]
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def with_changes(self, modified_changes: list[ScenarioChange]) -> "WhatIfScenario":
        return self.model_copy(update={"modified_changes": tuple(modified_changes)})


# --- Pots and allocation rules ---

class Pot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    target_amount: float = 0.0
    current_balance: float = 0.0
    priority: int = 0
    auto_transfer_enabled: bool = False

    @model_validator(mode="before")
    @classmethod
    def _null_columns_to_defaults(cls, data: Any) -> Any:
        return _drop_nulls(
            data, ("target_amount", "current_balance", "priority", "auto_transfer_enabled")
        )

    @property
    def status(self) -> PotStatus:
        if self.current_balance >= self.target_amount:
            return PotStatus.FUNDED
        return PotStatus.UNDERFUNDED

    @property
    def is_funded(self) -> bool:
        return self.status is PotStatus.FUNDED


class FlatSchedule(BaseModel):
    kind: Literal["flat"] = "flat"
    amount: float = Field(..., ge=0)


class PercentageSchedule(BaseModel):
    kind: Literal["percentage"] = "percentage"
    percent_of_income: float = Field(..., ge=0, le=100)


AllocationSchedule = Annotated[
    Union[FlatSchedule, PercentageSchedule], Field(discriminator="kind")
]


class AllocationRule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    user_id: Optional[str] = None
    pot_id: str
    rule_type: RuleType = RuleType.MONTHLY
    amount: float = Field(default=0.0, ge=0)
    schedule: AllocationSchedule
    priority: int = 1
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _normalize_schedule(cls, data: Any) -> Any:
        """Accept the store's untagged schedule JSON.

        ``{"percentage_of_income": N}`` is a percentage schedule; a missing or
        empty schedule is a flat schedule of the rule's ``amount``. Null
        columns fall back to their defaults.
        """
        if not isinstance(data, dict):
            return data
        data = _drop_nulls(data, ("amount", "priority", "enabled", "rule_type"))
        schedule = data.get("schedule")
        if isinstance(schedule, BaseModel) or (
            isinstance(schedule, dict) and "kind" in schedule
        ):
            return data
        data = dict(data)
        if isinstance(schedule, dict) and "percentage_of_income" in schedule:
            data["schedule"] = {
                "kind": "percentage",
                "percent_of_income": schedule["percentage_of_income"],
            }
        else:
            data["schedule"] = {"kind": "flat", "amount": data.get("amount") or 0.0}
        return data

    def to_store_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AllocationTransaction(BaseModel):
    """A persisted record of money moved into a pot."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    user_id: Optional[str] = None
    pot_id: str
    rule_id: Optional[str] = None
    amount: float
    allocation_date: date
    status: AllocationStatus = AllocationStatus.COMPLETED
    created_at: Optional[datetime] = None

    def to_store_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# --- Input Models ---


class TransferInput(BaseModel):
    """Input for moving money from one pot to another."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    from_pot_id: str = Field(..., description="Source pot ID", min_length=1)
    to_pot_id: str = Field(..., description="Destination pot ID", min_length=1)
    amount: float = Field(..., description="Amount to move", gt=0)


class AllocationRuleInput(BaseModel):
    """Caller input for creating or updating an allocation rule."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    id: Optional[str] = Field(None, description="Existing rule ID to update")
    pot_id: str = Field(..., description="Pot the rule funds", min_length=1)
    rule_type: RuleType = Field(default=RuleType.MONTHLY)
    amount: float = Field(default=0.0, ge=0, description="Flat amount per allocation")
    percent_of_income: Optional[float] = Field(
        None, ge=0, le=100, description="Allocate this percentage of the income instead"
    )
    priority: int = Field(default=1, ge=0, description="Lower numbers are served first")
    enabled: bool = True

    def to_rule(self) -> AllocationRule:
        if self.percent_of_income is not None:
            schedule: dict[str, Any] = {
                "kind": "percentage",
                "percent_of_income": self.percent_of_income,
            }
        else:
            schedule = {"kind": "flat", "amount": self.amount}
        return AllocationRule(
            id=self.id,
            pot_id=self.pot_id,
            rule_type=self.rule_type,
            amount=self.percent_of_income if self.percent_of_income is not None else self.amount,
            schedule=schedule,
            priority=self.priority,
            enabled=self.enabled,
        )
