from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    AccountStatus,
    AccountType,
    BudgetPeriod,
    BudgetStatus,
    CategoryStatus,
    CategoryType,
    GoalStatus,
    GoalType,
    RecurringFrequency,
    TransactionStatus,
    TransactionType,
)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    initial_balance_cents: int = 0
    account_number: Optional[str] = Field(default=None, max_length=64)
    institution_name: Optional[str] = Field(default=None, max_length=120)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)


class AccountPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=64)
    institution_name: Optional[str] = Field(default=None, max_length=120)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: Optional[AccountStatus] = None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: AccountType
    initial_balance_cents: int
    current_balance_cents: int
    account_number: Optional[str]
    institution_name: Optional[str]
    color: str
    icon: str
    is_default: bool
    status: AccountStatus


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)


class CategoryPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: Optional[CategoryStatus] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType
    description: Optional[str]
    color: str
    icon: str
    is_default: bool
    status: CategoryStatus


class TransactionIn(BaseModel):
    account_id: int
    to_account_id: Optional[int] = None
    category_id: Optional[int] = None
    type: TransactionType
    amount_cents: int
    description: Optional[str] = Field(default=None, max_length=255)
    transaction_date: Optional[datetime] = None
    reference_number: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: TransactionStatus = TransactionStatus.completed
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    next_recurring_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "TransactionIn":
        if self.amount_cents < 0 and self.type != TransactionType.adjustment:
            raise ValueError("Amount must be positive")
        if self.type == TransactionType.transfer:
            if self.to_account_id is None:
                raise ValueError("Transfers require a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Cannot transfer to the same account")
        elif self.to_account_id is not None:
            raise ValueError("Only transfers can have a destination account")
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("Recurring transactions require a frequency")
        return self


class TransactionPatch(BaseModel):
    """Partial update; fields left unset or null keep their stored value."""

    description: Optional[str] = Field(default=None, max_length=255)
    amount_cents: Optional[int] = None
    transaction_date: Optional[datetime] = None
    reference_number: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[TransactionStatus] = None
    category_id: Optional[int] = None
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    next_recurring_date: Optional[date] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    to_account_id: Optional[int]
    category_id: Optional[int]
    type: TransactionType
    amount_cents: int
    description: Optional[str]
    transaction_date: datetime
    reference_number: Optional[str]
    notes: Optional[str]
    status: TransactionStatus
    is_recurring: bool
    recurring_frequency: Optional[RecurringFrequency]
    next_recurring_date: Optional[date]


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None
    amount_cents: int = Field(..., ge=0)
    period: BudgetPeriod
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=7)
    alert_threshold: int = Field(default=80, ge=0, le=100)


class BudgetPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    end_date: Optional[date] = None
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    is_active: Optional[bool] = None
    status: Optional[BudgetStatus] = None


class BudgetOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    category_id: Optional[int]
    amount_cents: int
    spent_cents: int
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date]
    color: str
    alert_threshold: int
    is_active: bool
    status: BudgetStatus
    remaining_cents: int
    percentage_used: float
    is_over_budget: bool
    is_near_limit: bool


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    target_amount_cents: int = Field(..., ge=0)
    current_amount_cents: int = Field(default=0, ge=0)
    type: GoalType
    target_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_primary: bool = False


class GoalPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    target_amount_cents: Optional[int] = Field(default=None, ge=0)
    current_amount_cents: Optional[int] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: Optional[GoalStatus] = None


class GoalOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    target_amount_cents: int
    current_amount_cents: int
    type: GoalType
    target_date: Optional[date]
    color: str
    icon: str
    is_primary: bool
    status: GoalStatus
    remaining_cents: int
    percentage_complete: float
    is_completed: bool
    is_overdue: bool
    is_near_completion: bool
    days_remaining: int


class AmountIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
