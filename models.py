from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    credit_card = "credit_card"
    cash = "cash"
    investment = "investment"
    loan = "loan"
    other = "other"


class AccountStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    closed = "closed"


class CategoryType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class CategoryStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"
    adjustment = "adjustment"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


class RecurringFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class BudgetPeriod(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class BudgetStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    completed = "completed"
    cancelled = "cancelled"


class GoalType(str, Enum):
    savings = "savings"
    debt_payoff = "debt_payoff"
    emergency_fund = "emergency_fund"
    investment = "investment"
    purchase = "purchase"
    travel = "travel"
    education = "education"
    other = "other"


class GoalStatus(str, Enum):
    active = "active"
    completed = "completed"
    paused = "paused"
    cancelled = "cancelled"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    initial_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    # Mutated only through balance.apply_effect once the account exists.
    current_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    account_number: Mapped[Optional[str]] = mapped_column(String(64))
    institution_name: Mapped[Optional[str]] = mapped_column(String(120))
    color: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)
    icon: Mapped[str] = mapped_column(
        String(50), default="account_balance", nullable=False
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[AccountStatus] = mapped_column(
        SAEnum(AccountStatus), default=AccountStatus.active, nullable=False
    )

    __table_args__ = (Index("ix_accounts_user_default", "user_id", "is_default"),)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType), nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#6B7280", nullable=False)
    icon: Mapped[str] = mapped_column(String(50), default="category", nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[CategoryStatus] = mapped_column(
        SAEnum(CategoryStatus), default=CategoryStatus.active, nullable=False
    )

    __table_args__ = (Index("ix_categories_user_type", "user_id", "type"),)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    transaction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(64))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_frequency: Mapped[Optional[RecurringFrequency]] = mapped_column(
        SAEnum(RecurringFrequency)
    )
    next_recurring_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), default=TransactionStatus.completed, nullable=False
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    to_account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    to_account: Mapped[Optional["Account"]] = relationship(
        "Account", foreign_keys=[to_account_id]
    )
    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
        Index("ix_transactions_account", "account_id"),
        Index("ix_transactions_to_account", "to_account_id"),
        Index("ix_transactions_user_category", "user_id", "category_id"),
        CheckConstraint(
            "amount_cents >= 0 OR type = 'adjustment'",
            name="ck_transactions_amount_positive",
        ),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    spent_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(SAEnum(BudgetPeriod), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    color: Mapped[str] = mapped_column(String(7), default="#10B981", nullable=False)
    alert_threshold: Mapped[int] = mapped_column(Integer, default=80, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[BudgetStatus] = mapped_column(
        SAEnum(BudgetStatus), default=BudgetStatus.active, nullable=False
    )

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budgets_amount_positive"),
        CheckConstraint(
            "alert_threshold BETWEEN 0 AND 100", name="ck_budgets_alert_threshold"
        ),
        Index("ix_budgets_user_active", "user_id", "is_active"),
    )


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    type: Mapped[GoalType] = mapped_column(SAEnum(GoalType), nullable=False)
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    color: Mapped[str] = mapped_column(String(7), default="#8B5CF6", nullable=False)
    icon: Mapped[str] = mapped_column(String(50), default="flag", nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[GoalStatus] = mapped_column(
        SAEnum(GoalStatus), default=GoalStatus.active, nullable=False
    )

    __table_args__ = (
        CheckConstraint("target_amount_cents >= 0", name="ck_goals_target_positive"),
        Index("ix_goals_user_status", "user_id", "status"),
    )
