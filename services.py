from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from balance import apply_effect, has_sufficient_funds, reversal_effect, signed_effect
from models import (
    Account,
    AccountStatus,
    Budget,
    BudgetStatus,
    Category,
    CategoryStatus,
    CategoryType,
    Goal,
    GoalStatus,
    Transaction,
    TransactionType,
)
from progress import compute_budget_derived, compute_goal_derived
from recurrence import local_today, next_recurring_date
from schemas import (
    AccountIn,
    AccountPatch,
    BudgetIn,
    BudgetPatch,
    CategoryIn,
    CategoryPatch,
    GoalIn,
    GoalPatch,
    TransactionIn,
    TransactionPatch,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotFound(ValueError):
    pass


class AccessDenied(ValueError):
    pass


class InsufficientFunds(ValueError):
    pass


class DuplicateName(ValueError):
    pass


class InvariantViolation(ValueError):
    pass


def ensure_owned(entity: Optional[T], user_id: int, label: str) -> T:
    """Return ``entity`` if it exists and belongs to ``user_id``."""
    if entity is None:
        raise NotFound(f"{label} not found")
    if entity.user_id != user_id:
        raise AccessDenied(f"Access denied: {label} does not belong to user")
    return entity


def merge_patch(entity: object, patch: BaseModel) -> dict[str, object]:
    """
    Copy every field the caller set to a non-null value onto ``entity``.
    Returns the applied changes.
    """
    changes: dict[str, object] = {}
    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(entity, field, value)
        changes[field] = value
    return changes


DEFAULT_CATEGORIES: list[tuple[str, CategoryType, str, str]] = [
    ("Salary", CategoryType.income, "#10B981", "payments"),
    ("Other Income", CategoryType.income, "#34D399", "savings"),
    ("Groceries", CategoryType.expense, "#F59E0B", "shopping_cart"),
    ("Housing", CategoryType.expense, "#EF4444", "home"),
    ("Transportation", CategoryType.expense, "#3B82F6", "directions_car"),
    ("Utilities", CategoryType.expense, "#8B5CF6", "bolt"),
    ("Entertainment", CategoryType.expense, "#EC4899", "movie"),
    ("Transfer", CategoryType.transfer, "#6B7280", "swap_horiz"),
]


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, account_id: int) -> Account:
        return ensure_owned(
            self.session.get(Account, account_id), self.user_id, "Account"
        )

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.is_default.desc(), Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def list_active(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(
                Account.user_id == self.user_id,
                Account.status == AccountStatus.active,
            )
            .order_by(Account.is_default.desc(), Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def count(self) -> int:
        stmt = select(func.count(Account.id)).where(Account.user_id == self.user_id)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def create(self, data: AccountIn) -> Account:
        is_first = self.count() == 0
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            initial_balance_cents=data.initial_balance_cents,
            current_balance_cents=data.initial_balance_cents,
            account_number=data.account_number,
            institution_name=data.institution_name,
            is_default=is_first,
        )
        if data.color:
            account.color = data.color
        if data.icon:
            account.icon = data.icon
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, patch: AccountPatch) -> Account:
        account = self.get(account_id)
        merge_patch(account, patch)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    or_(
                        Transaction.account_id == account.id,
                        Transaction.to_account_id == account.id,
                    )
                )
            ).scalar_one()
            or 0
        )
        if in_use:
            logger.info(
                f"account_delete_refused: id={account.id} transactions={in_use}"
            )
            raise InvariantViolation("Cannot delete account with existing transactions")
        self.session.delete(account)
        self.session.commit()

    def set_default(self, account_id: int) -> Account:
        account = self.get(account_id)
        self.session.execute(
            update(Account)
            .where(
                Account.user_id == self.user_id,
                Account.is_default.is_(True),
                Account.id != account.id,
            )
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        account.is_default = True
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"default_account_set: user_id={self.user_id} id={account.id}")
        return account

    def get_default(self) -> Account:
        account = self.session.scalar(
            select(Account).where(
                Account.user_id == self.user_id, Account.is_default.is_(True)
            )
        )
        if not account:
            raise NotFound("No default account found for user")
        return account

    def total_balance(self) -> int:
        stmt = select(func.coalesce(func.sum(Account.current_balance_cents), 0)).where(
            Account.user_id == self.user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, category_id: int) -> Category:
        return ensure_owned(
            self.session.get(Category, category_id), self.user_id, "Category"
        )

    def list_all(self, include_inactive: bool = True) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if not include_inactive:
            stmt = stmt.where(Category.status == CategoryStatus.active)
        return self.session.scalars(stmt).all()

    def list_by_type(self, category_type: CategoryType) -> list[Category]:
        stmt = (
            select(Category)
            .where(
                Category.user_id == self.user_id,
                Category.type == category_type,
                Category.status == CategoryStatus.active,
            )
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt.limit(1)) is not None

    def create(self, data: CategoryIn, *, is_default: bool = False) -> Category:
        if self._name_taken(data.name):
            raise DuplicateName(f"Category with name '{data.name}' already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            description=data.description,
            is_default=is_default,
        )
        if data.color:
            category.color = data.color
        if data.icon:
            category.icon = data.icon
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, patch: CategoryPatch) -> Category:
        category = self.get(category_id)
        if patch.name is not None:
            if self._name_taken(patch.name, exclude_id=category.id):
                raise DuplicateName(
                    f"Category with name '{patch.name}' already exists"
                )
            patch = patch.model_copy(update={"name": patch.name.strip()})
        merge_patch(category, patch)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            logger.info(f"category_delete_refused: id={category.id} reason=default")
            raise InvariantViolation("Cannot delete default category")

        txn_count = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category.id
                )
            ).scalar_one()
            or 0
        )
        if txn_count:
            logger.info(
                f"category_delete_refused: id={category.id} transactions={txn_count}"
            )
            raise InvariantViolation(
                "Cannot delete category with existing transactions"
            )

        budget_count = int(
            self.session.execute(
                select(func.count(Budget.id)).where(Budget.category_id == category.id)
            ).scalar_one()
            or 0
        )
        if budget_count:
            raise InvariantViolation("Cannot delete category with existing budgets")

        self.session.delete(category)
        self.session.commit()

    def seed_defaults(self) -> list[Category]:
        created: list[Category] = []
        for name, category_type, color, icon in DEFAULT_CATEGORIES:
            if self._name_taken(name):
                continue
            created.append(
                self.create(
                    CategoryIn(name=name, type=category_type, color=color, icon=icon),
                    is_default=True,
                )
            )
        return created


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_account(self, account_id: int, label: str) -> Account:
        return ensure_owned(self.session.get(Account, account_id), self.user_id, label)

    def _owned_category(self, category_id: int) -> Category:
        return ensure_owned(
            self.session.get(Category, category_id), self.user_id, "Category"
        )

    def get(self, transaction_id: int) -> Transaction:
        # user_id always mirrors the source account's owner.
        return ensure_owned(
            self.session.get(Transaction, transaction_id), self.user_id, "Transaction"
        )

    def create(self, data: TransactionIn) -> Transaction:
        account = self._owned_account(data.account_id, "Account")

        category: Optional[Category] = None
        if data.category_id is not None:
            category = self._owned_category(data.category_id)

        to_account: Optional[Account] = None
        if data.to_account_id is not None:
            to_account = self._owned_account(data.to_account_id, "Destination account")

        if data.type in (TransactionType.expense, TransactionType.transfer):
            if not has_sufficient_funds(account, data.amount_cents):
                logger.info(
                    f"transaction_rejected: account_id={account.id} "
                    f"balance={account.current_balance_cents} amount={data.amount_cents}"
                )
                raise InsufficientFunds("Insufficient funds in account")

        transaction_date = data.transaction_date or datetime.utcnow()
        next_date = data.next_recurring_date
        if data.is_recurring and next_date is None:
            next_date = next_recurring_date(
                data.recurring_frequency, transaction_date.date()
            )

        txn = Transaction(
            user_id=account.user_id,
            amount_cents=data.amount_cents,
            description=data.description,
            type=data.type,
            transaction_date=transaction_date,
            reference_number=data.reference_number,
            notes=data.notes,
            status=data.status,
            is_recurring=data.is_recurring,
            recurring_frequency=data.recurring_frequency,
            next_recurring_date=next_date,
            account_id=account.id,
            to_account_id=to_account.id if to_account else None,
            category_id=category.id if category else None,
        )
        self.session.add(txn)
        self.session.flush()

        effect = signed_effect(txn.type, txn.amount_cents)
        apply_effect(effect, account, to_account)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} type={txn.type.value} "
            f"account_id={account.id} to_account_id={txn.to_account_id} "
            f"delta={effect.source}"
        )
        return txn

    def update(self, transaction_id: int, patch: TransactionPatch) -> Transaction:
        txn = self.get(transaction_id)
        old_amount = txn.amount_cents
        was_recurring = txn.is_recurring
        old_schedule = (txn.recurring_frequency, txn.transaction_date)

        if (
            patch.amount_cents is not None
            and patch.amount_cents < 0
            and txn.type != TransactionType.adjustment
        ):
            raise ValueError("Amount must be positive")
        if patch.category_id is not None:
            self._owned_category(patch.category_id)

        changes = merge_patch(txn, patch)
        if txn.is_recurring:
            if txn.recurring_frequency is None:
                raise ValueError("Recurring transactions require a frequency")
            rescheduled = (
                not was_recurring
                or txn.next_recurring_date is None
                or (txn.recurring_frequency, txn.transaction_date) != old_schedule
            )
            if rescheduled and "next_recurring_date" not in changes:
                txn.next_recurring_date = next_recurring_date(
                    txn.recurring_frequency, txn.transaction_date.date()
                )
        self.session.flush()

        if txn.amount_cents != old_amount:
            apply_effect(
                reversal_effect(txn.type, old_amount), txn.account, txn.to_account
            )
            apply_effect(
                signed_effect(txn.type, txn.amount_cents), txn.account, txn.to_account
            )
            logger.info(
                f"transaction_amount_changed: id={txn.id} "
                f"old={old_amount} new={txn.amount_cents}"
            )

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        effect = reversal_effect(txn.type, txn.amount_cents)
        apply_effect(effect, txn.account, txn.to_account)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} delta={effect.source}")

    def _base_query(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )

    def list_all(self) -> list[Transaction]:
        return self.session.scalars(self._base_query()).all()

    def recent(self, limit: int = 5) -> list[Transaction]:
        return self.session.scalars(self._base_query().limit(limit)).all()

    def list_for_account(self, account_id: int) -> list[Transaction]:
        account = self._owned_account(account_id, "Account")
        stmt = self._base_query().where(
            or_(
                Transaction.account_id == account.id,
                Transaction.to_account_id == account.id,
            )
        )
        return self.session.scalars(stmt).all()

    def list_filtered(
        self,
        txn_type: Optional[TransactionType] = None,
        category_id: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = self._base_query()
        if txn_type is not None:
            stmt = stmt.where(Transaction.type == txn_type)
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        return self.session.scalars(stmt).all()

    def list_by_type(self, txn_type: TransactionType) -> list[Transaction]:
        return self.list_filtered(txn_type=txn_type)

    def list_by_category(self, category_id: int) -> list[Transaction]:
        return self.list_filtered(category_id=category_id)

    def list_between(self, start: datetime, end: datetime) -> list[Transaction]:
        stmt = self._base_query().where(
            Transaction.transaction_date.between(start, end)
        )
        return self.session.scalars(stmt).all()

    def due_recurring(self, as_of: Optional[date] = None) -> list[Transaction]:
        """Recurring transactions whose next occurrence is on or before ``as_of``."""
        as_of = as_of or local_today()
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_recurring.is_(True),
                Transaction.next_recurring_date.is_not(None),
                Transaction.next_recurring_date <= as_of,
            )
            .order_by(Transaction.next_recurring_date, Transaction.id)
        )
        return self.session.scalars(stmt).all()

    def count(self) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def total_by_type(
        self,
        txn_type: TransactionType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        stmt = select(
            func.coalesce(func.sum(func.abs(Transaction.amount_cents)), 0)
        ).where(Transaction.user_id == self.user_id, Transaction.type == txn_type)
        if start is not None and end is not None:
            stmt = stmt.where(Transaction.transaction_date.between(start, end))
        return int(self.session.execute(stmt).scalar_one() or 0)


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, budget_id: int) -> Budget:
        return ensure_owned(self.session.get(Budget, budget_id), self.user_id, "Budget")

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return self.session.scalars(stmt).all()

    def list_active(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.status == BudgetStatus.active,
            )
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        return self.session.scalars(stmt).all()

    def create(self, data: BudgetIn) -> Budget:
        if data.category_id is not None:
            ensure_owned(
                self.session.get(Category, data.category_id), self.user_id, "Category"
            )
        budget = Budget(
            user_id=self.user_id,
            name=data.name.strip(),
            description=data.description,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            spent_cents=0,
            period=data.period,
            start_date=data.start_date or local_today(),
            end_date=data.end_date,
            alert_threshold=data.alert_threshold,
        )
        if data.color:
            budget.color = data.color
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, patch: BudgetPatch) -> Budget:
        budget = self.get(budget_id)
        merge_patch(budget, patch)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def add_spent(self, budget_id: int, amount_cents: int) -> Budget:
        budget = self.get(budget_id)
        budget.spent_cents += amount_cents
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def reset_spent(self, budget_id: int) -> Budget:
        budget = self.get(budget_id)
        budget.spent_cents = 0
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def over_budget(self) -> list[Budget]:
        return [b for b in self.list_active() if compute_budget_derived(b).is_over_budget]

    def near_limit(self) -> list[Budget]:
        return [b for b in self.list_active() if compute_budget_derived(b).is_near_limit]

    def totals(self) -> dict[str, int]:
        row = self.session.execute(
            select(
                func.coalesce(func.sum(Budget.amount_cents), 0),
                func.coalesce(func.sum(Budget.spent_cents), 0),
            ).where(Budget.user_id == self.user_id)
        ).one()
        return {"amount_cents": int(row[0] or 0), "spent_cents": int(row[1] or 0)}


class GoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def _mark_completed(goal: Goal) -> None:
        # Completion is sticky; falling below target later does not reopen.
        if goal.current_amount_cents >= goal.target_amount_cents:
            goal.status = GoalStatus.completed

    def get(self, goal_id: int) -> Goal:
        return ensure_owned(self.session.get(Goal, goal_id), self.user_id, "Goal")

    def _list(self, *statuses: GoalStatus) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id)
            .order_by(Goal.is_primary.desc(), Goal.target_date, Goal.id)
        )
        if statuses:
            stmt = stmt.where(Goal.status.in_(statuses))
        return self.session.scalars(stmt).all()

    def list_all(self) -> list[Goal]:
        return self._list()

    def list_active(self) -> list[Goal]:
        return self._list(GoalStatus.active)

    def list_completed(self) -> list[Goal]:
        return self._list(GoalStatus.completed)

    def create(self, data: GoalIn) -> Goal:
        goal = Goal(
            user_id=self.user_id,
            name=data.name.strip(),
            description=data.description,
            target_amount_cents=data.target_amount_cents,
            current_amount_cents=data.current_amount_cents,
            type=data.type,
            target_date=data.target_date,
            is_primary=data.is_primary,
            status=GoalStatus.active,
        )
        if data.color:
            goal.color = data.color
        if data.icon:
            goal.icon = data.icon
        self._mark_completed(goal)
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, patch: GoalPatch) -> Goal:
        goal = self.get(goal_id)
        merge_patch(goal, patch)
        self._mark_completed(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def add_progress(self, goal_id: int, amount_cents: int) -> Goal:
        goal = self.get(goal_id)
        goal.current_amount_cents += amount_cents
        self._mark_completed(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def set_progress(self, goal_id: int, amount_cents: int) -> Goal:
        goal = self.get(goal_id)
        goal.current_amount_cents = amount_cents
        self._mark_completed(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def due_soon(self, today: Optional[date] = None, days: int = 30) -> list[Goal]:
        today = today or local_today()
        horizon = today + timedelta(days=days)
        return [
            g
            for g in self.list_active()
            if g.target_date is not None and today <= g.target_date <= horizon
        ]

    def near_completion(self) -> list[Goal]:
        return [
            g
            for g in self.list_active()
            if compute_goal_derived(g).is_near_completion
        ]

    def overdue(self, today: Optional[date] = None) -> list[Goal]:
        return [g for g in self.list_active() if compute_goal_derived(g, today).is_overdue]

    def totals(self) -> dict[str, int]:
        row = self.session.execute(
            select(
                func.coalesce(func.sum(Goal.target_amount_cents), 0),
                func.coalesce(func.sum(Goal.current_amount_cents), 0),
            ).where(Goal.user_id == self.user_id)
        ).one()
        return {
            "target_amount_cents": int(row[0] or 0),
            "current_amount_cents": int(row[1] or 0),
        }


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def stats(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        month_start = datetime.combine(today.replace(day=1), time.min)
        month_end = datetime.combine(today, time.max)

        accounts = AccountService(self.session, self.user_id)
        txns = TransactionService(self.session, self.user_id)
        budgets = BudgetService(self.session, self.user_id)
        goals = GoalService(self.session, self.user_id)

        total_balance = accounts.total_balance()
        return {
            "total_balance_cents": total_balance,
            "net_worth_cents": total_balance,
            "monthly_income_cents": txns.total_by_type(
                TransactionType.income, month_start, month_end
            ),
            "monthly_expenses_cents": txns.total_by_type(
                TransactionType.expense, month_start, month_end
            ),
            "active_accounts": len(accounts.list_active()),
            "active_budgets": len(budgets.list_active()),
            "active_goals": len(goals.list_active()),
            "budget_alerts": budgets.over_budget(),
            "goal_alerts": goals.near_completion(),
            "recent_transactions": txns.recent(limit=5),
        }
