from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from models import Budget, Goal, GoalStatus
from recurrence import local_today

NEAR_COMPLETION_PERCENT = Decimal(80)
NO_TARGET_DATE = -1


@dataclass(frozen=True)
class BudgetProgress:
    remaining_cents: int
    percentage_used: Decimal
    is_over_budget: bool
    is_near_limit: bool


@dataclass(frozen=True)
class GoalProgress:
    remaining_cents: int
    percentage_complete: Decimal
    is_completed: bool
    is_overdue: bool
    is_near_completion: bool
    days_remaining: int


def percentage(part_cents: int, whole_cents: int) -> Decimal:
    """Share of ``whole`` covered by ``part``, rounded to 4 places before scaling."""
    if whole_cents == 0:
        return Decimal(0)
    ratio = (Decimal(part_cents) / Decimal(whole_cents)).quantize(
        Decimal("0.0001"), rounding=ROUND_HALF_UP
    )
    return ratio * 100


def compute_budget_derived(budget: Budget) -> BudgetProgress:
    used = percentage(budget.spent_cents, budget.amount_cents)
    return BudgetProgress(
        remaining_cents=budget.amount_cents - budget.spent_cents,
        percentage_used=used,
        is_over_budget=budget.spent_cents > budget.amount_cents,
        is_near_limit=used >= Decimal(budget.alert_threshold),
    )


def compute_goal_derived(goal: Goal, today: Optional[date] = None) -> GoalProgress:
    today = today or local_today()
    complete = percentage(goal.current_amount_cents, goal.target_amount_cents)
    is_completed = goal.current_amount_cents >= goal.target_amount_cents

    if goal.target_date is None:
        days_remaining = NO_TARGET_DATE
        is_overdue = False
    else:
        days_remaining = max(0, (goal.target_date - today).days)
        is_overdue = (
            goal.target_date < today
            and goal.status == GoalStatus.active
            and not is_completed
        )

    return GoalProgress(
        remaining_cents=goal.target_amount_cents - goal.current_amount_cents,
        percentage_complete=complete,
        is_completed=is_completed,
        is_overdue=is_overdue,
        is_near_completion=complete >= NEAR_COMPLETION_PERCENT,
        days_remaining=days_remaining,
    )
