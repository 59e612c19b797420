import logging
from datetime import date
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session

from auth import InvalidToken, resolve_owner
from config import get_settings
from database import session_scope
from models import Budget, CategoryType, Goal, TransactionType
from progress import compute_budget_derived, compute_goal_derived
from schemas import (
    AccountIn,
    AccountOut,
    AccountPatch,
    AmountIn,
    BudgetIn,
    BudgetOut,
    BudgetPatch,
    CategoryIn,
    CategoryOut,
    CategoryPatch,
    GoalIn,
    GoalOut,
    GoalPatch,
    TransactionIn,
    TransactionOut,
    TransactionPatch,
)
from services import (
    AccessDenied,
    AccountService,
    BudgetService,
    CategoryService,
    DashboardService,
    DuplicateName,
    GoalService,
    InsufficientFunds,
    InvariantViolation,
    NotFound,
    TransactionService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Ledger")

GoalFilter = Literal["active", "completed", "overdue", "due_soon", "near_completion"]


def get_db():
    with session_scope() as db:
        yield db


def current_user_id(request: Request) -> int:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return resolve_owner(token.strip())
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def http_error(db: Session, exc: ValueError) -> HTTPException:
    db.rollback()
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, AccessDenied):
        status = 403
    elif isinstance(exc, (DuplicateName, InvariantViolation)):
        status = 409
    else:
        status = 400
    logger.info(f"request_refused: status={status} error={type(exc).__name__}")
    return HTTPException(status_code=status, detail=str(exc))


def budget_out(budget: Budget) -> BudgetOut:
    derived = compute_budget_derived(budget)
    return BudgetOut(
        id=budget.id,
        name=budget.name,
        description=budget.description,
        category_id=budget.category_id,
        amount_cents=budget.amount_cents,
        spent_cents=budget.spent_cents,
        period=budget.period,
        start_date=budget.start_date,
        end_date=budget.end_date,
        color=budget.color,
        alert_threshold=budget.alert_threshold,
        is_active=budget.is_active,
        status=budget.status,
        remaining_cents=derived.remaining_cents,
        percentage_used=float(derived.percentage_used),
        is_over_budget=derived.is_over_budget,
        is_near_limit=derived.is_near_limit,
    )


def goal_out(goal: Goal) -> GoalOut:
    derived = compute_goal_derived(goal)
    return GoalOut(
        id=goal.id,
        name=goal.name,
        description=goal.description,
        target_amount_cents=goal.target_amount_cents,
        current_amount_cents=goal.current_amount_cents,
        type=goal.type,
        target_date=goal.target_date,
        color=goal.color,
        icon=goal.icon,
        is_primary=goal.is_primary,
        status=goal.status,
        remaining_cents=derived.remaining_cents,
        percentage_complete=float(derived.percentage_complete),
        is_completed=derived.is_completed,
        is_overdue=derived.is_overdue,
        is_near_completion=derived.is_near_completion,
        days_remaining=derived.days_remaining,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# Accounts


@app.get("/accounts", response_model=list[AccountOut])
def list_accounts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AccountService(db, user_id).list_all()


@app.post("/accounts", response_model=AccountOut, status_code=201)
def create_account(
    data: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AccountService(db, user_id).create(data)


@app.get("/accounts/active", response_model=list[AccountOut])
def list_active_accounts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AccountService(db, user_id).list_active()


@app.get("/accounts/default", response_model=AccountOut)
def get_default_account(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        return AccountService(db, user_id).get_default()
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.get("/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return AccountService(db, user_id).get(account_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.patch("/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    patch: AccountPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return AccountService(db, user_id).update(account_id, patch)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.delete("/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        AccountService(db, user_id).delete(account_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return Response(status_code=204)


@app.post("/accounts/{account_id}/default", response_model=AccountOut)
def set_default_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return AccountService(db, user_id).set_default(account_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.get("/accounts/{account_id}/transactions", response_model=list[TransactionOut])
def list_account_transactions(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).list_for_account(account_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc


# Categories


@app.get("/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[CategoryType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    if type is not None:
        return service.list_by_type(type)
    return service.list_all()


@app.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.post("/categories/defaults", response_model=list[CategoryOut])
def seed_default_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return CategoryService(db, user_id).seed_defaults()


@app.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    patch: CategoryPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).update(category_id, patch)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return Response(status_code=204)


# Transactions


@app.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).list_filtered(type, category_id)


@app.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.get("/transactions/recurring/due", response_model=list[TransactionOut])
def list_due_recurring(
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).due_recurring(as_of)


@app.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    patch: TransactionPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, patch)
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return Response(status_code=204)


# Budgets


@app.get("/budgets", response_model=list[BudgetOut])
def list_budgets(
    active: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    budgets = service.list_active() if active else service.list_all()
    return [budget_out(b) for b in budgets]


@app.post("/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return budget_out(BudgetService(db, user_id).create(data))
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.get("/budgets/alerts")
def budget_alerts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    service = BudgetService(db, user_id)
    return {
        "over_budget": [budget_out(b) for b in service.over_budget()],
        "near_limit": [budget_out(b) for b in service.near_limit()],
    }


@app.get("/budgets/{budget_id}", response_model=BudgetOut)
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return budget_out(BudgetService(db, user_id).get(budget_id))
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.patch("/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    patch: BudgetPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return budget_out(BudgetService(db, user_id).update(budget_id, patch))
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return Response(status_code=204)


@app.post("/budgets/{budget_id}/spent", response_model=BudgetOut)
def add_budget_spent(
    budget_id: int,
    data: AmountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).add_spent(budget_id, data.amount_cents)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return budget_out(budget)


@app.post("/budgets/{budget_id}/reset", response_model=BudgetOut)
def reset_budget_spent(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return budget_out(BudgetService(db, user_id).reset_spent(budget_id))
    except ValueError as exc:
        raise http_error(db, exc) from exc


# Goals


@app.get("/goals", response_model=list[GoalOut])
def list_goals(
    status: Optional[GoalFilter] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = GoalService(db, user_id)
    if status == "active":
        goals = service.list_active()
    elif status == "completed":
        goals = service.list_completed()
    elif status == "overdue":
        goals = service.overdue()
    elif status == "due_soon":
        goals = service.due_soon()
    elif status == "near_completion":
        goals = service.near_completion()
    else:
        goals = service.list_all()
    return [goal_out(g) for g in goals]


@app.post("/goals", response_model=GoalOut, status_code=201)
def create_goal(
    data: GoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return goal_out(GoalService(db, user_id).create(data))


@app.get("/goals/{goal_id}", response_model=GoalOut)
def get_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return goal_out(GoalService(db, user_id).get(goal_id))
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.patch("/goals/{goal_id}", response_model=GoalOut)
def update_goal(
    goal_id: int,
    patch: GoalPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return goal_out(GoalService(db, user_id).update(goal_id, patch))
    except ValueError as exc:
        raise http_error(db, exc) from exc


@app.delete("/goals/{goal_id}", status_code=204)
def delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        GoalService(db, user_id).delete(goal_id)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return Response(status_code=204)


@app.post("/goals/{goal_id}/progress", response_model=GoalOut)
def add_goal_progress(
    goal_id: int,
    data: AmountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = GoalService(db, user_id).add_progress(goal_id, data.amount_cents)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return goal_out(goal)


@app.put("/goals/{goal_id}/progress", response_model=GoalOut)
def set_goal_progress(
    goal_id: int,
    data: AmountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = GoalService(db, user_id).set_progress(goal_id, data.amount_cents)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    return goal_out(goal)


# Dashboard


@app.get("/dashboard/stats")
def dashboard_stats(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    stats = DashboardService(db, user_id).stats()
    stats["budget_alerts"] = [budget_out(b) for b in stats["budget_alerts"]]
    stats["goal_alerts"] = [goal_out(g) for g in stats["goal_alerts"]]
    stats["recent_transactions"] = [
        TransactionOut.model_validate(t) for t in stats["recent_transactions"]
    ]
    return stats


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
