from datetime import date, datetime

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from balance import signed_effect
from database import Base
from models import AccountType, CategoryType, RecurringFrequency, TransactionType
from schemas import AccountIn, CategoryIn, TransactionIn, TransactionPatch
from services import (
    AccessDenied,
    AccountService,
    CategoryService,
    InsufficientFunds,
    NotFound,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _account(session, balance: int, name: str = "Checking", user_id: int = 1):
    return AccountService(session, user_id).create(
        AccountIn(name=name, type=AccountType.checking, initial_balance_cents=balance)
    )


def test_expense_create_update_delete_restores_balance() -> None:
    session = make_session()
    account = _account(session, 10_000)
    txns = TransactionService(session, 1)

    txn = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.expense, amount_cents=3_000
        )
    )
    assert account.current_balance_cents == 7_000

    txns.update(txn.id, TransactionPatch(amount_cents=5_000))
    assert account.current_balance_cents == 5_000

    txns.delete(txn.id)
    assert account.current_balance_cents == 10_000
    assert txns.count() == 0


def test_transfer_and_delete() -> None:
    session = make_session()
    a = _account(session, 10_000, "A")
    b = _account(session, 5_000, "B")
    txns = TransactionService(session, 1)

    txn = txns.create(
        TransactionIn(
            account_id=a.id,
            to_account_id=b.id,
            type=TransactionType.transfer,
            amount_cents=2_000,
        )
    )
    assert (a.current_balance_cents, b.current_balance_cents) == (8_000, 7_000)
    assert [t.id for t in txns.list_for_account(b.id)] == [txn.id]

    txns.delete(txn.id)
    assert (a.current_balance_cents, b.current_balance_cents) == (10_000, 5_000)


def test_transfer_amount_update_moves_both_sides() -> None:
    session = make_session()
    a = _account(session, 10_000, "A")
    b = _account(session, 0, "B")
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=a.id,
            to_account_id=b.id,
            type=TransactionType.transfer,
            amount_cents=1_000,
        )
    )

    txns.update(txn.id, TransactionPatch(amount_cents=4_000))
    assert (a.current_balance_cents, b.current_balance_cents) == (6_000, 4_000)


def test_insufficient_funds_leaves_balance_untouched() -> None:
    session = make_session()
    account = _account(session, 10_000)
    txns = TransactionService(session, 1)

    with pytest.raises(InsufficientFunds):
        txns.create(
            TransactionIn(
                account_id=account.id,
                type=TransactionType.expense,
                amount_cents=15_000,
            )
        )
    session.rollback()
    assert account.current_balance_cents == 10_000
    assert txns.count() == 0


def test_income_is_never_funds_checked() -> None:
    session = make_session()
    account = _account(session, 0)
    TransactionService(session, 1).create(
        TransactionIn(
            account_id=account.id, type=TransactionType.income, amount_cents=2_500
        )
    )
    assert account.current_balance_cents == 2_500


def test_negative_adjustment_applies_as_given() -> None:
    session = make_session()
    account = _account(session, 1_000)
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.adjustment, amount_cents=-300
        )
    )
    assert account.current_balance_cents == 700

    txns.delete(txn.id)
    assert account.current_balance_cents == 1_000


def test_update_without_amount_change_keeps_balance() -> None:
    session = make_session()
    account = _account(session, 10_000)
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.expense, amount_cents=1_000
        )
    )

    updated = txns.update(
        txn.id, TransactionPatch(description="Lunch", amount_cents=None)
    )
    assert updated.description == "Lunch"
    assert updated.amount_cents == 1_000
    assert account.current_balance_cents == 9_000


def test_foreign_account_is_denied_and_missing_is_not_found() -> None:
    session = make_session()
    theirs = _account(session, 10_000, user_id=2)
    txns = TransactionService(session, 1)

    with pytest.raises(AccessDenied):
        txns.create(
            TransactionIn(
                account_id=theirs.id, type=TransactionType.income, amount_cents=100
            )
        )
    with pytest.raises(NotFound):
        txns.create(
            TransactionIn(account_id=999, type=TransactionType.income, amount_cents=1)
        )
    assert theirs.current_balance_cents == 10_000


def test_other_users_transaction_cannot_be_touched() -> None:
    session = make_session()
    account = _account(session, 10_000, user_id=2)
    txn = TransactionService(session, 2).create(
        TransactionIn(
            account_id=account.id, type=TransactionType.expense, amount_cents=1_000
        )
    )

    intruder = TransactionService(session, 1)
    with pytest.raises(AccessDenied):
        intruder.update(txn.id, TransactionPatch(amount_cents=1))
    with pytest.raises(AccessDenied):
        intruder.delete(txn.id)
    assert account.current_balance_cents == 9_000


def test_any_owned_category_is_accepted() -> None:
    session = make_session()
    account = _account(session, 10_000)
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", type=CategoryType.expense)
    )
    theirs = CategoryService(session, 2).create(
        CategoryIn(name="Salary", type=CategoryType.income)
    )
    txns = TransactionService(session, 1)

    refund = txns.create(
        TransactionIn(
            account_id=account.id,
            category_id=food.id,
            type=TransactionType.income,
            amount_cents=100,
        )
    )
    assert refund.category_id == food.id
    assert account.current_balance_cents == 10_100

    with pytest.raises(AccessDenied):
        txns.create(
            TransactionIn(
                account_id=account.id,
                category_id=theirs.id,
                type=TransactionType.income,
                amount_cents=100,
            )
        )
    with pytest.raises(AccessDenied):
        txns.update(refund.id, TransactionPatch(category_id=theirs.id))


def test_income_update_changes_balance_by_difference() -> None:
    session = make_session()
    account = _account(session, 1_000)
    txns = TransactionService(session, 1)
    salary = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.income, amount_cents=5_000
        )
    )
    assert account.current_balance_cents == 6_000

    txns.update(salary.id, TransactionPatch(amount_cents=2_000))
    assert account.current_balance_cents == 3_000


def test_adjustment_update_can_flip_sign() -> None:
    session = make_session()
    account = _account(session, 1_000)
    txns = TransactionService(session, 1)
    fix = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.adjustment, amount_cents=-300
        )
    )
    assert account.current_balance_cents == 700

    txns.update(fix.id, TransactionPatch(amount_cents=200))
    assert account.current_balance_cents == 1_200

    txns.delete(fix.id)
    assert account.current_balance_cents == 1_000


def test_update_may_overdraw_account() -> None:
    session = make_session()
    account = _account(session, 1_000)
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.expense, amount_cents=800
        )
    )

    txns.update(txn.id, TransactionPatch(amount_cents=1_500))
    assert account.current_balance_cents == -500


def test_balances_match_initial_plus_signed_effects() -> None:
    session = make_session()
    a = _account(session, 20_000, "A")
    b = _account(session, 3_000, "B")
    txns = TransactionService(session, 1)

    pay = txns.create(
        TransactionIn(account_id=a.id, type=TransactionType.income, amount_cents=4_000)
    )
    rent = txns.create(
        TransactionIn(account_id=a.id, type=TransactionType.expense, amount_cents=9_000)
    )
    move = txns.create(
        TransactionIn(
            account_id=a.id,
            to_account_id=b.id,
            type=TransactionType.transfer,
            amount_cents=2_500,
        )
    )
    fix = txns.create(
        TransactionIn(
            account_id=b.id, type=TransactionType.adjustment, amount_cents=-700
        )
    )
    coffee = txns.create(
        TransactionIn(account_id=b.id, type=TransactionType.expense, amount_cents=450)
    )

    txns.update(pay.id, TransactionPatch(amount_cents=4_200))
    txns.update(move.id, TransactionPatch(amount_cents=3_000))
    txns.update(fix.id, TransactionPatch(amount_cents=150))
    txns.delete(rent.id)
    txns.update(coffee.id, TransactionPatch(amount_cents=500))

    expected = {a.id: a.initial_balance_cents, b.id: b.initial_balance_cents}
    for txn in txns.list_all():
        effect = signed_effect(txn.type, txn.amount_cents)
        expected[txn.account_id] += effect.source
        if effect.destination is not None:
            expected[txn.to_account_id] += effect.destination

    assert a.current_balance_cents == expected[a.id] == 20_000 + 4_200 - 3_000
    assert b.current_balance_cents == expected[b.id] == 3_000 + 3_000 + 150 - 500


def test_patch_to_recurring_requires_frequency() -> None:
    session = make_session()
    account = _account(session, 10_000)
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=account.id, type=TransactionType.expense, amount_cents=1_000
        )
    )

    with pytest.raises(ValueError, match="frequency"):
        txns.update(txn.id, TransactionPatch(is_recurring=True))
    session.rollback()
    assert txns.get(txn.id).is_recurring is False


def test_patch_recurrence_schedules_next_date() -> None:
    session = make_session()
    account = _account(session, 10_000)
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            account_id=account.id,
            type=TransactionType.expense,
            amount_cents=1_000,
            transaction_date=datetime(2024, 1, 31, 9, 0),
        )
    )

    txn = txns.update(
        txn.id,
        TransactionPatch(
            is_recurring=True, recurring_frequency=RecurringFrequency.monthly
        ),
    )
    assert txn.next_recurring_date == date(2024, 2, 29)

    txn = txns.update(
        txn.id, TransactionPatch(recurring_frequency=RecurringFrequency.weekly)
    )
    assert txn.next_recurring_date == date(2024, 2, 7)

    txn = txns.update(
        txn.id, TransactionPatch(transaction_date=datetime(2024, 3, 1, 9, 0))
    )
    assert txn.next_recurring_date == date(2024, 3, 8)

    txn = txns.update(
        txn.id,
        TransactionPatch(
            recurring_frequency=RecurringFrequency.daily,
            next_recurring_date=date(2024, 4, 1),
        ),
    )
    assert txn.next_recurring_date == date(2024, 4, 1)

    txn = txns.update(txn.id, TransactionPatch(description="Gym"))
    assert txn.next_recurring_date == date(2024, 4, 1)
    assert [t.id for t in txns.due_recurring(date(2024, 4, 1))] == [txn.id]


def test_transaction_shape_validation() -> None:
    with pytest.raises(ValidationError):
        TransactionIn(account_id=1, type=TransactionType.transfer, amount_cents=100)
    with pytest.raises(ValidationError):
        TransactionIn(
            account_id=1,
            to_account_id=1,
            type=TransactionType.transfer,
            amount_cents=100,
        )
    with pytest.raises(ValidationError):
        TransactionIn(
            account_id=1, to_account_id=2, type=TransactionType.income, amount_cents=1
        )
    with pytest.raises(ValidationError):
        TransactionIn(account_id=1, type=TransactionType.expense, amount_cents=-1)
    with pytest.raises(ValidationError):
        TransactionIn(
            account_id=1,
            type=TransactionType.expense,
            amount_cents=1,
            is_recurring=True,
        )


def test_recurring_next_date_and_due_listing() -> None:
    session = make_session()
    account = _account(session, 100_000)
    txns = TransactionService(session, 1)
    rent = txns.create(
        TransactionIn(
            account_id=account.id,
            type=TransactionType.expense,
            amount_cents=50_000,
            transaction_date=datetime(2024, 1, 31, 9, 0),
            is_recurring=True,
            recurring_frequency=RecurringFrequency.monthly,
        )
    )
    assert rent.next_recurring_date == date(2024, 2, 29)

    assert txns.due_recurring(date(2024, 2, 28)) == []
    assert [t.id for t in txns.due_recurring(date(2024, 2, 29))] == [rent.id]


def test_totals_by_type_within_range() -> None:
    session = make_session()
    account = _account(session, 0)
    txns = TransactionService(session, 1)
    txns.create(
        TransactionIn(
            account_id=account.id,
            type=TransactionType.income,
            amount_cents=5_000,
            transaction_date=datetime(2024, 3, 1, 8, 0),
        )
    )
    txns.create(
        TransactionIn(
            account_id=account.id,
            type=TransactionType.income,
            amount_cents=1_000,
            transaction_date=datetime(2024, 4, 1, 8, 0),
        )
    )

    march = txns.total_by_type(
        TransactionType.income, datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59)
    )
    assert march == 5_000
    assert txns.total_by_type(TransactionType.income) == 6_000
    assert len(txns.list_between(datetime(2024, 4, 1), datetime(2024, 4, 2))) == 1
