"""
Signed balance effects of a transaction.

Amounts are stored as unsigned magnitudes next to a type tag; the sign an
account balance sees is derived here and nowhere else. Reversal depends only
on the type and the amount that was originally applied, so an amount edit is
always a full reversal of the old amount followed by a full application of the
new one.
"""

from dataclasses import dataclass
from typing import Optional

from models import Account, TransactionType


@dataclass(frozen=True)
class BalanceEffect:
    source: int
    destination: Optional[int] = None


def signed_effect(txn_type: TransactionType, amount_cents: int) -> BalanceEffect:
    magnitude = abs(amount_cents)
    if txn_type == TransactionType.income:
        return BalanceEffect(source=magnitude)
    if txn_type == TransactionType.expense:
        return BalanceEffect(source=-magnitude)
    if txn_type == TransactionType.transfer:
        return BalanceEffect(source=-magnitude, destination=magnitude)
    # adjustment: sign taken as given
    return BalanceEffect(source=amount_cents)


def reversal_effect(txn_type: TransactionType, amount_cents: int) -> BalanceEffect:
    magnitude = abs(amount_cents)
    if txn_type == TransactionType.expense:
        return BalanceEffect(source=magnitude)
    if txn_type == TransactionType.income:
        return BalanceEffect(source=-magnitude)
    if txn_type == TransactionType.transfer:
        return BalanceEffect(source=magnitude, destination=-magnitude)
    return BalanceEffect(source=-amount_cents)


def apply_effect(
    effect: BalanceEffect,
    source: Account,
    destination: Optional[Account] = None,
) -> None:
    source.current_balance_cents += effect.source
    if effect.destination is not None:
        if destination is None:
            raise ValueError("Transfer effect requires a destination account")
        destination.current_balance_cents += effect.destination


def has_sufficient_funds(account: Account, amount_cents: int) -> bool:
    return account.current_balance_cents >= amount_cents
