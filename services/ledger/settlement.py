"""
Factory account settlement.

A factory account is a pair (balance, debt): balance is credit the org holds
with the factory, debt is processing fees the org still owes. Every money
event carries a fee charged and a payment made, both >= 0.

Creating an event charges the fee first, then lets the payment pay off debt,
with any excess becoming balance. Voiding runs the inverse steps in reverse
order against the account as it is now (not a stored snapshot): take the
payment back out of balance, spilling into debt, then cancel the fee out of
debt, spilling into balance.

From any settled account (balance or debt is zero) create followed by void
gives back exactly the starting pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a number/str/None to a 2-dp Decimal."""
    if value is None or value == "":
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


@dataclass(frozen=True)
class AccountState:
    balance: Decimal = ZERO
    debt: Decimal = ZERO

    @property
    def is_negative(self) -> bool:
        return self.balance < ZERO or self.debt < ZERO

    @property
    def is_settled(self) -> bool:
        return self.balance == ZERO or self.debt == ZERO


def apply_fee(state: AccountState, fee: Decimal) -> AccountState:
    balance, debt = state.balance, state.debt
    if balance >= fee:
        balance -= fee
    else:
        debt += fee - balance
        balance = ZERO
    return AccountState(balance, debt)


def apply_payment(state: AccountState, payment: Decimal) -> AccountState:
    balance, debt = state.balance, state.debt
    if debt > ZERO:
        if payment >= debt:
            balance += payment - debt
            debt = ZERO
        else:
            debt -= payment
    else:
        balance += payment
    return AccountState(balance, debt)


def reverse_payment(state: AccountState, payment: Decimal) -> AccountState:
    balance, debt = state.balance, state.debt
    if balance >= payment:
        balance -= payment
    else:
        debt += payment - balance
        balance = ZERO
    return AccountState(balance, debt)


def reverse_fee(state: AccountState, fee: Decimal) -> AccountState:
    balance, debt = state.balance, state.debt
    if debt >= fee:
        debt -= fee
    else:
        balance += fee - debt
        debt = ZERO
    return AccountState(balance, debt)


def settle(state: AccountState, fee=ZERO, payment=ZERO) -> AccountState:
    """Order/payment creation: fee first, then payment."""
    return apply_payment(apply_fee(state, to_money(fee)), to_money(payment))


def unsettle(state: AccountState, fee=ZERO, payment=ZERO) -> AccountState:
    """Void: reverse the payment, then the fee."""
    return reverse_fee(reverse_payment(state, to_money(payment)), to_money(fee))
