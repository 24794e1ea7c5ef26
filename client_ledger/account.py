"""
account.py - Per-client balance record

An Account is an immutable value. Every operation computes all of its new
fields first and then returns a fresh Account, so a failing operation can
never leave one field updated and the other not: the caller's value is
untouched and the new value simply never exists.

All functions are pure; only the Ledger decides when a result is committed.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import (
    Money, AccountSnapshot, MONEY_MAX_RAW,
    AccountLocked, CurrencyOverflow, InsufficientFunds, InvariantViolation,
)


def _check_amount(amount: Money) -> None:
    if not isinstance(amount, Money):
        raise TypeError(f"amount must be Money, got {type(amount)}")
    if amount.is_negative:
        raise ValueError(f"amount must be non-negative, got {amount}")


@dataclass(frozen=True, slots=True)
class Account:
    """
    Balances of one client.

    Attributes:
        client_id: Stable client identifier.
        available: Funds the client may withdraw. Never negative.
        held: Funds frozen by open disputes. Never negative.
        locked: Set by a chargeback; never cleared.

    total is derived from available and held and is never stored.
    """
    client_id: int
    available: Money = Money.ZERO
    held: Money = Money.ZERO
    locked: bool = False

    @property
    def total(self) -> Money:
        return self.available + self.held

    def deposit(self, amount: Money) -> Account:
        """
        Credit available funds. Allowed on locked accounts.

        Raises:
            CurrencyOverflow: If available or total would leave the Money range.
        """
        _check_amount(amount)
        available = self.available + amount
        # total must stay representable so snapshots never overflow
        if available.raw + self.held.raw > MONEY_MAX_RAW:
            raise CurrencyOverflow(
                f"client {self.client_id}: total would exceed the Money range"
            )
        return replace(self, available=available)

    def withdraw(self, amount: Money) -> Account:
        """
        Debit available funds.

        Raises:
            AccountLocked: If the account is locked.
            InsufficientFunds: If available < amount.
        """
        _check_amount(amount)
        if self.locked:
            raise AccountLocked(f"client {self.client_id} is locked")
        if self.available < amount:
            raise InsufficientFunds(
                f"client {self.client_id}: available {self.available} < {amount}"
            )
        return replace(self, available=self.available - amount)

    def hold(self, amount: Money) -> Account:
        """
        Move funds from available to held for a dispute.

        Raises:
            InsufficientFunds: If available < amount.
            CurrencyOverflow: If held would leave the Money range.
        """
        _check_amount(amount)
        if self.available < amount:
            raise InsufficientFunds(
                f"client {self.client_id}: available {self.available} < {amount} to hold"
            )
        available = self.available - amount
        held = self.held + amount
        return replace(self, available=available, held=held)

    def release(self, amount: Money) -> Account:
        """
        Move funds from held back to available when a dispute is resolved.

        Raises:
            InvariantViolation: If held < amount. Held funds always cover every
                open dispute, so this means the ledger state is corrupt.
        """
        _check_amount(amount)
        if self.held < amount:
            raise InvariantViolation(
                f"client {self.client_id}: release of {amount} exceeds held {self.held}"
            )
        held = self.held - amount
        available = self.available + amount
        return replace(self, available=available, held=held)

    def chargeback(self, amount: Money) -> Account:
        """
        Remove disputed funds from held and lock the account.

        Raises:
            InvariantViolation: If held < amount (corrupt state, see release()).
        """
        _check_amount(amount)
        if self.held < amount:
            raise InvariantViolation(
                f"client {self.client_id}: chargeback of {amount} exceeds held {self.held}"
            )
        return replace(self, held=self.held - amount, locked=True)

    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            client_id=self.client_id,
            available=self.available,
            held=self.held,
            total=self.total,
            locked=self.locked,
        )
