"""
Core types for the client ledger.

This module provides the foundational data structures shared by every layer:
1. Constants: fixed-point currency parameters and identifier bounds
2. Enums: TransactionKind, DisputeState, ExecuteResult, LockPolicy, TxIdScope
3. Exceptions: LedgerError and the per-transaction rejection taxonomy
4. Immutable data structures: Money, Transaction, DepositRecord, AccountSnapshot

Nothing in this module performs I/O or holds mutable state.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Tuple, Union


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point currency: every amount is an integer count of 1/SCALE units.
DECIMAL_PLACES = 4
SCALE = 10 ** DECIMAL_PLACES

# Magnitude bound in whole currency units (about 1.4e14).
MONEY_MAX_UNITS = 2 ** 47
MONEY_MAX_RAW = MONEY_MAX_UNITS * SCALE - 1
MONEY_MIN_RAW = -MONEY_MAX_UNITS * SCALE

# Identifier widths accepted from the input stream.
CLIENT_ID_MAX = 2 ** 16 - 1
TX_ID_MAX = 2 ** 32 - 1

_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)


# ============================================================================
# ENUMS
# ============================================================================

class TransactionKind(Enum):
    """The five instruction kinds a client stream can carry."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL)

    @classmethod
    def parse(cls, text: str) -> TransactionKind:
        """
        Parse a kind name, ignoring case and surrounding whitespace.

        Raises:
            ValueError: If the text names no known kind.
        """
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise ValueError(f"unknown transaction kind: {text!r}") from None


class DisputeState(Enum):
    """
    Dispute lifecycle of a single deposit.

        NORMAL --dispute--> DISPUTED --resolve--> NORMAL
        DISPUTED --chargeback--> CHARGED_BACK (terminal)
    """
    NORMAL = "normal"
    DISPUTED = "disputed"
    CHARGED_BACK = "charged_back"


class ExecuteResult(Enum):
    """
    Outcome of Ledger.execute().

    APPLIED: Transaction was validated and committed.
    REJECTED: Transaction was refused; ledger state is exactly as before.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class LockPolicy(Enum):
    """
    What a locked (charged-back) account still accepts.

    ALLOW_DISPUTES: only withdrawals are refused.
    FREEZE: every transaction kind is refused.
    """
    ALLOW_DISPUTES = "allow-disputes"
    FREEZE = "freeze"


class TxIdScope(Enum):
    """
    Uniqueness scope of deposit transaction ids.

    GLOBAL: a deposit tx id may appear once across all clients.
    PER_CLIENT: a deposit tx id may appear once per client.
    """
    GLOBAL = "global"
    PER_CLIENT = "per-client"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransactionRejected(LedgerError):
    """A transaction was refused. Ledger state is unchanged; the stream may continue."""
    pass


class DuplicateTransactionId(TransactionRejected):
    """Raised when a deposit reuses a tx id already present in the deposit table."""
    pass


class AccountLocked(TransactionRejected):
    """Raised when a locked account is asked to do something its lock policy forbids."""
    pass


class InsufficientFunds(TransactionRejected):
    """Raised when a withdrawal or dispute hold exceeds the available balance."""
    pass


class UnknownDeposit(TransactionRejected):
    """Raised when a dispute, resolve or chargeback names no deposit of that client."""
    pass


class InvalidDisputeState(TransactionRejected):
    """Raised when the referenced deposit is not in the state the instruction requires."""

    def __init__(self, tx_id: int, expected: DisputeState, actual: DisputeState):
        super().__init__(
            f"deposit tx={tx_id} is {actual.value}, expected {expected.value}"
        )
        self.tx_id = tx_id
        self.expected = expected
        self.actual = actual

    def __reduce__(self):
        return (type(self), (self.tx_id, self.expected, self.actual))


class CurrencyOverflow(TransactionRejected):
    """Raised when a Money value would leave the representable range."""
    pass


class InvariantViolation(LedgerError):
    """
    Internal state is corrupt (e.g. held would go negative on release).

    Fatal: the stream driver never catches this. Processing must stop.
    """
    pass


# ============================================================================
# MONEY
# ============================================================================

@dataclass(frozen=True, slots=True, order=True)
class Money:
    """
    Signed fixed-point currency amount with DECIMAL_PLACES fractional digits.

    Attributes:
        raw: Integer count of 1/SCALE currency units.

    Every construction is range-checked, so arithmetic that leaves
    [MONEY_MIN_RAW, MONEY_MAX_RAW] raises CurrencyOverflow instead of wrapping.
    """
    raw: int

    def __post_init__(self):
        if not isinstance(self.raw, int) or isinstance(self.raw, bool):
            raise TypeError(f"Money raw value must be int, got {type(self.raw)}")
        if self.raw > MONEY_MAX_RAW or self.raw < MONEY_MIN_RAW:
            raise CurrencyOverflow(f"amount out of range: raw={self.raw}")

    @classmethod
    def of(cls, value: Union[Money, Decimal, str, int]) -> Money:
        """
        Convert a value to Money.

        Ints are whole currency units. Strings and Decimals may carry at most
        DECIMAL_PLACES fractional digits.

        Raises:
            TypeError: For floats and other unsupported types.
            ValueError: For unparseable, non-finite or over-precise values.
            CurrencyOverflow: For values outside the representable range.
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, bool):
            raise TypeError("Money cannot be built from bool")
        if isinstance(value, int):
            return cls(value * SCALE)
        if isinstance(value, str):
            try:
                value = Decimal(value.strip())
            except InvalidOperation:
                raise ValueError(f"invalid amount: {value!r}") from None
        if not isinstance(value, Decimal):
            raise TypeError(f"Money must be built from Decimal, str or int, got {type(value)}")
        if not value.is_finite():
            raise ValueError(f"amount must be finite, got {value}")
        if abs(value) > MONEY_MAX_UNITS:
            raise CurrencyOverflow(f"amount out of range: {value}")
        quantized = value.quantize(_QUANTUM)
        if quantized != value:
            raise ValueError(
                f"amount {value} has more than {DECIMAL_PLACES} fractional digits"
            )
        return cls(int(quantized.scaleb(DECIMAL_PLACES)))

    def to_decimal(self) -> Decimal:
        return Decimal(self.raw).scaleb(-DECIMAL_PLACES)

    @property
    def is_negative(self) -> bool:
        return self.raw < 0

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.raw + other.raw)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.raw - other.raw)

    def __str__(self) -> str:
        units, fraction = divmod(abs(self.raw), SCALE)
        sign = "-" if self.raw < 0 else ""
        return f"{sign}{units}.{fraction:0{DECIMAL_PLACES}d}"

    def __repr__(self) -> str:
        return f"Money('{self}')"


Money.ZERO = Money(0)

MoneyLike = Union[Money, Decimal, str, int]


# ============================================================================
# TRANSACTION RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A decoded instruction from the input stream.

    Attributes:
        kind: Which of the five instruction kinds this is.
        client_id: Client the instruction is addressed to (0..CLIENT_ID_MAX).
        tx_id: Transaction id (0..TX_ID_MAX). For dispute, resolve and
               chargeback this is the id of the referenced deposit.
        amount: Non-negative Money for deposits and withdrawals, None otherwise.

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    kind: TransactionKind
    client_id: int
    tx_id: int
    amount: Optional[Money] = None

    def __post_init__(self):
        if not isinstance(self.kind, TransactionKind):
            raise ValueError(f"Transaction kind must be TransactionKind, got {self.kind!r}")
        if not isinstance(self.client_id, int) or not 0 <= self.client_id <= CLIENT_ID_MAX:
            raise ValueError(f"client id out of range: {self.client_id!r}")
        if not isinstance(self.tx_id, int) or not 0 <= self.tx_id <= TX_ID_MAX:
            raise ValueError(f"tx id out of range: {self.tx_id!r}")
        if self.kind.carries_amount:
            if not isinstance(self.amount, Money):
                raise ValueError(f"{self.kind.value} requires a Money amount")
            if self.amount.is_negative:
                raise ValueError(f"{self.kind.value} amount must be non-negative, got {self.amount}")
        elif self.amount is not None:
            raise ValueError(f"{self.kind.value} must not carry an amount")

    @classmethod
    def deposit(cls, client_id: int, tx_id: int, amount: MoneyLike) -> Transaction:
        return cls(TransactionKind.DEPOSIT, client_id, tx_id, Money.of(amount))

    @classmethod
    def withdrawal(cls, client_id: int, tx_id: int, amount: MoneyLike) -> Transaction:
        return cls(TransactionKind.WITHDRAWAL, client_id, tx_id, Money.of(amount))

    @classmethod
    def dispute(cls, client_id: int, tx_id: int) -> Transaction:
        return cls(TransactionKind.DISPUTE, client_id, tx_id)

    @classmethod
    def resolve(cls, client_id: int, tx_id: int) -> Transaction:
        return cls(TransactionKind.RESOLVE, client_id, tx_id)

    @classmethod
    def chargeback(cls, client_id: int, tx_id: int) -> Transaction:
        return cls(TransactionKind.CHARGEBACK, client_id, tx_id)

    def to_row(self) -> Tuple[str, int, int, Optional[int]]:
        """Flatten to plain values (kind, client, tx, raw amount) for cross-process transfer."""
        raw = self.amount.raw if self.amount is not None else None
        return (self.kind.value, self.client_id, self.tx_id, raw)

    @classmethod
    def from_row(cls, row: Tuple[str, int, int, Optional[int]]) -> Transaction:
        kind, client_id, tx_id, raw = row
        amount = Money(raw) if raw is not None else None
        return cls(TransactionKind(kind), client_id, tx_id, amount)

    def __repr__(self) -> str:
        amount = f" {self.amount}" if self.amount is not None else ""
        return f"Transaction({self.kind.value} client={self.client_id} tx={self.tx_id}{amount})"


@dataclass(frozen=True, slots=True)
class DepositRecord:
    """
    History entry for a committed deposit, owned by the Ledger.

    Attributes:
        tx_id: Id of the deposit transaction.
        client_id: Client the deposit was credited to.
        amount: Deposited amount; the amount any dispute holds.
        state: Position in the dispute lifecycle.
    """
    tx_id: int
    client_id: int
    amount: Money
    state: DisputeState = DisputeState.NORMAL

    def with_state(self, state: DisputeState) -> DepositRecord:
        return replace(self, state=state)


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Externally visible balances of one client; total is always available + held."""
    client_id: int
    available: Money
    held: Money
    total: Money
    locked: bool
