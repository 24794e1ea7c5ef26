"""
test_core_types.py - Unit tests for core data structures

Tests:
- Money: construction, parsing, range checks, arithmetic, rendering
- TransactionKind: parsing, amount rules
- Transaction: creation, validation, immutability, row conversion
- DepositRecord: state transitions
- Exceptions: hierarchy, pickling
"""

import pickle
import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal
from hypothesis import given
from hypothesis import strategies as st

from client_ledger import (
    Money, Transaction, TransactionKind, DepositRecord, DisputeState,
    LedgerError, TransactionRejected, DuplicateTransactionId, AccountLocked,
    InsufficientFunds, UnknownDeposit, InvalidDisputeState, CurrencyOverflow,
    InvariantViolation,
    SCALE, MONEY_MAX_UNITS, MONEY_MAX_RAW, MONEY_MIN_RAW, CLIENT_ID_MAX, TX_ID_MAX,
)


class TestMoneyConstruction:
    """Tests for building Money values."""

    def test_raw_units(self):
        """raw counts 1/SCALE units."""
        assert Money(15000).raw == 15000
        assert SCALE == 10_000

    def test_of_int_is_whole_units(self):
        """Ints are whole currency units."""
        assert Money.of(2).raw == 2 * SCALE
        assert Money.of(-3).raw == -3 * SCALE

    def test_of_string(self):
        """Strings are parsed exactly, surrounding whitespace ignored."""
        assert Money.of("1.5").raw == 15000
        assert Money.of(" 0.0001 ").raw == 1
        assert Money.of("2").raw == 20000
        assert Money.of("-1.25").raw == -12500

    def test_of_decimal(self):
        """Decimals are converted exactly."""
        assert Money.of(Decimal("3.1415")).raw == 31415

    def test_of_money_is_identity(self):
        """Money.of(Money) returns the same value."""
        value = Money(42)
        assert Money.of(value) is value

    def test_trailing_zeros_beyond_precision_allowed(self):
        """Extra zero digits do not change the value."""
        assert Money.of("1.50000000") == Money.of("1.5")

    def test_too_many_fractional_digits_rejected(self):
        """More than four fractional digits cannot be represented."""
        with pytest.raises(ValueError, match="fractional digits"):
            Money.of("0.00001")

    def test_float_rejected(self):
        """Floats are refused to avoid binary rounding."""
        with pytest.raises(TypeError):
            Money.of(1.5)

    def test_bool_rejected(self):
        """bool is not treated as an int."""
        with pytest.raises(TypeError):
            Money.of(True)
        with pytest.raises(TypeError):
            Money(True)

    def test_non_int_raw_rejected(self):
        """raw must be an int."""
        with pytest.raises(TypeError):
            Money(1.0)

    @pytest.mark.parametrize("text", ["abc", "", "1,5", "NaN", "Infinity", "-inf"])
    def test_unparseable_or_non_finite_rejected(self, text):
        """Garbage and non-finite values raise ValueError."""
        with pytest.raises(ValueError):
            Money.of(text)

    def test_bounds(self):
        """Raw range is [MONEY_MIN_RAW, MONEY_MAX_RAW]."""
        assert Money(MONEY_MAX_RAW).raw == MONEY_MAX_RAW
        assert Money(MONEY_MIN_RAW).raw == MONEY_MIN_RAW
        assert Money.of(-MONEY_MAX_UNITS).raw == MONEY_MIN_RAW
        with pytest.raises(CurrencyOverflow):
            Money(MONEY_MAX_RAW + 1)
        with pytest.raises(CurrencyOverflow):
            Money(MONEY_MIN_RAW - 1)

    def test_of_out_of_range(self):
        """Values above the bound raise CurrencyOverflow."""
        with pytest.raises(CurrencyOverflow):
            Money.of(MONEY_MAX_UNITS)
        with pytest.raises(CurrencyOverflow):
            Money.of("1e20")

    def test_immutable(self):
        """Money is frozen."""
        value = Money(1)
        with pytest.raises(FrozenInstanceError):
            value.raw = 2


class TestMoneyArithmetic:
    """Tests for checked arithmetic and ordering."""

    def test_add_and_subtract(self):
        assert Money.of("1.5") + Money.of("2.25") == Money.of("3.75")
        assert Money.of("1.5") - Money.of("2.5") == Money.of(-1)

    def test_add_overflow_raises(self):
        """Arithmetic never wraps."""
        with pytest.raises(CurrencyOverflow):
            Money(MONEY_MAX_RAW) + Money(1)
        with pytest.raises(CurrencyOverflow):
            Money(MONEY_MIN_RAW) - Money(1)

    def test_mixed_type_arithmetic_refused(self):
        with pytest.raises(TypeError):
            Money(1) + 1

    def test_ordering(self):
        assert Money.of("0.0001") > Money.ZERO
        assert Money.of("-1") < Money.ZERO
        assert sorted([Money(3), Money(-1), Money(2)]) == [Money(-1), Money(2), Money(3)]

    def test_is_negative(self):
        assert Money(-1).is_negative
        assert not Money.ZERO.is_negative

    def test_to_decimal(self):
        assert Money.of("1.5").to_decimal() == Decimal("1.5")

    @given(
        st.integers(min_value=MONEY_MIN_RAW, max_value=MONEY_MAX_RAW),
        st.integers(min_value=MONEY_MIN_RAW, max_value=MONEY_MAX_RAW),
    )
    def test_add_matches_integer_addition(self, a, b):
        """Sums inside the range are exact; sums outside raise."""
        expected = a + b
        if MONEY_MIN_RAW <= expected <= MONEY_MAX_RAW:
            assert (Money(a) + Money(b)).raw == expected
        else:
            with pytest.raises(CurrencyOverflow):
                Money(a) + Money(b)


class TestMoneyRendering:
    """Tests for the four-decimal text form."""

    @pytest.mark.parametrize("raw, text", [
        (0, "0.0000"),
        (1, "0.0001"),
        (-1, "-0.0001"),
        (15000, "1.5000"),
        (-123456789, "-12345.6789"),
        (MONEY_MAX_RAW, "140737488355327.9999"),
    ])
    def test_str(self, raw, text):
        assert str(Money(raw)) == text

    def test_repr(self):
        assert repr(Money.of("1.5")) == "Money('1.5000')"

    @given(st.integers(min_value=MONEY_MIN_RAW, max_value=MONEY_MAX_RAW))
    def test_text_form_parses_back(self, raw):
        """Rendered text is always accepted by Money.of()."""
        assert Money.of(str(Money(raw))).raw == raw


class TestTransactionKind:
    """Tests for TransactionKind."""

    @pytest.mark.parametrize("text, kind", [
        ("deposit", TransactionKind.DEPOSIT),
        (" Withdrawal ", TransactionKind.WITHDRAWAL),
        ("DISPUTE", TransactionKind.DISPUTE),
        ("resolve", TransactionKind.RESOLVE),
        ("chargeback", TransactionKind.CHARGEBACK),
    ])
    def test_parse(self, text, kind):
        assert TransactionKind.parse(text) is kind

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="unknown transaction kind"):
            TransactionKind.parse("transfer")

    def test_carries_amount(self):
        assert TransactionKind.DEPOSIT.carries_amount
        assert TransactionKind.WITHDRAWAL.carries_amount
        assert not TransactionKind.DISPUTE.carries_amount
        assert not TransactionKind.RESOLVE.carries_amount
        assert not TransactionKind.CHARGEBACK.carries_amount


class TestTransactionCreation:
    """Tests for Transaction creation and validation."""

    def test_deposit_factory(self):
        tx = Transaction.deposit(1, 7, "2.5")
        assert tx.kind is TransactionKind.DEPOSIT
        assert tx.client_id == 1
        assert tx.tx_id == 7
        assert tx.amount == Money.of("2.5")

    def test_reference_factories_have_no_amount(self):
        assert Transaction.dispute(1, 7).amount is None
        assert Transaction.resolve(1, 7).kind is TransactionKind.RESOLVE
        assert Transaction.chargeback(1, 7).kind is TransactionKind.CHARGEBACK

    def test_zero_amount_allowed(self):
        assert Transaction.withdrawal(1, 1, "0").amount == Money.ZERO

    def test_amount_required(self):
        with pytest.raises(ValueError, match="requires a Money amount"):
            Transaction(TransactionKind.DEPOSIT, 1, 1)

    def test_amount_forbidden(self):
        with pytest.raises(ValueError, match="must not carry an amount"):
            Transaction(TransactionKind.DISPUTE, 1, 1, Money.of(1))

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            Transaction.deposit(1, 1, "-1")

    def test_kind_must_be_enum(self):
        with pytest.raises(ValueError):
            Transaction("deposit", 1, 1, Money.of(1))

    @pytest.mark.parametrize("client_id", [-1, CLIENT_ID_MAX + 1, "1"])
    def test_client_id_range(self, client_id):
        with pytest.raises(ValueError, match="client id"):
            Transaction.dispute(client_id, 1)

    @pytest.mark.parametrize("tx_id", [-1, TX_ID_MAX + 1])
    def test_tx_id_range(self, tx_id):
        with pytest.raises(ValueError, match="tx id"):
            Transaction.dispute(1, tx_id)

    def test_id_bounds_inclusive(self):
        tx = Transaction.dispute(CLIENT_ID_MAX, TX_ID_MAX)
        assert (tx.client_id, tx.tx_id) == (CLIENT_ID_MAX, TX_ID_MAX)

    def test_immutable(self):
        tx = Transaction.deposit(1, 1, "1")
        with pytest.raises(FrozenInstanceError):
            tx.client_id = 2

    def test_repr(self):
        assert repr(Transaction.deposit(1, 2, "5")) == "Transaction(deposit client=1 tx=2 5.0000)"
        assert repr(Transaction.dispute(1, 2)) == "Transaction(dispute client=1 tx=2)"


class TestTransactionRows:
    """Tests for the plain-tuple form used between processes."""

    def test_to_row(self):
        assert Transaction.deposit(3, 4, "1.5").to_row() == ("deposit", 3, 4, 15000)
        assert Transaction.resolve(3, 4).to_row() == ("resolve", 3, 4, None)

    def test_from_row(self):
        assert Transaction.from_row(("withdrawal", 3, 9, 500)) == Transaction.withdrawal(3, 9, "0.05")
        assert Transaction.from_row(("chargeback", 3, 4, None)) == Transaction.chargeback(3, 4)


class TestDepositRecord:
    """Tests for DepositRecord."""

    def test_defaults_to_normal(self):
        record = DepositRecord(1, 2, Money.of(3))
        assert record.state is DisputeState.NORMAL

    def test_with_state_returns_copy(self):
        record = DepositRecord(1, 2, Money.of(3))
        disputed = record.with_state(DisputeState.DISPUTED)
        assert disputed.state is DisputeState.DISPUTED
        assert record.state is DisputeState.NORMAL
        assert disputed.amount == record.amount


class TestExceptions:
    """Tests for the exception taxonomy."""

    @pytest.mark.parametrize("exc", [
        DuplicateTransactionId, AccountLocked, InsufficientFunds,
        UnknownDeposit, InvalidDisputeState, CurrencyOverflow,
    ])
    def test_rejections_are_transaction_rejected(self, exc):
        assert issubclass(exc, TransactionRejected)
        assert issubclass(exc, LedgerError)

    def test_invariant_violation_is_not_a_rejection(self):
        assert issubclass(InvariantViolation, LedgerError)
        assert not issubclass(InvariantViolation, TransactionRejected)

    def test_invalid_dispute_state_message(self):
        e = InvalidDisputeState(5, DisputeState.DISPUTED, DisputeState.NORMAL)
        assert str(e) == "deposit tx=5 is normal, expected disputed"
        assert e.tx_id == 5

    def test_invalid_dispute_state_pickles(self):
        e = InvalidDisputeState(5, DisputeState.NORMAL, DisputeState.CHARGED_BACK)
        restored = pickle.loads(pickle.dumps(e))
        assert str(restored) == str(e)
        assert restored.actual is DisputeState.CHARGED_BACK
