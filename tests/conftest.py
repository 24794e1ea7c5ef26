"""
conftest.py - Shared pytest fixtures for client ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Basic ledgers (empty, test-mode, funded, locked)
- run_csv: CSV text in, balance CSV text out
"""

import io
import pytest

from client_ledger import (
    Ledger, Transaction, read_transactions, write_snapshots,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _run_csv(text: str, **ledger_kwargs) -> str:
    """Process CSV text and return the balance CSV."""
    ledger = Ledger(**ledger_kwargs)
    for tx in read_transactions(io.StringIO(text)):
        ledger.execute(tx)
    out = io.StringIO()
    write_snapshots(ledger.snapshot(), out)
    return out.getvalue()


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh ledger with default policies."""
    return Ledger("test")


@pytest.fixture
def test_ledger():
    """Fresh ledger that allows set_account()."""
    return Ledger("test", test_mode=True)


@pytest.fixture
def funded_ledger():
    """Client 1 with 100.0 deposited as tx 1, client 2 with 50.0 as tx 2."""
    ledger = Ledger("test")
    ledger.apply(Transaction.deposit(1, 1, "100.0"))
    ledger.apply(Transaction.deposit(2, 2, "50.0"))
    return ledger


@pytest.fixture
def locked_ledger():
    """Client 1 locked by a chargeback of tx 1; 40.0 left available from tx 2."""
    ledger = Ledger("test")
    ledger.apply(Transaction.deposit(1, 1, "10.0"))
    ledger.apply(Transaction.deposit(1, 2, "40.0"))
    ledger.apply(Transaction.dispute(1, 1))
    ledger.apply(Transaction.chargeback(1, 1))
    return ledger


@pytest.fixture
def run_csv():
    """Callable: run_csv(text, **ledger_kwargs) -> balance CSV text."""
    return _run_csv
