"""
client_ledger - Client Account Ledger

Turns an ordered stream of deposits, withdrawals, disputes, resolves and
chargebacks into final per-client balances, using fixed-point currency and
all-or-nothing transaction commits.

Usage:
    from client_ledger import Ledger, Transaction

    ledger = Ledger()
    ledger.execute(Transaction.deposit(1, 1, "5.0"))
    ledger.execute(Transaction.withdrawal(1, 2, "3.0"))
    ledger.execute(Transaction.dispute(1, 1))     # REJECTED: insufficient funds

    for snap in ledger.snapshot():
        print(snap.client_id, snap.available, snap.held, snap.total, snap.locked)

    # CSV in, CSV out
    from client_ledger import process_csv
    with open("transactions.csv", newline="") as source:
        process_csv(source, sys.stdout)
"""

# Core types
from .core import (
    Money,
    Transaction,
    TransactionKind,
    DepositRecord,
    DisputeState,
    AccountSnapshot,
    ExecuteResult,
    LockPolicy,
    TxIdScope,
    LedgerError,
    TransactionRejected,
    DuplicateTransactionId,
    AccountLocked,
    InsufficientFunds,
    UnknownDeposit,
    InvalidDisputeState,
    CurrencyOverflow,
    InvariantViolation,
    DECIMAL_PLACES,
    SCALE,
    MONEY_MAX_UNITS,
    MONEY_MAX_RAW,
    MONEY_MIN_RAW,
    CLIENT_ID_MAX,
    TX_ID_MAX,
)

# Account
from .account import Account

# Ledger
from .ledger import Ledger

# CSV
from .csv_format import (
    TransactionReader,
    MalformedRecord,
    MissingColumn,
    parse_row,
    read_transactions,
    write_snapshots,
    write_transactions,
)

# Stream processing
from .runner import (
    RunSummary,
    process,
    process_csv,
    process_sharded,
    shard_by_client,
)

# Synthetic data
from .generator import generate, DEFAULT_WEIGHTS

__all__ = [
    # Core
    'Money', 'Transaction', 'TransactionKind', 'DepositRecord', 'DisputeState',
    'AccountSnapshot', 'ExecuteResult', 'LockPolicy', 'TxIdScope',
    'DECIMAL_PLACES', 'SCALE', 'MONEY_MAX_UNITS', 'MONEY_MAX_RAW', 'MONEY_MIN_RAW',
    'CLIENT_ID_MAX', 'TX_ID_MAX',
    # Exceptions
    'LedgerError', 'TransactionRejected', 'DuplicateTransactionId', 'AccountLocked',
    'InsufficientFunds', 'UnknownDeposit', 'InvalidDisputeState', 'CurrencyOverflow',
    'InvariantViolation',
    # Account / Ledger
    'Account', 'Ledger',
    # CSV
    'TransactionReader', 'MalformedRecord', 'MissingColumn', 'parse_row',
    'read_transactions', 'write_snapshots', 'write_transactions',
    # Stream processing
    'RunSummary', 'process', 'process_csv', 'process_sharded', 'shard_by_client',
    # Synthetic data
    'generate', 'DEFAULT_WEIGHTS',
]

__version__ = '1.0.0'
