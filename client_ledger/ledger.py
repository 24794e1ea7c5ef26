"""
ledger.py - Stateful client ledger

The Ledger class is the central state manager for the client ledger.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Owns the client -> Account map and the deposit history table
    - Routes each transaction to the matching Account operation
    - Enforces cross-transaction rules (duplicate ids, dispute lookups, lock policy)
    - Commits atomically: a transaction either replaces its Account (and
      DepositRecord) values in one step or leaves every stored value untouched
"""

from __future__ import annotations
from collections import Counter
from typing import Dict, List, Optional, Set, Tuple, Union
import logging

from .account import Account
from .core import (
    # Types
    Transaction, TransactionKind, DepositRecord, DisputeState, AccountSnapshot,
    ExecuteResult, LockPolicy, TxIdScope,
    # Exceptions
    LedgerError, TransactionRejected, DuplicateTransactionId, AccountLocked,
    UnknownDeposit, InvalidDisputeState, InvariantViolation,
)

_log = logging.getLogger(__name__)

DepositKey = Union[int, Tuple[int, int]]


class Ledger:
    """
    Ledger of client accounts with dispute tracking.

    Design Principles:
        - Copy, compute, commit: Account operations return new values. Nothing
          is written to the ledger until every step of a transaction succeeded.
        - Rejections are no-ops: a refused transaction leaves balances and
          deposit records exactly as they were, so the stream can continue.
          The only trace it can leave is the zero-balance Account of a client
          it named for the first time.
        - Invariant violations are fatal: they propagate to the caller and the
          affected client is recorded in untrusted_clients.

    Thread Safety:
        Not thread-safe. Each thread or worker process should own its Ledger.

    Example:
        ledger = Ledger()
        ledger.apply(Transaction.deposit(1, 1, "5.0"))
        ledger.apply(Transaction.dispute(1, 1))
        for snap in ledger.snapshot():
            print(snap.client_id, snap.available, snap.held, snap.total, snap.locked)
    """

    def __init__(
        self,
        name: str = "main",
        verbose: bool = False,
        test_mode: bool = False,
        lock_policy: LockPolicy = LockPolicy.ALLOW_DISPUTES,
        tx_id_scope: TxIdScope = TxIdScope.GLOBAL,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier (used in log messages)
            verbose: Log every applied and rejected transaction at INFO (default: False)
            test_mode: Allow set_account() calls (default: False)
            lock_policy: What locked accounts still accept
            tx_id_scope: Whether deposit tx ids are unique globally or per client
        """
        self.name = name
        self.verbose = verbose
        self.lock_policy = lock_policy
        self.tx_id_scope = tx_id_scope
        self._test_mode = test_mode
        # Insertion order is the order in which clients were first named
        self.accounts: Dict[int, Account] = {}
        self.deposits: Dict[DepositKey, DepositRecord] = {}
        self.untrusted_clients: Set[int] = set()
        self.applied_count = 0
        self.rejections: Counter = Counter()

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def get_account(self, client_id: int) -> Account:
        """
        Return the current Account of a client.

        Unknown clients get a fresh zero-balance Account that is not stored.
        """
        account = self.accounts.get(client_id)
        if account is None:
            return Account(client_id)
        return account

    def get_deposit(self, client_id: int, tx_id: int) -> Optional[DepositRecord]:
        """Return the deposit record tx_id of client_id, or None if there is none."""
        record = self.deposits.get(self._deposit_key(client_id, tx_id))
        if record is None or record.client_id != client_id:
            return None
        return record

    def list_clients(self) -> List[int]:
        """List client ids in first-seen order."""
        return list(self.accounts)

    def snapshot(self) -> List[AccountSnapshot]:
        """Balances of every client in first-seen order."""
        return [account.snapshot() for account in self.accounts.values()]

    @property
    def rejected_count(self) -> int:
        return sum(self.rejections.values())

    # ========================================================================
    # TEST SUPPORT (Mutating)
    # ========================================================================

    def set_account(self, account: Account) -> None:
        """
        Store an Account directly.

        WARNING: This bypasses transaction processing and is only available in
        test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_account() is disabled in production mode. "
                "Use apply() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        self.accounts[account.client_id] = account

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def execute(self, tx: Transaction) -> ExecuteResult:
        """
        Apply a transaction, turning rejections into a result value.

        Rejections are logged and counted in self.rejections by exception name.
        InvariantViolation is not a rejection and propagates.

        Returns:
            ExecuteResult.APPLIED if committed
            ExecuteResult.REJECTED if refused (balances unchanged)
        """
        try:
            self.apply(tx)
        except TransactionRejected as e:
            self.rejections[type(e).__name__] += 1
            if self.verbose:
                _log.info("[%s] REJECTED %r: %s", self.name, tx, e)
            else:
                _log.debug("[%s] rejected %r: %s", self.name, tx, e)
            return ExecuteResult.REJECTED
        self.applied_count += 1
        if self.verbose:
            _log.info("[%s] APPLIED %r", self.name, tx)
        return ExecuteResult.APPLIED

    def apply(self, tx: Transaction) -> None:
        """
        Apply a transaction atomically.

        A client named for the first time gets a zero-balance Account before
        dispatch, so it is listed even if this transaction is then refused.

        Raises:
            TransactionRejected: Any subclass; balances and deposit records
                are unchanged.
            InvariantViolation: Ledger state is corrupt; stop processing.
        """
        if tx.client_id not in self.accounts:
            self.accounts[tx.client_id] = Account(tx.client_id)
        kind = tx.kind
        if kind is TransactionKind.DEPOSIT:
            self._apply_deposit(tx)
        elif kind is TransactionKind.WITHDRAWAL:
            self._apply_withdrawal(tx)
        elif kind is TransactionKind.DISPUTE:
            self._apply_dispute(tx)
        elif kind is TransactionKind.RESOLVE:
            self._apply_resolve(tx)
        elif kind is TransactionKind.CHARGEBACK:
            self._apply_chargeback(tx)
        else:
            raise LedgerError(f"unhandled transaction kind: {kind!r}")

    def _apply_deposit(self, tx: Transaction) -> None:
        key = self._deposit_key(tx.client_id, tx.tx_id)
        if key in self.deposits:
            raise DuplicateTransactionId(f"deposit tx={tx.tx_id} already recorded")
        account = self._account_for(tx)
        new_account = account.deposit(tx.amount)
        record = DepositRecord(tx.tx_id, tx.client_id, tx.amount)
        self._commit(new_account, key, record)

    def _apply_withdrawal(self, tx: Transaction) -> None:
        account = self._account_for(tx)
        self._commit(account.withdraw(tx.amount))

    def _apply_dispute(self, tx: Transaction) -> None:
        account = self._account_for(tx)
        key, record = self._lookup_deposit(tx, DisputeState.NORMAL)
        new_account = account.hold(record.amount)
        self._commit(new_account, key, record.with_state(DisputeState.DISPUTED))

    def _apply_resolve(self, tx: Transaction) -> None:
        account = self._account_for(tx)
        key, record = self._lookup_deposit(tx, DisputeState.DISPUTED)
        new_account = self._guarded(account, account.release, record)
        self._commit(new_account, key, record.with_state(DisputeState.NORMAL))

    def _apply_chargeback(self, tx: Transaction) -> None:
        account = self._account_for(tx)
        key, record = self._lookup_deposit(tx, DisputeState.DISPUTED)
        new_account = self._guarded(account, account.chargeback, record)
        self._commit(new_account, key, record.with_state(DisputeState.CHARGED_BACK))

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _deposit_key(self, client_id: int, tx_id: int) -> DepositKey:
        if self.tx_id_scope is TxIdScope.PER_CLIENT:
            return (client_id, tx_id)
        return tx_id

    def _account_for(self, tx: Transaction) -> Account:
        """Current account of the transaction's client, after the lock policy check."""
        account = self.get_account(tx.client_id)
        if (
            account.locked
            and self.lock_policy is LockPolicy.FREEZE
            and tx.kind is not TransactionKind.WITHDRAWAL
        ):
            raise AccountLocked(
                f"client {tx.client_id} is locked; {tx.kind.value} refused"
            )
        return account

    def _lookup_deposit(
        self, tx: Transaction, required: DisputeState
    ) -> Tuple[DepositKey, DepositRecord]:
        """
        Find the deposit a dispute, resolve or chargeback refers to.

        Raises:
            UnknownDeposit: No such deposit, or it belongs to another client.
            InvalidDisputeState: The deposit is not in the required state.
        """
        key = self._deposit_key(tx.client_id, tx.tx_id)
        record = self.deposits.get(key)
        if record is None or record.client_id != tx.client_id:
            raise UnknownDeposit(
                f"client {tx.client_id} has no deposit tx={tx.tx_id}"
            )
        if record.state is not required:
            raise InvalidDisputeState(tx.tx_id, required, record.state)
        return key, record

    def _guarded(self, account: Account, operation, record: DepositRecord) -> Account:
        """Run a held-funds operation, flagging the client if the invariant is broken."""
        try:
            return operation(record.amount)
        except InvariantViolation:
            self.untrusted_clients.add(account.client_id)
            _log.critical(
                "[%s] invariant violated for client %s on deposit tx=%s; "
                "ledger state is no longer trustworthy",
                self.name, account.client_id, record.tx_id,
            )
            raise

    def _commit(
        self,
        account: Account,
        key: Optional[DepositKey] = None,
        record: Optional[DepositRecord] = None,
    ) -> None:
        """The single point where a transaction's results become visible."""
        self.accounts[account.client_id] = account
        if record is not None:
            self.deposits[key] = record

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        Accounts and deposit records are immutable values, so copying the
        containers is enough for full independence.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.lock_policy = self.lock_policy
        cloned.tx_id_scope = self.tx_id_scope
        cloned._test_mode = self._test_mode
        cloned.accounts = dict(self.accounts)
        cloned.deposits = dict(self.deposits)
        cloned.untrusted_clients = set(self.untrusted_clients)
        cloned.applied_count = self.applied_count
        cloned.rejections = Counter(self.rejections)
        return cloned

    def state_equals(self, other: Ledger) -> bool:
        """True if both ledgers hold identical accounts and deposit records."""
        return (
            list(self.accounts.items()) == list(other.accounts.items())
            and self.deposits == other.deposits
        )
