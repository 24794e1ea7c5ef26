"""
runner.py - Stream driver for the client ledger

Feeds transaction streams through a Ledger and collects the outcome:
1. process() - sequential processing in input order
2. process_csv() - CSV in, snapshot CSV out, with a RunSummary
3. shard_by_client() / process_sharded() - client-partitioned parallel processing

Sharding is valid because every transaction only ever touches the account and
deposits of its own client: each shard keeps its clients' input order, and the
only join point is the final snapshot merge. Merged snapshots are ordered by
the global position at which each client was first named, which is exactly
the order a sequential run produces.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, TextIO, Tuple
import logging
import multiprocessing
import queue

from .account import Account
from .core import (
    Transaction, Money, AccountSnapshot, TxIdScope, InvariantViolation,
)
from .csv_format import TransactionReader, write_snapshots
from .ledger import Ledger

_log = logging.getLogger(__name__)

# Transactions per message sent to a shard worker
SHARD_CHUNK_SIZE = 4096
# Messages a shard worker's inbox holds before the feeder waits
QUEUE_DEPTH = 4
_POLL_SECONDS = 1.0
_STOP = None

# (first-seen position, client, available raw, held raw, locked)
_ShardRow = Tuple[int, int, int, int, bool]


@dataclass
class RunSummary:
    """Counters describing one processed stream."""
    processed: int = 0
    applied: int = 0
    malformed: int = 0
    clients: int = 0
    rejections: Counter = field(default_factory=Counter)

    @property
    def rejected(self) -> int:
        return sum(self.rejections.values())

    def log(self) -> None:
        _log.info(
            "processed %d transactions: %d applied, %d rejected, %d malformed, %d clients",
            self.processed, self.applied, self.rejected, self.malformed, self.clients,
        )
        for reason, count in sorted(self.rejections.items()):
            _log.info("  %s: %d", reason, count)


class _Counting:
    """Iterable wrapper counting the items that pass through it."""

    def __init__(self, items: Iterable[Transaction]):
        self._items = items
        self.count = 0

    def __iter__(self):
        for item in self._items:
            self.count += 1
            yield item


def process(
    transactions: Iterable[Transaction],
    ledger: Optional[Ledger] = None,
    **ledger_kwargs: Any,
) -> Ledger:
    """
    Apply transactions in order.

    Rejected transactions are counted on the ledger and skipped;
    InvariantViolation propagates and stops processing.

    Args:
        transactions: Decoded transactions in stream order
        ledger: Ledger to apply to (default: a new Ledger(**ledger_kwargs))

    Returns:
        The ledger after the last transaction
    """
    if ledger is None:
        ledger = Ledger(**ledger_kwargs)
    elif ledger_kwargs:
        raise ValueError("ledger_kwargs cannot be combined with an existing ledger")
    for tx in transactions:
        ledger.execute(tx)
    return ledger


def shard_by_client(
    transactions: Iterable[Transaction],
    shards: int,
    chunk_size: int = SHARD_CHUNK_SIZE,
) -> Iterator[Tuple[int, List[Tuple[int, Transaction]]]]:
    """
    Partition a stream by client id, lazily.

    Every transaction is paired with its position in the original stream.
    A client always lands in shard client_id % shards, and the transactions
    within each shard keep their input order. Yields (shard, chunk) pairs as
    soon as a shard has buffered chunk_size transactions, then flushes the
    remainders once the input is exhausted, so at most shards * chunk_size
    transactions are held at any time.

    Raises:
        ValueError: If shards or chunk_size is below 1 (raised immediately)
    """
    if shards < 1:
        raise ValueError(f"shards must be at least 1, got {shards}")
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
    return _chunks(transactions, shards, chunk_size)


def _chunks(transactions, shards, chunk_size):
    buffers: List[List[Tuple[int, Transaction]]] = [[] for _ in range(shards)]
    for position, tx in enumerate(transactions):
        shard = tx.client_id % shards
        buffers[shard].append((position, tx))
        if len(buffers[shard]) >= chunk_size:
            yield shard, buffers[shard]
            buffers[shard] = []
    for shard, buffer in enumerate(buffers):
        if buffer:
            yield shard, buffer


def _shard_worker(inbox, outbox, ledger_kwargs: Dict[str, Any]) -> None:
    """
    Worker process entry point.

    Applies chunks from inbox until the stop marker, then posts one
    (name, status, payload) message to outbox. Messages are plain tuples so
    nothing custom is pickled. After an InvariantViolation the worker keeps
    draining its inbox so the feeding process never blocks on it.
    """
    ledger = Ledger(**ledger_kwargs)
    first_seen: Dict[int, int] = {}
    failure: Optional[str] = None
    for chunk in iter(inbox.get, _STOP):
        if failure is not None:
            continue
        for position, row in chunk:
            tx = Transaction.from_row(row)
            first_seen.setdefault(tx.client_id, position)
            try:
                ledger.execute(tx)
            except InvariantViolation as e:
                failure = str(e)
                break

    if failure is not None:
        outbox.put((ledger.name, "error", failure))
        return
    rows = [
        (first_seen[a.client_id], a.client_id, a.available.raw, a.held.raw, a.locked)
        for a in ledger.accounts.values()
    ]
    outbox.put((ledger.name, "done", (rows, ledger.applied_count, dict(ledger.rejections))))


def _send(inbox, item, worker: multiprocessing.Process) -> None:
    """Put item on a bounded inbox, waiting while the worker is alive."""
    while True:
        try:
            inbox.put(item, timeout=_POLL_SECONDS)
            return
        except queue.Full:
            if not worker.is_alive():
                raise RuntimeError(
                    f"{worker.name} exited with code {worker.exitcode}"
                ) from None


def _collect(outbox, workers: List[multiprocessing.Process]) -> Dict[str, Tuple[str, Any]]:
    """Wait for one message per worker."""
    results: Dict[str, Tuple[str, Any]] = {}
    suspects: Set[str] = set()
    while len(results) < len(workers):
        try:
            name, status, payload = outbox.get(timeout=_POLL_SECONDS)
        except queue.Empty:
            # A worker seen dead on two polls in a row never posted its result
            dead = {
                w.name for w in workers
                if w.name not in results and not w.is_alive()
            }
            lost = dead & suspects
            if lost:
                raise RuntimeError(f"{', '.join(sorted(lost))} exited without a result")
            suspects = dead
            continue
        results[name] = (status, payload)
    return results


def process_sharded(
    transactions: Iterable[Transaction],
    shards: int,
    chunk_size: int = SHARD_CHUNK_SIZE,
    **ledger_kwargs: Any,
) -> Tuple[List[AccountSnapshot], RunSummary]:
    """
    Process a stream in client-partitioned worker processes.

    One long-lived worker per shard owns that shard's Ledger. The stream is
    consumed lazily and sent in chunks through a bounded queue per worker,
    so memory stays proportional to shards * QUEUE_DEPTH * chunk_size rather
    than to the stream length.

    Deposit tx ids are checked per client: a global check would need state
    shared between shards.

    Args:
        transactions: Decoded transactions in stream order
        shards: Number of partitions, one worker process each
        chunk_size: Transactions per message to a worker
        **ledger_kwargs: Passed to each shard's Ledger

    Returns:
        (snapshots in sequential-run order, summary)

    Raises:
        ValueError: If tx_id_scope is anything but TxIdScope.PER_CLIENT
        InvariantViolation: If any shard hit one
        RuntimeError: If a worker process died
    """
    scope = ledger_kwargs.pop("tx_id_scope", TxIdScope.PER_CLIENT)
    if scope is not TxIdScope.PER_CLIENT:
        raise ValueError("sharded processing requires tx_id_scope=TxIdScope.PER_CLIENT")
    ledger_kwargs.pop("name", None)
    chunks = shard_by_client(transactions, shards, chunk_size)

    outbox = multiprocessing.Queue()
    inboxes = []
    workers = []
    for i in range(shards):
        inbox = multiprocessing.Queue(maxsize=QUEUE_DEPTH)
        worker = multiprocessing.Process(
            target=_shard_worker,
            name=f"shard-{i}",
            args=(
                inbox,
                outbox,
                dict(ledger_kwargs, name=f"shard-{i}", tx_id_scope=TxIdScope.PER_CLIENT),
            ),
            daemon=True,
        )
        worker.start()
        inboxes.append(inbox)
        workers.append(worker)

    summary = RunSummary()
    finished = False
    try:
        for shard, chunk in chunks:
            summary.processed += len(chunk)
            _send(inboxes[shard], [(p, tx.to_row()) for p, tx in chunk], workers[shard])
        for inbox, worker in zip(inboxes, workers):
            _send(inbox, _STOP, worker)
        results = _collect(outbox, workers)
        finished = True
    finally:
        for worker in workers:
            if not finished and worker.is_alive():
                worker.terminate()
            worker.join()

    merged: List[_ShardRow] = []
    for worker in workers:
        status, payload = results[worker.name]
        if status == "error":
            raise InvariantViolation(f"{worker.name}: {payload}")
        rows, applied, rejections = payload
        merged.extend(rows)
        summary.applied += applied
        summary.rejections.update(rejections)

    merged.sort()
    snapshots = [
        Account(client_id, Money(available), Money(held), locked).snapshot()
        for _, client_id, available, held, locked in merged
    ]
    summary.clients = len(snapshots)
    _log.debug("merged %d clients from %d shards", summary.clients, shards)
    return snapshots, summary


def process_csv(
    source: TextIO,
    sink: TextIO,
    shards: int = 1,
    **ledger_kwargs: Any,
) -> RunSummary:
    """
    Read transactions from a CSV stream and write the final balances as CSV.

    Args:
        source: Input CSV (header: type,client,tx,amount)
        sink: Output CSV (header: client,available,held,total,locked)
        shards: More than 1 runs process_sharded()
        **ledger_kwargs: Passed to Ledger

    Returns:
        RunSummary of the run

    Raises:
        MissingColumn: If the input header is incomplete
        InvariantViolation: If ledger state became corrupt
    """
    reader = TransactionReader(source)
    if shards > 1:
        snapshots, summary = process_sharded(reader, shards, **ledger_kwargs)
    else:
        counted = _Counting(reader)
        ledger = process(counted, **ledger_kwargs)
        snapshots = ledger.snapshot()
        summary = RunSummary(
            processed=counted.count,
            applied=ledger.applied_count,
            clients=len(snapshots),
            rejections=Counter(ledger.rejections),
        )
    summary.malformed = reader.malformed
    write_snapshots(snapshots, sink)
    summary.log()
    return summary
