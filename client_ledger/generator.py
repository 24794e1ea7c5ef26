"""
generator.py - Synthetic transaction streams

Produces realistic input for load testing and benchmarks:
- Deposits and withdrawals for random clients with amounts in [0, 1)
- Disputes that target deposits still in the NORMAL state
- Resolves and chargebacks that target DISPUTED deposits

Each draw consumes one tx id. A dispute, resolve or chargeback draw with no
valid target is skipped, so tx ids of deposits and withdrawals have gaps.
Random numbers come from numpy in chunks; the same seed always produces the
same stream.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from .core import (
    Transaction, TransactionKind, DisputeState, Money,
    SCALE, CLIENT_ID_MAX, TX_ID_MAX,
)

# Relative frequency of each draw.
DEFAULT_WEIGHTS: Mapping[TransactionKind, float] = {
    TransactionKind.DEPOSIT: 100,
    TransactionKind.WITHDRAWAL: 96,
    TransactionKind.DISPUTE: 2,
    TransactionKind.RESOLVE: 1,
    TransactionKind.CHARGEBACK: 1,
}

CHUNK_SIZE = 65_536


def generate(
    count: int,
    max_clients: int = 1000,
    seed: Optional[int] = None,
    weights: Optional[Mapping[TransactionKind, float]] = None,
) -> Iterator[Transaction]:
    """
    Generate a synthetic transaction stream.

    Args:
        count: Number of draws (upper bound on transactions yielded)
        max_clients: Client ids are drawn from 1..max_clients
        seed: Seed for numpy.random.default_rng (None = fresh entropy)
        weights: Relative frequency per TransactionKind (default: DEFAULT_WEIGHTS)

    Returns:
        Iterator over the transactions in stream order

    Raises:
        ValueError: On an invalid argument, before anything is drawn
    """
    if count < 0 or count > TX_ID_MAX + 1:
        raise ValueError(f"count must be in 0..{TX_ID_MAX + 1}, got {count}")
    if not 1 <= max_clients <= CLIENT_ID_MAX:
        raise ValueError(f"max_clients must be in 1..{CLIENT_ID_MAX}, got {max_clients}")

    weights = DEFAULT_WEIGHTS if weights is None else weights
    kinds = [kind for kind in TransactionKind if weights.get(kind, 0) > 0]
    if not kinds:
        raise ValueError("at least one transaction kind needs a positive weight")
    p = np.array([weights[kind] for kind in kinds], dtype=float)
    p /= p.sum()
    return _draw(count, max_clients, np.random.default_rng(seed), kinds, p)


def _draw(
    count: int,
    max_clients: int,
    rng: np.random.Generator,
    kinds: List[TransactionKind],
    p: np.ndarray,
) -> Iterator[Transaction]:
    deposits: List[Tuple[int, int]] = []   # (tx_id, client_id)
    disputed: List[Tuple[int, int]] = []   # may hold stale entries
    states: Dict[int, DisputeState] = {}

    tx_id = 0
    while tx_id < count:
        n = min(CHUNK_SIZE, count - tx_id)
        kind_idx = rng.choice(len(kinds), size=n, p=p)
        clients = rng.integers(1, max_clients + 1, size=n)
        amounts = rng.integers(0, SCALE, size=n)
        picks = rng.random(size=n)

        for i in range(n):
            kind = kinds[kind_idx[i]]
            if kind is TransactionKind.DEPOSIT:
                client_id = int(clients[i])
                deposits.append((tx_id, client_id))
                states[tx_id] = DisputeState.NORMAL
                yield Transaction.deposit(client_id, tx_id, Money(int(amounts[i])))
            elif kind is TransactionKind.WITHDRAWAL:
                yield Transaction.withdrawal(int(clients[i]), tx_id, Money(int(amounts[i])))
            elif kind is TransactionKind.DISPUTE:
                if deposits:
                    target, client_id = deposits[int(picks[i] * len(deposits))]
                    if states[target] is DisputeState.NORMAL:
                        states[target] = DisputeState.DISPUTED
                        disputed.append((target, client_id))
                        yield Transaction.dispute(client_id, target)
            elif disputed:
                target, client_id = disputed[int(picks[i] * len(disputed))]
                if states[target] is DisputeState.DISPUTED:
                    if kind is TransactionKind.RESOLVE:
                        states[target] = DisputeState.NORMAL
                        yield Transaction.resolve(client_id, target)
                    else:
                        states[target] = DisputeState.CHARGED_BACK
                        yield Transaction.chargeback(client_id, target)
            tx_id += 1
