"""
cli.py - Command line for the client ledger

Commands:
    process   Apply a transaction CSV and print final balances as CSV
    generate  Write a synthetic transaction CSV

Balances and generated transactions go to stdout (or --output); logs go to
stderr.

Exit codes:
    0  success
    1  ledger invariant violated (output is not trustworthy)
    2  usage or input error
"""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, TextIO

from .core import InvariantViolation, LockPolicy, TxIdScope
from .csv_format import MissingColumn, write_transactions
from .generator import generate
from .runner import process_csv
from .utils import timing

_log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVARIANT = 1
EXIT_USAGE = 2


@contextmanager
def _open_output(path: Optional[str]) -> Iterator[TextIO]:
    if path is None or path == "-":
        yield sys.stdout
        sys.stdout.flush()
    else:
        with open(path, "w", newline="") as f:
            yield f


@timing
def _cmd_process(args: argparse.Namespace) -> int:
    tx_id_scope = TxIdScope(args.tx_id_scope)
    if args.shards > 1 and tx_id_scope is not TxIdScope.PER_CLIENT:
        _log.error("--shards requires --tx-id-scope per-client")
        return EXIT_USAGE
    try:
        with open(args.input, newline="") as source, _open_output(args.output) as sink:
            process_csv(
                source,
                sink,
                shards=args.shards,
                verbose=args.verbose >= 3,
                lock_policy=LockPolicy(args.lock_policy),
                tx_id_scope=tx_id_scope,
            )
    except OSError as e:
        _log.error("cannot process %s: %s", args.input, e)
        return EXIT_USAGE
    except MissingColumn as e:
        _log.error("%s: %s", args.input, e)
        return EXIT_USAGE
    except InvariantViolation as e:
        _log.critical("aborted: %s", e)
        return EXIT_INVARIANT
    return EXIT_OK


@timing
def _cmd_generate(args: argparse.Namespace) -> int:
    try:
        transactions = generate(args.count, max_clients=args.clients, seed=args.seed)
        with _open_output(args.output) as sink:
            written = write_transactions(transactions, sink)
    except ValueError as e:
        _log.error("%s", e)
        return EXIT_USAGE
    except OSError as e:
        _log.error("cannot write %s: %s", args.output, e)
        return EXIT_USAGE
    _log.info("generated %d transactions", written)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="client-ledger",
        description="Process client transaction streams into final account balances.",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="-v: run summary, -vv: every rejection, -vvv: every transaction",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process", help="apply a transaction CSV and print balances")
    p.add_argument("input", help="transaction CSV (type,client,tx,amount)")
    p.add_argument("-o", "--output", help="balance CSV path (default: stdout)")
    p.add_argument("--shards", type=int, default=1,
                   help="partition clients across this many worker processes")
    p.add_argument("--lock-policy", choices=[policy.value for policy in LockPolicy],
                   default=LockPolicy.ALLOW_DISPUTES.value,
                   help="what a locked account still accepts")
    p.add_argument("--tx-id-scope", choices=[scope.value for scope in TxIdScope],
                   default=TxIdScope.GLOBAL.value,
                   help="uniqueness scope of deposit tx ids")
    p.set_defaults(func=_cmd_process)

    g = sub.add_parser("generate", help="write a synthetic transaction CSV")
    g.add_argument("-n", "--count", type=int, default=100_000, help="number of draws")
    g.add_argument("--clients", type=int, default=1000, help="number of distinct clients")
    g.add_argument("--seed", type=int, default=None, help="random seed")
    g.add_argument("-o", "--output", help="transaction CSV path (default: stdout)")
    g.set_defaults(func=_cmd_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
