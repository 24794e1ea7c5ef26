"""
csv_format.py - CSV input and output for the client ledger

This module sits outside the ledger core:
1. TransactionReader - decodes a CSV stream into Transaction records
2. write_snapshots() - renders account snapshots as CSV
3. write_transactions() - renders a transaction stream as CSV (generator output)

Input format (header row required, columns in any order):

    type,client,tx,amount
    deposit,1,1,1.0
    dispute,1,1,

Malformed rows are logged, counted and skipped; they never reach the Ledger
and never stop the stream.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, TextIO
import csv
import logging
import re

from .core import (
    Transaction, TransactionKind, Money, AccountSnapshot,
    CurrencyOverflow,
)

_log = logging.getLogger(__name__)

INPUT_COLUMNS = ("type", "client", "tx", "amount")
OUTPUT_COLUMNS = ("client", "available", "held", "total", "locked")

# Unsigned ASCII decimal: no sign, exponent, digit separators or other scripts
_AMOUNT = re.compile(r"[0-9]+(\.[0-9]*)?|\.[0-9]+")


class MalformedRecord(ValueError):
    """Raised when a CSV row cannot be decoded into a Transaction."""
    pass


class MissingColumn(ValueError):
    """Raised when the header row lacks a required column."""
    pass


@dataclass(frozen=True, slots=True)
class FieldMap:
    """Column index of each input field, taken from the header row."""
    type: int
    client: int
    tx: int
    amount: int
    width: int

    @classmethod
    def from_header(cls, header: Sequence[str]) -> FieldMap:
        """
        Locate the required columns by name.

        Raises:
            MissingColumn: If any of INPUT_COLUMNS is absent.
        """
        index = {}
        for i, name in enumerate(header):
            index.setdefault(name.strip().lower(), i)
        missing = [name for name in INPUT_COLUMNS if name not in index]
        if missing:
            raise MissingColumn(f"input header is missing column(s): {', '.join(missing)}")
        return cls(
            type=index["type"],
            client=index["client"],
            tx=index["tx"],
            amount=index["amount"],
            width=len(header),
        )


def _parse_id(text: str, field: str) -> int:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise MalformedRecord(f"{field} must be an unsigned integer, got {text!r}")
    return int(text)


def _parse_amount(text: str) -> Money:
    text = text.strip()
    if not _AMOUNT.fullmatch(text):
        raise MalformedRecord(f"amount must be a plain non-negative decimal, got {text!r}")
    try:
        amount = Money.of(text)
    except (ValueError, CurrencyOverflow) as e:
        raise MalformedRecord(str(e)) from None
    return amount


def parse_row(row: Sequence[str], fields: FieldMap) -> Transaction:
    """
    Decode one CSV row.

    Raises:
        MalformedRecord: Wrong field count, unknown kind, bad id or amount.
    """
    if len(row) != fields.width:
        raise MalformedRecord(f"expected {fields.width} fields, got {len(row)}")
    try:
        kind = TransactionKind.parse(row[fields.type])
    except ValueError as e:
        raise MalformedRecord(str(e)) from None
    client_id = _parse_id(row[fields.client], "client")
    tx_id = _parse_id(row[fields.tx], "tx")
    amount_text = row[fields.amount].strip()

    if kind.carries_amount:
        if not amount_text:
            raise MalformedRecord(f"{kind.value} requires an amount")
        amount = _parse_amount(amount_text)
    else:
        if amount_text:
            raise MalformedRecord(f"{kind.value} must not carry an amount")
        amount = None

    try:
        return Transaction(kind, client_id, tx_id, amount)
    except ValueError as e:
        raise MalformedRecord(str(e)) from None


class TransactionReader:
    """
    Iterate the Transactions of a CSV stream.

    Attributes:
        malformed: Number of rows skipped so far.

    Example:
        reader = TransactionReader(open("transactions.csv", newline=""))
        for tx in reader:
            ledger.execute(tx)
        print(reader.malformed, "rows skipped")
    """

    def __init__(self, stream: TextIO):
        self._rows = csv.reader(stream)
        self.malformed = 0
        self._fields: Optional[FieldMap] = None

    @property
    def fields(self) -> FieldMap:
        """
        Column layout, read from the header row on first access.

        Raises:
            MissingColumn: If the stream is empty or the header is incomplete.
        """
        if self._fields is None:
            header = next(self._rows, None)
            if header is None:
                raise MissingColumn("input is empty; expected a header row")
            self._fields = FieldMap.from_header(header)
        return self._fields

    def __iter__(self) -> Iterator[Transaction]:
        fields = self.fields
        for row in self._rows:
            if not row:
                continue
            try:
                yield parse_row(row, fields)
            except MalformedRecord as e:
                self.malformed += 1
                _log.warning(
                    "skipping malformed record at line %s: %s", self._rows.line_num, e
                )


def read_transactions(stream: TextIO) -> Iterator[Transaction]:
    """Yield the well-formed Transactions of a CSV stream."""
    return iter(TransactionReader(stream))


def write_snapshots(snapshots: Iterable[AccountSnapshot], stream: TextIO) -> int:
    """
    Write account snapshots as CSV.

    Returns:
        Number of client rows written
    """
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_COLUMNS)
    count = 0
    for snap in snapshots:
        writer.writerow((
            snap.client_id,
            str(snap.available),
            str(snap.held),
            str(snap.total),
            "true" if snap.locked else "false",
        ))
        count += 1
    return count


def write_transactions(transactions: Iterable[Transaction], stream: TextIO) -> int:
    """
    Write transactions as CSV in the input format.

    Returns:
        Number of transaction rows written
    """
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(INPUT_COLUMNS)
    count = 0
    for tx in transactions:
        amount = str(tx.amount) if tx.amount is not None else ""
        writer.writerow((tx.kind.value, tx.client_id, tx.tx_id, amount))
        count += 1
    return count
