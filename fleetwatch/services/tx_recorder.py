import csv
import logging
import os
from typing import Iterable, TextIO

from ..models.transaction_models import TransactionInfo

logger = logging.getLogger("fleetwatch.tx_recorder")

FORMATS = ("text", "csv", "json")

CSV_FIELDS = [
    "timestamp",
    "type",
    "hash",
    "from",
    "to",
    "value_ikas",
    "gas_fee_ikas",
    "l1_fee_kas",
    "status",
    "block_number",
]


class TransactionRecorder:
    """
    Best-effort append-only transaction log.

    - text: one human-readable block per transaction
    - csv: fixed 10 columns, header written once when the file is empty
    - json: JSONL, one full TransactionInfo per line

    Write failures are logged and swallowed, recording must never take the
    monitor down.
    """

    def __init__(self, path: str, fmt: str = "text"):
        if fmt not in FORMATS:
            raise ValueError(f"unknown record format {fmt!r}, expected one of {FORMATS}")
        self.path = path
        self.fmt = fmt

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._header_written = os.path.exists(path) and os.path.getsize(path) > 0

    def record(self, transactions: Iterable[TransactionInfo]) -> int:
        """Append transactions, returns how many were written."""
        txs = list(transactions)
        if not txs:
            return 0
        try:
            with open(self.path, "a", encoding="utf-8", newline="") as f:
                for tx in txs:
                    self._write(f, tx)
        except OSError as exc:
            logger.warning("Transaction recorder write to %s failed: %s", self.path, exc)
            return 0
        return len(txs)

    def _write(self, f: TextIO, tx: TransactionInfo) -> None:
        if self.fmt == "json":
            f.write(tx.model_dump_json(by_alias=True) + "\n")
        elif self.fmt == "csv":
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
            if not self._header_written:
                writer.writeheader()
                self._header_written = True
            writer.writerow(csv_row(tx))
        else:
            f.write(format_text_block(tx))


def csv_row(tx: TransactionInfo) -> dict:
    return {
        "timestamp": tx.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        "type": tx.tx_type.value,
        "hash": tx.hash,
        "from": tx.from_address,
        "to": tx.to or "",
        "value_ikas": tx.value_ikas(),
        "gas_fee_ikas": tx.gas_fee_ikas(),
        "l1_fee_kas": tx.l1_fee if tx.l1_fee is not None else 0.0,
        "status": "true" if tx.status else "false",
        "block_number": tx.block_number,
    }


def format_text_block(tx: TransactionInfo) -> str:
    lines = [
        f"[{tx.timestamp.strftime('%H:%M:%S')}] {tx.tx_type.value}",
        f"  Hash: {tx.hash}",
        f"  From: {tx.from_address}",
    ]
    if tx.to:
        lines.append(f"  To:   {tx.to}")
    lines.append(f"  Value: {tx.value_ikas()} iKAS")
    lines.append(f"  Gas: {tx.gas_fee_ikas()} iKAS")
    if tx.l1_fee is not None:
        lines.append(f"  L1 Fee: {tx.l1_fee} KAS")
    lines.append(f"  Status: {'Success' if tx.status else 'Failed'}")
    return "\n".join(lines) + "\n\n"
