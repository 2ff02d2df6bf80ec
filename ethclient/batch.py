"""Batch transaction pipeline driven by a sheet or text batch file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Sequence

from eth_abi.exceptions import EncodingError

from .entries import (
    DEFAULT_SHEET,
    EntryWriter,
    SheetEntryReader,
    SheetEntryReadWriter,
    TextEntryReader,
    TextEntryReadWriter,
    TransactionEntry,
)
from .keystore import SignError
from .macro import MacroError, MacroParser
from .rpc_client import RPCError, RPCTransportError
from .tx_sender import CallMessage, TransactionSender
from .validation import ValidationError, validate_arguments

logger = logging.getLogger(__name__)

PassphraseProvider = Callable[[], str]


class InvalidBatchIndex(ValueError):
    """Raised when the requested batch slice is empty or out of order."""


@dataclass
class BatchOutcome:
    entry: TransactionEntry
    tx_hash: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_sheet(path: Path) -> bool:
    return path.suffix.lower() == ".xlsx"


def open_entry_source(path: str | Path, sheet: str | None = None, writable: bool = False):
    """Open the reader (or read-writer) matching the extension of ``path``."""

    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"batch file not found: {path}")
    if _is_sheet(path):
        sheet = sheet or DEFAULT_SHEET
        return SheetEntryReadWriter(path, sheet) if writable else SheetEntryReader(path, sheet)
    return TextEntryReadWriter(path) if writable else TextEntryReader(path)


def select_entries(
    entries: Sequence[TransactionEntry], begin: int = 0, end: int = 0
) -> List[TransactionEntry]:
    """Return ``entries[begin:end]``; ``end == 0`` selects through the last entry."""

    if end == 0:
        end = len(entries)
    if begin < 0 or begin >= end:
        raise InvalidBatchIndex(f"invalid batch index: begin={begin}, end={end}")
    return list(entries[begin:end])


def _resolve_call(entry: TransactionEntry, macro_parser: MacroParser | None) -> CallMessage:
    if entry.macro is None:
        return CallMessage(entry.sender, entry.receiver, entry.value, entry.data)
    if macro_parser is None:
        raise MacroError(f"no token registry available to resolve {entry.macro!r}")
    result = macro_parser.parse(entry.macro, entry.sender, entry.receiver)
    return CallMessage(entry.sender, result.contract_address, entry.value, result.payload)


def send_batch(
    entries: Sequence[TransactionEntry],
    sender: TransactionSender,
    *,
    passphrase_provider: PassphraseProvider,
    macro_parser: MacroParser | None = None,
    writer: EntryWriter | None = None,
) -> List[BatchOutcome]:
    """Submit ``entries`` one after another without waiting for receipts.

    A failing entry is marked, logged and skipped; the rest of the batch still
    runs. Submitted hashes are recorded through ``writer`` when one is given.
    """

    outcomes: List[BatchOutcome] = []
    for entry in entries:
        outcome = BatchOutcome(entry)
        outcomes.append(outcome)
        try:
            call = _resolve_call(entry, macro_parser)
            validate_arguments(call.sender, call.receiver, call.value, call.data)
            passphrase = entry.passphrase or passphrase_provider()
            result = sender.send(call, passphrase, wait=False)
        except (
            MacroError,
            EncodingError,
            ValidationError,
            SignError,
            RPCError,
            RPCTransportError,
        ) as exc:
            entry.status = False
            outcome.error = exc
            logger.error("Entry %d (%s) failed: %s", entry.position, entry.sender, exc)
            continue

        entry.tx_hash = result.tx_hash
        entry.status = True
        outcome.tx_hash = result.tx_hash
        logger.info("Entry %d submitted as %s", entry.position, result.tx_hash)
        if writer is not None:
            writer.write_string(writer.locator(entry), result.tx_hash)

    sent = sum(1 for outcome in outcomes if outcome.ok)
    logger.info("Batch finished: %d submitted, %d failed", sent, len(outcomes) - sent)
    return outcomes


def run_batch_file(
    path: str | Path,
    sender: TransactionSender,
    *,
    begin: int = 0,
    end: int = 0,
    sheet: str | None = None,
    passphrase_provider: PassphraseProvider,
    macro_parser: MacroParser | None = None,
    annotate: bool = False,
) -> List[BatchOutcome]:
    source = open_entry_source(path, sheet=sheet, writable=annotate)
    with source:
        entries = source.read_all()
        return send_batch(
            select_entries(entries, begin, end),
            sender,
            passphrase_provider=passphrase_provider,
            macro_parser=macro_parser,
            writer=source if annotate else None,
        )
