"""Batch file readers and writers.

A batch source is an ordered list of transaction records with five positional
fields and an optional sixth::

    <sender>, <receiver>, <value>, <payload>, <passphrase>[, <tx hash>]

Two backing formats are supported: ``.xlsx`` workbooks (first row is a header)
and comma-separated text files. Writers annotate the source after submission,
typically by recording the resulting transaction hash next to each record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, List, Protocol, Sequence

from openpyxl import load_workbook
from openpyxl.utils.cell import coordinate_from_string
from openpyxl.utils.exceptions import CellCoordinatesException

logger = logging.getLogger(__name__)

DEFAULT_SHEET = "Sheet1"
FIELD_NUMBER = 5
FLOAT_EXACT_LIMIT = 2**53
HASH_COLUMN = "F"

CorruptCallback = Callable[[int, "CorruptRecord"], None]


class EntryError(RuntimeError):
    """Base class for batch source failures."""


class EndOfEntries(EntryError):
    """Raised by ``read`` once every record has been consumed."""


class EmptyContent(EntryError):
    """Raised when a batch source holds no rows at all."""


class RowIndexExceeded(EntryError):
    """Raised when a writer is asked to annotate a record that does not exist."""


class CorruptRecord(EntryError):
    """Raised when a single record cannot be parsed."""

    def __init__(self, position: int, reason: str) -> None:
        super().__init__(f"corrupt record at {position}: {reason}")
        self.position = position
        self.reason = reason


@dataclass
class TransactionEntry:
    """One transaction described by a batch record."""

    sender: str
    receiver: str
    value: int
    data: bytes = b""
    passphrase: str = ""
    macro: str | None = None
    tx_hash: str | None = None
    status: bool | None = None
    position: int = 0


def _decode_payload(raw: str, position: int) -> bytes:
    digits = raw[2:] if raw.startswith(("0x", "0X")) else raw
    if len(digits) % 2:
        digits = "0" + digits
    try:
        return bytes.fromhex(digits)
    except ValueError as exc:
        raise CorruptRecord(position, f"invalid payload hex {raw!r}") from exc


def _decode_hash(raw: str, position: int) -> str:
    digits = raw[2:] if raw.startswith(("0x", "0X")) else raw
    try:
        decoded = bytes.fromhex(digits)
    except ValueError as exc:
        raise CorruptRecord(position, f"invalid transaction hash {raw!r}") from exc
    if len(decoded) != 32:
        raise CorruptRecord(position, f"transaction hash must be 32 bytes: {raw!r}")
    return "0x" + decoded.hex()


def parse_record(fields: Sequence[str], position: int) -> TransactionEntry:
    """Build a :class:`TransactionEntry` from already split record fields."""

    if len(fields) < FIELD_NUMBER:
        raise CorruptRecord(position, f"expected at least {FIELD_NUMBER} fields, got {len(fields)}")
    sender, receiver, raw_value, raw_data, passphrase = (field.strip() for field in fields[:FIELD_NUMBER])
    try:
        value = int(raw_value, 10)
    except ValueError as exc:
        raise CorruptRecord(position, f"invalid transfer value {raw_value!r}") from exc

    macro = None
    data = b""
    if raw_data.startswith("#"):
        macro = raw_data
    elif raw_data:
        data = _decode_payload(raw_data, position)

    tx_hash = None
    if len(fields) > FIELD_NUMBER and fields[FIELD_NUMBER].strip():
        tx_hash = _decode_hash(fields[FIELD_NUMBER].strip(), position)

    return TransactionEntry(
        sender=sender,
        receiver=receiver,
        value=value,
        data=data,
        passphrase=passphrase,
        macro=macro,
        tx_hash=tx_hash,
        position=position,
    )


def _report_corrupt(error: CorruptRecord, on_corrupt: CorruptCallback | None) -> None:
    logger.error("Skipping %s", error)
    if on_corrupt is not None:
        on_corrupt(error.position, error)


class EntryReader(Protocol):
    """Sequential access to the records of a batch source."""

    def read(self) -> TransactionEntry:
        """Return the next record; raise :class:`EndOfEntries` when exhausted."""

    def read_all(self, on_corrupt: CorruptCallback | None = None) -> List[TransactionEntry]:
        """Return every remaining valid record, skipping corrupt ones."""


class EntryWriter(Protocol):
    """Annotation access to the records of a batch source."""

    def write_string(self, locator: str, value: str) -> None:
        ...

    def locator(self, entry: TransactionEntry) -> str:
        ...

    def flush(self) -> None:
        ...


# Spreadsheet backing ----------------------------------------------------------


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        if abs(value) > FLOAT_EXACT_LIMIT:
            logger.warning("Cell value %r exceeds float precision, store it as text", value)
        return str(int(value))
    return str(value)


class SheetEntryReader:
    """Read records from a worksheet; row 1 is a header and never parsed."""

    def __init__(self, path: str | Path, sheet: str = DEFAULT_SHEET) -> None:
        self.path = Path(path)
        self.sheet = sheet
        workbook = load_workbook(self.path, data_only=True)
        try:
            if sheet not in workbook.sheetnames:
                raise EntryError(f"Sheet {sheet!r} not found in {self.path}")
            rows = [
                [_cell_text(cell) for cell in row]
                for row in workbook[sheet].iter_rows(values_only=True)
            ]
        finally:
            workbook.close()
        while rows and not any(cell.strip() for cell in rows[-1]):
            rows.pop()
        self._rows = rows
        self._index = 0

    def read(self) -> TransactionEntry:
        if not self._rows:
            raise EmptyContent(f"empty file content: {self.path}")
        self._index += 1
        if self._index >= len(self._rows):
            raise EndOfEntries(str(self.path))
        return parse_record(self._rows[self._index], self._index)

    def read_all(self, on_corrupt: CorruptCallback | None = None) -> List[TransactionEntry]:
        if not self._rows:
            raise EmptyContent(f"empty file content: {self.path}")
        entries: List[TransactionEntry] = []
        for position in range(1, len(self._rows)):
            try:
                entries.append(parse_record(self._rows[position], position))
            except CorruptRecord as exc:
                _report_corrupt(exc, on_corrupt)
        self._index = len(self._rows)
        return entries

    def close(self) -> None:
        """The workbook is released on load; nothing stays open."""

    def __enter__(self) -> "SheetEntryReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SheetEntryWriter:
    """Set cell values in a worksheet; saved to disk on :meth:`flush`."""

    def __init__(self, path: str | Path, sheet: str = DEFAULT_SHEET) -> None:
        self.path = Path(path)
        self.sheet = sheet
        self._workbook = load_workbook(self.path)
        if sheet not in self._workbook.sheetnames:
            raise EntryError(f"Sheet {sheet!r} not found in {self.path}")
        self._worksheet = self._workbook[sheet]
        self._flushed = False

    def write_string(self, locator: str, value: str) -> None:
        try:
            coordinate_from_string(locator)
        except CellCoordinatesException as exc:
            raise ValueError(f"invalid cell coordinate {locator!r}") from exc
        self._worksheet[locator] = value

    def locator(self, entry: TransactionEntry) -> str:
        return f"{HASH_COLUMN}{entry.position + 1}"

    def flush(self) -> None:
        if self._flushed:
            return
        self._flushed = True
        self._workbook.save(self.path)
        logger.debug("Saved annotations to %s", self.path)

    def __enter__(self) -> "SheetEntryWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()


class SheetEntryReadWriter:
    def __init__(self, path: str | Path, sheet: str = DEFAULT_SHEET) -> None:
        self.reader = SheetEntryReader(path, sheet)
        self.writer = SheetEntryWriter(path, sheet)

    def read(self) -> TransactionEntry:
        return self.reader.read()

    def read_all(self, on_corrupt: CorruptCallback | None = None) -> List[TransactionEntry]:
        return self.reader.read_all(on_corrupt)

    def write_string(self, locator: str, value: str) -> None:
        self.writer.write_string(locator, value)

    def locator(self, entry: TransactionEntry) -> str:
        return self.writer.locator(entry)

    def flush(self) -> None:
        self.writer.flush()

    def __enter__(self) -> "SheetEntryReadWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()


# Delimited text backing -------------------------------------------------------


class TextEntryReader:
    """Read comma-separated records, one per line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._handle = self.path.open("r", encoding="utf-8", newline="")
        self._lines: Iterator[str] = iter(self._handle)
        self._position = -1

    def _next_line(self) -> str | None:
        line = next(self._lines, None)
        if line is None:
            self.close()
            return None
        self._position += 1
        return line.rstrip("\r\n")

    def read(self) -> TransactionEntry:
        line = self._next_line()
        if line is None:
            raise EndOfEntries(str(self.path))
        return parse_record(line.split(","), self._position)

    def read_all(self, on_corrupt: CorruptCallback | None = None) -> List[TransactionEntry]:
        entries: List[TransactionEntry] = []
        while True:
            line = self._next_line()
            if line is None:
                break
            try:
                entries.append(parse_record(line.split(","), self._position))
            except CorruptRecord as exc:
                _report_corrupt(exc, on_corrupt)
        return entries

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> "TextEntryReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class TextEntryWriter:
    """Append annotations to lines of a text batch file.

    The locator is the zero-based line index, kept as a string so that both
    writer variants share one signature.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lines = self.path.read_text(encoding="utf-8").split("\n")
        self._flushed = False

    def write_string(self, locator: str, value: str) -> None:
        index = int(locator)
        if index < 0 or index >= len(self._lines):
            raise RowIndexExceeded(f"row index {index} exceeds {self.path}")
        fields = self._lines[index].split(",")
        if len(fields) > FIELD_NUMBER:
            fields[FIELD_NUMBER] = f" {value}"
            self._lines[index] = ",".join(fields)
        else:
            self._lines[index] = f"{self._lines[index]}, {value}"

    def locator(self, entry: TransactionEntry) -> str:
        return str(entry.position)

    def flush(self) -> None:
        if self._flushed:
            return
        self._flushed = True
        self.path.write_text("\n".join(self._lines), encoding="utf-8")
        logger.debug("Saved annotations to %s", self.path)

    def __enter__(self) -> "TextEntryWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()


class TextEntryReadWriter:
    def __init__(self, path: str | Path) -> None:
        self.writer = TextEntryWriter(path)
        self.reader = TextEntryReader(path)

    def read(self) -> TransactionEntry:
        return self.reader.read()

    def read_all(self, on_corrupt: CorruptCallback | None = None) -> List[TransactionEntry]:
        return self.reader.read_all(on_corrupt)

    def write_string(self, locator: str, value: str) -> None:
        self.writer.write_string(locator, value)

    def locator(self, entry: TransactionEntry) -> str:
        return self.writer.locator(entry)

    def flush(self) -> None:
        self.reader.close()
        self.writer.flush()

    def __enter__(self) -> "TextEntryReadWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()
