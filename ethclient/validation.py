"""Argument checks shared by single sends, calls and batch entries."""

from __future__ import annotations

import string

ADDRESS_HEX_LENGTH = 40
_HEX_DIGITS = frozenset(string.hexdigits)


class ValidationError(ValueError):
    """Raised when transaction or call arguments are invalid."""


def strip_hex_prefix(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def _is_hex_address(value: str) -> bool:
    return len(value) == ADDRESS_HEX_LENGTH and all(char in _HEX_DIGITS for char in value)


def check_arguments(sender: str, receiver: str | None, value: int, payload: bytes | str | None) -> bool:
    """Return ``True`` when the arguments describe a sendable transaction."""

    sender = strip_hex_prefix(sender or "")
    receiver = strip_hex_prefix(receiver or "")
    if not sender or not _is_hex_address(sender):
        return False
    if receiver and not _is_hex_address(receiver):
        return False
    # Contract creation: no receiver means the payload carries the init code.
    if not receiver and not payload:
        return False
    return value >= 0


def validate_arguments(
    sender: str, receiver: str | None, value: int, payload: bytes | str | None
) -> None:
    if not check_arguments(sender, receiver, value, payload):
        raise ValidationError(
            f"invalid transaction or call arguments (sender={sender!r}, receiver={receiver!r}, value={value})"
        )
