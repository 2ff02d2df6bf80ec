"""Local keyfile store used to sign transactions with a passphrase."""

from __future__ import annotations

import getpass
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict

from eth_account import Account

from .validation import strip_hex_prefix

logger = logging.getLogger(__name__)

MIN_PASSPHRASE_LENGTH = 6


class SignError(RuntimeError):
    """Raised when a transaction cannot be signed (unknown account, bad passphrase)."""


@dataclass(frozen=True)
class SignedTransaction:
    raw_transaction: bytes
    tx_hash: str


def _normalize(address: str) -> str:
    return strip_hex_prefix(address.strip()).lower()


class Keystore:
    """Index of V3 JSON keyfiles stored in one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._keyfiles: Dict[str, Dict[str, Any]] = {}
        self._scan()

    def _scan(self) -> None:
        if not self.directory.is_dir():
            logger.warning("Keystore directory %s does not exist", self.directory)
            return
        for path in sorted(self.directory.iterdir()):
            if not path.is_file():
                continue
            try:
                keyfile = json.loads(path.read_text())
            except (OSError, ValueError):
                logger.warning("Skipping unreadable keyfile %s", path)
                continue
            if not isinstance(keyfile, dict) or not isinstance(keyfile.get("address"), str):
                logger.debug("Skipping %s: not a keyfile", path)
                continue
            self._keyfiles[_normalize(keyfile["address"])] = keyfile
        logger.debug("Indexed %d keyfiles in %s", len(self._keyfiles), self.directory)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and _normalize(address) in self._keyfiles

    @property
    def accounts(self) -> list[str]:
        return ["0x" + address for address in sorted(self._keyfiles)]

    def sign_transaction(
        self, address: str, passphrase: str, tx: Dict[str, Any]
    ) -> SignedTransaction:
        """Decrypt the keyfile of ``address`` and sign ``tx`` (which carries ``chainId``)."""

        keyfile = self._keyfiles.get(_normalize(address))
        if keyfile is None:
            raise SignError(f"unknown account {address}: no keyfile in {self.directory}")
        try:
            private_key = Account.decrypt(keyfile, passphrase)
        except ValueError as exc:
            raise SignError(f"could not decrypt key for {address}: {exc}") from exc
        try:
            signed = Account.sign_transaction(tx, private_key)
        except (TypeError, ValueError) as exc:
            raise SignError(f"could not sign transaction for {address}: {exc}") from exc
        return SignedTransaction(
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash="0x" + bytes(signed.hash).hex(),
        )


def resolve_passphrase(
    password: str | None = None,
    password_file: str | Path | None = None,
    prompt: Callable[[str], str] = getpass.getpass,
) -> str:
    """Return the keyfile passphrase from a flag, a file or an interactive prompt.

    Passing the passphrase as a flag is convenient for scripting but leaks it
    into shell history; the file and prompt forms are preferred.
    """

    if password:
        return password
    if password_file:
        try:
            return Path(password_file).read_text().rstrip("\r\n")
        except OSError as exc:
            logger.warning("Unable to read passphrase file %s: %s", password_file, exc)
    while True:
        passphrase = prompt("Passphrase: ")
        if len(passphrase) >= MIN_PASSPHRASE_LENGTH:
            return passphrase
        print(f"Passphrase must have at least {MIN_PASSPHRASE_LENGTH} characters")
