from __future__ import annotations

import json
from pathlib import Path

import pytest
from eth_account import Account

from ethclient.keystore import Keystore, SignError, resolve_passphrase

PRIVATE_KEY = "0x" + "4c" * 32
PASSPHRASE = "correct horse"
RECEIVER = "0x8f0909ccb296ebd319834edb0d5785794b781d7f"


@pytest.fixture
def keystore_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "keystore"
    directory.mkdir()
    keyfile = Account.encrypt(PRIVATE_KEY, PASSPHRASE, kdf="pbkdf2", iterations=2)
    (directory / "UTC--account.json").write_text(json.dumps(keyfile))
    (directory / "notes.txt").write_text("not a keyfile")
    return directory


def _transaction() -> dict:
    return {
        "nonce": 0,
        "gasPrice": 1_000_000_000,
        "gas": 21000,
        "to": Account.from_key(PRIVATE_KEY).address,
        "value": 1,
        "data": b"",
        "chainId": 1,
    }


def test_keystore_indexes_keyfiles_by_address(keystore_dir: Path) -> None:
    keystore = Keystore(keystore_dir)
    address = Account.from_key(PRIVATE_KEY).address

    assert keystore.accounts == [address.lower()]
    assert address in keystore
    assert address.lower()[2:] in keystore
    assert RECEIVER not in keystore


def test_sign_transaction_produces_recoverable_signature(keystore_dir: Path) -> None:
    keystore = Keystore(keystore_dir)
    address = Account.from_key(PRIVATE_KEY).address

    signed = keystore.sign_transaction(address, PASSPHRASE, _transaction())

    assert Account.recover_transaction(signed.raw_transaction) == address
    assert signed.tx_hash.startswith("0x") and len(signed.tx_hash) == 66


def test_sign_transaction_with_wrong_passphrase_fails(keystore_dir: Path) -> None:
    keystore = Keystore(keystore_dir)
    address = Account.from_key(PRIVATE_KEY).address

    with pytest.raises(SignError):
        keystore.sign_transaction(address, "wrong passphrase", _transaction())


def test_sign_transaction_for_unknown_account_fails(keystore_dir: Path) -> None:
    with pytest.raises(SignError, match="unknown account"):
        Keystore(keystore_dir).sign_transaction(RECEIVER, PASSPHRASE, _transaction())


def test_missing_directory_yields_empty_keystore(tmp_path: Path) -> None:
    assert Keystore(tmp_path / "absent").accounts == []


def test_resolve_passphrase_prefers_flag_then_file(tmp_path: Path) -> None:
    password_file = tmp_path / "password"
    password_file.write_text("from-file\n")

    def prompt(_label: str) -> str:
        raise AssertionError("prompt should not be used")

    assert resolve_passphrase("from-flag", password_file, prompt=prompt) == "from-flag"
    assert resolve_passphrase(None, password_file, prompt=prompt) == "from-file"


def test_resolve_passphrase_prompts_until_long_enough(capsys: pytest.CaptureFixture[str]) -> None:
    answers = iter(["short", "", "long enough"])

    passphrase = resolve_passphrase(prompt=lambda _label: next(answers))

    assert passphrase == "long enough"
    assert capsys.readouterr().out.count("at least 6 characters") == 2
