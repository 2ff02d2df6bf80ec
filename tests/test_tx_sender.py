from __future__ import annotations

import pytest
from eth_utils import to_checksum_address

from ethclient.keystore import SignedTransaction
from ethclient.rpc_client import RPCError, RPCTransportError
from ethclient.tx_sender import CallMessage, SendParameters, TransactionSender, WaitTimeout

SENDER = "0x7236bc5a9ff647d48b1eceaa07aa6438dcca615e"
RECEIVER = "0x8f0909ccb296ebd319834edb0d5785794b781d7f"
TX_HASH = "0x" + "cd" * 32


class StubRPC:
    def __init__(self, receipts=None) -> None:
        self.calls = []
        self.timeouts = []
        self.receipts = list(receipts or [])

    def _record(self, name, timeout):
        self.calls.append(name)
        self.timeouts.append(timeout)

    def estimate_gas(self, tx, *, timeout=None):
        self._record("eth_estimateGas", timeout)
        self.estimated = tx
        return 21000

    def gas_price(self, *, timeout=None):
        self._record("eth_gasPrice", timeout)
        return 2_000_000_000

    def get_transaction_count(self, address, block="pending", *, timeout=None):
        self._record("eth_getTransactionCount", timeout)
        assert block == "pending"
        return 7

    def chain_id(self, *, timeout=None):
        self._record("eth_chainId", timeout)
        return 4

    def send_raw_transaction(self, raw_tx, *, timeout=None):
        self._record("eth_sendRawTransaction", timeout)
        self.raw_tx = raw_tx
        return TX_HASH

    def get_transaction_receipt(self, tx_hash, *, timeout=None):
        self._record("eth_getTransactionReceipt", timeout)
        outcome = self.receipts.pop(0) if self.receipts else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def eth_call(self, tx, block="latest", *, timeout=None):
        self._record("eth_call", timeout)
        self.call_tx = tx
        return b"\x01"


class StubKeystore:
    def __init__(self) -> None:
        self.signed = []

    def sign_transaction(self, address, passphrase, tx):
        self.signed.append((address, passphrase, tx))
        return SignedTransaction(raw_transaction=b"\xf8\x01", tx_hash=TX_HASH)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _sender(rpc, keystore=None, clock=None, **kwargs) -> TransactionSender:
    clock = clock or FakeClock()
    return TransactionSender(
        rpc,
        keystore or StubKeystore(),
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )


def test_fetch_params_queries_node_in_order_with_timeout() -> None:
    rpc = StubRPC()
    sender = _sender(rpc, timeout=3.0)

    params = sender.fetch_params(CallMessage(SENDER, RECEIVER, 5, b""))

    assert params == SendParameters(gas_limit=21000, gas_price=2_000_000_000, nonce=7, chain_id=4)
    assert rpc.calls == [
        "eth_estimateGas",
        "eth_gasPrice",
        "eth_getTransactionCount",
        "eth_chainId",
    ]
    assert rpc.timeouts == [3.0] * 4
    assert rpc.estimated["value"] == 5


def test_send_signs_legacy_transaction_and_submits() -> None:
    rpc = StubRPC()
    keystore = StubKeystore()
    sender = _sender(rpc, keystore)

    result = sender.send(CallMessage(SENDER, RECEIVER, 5, b"\xaa"), "hunter22")

    address, passphrase, tx = keystore.signed[0]
    assert (address, passphrase) == (SENDER, "hunter22")
    assert tx == {
        "nonce": 7,
        "gasPrice": 2_000_000_000,
        "gas": 21000,
        "to": to_checksum_address(RECEIVER),
        "value": 5,
        "data": b"\xaa",
        "chainId": 4,
    }
    assert rpc.raw_tx == b"\xf8\x01"
    assert result.tx_hash == TX_HASH
    assert result.receipt is None
    assert "eth_getTransactionReceipt" not in rpc.calls


def test_send_without_receiver_creates_contract() -> None:
    keystore = StubKeystore()
    sender = _sender(StubRPC(), keystore)

    sender.send(CallMessage(SENDER, "", 0, b"\x60\x60"), "hunter22")

    assert "to" not in keystore.signed[0][2]


def test_send_propagates_rpc_failures() -> None:
    rpc = StubRPC()

    def fail(*_args, **_kwargs):
        raise RPCError(-32000, "insufficient funds for gas * price + value")

    rpc.send_raw_transaction = fail
    with pytest.raises(RPCError):
        _sender(rpc).send(CallMessage(SENDER, RECEIVER, 1), "hunter22")


def test_wait_polls_until_receipt_appears() -> None:
    receipt = {"transactionHash": TX_HASH, "blockNumber": "0x10", "status": "0x1"}
    rpc = StubRPC(receipts=[None, RPCTransportError("connection reset"), receipt])
    clock = FakeClock()
    sender = _sender(rpc, clock=clock, poll_interval=1.0)

    result = sender.send(CallMessage(SENDER, RECEIVER, 1), "hunter22", wait=True)

    assert result.receipt == receipt
    assert clock.sleeps == [1.0, 1.0]


def test_wait_treats_malformed_receipt_as_not_mined() -> None:
    receipt = {"transactionHash": TX_HASH, "blockNumber": "0x11", "status": "0x1"}
    rpc = StubRPC(receipts=["0xdeadbeef", receipt])
    clock = FakeClock()

    result = _sender(rpc, clock=clock, poll_interval=1.0).wait_mined(TX_HASH)

    assert result == receipt
    assert clock.sleeps == [1.0]


def test_wait_gives_up_after_budget() -> None:
    clock = FakeClock()
    sender = _sender(StubRPC(), clock=clock, wait_timeout=5.0, poll_interval=1.0)

    with pytest.raises(WaitTimeout) as excinfo:
        sender.wait_mined(TX_HASH)

    assert excinfo.value.tx_hash == TX_HASH
    assert clock.now == 5.0
    assert len(clock.sleeps) == 5


def test_call_uses_latest_block() -> None:
    rpc = StubRPC()
    sender = _sender(rpc)

    assert sender.call(CallMessage(SENDER, RECEIVER, 0, b"\x70")) == b"\x01"
    assert rpc.call_tx["to"] == to_checksum_address(RECEIVER)
    assert rpc.call_tx["data"] == b"\x70"
