"""Sign and submit transactions, optionally waiting for the receipt."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Protocol

from eth_utils import to_checksum_address

from .config import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RPC_TIMEOUT,
    DEFAULT_WAIT_TIMEOUT,
    ClientConfig,
)
from .keystore import Keystore
from .rpc_client import EthereumRPCClient, RPCError, RPCTransportError

logger = logging.getLogger(__name__)


class WaitTimeout(RuntimeError):
    """Raised when a submitted transaction is not mined within the wait budget."""

    def __init__(self, tx_hash: str, waited: float = 0.0) -> None:
        super().__init__(
            f"transaction {tx_hash} not mined after {waited:.0f}s; it may still be pending"
        )
        self.tx_hash = tx_hash
        self.waited = waited


class Signer(Protocol):
    def sign_transaction(self, address: str, passphrase: str, tx: Dict[str, Any]) -> Any:
        ...


@dataclass
class CallMessage:
    sender: str
    receiver: str | None
    value: int = 0
    data: bytes = b""

    def as_dict(self) -> Dict[str, Any]:
        tx: Dict[str, Any] = {"from": to_checksum_address(self.sender), "value": self.value}
        if self.receiver:
            tx["to"] = to_checksum_address(self.receiver)
        if self.data:
            tx["data"] = self.data
        return tx


@dataclass(frozen=True)
class SendParameters:
    gas_limit: int
    gas_price: int
    nonce: int
    chain_id: int


@dataclass
class SendResult:
    tx_hash: str
    params: SendParameters
    receipt: Dict[str, Any] | None = field(default=None)


class TransactionSender:
    """Resolve chain parameters, sign with the keystore and submit transactions.

    Every RPC call runs under its own ``timeout``. Parameters are fetched again
    for each send so the nonce always reflects the pending pool.
    """

    def __init__(
        self,
        rpc: EthereumRPCClient,
        keystore: Signer,
        *,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc = rpc
        self.keystore = keystore
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config: ClientConfig) -> "TransactionSender":
        return cls(
            EthereumRPCClient.from_config(config),
            Keystore(config.keystore),
            timeout=config.timeout,
            wait_timeout=config.wait_timeout,
            poll_interval=config.poll_interval,
        )

    def fetch_params(self, call: CallMessage) -> SendParameters:
        tx = call.as_dict()
        gas_limit = self.rpc.estimate_gas(tx, timeout=self.timeout)
        gas_price = self.rpc.gas_price(timeout=self.timeout)
        nonce = self.rpc.get_transaction_count(tx["from"], "pending", timeout=self.timeout)
        chain_id = self.rpc.chain_id(timeout=self.timeout)
        params = SendParameters(gas_limit, gas_price, nonce, chain_id)
        logger.debug("Send parameters for %s: %s", call.sender, params)
        return params

    def send(self, call: CallMessage, passphrase: str, wait: bool = False) -> SendResult:
        params = self.fetch_params(call)
        tx: Dict[str, Any] = {
            "nonce": params.nonce,
            "gasPrice": params.gas_price,
            "gas": params.gas_limit,
            "value": call.value,
            "data": call.data,
            "chainId": params.chain_id,
        }
        if call.receiver:
            tx["to"] = to_checksum_address(call.receiver)
        signed = self.keystore.sign_transaction(call.sender, passphrase, tx)
        tx_hash = self.rpc.send_raw_transaction(signed.raw_transaction, timeout=self.timeout)
        logger.info("Submitted transaction %s from %s (nonce %d)", tx_hash, call.sender, params.nonce)

        result = SendResult(tx_hash=tx_hash, params=params)
        if wait:
            result.receipt = self.wait_mined(tx_hash)
        return result

    def wait_mined(self, tx_hash: str) -> Dict[str, Any]:
        """Poll for the receipt of ``tx_hash`` until it appears or the budget runs out."""

        started = self._clock()
        while True:
            try:
                receipt = self.rpc.get_transaction_receipt(tx_hash, timeout=self.timeout)
            except (RPCError, RPCTransportError) as exc:
                logger.debug("Receipt lookup for %s failed: %s", tx_hash, exc)
                receipt = None
            if receipt is not None and not isinstance(receipt, dict):
                logger.debug("Ignoring malformed receipt for %s: %r", tx_hash, receipt)
                receipt = None
            if receipt:
                logger.info(
                    "Transaction %s mined in block %s (status %s)",
                    tx_hash,
                    receipt.get("blockNumber"),
                    receipt.get("status"),
                )
                return receipt
            waited = self._clock() - started
            if waited >= self.wait_timeout:
                raise WaitTimeout(tx_hash, waited)
            logger.debug("Transaction %s not mined yet", tx_hash)
            self._sleep(self.poll_interval)

    def call(self, call: CallMessage) -> bytes:
        return self.rpc.eth_call(call.as_dict(), "latest", timeout=self.timeout)
