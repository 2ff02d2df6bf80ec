"""Typed JSON-RPC client for Ethereum-style nodes.

The client backs the send, call and batch flows. Every request carries its own
timeout so a slow node stalls a single call rather than the whole run. No
consensus logic is implemented here; the client forwards well-typed requests
and surfaces errors clearly.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import DEFAULT_RPC_TIMEOUT, ClientConfig

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with a JSON-RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a human-friendly hint for common node JSON-RPC errors."""

    if error_obj is None:
        return None

    message = ""
    if isinstance(error_obj, RPCError):
        message = error_obj.message
    elif isinstance(error_obj, dict):
        message = str(error_obj.get("message", ""))
    lowered = message.lower()

    if "nonce too low" in lowered or "already known" in lowered:
        return (
            "The node already has a transaction with this nonce. Wait for pending "
            "transactions from the sender to be mined, then retry."
        )
    if "insufficient funds" in lowered:
        return "The sender cannot cover value + gas * gasPrice. Fund the account and retry."
    if "underpriced" in lowered or "fee too low" in lowered:
        return (
            "The node rejected the gas price. A replacement transaction needs a higher gas "
            "price than the one it replaces."
        )
    if "execution reverted" in lowered or "gas required exceeds" in lowered:
        return (
            "Gas estimation failed because the call reverts. Check the receiver, payload "
            "and the sender's token balance."
        )
    if "unknown account" in lowered:
        return "The node does not manage this account; transactions are signed locally from --keystore."
    return None


def _to_quantity(value: int) -> str:
    return hex(int(value))


def _from_quantity(raw: Any) -> int:
    if isinstance(raw, int):
        return raw
    if not isinstance(raw, str):
        raise RPCTransportError(f"RPC server returned a non-quantity value: {raw!r}")
    try:
        return int(raw, 16)
    except ValueError as exc:
        raise RPCTransportError(f"RPC server returned a malformed quantity: {raw!r}") from exc


def _to_data(data: bytes | str) -> str:
    if isinstance(data, (bytes, bytearray)):
        return "0x" + bytes(data).hex()
    return data if data.startswith("0x") else "0x" + data


class EthereumRPCClient:
    """Typed JSON-RPC client for Ethereum compatible nodes.

    Each helper maps directly to an ``eth_*`` method and converts hex
    quantities to ``int``. ``timeout`` is the per-request default; every
    helper accepts an explicit ``timeout`` so callers can bound each request
    independently.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_RPC_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout
        self._session = requests.Session()

    @classmethod
    def from_config(cls, config: ClientConfig) -> "EthereumRPCClient":
        return cls(config.url, timeout=config.timeout)

    def call(
        self, method: str, params: Optional[list[Any]] = None, *, timeout: float | None = None
    ) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.timeout if timeout is None else timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure the node is reachable and --url "
                "(or ETHCLIENT_RPC_URL) points to its HTTP endpoint."
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the URL and the node's HTTP API settings.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object response")
        if result.get("error"):
            error = result["error"]
            if not isinstance(error, dict):
                raise RPCError(-1, str(error))
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.debug("RPC error body: %s", response.text)
        response.raise_for_status()

    # Convenience wrappers -------------------------------------------------

    def estimate_gas(self, tx: Dict[str, Any], *, timeout: float | None = None) -> int:
        return _from_quantity(self.call("eth_estimateGas", [self._encode_call(tx)], timeout=timeout))

    def gas_price(self, *, timeout: float | None = None) -> int:
        return _from_quantity(self.call("eth_gasPrice", timeout=timeout))

    def get_transaction_count(
        self, address: str, block: str = "pending", *, timeout: float | None = None
    ) -> int:
        return _from_quantity(
            self.call("eth_getTransactionCount", [address, block], timeout=timeout)
        )

    def chain_id(self, *, timeout: float | None = None) -> int:
        return _from_quantity(self.call("eth_chainId", timeout=timeout))

    def send_raw_transaction(self, raw_tx: bytes | str, *, timeout: float | None = None) -> str:
        return self.call("eth_sendRawTransaction", [_to_data(raw_tx)], timeout=timeout)

    def get_transaction_receipt(
        self, tx_hash: str, *, timeout: float | None = None
    ) -> Dict[str, Any] | None:
        return self.call("eth_getTransactionReceipt", [tx_hash], timeout=timeout)

    def eth_call(
        self, tx: Dict[str, Any], block: str = "latest", *, timeout: float | None = None
    ) -> bytes:
        result = self.call("eth_call", [self._encode_call(tx), block], timeout=timeout)
        if not isinstance(result, str):
            raise RPCTransportError(f"eth_call returned a non-hex result: {result!r}")
        try:
            return bytes.fromhex(result[2:] if result.startswith("0x") else result)
        except ValueError as exc:
            raise RPCTransportError(f"eth_call returned malformed hex: {result!r}") from exc

    @staticmethod
    def _encode_call(tx: Dict[str, Any]) -> Dict[str, Any]:
        encoded: Dict[str, Any] = {}
        for key, value in tx.items():
            if value is None:
                continue
            if key in {"value", "gas", "gasPrice", "nonce"}:
                encoded[key] = _to_quantity(value)
            elif key == "data":
                if value:
                    encoded[key] = _to_data(value)
            else:
                encoded[key] = value
        return encoded
