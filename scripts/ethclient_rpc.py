#!/usr/bin/env python3
"""Issue raw JSON-RPC requests against an Ethereum node for quick diagnostics."""
from __future__ import annotations

import argparse
from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import requests
import yaml

DEFAULT_ENDPOINT = "http://127.0.0.1:8545"
DEFAULT_CONFIG = Path.home() / ".ethclient.yaml"

# Methods whose hex quantity result is also shown in decimal.
QUANTITY_METHODS = {
    "eth_blockNumber",
    "eth_chainId",
    "eth_gasPrice",
    "eth_getBalance",
    "eth_getTransactionCount",
    "eth_estimateGas",
}


@dataclass
class NodeSettings:
    endpoint: str
    timeout: float

    @classmethod
    def load(cls, path: Path, endpoint: Optional[str]) -> "NodeSettings":
        rpc_cfg: Dict[str, object] = {}
        if path.exists():
            payload = yaml.safe_load(path.read_text()) or {}
            rpc_cfg = payload.get("rpc", {}) or {}
        return cls(
            endpoint=endpoint
            or os.environ.get("ETHCLIENT_RPC_URL")
            or str(rpc_cfg.get("url", DEFAULT_ENDPOINT)),
            timeout=float(rpc_cfg.get("timeout", 5)),
        )


class RpcError(RuntimeError):
    pass


class RpcClient:
    def __init__(self, endpoint: str, timeout: float = 5.0):
        self.endpoint = endpoint
        self.timeout = timeout
        self._next_id = 0

    def call(self, method: str, params: Optional[Sequence[object]] = None) -> object:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": list(params or [])}
        response = requests.post(
            self.endpoint,
            headers={"Content-Type": "application/json"},
            data=json.dumps(payload),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise RpcError(f"RPC HTTP {response.status_code}: {response.text}")
        body = response.json()
        if body.get("error"):
            raise RpcError(body["error"])
        return body.get("result")

    # Convenience helpers -------------------------------------------------
    def status(self) -> Dict[str, object]:
        return {
            "chainId": int(str(self.call("eth_chainId")), 16),
            "blockNumber": int(str(self.call("eth_blockNumber")), 16),
            "gasPrice": int(str(self.call("eth_gasPrice")), 16),
            "syncing": self.call("eth_syncing"),
        }


def parse_params(raw: List[str]) -> List[object]:
    params: List[object] = []
    for item in raw:
        try:
            params.append(json.loads(item))
        except json.JSONDecodeError:
            params.append(item)
    return params


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send raw JSON-RPC requests to an Ethereum node")
    parser.add_argument("method", nargs="?", help="JSON-RPC method; omit to print node status")
    parser.add_argument("params", nargs="*", help="Positional params, parsed as JSON when possible")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to the ethclient YAML config")
    parser.add_argument("--endpoint", help="Override RPC endpoint URL (env ETHCLIENT_RPC_URL)")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = NodeSettings.load(Path(args.config).expanduser(), args.endpoint)
    rpc = RpcClient(settings.endpoint, timeout=settings.timeout)
    if not args.method:
        print(json.dumps(rpc.status(), indent=2))
        return
    result = rpc.call(args.method, parse_params(args.params))
    print(json.dumps(result, indent=2))
    if args.method in QUANTITY_METHODS and isinstance(result, str):
        print(f"decimal: {int(result, 16)}")


if __name__ == "__main__":
    main()
