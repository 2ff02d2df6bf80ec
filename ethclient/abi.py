"""Embedded ERC-20 interface description and call encoding helpers."""

from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_utils import keccak

ERC20_INTERFACE_ABI: list[dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "who", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_from", "type": "address"},
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "owner", "type": "address"},
            {"indexed": True, "name": "spender", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Approval",
        "type": "event",
    },
]


def find_function(abi: Sequence[dict[str, Any]], name: str) -> dict[str, Any]:
    for entry in abi:
        if entry.get("type", "function") == "function" and entry.get("name") == name:
            return entry
    raise KeyError(f"Function {name} not found in contract ABI")


def function_signature(entry: dict[str, Any]) -> str:
    types = ",".join(item["type"] for item in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def function_selector(entry: dict[str, Any]) -> bytes:
    return keccak(text=function_signature(entry))[:4]


def encode_function_call(
    abi: Sequence[dict[str, Any]], name: str, args: Sequence[Any]
) -> bytes:
    """Return the 4-byte selector of ``name`` followed by its encoded arguments."""

    entry = find_function(abi, name)
    types = [item["type"] for item in entry.get("inputs", [])]
    if len(types) != len(args):
        raise ValueError(f"{function_signature(entry)} expects {len(types)} arguments, got {len(args)}")
    return function_selector(entry) + encode(types, list(args))


def decode_function_result(
    abi: Sequence[dict[str, Any]], name: str, data: bytes
) -> tuple[Any, ...]:
    entry = find_function(abi, name)
    types = [item["type"] for item in entry.get("outputs", [])]
    return tuple(decode(types, data))
