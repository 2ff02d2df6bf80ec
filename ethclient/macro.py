"""Macro interpreter turning ``#KEYWORD`` instructions into contract calls.

Contract invocation data may be written as a macro instead of raw hex, e.g.
``#TRANSFER EOS 2000`` transfers 2000 EOS from the sender to the receiver.
Supported macros::

    #TRANSFER  <token symbol> <token amount>|<percentage of balance>%
    #BALANCEOF <token symbol> <holder address>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from eth_utils import to_checksum_address

from .abi import ERC20_INTERFACE_ABI, decode_function_result, encode_function_call
from .tokens import Token, TokenRegistry

logger = logging.getLogger(__name__)

MACRO_TRANSFER = "transfer"
MACRO_BALANCE_OF = "balanceof"

UINT256_MAX = 2**256 - 1

# Required argument count per macro keyword.
MACRO_ARITY = {
    MACRO_TRANSFER: 2,
    MACRO_BALANCE_OF: 2,
}


class MacroError(ValueError):
    """Base class for macro parse failures."""


class InvalidMacroDefinition(MacroError):
    """Raised when the instruction is empty or does not start with ``#``."""


class InvalidMacroArgument(MacroError):
    """Raised when a macro has the wrong arity or a malformed argument."""


class UndefinedMacro(MacroError):
    """Raised for keywords that are not part of the macro set."""


class UnrecognizedTokenSymbol(MacroError):
    """Raised when the token symbol is not present in the registry."""


class MacroResolutionError(MacroError):
    """Raised when a macro needs node data that cannot be obtained."""


class BalanceSource(Protocol):
    def eth_call(self, tx: dict[str, Any], block: str = "latest", **kwargs: Any) -> bytes:
        ...


@dataclass(frozen=True)
class MacroResult:
    contract_address: str
    payload: bytes
    decimals: int = 0

    @property
    def payload_hex(self) -> str:
        return self.payload.hex()


def _checksum(address: str, role: str) -> str:
    try:
        return to_checksum_address(address)
    except (TypeError, ValueError) as exc:
        raise InvalidMacroArgument(f"invalid {role} address: {address!r}") from exc


class MacroParser:
    """Resolve macro instructions against a token registry.

    ``rpc`` is only needed for percentage transfers, which look up the
    sender's token balance with ``balanceOf`` before encoding the transfer.
    """

    def __init__(self, registry: TokenRegistry, rpc: BalanceSource | None = None) -> None:
        self.registry = registry
        self.rpc = rpc

    def parse(self, instruction: str, sender: str = "", receiver: str = "") -> MacroResult:
        """Return the contract address and encoded call for ``instruction``."""

        tokens = [token.strip() for token in instruction.split()]
        tokens = [token for token in tokens if token]
        if not tokens or not tokens[0].startswith("#"):
            raise InvalidMacroDefinition(f"invalid macro definition: {instruction!r}")

        keyword = tokens[0][1:].lower()
        args = tokens[1:]
        if keyword == MACRO_TRANSFER:
            return self._parse_transfer(args, sender, receiver)
        if keyword == MACRO_BALANCE_OF:
            return self._parse_balance_of(args)
        raise UndefinedMacro(f"undefined macro definition: {tokens[0]}")

    def _parse_transfer(self, args: list[str], sender: str, receiver: str) -> MacroResult:
        self._check_arity(MACRO_TRANSFER, args)
        token = self._resolve_token(args[0])
        raw_amount = args[1]
        if raw_amount.endswith("%"):
            amount = self._percentage_amount(token, raw_amount[:-1], sender)
        else:
            try:
                units = int(raw_amount, 10)
            except ValueError as exc:
                raise InvalidMacroArgument(f"invalid token amount: {raw_amount}") from exc
            if units < 0:
                raise InvalidMacroArgument(f"token amount must not be negative: {raw_amount}")
            amount = units * 10**token.decimals
        if amount > UINT256_MAX:
            raise InvalidMacroArgument(f"token amount does not fit in uint256: {raw_amount}")

        payload = encode_function_call(
            ERC20_INTERFACE_ABI, "transfer", [_checksum(receiver, "receiver"), amount]
        )
        logger.debug("Resolved #TRANSFER %s amount=%d", token.symbol, amount)
        return MacroResult(_checksum(token.address, "token"), payload, 0)

    def _parse_balance_of(self, args: list[str]) -> MacroResult:
        self._check_arity(MACRO_BALANCE_OF, args)
        token = self._resolve_token(args[0])
        payload = encode_function_call(
            ERC20_INTERFACE_ABI, "balanceOf", [_checksum(args[1], "holder")]
        )
        return MacroResult(_checksum(token.address, "token"), payload, token.decimals)

    def _percentage_amount(self, token: Token, raw_percent: str, sender: str) -> int:
        try:
            float(raw_percent)
            percent = Decimal(raw_percent)
        except (ValueError, InvalidOperation) as exc:
            raise InvalidMacroArgument(f"invalid percentage: {raw_percent}%") from exc
        if not percent.is_finite() or percent <= 0 or percent > 100:
            raise InvalidMacroArgument(f"percentage must be within (0, 100]: {raw_percent}%")
        if self.rpc is None:
            raise MacroResolutionError(
                "percentage transfers need a node connection to read the sender balance"
            )
        if not sender:
            raise MacroResolutionError("percentage transfers need a sender address")

        query = encode_function_call(
            ERC20_INTERFACE_ABI, "balanceOf", [_checksum(sender, "sender")]
        )
        result = self.rpc.eth_call(
            {"from": sender, "to": _checksum(token.address, "token"), "data": query}
        )
        try:
            (balance,) = decode_function_result(ERC20_INTERFACE_ABI, "balanceOf", result)
        except Exception as exc:
            raise MacroResolutionError(
                f"unable to decode {token.symbol} balance for {sender}: {exc}"
            ) from exc
        numerator, denominator = percent.as_integer_ratio()
        amount = balance * numerator // (denominator * 100)
        logger.info(
            "Resolved %s%% of %s balance %d for %s to %d", raw_percent, token.symbol, balance, sender, amount
        )
        return amount

    def _resolve_token(self, symbol: str) -> Token:
        token = self.registry.get(symbol)
        if token is None:
            raise UnrecognizedTokenSymbol(f"the given token symbol is unrecognizable: {symbol}")
        return token

    @staticmethod
    def _check_arity(keyword: str, args: list[str]) -> None:
        expected = MACRO_ARITY[keyword]
        if len(args) != expected:
            raise InvalidMacroArgument(
                f"#{keyword.upper()} expects {expected} arguments, got {len(args)}"
            )


def is_macro(data: str | None) -> bool:
    return bool(data) and data.lstrip().startswith("#")
