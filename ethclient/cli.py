"""Command line interface for the ethclient tooling."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable, Sequence

from eth_abi.exceptions import EncodingError

from .abi import ERC20_INTERFACE_ABI, decode_function_result
from .batch import InvalidBatchIndex, run_batch_file
from .config import ClientConfig, ConfigurationError, load_client_config
from .entries import EntryError
from .keystore import SignError, resolve_passphrase
from .macro import MacroError, MacroParser, MacroResult, is_macro
from .rpc_client import EthereumRPCClient, RPCError, RPCTransportError, format_rpc_hint
from .tokens import TokenListError, TokenRegistry
from .tx_sender import CallMessage, TransactionSender, WaitTimeout
from .validation import ValidationError, strip_hex_prefix, validate_arguments

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s ▶ %(levelname).4s %(message)s"
COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _add_account_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--password", help="Keyfile passphrase (visible in shell history)")
    parser.add_argument("--passwordfile", help="File holding the keyfile passphrase")
    parser.add_argument("--keystore", help="Keyfile directory (default: keystore)")


def _add_message_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--sender", required=True, help="Sender address")
    parser.add_argument("--receiver", default="", help="Receiver address; empty deploys a contract")
    parser.add_argument("--value", type=int, default=0, help="Value in wei (default: 0)")
    payload = parser.add_mutually_exclusive_group()
    payload.add_argument("--data", default="", help="Hex payload or a #MACRO instruction")
    payload.add_argument("--macro", help="Macro instruction, e.g. '#TRANSFER RDN 100'")
    parser.add_argument("--tokenfile", help="Token list JSON used to resolve macros")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ethereum JSON-RPC transaction client")
    parser.add_argument("--config", help="YAML configuration file (default: ~/.ethclient.yaml)")
    parser.add_argument("--url", help="Node JSON-RPC endpoint URL")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="sign and submit a transaction")
    _add_message_arguments(send_parser)
    _add_account_arguments(send_parser)
    send_parser.add_argument(
        "--sync",
        action="store_true",
        help="Wait until the transaction is mined and print its receipt",
    )

    call_parser = subparsers.add_parser(
        "call", help="execute a read-only message call on the node"
    )
    _add_message_arguments(call_parser)

    batch_parser = subparsers.add_parser(
        "send-batch", help="submit every transaction listed in a batch file"
    )
    batch_parser.add_argument(
        "--batchfile", required=True, help="Batch file (.xlsx workbook or comma-separated text)"
    )
    batch_parser.add_argument(
        "--batchstart", type=int, default=0, help="Index of the first entry to send (default: 0)"
    )
    batch_parser.add_argument(
        "--batchend",
        type=int,
        default=0,
        help="Index after the last entry to send; 0 sends through the end",
    )
    batch_parser.add_argument("--sheet", help="Worksheet name for .xlsx files (default: Sheet1)")
    batch_parser.add_argument(
        "--annotate",
        action="store_true",
        help="Write submitted transaction hashes back into the batch file",
    )
    batch_parser.add_argument("--tokenfile", help="Token list JSON used to resolve macros")
    _add_account_arguments(batch_parser)

    macro_parser = subparsers.add_parser(
        "macro", help="resolve a macro instruction without sending it"
    )
    macro_parser.add_argument("instruction", help="Macro instruction, e.g. '#BALANCEOF RDN 0x...'")
    macro_parser.add_argument("--sender", default="", help="Sender for percentage transfers")
    macro_parser.add_argument("--receiver", default="", help="Receiver of #TRANSFER")
    macro_parser.add_argument("--tokenfile", help="Token list JSON")

    tokens_parser = subparsers.add_parser("tokens", help="list the known ERC-20 tokens")
    tokens_parser.add_argument("--tokenfile", help="Token list JSON")
    tokens_parser.add_argument("--symbol", help="Only show this symbol")

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _load_config(args: argparse.Namespace, *, require_url: bool = True) -> ClientConfig:
    overrides = {
        "url": args.url,
        "keystore": getattr(args, "keystore", None),
        "token_file": getattr(args, "tokenfile", None),
    }
    return load_client_config(
        config_path=args.config, overrides=overrides, require_url=require_url
    )


def _decode_hex(raw: str) -> bytes:
    digits = strip_hex_prefix(raw.strip())
    if len(digits) % 2:
        digits = "0" + digits
    try:
        return bytes.fromhex(digits)
    except ValueError as exc:
        raise CLIError(f"--data must be hex or a #MACRO instruction: {raw!r}") from exc


def _instruction(args: argparse.Namespace) -> str | None:
    if args.macro:
        return args.macro
    if is_macro(args.data):
        return args.data
    return None


def _resolve_message(
    args: argparse.Namespace, config: ClientConfig, rpc: EthereumRPCClient
) -> tuple[CallMessage, MacroResult | None]:
    instruction = _instruction(args)
    if instruction is None:
        return CallMessage(args.sender, args.receiver, args.value, _decode_hex(args.data)), None
    registry = TokenRegistry.load(config.token_file)
    result = MacroParser(registry, rpc).parse(instruction, args.sender, args.receiver)
    logger.debug("Macro %r targets %s", instruction, result.contract_address)
    return CallMessage(args.sender, result.contract_address, args.value, result.payload), result


def _format_units(amount: int, decimals: int) -> str:
    if decimals == 0:
        return str(amount)
    whole, fraction = divmod(amount, 10**decimals)
    digits = f"{fraction:0{decimals}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def cmd_send(args: argparse.Namespace) -> None:
    config = _load_config(args)
    sender = TransactionSender.from_config(config)
    message, _ = _resolve_message(args, config, sender.rpc)
    validate_arguments(message.sender, message.receiver, message.value, message.data)
    passphrase = resolve_passphrase(args.password, args.passwordfile)
    try:
        result = sender.send(message, passphrase, wait=args.sync)
    except WaitTimeout as exc:
        logger.warning("%s", exc)
        print(json.dumps({"tx_hash": exc.tx_hash}, separators=COMPACT_JSON_SEPARATORS))
        return
    output: dict[str, Any] = {"tx_hash": result.tx_hash}
    if result.receipt is not None:
        output["receipt"] = result.receipt
    print(json.dumps(output, separators=COMPACT_JSON_SEPARATORS))


def cmd_call(args: argparse.Namespace) -> None:
    config = _load_config(args)
    sender = TransactionSender(
        EthereumRPCClient.from_config(config), None, timeout=config.timeout
    )
    message, macro = _resolve_message(args, config, sender.rpc)
    validate_arguments(message.sender, message.receiver, message.value, message.data)
    result = sender.call(message)
    if macro is not None and macro.decimals and len(result) == 32:
        (balance,) = decode_function_result(ERC20_INTERFACE_ABI, "balanceOf", result)
        print(_format_units(balance, macro.decimals))
        return
    print(result.hex())


def _shared_passphrase(args: argparse.Namespace) -> Callable[[], str]:
    cache: list[str] = []

    def provider() -> str:
        if not cache:
            cache.append(resolve_passphrase(args.password, args.passwordfile))
        return cache[0]

    return provider


def cmd_send_batch(args: argparse.Namespace) -> None:
    config = _load_config(args)
    sender = TransactionSender.from_config(config)
    macro_parser = None
    if config.token_file:
        macro_parser = MacroParser(TokenRegistry.load(config.token_file), sender.rpc)
    outcomes = run_batch_file(
        args.batchfile,
        sender,
        begin=args.batchstart,
        end=args.batchend,
        sheet=args.sheet,
        passphrase_provider=_shared_passphrase(args),
        macro_parser=macro_parser,
        annotate=args.annotate,
    )
    summary = [
        {
            "position": outcome.entry.position,
            "tx_hash": outcome.tx_hash,
            "error": str(outcome.error) if outcome.error else None,
        }
        for outcome in outcomes
    ]
    print(json.dumps(summary, separators=COMPACT_JSON_SEPARATORS))


def cmd_macro(args: argparse.Namespace) -> None:
    config = _load_config(args, require_url=False)
    rpc = EthereumRPCClient.from_config(config) if config.url else None
    registry = TokenRegistry.load(config.token_file)
    result = MacroParser(registry, rpc).parse(args.instruction, args.sender, args.receiver)
    print(
        json.dumps(
            {
                "contract": result.contract_address,
                "payload": "0x" + result.payload_hex,
                "decimals": result.decimals,
            },
            separators=COMPACT_JSON_SEPARATORS,
        )
    )


def cmd_tokens(args: argparse.Namespace) -> None:
    config = _load_config(args, require_url=False)
    registry = TokenRegistry.load(config.token_file)
    if args.symbol:
        token = registry.get(args.symbol)
        if token is None:
            raise CLIError(f"unknown token symbol: {args.symbol}")
        tokens = [token]
    else:
        tokens = list(registry)
    for token in tokens:
        print(f"{token.symbol:<12} {token.address} decimals={token.decimals}")


def _error_message(exc: Exception) -> str:
    message = f"error: {exc}\n"
    if isinstance(exc, RPCError):
        hint = format_rpc_hint(exc)
        if hint:
            message += f"hint: {hint}\n"
    return message


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        if args.command == "send":
            cmd_send(args)
        elif args.command == "call":
            cmd_call(args)
        elif args.command == "send-batch":
            cmd_send_batch(args)
        elif args.command == "macro":
            cmd_macro(args)
        elif args.command == "tokens":
            cmd_tokens(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        RPCError,
        RPCTransportError,
        SignError,
        ValidationError,
        MacroError,
        EncodingError,
        TokenListError,
        EntryError,
        InvalidBatchIndex,
        FileNotFoundError,
    ) as exc:
        parser.exit(1, _error_message(exc))


if __name__ == "__main__":
    main(sys.argv[1:])
