"""Ethereum JSON-RPC transaction client package."""

from .config import ClientConfig, ConfigurationError, load_client_config
from .entries import (
    CorruptRecord,
    EmptyContent,
    EndOfEntries,
    RowIndexExceeded,
    TransactionEntry,
)
from .macro import (
    InvalidMacroArgument,
    InvalidMacroDefinition,
    MacroError,
    MacroParser,
    MacroResult,
    UndefinedMacro,
    UnrecognizedTokenSymbol,
)
from .rpc_client import EthereumRPCClient, RPCError, RPCTransportError
from .tokens import Token, TokenListError, TokenRegistry
from .tx_sender import CallMessage, SendParameters, SendResult, TransactionSender, WaitTimeout
from .batch import BatchOutcome, InvalidBatchIndex, run_batch_file, send_batch

__all__ = [
    "ClientConfig",
    "ConfigurationError",
    "load_client_config",
    "CorruptRecord",
    "EmptyContent",
    "EndOfEntries",
    "RowIndexExceeded",
    "TransactionEntry",
    "InvalidMacroArgument",
    "InvalidMacroDefinition",
    "MacroError",
    "MacroParser",
    "MacroResult",
    "UndefinedMacro",
    "UnrecognizedTokenSymbol",
    "EthereumRPCClient",
    "RPCError",
    "RPCTransportError",
    "Token",
    "TokenListError",
    "TokenRegistry",
    "CallMessage",
    "SendParameters",
    "SendResult",
    "TransactionSender",
    "WaitTimeout",
    "BatchOutcome",
    "InvalidBatchIndex",
    "run_batch_file",
    "send_batch",
]
