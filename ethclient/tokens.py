"""ERC-20 token registry used by the macro interpreter.

Token lists are plain JSON arrays of ``{address, symbol, decimal, type}``
records. When no local list is available the shared list is fetched once with
``wget`` or ``curl`` and left on disk for inspection.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/kvhnuke/etherwallet/mercury/app/scripts/tokens/ethTokens.json"
)
DEFAULT_TOKEN_CACHE = Path("ethToken.json")


class TokenListError(RuntimeError):
    """Raised when a token list cannot be read or parsed."""


class NoDownloadToolAvailable(TokenListError):
    """Raised when neither wget nor curl is installed."""


@dataclass(frozen=True)
class Token:
    symbol: str
    address: str
    decimals: int
    kind: str = "default"

    @classmethod
    def from_record(cls, record: Any, index: int) -> "Token":
        if not isinstance(record, dict):
            raise TokenListError(f"Token record {index} must be an object")
        symbol = record.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            raise TokenListError(f"Token record {index} has no symbol")
        address = record.get("address")
        if not isinstance(address, str) or not address.strip():
            raise TokenListError(f"Token {symbol} has no contract address")
        raw_decimals = record.get("decimal", record.get("decimals", 0))
        if isinstance(raw_decimals, bool):
            raise TokenListError(f"Token {symbol} has an invalid decimal value: {raw_decimals!r}")
        try:
            decimals = int(raw_decimals)
        except (TypeError, ValueError) as exc:
            raise TokenListError(
                f"Token {symbol} has an invalid decimal value: {raw_decimals!r}"
            ) from exc
        if decimals < 0:
            raise TokenListError(f"Token {symbol} has a negative decimal value: {decimals}")
        return cls(
            symbol=symbol.strip(),
            address=address.strip(),
            decimals=decimals,
            kind=str(record.get("type") or "default"),
        )


def _download_command(tool: str, url: str, destination: Path) -> list[str]:
    if tool == "wget":
        return ["wget", "-q", "-O", str(destination), url]
    return ["curl", "-sSfL", "-o", str(destination), url]


def download_token_list(
    url: str = DEFAULT_TOKEN_LIST_URL,
    destination: str | Path = DEFAULT_TOKEN_CACHE,
    *,
    which: Callable[[str], str | None] = shutil.which,
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> bytes:
    """Fetch the token list with whichever of wget/curl is installed."""

    destination = Path(destination)
    tool = next((name for name in ("wget", "curl") if which(name)), None)
    if tool is None:
        raise NoDownloadToolAvailable("no download tool installed (need wget or curl)")

    command = _download_command(tool, url, destination)
    logger.info("Downloading token list from %s via %s", url, tool)
    result = run(command, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise TokenListError(
            f"{tool} exited with status {result.returncode} while fetching {url}: {stderr or '<no output>'}"
        )
    try:
        return destination.read_bytes()
    except OSError as exc:
        raise TokenListError(f"Downloaded token list missing at {destination}: {exc}") from exc


def parse_token_list(content: bytes | str, source: str = "<memory>") -> list[Token]:
    try:
        records = json.loads(content)
    except ValueError as exc:
        raise TokenListError(f"Invalid JSON in token list {source}: {exc}") from exc
    if not isinstance(records, list):
        raise TokenListError(f"Token list {source} must be a JSON array")
    return [Token.from_record(record, index) for index, record in enumerate(records)]


def load_token_list(
    path: str | Path | None,
    *,
    download_url: str = DEFAULT_TOKEN_LIST_URL,
    cache_path: str | Path = DEFAULT_TOKEN_CACHE,
    downloader: Callable[[str, Path], bytes] | None = None,
) -> list[Token]:
    """Read tokens from ``path`` or download the shared list when it is absent."""

    if path and Path(path).is_file():
        source = Path(path)
        try:
            content = source.read_bytes()
        except OSError as exc:
            raise TokenListError(f"Unable to read token list {source}: {exc}") from exc
        tokens = parse_token_list(content, str(source))
    else:
        if path:
            logger.info("Token list %s not found; falling back to download", path)
        fetch = downloader or (lambda url, dest: download_token_list(url, dest))
        content = fetch(download_url, Path(cache_path))
        tokens = parse_token_list(content, download_url)
    logger.debug("Loaded %d tokens", len(tokens))
    return tokens


class TokenRegistry:
    """Case-insensitive symbol → token lookup table."""

    def __init__(self, tokens: dict[str, Token]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_tokens(cls, tokens: Iterable[Token]) -> "TokenRegistry":
        mapping: dict[str, Token] = {}
        for token in tokens:
            key = token.symbol.lower()
            if key in mapping:
                logger.debug("Token symbol %s redefined; keeping the later entry", token.symbol)
            mapping[key] = token
        return cls(mapping)

    @classmethod
    def load(cls, path: str | Path | None, **kwargs: Any) -> "TokenRegistry":
        return cls.from_tokens(load_token_list(path, **kwargs))

    def get(self, symbol: str) -> Token | None:
        return self._tokens.get(symbol.lower())

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.lower() in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(sorted(self._tokens.values(), key=lambda token: token.symbol.lower()))
