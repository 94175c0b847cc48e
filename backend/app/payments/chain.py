"""Read-only JSON-RPC client for an EVM node.

Node responses are parsed into small frozen dataclasses at this boundary;
anything missing or malformed becomes a ``NetworkError`` instead of
leaking half-populated dicts into the verification logic.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import Settings
from .errors import ConfigError, NetworkError

logger = logging.getLogger("stablelink.payments.chain")

DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class ReceiptLog:
    """One log entry emitted during a transaction."""

    address: str
    topics: tuple[str, ...]
    data: str
    log_index: Optional[int] = None


@dataclass(frozen=True)
class Receipt:
    """Execution outcome of a mined transaction."""

    transaction_hash: str
    block_number: int
    status: int  # 1 = success, 0 = reverted
    logs: tuple[ReceiptLog, ...]

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class TransactionInfo:
    """Transaction as reported by ``eth_getTransactionByHash``."""

    hash: str
    block_number: Optional[int]  # None while pending
    from_address: str
    to_address: Optional[str]  # None for contract creation
    value: int
    input: str

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "block_number": self.block_number,
            "from": self.from_address,
            "to": self.to_address,
            "value": str(self.value),
            "input_size": max(0, (len(self.input) - 2) // 2),
        }


def _parse_quantity(value: Any, field: str) -> int:
    """Parse a hex-encoded JSON-RPC quantity (``0x1a``)."""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise NetworkError(f"Malformed node response: {field}={value!r}")
    try:
        return int(value, 16)
    except ValueError:
        raise NetworkError(f"Malformed node response: {field}={value!r}") from None


def _require(payload: dict, field: str) -> Any:
    if field not in payload or payload[field] is None:
        raise NetworkError(f"Malformed node response: missing '{field}'")
    return payload[field]


def parse_receipt(payload: Any) -> Receipt:
    """Validate a raw receipt object from ``eth_getTransactionReceipt``."""
    if not isinstance(payload, dict):
        raise NetworkError(f"Malformed node response: receipt is {type(payload).__name__}")

    raw_logs = _require(payload, "logs")
    if not isinstance(raw_logs, list):
        raise NetworkError("Malformed node response: 'logs' is not a list")

    logs = []
    for raw in raw_logs:
        if not isinstance(raw, dict):
            raise NetworkError("Malformed node response: log entry is not an object")
        topics = _require(raw, "topics")
        if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
            raise NetworkError("Malformed node response: 'topics' is not a list of strings")
        address = _require(raw, "address")
        data = _require(raw, "data")
        if not isinstance(address, str) or not isinstance(data, str):
            raise NetworkError("Malformed node response: log address/data must be strings")
        log_index = raw.get("logIndex")
        logs.append(
            ReceiptLog(
                address=address,
                topics=tuple(topics),
                data=data,
                log_index=_parse_quantity(log_index, "logIndex") if log_index is not None else None,
            )
        )

    return Receipt(
        transaction_hash=str(payload.get("transactionHash", "")),
        block_number=_parse_quantity(_require(payload, "blockNumber"), "blockNumber"),
        status=_parse_quantity(_require(payload, "status"), "status"),
        logs=tuple(logs),
    )


def parse_transaction(payload: Any) -> TransactionInfo:
    """Validate a raw transaction object from ``eth_getTransactionByHash``."""
    if not isinstance(payload, dict):
        raise NetworkError(f"Malformed node response: transaction is {type(payload).__name__}")

    block_number = payload.get("blockNumber")
    return TransactionInfo(
        hash=str(_require(payload, "hash")),
        block_number=_parse_quantity(block_number, "blockNumber") if block_number else None,
        from_address=str(_require(payload, "from")),
        to_address=payload.get("to"),
        value=_parse_quantity(payload.get("value", "0x0"), "value"),
        input=str(payload.get("input", "0x")),
    )


class ChainClient:
    """Async JSON-RPC client over a pooled ``httpx.AsyncClient``.

    Safe to share between concurrent verifications. Every call is bounded
    by ``timeout``; timeouts and transport failures raise ``NetworkError``.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not rpc_url:
            raise ConfigError("Node RPC URL is not configured")
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainClient":
        """Build a client from app settings, or raise ConfigError."""
        rpc_url = settings.rpc_url
        if not rpc_url:
            raise ConfigError("Alchemy API key not configured")
        return cls(rpc_url, timeout=settings.rpc_timeout_seconds)

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _call(self, method: str, params: list) -> Any:
        """Make one JSON-RPC call and return its ``result``."""
        request_id = next(self._ids)
        try:
            response = await self._http.post(
                self.rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params,
                    "id": request_id,
                },
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC {method} timed out after {self.timeout}s")
            raise NetworkError(f"RPC {method} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {method}: {e}")
            raise NetworkError(f"RPC {method} failed: {e}") from e
        except ValueError as e:
            raise NetworkError(f"RPC {method} returned invalid JSON") from e

        if not isinstance(body, dict):
            raise NetworkError(f"RPC {method} returned a non-object response")
        if body.get("error") is not None:
            raise NetworkError(f"RPC error: {body['error']}")
        if "result" not in body:
            raise NetworkError(f"RPC {method} response has no result")
        return body["result"]

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        """Return the receipt, or None if the node does not know the transaction yet."""
        result = await self._call("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            return None
        return parse_receipt(result)

    async def get_transaction(self, tx_hash: str) -> TransactionInfo | None:
        """Return the transaction, or None if unknown. Diagnostic only."""
        result = await self._call("eth_getTransactionByHash", [tx_hash])
        if result is None:
            return None
        return parse_transaction(result)

    async def get_block_number(self) -> int:
        """Return the current chain height."""
        result = await self._call("eth_blockNumber", [])
        return _parse_quantity(result, "blockNumber")
