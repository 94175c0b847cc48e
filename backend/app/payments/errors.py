"""Verification failure kinds and chain client exceptions.

Rejections (not found, reverted, mismatch, ...) are returned as a
``VerificationErrorKind`` on the result. Only transport and configuration
problems are raised, so callers can tell "the chain said no" apart from
"we could not ask the chain".
"""

from enum import Enum


class VerificationErrorKind(str, Enum):
    """Reason a transaction does not satisfy a payment obligation."""

    INVALID_HASH = "INVALID_HASH"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    TX_NOT_FOUND = "TX_NOT_FOUND"
    TX_FAILED = "TX_FAILED"
    INSUFFICIENT_CONFIRMATIONS = "INSUFFICIENT_CONFIRMATIONS"
    NO_TRANSFER_FOUND = "NO_TRANSFER_FOUND"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"

    @property
    def retryable(self) -> bool:
        """True when re-running verification later may succeed."""
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {
        VerificationErrorKind.TX_NOT_FOUND,
        VerificationErrorKind.INSUFFICIENT_CONFIRMATIONS,
    }
)


class ChainClientError(Exception):
    """Verification is inconclusive: the node could not be queried."""

    code = "CHAIN_ERROR"


class NetworkError(ChainClientError):
    """Transport failure, timeout, RPC error, or malformed node response."""

    code = "NETWORK_ERROR"


class ConfigError(ChainClientError):
    """Node endpoint or credentials are not configured."""

    code = "CONFIG_ERROR"
