"""On-chain USDC payment verification for StableLink."""

from .chain import ChainClient, Receipt, ReceiptLog, TransactionInfo
from .errors import ChainClientError, ConfigError, NetworkError, VerificationErrorKind
from .events import TRANSFER_EVENT_SIGNATURE, TransferEvent, decode_transfer_log
from .verification import (
    MAX_AMOUNT_DIFFERENCE,
    PaymentVerifier,
    VerificationRequest,
    VerificationResult,
    is_valid_address,
    is_valid_transaction_hash,
)

__all__ = [
    "ChainClient",
    "Receipt",
    "ReceiptLog",
    "TransactionInfo",
    "ChainClientError",
    "ConfigError",
    "NetworkError",
    "VerificationErrorKind",
    "TRANSFER_EVENT_SIGNATURE",
    "TransferEvent",
    "decode_transfer_log",
    "MAX_AMOUNT_DIFFERENCE",
    "PaymentVerifier",
    "VerificationRequest",
    "VerificationResult",
    "is_valid_address",
    "is_valid_transaction_hash",
]
