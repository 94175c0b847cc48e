"""USDC payment verification on Base.

Verifies that a claimed transaction actually pays a specific obligation by:
1. Validating the hash and recipient formats (no network call)
2. Fetching the transaction receipt and checking its status
3. Checking confirmation depth against the current block
4. Scanning token-contract logs for the first Transfer to the recipient
5. Comparing the transferred amount with the expected one (0.01 tolerance)

Rejections are returned as a ``VerificationResult`` with a
``failure_reason``. ``NetworkError``/``ConfigError`` are raised and mean
the verification is inconclusive.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .chain import ChainClient
from .errors import ConfigError, VerificationErrorKind
from .events import decode_transfer_log, normalize_address

logger = logging.getLogger("stablelink.payments.verification")

USDC_DECIMALS = 6
DEFAULT_MIN_CONFIRMATIONS = 3

# Allow up to 0.01 USDC difference for rounding
MAX_AMOUNT_DIFFERENCE = Decimal("0.01")

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_transaction_hash(tx_hash: Any) -> bool:
    """True for a 0x-prefixed, 32-byte hex string."""
    return isinstance(tx_hash, str) and bool(_TX_HASH_RE.fullmatch(tx_hash))


def is_valid_address(address: Any) -> bool:
    """True for a 0x-prefixed, 20-byte hex string."""
    return isinstance(address, str) and bool(_ADDRESS_RE.fullmatch(address))


def to_token_units(amount: Decimal, decimals: int = USDC_DECIMALS) -> int:
    """Convert a display amount to integer token units.

    Raises:
        ValueError: If the amount has more fractional digits than the token supports.
    """
    scaled = Decimal(amount).scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


def from_token_units(raw: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Convert integer token units to a display amount (e.g. 5000000 -> 5)."""
    return Decimal(raw) / Decimal(10**decimals)


def _coerce_amount(value: Any) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Amount must be a non-negative number, got {value!r}")
    # Rejects anything finer than the token's smallest unit
    to_token_units(amount)
    return amount


@dataclass(frozen=True)
class VerificationRequest:
    """What a transaction must do to count as payment.

    ``expected_amount`` is validated on construction (non-negative, at most
    6 decimal places). Hash and recipient are validated by the verifier so
    malformed values come back as a typed rejection.
    """

    transaction_hash: str
    expected_amount: Decimal
    expected_recipient: str
    minimum_confirmations: int = DEFAULT_MIN_CONFIRMATIONS

    def __post_init__(self):
        object.__setattr__(self, "expected_amount", _coerce_amount(self.expected_amount))
        if self.minimum_confirmations < 0:
            raise ValueError("minimum_confirmations must be >= 0")


@dataclass(frozen=True)
class VerificationResult:
    """Verdict for a single verification call."""

    is_valid: bool
    transaction_hash: str
    actual_amount: Decimal = Decimal("0")
    actual_recipient: str = ""
    block_number: int = 0
    confirmations: int = 0
    failure_reason: Optional[VerificationErrorKind] = None
    expected_amount: Optional[Decimal] = None
    error: Optional[str] = None

    @classmethod
    def rejected(
        cls,
        tx_hash: str,
        reason: VerificationErrorKind,
        error: str,
        **details,
    ) -> "VerificationResult":
        return cls(
            is_valid=False,
            transaction_hash=tx_hash,
            failure_reason=reason,
            error=error,
            **details,
        )

    @property
    def retryable(self) -> bool:
        return self.failure_reason is not None and self.failure_reason.retryable

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_valid": self.is_valid,
            "transaction_hash": self.transaction_hash,
            "actual_amount": str(self.actual_amount),
            "actual_recipient": self.actual_recipient,
            "block_number": self.block_number,
            "confirmations": self.confirmations,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "expected_amount": str(self.expected_amount) if self.expected_amount is not None else None,
            "error": self.error,
        }


@dataclass
class PaymentVerifier:
    """Checks claimed token transfers against chain state.

    Stateless apart from immutable configuration; one instance can serve
    any number of concurrent verifications as long as the chain client can.
    """

    client: ChainClient
    token_address: str
    decimals: int = USDC_DECIMALS
    max_difference: Decimal = MAX_AMOUNT_DIFFERENCE
    _token: str = field(init=False, repr=False)
    _max_units: int = field(init=False, repr=False)

    def __post_init__(self):
        if not is_valid_address(self.token_address):
            raise ConfigError(f"Invalid token contract address: {self.token_address!r}")
        # Prices carry up to USDC_DECIMALS places and must convert exactly
        if self.decimals < USDC_DECIMALS:
            raise ConfigError(f"Token decimals must be at least {USDC_DECIMALS}, got {self.decimals}")
        self._token = normalize_address(self.token_address)
        self._max_units = to_token_units(self.max_difference, self.decimals)

    async def verify_token_transfer(self, request: VerificationRequest) -> VerificationResult:
        """Decide whether ``request.transaction_hash`` pays the expected amount.

        Raises:
            NetworkError: The node could not be reached or answered garbage.
        """
        tx_hash = request.transaction_hash

        if not is_valid_transaction_hash(tx_hash):
            return VerificationResult.rejected(
                str(tx_hash),
                VerificationErrorKind.INVALID_HASH,
                "Invalid transaction hash format",
            )
        if not is_valid_address(request.expected_recipient):
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.INVALID_RECIPIENT,
                "Invalid recipient address format",
            )

        tx_hash = tx_hash.lower()
        expected_recipient = normalize_address(request.expected_recipient)

        receipt = await self.client.get_transaction_receipt(tx_hash)
        if receipt is None:
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.TX_NOT_FOUND,
                "Transaction not found or not yet mined",
            )

        if not receipt.succeeded:
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.TX_FAILED,
                "Transaction failed on blockchain",
                block_number=receipt.block_number,
            )

        current_block = await self.client.get_block_number()
        confirmations = max(0, current_block - receipt.block_number)
        if confirmations < request.minimum_confirmations:
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.INSUFFICIENT_CONFIRMATIONS,
                f"Transaction needs {request.minimum_confirmations} confirmations, "
                f"has {confirmations}",
                block_number=receipt.block_number,
                confirmations=confirmations,
            )

        transfer = None
        for log in receipt.logs:
            if normalize_address(log.address) != self._token:
                continue
            event = decode_transfer_log(log)
            if event is None:
                continue
            if event.to_address == expected_recipient:
                transfer = event
                break

        if transfer is None:
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.NO_TRANSFER_FOUND,
                "No USDC transfer found to expected recipient",
                block_number=receipt.block_number,
                confirmations=confirmations,
            )

        actual_amount = from_token_units(transfer.raw_value, self.decimals)
        expected_units = to_token_units(request.expected_amount, self.decimals)
        if abs(transfer.raw_value - expected_units) > self._max_units:
            return VerificationResult.rejected(
                tx_hash,
                VerificationErrorKind.AMOUNT_MISMATCH,
                f"Amount mismatch: expected {request.expected_amount} USDC, "
                f"got {actual_amount} USDC",
                actual_amount=actual_amount,
                actual_recipient=transfer.to_address,
                block_number=receipt.block_number,
                confirmations=confirmations,
                expected_amount=request.expected_amount,
            )

        logger.debug(
            "Verified %s: %s USDC to %s (%d confirmations)",
            tx_hash,
            actual_amount,
            transfer.to_address,
            confirmations,
        )
        return VerificationResult(
            is_valid=True,
            transaction_hash=tx_hash,
            actual_amount=actual_amount,
            actual_recipient=transfer.to_address,
            block_number=receipt.block_number,
            confirmations=confirmations,
            expected_amount=request.expected_amount,
        )

    async def get_transaction_details(self, tx_hash: str) -> dict:
        """Fetch transaction, receipt and current height for debugging."""
        transaction = await self.client.get_transaction(tx_hash)
        receipt = await self.client.get_transaction_receipt(tx_hash)
        current_block = await self.client.get_block_number()
        return {
            "transaction": transaction.to_dict() if transaction else None,
            "status": receipt.status if receipt else None,
            "log_count": len(receipt.logs) if receipt else None,
            "current_block": current_block,
        }
