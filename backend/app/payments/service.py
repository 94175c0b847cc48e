"""Payment confirmation: ties on-chain verification to payment records.

A valid verdict completes the payment. A permanent rejection fails it.
A retryable rejection (not mined yet, too few confirmations) leaves it
pending. Chain client errors propagate untouched so the payment state
never changes on an inconclusive check.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends

from supabase import Client

from .. import database
from ..config import Settings, get_settings
from ..logging_config import log_verification_event
from .chain import ChainClient
from .errors import ChainClientError
from .verification import PaymentVerifier, VerificationRequest, VerificationResult

logger = logging.getLogger("stablelink.payments")

_chain_client: ChainClient | None = None


def get_chain_client(settings: Settings | None = None) -> ChainClient:
    """Get the process-wide chain client (pooled connections).

    Raises:
        ConfigError: If no RPC endpoint or credential is configured.
    """
    global _chain_client
    if _chain_client is None:
        if settings is None:
            settings = get_settings()
        _chain_client = ChainClient.from_settings(settings)
    return _chain_client


async def close_chain_client() -> None:
    """Close the shared chain client, if one was created."""
    global _chain_client
    if _chain_client is not None:
        await _chain_client.aclose()
        _chain_client = None


def get_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> PaymentVerifier:
    """FastAPI dependency for the payment verifier."""
    return PaymentVerifier(
        client=get_chain_client(settings),
        token_address=settings.usdc_contract_address,
    )


# Type alias for dependency injection
Verifier = Annotated[PaymentVerifier, Depends(get_verifier)]


def expected_recipient_for(product: dict) -> str | None:
    """Address a product's payments must go to."""
    return product.get("recipient_address") or product.get("owner_address") or None


@dataclass
class ConfirmationOutcome:
    """Result of confirming a payment."""

    verification: VerificationResult
    payment: dict | None

    @property
    def status(self) -> str:
        if self.verification.is_valid:
            return "completed"
        return "pending" if self.verification.retryable else "failed"


async def confirm_payment(
    db: Client,
    verifier: PaymentVerifier,
    payment: dict,
    product: dict,
    tx_hash: str,
    min_confirmations: int,
) -> ConfirmationOutcome:
    """Verify ``tx_hash`` against the product's price and recipient, then persist the verdict.

    Raises:
        ValueError: If the product has no recipient address or an unusable price.
        ChainClientError: If verification is inconclusive (nothing is persisted).
    """
    recipient = expected_recipient_for(product)
    if not recipient:
        raise ValueError("No recipient address configured for product")

    request = VerificationRequest(
        transaction_hash=tx_hash,
        expected_amount=product["price_usdc"],
        expected_recipient=recipient,
        minimum_confirmations=min_confirmations,
    )

    logger.info(
        f"Verifying transaction {tx_hash} for payment {payment['id']} "
        f"(expected {request.expected_amount} USDC to {recipient})"
    )
    try:
        result = await verifier.verify_token_transfer(request)
    except ChainClientError as e:
        log_verification_event(
            tx_hash,
            "inconclusive",
            reason=e.code,
            payment_id=payment["id"],
        )
        raise

    if result.is_valid:
        log_verification_event(
            tx_hash,
            "valid",
            payment_id=payment["id"],
            amount=result.actual_amount,
            recipient=result.actual_recipient,
            confirmations=result.confirmations,
        )
        updated = await database.complete_payment(
            db,
            payment["id"],
            tx_hash,
            amount_usdc=result.actual_amount,
            to_address=result.actual_recipient,
        )
        return ConfirmationOutcome(verification=result, payment=updated)

    log_verification_event(
        tx_hash,
        "rejected",
        reason=result.failure_reason.value,
        payment_id=payment["id"],
        confirmations=result.confirmations or None,
        actual=result.actual_amount if result.actual_recipient else None,
        expected=result.expected_amount,
    )

    if result.retryable:
        return ConfirmationOutcome(verification=result, payment=payment)

    updated = await database.fail_payment(db, payment["id"], tx_hash, result.error or "")
    return ConfirmationOutcome(verification=result, payment=updated)
