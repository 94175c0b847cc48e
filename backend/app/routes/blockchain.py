"""Blockchain diagnostic routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth import CurrentUser
from ..config import Settings, get_settings
from ..logging_config import get_logger
from ..models import ChainStatusResponse, VerifyTransactionRequest, VerifyTransactionResponse
from ..payments.errors import ChainClientError
from ..payments.service import Verifier
from ..payments.verification import VerificationRequest, is_valid_transaction_hash
from ..rate_limit import limiter

logger = get_logger("stablelink.blockchain")
router = APIRouter(prefix="/blockchain", tags=["blockchain"])

NETWORK_NAME = "Base Mainnet"


@router.get("/status", response_model=ChainStatusResponse)
async def chain_status(settings: Annotated[Settings, Depends(get_settings)]):
    """Report whether on-chain verification is configured."""
    configured = settings.rpc_url is not None
    return ChainStatusResponse(
        configured=configured,
        network=NETWORK_NAME,
        usdc_contract=settings.usdc_contract_address,
        min_confirmations=settings.payment_min_confirmations,
        ready=configured,
    )


@router.post("/verify", response_model=VerifyTransactionResponse)
@limiter.limit("10/minute")
async def verify_transaction(
    request: Request,
    body: VerifyTransactionRequest,
    auth: CurrentUser,
    verifier: Verifier,
):
    """
    Verify a USDC transfer without touching any payment.

    Uses a single confirmation so freshly mined transfers can be checked.
    Transaction details are best effort and omitted if the node fails.
    """
    if not is_valid_transaction_hash(body.transaction_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid transaction hash format",
        )

    result = await verifier.verify_token_transfer(
        VerificationRequest(
            transaction_hash=body.transaction_hash,
            expected_amount=body.expected_amount,
            expected_recipient=body.expected_recipient,
            minimum_confirmations=1,
        )
    )

    details = None
    try:
        details = await verifier.get_transaction_details(result.transaction_hash)
    except ChainClientError as e:
        logger.warning(f"Could not fetch details for {result.transaction_hash}: {e}")

    logger.info(
        f"Manual verification by {auth.user_id}: {result.transaction_hash} "
        f"valid={result.is_valid}"
    )
    return VerifyTransactionResponse(
        verification=result.to_dict(),
        transaction_details=details,
        message="Transaction verified" if result.is_valid else f"Verification failed: {result.error}",
    )
