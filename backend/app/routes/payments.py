"""Payment routes.

Buyers open a pending payment, send USDC from their wallet, then call
``POST /payments/confirm`` with the transaction hash. The hash is checked
on-chain before the payment is marked completed.
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..auth import CurrentUser
from ..config import Settings, get_settings
from ..database import (
    Database,
    TransactionAlreadyUsedError,
    create_payment,
    get_payment,
    get_payment_by_tx_hash,
    get_product,
    list_payments_by_product,
    list_payments_by_seller,
)
from ..logging_config import get_logger
from ..models import (
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    PaymentCreate,
    PaymentResponse,
    VerificationInfo,
)
from ..payments.service import Verifier, confirm_payment, expected_recipient_for
from ..payments.verification import MAX_AMOUNT_DIFFERENCE, is_valid_transaction_hash
from ..rate_limit import limiter

logger = get_logger("stablelink.payments.routes")
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_pending_payment(
    request: Request,
    body: PaymentCreate,
    db: Database,
):
    """
    Open a pending payment for an active product.

    The quoted amount must match the product price (1 USD = 1 USDC)
    within the verification tolerance.
    """
    product = await get_product(db, body.product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    if not product.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product is not active",
        )

    price_usdc = Decimal(str(product["price_usdc"]))
    if abs(body.amount_usdc - price_usdc) > MAX_AMOUNT_DIFFERENCE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment amount does not match product price",
        )

    payment = await create_payment(
        db,
        product,
        buyer_email=body.buyer_email.strip().lower(),
        buyer_wallet_address=body.buyer_wallet_address,
        amount_usdc=body.amount_usdc,
    )
    if not payment:
        logger.error(f"Failed to create payment for product {body.product_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create payment",
        )

    logger.info(f"Pending payment {payment['id']} opened for product {product['id']}")
    return PaymentResponse(**payment)


@router.get("", response_model=list[PaymentResponse])
async def list_my_payments(
    auth: CurrentUser,
    db: Database,
    product_id: str | None = Query(default=None),
):
    """List payments received by the authenticated seller."""
    if product_id:
        product = await get_product(db, product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        if not auth.owns(product):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: You do not have access to this product",
            )
        payments = await list_payments_by_product(db, product_id)
    else:
        payments = await list_payments_by_seller(db, auth.user_id)

    return [PaymentResponse(**p) for p in payments]


@router.post("/confirm", response_model=PaymentConfirmResponse)
@limiter.limit("10/minute")
async def confirm_payment_route(
    request: Request,
    body: PaymentConfirmRequest,
    db: Database,
    verifier: Verifier,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Confirm a payment by verifying its USDC transfer on-chain.

    - 400: malformed hash, or the chain rejected the transfer (``reason`` says why;
      retryable reasons leave the payment pending)
    - 409: the transaction hash already paid for another payment
    - 503: the node could not be queried; the payment is left untouched
    """
    if not is_valid_transaction_hash(body.transaction_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid transaction hash format",
        )
    tx_hash = body.transaction_hash.lower()

    # Prevent one transfer from paying for two purchases
    used_by = await get_payment_by_tx_hash(db, tx_hash)
    if used_by and str(used_by["id"]) != body.payment_id:
        logger.warning(
            f"Transaction {tx_hash} reused: already on payment {used_by['id']}, "
            f"claimed for {body.payment_id}"
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Transaction hash already used",
        )

    payment = await get_payment(db, body.payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    if payment.get("status") == "completed":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment has already been confirmed",
        )

    product = await get_product(db, payment["product_id"])
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Associated product not found",
        )

    if not expected_recipient_for(product):
        logger.error(f"Product {product['id']} has no recipient address")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No recipient address configured for product",
        )

    try:
        outcome = await confirm_payment(
            db,
            verifier,
            payment,
            product,
            tx_hash,
            min_confirmations=settings.payment_min_confirmations,
        )
    except TransactionAlreadyUsedError:
        logger.warning(f"Transaction {tx_hash} completed another payment before {payment['id']}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Transaction hash already used",
        )
    except ValueError as e:
        logger.error(f"Cannot verify payment {payment['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Product price cannot be verified",
        )

    result = outcome.verification
    if not result.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": f"Payment verification failed: {result.error}",
                "reason": result.failure_reason.value,
                "retryable": result.retryable,
                "status": outcome.status,
            },
        )

    if not outcome.payment:
        logger.error(f"Verified {tx_hash} but failed to update payment {payment['id']}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update payment status",
        )

    logger.info(
        f"Payment {payment['id']} confirmed: {result.actual_amount} USDC "
        f"to {result.actual_recipient} ({result.confirmations} confirmations)"
    )

    return PaymentConfirmResponse(
        payment=PaymentResponse(**outcome.payment),
        verification=VerificationInfo(
            block_number=result.block_number,
            confirmations=result.confirmations,
            actual_amount=result.actual_amount,
            actual_recipient=result.actual_recipient,
        ),
        message="Payment verified and confirmed successfully",
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment_details(payment_id: str, auth: CurrentUser, db: Database):
    """Get a payment visible to the seller who received it or the buyer who made it."""
    payment = await get_payment(db, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    is_buyer = auth.email is not None and payment.get("buyer_email") == auth.email.lower()
    if not (auth.owns(payment) or is_buyer):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: You do not have access to this payment",
        )
    return PaymentResponse(**payment)
