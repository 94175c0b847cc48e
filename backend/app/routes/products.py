"""Product and payment-link routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth import AuthContext, CurrentUser
from ..config import Settings, get_settings
from ..database import (
    Database,
    create_product,
    delete_product,
    get_product,
    get_product_by_payment_link,
    get_user,
    list_products_by_seller,
    update_product,
)
from ..logging_config import get_logger
from ..models import (
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    PublicProductResponse,
    SellerInfo,
)
from ..rate_limit import limiter

logger = get_logger("stablelink.products")
router = APIRouter(prefix="/products", tags=["products"])


def payment_url(settings: Settings, payment_link: str) -> str:
    """Shareable URL buyers open to pay for a product."""
    return f"{settings.base_url.rstrip('/')}/pay/{payment_link}"


def to_response(product: dict, settings: Settings) -> ProductResponse:
    return ProductResponse(**product, payment_url=payment_url(settings, product["payment_link"]))


async def load_owned_product(db, product_id: str, auth: AuthContext) -> dict:
    """Fetch a product the caller owns, or raise 404/403."""
    product = await get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not auth.owns(product):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: You do not have access to this product",
        )
    return product


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_new_product(
    request: Request,
    body: ProductCreate,
    auth: CurrentUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Create a product and its payment link.

    Payments go to ``recipient_address`` if given, otherwise to the
    seller's own wallet address.
    """
    recipient = body.recipient_address or auth.wallet_address
    if not recipient:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A recipient address is required when the account has no wallet",
        )

    product = await create_product(
        db,
        seller_id=auth.user_id,
        name=body.name,
        description=body.description,
        price_usd=body.price_usd,
        image_url=body.image_url,
        recipient_address=recipient,
        slug=body.slug,
    )
    if not product:
        logger.error(f"Failed to create product for seller {auth.user_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product",
        )

    logger.info(f"Product {product['id']} created by {auth.user_id} ({product['payment_link']})")
    return to_response(product, settings)


@router.get("", response_model=list[ProductResponse])
async def list_my_products(
    auth: CurrentUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """List the authenticated seller's products."""
    products = await list_products_by_seller(db, auth.user_id)
    return [to_response(p, settings) for p in products]


@router.get("/public/{payment_link}", response_model=PublicProductResponse)
@limiter.limit("60/minute")
async def get_public_product(
    request: Request,
    payment_link: str,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Get an active product by payment link (no auth, used by the pay page)."""
    if not payment_link.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment link is required",
        )

    product = await get_product_by_payment_link(db, payment_link)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found or inactive",
        )

    seller = await get_user(db, product["seller_id"])
    return PublicProductResponse(
        product=to_response(product, settings),
        seller=SellerInfo(
            id=str(seller["id"]),
            name=seller["name"],
            username=seller.get("username"),
            wallet_address=seller.get("wallet_address"),
        ) if seller else None,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_my_product(
    product_id: str,
    auth: CurrentUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Get one of the seller's products."""
    product = await load_owned_product(db, product_id, auth)
    return to_response(product, settings)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_my_product(
    product_id: str,
    body: ProductUpdate,
    auth: CurrentUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Update one of the seller's products."""
    await load_owned_product(db, product_id, auth)

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    product = await update_product(db, product_id, updates)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return to_response(product, settings)


@router.delete("/{product_id}")
async def delete_my_product(product_id: str, auth: CurrentUser, db: Database):
    """Delete one of the seller's products."""
    await load_owned_product(db, product_id, auth)

    if not await delete_product(db, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    logger.info(f"Product {product_id} deleted by {auth.user_id}")
    return {"status": "deleted", "id": product_id}
