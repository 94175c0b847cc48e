"""Seller analytics routes."""

from decimal import Decimal

from fastapi import APIRouter

from ..auth import CurrentUser
from ..database import (
    Database,
    get_seller_earnings,
    list_payments_by_seller,
    list_products_by_seller,
)
from ..models import PaymentResponse, SellerAnalytics

router = APIRouter(prefix="/analytics", tags=["analytics"])

RECENT_PAYMENTS_LIMIT = 10


@router.get("/seller/me", response_model=SellerAnalytics)
async def my_seller_analytics(auth: CurrentUser, db: Database):
    """Earnings, sales and product counts for the authenticated seller."""
    earnings = await get_seller_earnings(db, auth.user_id)
    products = await list_products_by_seller(db, auth.user_id)
    payments = await list_payments_by_seller(db, auth.user_id)

    total_earnings = earnings["total_earnings"]
    total_sales = earnings["total_sales"]
    average = total_earnings / total_sales if total_sales else Decimal("0")

    # list_payments_by_seller returns newest first
    completed = [p for p in payments if p.get("status") == "completed"]

    return SellerAnalytics(
        total_earnings=total_earnings,
        total_sales=total_sales,
        total_products=len(products),
        active_products=sum(1 for p in products if p.get("is_active", True)),
        average_order_value=average.quantize(Decimal("0.000001")),
        recent_payments=[PaymentResponse(**p) for p in completed[:RECENT_PAYMENTS_LIMIT]],
    )
