"""Pydantic models for API requests and responses.

All monetary values use Decimal. USD and USDC are treated 1:1.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_]{3,30}$"

# =============================================================================
# Auth Models
# =============================================================================


class SessionRequest(BaseModel):
    """Identity asserted by the embedded-wallet platform after login."""
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    wallet_address: str = Field(..., pattern=ADDRESS_PATTERN)
    name: str | None = Field(default=None, max_length=100)


class UserResponse(BaseModel):
    """User profile."""
    id: str
    email: str
    name: str
    username: str | None = None
    bio: str | None = None
    wallet_address: str | None = None
    profile_image_url: str | None = None
    is_onboarding_complete: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SessionResponse(BaseModel):
    """JWT session token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# =============================================================================
# User Models
# =============================================================================


class UserUpdate(BaseModel):
    """Partial profile update."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    wallet_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    bio: str | None = Field(default=None, max_length=500)


class OnboardingRequest(BaseModel):
    """Profile details collected on first login."""
    username: str = Field(..., pattern=USERNAME_PATTERN)
    name: str = Field(..., min_length=1, max_length=100)
    bio: str | None = Field(default=None, max_length=500)


class UsernameCheckResponse(BaseModel):
    username: str
    available: bool
    message: str


# =============================================================================
# Product Models
# =============================================================================


class ProductCreate(BaseModel):
    """Request to create a product and its payment link."""
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    price_usd: Decimal = Field(..., ge=Decimal("0.01"), le=Decimal("10000"), decimal_places=6)
    image_url: str | None = Field(default=None, max_length=2048)
    recipient_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    slug: str | None = Field(default=None, min_length=1, max_length=50)


class ProductUpdate(BaseModel):
    """Partial product update."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    price_usd: Decimal | None = Field(
        default=None, ge=Decimal("0.01"), le=Decimal("10000"), decimal_places=6
    )
    image_url: str | None = Field(default=None, max_length=2048)
    recipient_address: str | None = Field(default=None, pattern=ADDRESS_PATTERN)
    is_active: bool | None = None
    status: Literal["active", "inactive"] | None = None


class ProductResponse(BaseModel):
    """Product with its shareable payment URL."""
    id: str
    seller_id: str
    name: str
    description: str
    price_usd: Decimal
    price_usdc: Decimal
    image_url: str | None = None
    is_active: bool = True
    status: str = "active"
    slug: str
    payment_link: str
    payment_url: str | None = None
    recipient_address: str | None = None
    owner_address: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SellerInfo(BaseModel):
    """Public seller details shown on the payment page."""
    id: str
    name: str
    username: str | None = None
    wallet_address: str | None = None


class PublicProductResponse(BaseModel):
    product: ProductResponse
    seller: SellerInfo | None = None


# =============================================================================
# Payment Models
# =============================================================================


class PaymentCreate(BaseModel):
    """Request to open a pending payment for a product."""
    product_id: str = Field(..., min_length=1)
    buyer_email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    buyer_wallet_address: str = Field(..., pattern=ADDRESS_PATTERN)
    amount_usdc: Decimal = Field(..., ge=Decimal("0.01"), decimal_places=6)


class PaymentResponse(BaseModel):
    """Single payment record."""
    id: str
    product_id: str
    seller_id: str
    buyer_email: str
    buyer_wallet_address: str
    amount_usd: Decimal | None = None
    amount_usdc: Decimal
    from_address: str | None = None
    to_address: str | None = None
    transaction_hash: str | None = None
    status: Literal["pending", "completed", "failed"]
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    product: dict[str, Any] | None = None


class PaymentConfirmRequest(BaseModel):
    """Claim that an on-chain transfer pays a pending payment."""
    payment_id: str = Field(..., min_length=1)
    transaction_hash: str = Field(..., description="On-chain transaction hash (0x + 64 hex chars)")


class VerificationInfo(BaseModel):
    """On-chain facts backing a confirmed payment."""
    block_number: int
    confirmations: int
    actual_amount: Decimal
    actual_recipient: str


class PaymentConfirmResponse(BaseModel):
    payment: PaymentResponse
    verification: VerificationInfo
    message: str


# =============================================================================
# Blockchain Diagnostics
# =============================================================================


class ChainStatusResponse(BaseModel):
    configured: bool
    network: str
    usdc_contract: str
    min_confirmations: int
    ready: bool


class VerifyTransactionRequest(BaseModel):
    transaction_hash: str
    expected_amount: Decimal = Field(..., ge=Decimal("0"), decimal_places=6)
    expected_recipient: str


class VerifyTransactionResponse(BaseModel):
    verification: dict[str, Any]
    transaction_details: dict[str, Any] | None = None
    message: str


# =============================================================================
# Analytics
# =============================================================================


class SellerAnalytics(BaseModel):
    total_earnings: Decimal
    total_sales: int
    total_products: int
    active_products: int
    average_order_value: Decimal
    recent_payments: list[PaymentResponse]
