"""Database utilities for Supabase integration."""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from fastapi import Depends
from postgrest.exceptions import APIError

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Table Names
# =============================================================================

USERS_TABLE = "users"
PRODUCTS_TABLE = "products"
PAYMENTS_TABLE = "payments"

# The system treats 1 USD = 1 USDC
USD_TO_USDC_RATE = Decimal("1.0")

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


class TransactionAlreadyUsedError(Exception):
    """A transaction hash is already recorded on another completed payment."""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} already paid for another payment")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_slug(name: str) -> str:
    """Turn a product name into a URL-safe slug."""
    slug = name.lower()
    slug = re.sub(r"[^\w\s-]", "", slug)  # Remove special characters
    slug = re.sub(r"\s+", "-", slug.strip())  # Spaces to hyphens
    slug = re.sub(r"-+", "-", slug)  # Collapse repeated hyphens
    return slug.strip("-") or "product"


# =============================================================================
# User Operations
# =============================================================================

async def create_user(
    db: Client,
    email: str,
    name: str,
    wallet_address: str | None = None,
) -> dict | None:
    """Create a new user."""
    now = _now()
    data = {
        "email": email,
        "name": name,
        "wallet_address": wallet_address,
        "is_onboarding_complete": False,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(USERS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_user(db: Client, user_id: str) -> dict | None:
    """Get a user by ID."""
    result = db.table(USERS_TABLE).select("*").eq("id", user_id).limit(1).execute()
    return result.data[0] if result.data else None


async def get_user_by_email(db: Client, email: str) -> dict | None:
    """Get a user by email address."""
    result = db.table(USERS_TABLE).select("*").eq("email", email).limit(1).execute()
    return result.data[0] if result.data else None


async def get_user_by_wallet(db: Client, wallet_address: str) -> dict | None:
    """Get a user by wallet address (case-insensitive)."""
    result = (
        db.table(USERS_TABLE)
        .select("*")
        .ilike("wallet_address", wallet_address)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def update_user(db: Client, user_id: str, updates: dict) -> dict | None:
    """Apply a partial update to a user."""
    data = {**updates, "updated_at": _now()}
    result = db.table(USERS_TABLE).update(data).eq("id", user_id).execute()
    return result.data[0] if result.data else None


async def delete_user(db: Client, user_id: str) -> bool:
    """Delete a user and their products."""
    db.table(PRODUCTS_TABLE).delete().eq("seller_id", user_id).execute()
    result = db.table(USERS_TABLE).delete().eq("id", user_id).execute()
    return bool(result.data)


async def find_or_create_user(
    db: Client,
    email: str,
    name: str,
    wallet_address: str | None = None,
) -> dict | None:
    """Return the user for ``email``, creating it or syncing its wallet address."""
    user = await get_user_by_email(db, email)
    if user is None:
        return await create_user(db, email, name, wallet_address)
    if wallet_address and user.get("wallet_address") != wallet_address:
        return await update_user(db, user["id"], {"wallet_address": wallet_address})
    return user


async def is_username_available(
    db: Client,
    username: str,
    exclude_user_id: str | None = None,
) -> bool:
    """Check whether a username is free (optionally ignoring one user)."""
    result = (
        db.table(USERS_TABLE)
        .select("id")
        .ilike("username", username)
        .limit(1)
        .execute()
    )
    if not result.data:
        return True
    return exclude_user_id is not None and result.data[0]["id"] == exclude_user_id


# =============================================================================
# Product Operations
# =============================================================================

async def get_product(db: Client, product_id: str) -> dict | None:
    """Get a product by ID."""
    result = db.table(PRODUCTS_TABLE).select("*").eq("id", product_id).limit(1).execute()
    return result.data[0] if result.data else None


async def get_product_by_payment_link(
    db: Client,
    payment_link: str,
    active_only: bool = True,
) -> dict | None:
    """Get a product by its payment link."""
    query = db.table(PRODUCTS_TABLE).select("*").eq("payment_link", payment_link)
    if active_only:
        query = query.eq("is_active", True)
    result = query.limit(1).execute()
    return result.data[0] if result.data else None


async def create_product(
    db: Client,
    seller_id: str,
    name: str,
    description: str,
    price_usd: Decimal,
    image_url: str | None = None,
    recipient_address: str | None = None,
    slug: str | None = None,
) -> dict | None:
    """Create a product with a unique payment link."""
    base_slug = generate_slug(slug or name)
    payment_link = base_slug
    counter = 1
    while await get_product_by_payment_link(db, payment_link, active_only=False):
        payment_link = f"{base_slug}-{counter}"
        counter += 1

    now = _now()
    data = {
        "seller_id": seller_id,
        "name": name,
        "description": description,
        "price_usd": str(price_usd),
        "price_usdc": str(price_usd * USD_TO_USDC_RATE),
        "image_url": image_url or None,
        "is_active": True,
        "status": "active",
        "slug": payment_link,
        "payment_link": payment_link,
        "recipient_address": recipient_address,
        "owner_address": recipient_address or "",
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(PRODUCTS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def list_products_by_seller(db: Client, seller_id: str) -> list[dict]:
    """List a seller's products, newest first."""
    result = (
        db.table(PRODUCTS_TABLE)
        .select("*")
        .eq("seller_id", seller_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def update_product(db: Client, product_id: str, updates: dict) -> dict | None:
    """Apply a partial update, keeping the USDC price and active flag in sync."""
    data = dict(updates)
    if data.get("price_usd") is not None:
        price = Decimal(str(data["price_usd"]))
        data["price_usd"] = str(price)
        data["price_usdc"] = str(price * USD_TO_USDC_RATE)
    if "status" in data and "is_active" not in data:
        data["is_active"] = data["status"] == "active"
    elif "is_active" in data and "status" not in data:
        data["status"] = "active" if data["is_active"] else "inactive"
    if data.get("recipient_address"):
        data["owner_address"] = data["recipient_address"]
    data["updated_at"] = _now()

    result = db.table(PRODUCTS_TABLE).update(data).eq("id", product_id).execute()
    return result.data[0] if result.data else None


async def delete_product(db: Client, product_id: str) -> bool:
    """Delete a product. Returns False if it did not exist."""
    result = db.table(PRODUCTS_TABLE).delete().eq("id", product_id).execute()
    return bool(result.data)


# =============================================================================
# Payment Operations
# =============================================================================

async def create_payment(
    db: Client,
    product: dict,
    buyer_email: str,
    buyer_wallet_address: str,
    amount_usdc: Decimal,
) -> dict | None:
    """Create a pending payment for a product.

    Any earlier pending payment from the same buyer for the same product
    that never got a transaction hash is discarded first.
    """
    (
        db.table(PAYMENTS_TABLE)
        .delete()
        .eq("product_id", product["id"])
        .eq("buyer_wallet_address", buyer_wallet_address)
        .eq("status", "pending")
        .is_("transaction_hash", "null")
        .execute()
    )

    data = {
        "product_id": product["id"],
        "seller_id": product["seller_id"],
        "buyer_email": buyer_email,
        "buyer_wallet_address": buyer_wallet_address,
        "amount_usd": str(product["price_usd"]),
        "amount_usdc": str(amount_usdc),
        "from_address": buyer_wallet_address,
        "to_address": product.get("recipient_address") or product.get("owner_address") or "",
        "transaction_hash": None,
        "status": "pending",
        "created_at": _now(),
    }
    result = db.table(PAYMENTS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_payment(db: Client, payment_id: str) -> dict | None:
    """Get a payment by ID."""
    result = db.table(PAYMENTS_TABLE).select("*").eq("id", payment_id).limit(1).execute()
    return result.data[0] if result.data else None


async def get_payment_by_tx_hash(db: Client, tx_hash: str) -> dict | None:
    """Get the completed payment a transaction hash paid for, if any."""
    result = (
        db.table(PAYMENTS_TABLE)
        .select("*")
        .eq("transaction_hash", tx_hash.lower())
        .eq("status", "completed")
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def list_payments_by_seller(db: Client, seller_id: str) -> list[dict]:
    """List a seller's payments with product summary, newest first."""
    result = (
        db.table(PAYMENTS_TABLE)
        .select("*, product:products(id, name, description, price_usd)")
        .eq("seller_id", seller_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def list_payments_by_product(db: Client, product_id: str) -> list[dict]:
    """List payments for one product, newest first."""
    result = (
        db.table(PAYMENTS_TABLE)
        .select("*")
        .eq("product_id", product_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def update_payment(db: Client, payment_id: str, updates: dict) -> dict | None:
    """Apply a partial update to a payment."""
    data = dict(updates)
    if data.get("status") == "completed" and "completed_at" not in data:
        data["completed_at"] = _now()
    result = db.table(PAYMENTS_TABLE).update(data).eq("id", payment_id).execute()
    return result.data[0] if result.data else None


async def complete_payment(
    db: Client,
    payment_id: str,
    tx_hash: str,
    amount_usdc: Decimal,
    to_address: str,
) -> dict | None:
    """Record a verified transaction and mark the payment completed.

    Raises:
        TransactionAlreadyUsedError: If another completed payment holds ``tx_hash``.
    """
    try:
        return await update_payment(
            db,
            payment_id,
            {
                "transaction_hash": tx_hash.lower(),
                "status": "completed",
                "amount_usdc": str(amount_usdc),
                "to_address": to_address,
                "error_message": None,
                "completed_at": _now(),
            },
        )
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            raise TransactionAlreadyUsedError(tx_hash.lower()) from e
        raise


async def fail_payment(
    db: Client,
    payment_id: str,
    tx_hash: str,
    error_message: str,
) -> dict | None:
    """Mark a payment failed after a permanent verification rejection.

    The rejected hash only goes into ``error_message``; ``transaction_hash``
    is reserved for the transfer that actually paid.
    """
    return await update_payment(
        db,
        payment_id,
        {
            "status": "failed",
            "error_message": f"{error_message} (tx {tx_hash.lower()})",
        },
    )


async def get_seller_earnings(db: Client, seller_id: str) -> dict:
    """Sum completed payments for a seller."""
    result = (
        db.table(PAYMENTS_TABLE)
        .select("amount_usdc")
        .eq("seller_id", seller_id)
        .eq("status", "completed")
        .execute()
    )
    rows = result.data or []
    total = sum((Decimal(str(row["amount_usdc"])) for row in rows), Decimal("0"))
    return {"total_earnings": total, "total_sales": len(rows)}
