"""User profile routes."""

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from ..auth import CurrentUser
from ..database import (
    Database,
    delete_user,
    get_user,
    get_user_by_wallet,
    is_username_available,
    update_user,
)
from ..logging_config import get_logger
from ..models import (
    ADDRESS_PATTERN,
    OnboardingRequest,
    UsernameCheckResponse,
    UserResponse,
    UserUpdate,
)
from ..rate_limit import limiter
from .auth import clear_auth_cookie

logger = get_logger("stablelink.users")
router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_my_profile(auth: CurrentUser, db: Database):
    """Get the authenticated user's profile."""
    user = await get_user(db, auth.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(**user)


@router.put("/me", response_model=UserResponse)
async def update_my_profile(body: UserUpdate, auth: CurrentUser, db: Database):
    """Update name, bio or wallet address."""
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    user = await update_user(db, auth.user_id, updates)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(**user)


@router.post("/onboarding", response_model=UserResponse)
@limiter.limit("10/minute")
async def complete_onboarding(
    request: Request,
    body: OnboardingRequest,
    auth: CurrentUser,
    db: Database,
):
    """Set username, display name and bio, and mark onboarding complete."""
    existing = await get_user(db, auth.user_id)
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if not await is_username_available(db, body.username, exclude_user_id=auth.user_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username is already taken",
        )

    user = await update_user(
        db,
        auth.user_id,
        {
            "username": body.username,
            "name": body.name,
            "bio": body.bio,
            "is_onboarding_complete": True,
        },
    )
    if not user:
        logger.error(f"Failed to complete onboarding for user {auth.user_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user",
        )

    logger.info(f"Onboarding completed for user {auth.user_id} (username={body.username})")
    return UserResponse(**user)


@router.get("/check-username", response_model=UsernameCheckResponse)
@limiter.limit("30/minute")
async def check_username(
    request: Request,
    db: Database,
    username: str = Query(..., pattern=r"^[a-zA-Z0-9_]{3,30}$"),
    exclude_user_id: str | None = Query(default=None),
):
    """Check whether a username is available."""
    available = await is_username_available(db, username, exclude_user_id)
    return UsernameCheckResponse(
        username=username,
        available=available,
        message="Username is available" if available else "Username is already taken",
    )


@router.get("/by-wallet", response_model=UserResponse)
async def find_by_wallet(
    auth: CurrentUser,
    db: Database,
    address: str = Query(..., pattern=ADDRESS_PATTERN),
):
    """Look up a user by wallet address."""
    user = await get_user_by_wallet(db, address)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(**user)


@router.delete("/me")
async def delete_my_account(response: Response, auth: CurrentUser, db: Database):
    """Delete the authenticated user and their products."""
    deleted = await delete_user(db, auth.user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    clear_auth_cookie(response)
    logger.info(f"User {auth.user_id} deleted their account")
    return {"status": "deleted"}
