"""Session routes.

The embedded-wallet platform authenticates the user (email + one-time
code) and holds the keys. The client then exchanges the resulting email
and account address for a StableLink session token here.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..auth import AUTH_COOKIE_NAME, CurrentUser, create_access_token
from ..config import Settings, get_settings
from ..database import Database, find_or_create_user, get_user
from ..logging_config import get_logger
from ..models import SessionRequest, SessionResponse, UserResponse
from ..rate_limit import limiter

logger = get_logger("stablelink.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


def set_auth_cookie(response: Response, token: str, settings: Settings):
    """Set httpOnly auth cookie."""
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=True,  # Only send over HTTPS
        samesite="lax",  # Payment links are opened cross-site
        path="/",
    )


def clear_auth_cookie(response: Response):
    """Clear the auth cookie (logout)."""
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=True,
        samesite="lax",
    )


@router.post("/session", response_model=SessionResponse)
@limiter.limit("10/minute")
async def create_session(
    request: Request,
    body: SessionRequest,
    response: Response,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Exchange an authenticated wallet identity for a session token.

    Creates the user on first login and keeps the stored wallet address
    in sync with the one the wallet platform reports.
    """
    email = body.email.strip().lower()
    name = body.name or email.split("@")[0]

    user = await find_or_create_user(db, email, name, body.wallet_address)
    if not user:
        logger.error(f"Failed to create user for {email}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user",
        )

    token = create_access_token(
        settings,
        user_id=str(user["id"]),
        email=user["email"],
        wallet_address=user.get("wallet_address"),
    )
    set_auth_cookie(response, token, settings)
    logger.info(f"Session created for user {user['id']}")

    return SessionResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        user=UserResponse(**user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(auth: CurrentUser, db: Database):
    """Get the user behind the current session."""
    user = await get_user(db, auth.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return UserResponse(**user)


@router.post("/logout")
async def logout(response: Response):
    """Clear auth cookie and logout."""
    clear_auth_cookie(response)
    return {"status": "logged_out"}
