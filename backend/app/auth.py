"""Authentication utilities for the StableLink backend.

Wallet custody and the email + one-time-code login happen on the
embedded-wallet platform. Once the client holds an authenticated email and
account address, it exchanges them at ``POST /auth/session`` for our own
session token, which every other route accepts.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "stablelink_auth"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


def create_access_token(
    settings: Settings,
    user_id: str,
    email: str | None = None,
    wallet_address: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT session token for a user."""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    if email:
        to_encode["email"] = email
    if wallet_address:
        to_encode["wallet_address"] = wallet_address
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthContext:
    """Identity carried by a session token."""

    def __init__(
        self,
        user_id: str,
        email: str | None = None,
        wallet_address: str | None = None,
    ):
        self.user_id = user_id
        self.email = email
        self.wallet_address = wallet_address

    def owns(self, resource: dict | None, owner_field: str = "seller_id") -> bool:
        """True if ``resource`` belongs to this user."""
        return resource is not None and str(resource.get(owner_field)) == str(self.user_id)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Get the authenticated user from the bearer token or auth cookie."""
    token = None
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get(AUTH_COOKIE_NAME)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header or auth cookie",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthContext(
        user_id=user_id,
        email=payload.get("email"),
        wallet_address=payload.get("wallet_address"),
    )


# Type alias for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
