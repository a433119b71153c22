"""
Authentication for the FastAPI API.

Book routes are guarded by a chain of dependencies, each of which either
raises (ending the request) or hands an enriched value to the next stage:

    get_bearer_token -> verify_token -> get_current_user
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.database import BookAPIDatabase
from api.exceptions import InvalidToken
from api.security import PasswordHasher, TokenManager

logger = structlog.get_logger(__name__)

# Security scheme; missing headers are reported by get_bearer_token instead
security = HTTPBearer(auto_error=False)


def get_database(request: Request) -> BookAPIDatabase:
    """Database stores opened by the application lifespan."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Extract the bearer token from the Authorization header.

    Raises:
        HTTPException: 401 if no bearer token was sent
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def verify_token(
    token: str = Depends(get_bearer_token),
    token_manager: TokenManager = Depends(get_token_manager),
    db: BookAPIDatabase = Depends(get_database),
) -> Dict[str, Any]:
    """
    Verify the token signature and expiry, then check the denylist.

    Returns:
        Token claims

    Raises:
        HTTPException: 403 if the token is invalid, expired or logged out
    """
    try:
        claims = token_manager.verify(token)
    except InvalidToken as e:
        logger.warning("Invalid token presented", reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token."
        )

    if await db.denylist.contains(token):
        logger.warning("Revoked token presented", user_id=claims["userId"])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token has been revoked."
        )

    return claims


async def get_current_user(
    claims: Dict[str, Any] = Depends(verify_token),
    db: BookAPIDatabase = Depends(get_database),
) -> Dict[str, Any]:
    """
    Load the user the token was issued to.

    Raises:
        HTTPException: 404 if the user no longer exists
    """
    user = await db.users.find_by_id(claims["userId"])
    if user is None:
        logger.warning("Token references unknown user", user_id=claims["userId"])
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found."
        )
    return user
