"""
User registration, login and logout endpoints.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from api.auth import get_database, get_password_hasher, get_token_manager
from api.database import BookAPIDatabase
from api.exceptions import CryptoError, DuplicateRecordError, StoreError
from api.models import (
    ErrorResponse, LoginRequest, LoginResponse,
    SignupRequest, SignupResponse, UserResponse
)
from api.security import PasswordHasher, TokenManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/user", tags=["User"])


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def signup(
    body: SignupRequest,
    db: BookAPIDatabase = Depends(get_database),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    """Register a new user."""
    try:
        password_hash = await run_in_threadpool(hasher.hash, body.password)
        user = await db.users.create({
            "username": body.username,
            "email": body.email,
            "passwordHash": password_hash,
        })
    except DuplicateRecordError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists"
        )
    except (StoreError, CryptoError) as e:
        logger.error("Failed to register user", email=body.email, error=e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )

    logger.info("User registered", user_id=user["id"])
    return SignupResponse(
        message="User has been registered successfully",
        user=UserResponse(**user),
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def login(
    body: LoginRequest,
    db: BookAPIDatabase = Depends(get_database),
    hasher: PasswordHasher = Depends(get_password_hasher),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """Login with email and password."""
    try:
        user = await db.users.find_by_email(body.email)
    except StoreError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )

    if user is None:
        logger.info("Login for unknown email", email=body.email)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found. Please try signing up."
        )

    try:
        matches = await run_in_threadpool(hasher.verify, body.password, user.get("passwordHash"))
    except CryptoError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error comparing passwords."
        )

    if not matches:
        logger.info("Login rejected", user_id=user["id"])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Wrong credentials. Please enter the correct password."
        )

    token = token_manager.issue(user["id"])
    logger.info("Login successful", user_id=user["id"])
    return LoginResponse(message="Login successful", token=token)


@router.post(
    "/logout",
    response_class=PlainTextResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def logout(
    authorization: Optional[str] = Header(None, description="Bearer token to invalidate"),
    db: BookAPIDatabase = Depends(get_database),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """Logout by adding the presented token to the denylist."""
    token = (authorization or "").replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires_at = token_manager.expires_at(token) or datetime.now(timezone.utc)

    try:
        await db.denylist.add(token, expires_at)
    except StoreError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )

    return PlainTextResponse("Logout successful.")
