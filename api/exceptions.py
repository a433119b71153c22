"""
Error taxonomy for the Book Management API.

Every error carries the HTTP status it maps to, so the exception handlers in
``api.main`` can render any of them without a lookup table.
"""

from typing import Any, Dict, List, Optional


class BookAPIError(Exception):
    """Base class for errors raised by the API and its stores."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BodyValidationError(BookAPIError):
    """Malformed request body or path parameter."""

    status_code = 400

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("Request validation failed")
        self.errors = errors


class AuthError(BookAPIError):
    """Missing or unusable credentials."""

    status_code = 401


class InvalidToken(AuthError):
    """Token signature is invalid, the token is malformed or it has expired."""

    status_code = 403


class NotFoundError(BookAPIError):
    """Referenced resource does not exist."""

    status_code = 404


class StoreError(BookAPIError):
    """Database unavailable or rejected the operation."""

    status_code = 500


class DuplicateRecordError(StoreError):
    """A unique index rejected the write."""


class DuplicateToken(DuplicateRecordError):
    """Token is already on the denylist."""


class CryptoError(BookAPIError):
    """Password hashing or comparison failed."""

    status_code = 500
