"""
Password hashing and bearer token handling.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
import structlog

from api.exceptions import CryptoError, InvalidToken

logger = structlog.get_logger(__name__)

# bcrypt only reads the first 72 bytes of a secret; newer releases raise instead of truncating
BCRYPT_MAX_BYTES = 72


def _secret(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt wrapper with a fixed cost factor."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """
        Hash a plaintext password with a fresh salt.

        Args:
            plaintext: Password as submitted by the user

        Returns:
            bcrypt hash string (salt and cost are embedded)

        Raises:
            CryptoError: If hashing fails
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(_secret(plaintext), salt).decode("utf-8")
        except (TypeError, ValueError, AttributeError) as e:
            logger.error("Password hashing failed", error=str(e))
            raise CryptoError("Error hashing password.") from e

    def verify(self, plaintext: str, hashed: str) -> bool:
        """
        Compare a plaintext password against a stored hash.

        Returns False on a mismatch. A stored value that is not a usable bcrypt
        hash is a failure, not a mismatch, and raises CryptoError.
        """
        try:
            return bcrypt.checkpw(_secret(plaintext), hashed.encode("utf-8"))
        except (TypeError, ValueError, AttributeError) as e:
            logger.error("Password comparison failed", error=str(e))
            raise CryptoError("Error comparing passwords.") from e


class TokenManager:
    """Issues and verifies signed bearer tokens carrying a user id."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Create a token for a user.

        Args:
            user_id: Identifier embedded as the ``userId`` claim
            now: Issuance time, defaults to the current UTC time

        Returns:
            Encoded JWT
        """
        issued_at = now if now is not None else datetime.now(timezone.utc)
        expires = issued_at + timedelta(minutes=self.expire_minutes)
        payload: Dict[str, Any] = {
            "userId": str(user_id),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires.timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Decode and validate a token.

        Returns:
            The token claims, including ``userId``

        Raises:
            InvalidToken: If the signature is wrong, the token expired or is malformed
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise InvalidToken("Token has expired.") from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken("Invalid token.") from e

        if not payload.get("userId"):
            raise InvalidToken("Token is missing userId.")
        return payload

    def expires_at(self, token: str) -> Optional[datetime]:
        """Read the ``exp`` claim without checking the signature."""
        try:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
                algorithms=[self.algorithm],
            )
        except jwt.InvalidTokenError:
            return None

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)
