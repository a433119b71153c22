"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class SignupRequest(BaseModel):
    """Body of POST /user/signup."""
    username: StrictStr = Field(..., min_length=1, description="Display name")
    email: StrictStr = Field(..., min_length=1, description="Login email, unique")
    password: StrictStr = Field(..., min_length=1, description="Plaintext password")


class LoginRequest(BaseModel):
    """Body of POST /user/login."""
    email: StrictStr = Field(..., min_length=1, description="Login email")
    password: StrictStr = Field(..., min_length=1, description="Plaintext password")


class UserResponse(BaseModel):
    """User as returned to clients; the password hash is never included."""
    id: str = Field(..., description="Unique user identifier")
    username: str = Field(..., description="Display name")
    email: str = Field(..., description="Login email")


class SignupResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    message: str
    token: str = Field(..., description="Bearer token valid for one hour")


# BSON stores integers as signed 64-bit values
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def _coerce_text(v):
    """Numbers are accepted as text; any other non-string is left for StrictStr to reject."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


def _reject_bool(v):
    if isinstance(v, bool):
        raise ValueError("Publication year must be a valid integer")
    return v


class BookCreate(BaseModel):
    """Body of POST /book."""
    model_config = ConfigDict(populate_by_name=True)

    title: StrictStr = Field(..., min_length=1)
    author: StrictStr = Field(..., min_length=1)
    publication_year: int = Field(..., alias="publicationYear", ge=INT64_MIN, le=INT64_MAX)

    @field_validator("title", "author", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _coerce_text(v)

    @field_validator("publication_year", mode="before")
    @classmethod
    def reject_bool(cls, v):
        return _reject_bool(v)


class BookUpdate(BaseModel):
    """Body of PUT /book/{id}. Only supplied fields are validated and applied."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[StrictStr] = Field(None, min_length=1)
    author: Optional[StrictStr] = Field(None, min_length=1)
    publication_year: Optional[int] = Field(None, alias="publicationYear", ge=INT64_MIN, le=INT64_MAX)

    @field_validator("title", "author", "publication_year", mode="before")
    @classmethod
    def reject_explicit_null(cls, v, info):
        """An explicitly supplied null is not an omitted field."""
        if v is None:
            raise ValueError("value must not be null")
        if info.field_name == "publication_year":
            return _reject_bool(v)
        return _coerce_text(v)

    def changes(self) -> dict:
        """Supplied fields keyed by their stored names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class BookResponse(BaseModel):
    """Book response model for API."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    publication_year: int = Field(..., alias="publicationYear", description="Publication year")


class MessageResponse(BaseModel):
    message: str


class FieldError(BaseModel):
    """A single validation failure, keyed by the offending parameter."""
    msg: str = Field(..., description="Human readable message")
    param: str = Field(..., description="Name of the invalid field")
    location: str = Field("body", description="Where the field was read from")
    value: Optional[Any] = Field(None, description="Rejected value")


class ValidationErrorResponse(BaseModel):
    errors: List[FieldError]


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
