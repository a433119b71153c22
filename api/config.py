"""
API configuration settings.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_SECRET_KEY = "your-secret-key-change-in-production"


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Management API"
    api_version: str = "1.0.0"
    api_description: str = "REST API for managing book records and user accounts"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "book_management"
    users_collection: str = "users"
    books_collection: str = "books"
    blacklist_collection: str = "blacklists"

    # Security Settings
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # CORS Settings
    cors_origins: list = ["*"]  # Configure appropriately for production
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v):
        """Refuse an empty signing secret."""
        if not v:
            raise ValueError('secret_key must not be empty')
        return v

    @field_validator('access_token_expire_minutes')
    @classmethod
    def validate_token_expiry(cls, v):
        """Ensure token lifetime is positive."""
        if v < 1:
            raise ValueError('access_token_expire_minutes must be at least 1')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def uses_default_secret(self) -> bool:
        """Check whether tokens are being signed with the placeholder secret."""
        return self.secret_key == DEFAULT_SECRET_KEY


# Global config instance
config = APIConfig()
