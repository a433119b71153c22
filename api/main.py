"""
FastAPI main application for the Book Management API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from motor.motor_asyncio import AsyncIOMotorClient

from api import books, users
from api.config import APIConfig, config
from api.database import BookAPIDatabase
from api.exceptions import BookAPIError
from api.models import ErrorResponse, HealthResponse
from api.security import PasswordHasher, TokenManager
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

FIELD_MESSAGES = {
    "title": "Title is required",
    "author": "Author is required",
    "publicationYear": "Publication year must be a valid integer",
    "year": "Publication year must be a valid integer",
    "username": "Username is required",
    "email": "Email is required",
    "password": "Password is required",
}


def format_validation_errors(exc: RequestValidationError) -> list:
    """Flatten pydantic errors into ``{msg, param, location, value}`` entries."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        location = str(loc[0]) if loc else "body"
        if len(loc) > 1 and isinstance(loc[-1], str):
            param = loc[-1]
        else:
            param = location
        errors.append({
            "msg": FIELD_MESSAGES.get(param, err.get("msg", "Invalid value")),
            "param": param,
            "location": location,
            "value": err.get("input") if err.get("type") != "missing" else None,
        })
    return errors


def create_app(settings: APIConfig) -> FastAPI:
    """
    Build the application around an explicit configuration object.

    Crypto helpers are created here; the database stores are attached by the
    lifespan once MongoDB is reachable.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        setup_logging(
            log_level=settings.log_level,
            log_format=settings.log_format,
            log_file=settings.log_file,
            debug=settings.debug
        )
        logger.info("Starting Book Management API")
        if settings.uses_default_secret():
            logger.warning("Signing tokens with the default secret key; set SECRET_KEY")

        client = AsyncIOMotorClient(settings.mongodb_url)
        try:
            database = client[settings.mongodb_database]

            # Test connection
            await database.command("ping")
            logger.info("Database connection established", database=settings.mongodb_database)

            db = BookAPIDatabase(
                database,
                users_collection=settings.users_collection,
                books_collection=settings.books_collection,
                blacklist_collection=settings.blacklist_collection,
            )
            await db.create_indexes()
            app.state.db = db

        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            client.close()
            raise

        yield

        # Shutdown
        logger.info("Shutting down Book Management API")
        client.close()

    app = FastAPI(
        title=settings.api_title,
        description="""
    REST API for managing book records and user accounts.

    ## Authentication

    Obtain a token from `POST /user/login` and send it with every `/book` request:

    ```
    Authorization: Bearer your_token_here
    ```

    Tokens expire after one hour. `POST /user/logout` revokes a token early.
    """,
        version=settings.api_version,
        docs_url="/api-docs",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.token_manager = TokenManager(
        settings.secret_key,
        algorithm=settings.algorithm,
        expire_minutes=settings.access_token_expire_minutes,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=str(exc.detail),
                status_code=exc.status_code
            ).model_dump(exclude_none=True),
            headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report body and path validation failures as 400."""
        errors = format_validation_errors(exc)
        logger.info("Request validation failed", path=request.url.path, params=[e["param"] for e in errors])
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({"errors": errors}),
        )

    @app.exception_handler(BookAPIError)
    async def book_api_exception_handler(request: Request, exc: BookAPIError):
        """Handle errors raised by stores and helpers that no route caught."""
        logger.error("Request failed", error=exc.message, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.message,
                status_code=exc.status_code
            ).model_dump(exclude_none=True)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if settings.debug else None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            ).model_dump(exclude_none=True)
        )

    @app.get("/", response_class=PlainTextResponse, tags=["Health"])
    async def root():
        return "Server is up"

    # Health check endpoint (no authentication required)
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint."""
        db_status = "unavailable"
        db = getattr(request.app.state, "db", None)
        if db is not None:
            health_info = await db.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.now(timezone.utc),
            version=settings.api_version,
            database_status=db_status
        )

    app.include_router(users.router)
    app.include_router(books.router)

    return app


# Create FastAPI application
app = create_app(config)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
