"""
Book endpoints. Every route requires a valid bearer token.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.auth import get_current_user, get_database
from api.database import BookAPIDatabase
from api.exceptions import StoreError
from api.models import (
    INT64_MAX, INT64_MIN, BookCreate, BookResponse, BookUpdate,
    ErrorResponse, MessageResponse, ValidationErrorResponse
)

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/book",
    tags=["Books"],
    dependencies=[Depends(get_current_user)],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def _store_failure(action: str, e: StoreError, **context) -> HTTPException:
    logger.error(f"Failed to {action}", error=e.message, **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error"
    )


def _books(records: List[Dict[str, Any]]) -> List[BookResponse]:
    return [BookResponse(**record) for record in records]


@router.get("", response_model=List[BookResponse])
async def get_books(db: BookAPIDatabase = Depends(get_database)):
    """Retrieve all books."""
    try:
        return _books(await db.books.find_all())
    except StoreError as e:
        raise _store_failure("get books", e)


@router.get("/author/{author}", response_model=List[BookResponse])
async def get_books_by_author(author: str, db: BookAPIDatabase = Depends(get_database)):
    """
    Retrieve books by author.

    - **author**: Exact author name
    """
    try:
        return _books(await db.books.find_by_author(author))
    except StoreError as e:
        raise _store_failure("get books by author", e, author=author)


@router.get(
    "/publicationYear/{year}",
    response_model=List[BookResponse],
    responses={400: {"model": ValidationErrorResponse}},
)
async def get_books_by_publication_year(
    year: int = Path(..., ge=INT64_MIN, le=INT64_MAX),
    db: BookAPIDatabase = Depends(get_database),
):
    """
    Retrieve books published in a given year.

    - **year**: Publication year
    """
    try:
        return _books(await db.books.find_by_publication_year(year))
    except StoreError as e:
        raise _store_failure("get books by publication year", e, year=year)


@router.post(
    "",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ValidationErrorResponse}},
)
async def create_book(body: BookCreate, db: BookAPIDatabase = Depends(get_database)):
    """Create a new book."""
    try:
        record = await db.books.create(body.model_dump(by_alias=True))
    except StoreError as e:
        raise _store_failure("create book", e)

    logger.info("Book created", book_id=record["id"])
    return BookResponse(**record)


@router.put(
    "/{book_id}",
    response_model=Optional[BookResponse],
    responses={400: {"model": ValidationErrorResponse}},
)
async def update_book(book_id: str, body: BookUpdate, db: BookAPIDatabase = Depends(get_database)):
    """
    Update a book. Only the supplied fields change.

    Returns null when no book has the given id.
    """
    try:
        record = await db.books.update_by_id(book_id, body.changes())
    except StoreError as e:
        raise _store_failure("update book", e, book_id=book_id)

    if record is None:
        return None
    return BookResponse(**record)


@router.delete("/{book_id}", response_model=MessageResponse)
async def delete_book(book_id: str, db: BookAPIDatabase = Depends(get_database)):
    """Delete a book. Succeeds whether or not the book existed."""
    try:
        deleted = await db.books.delete_by_id(book_id)
    except StoreError as e:
        raise _store_failure("delete book", e, book_id=book_id)

    logger.info("Book delete requested", book_id=book_id, deleted=deleted)
    return MessageResponse(message="Book deleted successfully")
