"""
Database service layer for the FastAPI application.

Each store wraps one Motor collection. Every public operation is a single
round-trip; driver failures surface as StoreError.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from api.exceptions import DuplicateRecordError, DuplicateToken, StoreError

logger = structlog.get_logger(__name__)

# Integers outside int64 fail during BSON encoding, before the driver is involved
STORE_ERRORS = (PyMongoError, OverflowError)


def _object_id(record_id: str) -> Optional[ObjectId]:
    """Parse an id; anything that is not an ObjectId matches no record."""
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


def _to_record(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace Mongo's ``_id`` with a string ``id``."""
    if doc is None:
        return None
    record = dict(doc)
    record["id"] = str(record.pop("_id"))
    return record


class CollectionStore:
    """Standard CRUD over a single collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @property
    def name(self) -> str:
        return getattr(self.collection, "name", type(self).__name__)

    async def find_all(self) -> List[Dict[str, Any]]:
        return await self.find_by()

    async def find_by(self, **fields) -> List[Dict[str, Any]]:
        """
        Get every record whose fields equal the given values.

        Args:
            **fields: Exact-match filter

        Returns:
            List of records, possibly empty
        """
        try:
            docs = await self.collection.find(fields).to_list(length=None)
        except STORE_ERRORS as e:
            logger.error("Failed to query collection", collection=self.name, filter=fields, error=str(e))
            raise StoreError(str(e)) from e
        return [_to_record(doc) for doc in docs]

    async def find_one_by(self, **fields) -> Optional[Dict[str, Any]]:
        try:
            doc = await self.collection.find_one(fields)
        except STORE_ERRORS as e:
            logger.error("Failed to query collection", collection=self.name, filter=fields, error=str(e))
            raise StoreError(str(e)) from e
        return _to_record(doc)

    async def find_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        object_id = _object_id(record_id)
        if object_id is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to get record by ID", collection=self.name, record_id=record_id, error=str(e))
            raise StoreError(str(e)) from e
        return _to_record(doc)

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a new record.

        Returns:
            The stored record including its generated ``id``

        Raises:
            DuplicateRecordError: If a unique index rejects the document
            StoreError: On any other driver failure
        """
        doc = dict(data)
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            logger.warning("Duplicate record rejected", collection=self.name, error=str(e))
            raise DuplicateRecordError(str(e)) from e
        except STORE_ERRORS as e:
            logger.error("Failed to insert record", collection=self.name, error=str(e))
            raise StoreError(str(e)) from e
        doc["_id"] = result.inserted_id
        return _to_record(doc)

    async def update_by_id(self, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update; only the keys in ``changes`` are touched.

        Returns:
            The updated record, or None if no record has that id
        """
        object_id = _object_id(record_id)
        if object_id is None:
            return None
        if not changes:
            return await self.find_by_id(record_id)
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": object_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateRecordError(str(e)) from e
        except STORE_ERRORS as e:
            logger.error("Failed to update record", collection=self.name, record_id=record_id, error=str(e))
            raise StoreError(str(e)) from e
        return _to_record(doc)

    async def delete_by_id(self, record_id: str) -> bool:
        """Delete a record; returns whether anything was removed."""
        object_id = _object_id(record_id)
        if object_id is None:
            return False
        try:
            result = await self.collection.delete_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to delete record", collection=self.name, record_id=record_id, error=str(e))
            raise StoreError(str(e)) from e
        return result.deleted_count > 0


class UserStore(CollectionStore):
    """Persists ``{username, email, passwordHash}`` records."""

    async def create_indexes(self) -> None:
        await self.collection.create_index("email", unique=True)

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.find_one_by(email=email)


class BookStore(CollectionStore):
    """Persists ``{title, author, publicationYear}`` records."""

    async def create_indexes(self) -> None:
        await self.collection.create_index("author")
        await self.collection.create_index("publicationYear")

    async def find_by_author(self, author: str) -> List[Dict[str, Any]]:
        return await self.find_by(author=author)

    async def find_by_publication_year(self, year: int) -> List[Dict[str, Any]]:
        return await self.find_by(publicationYear=year)


class TokenDenylist:
    """Logged-out tokens, kept until their natural expiry."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def create_indexes(self) -> None:
        await self.collection.create_index("token", unique=True)
        # Mongo drops each entry once expiresAt has passed
        await self.collection.create_index("expiresAt", expireAfterSeconds=0)

    async def add(self, token: str, expires_at: datetime) -> None:
        """
        Record a token as logged out.

        Raises:
            DuplicateToken: If the token is already recorded
            StoreError: On any other driver failure
        """
        try:
            await self.collection.insert_one({"token": token, "expiresAt": expires_at})
        except DuplicateKeyError as e:
            logger.warning("Token already blacklisted")
            raise DuplicateToken("Token has already been logged out") from e
        except PyMongoError as e:
            logger.error("Failed to blacklist token", error=str(e))
            raise StoreError(str(e)) from e

    async def contains(self, token: str) -> bool:
        try:
            doc = await self.collection.find_one({"token": token})
        except PyMongoError as e:
            logger.error("Failed to check token blacklist", error=str(e))
            raise StoreError(str(e)) from e
        return doc is not None


class BookAPIDatabase:
    """Groups the stores that share one Mongo database."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        users_collection: str = "users",
        books_collection: str = "books",
        blacklist_collection: str = "blacklists",
    ):
        self.database = database
        self.users = UserStore(database[users_collection])
        self.books = BookStore(database[books_collection])
        self.denylist = TokenDenylist(database[blacklist_collection])

    async def create_indexes(self) -> None:
        """Create the unique, lookup and TTL indexes the stores rely on."""
        try:
            await self.users.create_indexes()
            await self.books.create_indexes()
            await self.denylist.create_indexes()
            logger.info("Successfully created MongoDB indexes")
        except PyMongoError as e:
            logger.error("Failed to create indexes", error=str(e))
            raise StoreError(str(e)) from e

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            return {
                "status": "healthy",
                "checked_at": datetime.now(timezone.utc).isoformat(),
            }
        except PyMongoError as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
