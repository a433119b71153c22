"""
Pytest configuration and shared fixtures.
"""

import asyncio
import copy
from types import SimpleNamespace

import pytest
import pytest_asyncio
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

from api.config import APIConfig
from api.database import BookAPIDatabase
from api.main import create_app


class FakeCursor:
    """Cursor returned by FakeCollection.find."""

    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]


class FakeCollection:
    """
    In-memory collection supporting the subset of the Motor API the stores use.

    Filters are exact-match only. Set ``fail_with`` to an exception to make every
    operation raise it.
    """

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.indexes = []
        self.unique_fields = set()
        self.fail_with = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(key) == value for key, value in (query or {}).items())

    async def create_index(self, keys, **kwargs):
        self._check()
        self.indexes.append((keys, kwargs))
        if kwargs.get("unique"):
            self.unique_fields.add(keys)
        return f"{keys}_1"

    async def insert_one(self, doc):
        self._check()
        for field in self.unique_fields:
            if any(existing.get(field) == doc.get(field) for existing in self.docs):
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {self.name} index: {field}_1"
                )
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, query=None):
        self._check()
        return FakeCursor([copy.deepcopy(d) for d in self.docs if self._matches(d, query)])

    async def find_one(self, query=None):
        self._check()
        for doc in self.docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def find_one_and_update(self, query, update, return_document=False):
        self._check()
        for doc in self.docs:
            if self._matches(doc, query):
                before = copy.deepcopy(doc)
                doc.update(update.get("$set", {}))
                return copy.deepcopy(doc) if return_document else before
        return None

    async def delete_one(self, query):
        self._check()
        for i, doc in enumerate(self.docs):
            if self._matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDatabase:
    """Database handle that hands out FakeCollections by name."""

    def __init__(self):
        self.collections = {}
        self.ping_error = None

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def command(self, name):
        if self.ping_error is not None:
            raise self.ping_error
        return {"ok": 1}


@pytest.fixture
def test_config():
    """Configuration isolated from the environment and .env files."""
    return APIConfig(
        _env_file=None,
        secret_key="test-secret-key",
        bcrypt_rounds=4,
        log_format="console",
    )


@pytest.fixture
def fake_database():
    return FakeDatabase()


@pytest_asyncio.fixture
async def db(fake_database):
    """Stores over the fake database, with indexes created."""
    database = BookAPIDatabase(fake_database)
    await database.create_indexes()
    return database


@pytest.fixture
def app(test_config, fake_database):
    """Application with stores attached, bypassing the Mongo lifespan."""
    application = create_app(test_config)
    database = BookAPIDatabase(fake_database)
    asyncio.run(database.create_indexes())
    application.state.db = database
    return application


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def registered_user(client):
    """Sign up a user and return the signup response body plus credentials."""
    credentials = {"username": "reader", "email": "reader@example.com", "password": "s3cret-pass"}
    response = client.post("/user/signup", json=credentials)
    assert response.status_code == 201
    return {**credentials, "id": response.json()["user"]["id"]}


@pytest.fixture
def token(client, registered_user):
    response = client.post(
        "/user/login",
        json={"email": registered_user["email"], "password": registered_user["password"]},
    )
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
