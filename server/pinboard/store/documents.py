# ─────────────────────────────────────────────────────────────────────────────
# Document Store — MongoDB (pymongo async) or in-memory collections
# ─────────────────────────────────────────────────────────────────────────────
# Mongoose-style operations over four collections: pins, tags, aigenerated,
# pinlinks. Documents cross this boundary as plain dicts whose "_id" is the
# hex string of an ObjectId.
#
# With MONGODB_URL unset the store runs on in-memory collections with the
# same query semantics (dotted paths, array element matching), which is what
# local development and the test suite use.
# ─────────────────────────────────────────────────────────────────────────────


import copy
import logging
from abc import ABC, abstractmethod
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from pinboard.exceptions import PersistenceError

logger = logging.getLogger(__name__)

PINS = "pins"
TAGS = "tags"
AI_GENERATED = "aigenerated"
PIN_LINKS = "pinlinks"

_COLLECTIONS = (PINS, TAGS, AI_GENERATED, PIN_LINKS)


def to_object_id(value: str) -> ObjectId | None:
    """Parse a hex id; None for anything that is not a valid ObjectId."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class DocumentCollection(ABC):
    """Async collection interface used by the services."""

    name: str

    @abstractmethod
    async def create(self, document: dict) -> dict:
        """Insert a document, assigning ``_id``. Returns the stored document."""

    @abstractmethod
    async def find(self, query: dict) -> list[dict]:
        """All documents matching ``query``, in insertion order."""

    @abstractmethod
    async def count(self, query: dict) -> int:
        """Number of documents matching ``query``."""

    @abstractmethod
    async def find_by_id(self, doc_id: str) -> dict | None:
        """Document with the given id, or None (malformed ids included)."""

    @abstractmethod
    async def find_by_id_and_update(self, doc_id: str, fields: dict) -> dict | None:
        """``$set`` the given fields. Returns the updated document or None."""

    @abstractmethod
    async def find_one_and_remove(self, query: dict) -> dict | None:
        """Remove the first match. Returns the removed document or None."""


# ── MongoDB ──────────────────────────────────────────────────────────────────


def _from_mongo(document: dict | None) -> dict | None:
    if document is None:
        return None
    document = dict(document)
    document["_id"] = str(document["_id"])
    return document


def _to_mongo_query(query: dict) -> dict:
    if "_id" in query and isinstance(query["_id"], str):
        return {**query, "_id": to_object_id(query["_id"])}
    return query


class MongoCollection(DocumentCollection):
    """pymongo asyncio collection. Driver errors become PersistenceError."""

    def __init__(self, collection: Any):
        self._collection = collection
        self.name = collection.name

    async def create(self, document: dict) -> dict:
        payload = {k: v for k, v in document.items() if k != "_id"}
        try:
            result = await self._collection.insert_one(payload)
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.create", str(e)) from e
        return {"_id": str(result.inserted_id), **payload}

    async def find(self, query: dict) -> list[dict]:
        try:
            cursor = self._collection.find(_to_mongo_query(query))
            return [_from_mongo(doc) async for doc in cursor]
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.find", str(e)) from e

    async def count(self, query: dict) -> int:
        try:
            return await self._collection.count_documents(_to_mongo_query(query))
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.count", str(e)) from e

    async def find_by_id(self, doc_id: str) -> dict | None:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        try:
            return _from_mongo(await self._collection.find_one({"_id": oid}))
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.find_by_id", str(e)) from e

    async def find_by_id_and_update(self, doc_id: str, fields: dict) -> dict | None:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        try:
            updated = await self._collection.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.update", str(e)) from e
        return _from_mongo(updated)

    async def find_one_and_remove(self, query: dict) -> dict | None:
        try:
            removed = await self._collection.find_one_and_delete(_to_mongo_query(query))
        except PyMongoError as e:
            raise PersistenceError(f"{self.name}.remove", str(e)) from e
        return _from_mongo(removed)


# ── In-memory ────────────────────────────────────────────────────────────────


def _resolve(document: Any, path: list[str]) -> list[Any]:
    """Values at a dotted path, fanning out over lists like MongoDB does."""
    if not path:
        return [document]
    if isinstance(document, list):
        return [v for item in document for v in _resolve(item, path)]
    if isinstance(document, dict) and path[0] in document:
        return _resolve(document[path[0]], path[1:])
    return []


def _matches(document: dict, query: dict) -> bool:
    for key, expected in query.items():
        values = _resolve(document, key.split("."))
        candidates = []
        for value in values:
            candidates.append(value)
            if isinstance(value, list):
                candidates.extend(value)
        if expected not in candidates:
            return False
    return True


class MemoryCollection(DocumentCollection):
    """Dict-backed collection. Returns deep copies so callers never alias state."""

    def __init__(self, name: str):
        self.name = name
        self._documents: dict[str, dict] = {}

    async def create(self, document: dict) -> dict:
        stored = copy.deepcopy({k: v for k, v in document.items() if k != "_id"})
        stored["_id"] = str(ObjectId())
        self._documents[stored["_id"]] = stored
        return copy.deepcopy(stored)

    async def find(self, query: dict) -> list[dict]:
        return [copy.deepcopy(d) for d in self._documents.values() if _matches(d, query)]

    async def count(self, query: dict) -> int:
        return sum(1 for d in self._documents.values() if _matches(d, query))

    async def find_by_id(self, doc_id: str) -> dict | None:
        document = self._documents.get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def find_by_id_and_update(self, doc_id: str, fields: dict) -> dict | None:
        document = self._documents.get(doc_id)
        if document is None:
            return None
        document.update(copy.deepcopy(fields))
        return copy.deepcopy(document)

    async def find_one_and_remove(self, query: dict) -> dict | None:
        for doc_id, document in self._documents.items():
            if _matches(document, query):
                del self._documents[doc_id]
                return copy.deepcopy(document)
        return None

    def __len__(self) -> int:
        return len(self._documents)


# ── Store ────────────────────────────────────────────────────────────────────


class DocumentStore:
    """Holds the four collections. MongoDB when a URL is set, memory otherwise."""

    def __init__(self, url: str = "", database: str = "pinboard"):
        self._url = url
        self._database_name = database
        self._client: AsyncMongoClient | None = None
        self._collections: dict[str, DocumentCollection] = {
            name: MemoryCollection(name) for name in _COLLECTIONS
        }
        self._connected = not url

    async def connect(self) -> None:
        """Open the MongoDB client and verify it with a ping."""
        if not self._url:
            logger.info("No MONGODB_URL set — using in-memory document store")
            return
        self._client = AsyncMongoClient(self._url)
        database = self._client[self._database_name]
        # Bound even when the ping fails: the driver reconnects on demand and
        # writes must never land in memory while a database is configured.
        self._collections = {name: MongoCollection(database[name]) for name in _COLLECTIONS}
        try:
            await database.command("ping")
        except PyMongoError as e:
            logger.warning(f"MongoDB unavailable ({e}). Store not connected.")
            return
        self._connected = True
        logger.info(f"Document store connected to database '{self._database_name}'")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def pins(self) -> DocumentCollection:
        return self._collections[PINS]

    @property
    def tags(self) -> DocumentCollection:
        return self._collections[TAGS]

    @property
    def ai_images(self) -> DocumentCollection:
        return self._collections[AI_GENERATED]

    @property
    def pin_links(self) -> DocumentCollection:
        return self._collections[PIN_LINKS]
