"""
Document store access.

The store is schema-less and addressed by collection + key. Every call is a
single round trip: whole documents are read and whole documents are written.
No transactions, field patches or compare-and-swap are used anywhere.
"""
import copy
from collections import defaultdict
from typing import Dict, List, Optional

import structlog
from bson.objectid import ObjectId
from fastapi.concurrency import run_in_threadpool
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import Settings
from .results import StoreError

logger = structlog.get_logger(__name__)

CARTS = "carts"
ORDERS = "orders"
PRODUCTS = "products"
USERS = "users"


def to_dict(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


class DocumentStore:
    """Contract every store adapter fulfils. Documents come back with their key as ``id``."""

    async def get(self, collection: str, key: str) -> Optional[dict]:
        raise NotImplementedError

    async def set(self, collection: str, key: str, document: dict) -> None:
        raise NotImplementedError

    async def query(self, collection: str, **filters) -> List[dict]:
        raise NotImplementedError

    async def add_with_generated_id(self, collection: str, document: dict) -> str:
        raise NotImplementedError

    async def collection_names(self) -> List[str]:
        raise NotImplementedError


class MongoDocumentStore(DocumentStore):
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _key_filter(key: str) -> dict:
        # catalog entries inserted by other tools use real ObjectIds
        if ObjectId.is_valid(key):
            return {"_id": {"$in": [key, ObjectId(key)]}}
        return {"_id": key}

    async def _call(self, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, **kwargs)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def get(self, collection: str, key: str) -> Optional[dict]:
        doc = await self._call(self.db[collection].find_one, self._key_filter(key))
        return to_dict(doc)

    async def set(self, collection: str, key: str, document: dict) -> None:
        doc = {k: v for k, v in document.items() if k != "id"}
        await self._call(self.db[collection].replace_one, {"_id": key}, doc, upsert=True)

    async def query(self, collection: str, **filters) -> List[dict]:
        def run():
            return list(self.db[collection].find(filters))

        docs = await self._call(run)
        return [to_dict(d) for d in docs]

    async def add_with_generated_id(self, collection: str, document: dict) -> str:
        key = str(ObjectId())
        doc = {k: v for k, v in document.items() if k != "id"}
        doc["_id"] = key
        await self._call(self.db[collection].insert_one, doc)
        return key

    async def collection_names(self) -> List[str]:
        return await self._call(self.db.list_collection_names)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store with the same whole-document semantics as the remote one."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = defaultdict(dict)

    async def get(self, collection: str, key: str) -> Optional[dict]:
        doc = self._collections[collection].get(key)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": key}

    async def set(self, collection: str, key: str, document: dict) -> None:
        doc = {k: v for k, v in document.items() if k != "id"}
        self._collections[collection][key] = copy.deepcopy(doc)

    async def query(self, collection: str, **filters) -> List[dict]:
        return [
            {**copy.deepcopy(doc), "id": key}
            for key, doc in self._collections[collection].items()
            if all(doc.get(field) == value for field, value in filters.items())
        ]

    async def add_with_generated_id(self, collection: str, document: dict) -> str:
        key = str(ObjectId())
        self._collections[collection][key] = copy.deepcopy({k: v for k, v in document.items() if k != "id"})
        return key

    async def collection_names(self) -> List[str]:
        return [name for name, docs in self._collections.items() if docs]


def create_store(settings: Settings) -> DocumentStore:
    if settings.database_url and settings.database_name:
        client = MongoClient(settings.database_url, tz_aware=True)
        logger.info("store.mongo", database=settings.database_name)
        return MongoDocumentStore(client[settings.database_name])
    logger.warning("store.in_memory", reason="DATABASE_URL or DATABASE_NAME not set")
    return InMemoryDocumentStore()
