"""
MongoDB access for the admin backend.

The admin dashboard shares its database with the customer app, so documents
keep the camelCase field names that app writes. Auto-created ids are ObjectIds;
some documents (customers, settings singletons) carry plain string ids.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL
from feed import ChangeFeed, ChangeWatcher

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CATEGORIES = "categories"
ORDERS = "orders"
RIDERS = "delivery_partners"
CUSTOMERS = "users"
SETTINGS = "app_settings"
ADMINS = "adminuser"
REVOKED_TOKENS = "revokedtoken"

DocId = Union[str, ObjectId]


def object_id(value: DocId) -> DocId:
    """Turn a path id into the stored id type: ObjectId if it parses, else the raw string."""
    if isinstance(value, ObjectId):
        return value
    if ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def to_dict(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore:
    """Thin CRUD layer over a pymongo database that reports every write to a ChangeFeed."""

    def __init__(self, database: Database, feed: Optional[ChangeFeed] = None):
        self.db = database
        self.feed = feed or ChangeFeed()
        self.feed.bind(self.snapshot)

    def snapshot(self, collection: str) -> List[dict]:
        return [to_dict(d) for d in self.db[collection].find({})]

    def create_document(self, collection: str, data: Union[dict, Any]) -> str:
        if hasattr(data, "model_dump"):
            data = data.model_dump(by_alias=True)
        doc = dict(data)
        stamp = now_utc()
        doc.setdefault("createdAt", stamp)
        doc.setdefault("updatedAt", stamp)
        result = self.db[collection].insert_one(doc)
        self.feed.notify(collection)
        return str(result.inserted_id)

    def get_document(self, collection: str, doc_id: DocId) -> Optional[dict]:
        return to_dict(self.db[collection].find_one({"_id": object_id(doc_id)}))

    def get_documents(
        self,
        collection: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        sort: Optional[Tuple[str, int]] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        cursor = self.db[collection].find(filter_dict or {})
        if sort:
            field, direction = sort
            cursor = cursor.sort(field, DESCENDING if direction < 0 else ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [to_dict(d) for d in cursor]

    def update_document(self, collection: str, doc_id: DocId, fields: Dict[str, Any]) -> bool:
        res = self.db[collection].update_one({"_id": object_id(doc_id)}, {"$set": fields})
        if res.matched_count:
            self.feed.notify(collection)
        return res.matched_count > 0

    def set_document(self, collection: str, doc_id: DocId, data: Dict[str, Any], merge: bool = False) -> None:
        key = object_id(doc_id)
        body = {k: v for k, v in data.items() if k not in ("_id", "id")}
        if merge:
            self.db[collection].update_one({"_id": key}, {"$set": body}, upsert=True)
        else:
            self.db[collection].replace_one({"_id": key}, body, upsert=True)
        self.feed.notify(collection)

    def delete_document(self, collection: str, doc_id: DocId) -> bool:
        res = self.db[collection].delete_one({"_id": object_id(doc_id)})
        if res.deleted_count:
            self.feed.notify(collection)
        return res.deleted_count > 0

    def count(self, collection: str) -> int:
        return self.db[collection].count_documents({})

    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def watch(self, collection: str) -> ChangeWatcher:
        """Change-stream watcher that feeds outside writes to `collection` into the feed."""
        return ChangeWatcher(self.db[collection], self.feed)


client = MongoClient(DATABASE_URL)
db = client[DATABASE_NAME]
store = DocumentStore(db)


def get_store() -> DocumentStore:
    return store
