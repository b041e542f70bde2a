"""
Collection access with the soft-delete convention applied in one place.

Collections listed in SOFT_DELETE keep removed records with `is_deleted` set
and never return them from reads or counts. Every other collection removes
records physically.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, to_object_id, utcnow

logger = logging.getLogger(__name__)

SOFT_DELETE = {"account", "product"}
NOT_DELETED = {"is_deleted": {"$ne": True}}


class Repository:
    def __init__(self, db: Database, collection_name: str):
        self.db = db
        self.name = collection_name
        self.collection = db[collection_name]
        self.soft_delete_enabled = collection_name in SOFT_DELETE

    def scoped(self, filter_dict: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        filter_dict = filter_dict or {}
        if not self.soft_delete_enabled:
            return filter_dict
        if not filter_dict:
            return dict(NOT_DELETED)
        return {"$and": [filter_dict, NOT_DELETED]}

    def find(
        self,
        filter_dict: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[dict]:
        cursor = self.collection.find(self.scoped(filter_dict), projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_one(self, filter_dict: Dict[str, Any], projection: Optional[Dict[str, int]] = None) -> Optional[dict]:
        return self.collection.find_one(self.scoped(filter_dict), projection)

    def get(self, doc_id: Any, projection: Optional[Dict[str, int]] = None) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return self.find_one({"_id": oid}, projection)

    def count(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return self.collection.count_documents(self.scoped(filter_dict))

    def exists_unscoped(self, filter_dict: Dict[str, Any]) -> bool:
        # unique fields stay taken by soft-deleted records
        return self.collection.find_one(filter_dict, {"_id": 1}) is not None

    def insert(self, data) -> str:
        return create_document(self.db, self.name, data)

    def update(self, filter_dict: Dict[str, Any], changes: Dict[str, Any]) -> Optional[dict]:
        changes = dict(changes)
        changes["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            self.scoped(filter_dict),
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, filter_dict: Dict[str, Any]) -> bool:
        """Remove one record. Soft-deletable collections only flag it."""
        if self.soft_delete_enabled:
            now = utcnow()
            result = self.collection.update_one(
                self.scoped(filter_dict),
                {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
            )
            if result.modified_count:
                logger.info("Soft deleted one %s matching %s", self.name, filter_dict)
            return result.modified_count > 0
        return self.collection.delete_one(filter_dict).deleted_count > 0

    def delete_many(self, filter_dict: Dict[str, Any]) -> int:
        if self.soft_delete_enabled:
            now = utcnow()
            result = self.collection.update_many(
                self.scoped(filter_dict),
                {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
            )
            logger.info("Soft deleted %d %s records", result.modified_count, self.name)
            return result.modified_count
        return self.collection.delete_many(filter_dict).deleted_count


def populate(db: Database, doc: Optional[dict], path: str, collection_name: str,
             projection: Optional[Dict[str, int]] = None) -> Optional[dict]:
    """Replace the reference stored at `path` with the referenced document.

    `path` may step through one list, e.g. "products.product_id". References
    that no longer resolve are left as ids.
    """
    if not doc:
        return doc
    head, _, rest = path.partition(".")
    value = doc.get(head)
    if rest:
        items = value if isinstance(value, list) else [value]
        for item in items:
            if isinstance(item, dict):
                populate(db, item, rest, collection_name, projection)
        return doc
    oid = to_object_id(value)
    if oid is not None:
        found = db[collection_name].find_one({"_id": oid}, projection)
        if found is not None:
            doc[head] = found
    return doc
