from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from booking_engine.adapters.tenant_store import TenantStoreProtocol, VersionedValue
from booking_engine.services.errors import Unavailable

logger = logging.getLogger(__name__)


@dataclass
class MongoClientFactory:
    uri: str
    db_name: str

    def get_collection(self, collection_name: str):
        client = MongoClient(self.uri)
        database = client[self.db_name]
        return database[collection_name]


class MongoTenantStore(TenantStoreProtocol):
    """Tenant store with one document per key: ``{_id, value, version, expires_at}``."""

    def __init__(self, collection) -> None:
        self._collection = collection

    def ensure_indexes(self) -> None:
        try:
            self._collection.create_index("expires_at", expireAfterSeconds=0)
        except PyMongoError as exc:
            raise Unavailable("Tenant store is unreachable") from exc

    def get(self, key: str) -> Any:
        return self.get_versioned(key).value

    def get_versioned(self, key: str) -> VersionedValue:
        try:
            document = self._collection.find_one({"_id": key})
        except PyMongoError as exc:
            logger.error("Tenant store read failed", extra={"key": key})
            raise Unavailable("Tenant store is unreachable") from exc
        if document is None:
            return VersionedValue(None, 0)
        version = int(document.get("version", 0))
        # Expired documents linger until the TTL monitor runs.
        if self._is_expired(document.get("expires_at")):
            return VersionedValue(None, version)
        return VersionedValue(document.get("value"), version)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = _utcnow() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        try:
            self._collection.update_one(
                {"_id": key},
                {"$set": {"value": value, "expires_at": expires_at}, "$inc": {"version": 1}},
                upsert=True,
            )
        except PyMongoError as exc:
            logger.error("Tenant store write failed", extra={"key": key})
            raise Unavailable("Tenant store is unreachable") from exc

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        try:
            if expected_version == 0:
                self._collection.insert_one(
                    {"_id": key, "value": value, "version": 1, "expires_at": None}
                )
                return True
            result = self._collection.update_one(
                {"_id": key, "version": expected_version},
                {"$set": {"value": value, "expires_at": None}, "$inc": {"version": 1}},
            )
        except DuplicateKeyError:
            return False
        except PyMongoError as exc:
            logger.error("Tenant store conditional write failed", extra={"key": key})
            raise Unavailable("Tenant store is unreachable") from exc
        return result.modified_count == 1

    def expire(self, key: str, seconds: int) -> None:
        try:
            self._collection.update_one(
                {"_id": key},
                {"$set": {"expires_at": _utcnow() + timedelta(seconds=seconds)}},
            )
        except PyMongoError as exc:
            raise Unavailable("Tenant store is unreachable") from exc

    @staticmethod
    def _is_expired(expires_at: Optional[datetime]) -> bool:
        if expires_at is None:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= _utcnow()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
