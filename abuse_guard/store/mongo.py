"""MongoDB-backed attempt store.

All policies share one collection; documents are keyed by
``(policy, principal, day_start)`` under a unique index, and a TTL index on
``created_at`` reaps prior days' records without any application job.

Example usage:
    from abuse_guard.store.mongo import MongoAttemptStore

    store = MongoAttemptStore()          # reads MONGODB_URI
    record = store.increment_attempt("1.2.3.4", "login", day_start, now)
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from abuse_guard.config import (
    MONGODB_COLLECTION_NAME,
    MONGODB_DB_NAME,
    MONGODB_RECONNECT_INTERVAL_SECONDS,
    MONGODB_TIMEOUT_SECONDS,
    MONGODB_URI,
    RECORD_RETENTION_HOURS,
)
from abuse_guard.errors import StoreUnavailable
from abuse_guard.store.base import AttemptRecord, AttemptStore

LOG = logging.getLogger(__name__)

_RESET_FIELDS = {"attempt_count": 0, "is_blocked": False, "blocked_until": None}


class MongoAttemptStore(AttemptStore):
    """``AttemptStore`` on a single MongoDB collection."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        collection_name: Optional[str] = None,
        timeout_seconds: int = MONGODB_TIMEOUT_SECONDS,
        retention_hours: int = RECORD_RETENTION_HOURS,
        reconnect_interval_seconds: float = MONGODB_RECONNECT_INTERVAL_SECONDS,
        auto_connect: bool = True,
    ):
        """Initialize the store.

        Args:
            uri: MongoDB connection string. Reads from MONGODB_URI env var if None.
            db_name: Database name. Defaults to 'abuse_guard'.
            collection_name: Collection name. Defaults to 'attempt_records'.
            timeout_seconds: Server selection / connect timeout in seconds.
            retention_hours: Age after which the TTL index deletes a record.
            reconnect_interval_seconds: While disconnected, calls made within
                this many seconds of the last connect attempt fail fast.
                Zero retries on every call.
            auto_connect: Whether to connect automatically on initialization.

        Raises:
            ValueError: If no URI is given and MONGODB_URI is not set.
        """
        self.uri = uri or MONGODB_URI
        self.db_name = db_name or MONGODB_DB_NAME
        self.collection_name = collection_name or MONGODB_COLLECTION_NAME
        self.timeout_seconds = timeout_seconds
        self.retention_hours = retention_hours
        self.reconnect_interval_seconds = reconnect_interval_seconds

        self._client: Optional[MongoClient] = None
        self._collection: Optional[Collection] = None
        self._is_connected = False
        self._last_connect_attempt: Optional[float] = None

        if not self.uri:
            raise ValueError(
                "MongoDB URI must be provided or set in MONGODB_URI environment variable"
            )

        if auto_connect:
            self.connect()

    # ==================== CONNECTION ====================

    def connect(self) -> bool:
        """Connect, verify with a ping and make sure indexes exist.

        Any previous client is closed first, and a client whose ping fails is
        closed straight away, so repeated attempts during an outage do not
        leave monitor threads and pools behind.

        Returns:
            bool: True if connection successful, False otherwise.
        """
        self._last_connect_attempt = time.monotonic()
        self._close_client()
        try:
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=self.timeout_seconds * 1000,
                connectTimeoutMS=self.timeout_seconds * 1000,
                retryWrites=True,
                tz_aware=True,
                maxPoolSize=20,
            )
            self._client.admin.command("ping")
            self._collection = self._client[self.db_name][self.collection_name]
            self.ensure_indexes()
            self._is_connected = True
            LOG.info(f"Connected to MongoDB: {self.db_name}.{self.collection_name}")
            return True
        except PyMongoError as e:
            LOG.error(f"MongoDB connection failed: {e}")
            self._close_client()
            return False

    def ensure_indexes(self) -> None:
        coll = self._get_collection()
        coll.create_index(
            [("policy", ASCENDING), ("principal", ASCENDING), ("day_start", ASCENDING)],
            unique=True,
            name="policy_principal_day",
        )
        coll.create_index(
            [("policy", ASCENDING), ("day_start", ASCENDING), ("blocked_until", ASCENDING)],
            name="policy_day_blocked",
        )
        coll.create_index(
            "created_at",
            expireAfterSeconds=self.retention_hours * 3600,
            name="created_at_ttl",
        )

    def _close_client(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except PyMongoError as e:
                LOG.error(f"Error closing MongoDB connection: {e}")
        self._client = None
        self._collection = None
        self._is_connected = False

    def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._close_client()
            LOG.info("Disconnected from MongoDB")

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    def _get_collection(self) -> Collection:
        """Return the active collection, raising if unavailable."""
        if self._collection is None:
            raise StoreUnavailable("MongoDB collection is not initialised")
        return self._collection

    def _reconnect_due(self) -> bool:
        if self._last_connect_attempt is None:
            return True
        return time.monotonic() - self._last_connect_attempt >= self.reconnect_interval_seconds

    def _ensure_connected(self) -> Collection:
        if not self._is_connected:
            if not self._reconnect_due():
                raise StoreUnavailable(
                    f"MongoDB at {self.db_name}.{self.collection_name} is down, "
                    f"next reconnect in under {self.reconnect_interval_seconds:g}s"
                )
            LOG.warning("Store not connected. Attempting to reconnect...")
            if not self.connect():
                raise StoreUnavailable(
                    f"Cannot reach MongoDB at {self.db_name}.{self.collection_name}"
                )
        return self._get_collection()

    # ==================== READ OPERATIONS ====================

    def find_record(
        self, principal: str, policy: str, day_start: datetime
    ) -> Optional[AttemptRecord]:
        coll = self._ensure_connected()
        try:
            doc = coll.find_one({"principal": principal, "policy": policy, "day_start": day_start})
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to read attempt record: {e}") from e
        return AttemptRecord.from_document(doc) if doc else None

    def find_blocked(
        self, policy: str, day_start: datetime, now: datetime
    ) -> List[AttemptRecord]:
        coll = self._ensure_connected()
        query = {
            "policy": policy,
            "day_start": day_start,
            "is_blocked": True,
            "blocked_until": {"$gt": now},
        }
        try:
            cursor = coll.find(query).sort("last_attempt", DESCENDING)
            return [AttemptRecord.from_document(doc) for doc in cursor]
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to list blocked records: {e}") from e

    # ==================== WRITE OPERATIONS ====================

    def upsert_record(self, record: AttemptRecord) -> None:
        coll = self._ensure_connected()
        fields = record.to_document()
        created_at = fields.pop("created_at")
        try:
            coll.update_one(
                record.key(),
                {"$set": fields, "$setOnInsert": {"created_at": created_at}},
                upsert=True,
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to upsert attempt record: {e}") from e

    def increment_attempt(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> AttemptRecord:
        coll = self._ensure_connected()
        query = {"principal": principal, "policy": policy, "day_start": day_start}
        on_insert: Dict[str, Any] = {"is_blocked": False, "blocked_until": None, "created_at": now}
        to_set: Dict[str, Any] = {"last_attempt": now}
        if label is not None:
            to_set["label"] = label
        else:
            on_insert["label"] = None
        update = {"$inc": {"attempt_count": 1}, "$set": to_set, "$setOnInsert": on_insert}

        # Two first-of-the-day upserts can race on the unique index; the loser
        # retries once and then matches the winner's document.
        @retry(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(DuplicateKeyError),
            before_sleep=before_sleep_log(LOG, logging.WARNING),
            reraise=True,
        )
        def _upsert() -> Dict[str, Any]:
            return coll.find_one_and_update(
                query, update, upsert=True, return_document=ReturnDocument.AFTER
            )

        try:
            return AttemptRecord.from_document(_upsert())
        except DuplicateKeyError as e:
            raise StoreUnavailable("Concurrent upsert kept colliding on attempt record") from e
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to increment attempt record: {e}") from e

    def set_block(
        self, principal: str, policy: str, day_start: datetime, blocked_until: datetime
    ) -> None:
        coll = self._ensure_connected()
        try:
            coll.update_one(
                {"principal": principal, "policy": policy, "day_start": day_start},
                {"$set": {"is_blocked": True, "blocked_until": blocked_until}},
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to block attempt record: {e}") from e

    def restart_expired_block(
        self,
        principal: str,
        policy: str,
        day_start: datetime,
        now: datetime,
        label: Optional[str] = None,
    ) -> Optional[AttemptRecord]:
        coll = self._ensure_connected()
        query = {
            "principal": principal,
            "policy": policy,
            "day_start": day_start,
            "is_blocked": True,
            "blocked_until": {"$lte": now},
        }
        to_set: Dict[str, Any] = {
            "attempt_count": 1,
            "is_blocked": False,
            "blocked_until": None,
            "last_attempt": now,
        }
        if label is not None:
            to_set["label"] = label
        try:
            doc = coll.find_one_and_update(
                query, {"$set": to_set}, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to restart expired block: {e}") from e
        return AttemptRecord.from_document(doc) if doc else None

    def reset_day(
        self, principal: str, policy: str, day_start: datetime, now: datetime
    ) -> int:
        coll = self._ensure_connected()
        try:
            result = coll.update_many(
                {"principal": principal, "policy": policy, "day_start": day_start},
                {"$set": {**_RESET_FIELDS, "last_attempt": now}},
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to reset attempt records: {e}") from e
        return result.matched_count

    def bulk_reset(self, principal: str, policy: str) -> int:
        coll = self._ensure_connected()
        try:
            result = coll.update_many(
                {"principal": principal, "policy": policy},
                {"$set": dict(_RESET_FIELDS)},
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to bulk reset attempt records: {e}") from e
        LOG.info(f"Bulk reset {result.modified_count} record(s) for {policy}:{principal}")
        return result.modified_count

    def purge_expired(self, cutoff: datetime) -> int:
        coll = self._ensure_connected()
        try:
            result = coll.delete_many({"created_at": {"$lt": cutoff}})
        except PyMongoError as e:
            raise StoreUnavailable(f"Failed to purge attempt records: {e}") from e
        LOG.info(f"Purged {result.deleted_count} expired attempt record(s)")
        return result.deleted_count

    def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            self._client.admin.command("ping")
            return True
        except PyMongoError as e:
            LOG.warning(f"MongoDB ping failed: {e}")
            return False

    # ==================== CONTEXT MANAGER ====================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


__all__ = ["MongoAttemptStore"]
