"""
Core Database Client Framework
Collection handles and connection management for MongoDB-compatible stores
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

import bson
from bson.errors import InvalidDocument
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import OperationFailure

from ..exceptions import ConnectionFailure

logger = logging.getLogger(__name__)


def estimate_record_size(record: Dict[str, Any]) -> int:
    """Approximate serialized size of a record in bytes (BSON length)"""
    try:
        return len(bson.encode(record))
    except (InvalidDocument, TypeError, OverflowError):
        # Not BSON-encodable (non-string keys, ints over 64 bits); use its repr
        return len(repr(record).encode("utf-8"))


@dataclass
class DatabaseConfig:
    """Database connection configuration"""
    connection_string: str
    database_name: Optional[str] = None
    max_pool_size: int = 10
    min_pool_size: int = 0
    max_idle_time_ms: int = 300000
    socket_timeout_ms: int = 30000
    connect_timeout_ms: int = 20000
    server_selection_timeout_ms: int = 10000


class CollectionHandle(ABC):
    """
    Abstract handle over one collection of a document store

    The transfer engine only talks to collections through this interface,
    so any store (or an in-memory fake) can be plugged in.
    """

    name: str

    @abstractmethod
    async def count(self) -> int:
        """Number of records in the collection"""

    @abstractmethod
    async def read(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """Read up to ``limit`` records starting at ``offset`` in a stable order"""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every record; returns the number deleted"""

    @abstractmethod
    async def insert_many(self, records: List[Dict[str, Any]]) -> int:
        """Insert records; returns the number the store reports as inserted"""

    @abstractmethod
    async def stats(self) -> Dict[str, int]:
        """Collection statistics; must contain ``avg_record_size_bytes``"""


class MongoCollectionHandle(CollectionHandle):
    """Collection handle backed by a Motor collection"""

    def __init__(self, collection, sample_size: int = 100):
        self.collection = collection
        self.name = collection.name
        self.sample_size = sample_size

    async def count(self) -> int:
        # Exact count: an empty-collection shortcut depends on it
        return await self.collection.count_documents({})

    async def read(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        cursor = self.collection.find({}, sort=[("_id", ASCENDING)], skip=offset, limit=limit)
        return await cursor.to_list(length=limit)

    async def clear(self) -> int:
        result = await self.collection.delete_many({})
        return result.deleted_count

    async def insert_many(self, records: List[Dict[str, Any]]) -> int:
        if not records:
            return 0
        result = await self.collection.insert_many(records, ordered=True)
        return len(result.inserted_ids)

    async def stats(self) -> Dict[str, int]:
        """Average record size from collStats, sampled when the server won't say"""
        avg_size = 0
        try:
            result = await self.collection.database.command("collStats", self.name)
            avg_size = int(result.get("avgObjSize", 0))
        except OperationFailure as e:
            logger.debug(f"collStats unavailable for {self.name}: {e}")

        if avg_size <= 0:
            avg_size = await self._sample_record_size()

        return {"avg_record_size_bytes": avg_size}

    async def _sample_record_size(self) -> int:
        docs = await self.collection.find({}).limit(self.sample_size).to_list(length=self.sample_size)
        if not docs:
            return 0
        return sum(estimate_record_size(doc) for doc in docs) // len(docs)


class MongoDatabaseClient:
    """
    Motor database client

    Provides:
    - Connection management
    - Collection discovery
    - Collection handles
    """

    def __init__(self, config: DatabaseConfig, label: str = "database"):
        self.config = config
        self.label = label
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None
        self.is_connected = False
        self.last_error: Optional[BaseException] = None

    async def connect(self) -> bool:
        """Connect and ping; returns False on failure"""
        try:
            logger.info(f"Connecting to {self.label}...")

            self.client = AsyncIOMotorClient(
                self.config.connection_string,
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
                maxIdleTimeMS=self.config.max_idle_time_ms,
                socketTimeoutMS=self.config.socket_timeout_ms,
                connectTimeoutMS=self.config.connect_timeout_ms,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms
            )

            if self.config.database_name:
                self.database = self.client[self.config.database_name]
            else:
                # Database name embedded in the connection string
                self.database = self.client.get_default_database()

            await self.client.admin.command('ping')

            self.is_connected = True
            self.last_error = None
            logger.info(f"✅ Connected to {self.label} ({self.database.name})")
            return True

        except Exception as e:
            self.last_error = e
            logger.error(f"❌ Failed to connect to {self.label}: {e}")
            if self.client:
                self.client.close()
                self.client = None
            return False

    async def disconnect(self):
        """Disconnect from database"""
        if self.client:
            self.client.close()
            self.client = None
            self.is_connected = False
            logger.info(f"Disconnected from {self.label}")

    async def list_collection_names(self) -> List[str]:
        """User collections, sorted, without system collections"""
        names = await self.database.list_collection_names()
        return sorted(name for name in names if not name.startswith("system."))

    def collection(self, name: str) -> MongoCollectionHandle:
        return MongoCollectionHandle(self.database[name])


async def connect_with_retry(client: MongoDatabaseClient, attempts: int = 3,
                             backoff_base_seconds: float = 0.5) -> MongoDatabaseClient:
    """Connect with a bounded number of attempts and exponential backoff

    Raises ConnectionFailure once every attempt has failed.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        if await client.connect():
            return client
        if attempt < attempts:
            delay = backoff_base_seconds * (2 ** (attempt - 1))
            logger.warning(f"Retrying {client.label} connection in {delay:.1f}s ({attempt}/{attempts})")
            await asyncio.sleep(delay)

    raise ConnectionFailure(client.config.connection_string, attempts, client.last_error)
