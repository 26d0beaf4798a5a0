"""MongoDB client for dialogue_recall.

This module provides an async MongoDB client wrapper using Motor.
"""

from typing import TYPE_CHECKING, Any, Self

from dialogue_recall.config import MongoSettings
from dialogue_recall.logging import get_logger
from dialogue_recall.utils.lazy_import import lazy_import

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

__all__ = [
    "MongoClient",
]

logger = get_logger(__name__)

get_async_motor = lazy_import("motor.motor_asyncio", "AsyncIOMotorClient", install_hint="motor")

type Collection = AsyncIOMotorCollection[dict[str, Any]]


class MongoClient:
    """Async MongoDB client wrapper.

    Provides a connection manager and accessors for the recall set,
    point, session, message, tangent, outcome and metrics collections.

    Example:
        async with MongoClient(settings) as client:
            await client.recall_points.find_one({"id": point_id})
    """

    def __init__(self, settings: MongoSettings) -> None:
        """Initialize client with settings.

        Args:
            settings: MongoDB connection settings
        """
        self._settings = settings
        self._client = None
        self._db = None

    async def connect(self) -> None:
        """Open the connection and verify it with a ping."""
        if self._client is not None:
            return
        AsyncIOMotorClient = get_async_motor()  # noqa: N806

        # tz_aware keeps stored UTC datetimes comparable with aware ones
        self._client = AsyncIOMotorClient(self._settings.uri.get_secret_value(), tz_aware=True)
        self._db = self._client[self._settings.database]

        await self._client.admin.command("ping")
        logger.info("connected_to_mongodb", database=self._settings.database)

    async def disconnect(self) -> None:
        """Close the connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("disconnected_from_mongodb")

    @property
    def db(self) -> "AsyncIOMotorDatabase[dict[str, Any]]":
        """Get database instance.

        Raises:
            RuntimeError: If not connected
        """
        if self._db is None:
            raise RuntimeError("MongoClient not connected. Call connect() first.")
        return self._db

    def _collection(self, name: str) -> Collection:
        return self.db[f"{self._settings.collection_prefix}{name}"]

    @property
    def recall_sets(self) -> Collection:
        return self._collection("recall_sets")

    @property
    def recall_points(self) -> Collection:
        return self._collection("recall_points")

    @property
    def sessions(self) -> Collection:
        return self._collection("sessions")

    @property
    def session_messages(self) -> Collection:
        return self._collection("session_messages")

    @property
    def tangent_events(self) -> Collection:
        return self._collection("tangent_events")

    @property
    def recall_outcomes(self) -> Collection:
        return self._collection("recall_outcomes")

    @property
    def session_metrics(self) -> Collection:
        return self._collection("session_metrics")

    async def create_indexes(self) -> None:
        """Create indexes for all collections."""
        await self.recall_sets.create_index("id", unique=True)

        await self.recall_points.create_index("id", unique=True)
        await self.recall_points.create_index([("recall_set_id", 1), ("memory_state.due", 1)])

        await self.sessions.create_index("id", unique=True)
        await self.sessions.create_index([("recall_set_id", 1), ("status", 1)])

        await self.session_messages.create_index("id", unique=True)
        await self.session_messages.create_index([("session_id", 1), ("timestamp", 1)])

        await self.tangent_events.create_index("id", unique=True)
        await self.tangent_events.create_index("session_id")

        await self.recall_outcomes.create_index("id", unique=True)
        await self.recall_outcomes.create_index("session_id")

        await self.session_metrics.create_index("session_id", unique=True)

        logger.info("created_mongodb_indexes")

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
