"""
YoursAI - Conversation Store
=============================
Async chat-history store backed by MongoDB via ``motor``.

One document per exchange, so an exchange is written (or not) as a unit::

    {
        "user_id": str,
        "session_id": str,
        "timestamp": datetime,   # UTC
        "userMessage": str,
        "aiReply": str
    }

Every query filters by ``(user_id, session_id)``; the compound unique
index on ``(user_id, session_id, timestamp)`` serves both the newest-first
window read and the retention prune.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from yoursai.config.settings import settings
from yoursai.src.core.errors import StorageError
from yoursai.src.utils.logger import get_logger

logger = get_logger(__name__)

HISTORY_INDEX_KEYS = [("user_id", ASCENDING), ("session_id", ASCENDING), ("timestamp", ASCENDING)]


@dataclass(frozen=True)
class ChatExchange:
    """One user message and the reply it received."""

    identity: str
    session: str
    user_message: str
    ai_reply: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_document(self) -> dict[str, Any]:
        return {"user_id": self.identity, "session_id": self.session, "timestamp": self.timestamp, "userMessage": self.user_message, "aiReply": self.ai_reply}

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ChatExchange:
        return cls(identity=doc["user_id"], session=doc["session_id"], user_message=doc.get("userMessage", ""), ai_reply=doc.get("aiReply", ""), timestamp=doc["timestamp"])


@runtime_checkable
class ConversationStore(Protocol):
    """Per-(identity, session) exchange log."""

    async def recent(self, identity: str, session: str, limit: int) -> list[ChatExchange]: ...

    async def append(self, exchange: ChatExchange) -> None: ...

    async def prune(self, identity: str, session: str, keep: int) -> int: ...


class MongoConversationStore:
    """
    ``ConversationStore`` over a ``motor`` collection.

    Parameters
    ----------
    collection
        An ``AsyncIOMotorCollection`` (or anything with the same async
        ``find`` / ``insert_one`` / ``delete_many`` / ``create_index``).
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: Any) -> None:
        self._collection = collection


    @classmethod
    def from_client(cls, client: motor.motor_asyncio.AsyncIOMotorClient, db_name: str | None = None, collection_name: str | None = None) -> MongoConversationStore:
        db = client[db_name or settings.MONGO_DB_NAME]
        return cls(db[collection_name or settings.CHAT_HISTORY_COLLECTION])


    async def ensure_indexes(self) -> None:
        """Create the compound unique index (idempotent)."""
        try:
            await self._collection.create_index(HISTORY_INDEX_KEYS, unique=True, name="user_session_timestamp")
        except PyMongoError as exc:
            raise StorageError(f"Failed to create chat history index: {exc}") from exc


    async def recent(self, identity: str, session: str, limit: int) -> list[ChatExchange]:
        """
        Return up to *limit* most recent exchanges, oldest first.

        Raises
        ------
        StorageError
            The read failed.
        """
        if limit <= 0:
            return []
        t0 = time.perf_counter()
        try:
            cursor = self._collection.find({"user_id": identity, "session_id": session}).sort("timestamp", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as exc:
            raise StorageError(f"Failed to read chat history: {exc}") from exc

        docs.reverse()
        logger.debug("Loaded %d exchanges in %.3fs", len(docs), time.perf_counter() - t0)
        return [ChatExchange.from_document(doc) for doc in docs]


    async def append(self, exchange: ChatExchange) -> None:
        """Insert one exchange as a single document."""
        try:
            await self._collection.insert_one(exchange.to_document())
        except PyMongoError as exc:
            raise StorageError(f"Failed to save chat exchange: {exc}") from exc


    async def prune(self, identity: str, session: str, keep: int) -> int:
        """
        Delete everything but the *keep* newest exchanges of a session.

        Returns
        -------
        int
            Number of exchanges deleted.
        """
        try:
            cursor = self._collection.find({"user_id": identity, "session_id": session}, {"_id": 1}).sort("timestamp", DESCENDING).skip(keep)
            stale = [doc["_id"] for doc in await cursor.to_list(length=None)]
            if not stale:
                return 0
            result = await self._collection.delete_many({"_id": {"$in": stale}})
        except PyMongoError as exc:
            raise StorageError(f"Failed to prune chat history: {exc}") from exc

        logger.info("Pruned %d old exchanges from session '%s'", result.deleted_count, session)
        return result.deleted_count
