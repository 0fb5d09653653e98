"""Document store access for the ledgers (read-only)."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import AsyncMongoClient

from merchant_desk.infra.config import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerQuery:
    """A fully materialized find() against one collection."""
    collection: str
    filter: Dict[str, Any]
    projection: Optional[Dict[str, Any]] = None
    sort: Tuple[Tuple[str, int], ...] = ()
    limit: int = 0


class DocumentStore:
    """Thin async wrapper over the MongoDB client used by every ledger query."""

    def __init__(self, uri: Optional[str] = None, db_name: Optional[str] = None):
        self._uri = uri or config.MONGODB_URI
        self._db_name = db_name or config.MONGODB_DB_NAME
        self._client: Optional[AsyncMongoClient] = None

    @property
    def client(self) -> AsyncMongoClient:
        """Lazy initialization of the Mongo client."""
        if self._client is None:
            self._client = AsyncMongoClient(
                self._uri,
                maxPoolSize=10,
                minPoolSize=2,
                maxIdleTimeMS=30000,
                serverSelectionTimeoutMS=config.MONGODB_TIMEOUT_MS,
            )
        return self._client

    def _collection(self, name: str):
        return self.client[self._db_name][name]

    async def find(self, query: LedgerQuery) -> List[Dict[str, Any]]:
        cursor = self._collection(query.collection).find(query.filter, query.projection)
        if query.sort:
            cursor = cursor.sort(list(query.sort))
        if query.limit:
            cursor = cursor.limit(query.limit)
        return await cursor.to_list(length=None)

    async def aggregate(self, collection: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cursor = await self._collection(collection).aggregate(pipeline)
        return await cursor.to_list(length=None)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Document store disconnected")


document_store = DocumentStore()
