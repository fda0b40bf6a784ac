# foodconnect/repos/mongo.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from pymongo.errors import PyMongoError

from foodconnect.core.errors import InvalidState
from foodconnect.core.indexes import ensure_indexes
from foodconnect.db import new_id

logger = logging.getLogger(__name__)


class MongoRepo:
    """
    Motor-backed repository. Documents use string ids (same as InMemoryRepo),
    so callers never convert ObjectIds.

    transaction() opens a client session transaction when enabled; a handle
    bound to that session is yielded and every call made through it joins it.
    """

    def __init__(self, client, db, session=None, transactions: bool = True):
        self._client = client
        self._db = db
        self._session = session
        self._transactions = transactions

    async def insert_one(self, col: str, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", new_id())
        await self._db[col].insert_one(doc, session=self._session)
        return doc

    async def find_one(self, col: str, query: dict) -> Optional[dict]:
        return await self._db[col].find_one(query, session=self._session)

    async def find(self, col: str, query: dict, sort=None, skip: int = 0, limit: int = 0) -> List[dict]:
        cur = self._db[col].find(query, session=self._session)
        if sort:
            cur = cur.sort(list(sort))
        if skip:
            cur = cur.skip(skip)
        if limit:
            cur = cur.limit(limit)
        return [d async for d in cur]

    async def count(self, col: str, query: dict) -> int:
        return await self._db[col].count_documents(query, session=self._session)

    async def update_one(self, col: str, query: dict, update: dict) -> bool:
        res = await self._db[col].update_one(query, update, session=self._session)
        return res.matched_count > 0

    async def update_many(self, col: str, query: dict, update: dict) -> int:
        res = await self._db[col].update_many(query, update, session=self._session)
        return res.modified_count

    async def delete_one(self, col: str, query: dict) -> bool:
        res = await self._db[col].delete_one(query, session=self._session)
        return res.deleted_count > 0

    @asynccontextmanager
    async def transaction(self):
        if self._session is not None or not self._transactions:
            yield self
            return
        async with await self._client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield MongoRepo(self._client, self._db, session=session)
            except PyMongoError as ex:
                if ex.has_error_label("TransientTransactionError"):
                    logger.warning(f"Transaction aborted by a concurrent write: {ex}")
                    raise InvalidState("Concurrent update, refresh and retry") from ex
                raise

    async def ensure_indexes(self) -> None:
        await ensure_indexes(self._db)

    def close(self) -> None:
        self._client.close()
