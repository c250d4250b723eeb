"""
Record store - the backing store behind the acquisition pipeline.

Items are JSON-compatible dicts carrying an ``id`` key. The pipeline only needs
list, lookup and insert; nothing here updates or deletes except through the
duplicate policy of ``insert``.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Callable

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cosmofy.datastore.models import StoredRecordDB
from cosmofy.normalization.base import DuplicatePolicy

Item = dict[str, Any]
Matcher = Callable[[Item], bool]


def _record_id(item: Item) -> str:
    record_id = item.get("id")
    if not record_id:
        raise ValueError("Stored items must carry a non-empty 'id'")
    return str(record_id)


class RecordStore(ABC):
    """Abstract key-value store with list/insert operations."""

    @abstractmethod
    async def get(self, collection: str) -> list[Item]:
        """All items of a collection, in insertion order."""

    @abstractmethod
    async def get_one(self, collection: str, matcher: Matcher) -> Item | None:
        """First item of a collection for which matcher returns True."""

    @abstractmethod
    async def insert(
        self,
        collection: str,
        item: Item,
        policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST,
    ) -> Item:
        """
        Store item and return what the collection now holds for its id.

        With KEEP_FIRST an existing item is left untouched and returned; with
        REPLACE the new item overwrites it.
        """


class MemoryRecordStore(RecordStore):
    """Process-local store. The default when no database is configured."""

    def __init__(self):
        self._collections: dict[str, dict[str, Item]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str) -> list[Item]:
        return list(self._collections.get(collection, {}).values())

    async def get_one(self, collection: str, matcher: Matcher) -> Item | None:
        for item in self._collections.get(collection, {}).values():
            if matcher(item):
                return item
        return None

    async def insert(
        self,
        collection: str,
        item: Item,
        policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST,
    ) -> Item:
        record_id = _record_id(item)
        async with self._lock:
            bucket = self._collections.setdefault(collection, {})
            existing = bucket.get(record_id)
            if existing is not None and policy == DuplicatePolicy.KEEP_FIRST:
                return existing
            bucket[record_id] = item
            return item

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))


class SqlRecordStore(RecordStore):
    """
    SQLAlchemy-backed store: one generic table keyed by (collection, record_id).

    Usage:
        await init_db()
        store = SqlRecordStore(get_session_factory())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, collection: str) -> list[Item]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoredRecordDB)
                .where(StoredRecordDB.collection == collection)
                .order_by(StoredRecordDB.id)
            )
            return [self._load(row) for row in result.scalars().all()]

    async def get_one(self, collection: str, matcher: Matcher) -> Item | None:
        for item in await self.get(collection):
            if matcher(item):
                return item
        return None

    async def insert(
        self,
        collection: str,
        item: Item,
        policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST,
    ) -> Item:
        record_id = _record_id(item)
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    select(StoredRecordDB).where(
                        StoredRecordDB.collection == collection,
                        StoredRecordDB.record_id == record_id,
                    )
                )
                row = result.scalar_one_or_none()

                if row is not None and policy == DuplicatePolicy.KEEP_FIRST:
                    return self._load(row)

                payload = json.dumps(item, ensure_ascii=False, default=str)
                if row is None:
                    session.add(
                        StoredRecordDB(
                            collection=collection,
                            record_id=record_id,
                            payload=payload,
                        )
                    )
                else:
                    row.payload = payload

                await session.commit()
                return item
            except Exception:
                await session.rollback()
                raise

    @staticmethod
    def _load(row: StoredRecordDB) -> Item:
        try:
            return json.loads(row.payload)
        except json.JSONDecodeError as e:
            logger.warning(
                f"Failed to parse stored record {row.collection}/{row.record_id}: {e}"
            )
            return {"id": row.record_id}
