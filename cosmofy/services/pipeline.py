"""
AcquisitionPipeline - cache, resolve, fall back; the whole acquisition flow.

Combines:
- TieredCache for fresh answers and stale fallbacks
- SourceChainResolver driving the ResilientFetcher per source
- RequestDeduplicator so concurrent misses share one resolution
- DeadlineGuard bounding each inbound request
- StalenessRefresher refreshing old data behind the caller's back
- RecordStore persisting normalized records between runs
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Literal, Sequence

from loguru import logger
from pydantic import BaseModel

from cosmofy.datastore.store import MemoryRecordStore, RecordStore
from cosmofy.normalization.base import DuplicatePolicy, merge_records
from cosmofy.normalization.models import NormalizedRecord
from cosmofy.services.cache import (
    DEFAULT_SCOPES,
    CacheEntry,
    CacheScope,
    ScopeConfig,
    TieredCache,
)
from cosmofy.services.deadline import DeadlineGuard
from cosmofy.services.deduplicator import RequestDeduplicator
from cosmofy.services.errors import AllSourcesExhausted, DeadlineExceeded
from cosmofy.services.fetcher import ResilientFetcher
from cosmofy.services.refresh import StalenessRefresher
from cosmofy.services.resolver import SourceChainResolver, SourceDescriptor
from cosmofy.settings import Settings, global_settings

Origin = Literal["cache", "source", "stale", "default", "empty"]


@dataclass
class AcquisitionSpec:
    """Everything the pipeline needs to answer one kind of request."""

    scope: CacheScope
    key: str
    chain: Sequence[SourceDescriptor]
    ttl: timedelta | None = None
    fallback_ttl: timedelta | None = None
    deadline: float | None = None
    staleness_threshold: timedelta | None = None
    default: list[Any] | Callable[[], list[Any]] | None = None

    # Backing-store collection; None keeps results in the cache only
    collection: str | None = None
    record_type: type[NormalizedRecord] | None = None
    merge: bool = False
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST

    # Age of the data itself, when it differs from when it was cached
    freshness_of: Callable[[list[Any]], datetime | None] | None = None
    finalize: Callable[[list[Any]], list[Any]] | None = None

    @property
    def dedup_key(self) -> str:
        return f"{self.scope.value}:{self.key}"


@dataclass
class AcquisitionResult:
    """What an inbound caller gets back. Never an exception."""

    data: list[Any] = field(default_factory=list)
    origin: Origin = "empty"
    is_stale: bool = False
    timed_out: bool = False
    source: str | None = None
    request_id: str | None = None
    deadline: float | None = None

    @property
    def first(self) -> Any | None:
        return self.data[0] if self.data else None

    @property
    def is_empty(self) -> bool:
        return not self.data

    def raise_for_status(self) -> None:
        """Raise DeadlineExceeded if the request timed out with nothing to show."""
        if self.timed_out and not self.data:
            raise DeadlineExceeded(self.deadline or 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in self.data
            ],
            "origin": self.origin,
            "is_stale": self.is_stale,
            "timed_out": self.timed_out,
            "source": self.source,
            "request_id": self.request_id,
        }


@dataclass
class _Loaded:
    records: list[Any]
    source: str | None


class AcquisitionPipeline:
    """
    Answer acquisition requests from cache, sources, stale data or defaults.

    One instance is built per process; integrations share it.

    Usage:
        pipeline = AcquisitionPipeline(cache=TieredCache())

        result = await pipeline.acquire(AcquisitionSpec(
            scope=CacheScope.QUERY,
            key=make_key("iss_passes", lat, lon),
            chain=[open_notify_source, prediction_source],
            deadline=8.0,
        ))
        if result.timed_out:
            ...
    """

    def __init__(
        self,
        cache: TieredCache | None = None,
        fetcher: ResilientFetcher | None = None,
        resolver: SourceChainResolver | None = None,
        refresher: StalenessRefresher | None = None,
        guard: DeadlineGuard | None = None,
        deduplicator: RequestDeduplicator | None = None,
        store: RecordStore | None = None,
        debug: bool = False,
    ):
        self.cache = cache or TieredCache(debug=debug)
        self.fetcher = fetcher or ResilientFetcher()
        self.resolver = resolver or SourceChainResolver()
        self.refresher = refresher or StalenessRefresher(clock=self.cache.now)
        self.guard = guard or DeadlineGuard()
        self.deduplicator = deduplicator or RequestDeduplicator(debug=debug)
        self.store = store if store is not None else MemoryRecordStore()

    async def acquire(
        self, spec: AcquisitionSpec, request_id: str | None = None
    ) -> AcquisitionResult:
        """
        Produce data for spec.

        Args:
            spec: What to acquire and how
            request_id: Correlates log lines and background refreshes

        Returns:
            AcquisitionResult whose origin tells fresh, cached, stale, default
            and empty apart. Only task cancellation escapes.
        """
        request_id = request_id or uuid.uuid4().hex[:8]
        try:
            return await self._acquire(spec, request_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{request_id}] Acquisition of {spec.dedup_key} failed: {e}")
            return await self._degrade(spec, request_id, stale=None)

    async def _acquire(self, spec: AcquisitionSpec, request_id: str) -> AcquisitionResult:
        entry = await self.cache.get(spec.scope, spec.key)
        if entry is not None:
            self._maybe_refresh(spec, entry, request_id)
            return AcquisitionResult(
                data=entry.value,
                origin="cache",
                request_id=request_id,
            )

        stale = await self.cache.get_fallback(spec.scope, spec.key, spec.fallback_ttl)

        # Past TTL but inside the usable window: serve it and revalidate
        if stale is not None and spec.staleness_threshold is not None:
            self._schedule_refresh(spec, stale, request_id)
            return AcquisitionResult(
                data=stale.value,
                origin="cache",
                is_stale=True,
                request_id=request_id,
            )

        previous = stale.value if stale is not None else None

        async def work() -> _Loaded:
            return await self.deduplicator.dedupe(
                spec.dedup_key, lambda: self._load(spec, previous)
            )

        async def fallback() -> CacheEntry[Any] | None:
            return stale

        try:
            outcome = await self.guard.with_deadline(spec.deadline, work, fallback)
        except AllSourcesExhausted as e:
            logger.warning(f"[{request_id}] {spec.dedup_key}: {e}")
            return await self._degrade(spec, request_id, stale)

        if outcome.from_fallback:
            logger.warning(
                f"[{request_id}] {spec.dedup_key} timed out, serving stale data"
            )
            return AcquisitionResult(
                data=outcome.value.value,
                origin="stale",
                is_stale=True,
                timed_out=True,
                request_id=request_id,
                deadline=spec.deadline,
            )

        if outcome.is_timed_out:
            logger.warning(
                f"[{request_id}] {spec.dedup_key} timed out with no cached data"
            )
            return await self._degrade(spec, request_id, stale=None, timed_out=True)

        loaded: _Loaded = outcome.value
        return AcquisitionResult(
            data=loaded.records,
            origin="source",
            source=loaded.source,
            request_id=request_id,
        )

    async def _load(self, spec: AcquisitionSpec, previous: list[Any] | None) -> _Loaded:
        """Resolve the chain, merge and persist, then write the cache."""
        resolution = await self.resolver.resolve_detailed(spec.chain)
        resolution.raise_for_exhaustion()

        records = await self._merge_and_persist(spec, resolution.records, previous)
        if spec.finalize is not None:
            records = spec.finalize(records)

        await self.cache.put(
            spec.scope,
            spec.key,
            records,
            ttl=spec.ttl,
            fallback_ttl=spec.fallback_ttl,
        )
        return _Loaded(records=records, source=resolution.source)

    async def _merge_and_persist(
        self,
        spec: AcquisitionSpec,
        records: list[Any],
        previous: list[Any] | None,
    ) -> list[Any]:
        if spec.collection is not None:
            for record in records:
                item = (
                    record.model_dump(mode="json")
                    if isinstance(record, BaseModel)
                    else record
                )
                await self.store.insert(
                    spec.collection, item, policy=spec.duplicate_policy
                )

            if spec.merge and spec.record_type is not None:
                stored = await self.store.get(spec.collection)
                return [spec.record_type.model_validate(item) for item in stored]

        if spec.merge and previous:
            return merge_records(previous, records, spec.duplicate_policy)
        return records

    async def _degrade(
        self,
        spec: AcquisitionSpec,
        request_id: str,
        stale: CacheEntry[Any] | None,
        timed_out: bool = False,
    ) -> AcquisitionResult:
        """Sources failed or ran out of time: stale cache, stored records, default, empty."""
        marks = {
            "request_id": request_id,
            "timed_out": timed_out,
            "deadline": spec.deadline if timed_out else None,
        }

        if stale is None:
            stale = await self.cache.get_fallback(
                spec.scope, spec.key, spec.fallback_ttl
            )
        if stale is not None:
            logger.warning(f"[{request_id}] Serving stale data for {spec.dedup_key}")
            return AcquisitionResult(
                data=stale.value, origin="stale", is_stale=True, **marks
            )

        if spec.collection is not None:
            stored = await self.store.get(spec.collection)
            if stored:
                logger.warning(
                    f"[{request_id}] Serving {len(stored)} stored records "
                    f"for {spec.dedup_key}"
                )
                if spec.record_type is not None:
                    stored = [spec.record_type.model_validate(i) for i in stored]
                if spec.finalize is not None:
                    stored = spec.finalize(stored)
                return AcquisitionResult(
                    data=stored, origin="stale", is_stale=True, **marks
                )

        default = spec.default() if callable(spec.default) else spec.default
        if default:
            logger.warning(
                f"[{request_id}] Serving {len(default)} default records "
                f"for {spec.dedup_key}"
            )
            return AcquisitionResult(data=list(default), origin="default", **marks)

        logger.error(f"[{request_id}] No data available for {spec.dedup_key}")
        return AcquisitionResult(origin="empty", **marks)

    def _maybe_refresh(
        self, spec: AcquisitionSpec, entry: CacheEntry[Any], request_id: str
    ) -> None:
        if spec.staleness_threshold is None:
            return

        cached_at = entry.stored_at
        if spec.freshness_of is not None:
            cached_at = spec.freshness_of(entry.value) or cached_at

        self.refresher.maybe_refresh(
            cached_value=entry.value,
            cached_at=cached_at,
            staleness_threshold=spec.staleness_threshold,
            refresh_fn=self._refresh_fn(spec, entry.value),
            key=spec.dedup_key,
            triggered_by=request_id,
        )

    def _schedule_refresh(
        self, spec: AcquisitionSpec, entry: CacheEntry[Any], request_id: str
    ) -> None:
        self.refresher.maybe_refresh(
            cached_value=entry.value,
            cached_at=entry.stored_at,
            staleness_threshold=timedelta(0),
            refresh_fn=self._refresh_fn(spec, entry.value),
            key=spec.dedup_key,
            triggered_by=request_id,
        )

    def _refresh_fn(self, spec: AcquisitionSpec, previous: list[Any]):
        async def refresh() -> _Loaded:
            return await self.deduplicator.dedupe(
                spec.dedup_key, lambda: self._load(spec, previous)
            )

        return refresh

    async def close(self) -> None:
        """Stop background work and close the HTTP client."""
        await self.refresher.close()
        await self.deduplicator.cancel_all()
        await self.fetcher.close()
        logger.debug("AcquisitionPipeline closed")

    async def __aenter__(self) -> "AcquisitionPipeline":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        """Get status of every component."""
        return {
            "cache": self.cache.get_stats(),
            "deduplicator": self.deduplicator.get_stats(),
            "refresher": self.refresher.get_stats(),
            "deadline_timeouts": self.guard.timeouts,
            "detached_work": self.guard.detached_count(),
        }


def build_pipeline(
    settings: Settings = global_settings,
    store: RecordStore | None = None,
) -> AcquisitionPipeline:
    """Build a pipeline whose cache scopes and fetcher follow settings."""
    scopes = {
        scope: ScopeConfig(
            ttl=config.ttl,
            fallback_ttl=config.fallback_ttl,
            max_entries=settings.cache_max_entries,
        )
        for scope, config in DEFAULT_SCOPES.items()
    }
    return AcquisitionPipeline(
        cache=TieredCache(scopes=scopes),
        fetcher=ResilientFetcher(user_agent=settings.user_agent),
        store=store,
    )


# Global pipeline instance
_global_pipeline: AcquisitionPipeline | None = None


def get_pipeline() -> AcquisitionPipeline:
    """Get the global pipeline instance."""
    global _global_pipeline
    if _global_pipeline is None:
        _global_pipeline = build_pipeline()
    return _global_pipeline


def set_pipeline(pipeline: AcquisitionPipeline) -> None:
    """Install a pre-built pipeline (e.g. one backed by SqlRecordStore)."""
    global _global_pipeline
    _global_pipeline = pipeline


async def close_pipeline() -> None:
    """Close the global pipeline."""
    global _global_pipeline
    if _global_pipeline:
        await _global_pipeline.close()
        _global_pipeline = None
