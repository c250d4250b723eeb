"""
Service layer infrastructure - resilience patterns for upstream data sources.

Provides:
- ResilientFetcher: Bounded retries with linear backoff and rate-limit handling
- SourceChainResolver: First source with usable output wins
- TieredCache: Collection/query/entity scopes with TTL and fallback windows
- StalenessRefresher: Serve cached data, refresh it in the background
- DeadlineGuard: Hard time budget with stale fallback
- RequestDeduplicator: One in-flight resolution per key

The AcquisitionPipeline wiring them together lives in cosmofy.services.pipeline.
"""

from cosmofy.services.errors import (
    AcquisitionError,
    AllSourcesExhausted,
    DeadlineExceeded,
    ExhaustedRetries,
    NormalizationError,
    RateLimited,
    RequestTimeoutError,
    TransientUpstreamError,
)
from cosmofy.services.cache import CacheEntry, CacheScope, ScopeConfig, TieredCache, make_key
from cosmofy.services.deadline import TIMED_OUT, DeadlineGuard, DeadlineOutcome
from cosmofy.services.deduplicator import RequestDeduplicator
from cosmofy.services.fetcher import (
    FetchAttempt,
    FetchRequest,
    ResilientFetcher,
    RetryPolicy,
)
from cosmofy.services.refresh import RefreshTask, StalenessRefresher
from cosmofy.services.resolver import (
    SourceChainResolver,
    SourceDescriptor,
    process_in_batches,
)

__all__ = [
    # Errors
    "AcquisitionError",
    "AllSourcesExhausted",
    "DeadlineExceeded",
    "ExhaustedRetries",
    "NormalizationError",
    "RateLimited",
    "RequestTimeoutError",
    "TransientUpstreamError",
    # Cache
    "CacheEntry",
    "CacheScope",
    "ScopeConfig",
    "TieredCache",
    "make_key",
    # Deadline
    "TIMED_OUT",
    "DeadlineGuard",
    "DeadlineOutcome",
    # Deduplicator
    "RequestDeduplicator",
    # Fetcher
    "FetchAttempt",
    "FetchRequest",
    "ResilientFetcher",
    "RetryPolicy",
    # Refresh
    "RefreshTask",
    "StalenessRefresher",
    # Resolver
    "SourceChainResolver",
    "SourceDescriptor",
    "process_in_batches",
]
