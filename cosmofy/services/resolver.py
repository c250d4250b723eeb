"""
SourceChainResolver - first source with usable output wins.

A chain is an ordered list of sources for the same logical data. Sources are
tried strictly in priority order; the first one whose parse yields at least one
record wins and the rest are never invoked. Results from different sources are
never mixed, so the same item is not described twice in two different ways.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from loguru import logger
from pydantic import ValidationError

from cosmofy.services.errors import AllSourcesExhausted, NormalizationError
from cosmofy.services.fetcher import FetchRequest, ResilientFetcher, RetryPolicy

T = TypeVar("T")
R = TypeVar("R")

ParseFn = Callable[[Any], "list[Any] | Awaitable[list[Any]]"]


@dataclass(frozen=True)
class SourceDescriptor:
    """One candidate source. Immutable configuration."""

    name: str
    fetch: Callable[[], Awaitable[Any]]
    parse: ParseFn
    priority: int = 50

    @classmethod
    def from_request(
        cls,
        name: str,
        fetcher: ResilientFetcher,
        request: FetchRequest,
        parse: ParseFn,
        priority: int = 50,
        policy: RetryPolicy | None = None,
    ) -> "SourceDescriptor":
        """Source whose fetch is a single Resilient Fetcher call."""

        async def fetch() -> Any:
            return await fetcher.fetch(request, policy=policy)

        return cls(name=name, fetch=fetch, parse=parse, priority=priority)

    @classmethod
    def computed(
        cls,
        name: str,
        compute: Callable[[], "list[Any] | Awaitable[list[Any]]"],
        priority: int = 0,
    ) -> "SourceDescriptor":
        """Source with no upstream call: synthesized or calculated records."""

        async def fetch() -> None:
            return None

        return cls(
            name=name, fetch=fetch, parse=lambda _raw: compute(), priority=priority
        )


@dataclass
class Resolution:
    """Outcome of resolving one chain."""

    records: list[Any] = field(default_factory=list)
    source: str | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def exhausted(self) -> bool:
        return self.source is None

    def raise_for_exhaustion(self) -> None:
        if self.exhausted:
            raise AllSourcesExhausted(self.errors)


def order_chain(chain: Iterable[SourceDescriptor]) -> list[SourceDescriptor]:
    """Higher priority first; ties keep their list order."""
    return sorted(chain, key=lambda s: s.priority, reverse=True)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SourceChainResolver:
    """
    Resolve a source chain to normalized records.

    Usage:
        resolver = SourceChainResolver()

        records = await resolver.resolve(
            [go_astronomy_source, noirlab_source],
            default=[],
        )
    """

    async def resolve(
        self,
        chain: Sequence[SourceDescriptor],
        default: list[Any] | Callable[[], list[Any]] | None = None,
    ) -> list[Any]:
        """
        Return the first source's records, or the default dataset.

        Never raises.
        """
        resolution = await self.resolve_detailed(chain)
        if not resolution.exhausted:
            return resolution.records

        fallback = default() if callable(default) else default
        if fallback:
            logger.warning(
                f"All {len(chain)} sources failed, using {len(fallback)} default records"
            )
            return list(fallback)
        logger.warning(f"All {len(chain)} sources failed, no default available")
        return []

    async def resolve_detailed(self, chain: Sequence[SourceDescriptor]) -> Resolution:
        """Try each source in priority order; record why each one failed."""
        resolution = Resolution()

        for source in order_chain(chain):
            try:
                raw = await source.fetch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Source '{source.name}' fetch failed: {e}")
                resolution.errors[source.name] = str(e)
                continue

            try:
                records = await _maybe_await(source.parse(raw))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Source '{source.name}' parse failed: {e}")
                resolution.errors[source.name] = f"parse: {e}"
                continue

            if not records:
                logger.info(f"Source '{source.name}' yielded no records, falling through")
                resolution.errors[source.name] = "no records"
                continue

            logger.info(f"Source '{source.name}' yielded {len(records)} records")
            resolution.records = list(records)
            resolution.source = source.name
            return resolution

        return resolution


async def process_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R | None]],
    batch_size: int = 10,
    pause: float = 0.3,
    max_items: int | None = None,
    label: str = "batch",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[R]:
    """
    Run worker over items in sequential batches.

    Items inside a batch run concurrently; batch N+1 starts only after batch N
    finishes, with a short pause in between. A failing item (exception or
    None) is dropped from the output without affecting the rest of its batch.
    """
    if max_items is not None:
        items = items[:max_items]

    results: list[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        logger.debug(
            f"Processing {label} {start // batch_size + 1}: {len(batch)} items"
        )

        outcomes = await asyncio.gather(
            *(worker(item) for item in batch), return_exceptions=True
        )
        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                if isinstance(outcome, (NormalizationError, ValidationError)):
                    logger.warning(f"Skipping {item!r}: {outcome}")
                else:
                    logger.error(f"Failed to process {item!r}: {outcome}")
                continue
            if outcome is not None:
                results.append(outcome)

        if start + batch_size < len(items):
            await sleep(pause)

    return results
