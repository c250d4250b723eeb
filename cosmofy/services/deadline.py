"""
DeadlineGuard - hard time budget for one inbound unit of work.

The work is raced against a timer. Whichever finishes first settles the
response; the loser is discarded. A losing work task is not cancelled: it keeps
running detached so a late result can still land in the cache for the next
request. When the timer wins, a cached fallback is preferred over a timeout.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class _TimedOut:
    """Sentinel for a request whose budget ran out with no fallback."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "TIMED_OUT"

    def __bool__(self) -> bool:
        return False


TIMED_OUT = _TimedOut()


class ResponseSlot(Generic[T]):
    """
    Holds at most one response; the first settle wins.

    Usage:
        slot = ResponseSlot()
        slot.settle(result, winner="work")     # True
        slot.settle(TIMED_OUT, winner="timer")  # False, discarded
    """

    def __init__(self):
        self._settled = False
        self._value: Any = None
        self.winner: str | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    def settle(self, value: T, winner: str) -> bool:
        if self._settled:
            logger.debug(f"Discarding late response from {winner}")
            return False
        self._settled = True
        self._value = value
        self.winner = winner
        return True

    @property
    def value(self) -> T:
        if not self._settled:
            raise RuntimeError("Response slot has not been settled")
        return self._value


@dataclass
class DeadlineOutcome(Generic[T]):
    """What the guard produced for one request."""

    value: Any
    timed_out: bool = False
    from_fallback: bool = False

    @property
    def is_timed_out(self) -> bool:
        return self.value is TIMED_OUT


class DeadlineGuard:
    """
    Race work against a budget, producing exactly one response.

    Usage:
        guard = DeadlineGuard()

        outcome = await guard.with_deadline(
            budget=8.0,
            work=lambda: pipeline.load(spec),
            fallback=lambda: cache_value_or_none(),
        )
        if outcome.is_timed_out:
            ...
    """

    def __init__(self):
        self._detached: set[asyncio.Task[Any]] = set()
        self.timeouts = 0
        self.late_results = 0

    async def with_deadline(
        self,
        budget: float | None,
        work: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[Any]] | None = None,
    ) -> DeadlineOutcome[T]:
        """
        Run work within budget seconds.

        Args:
            budget: Seconds allowed; None disables the deadline
            work: Coroutine factory producing the response
            fallback: Coroutine factory returning cached data or None

        Returns:
            DeadlineOutcome with the work result, the fallback value, or
            TIMED_OUT. Exceptions from work propagate when it finishes in time.
        """
        if budget is None:
            return DeadlineOutcome(await work())

        loop = asyncio.get_running_loop()
        slot: ResponseSlot[Any] = ResponseSlot()
        decided = loop.create_future()

        def settle(value: Any, winner: str) -> None:
            if slot.settle(value, winner=winner):
                if not decided.done():
                    decided.set_result(winner)
            elif winner == "work":
                self.late_results += 1

        task = asyncio.ensure_future(work())
        task.add_done_callback(lambda t: settle(t, "work"))
        timer = loop.call_later(budget, settle, TIMED_OUT, "timer")

        try:
            await decided
        except asyncio.CancelledError:
            timer.cancel()
            if not task.done():
                self._detach(task)
            raise

        if slot.winner == "work":
            timer.cancel()
            return DeadlineOutcome(task.result())

        # Timer won; let the work finish on its own and discard its result
        self.timeouts += 1
        self._detach(task)
        logger.warning(f"Deadline of {budget}s exceeded, work continues detached")

        if fallback is not None:
            cached = await fallback()
            if cached is not None:
                return DeadlineOutcome(cached, timed_out=True, from_fallback=True)

        return DeadlineOutcome(TIMED_OUT, timed_out=True)

    def _detach(self, task: asyncio.Future[Any]) -> None:
        self._detached.add(task)
        task.add_done_callback(self._on_detached_done)

    def _on_detached_done(self, task: asyncio.Future[Any]) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Detached work failed after its deadline: {error}")

    def detached_count(self) -> int:
        return len(self._detached)

    async def drain(self) -> None:
        """Wait for detached work to finish."""
        while self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
