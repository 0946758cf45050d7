"""
Pipeline History Cache
======================

Answers "what did stage S of pipeline P do in the run before counter C"
without hitting the CI server on every event.

Freshness rule:
- A pipeline seen for the first time is fetched.
- A query whose counter is at or above the newest cached run means the
  pipeline has moved on since the fetch, so the history is fetched again
  before answering.
- A query reaching below the oldest cached run, when the cached history
  does not go back to the first run, is fetched again as well. "No
  earlier run" is only answered from a history that actually holds it.
- Anything else is answered from the cached history.

A refetch returns the newest runs. When they overlap the cached ones, the
two are joined so older runs stay available.

Concurrency:
- Fetch-and-store is serialised per pipeline name with one asyncio.Lock
  per pipeline. Different pipelines never wait on each other. A lock is
  dropped once nobody holds or waits on it.
- A caller that queued behind a fetch made for a counter at least as high
  as its own reuses that result instead of fetching again, as long as the
  result covers its counter.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from gong_notifier.core.errors import HistorySourceError, HistoryUnavailable
from gong_notifier.core.notifier.go_client import HistorySource
from gong_notifier.core.notifier.history import PipelineHistory, PipelineRun, StageResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class CacheEntry:
    """Cached history of one pipeline."""
    history: PipelineHistory
    fetched_for: int
    fetched_at: float

    def is_stale_for(self, counter: int) -> bool:
        """True when a previous-result query for counter cannot be answered from this entry."""
        latest = self.history.latest_counter
        return latest is None or counter >= latest or not self.history.covers_previous(counter)

    def misses_run(self, counter: int) -> bool:
        """True when run counter cannot be looked up in this entry."""
        latest = self.history.latest_counter
        return latest is None or counter > latest or not self.history.covers_run(counter)

    def covers(self, counter: int, stale_at_latest: bool) -> bool:
        if stale_at_latest:
            return self.history.covers_previous(counter)
        return self.history.covers_run(counter)

    def age(self) -> float:
        return time.monotonic() - self.fetched_at


class PipelineHistoryCache:
    """Per-pipeline run history, fetched lazily from a HistorySource."""

    def __init__(self, source: HistorySource, fetch_timeout: float = 10.0):
        self.source = source
        self.fetch_timeout = fetch_timeout
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def previous_result_for(
        self, pipeline_name: str, stage_name: str, before_counter: int
    ) -> Optional[StageResult]:
        """
        Result of a stage in the run immediately preceding before_counter.

        Returns None when there is no earlier run or the stage did not run in it.

        Raises:
            HistoryUnavailable: The history could not be refreshed
        """
        history = await self._history_for(pipeline_name, before_counter, stale_at_latest=True)
        return history.previous_stage_result(stage_name, before_counter)

    async def run_for(self, pipeline_name: str, counter: int) -> Optional[PipelineRun]:
        """
        The run with the given counter, refreshing if it is not in the cache.

        Raises:
            HistoryUnavailable: The history could not be refreshed
        """
        history = await self._history_for(pipeline_name, counter, stale_at_latest=False)
        return history.run(counter)

    def cached_pipelines(self) -> list[str]:
        return sorted(self._entries)

    async def aclose(self) -> None:
        await self.source.aclose()

    async def _history_for(
        self, pipeline_name: str, counter: int, stale_at_latest: bool
    ) -> PipelineHistory:
        seen = self._entries.get(pipeline_name)
        lock = self._locks.setdefault(pipeline_name, asyncio.Lock())
        self._lock_users[pipeline_name] = self._lock_users.get(pipeline_name, 0) + 1

        try:
            async with lock:
                entry = self._entries.get(pipeline_name)
                if (
                    entry is not None
                    and entry is not seen
                    and entry.fetched_for >= counter
                    and entry.covers(counter, stale_at_latest)
                ):
                    # Refreshed while we waited on the lock
                    return entry.history
                if entry is not None and not self._needs_fetch(entry, counter, stale_at_latest):
                    logger.debug(
                        "history_cache_hit",
                        pipeline=pipeline_name,
                        counter=counter,
                        age=round(entry.age(), 3),
                    )
                    return entry.history

                fetched = await self._fetch(pipeline_name, counter)
                if entry is not None:
                    fetched = CacheEntry(
                        history=fetched.history.extended_with(entry.history),
                        fetched_for=fetched.fetched_for,
                        fetched_at=fetched.fetched_at,
                    )
                self._entries[pipeline_name] = fetched
                return fetched.history
        finally:
            self._lock_users[pipeline_name] -= 1
            if not self._lock_users[pipeline_name]:
                del self._lock_users[pipeline_name]
                del self._locks[pipeline_name]

    @staticmethod
    def _needs_fetch(entry: CacheEntry, counter: int, stale_at_latest: bool) -> bool:
        if stale_at_latest:
            return entry.is_stale_for(counter)
        return entry.misses_run(counter)

    async def _fetch(self, pipeline_name: str, counter: int) -> CacheEntry:
        logger.debug("history_cache_fetch", pipeline=pipeline_name, counter=counter)
        try:
            history = await asyncio.wait_for(
                self.source.fetch_history(pipeline_name, before_counter=counter),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("history_cache_fetch_timeout", pipeline=pipeline_name, timeout=self.fetch_timeout)
            raise HistoryUnavailable(pipeline_name, f"timed out after {self.fetch_timeout}s") from e
        except HistorySourceError as e:
            logger.warning("history_cache_fetch_failed", pipeline=pipeline_name, error=str(e))
            raise HistoryUnavailable(pipeline_name, str(e)) from e

        return CacheEntry(history=history, fetched_for=counter, fetched_at=time.monotonic())
