"""Subscription record accessor with a per-tenant snapshot cache.

Responsibilities:
- Fetch tenant subscription snapshots from the datastore
- Cache them for a freshness window and refresh them in the background
- Share one in-flight fetch between simultaneous callers of a tenant
- Discard responses that are older than the cached snapshot or than the last clear
- Fail soft: callers receive None (unknown) instead of an exception
"""

import itertools
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

from subscription_timer.logging_config import get_logger
from subscription_timer.models.subscription import SubscriptionSnapshot
from subscription_timer.repositories.tenant_store import (
    DatastoreError,
    SubscriptionNotFoundError,
)
from subscription_timer.services.time_controller import ScheduledTask
from subscription_timer.utils.timestamps import MILLIS_PER_SECOND

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    snapshot: SubscriptionSnapshot
    fetched_at_millis: int
    sequence: int


class SnapshotCache:
    """Per-tenant snapshot cache owned by one accessor.

    Entries are replaced whole. ``put`` refuses an entry whose sequence is
    older than the one already cached.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, tenant_id: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(tenant_id)

    def put(self, tenant_id: str, entry: CacheEntry) -> bool:
        """Store ``entry`` unless a newer one is cached. Returns True if stored."""
        with self._lock:
            current = self._entries.get(tenant_id)
            if current is not None and current.sequence > entry.sequence:
                return False
            self._entries[tenant_id] = entry
            return True

    def invalidate(self, tenant_id: str) -> None:
        with self._lock:
            self._entries.pop(tenant_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._entries


class SubscriptionAccessor:
    """Fetches and caches tenant subscription snapshots.

    The cache is created on first use and cleared on tenant switch/logout
    with ``clear()``.

    Args:
        datastore: Tenant datastore (``get(tenant_id) -> TenantSubscriptionRecord``)
        time_controller: Clock used for freshness and background refresh
        cache_ttl_seconds: How long a fetched snapshot is served without refetching
        refresh_interval_seconds: Background refresh cadence
        max_workers: Worker threads for fetches when no executor is given
        executor: Optional executor running the fetches
    """

    def __init__(
        self,
        datastore,
        time_controller,
        cache_ttl_seconds: float = 300.0,
        refresh_interval_seconds: float = 300.0,
        max_workers: int = 4,
        executor: Optional[Executor] = None,
    ):
        self.datastore = datastore
        self.time_controller = time_controller
        self.cache_ttl_millis = int(cache_ttl_seconds * MILLIS_PER_SECOND)
        self.refresh_interval_seconds = refresh_interval_seconds
        self._max_workers = max_workers
        self._executor = executor
        self._owns_executor = executor is None
        self._cache: Optional[SnapshotCache] = None
        self._in_flight: Dict[str, "tuple[int, Future]"] = {}
        self._refresh_tasks: Dict[str, ScheduledTask] = {}
        self._sequence = itertools.count(1)
        # Fetches issued before the last clear() never reach the cache
        self._min_sequence = 0
        self._lock = threading.RLock()
        self.fetch_count = 0

    @property
    def cache(self) -> SnapshotCache:
        with self._lock:
            if self._cache is None:
                self._cache = SnapshotCache()
            return self._cache

    def _get_executor(self) -> Executor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="subscription-fetch",
                )
            return self._executor

    def is_fresh(self, tenant_id: str) -> bool:
        entry = self.cache.get(tenant_id)
        if entry is None:
            return False
        age = self.time_controller.get_current_time_millis() - entry.fetched_at_millis
        return age < self.cache_ttl_millis

    def peek(self, tenant_id: str) -> Optional[SubscriptionSnapshot]:
        """Cached snapshot of a tenant, fresh or not, without I/O."""
        entry = self.cache.get(tenant_id)
        return entry.snapshot if entry else None

    def get_subscription(
        self,
        tenant_id: str,
        force_refresh: bool = False,
    ) -> Optional[SubscriptionSnapshot]:
        """Get a tenant's subscription snapshot.

        Serves the cache while fresh, otherwise waits for a (shared) fetch.

        Args:
            tenant_id: Tenant identifier
            force_refresh: Bypass the cache and supersede any in-flight fetch

        Returns:
            SubscriptionSnapshot, or None when it could not be loaded. None
            means unknown, not "no subscription".
        """
        if not force_refresh and self.is_fresh(tenant_id):
            return self.peek(tenant_id)
        return self.fetch_async(tenant_id, force_refresh=force_refresh).result()

    def fetch_async(self, tenant_id: str, force_refresh: bool = False) -> Future:
        """Start (or join) a fetch for ``tenant_id``.

        Simultaneous callers share the in-flight fetch. ``force_refresh``
        issues a new fetch whose result supersedes the in-flight one.

        Returns:
            Future resolving to the snapshot or None; it never raises.
        """
        with self._lock:
            in_flight = self._in_flight.get(tenant_id)
            if in_flight is not None and not force_refresh and not in_flight[1].done():
                logger.debug("subscription_fetch_joined", tenant_id=tenant_id, sequence=in_flight[0])
                return in_flight[1]

            sequence = next(self._sequence)
            future = self._get_executor().submit(self._load, tenant_id, sequence)
            self._in_flight[tenant_id] = (sequence, future)
            self.fetch_count += 1

        future.add_done_callback(lambda _f: self._forget(tenant_id, sequence))
        return future

    def _forget(self, tenant_id: str, sequence: int) -> None:
        with self._lock:
            in_flight = self._in_flight.get(tenant_id)
            if in_flight is not None and in_flight[0] == sequence:
                del self._in_flight[tenant_id]

    def _load(self, tenant_id: str, sequence: int) -> Optional[SubscriptionSnapshot]:
        try:
            record = self.datastore.get(tenant_id)
        except SubscriptionNotFoundError:
            logger.warning("subscription_not_found", tenant_id=tenant_id, sequence=sequence)
            return None
        except DatastoreError as e:
            logger.error(
                "subscription_fetch_failed",
                tenant_id=tenant_id,
                sequence=sequence,
                error=str(e),
            )
            return None
        except Exception as e:
            logger.error(
                "subscription_fetch_failed",
                tenant_id=tenant_id,
                sequence=sequence,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

        snapshot = record.to_snapshot()
        entry = CacheEntry(
            snapshot=snapshot,
            fetched_at_millis=self.time_controller.get_current_time_millis(),
            sequence=sequence,
        )
        with self._lock:
            if sequence < self._min_sequence:
                logger.info("cleared_subscription_fetch_discarded", tenant_id=tenant_id, sequence=sequence)
                return None
            stored = self.cache.put(tenant_id, entry)
        if not stored:
            logger.info("stale_subscription_fetch_discarded", tenant_id=tenant_id, sequence=sequence)
            return self.peek(tenant_id)

        logger.debug("subscription_fetched", tenant_id=tenant_id, sequence=sequence)
        return snapshot

    def store_snapshot(self, snapshot: SubscriptionSnapshot) -> None:
        """Write a snapshot through to the cache (after a mutation).

        It supersedes every fetch issued before it.
        """
        with self._lock:
            self.cache.put(
                snapshot.tenant_id,
                CacheEntry(
                    snapshot=snapshot,
                    fetched_at_millis=self.time_controller.get_current_time_millis(),
                    sequence=next(self._sequence),
                ),
            )

    def invalidate(self, tenant_id: str) -> None:
        self.cache.invalidate(tenant_id)

    def start_background_refresh(self, tenant_id: str) -> ScheduledTask:
        """Refetch a tenant every refresh interval, whether or not anything is watching.

        Starting twice for the same tenant returns the existing task.
        """
        with self._lock:
            task = self._refresh_tasks.get(tenant_id)
            if task is not None and not task.cancelled:
                return task
            task = self.time_controller.call_every(
                self.refresh_interval_seconds,
                lambda: self.fetch_async(tenant_id, force_refresh=True),
                name=f"subscription-refresh-{tenant_id}",
            )
            self._refresh_tasks[tenant_id] = task
            return task

    def stop_background_refresh(self, tenant_id: str) -> None:
        with self._lock:
            task = self._refresh_tasks.pop(tenant_id, None)
        if task is not None:
            task.cancel()

    def clear(self) -> None:
        """Drop every cached snapshot and background refresh (tenant switch/logout)."""
        with self._lock:
            tasks = list(self._refresh_tasks.values())
            self._refresh_tasks.clear()
            self._in_flight.clear()
            self._min_sequence = next(self._sequence)
            if self._cache is not None:
                self._cache.clear()
        for task in tasks:
            task.cancel()
        logger.info("subscription_cache_cleared")

    def shutdown(self) -> None:
        """Clear state and stop the worker pool this accessor created."""
        self.clear()
        with self._lock:
            executor = self._executor if self._owns_executor else None
            self._executor = None if self._owns_executor else self._executor
        if executor is not None:
            executor.shutdown(wait=False)
