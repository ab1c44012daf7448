"""Countdown driver for a subscription timer view.

State machine per watched tenant:

    IDLE -> LOADING -> LIVE -> EXPIRED
                    -> FROZEN (terminated)
                    -> UNAVAILABLE (snapshot could not be loaded)
    any  -> LOADING on manual or scheduled refresh, except LIVE

While LIVE, a tick recomputes time remaining and status from the cached
end date without touching the datastore. The tick is cancelled as soon as
it observes no time remaining. A refresh of a LIVE countdown stays LIVE
with ``refreshing`` set, so ticks keep running on the last snapshot until
the refetch lands.

The driver is a library component for views that hold a live countdown,
such as a dashboard badge. The HTTP API serves one-shot timer views and
does not run drivers.
"""

import threading
from concurrent.futures import Future
from typing import Callable, Optional

from subscription_timer.audit_logger import log_status_change
from subscription_timer.logging_config import get_logger
from subscription_timer.models.results import CountdownState, CountdownUpdate
from subscription_timer.models.subscription import (
    SubscriptionSnapshot,
    SubscriptionStatus,
    TimeRemaining,
)
from subscription_timer.services.subscription_accessor import SubscriptionAccessor
from subscription_timer.services.time_controller import ScheduledTask
from subscription_timer.utils.time_remaining import (
    DEFAULT_EXPIRING_SOON_DAYS,
    calculate_time_remaining,
    get_subscription_status,
)

logger = get_logger(__name__)

CountdownListener = Callable[[CountdownUpdate], None]


class CountdownHandle:
    """Cancellable handle returned by ``CountdownDriver.start``."""

    def __init__(self, driver: "CountdownDriver"):
        self._driver = driver

    @property
    def state(self) -> CountdownState:
        return self._driver.state

    @property
    def cancelled(self) -> bool:
        return self._driver.stopped

    def cancel(self) -> None:
        self._driver.stop()


class CountdownDriver:
    """Drives the countdown shown for one tenant.

    Args:
        tenant_id: Tenant whose subscription is watched
        accessor: Snapshot accessor
        time_controller: Clock and scheduler for ticks and refreshes
        listener: Called with every CountdownUpdate
        tick_interval_seconds: Client-side tick cadence
        refresh_interval_seconds: Server refresh cadence
        expiring_soon_days: Threshold for the expiring_soon status
    """

    def __init__(
        self,
        tenant_id: str,
        accessor: SubscriptionAccessor,
        time_controller,
        listener: Optional[CountdownListener] = None,
        tick_interval_seconds: float = 1.0,
        refresh_interval_seconds: float = 300.0,
        expiring_soon_days: float = DEFAULT_EXPIRING_SOON_DAYS,
    ):
        self.tenant_id = tenant_id
        self.accessor = accessor
        self.time_controller = time_controller
        self.listener = listener
        self.tick_interval_seconds = tick_interval_seconds
        self.refresh_interval_seconds = refresh_interval_seconds
        self.expiring_soon_days = expiring_soon_days

        self._lock = threading.RLock()
        self._state = CountdownState.IDLE
        self._snapshot: Optional[SubscriptionSnapshot] = None
        self._last_update: Optional[CountdownUpdate] = None
        self._tick_task: Optional[ScheduledTask] = None
        self._refresh_task: Optional[ScheduledTask] = None
        self._generation = 0
        self._stopped = False
        self._refreshing = False
        self.tick_count = 0

    @property
    def state(self) -> CountdownState:
        with self._lock:
            return self._state

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    @property
    def snapshot(self) -> Optional[SubscriptionSnapshot]:
        with self._lock:
            return self._snapshot

    @property
    def refreshing(self) -> bool:
        with self._lock:
            return self._refreshing

    @property
    def ticking(self) -> bool:
        with self._lock:
            return self._tick_task is not None and not self._tick_task.cancelled

    def current(self) -> Optional[CountdownUpdate]:
        """Latest update emitted to the view."""
        with self._lock:
            return self._last_update

    def start(self) -> CountdownHandle:
        """Load the subscription and start the countdown.

        Returns:
            Handle whose ``cancel()`` stops the driver

        Raises:
            RuntimeError: If the driver was already started or stopped
        """
        with self._lock:
            if self._stopped:
                raise RuntimeError("Countdown driver was stopped and cannot be restarted")
            if self._state is not CountdownState.IDLE:
                raise RuntimeError(f"Countdown driver already started (state={self._state.value})")
            self._refresh_task = self.time_controller.call_every(
                self.refresh_interval_seconds,
                self.refresh,
                name=f"countdown-refresh-{self.tenant_id}",
            )

        logger.info("countdown_started", tenant_id=self.tenant_id)
        self._load(force_refresh=False)
        return CountdownHandle(self)

    def refresh(self) -> None:
        """Refetch from the datastore; server values supersede the local countdown."""
        if self.stopped:
            return
        self._load(force_refresh=True)

    def _load(self, force_refresh: bool) -> None:
        with self._lock:
            if self._stopped:
                return
            self._generation += 1
            generation = self._generation
            self._refreshing = True
            if self._state is not CountdownState.LIVE:
                self._state = CountdownState.LOADING
            update = self._build_update(self._snapshot)
        self._emit(update)

        if not force_refresh and self.accessor.is_fresh(self.tenant_id):
            self._apply(generation, self.accessor.peek(self.tenant_id))
            return

        future = self.accessor.fetch_async(self.tenant_id, force_refresh=force_refresh)
        future.add_done_callback(lambda f: self._on_fetched(generation, f))

    def _on_fetched(self, generation: int, future: Future) -> None:
        try:
            snapshot = future.result()
        except Exception as e:
            logger.error("countdown_fetch_failed", tenant_id=self.tenant_id, error=str(e), exc_info=True)
            snapshot = None
        self._apply(generation, snapshot)

    def _apply(self, generation: int, snapshot: Optional[SubscriptionSnapshot]) -> None:
        with self._lock:
            if self._stopped or generation != self._generation:
                logger.debug(
                    "countdown_fetch_ignored",
                    tenant_id=self.tenant_id,
                    generation=generation,
                    current_generation=self._generation,
                    stopped=self._stopped,
                )
                return

            previous_status = self._last_update.status if self._last_update else None
            self._snapshot = snapshot
            self._refreshing = False
            needs_tick = False

            if snapshot is None:
                self._state = CountdownState.UNAVAILABLE
            elif snapshot.is_terminated:
                self._state = CountdownState.FROZEN
            elif snapshot.end_date is None:
                self._state = CountdownState.LIVE
            else:
                remaining = calculate_time_remaining(snapshot.end_date, self.time_controller.now())
                if remaining.elapsed:
                    self._state = CountdownState.EXPIRED
                else:
                    self._state = CountdownState.LIVE
                    needs_tick = True

            if not needs_tick:
                self._cancel_tick()
            elif self._tick_task is None or self._tick_task.cancelled:
                # A running tick keeps its cadence across refreshes
                self._tick_task = self.time_controller.call_every(
                    self.tick_interval_seconds,
                    self._on_tick,
                    name=f"countdown-tick-{self.tenant_id}",
                )
            update = self._build_update(snapshot)

        if snapshot is None:
            logger.warning("countdown_unavailable", tenant_id=self.tenant_id)
        if update.status is not None and update.status != previous_status:
            log_status_change(self.tenant_id, previous_status, update.status, reason="refresh")
        self._emit(update)

    def _on_tick(self) -> None:
        with self._lock:
            if self._stopped or self._state is not CountdownState.LIVE or self._snapshot is None:
                return
            self.tick_count += 1
            previous_status = self._last_update.status if self._last_update else None
            update = self._build_update(self._snapshot)
            if update.time_remaining.elapsed:
                self._state = CountdownState.EXPIRED
                self._cancel_tick()
                update = self._build_update(self._snapshot)

        if update.status != previous_status:
            log_status_change(self.tenant_id, previous_status, update.status, reason="tick")
        if update.state is CountdownState.EXPIRED:
            logger.info("countdown_expired", tenant_id=self.tenant_id, ticks=self.tick_count)
        self._emit(update)

    def _build_update(self, snapshot: Optional[SubscriptionSnapshot]) -> CountdownUpdate:
        now = self.time_controller.now()
        status: Optional[SubscriptionStatus] = None
        remaining = TimeRemaining.zero()

        if snapshot is not None:
            status = get_subscription_status(
                snapshot.end_date,
                snapshot.status_source,
                now=now,
                expiring_soon_days=self.expiring_soon_days,
            )
            if not snapshot.is_terminated:
                remaining = calculate_time_remaining(snapshot.end_date, now)
            if self._state is CountdownState.EXPIRED:
                status = SubscriptionStatus.EXPIRED

        return CountdownUpdate(
            tenant_id=self.tenant_id,
            state=self._state,
            status=status,
            time_remaining=remaining,
            snapshot=snapshot,
            refreshing=self._refreshing,
            emitted_at=now,
        )

    def _emit(self, update: CountdownUpdate) -> None:
        with self._lock:
            if self._stopped:
                return
            self._last_update = update
        if self.listener is None:
            return
        try:
            self.listener(update)
        except Exception as e:
            logger.error(
                "countdown_listener_failed",
                tenant_id=self.tenant_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def _cancel_tick(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    def stop(self) -> None:
        """Stop ticking and refreshing; pending fetches are ignored. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._generation += 1
            self._cancel_tick()
            if self._refresh_task is not None:
                self._refresh_task.cancel()
                self._refresh_task = None

        logger.info("countdown_stopped", tenant_id=self.tenant_id, ticks=self.tick_count)
