"""Clocks and periodic task scheduling for the countdown.

Responsibilities:
- Provide the current time to the calculator, classifier and mutators
- Run periodic callbacks (1 second ticks, 5 minute refreshes)
- Hand out cancellable task handles
- Fast-forward virtual time, firing every tick that falls due on the way
"""

import itertools
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

from subscription_timer.logging_config import get_logger
from subscription_timer.utils.timestamps import (
    MILLIS_PER_DAY,
    MILLIS_PER_HOUR,
    MILLIS_PER_MINUTE,
    MILLIS_PER_SECOND,
    from_millis,
)

logger = get_logger(__name__)

_task_ids = itertools.count(1)


class ScheduledTask:
    """Handle for a periodic callback.

    ``cancel()`` is idempotent; once cancelled the callback never runs again.
    """

    def __init__(self, name: str, interval_millis: int, callback: Callable[[], None]):
        if interval_millis <= 0:
            raise ValueError("Task interval must be positive")
        self.name = name
        self.interval_millis = interval_millis
        self.task_id = next(_task_ids)
        self.run_count = 0
        self._callback = callback
        self._cancelled = False
        self._lock = threading.RLock()

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        logger.debug("scheduled_task_cancelled", task=self.name, task_id=self.task_id)

    def run(self) -> None:
        """Invoke the callback once; errors are logged, never raised."""
        if self.cancelled:
            return
        self.run_count += 1
        try:
            self._callback()
        except Exception as e:
            logger.error(
                "scheduled_task_failed",
                task=self.name,
                task_id=self.task_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def __repr__(self) -> str:
        return (
            f"ScheduledTask(name={self.name!r}, interval_millis={self.interval_millis}, "
            f"runs={self.run_count}, cancelled={self.cancelled})"
        )


class _VirtualTask(ScheduledTask):
    def __init__(self, name: str, interval_millis: int, callback: Callable[[], None], first_run_millis: int):
        super().__init__(name, interval_millis, callback)
        self.next_run_millis = first_run_millis


class TimeController:
    """Virtual clock with deterministic task scheduling.

    Time only moves when ``advance_time`` or ``set_time`` is called. Every
    task due within the advanced window fires in due-time order, with the
    clock positioned at the task's due time while its callback runs.

    Args:
        start_time_millis: Initial virtual time, defaults to wall clock
    """

    mode = "virtual"

    def __init__(self, start_time_millis: Optional[int] = None) -> None:
        self._lock = threading.RLock()
        self._virtual_time_millis = (
            start_time_millis if start_time_millis is not None else int(time.time() * 1000)
        )
        self._time_offset_millis = 0
        self._tasks: List[_VirtualTask] = []

        logger.info(
            "time_controller_initialized",
            mode=self.mode,
            virtual_time_millis=self._virtual_time_millis,
        )

    def get_current_time_millis(self) -> int:
        with self._lock:
            return self._virtual_time_millis

    def now(self) -> datetime:
        """Current virtual time as an aware UTC datetime."""
        return from_millis(self.get_current_time_millis())

    def call_every(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        name: str = "task",
    ) -> ScheduledTask:
        """Schedule ``callback`` every ``interval_seconds`` of virtual time.

        The first run is one interval from now.
        """
        interval_millis = int(round(interval_seconds * MILLIS_PER_SECOND))
        with self._lock:
            task = _VirtualTask(
                name,
                interval_millis,
                callback,
                first_run_millis=self._virtual_time_millis + interval_millis,
            )
            self._tasks.append(task)
        return task

    def active_tasks(self) -> List[ScheduledTask]:
        with self._lock:
            self._tasks = [t for t in self._tasks if not t.cancelled]
            return list(self._tasks)

    def advance_time(
        self,
        days: int = 0,
        hours: int = 0,
        minutes: int = 0,
        seconds: int = 0,
    ) -> dict:
        """Advance virtual time, firing every task that falls due.

        Args:
            days: number of days to advance
            hours: number of hours to advance
            minutes: number of minutes to advance
            seconds: number of seconds to advance

        Returns:
            Dictionary with:
                - old_time_millis: time before advancement
                - new_time_millis: time after advancement
                - time_advanced_millis: amount of time advanced
                - tasks_fired: number of task callbacks run

        Raises:
            ValueError: if any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0 or seconds < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed")

        millis_to_advance = (
            days * MILLIS_PER_DAY
            + hours * MILLIS_PER_HOUR
            + minutes * MILLIS_PER_MINUTE
            + seconds * MILLIS_PER_SECOND
        )

        with self._lock:
            old_time = self._virtual_time_millis
        target = old_time + millis_to_advance

        fired = self._run_due_tasks(target)

        with self._lock:
            self._virtual_time_millis = target
            self._time_offset_millis += millis_to_advance

        logger.info(
            "time_advanced",
            old_time_millis=old_time,
            new_time_millis=target,
            days=days,
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            tasks_fired=fired,
        )

        return {
            "old_time_millis": old_time,
            "new_time_millis": target,
            "time_advanced_millis": millis_to_advance,
            "tasks_fired": fired,
        }

    def _next_due(self, target_millis: int) -> Optional[_VirtualTask]:
        due = [t for t in self._tasks if not t.cancelled and t.next_run_millis <= target_millis]
        if not due:
            return None
        return min(due, key=lambda t: (t.next_run_millis, t.task_id))

    def _run_due_tasks(self, target_millis: int) -> int:
        fired = 0
        while True:
            with self._lock:
                task = self._next_due(target_millis)
                if task is None:
                    break
                self._virtual_time_millis = task.next_run_millis
                task.next_run_millis += task.interval_millis
            # Callbacks run outside the lock; they may cancel or schedule tasks
            task.run()
            fired += 1

        with self._lock:
            self._tasks = [t for t in self._tasks if not t.cancelled]
        return fired

    def set_time(self, timestamp_millis: int) -> dict:
        """Jump virtual time forward to a specific timestamp.

        Raises:
            ValueError: If timestamp is before the current virtual time
        """
        with self._lock:
            old_time = self._virtual_time_millis
            if timestamp_millis < old_time:
                raise ValueError(
                    f"cannot set time backwards, current: {old_time}, requested: {timestamp_millis}"
                )

        fired = self._run_due_tasks(timestamp_millis)

        with self._lock:
            self._virtual_time_millis = timestamp_millis
            self._time_offset_millis += timestamp_millis - old_time

        logger.info("time_set", old_time_millis=old_time, new_time_millis=timestamp_millis, tasks_fired=fired)

        return {
            "old_time_millis": old_time,
            "new_time_millis": timestamp_millis,
            "tasks_fired": fired,
        }

    def reset_time(self) -> dict:
        """Reset virtual time back to the wall clock without firing tasks."""
        with self._lock:
            old_time = self._virtual_time_millis
            real_current_time = int(time.time() * 1000)
            self._virtual_time_millis = real_current_time
            self._time_offset_millis = 0
            for task in self._tasks:
                task.next_run_millis = real_current_time + task.interval_millis

        logger.info("time_reset", old_time_millis=old_time, new_time_millis=real_current_time)

        return {
            "old_time_millis": old_time,
            "new_time_millis": real_current_time,
        }

    def shutdown(self) -> None:
        with self._lock:
            for task in self._tasks:
                task.cancel()
            self._tasks = []


class _TimerTask(ScheduledTask):
    """Periodic task re-armed on a daemon ``threading.Timer`` after each run."""

    def __init__(self, name: str, interval_millis: int, callback: Callable[[], None]):
        super().__init__(name, interval_millis, callback)
        self._timer: Optional[threading.Timer] = None

    def arm(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = threading.Timer(self.interval_millis / MILLIS_PER_SECOND, self._fire)
            self._timer.daemon = True
            self._timer.name = f"{self.name}-{self.task_id}"
            self._timer.start()

    def _fire(self) -> None:
        self.run()
        self.arm()

    def cancel(self) -> None:
        with self._lock:
            already_cancelled = self._cancelled
            self._cancelled = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if not already_cancelled:
            logger.debug("scheduled_task_cancelled", task=self.name, task_id=self.task_id)


class SystemTimeController:
    """Wall clock with thread-timer scheduling."""

    mode = "system"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tasks: List[_TimerTask] = []

    def get_current_time_millis(self) -> int:
        return int(time.time() * 1000)

    def now(self) -> datetime:
        return from_millis(self.get_current_time_millis())

    def call_every(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        name: str = "task",
    ) -> ScheduledTask:
        task = _TimerTask(name, int(round(interval_seconds * MILLIS_PER_SECOND)), callback)
        with self._lock:
            self._tasks = [t for t in self._tasks if not t.cancelled]
            self._tasks.append(task)
        task.arm()
        return task

    def active_tasks(self) -> List[ScheduledTask]:
        with self._lock:
            self._tasks = [t for t in self._tasks if not t.cancelled]
            return list(self._tasks)

    def shutdown(self) -> None:
        """Cancel every outstanding timer."""
        with self._lock:
            tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()


def create_time_controller(mode: str = "system"):
    """Build the clock for the configured mode ("system" or "virtual")."""
    if mode == "virtual":
        return TimeController()
    if mode == "system":
        return SystemTimeController()
    raise ValueError(f"Unknown clock mode: {mode}")
