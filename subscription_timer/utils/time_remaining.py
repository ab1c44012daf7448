"""Countdown arithmetic and status classification.

Both functions are pure given ``now``; callers pass the time controller's
current time so that countdowns can be fast-forwarded in tests.
"""

from datetime import datetime
from typing import Dict, Optional, Union

from subscription_timer.models.subscription import (
    DerivedStatus,
    SubscriptionStatus,
    TerminatedStatus,
    TimeRemaining,
)
from subscription_timer.utils.timestamps import (
    MILLIS_PER_DAY,
    MILLIS_PER_HOUR,
    MILLIS_PER_MINUTE,
    MILLIS_PER_SECOND,
    TimestampLike,
    diff_millis,
    parse_timestamp,
    utcnow,
)

DEFAULT_EXPIRING_SOON_DAYS = 7

StatusOverride = Union[DerivedStatus, TerminatedStatus, SubscriptionStatus, str, None]


def calculate_time_remaining(
    end_date: TimestampLike,
    now: Optional[datetime] = None,
) -> TimeRemaining:
    """Calculate time remaining until the subscription end date.

    Days are constant 24 hour days. All values are truncated toward zero,
    so one second remaining shows as 0d 0h 0m 1s.

    Args:
        end_date: End date as datetime or ISO 8601 string, or None
        now: Current time (defaults to wall clock)

    Returns:
        TimeRemaining, all zero when end_date is None or not in the future

    Examples:
        >>> calculate_time_remaining(now + timedelta(days=1, seconds=5), now)
        TimeRemaining(days=1, hours=0, minutes=0, seconds=5, total_seconds=86405)
    """
    end = parse_timestamp(end_date)
    if end is None:
        return TimeRemaining.zero()

    diff = diff_millis(end, now or utcnow())
    if diff <= 0:
        return TimeRemaining.zero()

    return TimeRemaining(
        days=diff // MILLIS_PER_DAY,
        hours=(diff % MILLIS_PER_DAY) // MILLIS_PER_HOUR,
        minutes=(diff % MILLIS_PER_HOUR) // MILLIS_PER_MINUTE,
        seconds=(diff % MILLIS_PER_MINUTE) // MILLIS_PER_SECOND,
        total_seconds=diff // MILLIS_PER_SECOND,
    )


def _is_terminated(override: StatusOverride) -> bool:
    if isinstance(override, TerminatedStatus):
        return True
    if isinstance(override, SubscriptionStatus):
        return override is SubscriptionStatus.TERMINATED
    return override == SubscriptionStatus.TERMINATED.value


def get_subscription_status(
    end_date: TimestampLike,
    override: StatusOverride = None,
    now: Optional[datetime] = None,
    expiring_soon_days: float = DEFAULT_EXPIRING_SOON_DAYS,
) -> SubscriptionStatus:
    """Classify a subscription from its end date and status source.

    A terminated source wins over any date. Without an end date the
    subscription never expires. Otherwise the fractional days left decide:
    ``<= 0`` is expired, ``(0, expiring_soon_days]`` is expiring soon.

    Args:
        end_date: End date as datetime or ISO 8601 string, or None
        override: Status source of the snapshot, or a raw status value
        now: Current time (defaults to wall clock)
        expiring_soon_days: Inclusive upper bound for expiring_soon

    Returns:
        SubscriptionStatus
    """
    if _is_terminated(override):
        return SubscriptionStatus.TERMINATED

    end = parse_timestamp(end_date)
    if end is None:
        return SubscriptionStatus.ACTIVE

    days_left = diff_millis(end, now or utcnow()) / MILLIS_PER_DAY

    if days_left <= 0:
        return SubscriptionStatus.EXPIRED
    if days_left <= expiring_soon_days:
        return SubscriptionStatus.EXPIRING_SOON
    return SubscriptionStatus.ACTIVE


def format_time_remaining(time_remaining: TimeRemaining) -> str:
    """Compact countdown text for badges (e.g. "45d 3h", "2h 10m")."""
    if time_remaining.days > 0:
        return f"{time_remaining.days}d {time_remaining.hours}h"
    if time_remaining.hours > 0:
        return f"{time_remaining.hours}h {time_remaining.minutes}m"
    if time_remaining.minutes > 0:
        return f"{time_remaining.minutes}m"
    return "Less than 1m"


def format_countdown(time_remaining: TimeRemaining) -> str:
    """Full countdown text, e.g. "45d 3h 22m 5s"."""
    if time_remaining.total_seconds == 0:
        return "No time remaining"

    parts = []
    if time_remaining.days > 0:
        parts.append(f"{time_remaining.days}d")
    if time_remaining.hours > 0:
        parts.append(f"{time_remaining.hours}h")
    if time_remaining.minutes > 0:
        parts.append(f"{time_remaining.minutes}m")
    if time_remaining.seconds > 0 or not parts:
        parts.append(f"{time_remaining.seconds}s")
    return " ".join(parts)


_STATUS_DISPLAY: Dict[SubscriptionStatus, Dict[str, str]] = {
    SubscriptionStatus.ACTIVE: {"label": "Active", "color": "green"},
    SubscriptionStatus.EXPIRING_SOON: {"label": "Expiring Soon", "color": "yellow"},
    SubscriptionStatus.EXPIRED: {"label": "Expired", "color": "red"},
    SubscriptionStatus.TERMINATED: {"label": "Terminated", "color": "gray"},
}


def status_display(status: Union[SubscriptionStatus, str]) -> Dict[str, str]:
    """Label and colour key for a status; unknown values display as active."""
    try:
        key = SubscriptionStatus(status)
    except ValueError:
        key = SubscriptionStatus.ACTIVE
    return dict(_STATUS_DISPLAY[key])
