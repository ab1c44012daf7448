"""Utility functions and helpers for the subscription timer."""

from subscription_timer.utils.time_remaining import (
    calculate_time_remaining,
    format_countdown,
    format_time_remaining,
    get_subscription_status,
    status_display,
)
from subscription_timer.utils.timestamps import (
    diff_millis,
    from_millis,
    isoformat,
    parse_timestamp,
    to_millis,
    utcnow,
)

__all__ = [
    # Countdown and status
    "calculate_time_remaining",
    "get_subscription_status",
    "format_time_remaining",
    "format_countdown",
    "status_display",
    # Timestamps
    "parse_timestamp",
    "to_millis",
    "from_millis",
    "diff_millis",
    "isoformat",
    "utcnow",
]
