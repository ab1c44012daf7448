"""Audit logging for subscription lifecycle changes.

Logs before/after values of every status, end date and termination change
together with who made it, so the trail can be reconstructed from logs
even when the datastore history table is unavailable.
"""

from datetime import datetime
from typing import Any, Optional

from subscription_timer.logging_config import get_logger
from subscription_timer.utils.timestamps import MILLIS_PER_DAY, diff_millis, isoformat

logger = get_logger(__name__)


def log_status_change(
    tenant_id: str,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a displayed status transition (e.g. expiring_soon -> expired).

    Args:
        tenant_id: Tenant identifier
        old_status: Previous status value (None when unknown)
        new_status: New status value
        reason: What triggered the change (tick, refresh, termination)
        **extra_context: Additional context
    """
    logger.info(
        "subscription_status_changed",
        tenant_id=tenant_id,
        old_status=str(old_status.value if hasattr(old_status, "value") else old_status),
        new_status=str(new_status.value if hasattr(new_status, "value") else new_status),
        reason=reason,
        **extra_context,
    )


def log_end_date_change(
    tenant_id: str,
    old_end_date: Optional[datetime],
    new_end_date: datetime,
    actor_id: str,
    reason: str,
    **extra_context: Any,
) -> None:
    """Log a subscription end date change.

    Args:
        tenant_id: Tenant identifier
        old_end_date: Previous end date (None if there was none)
        new_end_date: New end date
        actor_id: Who changed it
        reason: Why (extension strategy, renewal)
        **extra_context: Additional context
    """
    extension_days = None
    if old_end_date is not None:
        extension_days = diff_millis(new_end_date, old_end_date) / MILLIS_PER_DAY

    logger.info(
        "subscription_end_date_changed",
        tenant_id=tenant_id,
        old_end_date=isoformat(old_end_date),
        new_end_date=isoformat(new_end_date),
        extension_days=extension_days,
        actor_id=actor_id,
        reason=reason,
        **extra_context,
    )


def log_termination(
    tenant_id: str,
    actor_id: str,
    reason: str,
    terminated_at: datetime,
    **extra_context: Any,
) -> None:
    """Log a permanent termination (who, when, why)."""
    logger.warning(
        "subscription_terminated",
        tenant_id=tenant_id,
        actor_id=actor_id,
        reason=reason,
        terminated_at=isoformat(terminated_at),
        **extra_context,
    )
