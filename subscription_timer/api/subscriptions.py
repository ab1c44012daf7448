"""Tenant subscription endpoints.

Implements:
- GET /tenants/{tenant_id}/subscription - Timer view
- POST /tenants/{tenant_id}/subscription/refresh - Forced refetch
- POST /tenants/{tenant_id}/subscription/extend - Extend by N days
- POST /tenants/{tenant_id}/subscription/terminate - Terminate permanently
- GET /tenants/{tenant_id}/subscription/history - Audit history
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from subscription_timer.api.deps import (
    get_accessor,
    get_actor_id,
    get_config,
    get_lifecycle,
    get_time_controller,
)
from subscription_timer.config import Config
from subscription_timer.logging_config import get_logger
from subscription_timer.models import (
    ErrorCode,
    ExtendSubscriptionRequest,
    ExtensionResult,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
    SubscriptionTimerResponse,
    TerminateSubscriptionRequest,
    TerminatedStatus,
    TerminationResult,
)
from subscription_timer.services.lifecycle import SubscriptionLifecycle
from subscription_timer.services.subscription_accessor import SubscriptionAccessor
from subscription_timer.utils import (
    calculate_time_remaining,
    format_countdown,
    format_time_remaining,
    get_subscription_status,
    status_display,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Subscriptions"], prefix="/tenants")

ERROR_STATUS_CODES = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_TERMINATED: 409,
    ErrorCode.BACKEND_UNAVAILABLE: 503,
}


def _build_timer_response(
    tenant_id: str,
    snapshot: Optional[SubscriptionSnapshot],
    time_controller,
    expiring_soon_days: float,
) -> SubscriptionTimerResponse:
    if snapshot is None:
        return SubscriptionTimerResponse(tenant_id=tenant_id, available=False)

    now = time_controller.now()
    status = get_subscription_status(
        snapshot.end_date,
        snapshot.status_source,
        now=now,
        expiring_soon_days=expiring_soon_days,
    )
    source = snapshot.status_source
    terminated = isinstance(source, TerminatedStatus)
    remaining = calculate_time_remaining(None if terminated else snapshot.end_date, now)
    counting = not terminated and snapshot.end_date is not None

    return SubscriptionTimerResponse(
        tenant_id=tenant_id,
        available=True,
        status=status,
        label=status_display(status)["label"],
        start_date=snapshot.start_date,
        end_date=snapshot.end_date,
        time_remaining=remaining,
        formatted_time_remaining=format_time_remaining(remaining) if counting else None,
        countdown_text=format_countdown(remaining) if counting else None,
        is_terminated=terminated,
        termination_reason=source.reason if terminated else None,
        terminated_at=source.terminated_at if terminated else None,
    )


def _raise_for_error(result) -> None:
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(result.error, 400),
        detail={
            "error": result.error.value if result.error else "request_failed",
            "message": result.message,
        },
    )


@router.get(
    "/{tenant_id}/subscription",
    response_model=SubscriptionTimerResponse,
    summary="Get subscription timer",
)
def get_subscription_timer(
    tenant_id: str,
    accessor: SubscriptionAccessor = Depends(get_accessor),
    time_controller=Depends(get_time_controller),
    config: Config = Depends(get_config),
) -> SubscriptionTimerResponse:
    """Subscription status and time remaining of a tenant.

    Served from the snapshot cache while fresh. ``available`` is False when
    the subscription could not be loaded.
    """
    logger.debug("get_subscription_timer_request", tenant_id=tenant_id)
    snapshot = accessor.get_subscription(tenant_id)
    return _build_timer_response(tenant_id, snapshot, time_controller, config.timer.expiring_soon_days)


@router.post(
    "/{tenant_id}/subscription/refresh",
    response_model=SubscriptionTimerResponse,
    summary="Refresh subscription timer",
)
def refresh_subscription_timer(
    tenant_id: str,
    accessor: SubscriptionAccessor = Depends(get_accessor),
    time_controller=Depends(get_time_controller),
    config: Config = Depends(get_config),
) -> SubscriptionTimerResponse:
    """Refetch the subscription from the datastore, bypassing the cache."""
    logger.info("refresh_subscription_request", tenant_id=tenant_id)
    snapshot = accessor.get_subscription(tenant_id, force_refresh=True)
    return _build_timer_response(tenant_id, snapshot, time_controller, config.timer.expiring_soon_days)


@router.post(
    "/{tenant_id}/subscription/extend",
    response_model=ExtensionResult,
    summary="Extend subscription",
)
def extend_subscription(
    tenant_id: str,
    request: ExtendSubscriptionRequest,
    actor_id: str = Depends(get_actor_id),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> ExtensionResult:
    """Extend a tenant subscription by ``days_to_add`` days.

    Raises:
        400: Invalid number of days
        404: Tenant not found
        409: Subscription already terminated
        503: Datastore unavailable
    """
    logger.info(
        "extend_subscription_request",
        tenant_id=tenant_id,
        days_to_add=request.days_to_add,
        strategy=request.strategy.value if request.strategy else None,
    )
    result = lifecycle.extend_subscription(
        tenant_id,
        days_to_add=request.days_to_add,
        actor_id=actor_id,
        strategy=request.strategy,
    )
    _raise_for_error(result)
    return result


@router.post(
    "/{tenant_id}/subscription/terminate",
    response_model=TerminationResult,
    summary="Terminate subscription",
)
def terminate_subscription(
    tenant_id: str,
    request: TerminateSubscriptionRequest,
    actor_id: str = Depends(get_actor_id),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> TerminationResult:
    """Terminate a tenant subscription. There is no way back.

    Raises:
        400: Missing reason
        404: Tenant not found
        409: Subscription already terminated
        503: Datastore unavailable
    """
    logger.info("terminate_subscription_request", tenant_id=tenant_id)
    result = lifecycle.terminate_subscription(tenant_id, reason=request.reason, actor_id=actor_id)
    _raise_for_error(result)
    return result


@router.get(
    "/{tenant_id}/subscription/history",
    response_model=List[SubscriptionHistoryEntry],
    summary="Get subscription history",
)
def get_subscription_history(
    tenant_id: str,
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> List[SubscriptionHistoryEntry]:
    """Extensions and terminations of a tenant, newest first."""
    return lifecycle.get_subscription_history(tenant_id)
