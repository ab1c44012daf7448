"""Subscription lifecycle mutators.

Responsibilities:
- Extend a tenant subscription by a number of days
- Terminate a tenant subscription permanently
- Report the audit history of both

Mutators never raise past this boundary: every failure is returned as a
result with ``success=False``, an error code and a message.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from subscription_timer.audit_logger import log_end_date_change, log_termination
from subscription_timer.logging_config import get_logger
from subscription_timer.models.events import LifecycleEventType
from subscription_timer.models.results import (
    ErrorCode,
    ExtensionResult,
    TerminationResult,
)
from subscription_timer.models.settings import ExtensionStrategy
from subscription_timer.models.subscription import (
    SubscriptionHistoryEntry,
    TenantSubscriptionRecord,
)
from subscription_timer.repositories.tenant_store import (
    AlreadyTerminatedError,
    DatastoreError,
    SubscriptionError,
    SubscriptionNotFoundError,
)
from subscription_timer.utils.timestamps import isoformat

logger = get_logger(__name__)


class SubscriptionValidationError(SubscriptionError):
    """Raised when mutation arguments are invalid."""

    pass


def compute_new_end_date(
    current_end_date: Optional[datetime],
    days_to_add: int,
    now: datetime,
    strategy: ExtensionStrategy,
) -> datetime:
    """Compute the end date after adding ``days_to_add`` days.

    FROM_NOW counts from ``now`` regardless of the current end date.
    FROM_END_DATE adds to the current end date, even one in the past, and
    counts from ``now`` when there is no end date.
    """
    if strategy is ExtensionStrategy.FROM_END_DATE and current_end_date is not None:
        base = current_end_date
    else:
        base = now
    return base + timedelta(days=days_to_add)


class SubscriptionLifecycle:
    """Extend/terminate operations against the tenant datastore.

    Args:
        datastore: Tenant datastore
        time_controller: Clock for new end dates and termination stamps
        accessor: Optional accessor whose cache receives the mutated snapshot
        event_dispatcher: Optional Pub/Sub dispatcher for lifecycle events
        default_strategy: Extension strategy used when the caller passes none
        max_extension_days: Upper bound for a single extension
    """

    def __init__(
        self,
        datastore,
        time_controller,
        accessor=None,
        event_dispatcher=None,
        default_strategy: ExtensionStrategy = ExtensionStrategy.FROM_NOW,
        max_extension_days: int = 3650,
    ):
        self.datastore = datastore
        self.time_controller = time_controller
        self.accessor = accessor
        self.event_dispatcher = event_dispatcher
        self.default_strategy = default_strategy
        self.max_extension_days = max_extension_days

        logger.info(
            "subscription_lifecycle_initialized",
            default_strategy=default_strategy.value,
            max_extension_days=max_extension_days,
        )

    def _validate_actor(self, actor_id: str) -> None:
        if not actor_id or not str(actor_id).strip():
            raise SubscriptionValidationError("An authenticated actor is required")

    def _resolve_strategy(self, strategy) -> ExtensionStrategy:
        if strategy is None:
            return self.default_strategy
        try:
            return ExtensionStrategy(strategy)
        except ValueError:
            allowed = ", ".join(s.value for s in ExtensionStrategy)
            raise SubscriptionValidationError(f"Unknown extension strategy '{strategy}' (expected one of: {allowed})")

    def _validate_days(self, days_to_add: int) -> None:
        if isinstance(days_to_add, bool) or not isinstance(days_to_add, int):
            raise SubscriptionValidationError("Days to add must be a whole number")
        if days_to_add <= 0:
            raise SubscriptionValidationError("Please enter a valid number of days")
        if days_to_add > self.max_extension_days:
            raise SubscriptionValidationError(
                f"Cannot extend by more than {self.max_extension_days} days at once"
            )

    def _load_mutable(self, tenant_id: str) -> TenantSubscriptionRecord:
        record = self.datastore.get(tenant_id)
        if record.is_terminated:
            raise AlreadyTerminatedError(f"Subscription for tenant {tenant_id} is terminated")
        return record

    def _after_mutation(self, record: TenantSubscriptionRecord) -> None:
        if self.accessor is not None:
            self.accessor.store_snapshot(record.to_snapshot())

    def _publish(self, event_type: LifecycleEventType, tenant_id: str, actor_id: str, payload: dict) -> None:
        if self.event_dispatcher is None:
            return
        self.event_dispatcher.publish_lifecycle_event(
            event_type=event_type,
            tenant_id=tenant_id,
            actor_id=actor_id,
            payload=payload,
        )

    def extend_subscription(
        self,
        tenant_id: str,
        days_to_add: int,
        actor_id: str,
        strategy: Optional[ExtensionStrategy] = None,
    ) -> ExtensionResult:
        """Extend a tenant subscription.

        Args:
            tenant_id: Tenant identifier
            days_to_add: Positive number of days
            actor_id: Authenticated actor performing the extension
            strategy: FROM_NOW or FROM_END_DATE (defaults to the configured one)

        Returns:
            ExtensionResult with the new end date on success
        """
        try:
            strategy = self._resolve_strategy(strategy)
            self._validate_days(days_to_add)
            self._validate_actor(actor_id)
            record = self._load_mutable(tenant_id)

            now = self.time_controller.now()
            new_end_date = compute_new_end_date(record.end_date, days_to_add, now, strategy)
            updated = self.datastore.update_end_date(
                tenant_id,
                new_end_date=new_end_date,
                actor_id=actor_id,
                updated_at=now,
            )
        except SubscriptionValidationError as e:
            logger.warning("extend_subscription_rejected", tenant_id=tenant_id, days_to_add=days_to_add, error=str(e))
            return ExtensionResult(success=False, message=str(e), error=ErrorCode.VALIDATION_FAILED)
        except AlreadyTerminatedError as e:
            logger.warning("extend_subscription_rejected", tenant_id=tenant_id, error=str(e))
            return ExtensionResult(
                success=False,
                message=f"Failed to extend subscription: {e}",
                error=ErrorCode.ALREADY_TERMINATED,
            )
        except SubscriptionNotFoundError as e:
            logger.warning("extend_subscription_not_found", tenant_id=tenant_id)
            return ExtensionResult(
                success=False,
                message=f"Failed to extend subscription: {e}",
                error=ErrorCode.NOT_FOUND,
            )
        except DatastoreError as e:
            logger.error("extend_subscription_failed", tenant_id=tenant_id, error=str(e))
            return ExtensionResult(
                success=False,
                message=f"Failed to extend subscription: {e}",
                error=ErrorCode.BACKEND_UNAVAILABLE,
            )
        except Exception as e:
            logger.error(
                "extend_subscription_failed",
                tenant_id=tenant_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ExtensionResult(
                success=False,
                message="Failed to extend subscription: Unknown error",
                error=ErrorCode.BACKEND_UNAVAILABLE,
            )

        log_end_date_change(
            tenant_id=tenant_id,
            old_end_date=record.end_date,
            new_end_date=new_end_date,
            actor_id=actor_id,
            reason=f"Extended by {days_to_add} days ({strategy.value})",
        )
        self._after_mutation(updated)
        self._publish(
            LifecycleEventType.SUBSCRIPTION_EXTENDED,
            tenant_id,
            actor_id,
            {
                "days_added": days_to_add,
                "strategy": strategy.value,
                "old_end_date": isoformat(record.end_date),
                "new_end_date": isoformat(new_end_date),
            },
        )

        return ExtensionResult(
            success=True,
            message=f"Subscription extended by {days_to_add} days",
            new_end_date=new_end_date,
        )

    def terminate_subscription(
        self,
        tenant_id: str,
        reason: str,
        actor_id: str,
    ) -> TerminationResult:
        """Terminate a tenant subscription permanently.

        Args:
            tenant_id: Tenant identifier
            reason: Non-empty reason recorded in the audit trail
            actor_id: Authenticated actor performing the termination

        Returns:
            TerminationResult with the termination time on success
        """
        try:
            if not reason or not reason.strip():
                raise SubscriptionValidationError("Please provide a reason for termination")
            self._validate_actor(actor_id)
            reason = reason.strip()
            self._load_mutable(tenant_id)

            terminated_at = self.time_controller.now()
            updated = self.datastore.mark_terminated(
                tenant_id,
                reason=reason,
                terminated_at=terminated_at,
                actor_id=actor_id,
            )
        except SubscriptionValidationError as e:
            logger.warning("terminate_subscription_rejected", tenant_id=tenant_id, error=str(e))
            return TerminationResult(success=False, message=str(e), error=ErrorCode.VALIDATION_FAILED)
        except AlreadyTerminatedError as e:
            logger.warning("terminate_subscription_rejected", tenant_id=tenant_id, error=str(e))
            return TerminationResult(
                success=False,
                message=f"Failed to terminate subscription: {e}",
                error=ErrorCode.ALREADY_TERMINATED,
            )
        except SubscriptionNotFoundError as e:
            logger.warning("terminate_subscription_not_found", tenant_id=tenant_id)
            return TerminationResult(
                success=False,
                message=f"Failed to terminate subscription: {e}",
                error=ErrorCode.NOT_FOUND,
            )
        except DatastoreError as e:
            logger.error("terminate_subscription_failed", tenant_id=tenant_id, error=str(e))
            return TerminationResult(
                success=False,
                message=f"Failed to terminate subscription: {e}",
                error=ErrorCode.BACKEND_UNAVAILABLE,
            )
        except Exception as e:
            logger.error(
                "terminate_subscription_failed",
                tenant_id=tenant_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return TerminationResult(
                success=False,
                message="Failed to terminate subscription: Unknown error",
                error=ErrorCode.BACKEND_UNAVAILABLE,
            )

        log_termination(tenant_id=tenant_id, actor_id=actor_id, reason=reason, terminated_at=terminated_at)
        self._after_mutation(updated)
        self._publish(
            LifecycleEventType.SUBSCRIPTION_TERMINATED,
            tenant_id,
            actor_id,
            {"reason": reason, "terminated_at": isoformat(terminated_at)},
        )

        return TerminationResult(
            success=True,
            message="Subscription terminated successfully",
            terminated_at=terminated_at,
        )

    def get_subscription_history(self, tenant_id: str) -> List[SubscriptionHistoryEntry]:
        """Audit history of a tenant, newest first; empty if it cannot be read."""
        try:
            return self.datastore.history(tenant_id)
        except (DatastoreError, SubscriptionNotFoundError) as e:
            logger.error("subscription_history_failed", tenant_id=tenant_id, error=str(e))
            return []
