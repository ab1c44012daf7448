"""Tenant subscription store - in-memory storage for tenant subscription rows.

Stands in for the hosted tenant table: reads and updates the subscription
columns and keeps the audit history of lifecycle mutations.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from subscription_timer.models.subscription import (
    HistoryAction,
    SubscriptionHistoryEntry,
    SubscriptionStatus,
    TenantSubscriptionRecord,
)
from subscription_timer.models.settings import SeedTenant
from subscription_timer.utils.timestamps import parse_timestamp


class SubscriptionNotFoundError(Exception):
    """Raised when a tenant has no subscription record."""

    pass


class DatastoreError(Exception):
    """Raised when the datastore cannot be reached or rejects a request."""

    pass


class SubscriptionError(Exception):
    """Base exception for subscription lifecycle errors."""

    pass


class AlreadyTerminatedError(SubscriptionError):
    """Raised when mutating a terminated subscription."""

    pass


class TenantSubscriptionStore:
    """In-memory storage for tenant subscription records.

    Thread-safe. Records are replaced whole on every mutation, so a record
    handed out by ``get`` never changes underneath the caller.
    """

    def __init__(self):
        self._records: Dict[str, TenantSubscriptionRecord] = {}
        self._history: Dict[str, List[SubscriptionHistoryEntry]] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_seed(cls, tenants: List[SeedTenant]) -> "TenantSubscriptionStore":
        """Build a store preloaded with configured seed tenants."""
        store = cls()
        for tenant in tenants:
            store.upsert(
                TenantSubscriptionRecord(
                    tenant_id=tenant.tenant_id,
                    start_date=parse_timestamp(tenant.start_date),
                    end_date=parse_timestamp(tenant.end_date),
                    status=tenant.status,
                )
            )
        return store

    def add(self, record: TenantSubscriptionRecord) -> None:
        """Add a tenant record.

        Raises:
            ValueError: If the tenant already has a record
        """
        with self._lock:
            if record.tenant_id in self._records:
                raise ValueError(f"Tenant '{record.tenant_id}' already has a subscription record")
            self._records[record.tenant_id] = record

    def upsert(self, record: TenantSubscriptionRecord) -> None:
        with self._lock:
            self._records[record.tenant_id] = record

    def get(self, tenant_id: str) -> TenantSubscriptionRecord:
        """Get the subscription record of a tenant.

        Raises:
            SubscriptionNotFoundError: If the tenant has no record
        """
        with self._lock:
            record = self._records.get(tenant_id)
            if record is None:
                raise SubscriptionNotFoundError(f"Subscription not found for tenant: {tenant_id}")
            return record

    def _get_mutable(self, tenant_id: str) -> TenantSubscriptionRecord:
        # Caller holds the lock, so the check and the write are one step
        current = self.get(tenant_id)
        if current.is_terminated:
            raise AlreadyTerminatedError(f"Subscription for tenant {tenant_id} is terminated")
        return current

    def find(self, tenant_id: str) -> Optional[TenantSubscriptionRecord]:
        with self._lock:
            return self._records.get(tenant_id)

    def update_end_date(
        self,
        tenant_id: str,
        new_end_date: datetime,
        actor_id: str,
        updated_at: datetime,
    ) -> TenantSubscriptionRecord:
        """Persist a new end date and record an ``extended`` history entry.

        Raises:
            SubscriptionNotFoundError: If the tenant has no record
            AlreadyTerminatedError: If the subscription is terminated
        """
        with self._lock:
            current = self._get_mutable(tenant_id)
            updated = current.model_copy(update={"end_date": new_end_date, "updated_at": updated_at})
            self._records[tenant_id] = updated
            self._append_history(
                SubscriptionHistoryEntry(
                    tenant_id=tenant_id,
                    action=HistoryAction.EXTENDED,
                    actor_id=actor_id,
                    occurred_at=updated_at,
                    old_end_date=current.end_date,
                    new_end_date=new_end_date,
                )
            )
            return updated

    def mark_terminated(
        self,
        tenant_id: str,
        reason: str,
        terminated_at: datetime,
        actor_id: str,
    ) -> TenantSubscriptionRecord:
        """Persist a termination and record a ``terminated`` history entry.

        Raises:
            SubscriptionNotFoundError: If the tenant has no record
            AlreadyTerminatedError: If the subscription is terminated
        """
        with self._lock:
            current = self._get_mutable(tenant_id)
            updated = current.model_copy(
                update={
                    "status": SubscriptionStatus.TERMINATED.value,
                    "termination_reason": reason,
                    "terminated_at": terminated_at,
                    "terminated_by": actor_id,
                    "updated_at": terminated_at,
                }
            )
            self._records[tenant_id] = updated
            self._append_history(
                SubscriptionHistoryEntry(
                    tenant_id=tenant_id,
                    action=HistoryAction.TERMINATED,
                    actor_id=actor_id,
                    occurred_at=terminated_at,
                    old_end_date=current.end_date,
                    new_end_date=current.end_date,
                    reason=reason,
                )
            )
            return updated

    def _append_history(self, entry: SubscriptionHistoryEntry) -> None:
        self._history.setdefault(entry.tenant_id, []).append(entry)

    def history(self, tenant_id: str) -> List[SubscriptionHistoryEntry]:
        """Audit history of a tenant, newest first."""
        with self._lock:
            return list(reversed(self._history.get(tenant_id, [])))

    def exists(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._records

    def get_all(self) -> List[TenantSubscriptionRecord]:
        with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        """Remove all records and history."""
        with self._lock:
            self._records.clear()
            self._history.clear()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, tenant_id: str) -> bool:
        return self.exists(tenant_id)

    def __repr__(self) -> str:
        return f"TenantSubscriptionStore(tenants={self.count()})"
