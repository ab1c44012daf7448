"""Hosted tenant datastore over the PostgREST (Supabase REST) API.

Reads and updates the subscription columns of the ``schools`` table and
appends to the subscription history table.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from subscription_timer.logging_config import get_logger
from subscription_timer.models.subscription import (
    HistoryAction,
    SubscriptionHistoryEntry,
    SubscriptionStatus,
    TenantSubscriptionRecord,
)
from subscription_timer.repositories.tenant_store import (
    AlreadyTerminatedError,
    DatastoreError,
    SubscriptionNotFoundError,
)
from subscription_timer.utils.timestamps import isoformat, parse_timestamp

logger = get_logger(__name__)

SUBSCRIPTION_COLUMNS = (
    "id",
    "subscription_start_date",
    "subscription_end_date",
    "subscription_status",
    "subscription_termination_reason",
    "subscription_terminated_at",
    "subscription_terminated_by",
    "updated_at",
)

NOT_TERMINATED_FILTER = f"(subscription_status.is.null,subscription_status.neq.{SubscriptionStatus.TERMINATED.value})"


def record_from_row(row: Dict[str, Any]) -> TenantSubscriptionRecord:
    """Map a tenant table row to a record."""
    return TenantSubscriptionRecord(
        tenant_id=str(row["id"]),
        start_date=parse_timestamp(row.get("subscription_start_date")),
        end_date=parse_timestamp(row.get("subscription_end_date")),
        status=row.get("subscription_status"),
        termination_reason=row.get("subscription_termination_reason"),
        terminated_at=parse_timestamp(row.get("subscription_terminated_at")),
        terminated_by=row.get("subscription_terminated_by"),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def history_from_row(row: Dict[str, Any]) -> SubscriptionHistoryEntry:
    return SubscriptionHistoryEntry(
        tenant_id=str(row["school_id"]),
        action=HistoryAction(row["action"]),
        actor_id=row["actor_id"],
        occurred_at=parse_timestamp(row["occurred_at"]),
        old_end_date=parse_timestamp(row.get("old_end_date")),
        new_end_date=parse_timestamp(row.get("new_end_date")),
        reason=row.get("reason"),
    )


class PostgrestTenantStore:
    """Tenant subscription datastore backed by a hosted PostgREST endpoint.

    Network failures and error responses raise ``DatastoreError``; a tenant
    row that does not exist raises ``SubscriptionNotFoundError``. Updates to
    a terminated row are refused with ``AlreadyTerminatedError``.

    Args:
        base_url: Project URL (e.g. https://<project>.supabase.co)
        api_key: Service role key sent as ``apikey`` and bearer token
        table: Tenant table name
        history_table: Audit history table name
        timeout_seconds: Request timeout
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "schools",
        history_table: str = "school_subscription_history",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.table = table
        self.history_table = history_table
        self._client = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = self._client.request(method, path, params=params, json=json_body, headers=headers)
        except httpx.RequestError as exc:
            logger.error("datastore_request_failed", method=method, path=path, error=str(exc))
            raise DatastoreError(f"Datastore request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "datastore_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise DatastoreError(f"Datastore returned {response.status_code} for {method} {path}")

        if not response.content:
            return None
        return response.json()

    def _single_row(self, rows: Any, tenant_id: str) -> Dict[str, Any]:
        if not rows:
            raise SubscriptionNotFoundError(f"Subscription not found for tenant: {tenant_id}")
        return rows[0]

    def get(self, tenant_id: str) -> TenantSubscriptionRecord:
        rows = self._request(
            "GET",
            f"/{self.table}",
            params={"id": f"eq.{tenant_id}", "select": ",".join(SUBSCRIPTION_COLUMNS)},
        )
        return record_from_row(self._single_row(rows, tenant_id))

    def find(self, tenant_id: str) -> Optional[TenantSubscriptionRecord]:
        try:
            return self.get(tenant_id)
        except SubscriptionNotFoundError:
            return None

    def _patch_unless_terminated(self, tenant_id: str, values: Dict[str, Any]) -> TenantSubscriptionRecord:
        """PATCH a tenant row only while it is not terminated.

        The status filter makes the check and the write one statement. No row
        back means the tenant is missing or already terminated.
        """
        rows = self._request(
            "PATCH",
            f"/{self.table}",
            params={
                "id": f"eq.{tenant_id}",
                "or": NOT_TERMINATED_FILTER,
                "select": ",".join(SUBSCRIPTION_COLUMNS),
            },
            json_body=values,
            headers={"Prefer": "return=representation"},
        )
        if rows:
            return record_from_row(rows[0])

        # Raises SubscriptionNotFoundError when the row does not exist
        self.get(tenant_id)
        logger.warning("datastore_update_rejected_terminated", tenant_id=tenant_id)
        raise AlreadyTerminatedError(f"Subscription for tenant {tenant_id} is terminated")

    def _insert_history(self, entry: SubscriptionHistoryEntry) -> None:
        self._request(
            "POST",
            f"/{self.history_table}",
            json_body={
                "school_id": entry.tenant_id,
                "action": entry.action.value,
                "actor_id": entry.actor_id,
                "occurred_at": isoformat(entry.occurred_at),
                "old_end_date": isoformat(entry.old_end_date),
                "new_end_date": isoformat(entry.new_end_date),
                "reason": entry.reason,
            },
            headers={"Prefer": "return=minimal"},
        )

    def update_end_date(
        self,
        tenant_id: str,
        new_end_date: datetime,
        actor_id: str,
        updated_at: datetime,
    ) -> TenantSubscriptionRecord:
        current = self.get(tenant_id)
        updated = self._patch_unless_terminated(
            tenant_id,
            {
                "subscription_end_date": isoformat(new_end_date),
                "updated_at": isoformat(updated_at),
            },
        )
        self._insert_history(
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
        updated = self._patch_unless_terminated(
            tenant_id,
            {
                "subscription_status": SubscriptionStatus.TERMINATED.value,
                "subscription_termination_reason": reason,
                "subscription_terminated_at": isoformat(terminated_at),
                "subscription_terminated_by": actor_id,
                "updated_at": isoformat(terminated_at),
            },
        )
        self._insert_history(
            SubscriptionHistoryEntry(
                tenant_id=tenant_id,
                action=HistoryAction.TERMINATED,
                actor_id=actor_id,
                occurred_at=terminated_at,
                old_end_date=updated.end_date,
                new_end_date=updated.end_date,
                reason=reason,
            )
        )
        return updated

    def history(self, tenant_id: str) -> List[SubscriptionHistoryEntry]:
        rows = self._request(
            "GET",
            f"/{self.history_table}",
            params={"school_id": f"eq.{tenant_id}", "order": "occurred_at.desc"},
        )
        return [history_from_row(row) for row in rows or []]

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:
        return f"PostgrestTenantStore(table={self.table!r})"
