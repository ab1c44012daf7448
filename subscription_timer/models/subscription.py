"""Subscription snapshot, status and countdown models.

Includes the status enum, the status source union, the persisted tenant
record, the audit history entry and the derived time remaining.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SubscriptionStatus(str, Enum):
    """Status shown on the subscription timer."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"  # 0 < days left <= expiring_soon_days
    EXPIRED = "expired"
    TERMINATED = "terminated"  # Terminal, countdown frozen


class HistoryAction(str, Enum):
    """Audited lifecycle actions."""

    EXTENDED = "extended"
    TERMINATED = "terminated"


class DerivedStatus(BaseModel):
    """Status is derived from the subscription end date."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["derived"] = "derived"


class TerminatedStatus(BaseModel):
    """Subscription was terminated; end date no longer matters."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["terminated"] = "terminated"
    reason: str = Field(..., description="Termination reason supplied by the admin")
    terminated_at: datetime = Field(..., description="When the subscription was terminated")
    terminated_by: Optional[str] = Field(None, description="Actor who terminated it")


StatusSource = Annotated[Union[DerivedStatus, TerminatedStatus], Field(discriminator="kind")]


class TimeRemaining(BaseModel):
    """Countdown decomposition with constant 24h days."""

    model_config = ConfigDict(frozen=True)

    days: int = Field(default=0, ge=0)
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)
    seconds: int = Field(default=0, ge=0)
    total_seconds: int = Field(default=0, ge=0)

    @classmethod
    def zero(cls) -> "TimeRemaining":
        return cls()

    @property
    def elapsed(self) -> bool:
        return self.total_seconds <= 0


class SubscriptionSnapshot(BaseModel):
    """Last-fetched subscription state for a tenant.

    Snapshots are immutable; the accessor replaces them whole.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(..., description="Tenant (school) identifier")
    start_date: Optional[datetime] = Field(None, description="Start of the current period")
    end_date: Optional[datetime] = Field(None, description="When access lapses")
    status_source: StatusSource = Field(default_factory=DerivedStatus)

    @property
    def is_terminated(self) -> bool:
        return isinstance(self.status_source, TerminatedStatus)


class TenantSubscriptionRecord(BaseModel):
    """Subscription columns of a tenant row in the datastore."""

    tenant_id: str = Field(..., description="Tenant (school) identifier")
    start_date: Optional[datetime] = Field(None, description="subscription_start_date")
    end_date: Optional[datetime] = Field(None, description="subscription_end_date")
    status: Optional[str] = Field(None, description="Raw subscription_status, null means derive from dates")
    termination_reason: Optional[str] = Field(None, description="subscription_termination_reason")
    terminated_at: Optional[datetime] = Field(None, description="subscription_terminated_at")
    terminated_by: Optional[str] = Field(None, description="Actor who terminated the subscription")
    updated_at: Optional[datetime] = Field(None, description="Last modification time")

    @property
    def is_terminated(self) -> bool:
        return self.status == SubscriptionStatus.TERMINATED.value

    def to_snapshot(self) -> SubscriptionSnapshot:
        """Build an immutable snapshot, mapping the raw status to a status source."""
        if self.is_terminated:
            source: Union[DerivedStatus, TerminatedStatus] = TerminatedStatus(
                reason=self.termination_reason or "",
                terminated_at=self.terminated_at or self.updated_at or _EPOCH,
                terminated_by=self.terminated_by,
            )
        else:
            source = DerivedStatus()
        return SubscriptionSnapshot(
            tenant_id=self.tenant_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status_source=source,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "school-123",
                "start_date": "2025-01-01T00:00:00+00:00",
                "end_date": "2026-01-01T00:00:00+00:00",
                "status": None,
                "termination_reason": None,
                "terminated_at": None,
                "terminated_by": None,
            }
        }


class SubscriptionHistoryEntry(BaseModel):
    """Audit trail entry for a lifecycle mutation."""

    tenant_id: str
    action: HistoryAction
    actor_id: str
    occurred_at: datetime
    old_end_date: Optional[datetime] = None
    new_end_date: Optional[datetime] = None
    reason: Optional[str] = None
