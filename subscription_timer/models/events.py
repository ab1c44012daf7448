"""Lifecycle notification models published to Pub/Sub."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class LifecycleEventType(str, Enum):
    """Subscription lifecycle events."""

    SUBSCRIPTION_EXTENDED = "SUBSCRIPTION_EXTENDED"
    SUBSCRIPTION_TERMINATED = "SUBSCRIPTION_TERMINATED"


class LifecycleNotification(BaseModel):
    """Message body published for each lifecycle mutation."""

    version: str = Field(default="1.0", description="Notification version")
    tenant_id: str = Field(..., description="Tenant (school) identifier")
    event_type: LifecycleEventType = Field(..., description="What happened")
    actor_id: Optional[str] = Field(None, description="Who did it")
    event_time_millis: int = Field(..., description="Event time (Unix millis)")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event-specific fields")

    class Config:
        json_schema_extra = {
            "example": {
                "version": "1.0",
                "tenant_id": "school-123",
                "event_type": "SUBSCRIPTION_EXTENDED",
                "actor_id": "admin-1",
                "event_time_millis": 1700000000000,
                "payload": {"days_added": 30, "new_end_date": "2025-02-01T00:00:00+00:00"},
            }
        }
