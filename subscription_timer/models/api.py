"""API request and response models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from subscription_timer.models.settings import ExtensionStrategy
from subscription_timer.models.subscription import SubscriptionStatus, TimeRemaining


class ExtendSubscriptionRequest(BaseModel):
    """Request to extend a tenant subscription."""

    days_to_add: int = Field(..., description="Number of days to add")
    strategy: Optional[ExtensionStrategy] = Field(None, description="Uses the configured default if not provided")

    class Config:
        json_schema_extra = {"example": {"days_to_add": 30, "strategy": "from_end_date"}}


class TerminateSubscriptionRequest(BaseModel):
    """Request to terminate a tenant subscription."""

    reason: str = Field(..., description="Why the subscription is terminated")

    class Config:
        json_schema_extra = {"example": {"reason": "Contract breach"}}


class SubscriptionTimerResponse(BaseModel):
    """Subscription timer view for a tenant."""

    tenant_id: str
    available: bool = Field(..., description="False when the subscription could not be loaded")
    status: Optional[SubscriptionStatus] = None
    label: Optional[str] = Field(None, description="Human-readable status label")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    time_remaining: TimeRemaining = Field(default_factory=TimeRemaining)
    formatted_time_remaining: Optional[str] = None
    countdown_text: Optional[str] = Field(None, description='Full countdown, e.g. "2d 3h 4m 5s"')
    is_terminated: bool = False
    termination_reason: Optional[str] = None
    terminated_at: Optional[datetime] = None


class TimeStatusResponse(BaseModel):
    """Current clock time."""

    mode: str
    current_time_millis: int
    current_time: datetime


class AdvanceTimeRequest(BaseModel):
    """Request to advance virtual time."""

    days: Optional[int] = Field(None, description="Days to advance")
    hours: Optional[int] = Field(None, description="Hours to advance")
    minutes: Optional[int] = Field(None, description="Minutes to advance")
    seconds: Optional[int] = Field(None, description="Seconds to advance")


class AdvanceTimeResponse(BaseModel):
    """Response after advancing virtual time."""

    previous_time_millis: int
    current_time_millis: int
    advanced_by_millis: int
    tasks_fired: int
    message: str
