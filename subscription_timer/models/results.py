"""Mutator results and countdown updates."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from subscription_timer.models.subscription import (
    SubscriptionSnapshot,
    SubscriptionStatus,
    TimeRemaining,
)


class ErrorCode(str, Enum):
    """Why a lifecycle mutation failed."""

    VALIDATION_FAILED = "validation_failed"
    ALREADY_TERMINATED = "already_terminated"
    NOT_FOUND = "not_found"
    BACKEND_UNAVAILABLE = "backend_unavailable"


class ExtensionResult(BaseModel):
    """Outcome of extending a subscription."""

    success: bool
    message: str
    new_end_date: Optional[datetime] = None
    error: Optional[ErrorCode] = None


class TerminationResult(BaseModel):
    """Outcome of terminating a subscription."""

    success: bool
    message: str
    terminated_at: Optional[datetime] = None
    error: Optional[ErrorCode] = None


class CountdownState(str, Enum):
    """Countdown driver states."""

    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    FROZEN = "frozen"  # terminated
    EXPIRED = "expired"
    UNAVAILABLE = "unavailable"  # fetch failed, status unknown


class CountdownUpdate(BaseModel):
    """One emission of the countdown driver to its view."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    state: CountdownState
    status: Optional[SubscriptionStatus] = Field(None, description="None while unknown")
    time_remaining: TimeRemaining = Field(default_factory=TimeRemaining)
    snapshot: Optional[SubscriptionSnapshot] = None
    refreshing: bool = Field(False, description="A refetch is in flight")
    emitted_at: datetime
