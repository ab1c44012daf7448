"""Pydantic models for snapshots, results, events, settings and the API."""

# Subscription models
from .subscription import (
    DerivedStatus,
    HistoryAction,
    StatusSource,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
    SubscriptionStatus,
    TenantSubscriptionRecord,
    TerminatedStatus,
    TimeRemaining,
)

# Results and countdown updates
from .results import (
    CountdownState,
    CountdownUpdate,
    ErrorCode,
    ExtensionResult,
    TerminationResult,
)

# Lifecycle events (Pub/Sub)
from .events import (
    LifecycleEventType,
    LifecycleNotification,
)

# Settings (settings.yaml)
from .settings import (
    AppSettings,
    CacheConfig,
    ClockConfig,
    DatastoreConfig,
    EventsConfig,
    ExtensionStrategy,
    LifecycleConfig,
    SeedTenant,
    TimerConfig,
)

# API models
from .api import (
    AdvanceTimeRequest,
    AdvanceTimeResponse,
    ExtendSubscriptionRequest,
    SubscriptionTimerResponse,
    TerminateSubscriptionRequest,
    TimeStatusResponse,
)

__all__ = [
    # Subscription
    "DerivedStatus",
    "HistoryAction",
    "StatusSource",
    "SubscriptionHistoryEntry",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "TenantSubscriptionRecord",
    "TerminatedStatus",
    "TimeRemaining",
    # Results
    "CountdownState",
    "CountdownUpdate",
    "ErrorCode",
    "ExtensionResult",
    "TerminationResult",
    # Events
    "LifecycleEventType",
    "LifecycleNotification",
    # Settings
    "AppSettings",
    "CacheConfig",
    "ClockConfig",
    "DatastoreConfig",
    "EventsConfig",
    "ExtensionStrategy",
    "LifecycleConfig",
    "SeedTenant",
    "TimerConfig",
    # API
    "AdvanceTimeRequest",
    "AdvanceTimeResponse",
    "ExtendSubscriptionRequest",
    "SubscriptionTimerResponse",
    "TerminateSubscriptionRequest",
    "TimeStatusResponse",
]
