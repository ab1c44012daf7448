"""Service configuration models.

Models from settings.yaml configuration.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExtensionStrategy(str, Enum):
    """Where an extension starts counting from."""

    FROM_NOW = "from_now"  # new end date = now + days
    FROM_END_DATE = "from_end_date"  # new end date = current end date + days


class TimerConfig(BaseModel):
    """Countdown driver cadence."""

    tick_interval_seconds: float = Field(default=1.0, gt=0, description="Client-side countdown tick")
    refresh_interval_seconds: float = Field(default=300.0, gt=0, description="Server refresh cadence")
    expiring_soon_days: float = Field(default=7.0, gt=0, description="Days left at or below which status is expiring_soon")


class CacheConfig(BaseModel):
    """Snapshot cache configuration."""

    ttl_seconds: float = Field(default=300.0, ge=0, description="How long a fetched snapshot stays fresh")
    fetch_workers: int = Field(default=4, ge=1, description="Worker threads for datastore fetches")


class LifecycleConfig(BaseModel):
    """Extend/terminate behaviour."""

    extension_strategy: ExtensionStrategy = Field(
        default=ExtensionStrategy.FROM_NOW,
        description="Default strategy when the caller does not choose one",
    )
    max_extension_days: int = Field(default=3650, ge=1, description="Upper bound for a single extension")


class DatastoreConfig(BaseModel):
    """Tenant datastore backend."""

    backend: Literal["memory", "postgrest"] = Field(default="memory")
    url: Optional[str] = Field(None, description="Base URL of the hosted REST endpoint")
    api_key_env: str = Field(default="SUPABASE_SERVICE_ROLE_KEY", description="Env var holding the API key")
    table: str = Field(default="schools", description="Tenant table")
    history_table: str = Field(default="school_subscription_history", description="Audit history table")
    timeout_seconds: float = Field(default=10.0, gt=0)


class EventsConfig(BaseModel):
    """Lifecycle event publishing (Pub/Sub)."""

    enabled: bool = Field(default=False, description="Publish lifecycle events")
    project_id: str = Field(default="local-project", description="GCP project ID")
    topic: str = Field(default="subscription-lifecycle", description="Pub/Sub topic name")


class ClockConfig(BaseModel):
    """Clock used by the timer."""

    mode: Literal["system", "virtual"] = Field(default="system")


class SeedTenant(BaseModel):
    """Tenant subscription preloaded into the in-memory datastore."""

    tenant_id: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[str] = None


class AppSettings(BaseModel):
    """Complete settings.yaml configuration."""

    timer: TimerConfig = Field(default_factory=TimerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    datastore: DatastoreConfig = Field(default_factory=DatastoreConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    clock: ClockConfig = Field(default_factory=ClockConfig)
    tenants: list[SeedTenant] = Field(default_factory=list, description="Seed tenants for the memory backend")
