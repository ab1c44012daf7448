"""Datastore construction from configuration."""

import os
from typing import List, Optional

from subscription_timer.config import ConfigurationError
from subscription_timer.logging_config import get_logger
from subscription_timer.models.settings import DatastoreConfig, SeedTenant
from subscription_timer.repositories.postgrest_store import PostgrestTenantStore
from subscription_timer.repositories.tenant_store import TenantSubscriptionStore

logger = get_logger(__name__)


def create_datastore(datastore_config: DatastoreConfig, tenants: Optional[List[SeedTenant]] = None):
    """Build the configured tenant datastore.

    The memory backend is seeded with ``tenants``. The postgrest backend
    needs ``url`` and reads its key from the ``api_key_env`` variable.

    Raises:
        ConfigurationError: If the postgrest backend is missing its URL or key
    """
    if datastore_config.backend == "memory":
        store = TenantSubscriptionStore.from_seed(tenants or [])
        logger.info("datastore_created", backend="memory", tenants=len(store))
        return store

    if not datastore_config.url:
        raise ConfigurationError("datastore.url is required for the postgrest backend")
    api_key = os.getenv(datastore_config.api_key_env)
    if not api_key:
        raise ConfigurationError(f"Environment variable {datastore_config.api_key_env} is not set")

    store = PostgrestTenantStore(
        base_url=datastore_config.url,
        api_key=api_key,
        table=datastore_config.table,
        history_table=datastore_config.history_table,
        timeout_seconds=datastore_config.timeout_seconds,
    )
    logger.info("datastore_created", backend="postgrest", table=datastore_config.table)
    return store
