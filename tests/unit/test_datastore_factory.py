"""Tests for building the configured datastore."""

import pytest

from subscription_timer.config import ConfigurationError
from subscription_timer.models import DatastoreConfig, SeedTenant
from subscription_timer.repositories.factory import create_datastore
from subscription_timer.repositories.postgrest_store import PostgrestTenantStore
from subscription_timer.repositories.tenant_store import TenantSubscriptionStore


class TestCreateDatastore:
    def test_memory_backend_is_seeded(self):
        store = create_datastore(DatastoreConfig(), [SeedTenant(tenant_id="school-1")])
        assert isinstance(store, TenantSubscriptionStore)
        assert "school-1" in store

    def test_postgrest_backend(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")
        store = create_datastore(DatastoreConfig(backend="postgrest", url="https://project.example.co"))
        try:
            assert isinstance(store, PostgrestTenantStore)
        finally:
            store.close()

    def test_postgrest_requires_url(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")
        with pytest.raises(ConfigurationError):
            create_datastore(DatastoreConfig(backend="postgrest"))

    def test_postgrest_requires_key(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            create_datastore(DatastoreConfig(backend="postgrest", url="https://project.example.co"))
