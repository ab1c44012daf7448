"""Integration tests for the countdown, accessor and lifecycle working together.

Time is fast-forwarded with the virtual clock; nothing sleeps.
"""

from datetime import timedelta

import pytest

from subscription_timer.models import (
    CountdownState,
    ExtensionStrategy,
    SubscriptionStatus,
    TenantSubscriptionRecord,
)
from subscription_timer.repositories.tenant_store import TenantSubscriptionStore
from subscription_timer.services.countdown import CountdownDriver
from subscription_timer.services.lifecycle import SubscriptionLifecycle
from subscription_timer.services.subscription_accessor import SubscriptionAccessor


@pytest.fixture
def datastore(start_time):
    store = TenantSubscriptionStore()
    store.add(
        TenantSubscriptionRecord(
            tenant_id="school-1",
            start_date=start_time - timedelta(days=363),
            end_date=start_time + timedelta(days=2),
        )
    )
    return store


@pytest.fixture
def accessor(datastore, time_controller, inline_executor):
    accessor = SubscriptionAccessor(datastore, time_controller, executor=inline_executor)
    yield accessor
    accessor.shutdown()


@pytest.fixture
def lifecycle(datastore, time_controller, accessor):
    return SubscriptionLifecycle(datastore, time_controller, accessor=accessor)


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def driver(accessor, time_controller, statuses):
    driver = CountdownDriver(
        "school-1",
        accessor,
        time_controller,
        listener=lambda update: statuses.append(update.status),
    )
    yield driver
    driver.stop()


class TestCountdownToExpiry:
    """A subscription two days from its end is watched until it expires."""

    def test_expiring_soon_then_expired(self, driver, time_controller):
        driver.start()
        assert driver.current().status == SubscriptionStatus.EXPIRING_SOON

        time_controller.advance_time(days=2)

        assert driver.state == CountdownState.EXPIRED
        assert driver.current().status == SubscriptionStatus.EXPIRED
        assert driver.current().time_remaining.total_seconds == 0
        assert not driver.ticking

    def test_no_ticks_after_expiry(self, driver, time_controller):
        driver.start()
        time_controller.advance_time(days=2)
        ticks = driver.tick_count

        time_controller.advance_time(hours=1)

        assert ticks > 86400
        assert driver.tick_count == ticks
        assert driver.state == CountdownState.EXPIRED

    def test_status_sequence(self, driver, time_controller, statuses):
        driver.start()
        time_controller.advance_time(days=2)

        distinct = [s for i, s in enumerate(statuses) if i == 0 or statuses[i - 1] != s]
        assert distinct == [None, SubscriptionStatus.EXPIRING_SOON, SubscriptionStatus.EXPIRED]


class TestLifecycleAndCountdown:
    """Mutations flow into a running countdown through the shared cache."""

    def test_extension_revives_expired_countdown(self, driver, lifecycle, time_controller, start_time):
        driver.start()
        time_controller.advance_time(days=2, minutes=1)
        assert driver.state == CountdownState.EXPIRED

        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")
        assert result.success

        driver.refresh()

        assert driver.state == CountdownState.LIVE
        assert driver.ticking
        assert driver.current().status == SubscriptionStatus.ACTIVE
        assert driver.snapshot.end_date == start_time + timedelta(days=32, minutes=1)

    def test_additive_extension(self, lifecycle, accessor, time_controller, start_time):
        time_controller.advance_time(days=7)

        result = lifecycle.extend_subscription(
            "school-1", 30, actor_id="admin-1", strategy=ExtensionStrategy.FROM_END_DATE
        )

        assert result.new_end_date == start_time + timedelta(days=32)
        assert accessor.get_subscription("school-1").end_date == start_time + timedelta(days=32)

    def test_termination_freezes_on_next_refresh(self, driver, lifecycle, time_controller):
        driver.start()
        lifecycle.terminate_subscription("school-1", "Contract breach", actor_id="admin-1")

        time_controller.advance_time(minutes=5)

        assert driver.state == CountdownState.FROZEN
        assert driver.current().status == SubscriptionStatus.TERMINATED
        ticks = driver.tick_count
        time_controller.advance_time(days=3)
        assert driver.tick_count == ticks
        assert driver.state == CountdownState.FROZEN

    def test_terminated_cannot_be_extended(self, lifecycle, accessor):
        lifecycle.terminate_subscription("school-1", "Contract breach", actor_id="admin-1")

        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        assert not result.success
        assert accessor.get_subscription("school-1").is_terminated
