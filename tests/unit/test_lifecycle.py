"""Unit tests for extend/terminate lifecycle mutators."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from subscription_timer.models import (
    ErrorCode,
    ExtensionStrategy,
    HistoryAction,
    LifecycleEventType,
    SubscriptionStatus,
    TenantSubscriptionRecord,
)
from subscription_timer.repositories.tenant_store import (
    DatastoreError,
    TenantSubscriptionStore,
)
from subscription_timer.services.lifecycle import (
    SubscriptionLifecycle,
    compute_new_end_date,
)
from subscription_timer.services.subscription_accessor import SubscriptionAccessor
from subscription_timer.utils.time_remaining import get_subscription_status


@pytest.fixture
def datastore(start_time):
    store = TenantSubscriptionStore()
    store.add(
        TenantSubscriptionRecord(
            tenant_id="school-1",
            start_date=start_time - timedelta(days=365),
            end_date=start_time - timedelta(days=5),
        )
    )
    store.add(TenantSubscriptionRecord(tenant_id="school-open", end_date=None))
    store.add(
        TenantSubscriptionRecord(
            tenant_id="school-closed",
            end_date=start_time + timedelta(days=5),
            status="terminated",
            termination_reason="Closed",
            terminated_at=start_time - timedelta(days=1),
        )
    )
    return store


@pytest.fixture
def accessor(datastore, time_controller, inline_executor):
    accessor = SubscriptionAccessor(datastore, time_controller, executor=inline_executor)
    yield accessor
    accessor.shutdown()


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def lifecycle(datastore, time_controller, accessor, dispatcher):
    return SubscriptionLifecycle(
        datastore,
        time_controller,
        accessor=accessor,
        event_dispatcher=dispatcher,
    )


class TestComputeNewEndDate:
    def test_from_now(self, start_time):
        end = start_time - timedelta(days=5)
        assert compute_new_end_date(end, 30, start_time, ExtensionStrategy.FROM_NOW) == start_time + timedelta(days=30)

    def test_from_end_date(self, start_time):
        end = start_time - timedelta(days=5)
        assert compute_new_end_date(end, 30, start_time, ExtensionStrategy.FROM_END_DATE) == start_time + timedelta(days=25)

    def test_from_end_date_without_end_date_counts_from_now(self, start_time):
        assert compute_new_end_date(None, 30, start_time, ExtensionStrategy.FROM_END_DATE) == start_time + timedelta(days=30)


class TestExtendSubscription:
    """Tests for extending subscriptions"""

    def test_expired_tenant_extended_from_now(self, lifecycle, datastore, start_time, time_controller):
        """An expired tenant extended by 30 days is active for 30 more days."""
        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        assert result.success
        assert result.error is None
        assert result.new_end_date == start_time + timedelta(days=30)
        assert datastore.get("school-1").end_date == start_time + timedelta(days=30)
        status = get_subscription_status(datastore.get("school-1").end_date, now=time_controller.now())
        assert status == SubscriptionStatus.ACTIVE

    def test_expired_tenant_extended_from_end_date(self, lifecycle, datastore, start_time):
        result = lifecycle.extend_subscription(
            "school-1", 30, actor_id="admin-1", strategy=ExtensionStrategy.FROM_END_DATE
        )

        assert result.success
        assert result.new_end_date == start_time + timedelta(days=25)
        assert datastore.get("school-1").end_date == start_time + timedelta(days=25)

    def test_configured_default_strategy(self, datastore, time_controller, start_time):
        lifecycle = SubscriptionLifecycle(
            datastore, time_controller, default_strategy=ExtensionStrategy.FROM_END_DATE
        )
        result = lifecycle.extend_subscription("school-1", 10, actor_id="admin-1")
        assert result.new_end_date == start_time + timedelta(days=5)

    def test_strategy_as_string(self, lifecycle, start_time):
        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1", strategy="from_end_date")
        assert result.new_end_date == start_time + timedelta(days=25)

    def test_null_end_date_is_extended_from_now(self, lifecycle, start_time):
        result = lifecycle.extend_subscription(
            "school-open", 7, actor_id="admin-1", strategy=ExtensionStrategy.FROM_END_DATE
        )
        assert result.new_end_date == start_time + timedelta(days=7)

    def test_cache_is_updated(self, lifecycle, accessor, start_time):
        accessor.get_subscription("school-1")

        lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        assert accessor.peek("school-1").end_date == start_time + timedelta(days=30)

    def test_history_and_event(self, lifecycle, dispatcher, start_time):
        lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        history = lifecycle.get_subscription_history("school-1")
        assert history[0].action == HistoryAction.EXTENDED
        assert history[0].actor_id == "admin-1"
        assert history[0].old_end_date == start_time - timedelta(days=5)

        dispatcher.publish_lifecycle_event.assert_called_once()
        kwargs = dispatcher.publish_lifecycle_event.call_args.kwargs
        assert kwargs["event_type"] == LifecycleEventType.SUBSCRIPTION_EXTENDED
        assert kwargs["tenant_id"] == "school-1"
        assert kwargs["payload"]["days_added"] == 30
        assert kwargs["payload"]["strategy"] == "from_now"

    @pytest.mark.parametrize("days", [0, -3])
    def test_non_positive_days_rejected_without_persisting(self, days, time_controller):
        datastore = MagicMock()
        lifecycle = SubscriptionLifecycle(datastore, time_controller)

        result = lifecycle.extend_subscription("school-1", days, actor_id="admin-1")

        assert not result.success
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Please enter a valid number of days"
        datastore.get.assert_not_called()
        datastore.update_end_date.assert_not_called()

    def test_non_integer_days_rejected(self, lifecycle):
        result = lifecycle.extend_subscription("school-1", 1.5, actor_id="admin-1")
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_too_many_days_rejected(self, lifecycle):
        result = lifecycle.extend_subscription("school-1", 3651, actor_id="admin-1")
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_unknown_strategy_rejected(self, lifecycle, datastore, start_time):
        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1", strategy="additive")

        assert not result.success
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert "additive" in result.message
        assert datastore.get("school-1").end_date == start_time - timedelta(days=5)

    def test_missing_actor_rejected(self, lifecycle, datastore, start_time):
        result = lifecycle.extend_subscription("school-1", 30, actor_id="  ")
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert datastore.get("school-1").end_date == start_time - timedelta(days=5)

    def test_unknown_tenant(self, lifecycle):
        result = lifecycle.extend_subscription("nope", 30, actor_id="admin-1")
        assert not result.success
        assert result.error == ErrorCode.NOT_FOUND

    def test_terminated_tenant_cannot_be_extended(self, lifecycle, datastore, dispatcher, start_time):
        result = lifecycle.extend_subscription("school-closed", 30, actor_id="admin-1")

        assert result.error == ErrorCode.ALREADY_TERMINATED
        assert datastore.get("school-closed").end_date == start_time + timedelta(days=5)
        dispatcher.publish_lifecycle_event.assert_not_called()

    def test_datastore_failure(self, time_controller, start_time):
        datastore = MagicMock()
        datastore.get.return_value = TenantSubscriptionRecord(tenant_id="school-1", end_date=start_time)
        datastore.update_end_date.side_effect = DatastoreError("503 from datastore")
        lifecycle = SubscriptionLifecycle(datastore, time_controller)

        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        assert not result.success
        assert result.error == ErrorCode.BACKEND_UNAVAILABLE
        assert "503 from datastore" in result.message

    def test_unexpected_failure_never_raises(self, time_controller):
        datastore = MagicMock()
        datastore.get.side_effect = RuntimeError("boom")
        lifecycle = SubscriptionLifecycle(datastore, time_controller)

        result = lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")

        assert result.error == ErrorCode.BACKEND_UNAVAILABLE


class TestTerminateSubscription:
    """Tests for terminating subscriptions"""

    def test_terminate(self, lifecycle, datastore, accessor, dispatcher, start_time):
        result = lifecycle.terminate_subscription("school-1", "Contract breach", actor_id="admin-1")

        assert result.success
        assert result.terminated_at == start_time
        record = datastore.get("school-1")
        assert record.status == "terminated"
        assert record.termination_reason == "Contract breach"
        assert record.terminated_by == "admin-1"

        snapshot = accessor.peek("school-1")
        assert snapshot.is_terminated
        assert snapshot.status_source.reason == "Contract breach"

        kwargs = dispatcher.publish_lifecycle_event.call_args.kwargs
        assert kwargs["event_type"] == LifecycleEventType.SUBSCRIPTION_TERMINATED
        assert kwargs["payload"]["reason"] == "Contract breach"

    def test_terminated_subscription_reads_terminated_even_with_future_end(self, lifecycle, datastore, time_controller):
        lifecycle.extend_subscription("school-1", 365, actor_id="admin-1")
        lifecycle.terminate_subscription("school-1", "Closed", actor_id="admin-1")

        snapshot = datastore.get("school-1").to_snapshot()
        status = get_subscription_status(snapshot.end_date, snapshot.status_source, now=time_controller.now())
        assert status == SubscriptionStatus.TERMINATED

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_blank_reason_rejected_without_persisting(self, reason, time_controller):
        datastore = MagicMock()
        lifecycle = SubscriptionLifecycle(datastore, time_controller)

        result = lifecycle.terminate_subscription("school-1", reason, actor_id="admin-1")

        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Please provide a reason for termination"
        datastore.mark_terminated.assert_not_called()

    def test_already_terminated(self, lifecycle, datastore):
        result = lifecycle.terminate_subscription("school-closed", "Again", actor_id="admin-1")

        assert result.error == ErrorCode.ALREADY_TERMINATED
        assert datastore.get("school-closed").termination_reason == "Closed"

    def test_unknown_tenant(self, lifecycle):
        assert lifecycle.terminate_subscription("nope", "x", actor_id="admin-1").error == ErrorCode.NOT_FOUND

    def test_reason_is_trimmed(self, lifecycle, datastore):
        lifecycle.terminate_subscription("school-1", "  Closed  ", actor_id="admin-1")
        assert datastore.get("school-1").termination_reason == "Closed"


class TestHistory:
    def test_newest_first(self, lifecycle):
        lifecycle.extend_subscription("school-1", 30, actor_id="admin-1")
        lifecycle.terminate_subscription("school-1", "Closed", actor_id="admin-2")

        history = lifecycle.get_subscription_history("school-1")

        assert [entry.action for entry in history] == [HistoryAction.TERMINATED, HistoryAction.EXTENDED]

    def test_failure_returns_empty_list(self, time_controller):
        datastore = MagicMock()
        datastore.history.side_effect = DatastoreError("down")
        lifecycle = SubscriptionLifecycle(datastore, time_controller)

        assert lifecycle.get_subscription_history("school-1") == []


class BarrierStore(TenantSubscriptionStore):
    """Holds the first two reads until both callers have made them."""

    def __init__(self, parties=2):
        super().__init__()
        self._barrier = threading.Barrier(parties)
        self._reads = 0
        self._reads_lock = threading.Lock()

    def get(self, tenant_id):
        with self._reads_lock:
            self._reads += 1
            gated = self._reads <= self._barrier.parties
        if gated:
            self._barrier.wait(timeout=5)
        return super().get(tenant_id)


class TestConcurrentMutations:
    """Mutations that both pass the terminated check before either writes"""

    @pytest.fixture
    def racing_store(self, start_time):
        store = BarrierStore()
        store.add(TenantSubscriptionRecord(tenant_id="school-1", end_date=start_time + timedelta(days=30)))
        return store

    def test_only_one_termination_wins(self, racing_store, time_controller):
        lifecycle = SubscriptionLifecycle(racing_store, time_controller)

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(lifecycle.terminate_subscription, "school-1", "fraud", "admin-a"),
                pool.submit(lifecycle.terminate_subscription, "school-1", "non-payment", "admin-b"),
            ]
            results = [f.result(timeout=10) for f in futures]

        assert sorted(r.success for r in results) == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.error == ErrorCode.ALREADY_TERMINATED

        winner_reason = "fraud" if results[0].success else "non-payment"
        record = racing_store.get("school-1")
        assert record.termination_reason == winner_reason
        assert [e.reason for e in racing_store.history("school-1")] == [winner_reason]

