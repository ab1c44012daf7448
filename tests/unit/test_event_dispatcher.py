"""Unit tests for EventDispatcher service."""
import json
from unittest.mock import Mock, patch

import pytest

from subscription_timer.models import EventsConfig, LifecycleEventType
from subscription_timer.services.event_dispatcher import EventDispatcher

TOPIC_PATH = "projects/local-project/topics/subscription-lifecycle"


@pytest.fixture
def enabled_config():
    return EventsConfig(enabled=True, project_id="local-project", topic="subscription-lifecycle")


def make_publisher(mock_publisher_class, result="message-id-1"):
    mock_publisher = Mock()
    mock_future = Mock()
    mock_future.result.return_value = result
    mock_publisher.publish.return_value = mock_future
    mock_publisher.topic_path.return_value = TOPIC_PATH
    mock_publisher_class.return_value = mock_publisher
    return mock_publisher


class TestEventDispatcherInitialization:
    """Test EventDispatcher initialization and configuration."""

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_dispatcher_initializes_when_enabled(self, mock_publisher_class, enabled_config, time_controller):
        """Test dispatcher initializes when events are enabled in config."""
        mock_publisher = make_publisher(mock_publisher_class)

        dispatcher = EventDispatcher(enabled_config, time_controller)

        assert dispatcher.is_enabled()
        mock_publisher_class.assert_called_once()
        mock_publisher.topic_path.assert_called_once_with("local-project", "subscription-lifecycle")

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_dispatcher_disabled_by_default(self, mock_publisher_class, time_controller):
        """Test no publisher is created when events are disabled."""
        dispatcher = EventDispatcher(EventsConfig(), time_controller)

        assert not dispatcher.is_enabled()
        mock_publisher_class.assert_not_called()

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_init_failure_disables_dispatcher(self, mock_publisher_class, enabled_config, time_controller):
        """Missing credentials disable publishing instead of failing startup."""
        mock_publisher_class.side_effect = Exception("no credentials")

        dispatcher = EventDispatcher(enabled_config, time_controller)

        assert not dispatcher.is_enabled()


class TestEventPublishing:
    """Test event publishing functionality."""

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_publish_lifecycle_event_success(self, mock_publisher_class, enabled_config, time_controller):
        """successful lifecycle event publishing"""
        mock_publisher = make_publisher(mock_publisher_class)
        dispatcher = EventDispatcher(enabled_config, time_controller)

        result = dispatcher.publish_lifecycle_event(
            event_type=LifecycleEventType.SUBSCRIPTION_EXTENDED,
            tenant_id="school-1",
            actor_id="admin-1",
            payload={"days_added": 30},
        )

        assert result is True
        mock_publisher.publish.assert_called_once()

    def test_publish_event_when_disabled(self, time_controller):
        """Test publishing when dispatcher is disabled returns False."""
        dispatcher = EventDispatcher(EventsConfig(enabled=False), time_controller)

        result = dispatcher.publish_lifecycle_event(
            event_type=LifecycleEventType.SUBSCRIPTION_TERMINATED,
            tenant_id="school-1",
        )

        assert result is False

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_publish_event_handles_exceptions(self, mock_publisher_class, enabled_config, time_controller):
        """Test that publishing handles exceptions gracefully."""
        mock_publisher = make_publisher(mock_publisher_class)
        mock_publisher.publish.return_value.result.side_effect = Exception("Pub/Sub error")
        dispatcher = EventDispatcher(enabled_config, time_controller)

        result = dispatcher.publish_lifecycle_event(
            event_type=LifecycleEventType.SUBSCRIPTION_TERMINATED,
            tenant_id="school-1",
        )

        assert result is False


class TestNotificationFormat:
    """Test that notifications are formatted correctly."""

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_lifecycle_notification_format(self, mock_publisher_class, enabled_config, time_controller):
        """Test that lifecycle notifications have correct structure."""
        mock_publisher = make_publisher(mock_publisher_class)
        dispatcher = EventDispatcher(enabled_config, time_controller)

        dispatcher.publish_lifecycle_event(
            event_type=LifecycleEventType.SUBSCRIPTION_TERMINATED,
            tenant_id="school-1",
            actor_id="admin-1",
            payload={"reason": "Closed"},
        )

        call_args = mock_publisher.publish.call_args
        assert call_args[0][0] == TOPIC_PATH

        message = json.loads(call_args[0][1].decode("utf-8"))
        assert message["version"] == "1.0"
        assert message["tenant_id"] == "school-1"
        assert message["event_type"] == "SUBSCRIPTION_TERMINATED"
        assert message["actor_id"] == "admin-1"
        assert message["event_time_millis"] == time_controller.get_current_time_millis()
        assert message["payload"] == {"reason": "Closed"}

        attrs = call_args[1]
        assert attrs["event_type"] == "SUBSCRIPTION_TERMINATED"
        assert attrs["tenant_id"] == "school-1"


class TestEventDispatcherShutdown:
    """Test dispatcher shutdown."""

    @patch('subscription_timer.services.event_dispatcher.pubsub_v1.PublisherClient')
    def test_shutdown_cleans_up_resources(self, mock_publisher_class, enabled_config, time_controller):
        """Test that shutdown properly cleans up resources."""
        make_publisher(mock_publisher_class)
        dispatcher = EventDispatcher(enabled_config, time_controller)
        assert dispatcher._publisher is not None

        dispatcher.shutdown()

        assert dispatcher._publisher is None
        assert dispatcher._topic_path is None
        assert not dispatcher.is_enabled()
