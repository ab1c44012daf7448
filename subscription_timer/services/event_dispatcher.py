"""Lifecycle event publishing to Google Cloud Pub/Sub.

Responsibilities:
- Format LifecycleNotification messages
- Publish them to the configured topic
- Manage the Pub/Sub publisher lifecycle
"""

from threading import RLock
from typing import Any, Dict, Optional

from google.cloud import pubsub_v1

from subscription_timer.logging_config import get_logger
from subscription_timer.models.events import LifecycleEventType, LifecycleNotification
from subscription_timer.models.settings import EventsConfig

logger = get_logger(__name__)


class EventDispatcher:
    """Publishes subscription lifecycle events to Pub/Sub.

    Publication failures are logged and reported as False; they never fail
    the mutation that produced the event.

    Args:
        events_config: Pub/Sub settings
        time_controller: Clock used for event timestamps
    """

    def __init__(self, events_config: EventsConfig, time_controller):
        self._lock = RLock()
        self._publisher: Optional[pubsub_v1.PublisherClient] = None
        self._topic_path: Optional[str] = None
        self._enabled = events_config.enabled
        self._config = events_config
        self._time_controller = time_controller

        self._initialize()

    def _initialize(self) -> None:
        if not self._enabled:
            logger.info("event_dispatcher_disabled", message="Lifecycle events are disabled in config")
            return

        try:
            self._publisher = pubsub_v1.PublisherClient()
            self._topic_path = self._publisher.topic_path(self._config.project_id, self._config.topic)
            logger.info(
                "event_dispatcher_initialized",
                project_id=self._config.project_id,
                topic=self._config.topic,
                topic_path=self._topic_path,
            )
        except Exception as e:
            logger.error(
                "event_dispatcher_init_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled and self._publisher is not None

    def publish_lifecycle_event(
        self,
        event_type: LifecycleEventType,
        tenant_id: str,
        actor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Publish a subscription lifecycle event.

        Args:
            event_type: What happened
            tenant_id: Tenant identifier
            actor_id: Who did it
            payload: Event-specific fields

        Returns:
            True if published successfully, False otherwise
        """
        if not self.is_enabled():
            logger.debug("event_dispatcher_disabled", message="Skipping event publication")
            return False

        with self._lock:
            try:
                notification = LifecycleNotification(
                    tenant_id=tenant_id,
                    event_type=event_type,
                    actor_id=actor_id,
                    event_time_millis=self._time_controller.get_current_time_millis(),
                    payload=payload or {},
                )
                message_id = self._publish_notification(notification)

                logger.info(
                    "lifecycle_event_published",
                    event_type=event_type.value,
                    tenant_id=tenant_id,
                    message_id=message_id,
                )
                return True

            except Exception as e:
                logger.error(
                    "lifecycle_event_publish_failed",
                    event_type=event_type.value,
                    tenant_id=tenant_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return False

    def _publish_notification(self, notification: LifecycleNotification) -> str:
        if not self._publisher or not self._topic_path:
            raise RuntimeError("Publisher is not initialized")

        future = self._publisher.publish(
            self._topic_path,
            notification.model_dump_json().encode("utf-8"),
            # Attributes for subscription filters
            event_type=notification.event_type.value,
            tenant_id=notification.tenant_id,
        )
        return future.result(timeout=5.0)

    def shutdown(self) -> None:
        """Release the publisher."""
        with self._lock:
            if self._publisher:
                logger.info("event_dispatcher_shutting_down")
                self._publisher = None
                self._topic_path = None
