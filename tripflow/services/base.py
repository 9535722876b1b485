"""
Base service class for all lifecycle services.

Provides common functionality:
- Store and configuration wiring
- Structured logging
- Fire-and-forget side effects (audit, messaging, notifications)
"""

from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

import structlog

from tripflow.core.config import ConfigManager, get_config
from tripflow.data.models import RequestContext
from tripflow.data.store import Store
from tripflow.tools import (
    AuditEvent,
    AuditSink,
    LoadMessage,
    MessagingChannel,
    Notification,
    NotificationDispatcher,
    NullAuditSink,
    NullMessagingChannel,
    NullNotificationDispatcher,
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Base class for lifecycle services.

    Side effects are routed through ``_side_effect`` so a failing collaborator
    is logged and never interrupts the operation that triggered it.
    """

    def __init__(
        self,
        service_name: str,
        store: Store,
        config_manager: Optional[ConfigManager] = None,
        logger: Optional[structlog.BoundLogger] = None,
        audit: Optional[AuditSink] = None,
        messaging: Optional[MessagingChannel] = None,
        notifications: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the base service.

        Args:
            service_name: Name of the service (e.g., "load_lifecycle")
            store: Backing store for loads, trips and fleet records
            config_manager: Optional config manager (defaults to global instance)
            logger: Optional structured logger
            audit: Audit sink for transition events
            messaging: Channel for system messages on a load
            notifications: Driver notification dispatcher
            clock: Returns the current time; injectable for tests
        """
        self.service_name = service_name
        self.store = store
        self.config_manager = config_manager or get_config()
        self.logger = logger or structlog.get_logger(service_name=service_name)
        self.audit = audit or NullAuditSink()
        self.messaging = messaging or NullMessagingChannel()
        self.notifications = notifications or NullNotificationDispatcher()
        self.clock = clock or utc_now

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        return self.clock().date()

    def _side_effect(self, effect: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            self.logger.warning("side_effect_failed", effect=effect, error=str(e))

    def record_transition(
        self,
        ctx: RequestContext,
        entity_type: str,
        entity_id: str,
        action: str,
        previous_status: Optional[str],
        new_status: Optional[str],
        **metadata: Any,
    ) -> None:
        """
        Log a status change and hand it to the audit sink.

        Args:
            ctx: Caller context
            entity_type: "load" or "trip"
            entity_id: Id of the changed record
            action: Operation name, e.g. "start_loading"
            previous_status: Status before the change
            new_status: Status after the change
            **metadata: Extra key/values stored on the event
        """
        event = AuditEvent(
            timestamp=self.now(),
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=ctx.owner_id,
            action=action,
            actor=ctx.actor,
            source=ctx.source,
            previous_status=previous_status,
            new_status=new_status,
            metadata=metadata,
        )
        self.logger.info(
            "status_transition",
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
        )
        self._side_effect("audit", self.audit.record, event)

    def post_message(self, ctx: RequestContext, load_id: str, text: str) -> None:
        self._side_effect(
            "messaging",
            self.messaging.post,
            LoadMessage(owner_id=ctx.owner_id, load_id=load_id, text=text),
        )

    def notify(self, notification: Notification) -> None:
        self._side_effect("notification", self.notifications.notify, notification)

    def __repr__(self) -> str:
        """String representation of the service."""
        return f"{self.__class__.__name__}(service_name='{self.service_name}')"
