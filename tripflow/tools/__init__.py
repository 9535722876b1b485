"""
Collaborator contracts for side effects.

This module provides:
- Audit: Transition event sink
- Messaging: System messages on a load's conversation
- Notifications: Driver-facing trip and load notices
"""

from .audit import AuditEvent, AuditSink, JsonLinesAuditSink, NullAuditSink
from .messaging import LoadMessage, MessagingChannel, NullMessagingChannel
from .notifications import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
    NullNotificationDispatcher,
)

__all__ = [
    "AuditEvent",
    "AuditSink",
    "JsonLinesAuditSink",
    "NullAuditSink",
    "LoadMessage",
    "MessagingChannel",
    "NullMessagingChannel",
    "Notification",
    "NotificationDispatcher",
    "NotificationKind",
    "NullNotificationDispatcher",
]
