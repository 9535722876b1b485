"""
Driver notifications.

Delivery (push, SMS) happens outside this package; services only describe
what happened.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class NotificationKind(str, Enum):
    TRIP_ASSIGNED = "trip_assigned"
    LOAD_ADDED = "load_added"
    LOAD_REMOVED = "load_removed"
    DELIVERY_ORDER_CHANGED = "delivery_order_changed"


class Notification(BaseModel):
    kind: NotificationKind
    owner_id: str
    driver_id: str
    trip_id: str
    trip_number: str
    load_id: Optional[str] = None
    load_number: Optional[str] = None


class NotificationDispatcher(ABC):
    @abstractmethod
    def notify(self, notification: Notification) -> None: ...


class NullNotificationDispatcher(NotificationDispatcher):
    def notify(self, notification: Notification) -> None:
        return None
