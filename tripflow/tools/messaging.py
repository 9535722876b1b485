"""Messaging channel used to post system messages into a load's conversation."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class LoadMessage(BaseModel):
    owner_id: str
    load_id: str
    text: str


class MessagingChannel(ABC):
    @abstractmethod
    def post(self, message: LoadMessage) -> None: ...


class NullMessagingChannel(MessagingChannel):
    def post(self, message: LoadMessage) -> None:
        return None
