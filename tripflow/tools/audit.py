"""
Audit sink for lifecycle transitions.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class AuditEvent(BaseModel):
    """
    Structured record of a status change.

    Written after the change is persisted; losing one never undoes the change.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entity_type: str  # "load" or "trip"
    entity_id: str
    owner_id: str
    action: str
    actor: str
    source: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditSink(ABC):
    """Receives audit events."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None: ...


class NullAuditSink(AuditSink):
    def record(self, event: AuditEvent) -> None:
        return None


class JsonLinesAuditSink(AuditSink):
    """Appends each event as one JSON line to a file."""

    def __init__(self, filepath: Union[str, Path]) -> None:
        self.filepath = Path(filepath)

    def record(self, event: AuditEvent) -> None:
        with open(self.filepath, "a") as f:
            f.write(json.dumps(event.model_dump(mode="json"), default=str) + "\n")
