"""
UI-facing scan events.

Emitted by the scan pipeline; consumed by whatever renders the pending
cards and performs navigation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from nutriscan.domain.shared.value_objects import PendingId, RecordId


class ScanEvent(BaseModel):
    """Base class for all UI-facing scan events."""

    model_config = ConfigDict(frozen=True)

    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        """Event name, e.g. 'PendingCreated'."""
        return type(self).__name__


class PendingCreated(ScanEvent):
    """A placeholder card appeared."""

    local_id: PendingId
    barcode: str


class PendingUpdated(ScanEvent):
    """Display fields or state of a placeholder card changed."""

    local_id: PendingId
    fields: dict[str, Any] = Field(default_factory=dict)


class RemovalReason(str, Enum):
    """Why a placeholder card left the visible set."""

    CATALOG_NOT_FOUND = "CATALOG_NOT_FOUND"
    CATALOG_ERROR = "CATALOG_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    CANCELLED = "CANCELLED"  # Scan task cancelled by its caller
    RETIRED = "RETIRED"  # Confirmed card handed over to analysis or recents
    CLEARED = "CLEARED"  # User signed out


class PendingRemoved(ScanEvent):
    """A placeholder card was removed."""

    local_id: PendingId
    reason: RemovalReason


class NavigateToRecord(ScanEvent):
    """Open the detail view of a persistent record."""

    record_id: RecordId
    needs_analysis: bool
    barcode: Optional[str] = None


class MessageKind(str, Enum):
    """Severity of a user-facing message."""

    INFO = "info"
    ERROR = "error"


class UserMessage(ScanEvent):
    """A single user-facing alert."""

    kind: MessageKind
    title: str
    text: str
