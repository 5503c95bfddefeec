"""
Scan domain models.

Pending product placeholders, existence results, persistent product
records and pipeline outcomes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from nutriscan.domain.shared.value_objects import (
    Barcode,
    PendingId,
    RecordId,
    UserId,
)


class PendingState(str, Enum):
    """
    Lifecycle state of a pending product.

    CREATED -> AWAITING_CATALOG_DATA -> AWAITING_PERSISTENCE -> CONFIRMED,
    with FAILED reachable from every non-terminal state.
    """

    CREATED = "CREATED"
    AWAITING_CATALOG_DATA = "AWAITING_CATALOG_DATA"
    AWAITING_PERSISTENCE = "AWAITING_PERSISTENCE"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


ALLOWED_PENDING_TRANSITIONS: dict[PendingState, frozenset[PendingState]] = {
    PendingState.CREATED: frozenset({PendingState.AWAITING_CATALOG_DATA, PendingState.FAILED}),
    PendingState.AWAITING_CATALOG_DATA: frozenset(
        {PendingState.AWAITING_PERSISTENCE, PendingState.FAILED}
    ),
    PendingState.AWAITING_PERSISTENCE: frozenset({PendingState.CONFIRMED, PendingState.FAILED}),
    PendingState.CONFIRMED: frozenset(),
    PendingState.FAILED: frozenset(),
}


class PendingProduct(BaseModel):
    """
    Optimistic placeholder card for a product still being resolved.

    Immutable snapshot: the store replaces the whole object on every
    transition, so a projection handed to the UI never changes under it.

    Attributes:
        local_id: Client-local identifier (never sent to the backend)
        user_id: Owner of the scan
        barcode: Scanned barcode
        state: Lifecycle state
        product_name: Display name (populated from catalog data)
        brand: Display brand (populated from catalog data)
        image_url: Display image (populated from catalog data)
        record_id: Persistent record id once confirmed
        awaiting_ai_analysis: True while downstream AI analysis is owed
        created_at: Creation timestamp (UTC)
    """

    model_config = ConfigDict(frozen=True)

    local_id: PendingId = Field(..., description="Local placeholder id")
    user_id: UserId = Field(..., description="Owner of the scan")
    barcode: Barcode = Field(..., description="Scanned barcode")
    state: PendingState = Field(default=PendingState.CREATED, description="Lifecycle state")

    product_name: Optional[str] = Field(None, description="Display name")
    brand: Optional[str] = Field(None, description="Display brand")
    image_url: Optional[str] = Field(None, description="Display image URL")

    record_id: Optional[RecordId] = Field(None, description="Persistent record id")
    awaiting_ai_analysis: bool = Field(default=False, description="AI analysis still owed")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    @property
    def is_loading(self) -> bool:
        """True while catalog data or persistence is outstanding."""
        return self.state in (
            PendingState.CREATED,
            PendingState.AWAITING_CATALOG_DATA,
            PendingState.AWAITING_PERSISTENCE,
        )

    def can_transition_to(self, target: PendingState) -> bool:
        """Check the lifecycle table."""
        return target in ALLOWED_PENDING_TRANSITIONS[self.state]


class RecordRef(BaseModel):
    """
    Reference to an existing persistent product record.

    Carries only what the existence check needs.
    """

    model_config = ConfigDict(frozen=True)

    record_id: RecordId
    health_score: Optional[float] = None


class ExistenceResult(BaseModel):
    """
    Answer to "does a record already exist for (user, barcode)?".

    Example:
        >>> result = ExistenceResult.not_found()
        >>> assert not result.found
        >>> hit = ExistenceResult.from_ref(
        ...     RecordRef(record_id=RecordId(value="rec_1"))
        ... )
        >>> assert hit.needs_analysis
    """

    model_config = ConfigDict(frozen=True)

    found: bool
    record_id: Optional[RecordId] = None
    health_score: Optional[float] = None
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def needs_analysis(self) -> bool:
        """Found but no health score yet."""
        return self.found and self.health_score is None

    @classmethod
    def from_ref(cls, ref: Optional[RecordRef]) -> ExistenceResult:
        """Build from a store lookup result."""
        if ref is None:
            return cls.not_found()
        return cls(found=True, record_id=ref.record_id, health_score=ref.health_score)

    @classmethod
    def not_found(cls) -> ExistenceResult:
        """NotFound result."""
        return cls(found=False)


class ProductRecord(BaseModel):
    """
    Persistent product record as stored for a user.

    health_score stays None until the AI analysis step has run.
    """

    model_config = ConfigDict(frozen=True)

    record_id: RecordId
    user_id: UserId
    barcode: Barcode

    product_name: Optional[str] = None
    brand: Optional[str] = None
    image_url: Optional[str] = None
    ingredients: Optional[str] = None
    nutrition_grade: Optional[str] = None
    nova_group: Optional[str] = None
    ecoscore_grade: Optional[str] = None
    ecoscore_score: Optional[float] = None
    nutriments: dict[str, Optional[float]] = Field(default_factory=dict)

    health_score: Optional[float] = None
    sustainability_score: Optional[float] = None
    is_visually_analyzed: bool = False

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_ref(self) -> RecordRef:
        """Project to a RecordRef."""
        return RecordRef(record_id=self.record_id, health_score=self.health_score)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage/serialization."""
        return self.model_dump()


class ScanHistoryEntry(BaseModel):
    """One row of a user's scan history (upserted per user+record)."""

    model_config = ConfigDict(frozen=True)

    user_id: UserId
    record_id: RecordId
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PipelineState(str, Enum):
    """States of one scan pipeline run."""

    IDLE = "IDLE"
    ADMITTING = "ADMITTING"
    CHECKING_EXISTENCE = "CHECKING_EXISTENCE"
    NAVIGATE_EXISTING = "NAVIGATE_EXISTING"  # Terminal
    FETCHING_CATALOG = "FETCHING_CATALOG"
    PERSISTING_PLACEHOLDER = "PERSISTING_PLACEHOLDER"
    AWAITING_USER_ANALYSIS = "AWAITING_USER_ANALYSIS"  # Terminal, card stays interactive
    FAILED = "FAILED"  # Terminal


class ScanFailure(str, Enum):
    """Why a pipeline ended in FAILED."""

    CATALOG_NOT_FOUND = "CATALOG_NOT_FOUND"
    CATALOG_TRANSIENT = "CATALOG_TRANSIENT"
    PERSISTENCE = "PERSISTENCE"
    UNEXPECTED = "UNEXPECTED"


class ScanOutcome(BaseModel):
    """
    Result of handling one scan event.

    admitted=False with state IDLE means the scan was absorbed by the
    admission guard and produced no events.
    """

    model_config = ConfigDict(frozen=True)

    barcode: str
    state: PipelineState
    admitted: bool = True
    local_id: Optional[PendingId] = None
    record_id: Optional[RecordId] = None
    needs_analysis: bool = False
    failure: Optional[ScanFailure] = None
    message: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        """True for FAILED outcomes."""
        return self.state == PipelineState.FAILED
