"""
Shared value objects.

Immutable, validated domain primitives.
Following DDD value object pattern.
"""

from __future__ import annotations

import re
import uuid
from pydantic import BaseModel, Field, field_validator, ConfigDict


class UserId(BaseModel):
    """
    User ID value object.

    Wraps string ID with validation and type safety.

    Example:
        >>> user_id = UserId(value="user_123")
        >>> assert str(user_id) == "user_123"
        >>> user_id2 = UserId.from_string("user_456")
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, description="User identifier")

    @field_validator("value")
    @classmethod
    def not_empty(cls, v: str) -> str:
        """Ensure not empty or whitespace."""
        if not v.strip():
            raise ValueError("UserId cannot be empty or whitespace")
        return v.strip()

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"UserId('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def from_string(cls, s: str) -> UserId:
        """Create from string."""
        return cls(value=s)


class Barcode(BaseModel):
    """
    Product barcode value object.

    Validates barcode format (8-14 digits, EAN-8 to GTIN-14).
    Used for catalog lookups and as the scan deduplication key.

    Example:
        >>> barcode = Barcode(value="7622210449283")
        >>> assert len(barcode.value) == 13
        >>> assert barcode.is_valid()
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., pattern=r"^\d{8,14}$", description="Barcode digits")

    @field_validator("value", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        """Scanners often append a trailing newline."""
        if isinstance(v, str):
            return v.strip()
        return v

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"Barcode('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    def is_valid(self) -> bool:
        """
        Validate barcode format.

        Returns:
            True if valid (8-14 digits)
        """
        return bool(re.match(r"^\d{8,14}$", self.value))

    @classmethod
    def from_string(cls, s: str) -> Barcode:
        """Create from string."""
        return cls(value=s)


class PendingId(BaseModel):
    """
    Local id of a placeholder card shown while a scan is being saved.

    Lives only in the pending store and in UI events; the record store
    never sees it. A card keeps its id from creation until it is removed
    or retired, even after it learns its RecordId.

    Example:
        >>> PendingId.generate().value  # doctest: +SKIP
        'pending_3f9a0c1b2d4e'
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(
        ...,
        pattern=r"^pending_[a-f0-9]{12}$",
        description="Pending product identifier",
    )

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"PendingId('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def generate(cls) -> PendingId:
        """Fresh card id: "pending_" plus 12 random hex digits."""
        random_part = uuid.uuid4().hex[:12]
        return cls(value=f"pending_{random_part}")

    @classmethod
    def from_string(cls, s: str) -> PendingId:
        """Create from string."""
        return cls(value=s)


class RecordId(BaseModel):
    """
    Id of a saved product record.

    A uuid4 string assigned by the record store when the product is first
    saved. Carried by confirmed cards, existence answers and
    NavigateToRecord.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, description="Record identifier")

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"RecordId('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def generate(cls) -> RecordId:
        """Fresh uuid4 record id."""
        return cls(value=str(uuid.uuid4()))

    @classmethod
    def from_string(cls, s: str) -> RecordId:
        """Create from string."""
        return cls(value=s)
