"""
Domain exceptions.

Typed exceptions for explicit error handling across the scan core.
"""

from __future__ import annotations

from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    Allows catching all domain errors with single except clause.
    """

    pass


# ═══════════════════════════════════════════════════════════
# SCAN DOMAIN EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ScanDomainError(DomainError):
    """Base exception for scan domain."""

    pass


class AdmissionRejectedError(ScanDomainError):
    """
    Barcode already being processed.

    Not a failure: raised by ScanGuard.admit() when the barcode is in
    flight or already has a pending card. The pipeline absorbs it
    silently.

    Example:
        >>> raise AdmissionRejectedError("7622210449283")
    """

    def __init__(self, barcode: str) -> None:
        super().__init__(f"Barcode {barcode} is already being processed")
        self.barcode = barcode


class CatalogNotFoundError(ScanDomainError):
    """
    Barcode not found in the product catalog.

    Raised when:
    - OpenFoodFacts has no data for barcode
    - Catalog entry has no product name

    Example:
        >>> raise CatalogNotFoundError("Barcode 123456789 not found")
    """

    pass


class PendingProductNotFoundError(ScanDomainError):
    """
    Pending product not found.

    Raised when a local id does not match any pending card (already
    removed or retired).
    """

    pass


class InvalidTransitionError(ScanDomainError):
    """
    Pending product lifecycle transition not allowed.

    Example:
        >>> raise InvalidTransitionError("CONFIRMED -> AWAITING_PERSISTENCE")
    """

    pass


# ═══════════════════════════════════════════════════════════
# VALIDATION EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ValidationError(DomainError):
    """
    Input validation failed.

    Raised when:
    - Invalid input format
    - Missing required fields
    - Out of range values

    Example:
        >>> raise ValidationError("User ID cannot be empty")
    """

    pass


# ═══════════════════════════════════════════════════════════
# EXTERNAL SERVICE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ExternalServiceError(DomainError):
    """
    External service call failed.

    Base class for all external service errors.
    """

    pass


class CatalogTransientError(ExternalServiceError):
    """
    Catalog lookup failed for a transient reason.

    Raised when:
    - Network error
    - Catalog returned a server error
    - Service unavailable

    Recoverable by rescanning.

    Example:
        >>> raise CatalogTransientError("OpenFoodFacts API error: 503")
    """

    pass


class TimeoutError(CatalogTransientError):  # noqa: A001
    """
    Catalog call timed out.

    Example:
        >>> raise TimeoutError("OpenFoodFacts API timeout")
    """

    pass


# ═══════════════════════════════════════════════════════════
# INFRASTRUCTURE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class InfrastructureError(DomainError):
    """
    Infrastructure layer error.

    Base class for database, cache, etc. errors.
    """

    pass


class PersistenceError(InfrastructureError):
    """
    Product record store operation failed.

    Raised when:
    - Connection lost
    - Query failed
    - Write rejected

    Example:
        >>> raise PersistenceError("MongoDB connection lost")
    """

    pass


class CacheError(InfrastructureError):
    """Cache operation failed."""

    pass


class BatchContractViolationError(InfrastructureError):
    """
    Batched query returned a result list of the wrong length, or no list.

    Delivered to every waiter of the batch window, never truncated.

    Example:
        >>> raise BatchContractViolationError("existence-user_1", expected=3, actual=2)
    """

    def __init__(self, batch_key: str, expected: int, actual: Optional[int]) -> None:
        got = "no result list" if actual is None else actual
        super().__init__(f"Batch '{batch_key}' expected {expected} results, got {got}")
        self.batch_key = batch_key
        self.expected = expected
        self.actual = actual
