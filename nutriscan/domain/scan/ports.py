"""
Ports (Interfaces) for Scan Pipeline Dependencies.

Defines abstract interfaces for the external collaborators used by the
scan pipeline: the product catalog, the product record store and the UI
event sink.

Design Pattern: Ports & Adapters (Hexagonal Architecture)
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct
from nutriscan.domain.scan.events import ScanEvent
from nutriscan.domain.scan.models import ProductRecord, RecordRef
from nutriscan.domain.shared.value_objects import Barcode, RecordId, UserId


@runtime_checkable
class IProductCatalog(Protocol):
    """
    Port for the remote product catalog.

    May be slow (seconds). Lookups are idempotent on the catalog side, so
    a failed lookup is retried simply by rescanning.
    """

    async def lookup(self, barcode: Barcode) -> OFFProduct:
        """
        Look up catalog data for a barcode.

        Args:
            barcode: Product barcode

        Returns:
            Catalog product data

        Raises:
            CatalogNotFoundError: If the catalog has no entry
            CatalogTransientError: On network/server failure
        """
        ...


@runtime_checkable
class IProductRecordRepository(Protocol):
    """
    Port for the persistent product record store.

    Existence lookups are scoped to records that were not created by
    visual analysis (barcode-scanned records only).
    """

    async def find_existing_record(self, user_id: UserId, barcode: Barcode) -> Optional[RecordRef]:
        """
        Point lookup for an existing record.

        Raises:
            PersistenceError: On storage failure
        """
        ...

    async def find_existing_records(
        self, user_id: UserId, barcodes: Sequence[Barcode]
    ) -> dict[str, RecordRef]:
        """
        Bulk lookup used by the coalesced existence check.

        Args:
            user_id: Owner
            barcodes: Barcodes to look up (may contain duplicates)

        Returns:
            Mapping barcode value -> RecordRef for the barcodes found

        Raises:
            PersistenceError: On storage failure
        """
        ...

    async def save_product_record(
        self, user_id: UserId, barcode: Barcode, product: OFFProduct
    ) -> RecordRef:
        """
        Create the record for a newly scanned product and add it to the
        user's scan history.

        Must not be called twice for one pending product.

        Raises:
            PersistenceError: On storage failure
        """
        ...

    async def touch_scan_history(self, user_id: UserId, record_id: RecordId) -> None:
        """Upsert scanned_at for (user, record) in the scan history."""
        ...

    async def get_by_id(self, record_id: RecordId) -> Optional[ProductRecord]:
        """Retrieve a record by id."""
        ...

    async def get_recent(self, user_id: UserId, limit: int = 20) -> list[ProductRecord]:
        """Recent records for a user, most recently scanned first."""
        ...

    async def find_favorites(
        self, user_id: UserId, record_ids: Sequence[RecordId]
    ) -> set[str]:
        """Return the subset of record ids the user marked as favorite."""
        ...


@runtime_checkable
class IScanEventSink(Protocol):
    """
    Port for the UI event sink.

    Receives pendingCreated / pendingUpdated / pendingRemoved /
    navigateToRecord / userMessage events.
    """

    async def publish(self, event: ScanEvent) -> None:
        """Deliver one event. Must not raise into the pipeline."""
        ...
