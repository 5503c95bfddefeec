"""In-memory implementation of the product record repository.

Default backend for development and tests. Records are unique per
(user, barcode); saving an existing pair updates it in place, like the
production upsert.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from nutriscan.domain.catalog.openfoodfacts_mapper import OpenFoodFactsMapper
from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct
from nutriscan.domain.scan.models import ProductRecord, RecordRef, ScanHistoryEntry
from nutriscan.domain.shared.value_objects import Barcode, RecordId, UserId

logger = structlog.get_logger(__name__)


class InMemoryProductRepository:
    """
    In-memory implementation of IProductRecordRepository.

    Stores records in dictionaries for fast access.
    NOT suitable for production (data lost on restart).
    """

    def __init__(self) -> None:
        """Initialize empty repository."""
        self._records: dict[str, ProductRecord] = {}
        # (user_id, record_id) -> history entry
        self._history: dict[tuple[str, str], ScanHistoryEntry] = {}
        # user_id -> favorite record ids
        self._favorites: dict[str, set[str]] = {}

    def _find(self, user_id: UserId, barcode: Barcode) -> Optional[ProductRecord]:
        for record in self._records.values():
            if (
                record.user_id == user_id
                and record.barcode == barcode
                and not record.is_visually_analyzed
            ):
                return record
        return None

    async def find_existing_record(self, user_id: UserId, barcode: Barcode) -> Optional[RecordRef]:
        """Point lookup for a barcode-scanned record."""
        record = self._find(user_id, barcode)
        return record.to_ref() if record else None

    async def find_existing_records(
        self, user_id: UserId, barcodes: Sequence[Barcode]
    ) -> dict[str, RecordRef]:
        """Bulk lookup for the coalesced existence check."""
        found: dict[str, RecordRef] = {}
        for barcode in set(barcodes):
            record = self._find(user_id, barcode)
            if record is not None:
                found[barcode.value] = record.to_ref()
        return found

    async def save_product_record(
        self, user_id: UserId, barcode: Barcode, product: OFFProduct
    ) -> RecordRef:
        """Upsert the record for (user, barcode) and touch the scan history."""
        fields = OpenFoodFactsMapper.to_record_fields(product)
        now = datetime.now(timezone.utc)

        existing = self._find(user_id, barcode)
        if existing is not None:
            record = existing.model_copy(update={**fields, "updated_at": now})
        else:
            record = ProductRecord(
                record_id=RecordId.generate(),
                user_id=user_id,
                barcode=barcode,
                created_at=now,
                updated_at=now,
                **fields,
            )

        self._records[record.record_id.value] = record
        await self.touch_scan_history(user_id, record.record_id)

        logger.debug(
            "Product record saved",
            record_id=record.record_id.value,
            barcode=barcode.value,
            updated=existing is not None,
        )
        return record.to_ref()

    async def touch_scan_history(self, user_id: UserId, record_id: RecordId) -> None:
        """Upsert scanned_at for (user, record)."""
        self._history[(user_id.value, record_id.value)] = ScanHistoryEntry(
            user_id=user_id, record_id=record_id
        )

    async def get_by_id(self, record_id: RecordId) -> Optional[ProductRecord]:
        """Retrieve a record by id."""
        return self._records.get(record_id.value)

    async def get_recent(self, user_id: UserId, limit: int = 20) -> list[ProductRecord]:
        """Records from the user's scan history, newest scan first."""
        entries = sorted(
            (e for (uid, _), e in self._history.items() if uid == user_id.value),
            key=lambda e: e.scanned_at,
            reverse=True,
        )
        recent: list[ProductRecord] = []
        for entry in entries[:limit]:
            record = self._records.get(entry.record_id.value)
            if record is not None:
                recent.append(record)
        return recent

    async def find_favorites(self, user_id: UserId, record_ids: Sequence[RecordId]) -> set[str]:
        """Subset of record_ids marked favorite by the user."""
        favorites = self._favorites.get(user_id.value, set())
        return {rid.value for rid in record_ids if rid.value in favorites}

    # Helpers used by tests and by the analysis step

    async def add_favorite(self, user_id: UserId, record_id: RecordId) -> None:
        """Mark a record as favorite."""
        self._favorites.setdefault(user_id.value, set()).add(record_id.value)

    async def set_health_score(self, record_id: RecordId, health_score: float) -> None:
        """Store the AI health score for a record."""
        record = self._records[record_id.value]
        self._records[record_id.value] = record.model_copy(
            update={"health_score": health_score, "updated_at": datetime.now(timezone.utc)}
        )

    def count(self) -> int:
        """Number of stored records."""
        return len(self._records)

    def history_for(self, user_id: UserId) -> list[ScanHistoryEntry]:
        """Scan history rows for a user."""
        return [e for (uid, _), e in self._history.items() if uid == user_id.value]

    def clear(self) -> None:
        """Clear all data (for testing)."""
        self._records.clear()
        self._history.clear()
        self._favorites.clear()
