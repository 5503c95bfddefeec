"""
Pending product store.

Holds the optimistic placeholder cards shown while a scanned product is
resolved and saved. Every change replaces the stored snapshot and is
checked against the lifecycle table in ALLOWED_PENDING_TRANSITIONS.
"""

import threading
from typing import Optional

import structlog

from nutriscan.domain.scan.models import PendingProduct, PendingState
from nutriscan.domain.shared.errors import (
    InvalidTransitionError,
    PendingProductNotFoundError,
)
from nutriscan.domain.shared.value_objects import Barcode, PendingId, RecordId, UserId

logger = structlog.get_logger(__name__)


class PendingProductStore:
    """
    Newest-first collection of pending products.

    Example:
        >>> store = PendingProductStore()
        >>> pending = store.create(user_id, barcode)
        >>> store.mark_awaiting_catalog(pending.local_id)
        >>> store.apply_catalog_data(pending.local_id, "Choco Bar", "Acme", None)
        >>> store.confirm(pending.local_id, record_id, awaiting_ai_analysis=True)
    """

    def __init__(self) -> None:
        # Insertion order is oldest first; snapshot() reverses it
        self._items: dict[str, PendingProduct] = {}
        self._lock = threading.Lock()

    # ═══════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════

    def create(self, user_id: UserId, barcode: Barcode) -> PendingProduct:
        """
        Create a placeholder in state CREATED.

        Args:
            user_id: Owner of the scan
            barcode: Scanned barcode

        Returns:
            The new PendingProduct
        """
        pending = PendingProduct(
            local_id=PendingId.generate(),
            user_id=user_id,
            barcode=barcode,
        )
        with self._lock:
            self._items[pending.local_id.value] = pending

        logger.info(
            "Pending product created",
            local_id=pending.local_id.value,
            barcode=barcode.value,
        )
        return pending

    def mark_awaiting_catalog(self, local_id: PendingId) -> PendingProduct:
        """CREATED -> AWAITING_CATALOG_DATA."""
        return self._transition(local_id, PendingState.AWAITING_CATALOG_DATA)

    def apply_catalog_data(
        self,
        local_id: PendingId,
        product_name: Optional[str],
        brand: Optional[str],
        image_url: Optional[str],
    ) -> PendingProduct:
        """
        Store display fields and move to AWAITING_PERSISTENCE.

        Args:
            local_id: Pending product id
            product_name: Name from the catalog
            brand: Brand from the catalog
            image_url: Image from the catalog

        Returns:
            Updated PendingProduct
        """
        return self._transition(
            local_id,
            PendingState.AWAITING_PERSISTENCE,
            product_name=product_name,
            brand=brand,
            image_url=image_url,
        )

    def confirm(
        self,
        local_id: PendingId,
        record_id: RecordId,
        awaiting_ai_analysis: bool = True,
    ) -> PendingProduct:
        """
        Mark the placeholder as backed by a persistent record.

        The card stays visible until retired.
        """
        return self._transition(
            local_id,
            PendingState.CONFIRMED,
            record_id=record_id,
            awaiting_ai_analysis=awaiting_ai_analysis,
        )

    def remove(self, local_id: PendingId) -> Optional[PendingProduct]:
        """
        Drop a placeholder (rollback).

        Returns:
            The removed product, or None if it was already gone
        """
        with self._lock:
            removed = self._items.pop(local_id.value, None)

        if removed is not None:
            logger.info(
                "Pending product removed",
                local_id=local_id.value,
                state=removed.state.value,
            )
        return removed

    def retire(self, local_id: PendingId) -> PendingProduct:
        """
        Remove a CONFIRMED placeholder once it is handed over.

        Raises:
            PendingProductNotFoundError: Unknown local_id
            InvalidTransitionError: Product is not CONFIRMED
        """
        with self._lock:
            current = self._items.get(local_id.value)
            if current is None:
                raise PendingProductNotFoundError(f"Pending product {local_id.value} not found")
            if current.state != PendingState.CONFIRMED:
                raise InvalidTransitionError(
                    f"Cannot retire pending product in state {current.state.value}"
                )
            del self._items[local_id.value]

        logger.info(
            "Pending product retired",
            local_id=local_id.value,
            record_id=current.record_id.value if current.record_id else None,
        )
        return current

    def _transition(
        self, local_id: PendingId, target: PendingState, **updates: object
    ) -> PendingProduct:
        with self._lock:
            current = self._items.get(local_id.value)
            if current is None:
                raise PendingProductNotFoundError(f"Pending product {local_id.value} not found")
            if not current.can_transition_to(target):
                raise InvalidTransitionError(
                    f"Invalid transition {current.state.value} -> {target.value} "
                    f"for {local_id.value}"
                )
            updated = current.model_copy(update={**updates, "state": target})
            self._items[local_id.value] = updated

        logger.debug(
            "Pending product transition",
            local_id=local_id.value,
            from_state=current.state.value,
            to_state=target.value,
        )
        return updated

    # ═══════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════

    def get(self, local_id: PendingId) -> Optional[PendingProduct]:
        """Get a pending product by id."""
        with self._lock:
            return self._items.get(local_id.value)

    def snapshot(self, user_id: Optional[UserId] = None) -> list[PendingProduct]:
        """
        Snapshot of pending products, newest first.

        Args:
            user_id: Restrict to one user (None for all)
        """
        with self._lock:
            items = list(self._items.values())
        items.reverse()
        if user_id is not None:
            items = [p for p in items if p.user_id == user_id]
        return items

    def has_barcode(self, barcode: str, user_id: Optional[str] = None) -> bool:
        """True if a placeholder exists for the barcode (of user_id, if given)."""
        with self._lock:
            return any(
                p.barcode.value == barcode and (user_id is None or p.user_id.value == user_id)
                for p in self._items.values()
            )

    def find_by_barcode(self, user_id: UserId, barcode: Barcode) -> Optional[PendingProduct]:
        """Placeholder for (user, barcode), if any."""
        with self._lock:
            for pending in self._items.values():
                if pending.user_id == user_id and pending.barcode == barcode:
                    return pending
        return None

    def count(self) -> int:
        """Number of placeholders."""
        with self._lock:
            return len(self._items)

    # ═══════════════════════════════════════════════════════════
    # Reset
    # ═══════════════════════════════════════════════════════════

    def clear_user(self, user_id: UserId) -> list[PendingProduct]:
        """
        Drop every placeholder of a user (sign-out).

        Returns:
            The removed products
        """
        with self._lock:
            removed = [p for p in self._items.values() if p.user_id == user_id]
            for pending in removed:
                del self._items[pending.local_id.value]

        if removed:
            logger.info("Pending products cleared", user_id=user_id.value, count=len(removed))
        return removed

    def reset(self) -> None:
        """Clear everything (test isolation)."""
        with self._lock:
            self._items.clear()
