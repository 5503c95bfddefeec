"""
Per-barcode admission guard.

At most one scan pipeline may run for a given barcode at a time. The
admission map has a single writer: every check-and-set happens inside one
critical section, so two scans can never both observe "not admitted".
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

import structlog

from nutriscan.domain.shared.errors import AdmissionRejectedError

logger = structlog.get_logger(__name__)

# (barcode, user_id) -> whether that user already has a card for the barcode
PendingLookup = Callable[[str, Optional[str]], bool]


class ScanGuard:
    """
    Tracks barcodes currently being processed.

    Example:
        >>> guard = ScanGuard()
        >>> guard.try_admit("7622210449283")
        True
        >>> guard.try_admit("7622210449283")
        False
        >>> guard.release("7622210449283")
    """

    def __init__(self, has_pending: Optional[PendingLookup] = None) -> None:
        """
        Initialize guard.

        Args:
            has_pending: Predicate telling whether the scanning user already
                has a pending product card for a barcode; such scans are
                refused too
        """
        self._has_pending = has_pending
        self._admitted: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def try_admit(self, barcode: str, user_id: Optional[str] = None) -> bool:
        """
        Admit a barcode for processing.

        Args:
            barcode: Barcode value
            user_id: Scanning user; the pending-card check is limited to
                this user's cards (any user's when None)

        Returns:
            True if admitted (caller must release), False if the barcode is
            in flight or the user already has a pending card for it
        """
        with self._lock:
            if barcode in self._admitted:
                logger.info("Admission denied, barcode in flight", barcode=barcode)
                return False

            if self._has_pending is not None and self._has_pending(barcode, user_id):
                logger.info(
                    "Admission denied, pending card exists", barcode=barcode, user_id=user_id
                )
                return False

            self._admitted[barcode] = datetime.now(timezone.utc)

        logger.debug("Barcode admitted", barcode=barcode)
        return True

    def release(self, barcode: str) -> None:
        """
        Release an admitted barcode.

        Args:
            barcode: Barcode value previously admitted
        """
        with self._lock:
            admitted_at = self._admitted.pop(barcode, None)

        if admitted_at is None:
            logger.warning("Release of barcode that was not admitted", barcode=barcode)
            return

        held_ms = (datetime.now(timezone.utc) - admitted_at).total_seconds() * 1000
        logger.debug("Barcode released", barcode=barcode, held_ms=round(held_ms, 2))

    @contextmanager
    def admit(self, barcode: str, user_id: Optional[str] = None) -> Iterator[None]:
        """
        Scoped admission: release is guaranteed on every exit path.

        Raises:
            AdmissionRejectedError: If the barcode cannot be admitted

        Example:
            >>> with guard.admit("7622210449283"):
            ...     ...  # process the scan
        """
        if not self.try_admit(barcode, user_id):
            raise AdmissionRejectedError(barcode)
        try:
            yield
        finally:
            self.release(barcode)

    def is_admitted(self, barcode: str) -> bool:
        """Check whether a barcode is in flight."""
        with self._lock:
            return barcode in self._admitted

    def in_flight(self) -> dict[str, datetime]:
        """Snapshot of admitted barcodes and their admission time."""
        with self._lock:
            return dict(self._admitted)

    def reset(self) -> None:
        """Forget every admission (test isolation)."""
        with self._lock:
            self._admitted.clear()
