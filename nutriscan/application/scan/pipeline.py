"""
Scan pipeline.

Turns one scan event into either a navigation to an existing record or a
new record backed by an optimistic placeholder card.

State machine:
    IDLE -> ADMITTING -> CHECKING_EXISTENCE -> NAVIGATE_EXISTING
                                            -> FETCHING_CATALOG -> FAILED
                                               -> PERSISTING_PLACEHOLDER
                                                  -> AWAITING_USER_ANALYSIS
                                                  -> FAILED

Every admitted run ends in a terminal state; the barcode is released and
any placeholder is rolled back on every failure path.
"""

import asyncio
from typing import Optional

import structlog

from nutriscan.application.products.query_service import recent_products_prefix
from nutriscan.application.scan.existence_resolver import ExistenceResolver
from nutriscan.application.scan.pending_store import PendingProductStore
from nutriscan.application.scan.scan_guard import ScanGuard
from nutriscan.domain.catalog.openfoodfacts_mapper import OpenFoodFactsMapper
from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct
from nutriscan.domain.scan.events import (
    MessageKind,
    NavigateToRecord,
    PendingCreated,
    PendingRemoved,
    PendingUpdated,
    RemovalReason,
    ScanEvent,
    UserMessage,
)
from nutriscan.domain.scan.models import (
    PendingProduct,
    PendingState,
    PipelineState,
    ScanFailure,
    ScanOutcome,
)
from nutriscan.domain.scan.ports import (
    IProductCatalog,
    IProductRecordRepository,
    IScanEventSink,
)
from nutriscan.domain.shared.errors import (
    CatalogNotFoundError,
    CatalogTransientError,
    InfrastructureError,
    InvalidTransitionError,
)
from nutriscan.domain.shared.value_objects import Barcode, PendingId, RecordId, UserId
from nutriscan.infrastructure.cache import TTLCache

logger = structlog.get_logger(__name__)


class ScanPipeline:
    """
    Coordinates admission, existence check, catalog lookup and save.

    Dependencies (injected):
    - guard: ScanGuard - one run per barcode
    - resolver: ExistenceResolver - cached, batched existence checks
    - pending_store: PendingProductStore - placeholder cards
    - catalog: IProductCatalog - remote product lookup
    - repository: IProductRecordRepository - persistent records
    - events: IScanEventSink - UI events
    - cache: TTLCache - shared cache (recent products invalidation)

    Example:
        >>> outcome = await pipeline.handle_scan(
        ...     UserId(value="user_1"),
        ...     Barcode(value="7622210449283"),
        ... )
        >>> if outcome.state == PipelineState.AWAITING_USER_ANALYSIS:
        ...     await pipeline.start_analysis(outcome.local_id)
    """

    def __init__(
        self,
        guard: ScanGuard,
        resolver: ExistenceResolver,
        pending_store: PendingProductStore,
        catalog: IProductCatalog,
        repository: IProductRecordRepository,
        events: IScanEventSink,
        cache: TTLCache,
    ):
        self.guard = guard
        self.resolver = resolver
        self.pending_store = pending_store
        self.catalog = catalog
        self.repository = repository
        self.events = events
        self.cache = cache

    async def handle_scan(self, user_id: UserId, barcode: Barcode) -> ScanOutcome:
        """
        Handle one scan event.

        Workflow:
        1. Admit the barcode (denied scans are dropped without events)
        2. Existence check; found -> navigate and stop
        3. Create placeholder, look up the catalog
        4. Not found / catalog error -> remove placeholder, one message
        5. Show catalog data, save the record
        6. Saved -> confirm placeholder, invalidate caches
        7. Save failed -> remove placeholder, one message

        Args:
            user_id: Scanning user
            barcode: Scanned barcode

        Returns:
            Terminal ScanOutcome. Failures are reported in the outcome and
            through a single UserMessage, never raised.

        Raises:
            asyncio.CancelledError: If the caller cancels the scan; the
                placeholder is rolled back and the barcode released first
        """
        self._enter(barcode, PipelineState.ADMITTING)
        if not self.guard.try_admit(barcode.value, user_id.value):
            return ScanOutcome(barcode=barcode.value, state=PipelineState.IDLE, admitted=False)

        pending: Optional[PendingProduct] = None
        try:
            self._enter(barcode, PipelineState.CHECKING_EXISTENCE)
            existence = await self.resolver.exists(user_id, barcode)
            if existence.found and existence.record_id is not None:
                return await self._navigate_existing(
                    user_id, barcode, existence.record_id, existence.needs_analysis
                )

            self._enter(barcode, PipelineState.FETCHING_CATALOG)
            pending = self.pending_store.create(user_id, barcode)
            await self._publish(PendingCreated(local_id=pending.local_id, barcode=barcode.value))
            self.pending_store.mark_awaiting_catalog(pending.local_id)

            product = await self._lookup_catalog(barcode)

            self._enter(barcode, PipelineState.PERSISTING_PLACEHOLDER)
            display = {
                "product_name": product.product_name,
                "brand": product.brands,
                "image_url": product.image_url,
            }
            self.pending_store.apply_catalog_data(pending.local_id, **display)
            await self._publish(PendingUpdated(local_id=pending.local_id, fields=display))

            ref = await self.repository.save_product_record(user_id, barcode, product)
            awaiting = ref.health_score is None
            self.pending_store.confirm(pending.local_id, ref.record_id, awaiting_ai_analysis=awaiting)

            self.resolver.invalidate(user_id, barcode)
            self.cache.invalidate_prefix(recent_products_prefix(user_id))

            self._enter(barcode, PipelineState.AWAITING_USER_ANALYSIS)
            return ScanOutcome(
                barcode=barcode.value,
                state=PipelineState.AWAITING_USER_ANALYSIS,
                local_id=pending.local_id,
                record_id=ref.record_id,
                needs_analysis=awaiting,
            )

        except CatalogNotFoundError as e:
            logger.info("Product not found in catalog", barcode=barcode.value, reason=str(e))
            return await self._fail(
                barcode,
                pending,
                ScanFailure.CATALOG_NOT_FOUND,
                RemovalReason.CATALOG_NOT_FOUND,
                "Product not found",
                f"Barcode {barcode.value} was not found.",
            )
        except CatalogTransientError as e:
            logger.warning("Catalog lookup failed", barcode=barcode.value, error=str(e))
            return await self._fail(
                barcode,
                pending,
                ScanFailure.CATALOG_TRANSIENT,
                RemovalReason.CATALOG_ERROR,
                "Catalog unavailable",
                "The product catalog could not be reached. Scan again to retry.",
            )
        except InfrastructureError as e:
            logger.error("Scan persistence failed", barcode=barcode.value, error=str(e))
            return await self._fail(
                barcode,
                pending,
                ScanFailure.PERSISTENCE,
                RemovalReason.PERSISTENCE_ERROR,
                "Processing error",
                "The product could not be stored or loaded. Scan again to retry.",
            )
        except Exception:
            logger.exception("Unexpected scan pipeline failure", barcode=barcode.value)
            return await self._fail(
                barcode,
                pending,
                ScanFailure.UNEXPECTED,
                RemovalReason.UNEXPECTED_ERROR,
                "Unexpected error",
                "Product details are not available.",
            )
        except asyncio.CancelledError:
            logger.warning("Scan pipeline cancelled", barcode=barcode.value)
            await self._rollback_cancelled(user_id, barcode, pending)
            raise
        finally:
            self.guard.release(barcode.value)

    async def start_analysis(self, local_id: PendingId) -> NavigateToRecord:
        """
        Hand a confirmed placeholder over to the analysis step.

        Retires the card and asks the UI to open its record.

        Args:
            local_id: Confirmed pending product

        Returns:
            The emitted NavigateToRecord event

        Raises:
            PendingProductNotFoundError: Unknown local_id
            InvalidTransitionError: Card is not CONFIRMED
        """
        retired = self.pending_store.retire(local_id)
        if retired.record_id is None:
            raise InvalidTransitionError(f"Pending product {local_id.value} has no record")

        await self._publish(PendingRemoved(local_id=local_id, reason=RemovalReason.RETIRED))
        navigate = NavigateToRecord(
            record_id=retired.record_id,
            needs_analysis=retired.awaiting_ai_analysis,
            barcode=retired.barcode.value,
        )
        await self._publish(navigate)
        return navigate

    # ═══════════════════════════════════════════════════════════
    # Steps
    # ═══════════════════════════════════════════════════════════

    async def _navigate_existing(
        self,
        user_id: UserId,
        barcode: Barcode,
        record_id: RecordId,
        needs_analysis: bool,
    ) -> ScanOutcome:
        self._enter(barcode, PipelineState.NAVIGATE_EXISTING)

        try:
            await self.repository.touch_scan_history(user_id, record_id)
            self.cache.invalidate_prefix(recent_products_prefix(user_id))
        except InfrastructureError as e:
            logger.warning(
                "Scan history update failed",
                barcode=barcode.value,
                record_id=record_id.value,
                error=str(e),
            )

        await self._publish(
            NavigateToRecord(
                record_id=record_id,
                needs_analysis=needs_analysis,
                barcode=barcode.value,
            )
        )
        return ScanOutcome(
            barcode=barcode.value,
            state=PipelineState.NAVIGATE_EXISTING,
            record_id=record_id,
            needs_analysis=needs_analysis,
        )

    async def _lookup_catalog(self, barcode: Barcode) -> OFFProduct:
        product = await self.catalog.lookup(barcode)
        if not product.has_name():
            raise CatalogNotFoundError(f"Product {barcode.value} has no name")

        logger.debug(
            "Catalog data received",
            barcode=barcode.value,
            completeness=OpenFoodFactsMapper.calculate_completeness(product),
        )
        return product

    async def _fail(
        self,
        barcode: Barcode,
        pending: Optional[PendingProduct],
        failure: ScanFailure,
        reason: RemovalReason,
        title: str,
        text: str,
    ) -> ScanOutcome:
        if pending is not None and self.pending_store.remove(pending.local_id) is not None:
            await self._publish(PendingRemoved(local_id=pending.local_id, reason=reason))

        await self._publish(UserMessage(kind=MessageKind.ERROR, title=title, text=text))

        self._enter(barcode, PipelineState.FAILED, failure=failure.value)
        return ScanOutcome(
            barcode=barcode.value,
            state=PipelineState.FAILED,
            local_id=pending.local_id if pending else None,
            failure=failure,
            message=text,
        )

    async def _rollback_cancelled(
        self, user_id: UserId, barcode: Barcode, pending: Optional[PendingProduct]
    ) -> None:
        # No user message: cancellation comes from the caller, not the scan
        if pending is None:
            return

        current = self.pending_store.get(pending.local_id)
        if current is None or current.state == PendingState.CONFIRMED:
            return

        self.pending_store.remove(pending.local_id)
        # The save may have landed before the cancel
        self.resolver.invalidate(user_id, barcode)
        await self._publish(
            PendingRemoved(local_id=pending.local_id, reason=RemovalReason.CANCELLED)
        )

    async def _publish(self, event: ScanEvent) -> None:
        await self.events.publish(event)

    @staticmethod
    def _enter(barcode: Barcode, state: PipelineState, **extra: object) -> None:
        logger.info("Scan pipeline transition", barcode=barcode.value, state=state.value, **extra)
