"""
Scan service wiring.

Builds the cache, batcher, guard, pending store and the services that use
them as one explicitly constructed unit. Created once at process start and
passed to whoever handles scans; reset() restores a clean state for tests.

Repository selection follows REPOSITORY_BACKEND:
- inmemory: InMemoryProductRepository (default, fast, transient)
- mongodb: ProductRepositoryMongo (requires MONGODB_URI)
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient

from nutriscan.application.products.query_service import (
    ProductQueryService,
    recent_products_prefix,
)
from nutriscan.application.scan.existence_resolver import ExistenceResolver
from nutriscan.application.scan.pending_store import PendingProductStore
from nutriscan.application.scan.pipeline import ScanPipeline
from nutriscan.application.scan.scan_guard import ScanGuard
from nutriscan.domain.scan.events import PendingRemoved, RemovalReason
from nutriscan.domain.scan.models import PendingProduct
from nutriscan.domain.scan.ports import (
    IProductCatalog,
    IProductRecordRepository,
    IScanEventSink,
)
from nutriscan.domain.shared.value_objects import UserId
from nutriscan.infrastructure.cache import RequestBatcher, TTLCache
from nutriscan.infrastructure.config import ScanSettings
from nutriscan.infrastructure.database.product_repository_mongo import ProductRepositoryMongo
from nutriscan.infrastructure.events import InMemoryScanEventBus
from nutriscan.infrastructure.logging_config import configure_logging
from nutriscan.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient
from nutriscan.infrastructure.persistence.in_memory_product_repository import (
    InMemoryProductRepository,
)

logger = structlog.get_logger(__name__)


def create_product_repository(
    settings: ScanSettings,
) -> tuple[IProductRecordRepository, Optional["AsyncIOMotorClient[Any]"]]:
    """
    Create the record repository selected by settings.

    Returns:
        (repository, motor client or None). The client must be closed by
        the caller.

    Raises:
        ValueError: If mongodb is selected but MONGODB_URI is not set
    """
    if settings.repository_backend == "mongodb":
        if not settings.mongodb_uri:
            raise ValueError(
                "REPOSITORY_BACKEND=mongodb but MONGODB_URI not set. "
                "Set MONGODB_URI in .env or use REPOSITORY_BACKEND=inmemory"
            )
        client: "AsyncIOMotorClient[Any]" = AsyncIOMotorClient(settings.mongodb_uri)
        return ProductRepositoryMongo(client[settings.mongodb_database]), client

    return InMemoryProductRepository(), None


@dataclass
class ScanServices:
    """
    Everything the scan flow needs, built once.

    Example:
        >>> services = ScanServices.create(load_settings())
        >>> await services.start()
        >>> outcome = await services.pipeline.handle_scan(user_id, barcode)
        >>> await services.stop()
    """

    settings: ScanSettings
    cache: TTLCache
    batcher: RequestBatcher
    guard: ScanGuard
    pending_store: PendingProductStore
    resolver: ExistenceResolver
    pipeline: ScanPipeline
    queries: ProductQueryService
    catalog: IProductCatalog
    repository: IProductRecordRepository
    events: IScanEventSink
    _owned_catalog: Optional[OpenFoodFactsClient] = field(default=None, repr=False)
    _mongo_client: Optional["AsyncIOMotorClient[Any]"] = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        settings: Optional[ScanSettings] = None,
        catalog: Optional[IProductCatalog] = None,
        repository: Optional[IProductRecordRepository] = None,
        events: Optional[IScanEventSink] = None,
    ) -> "ScanServices":
        """
        Wire the services.

        Args:
            settings: Runtime settings (defaults if None)
            catalog: Catalog adapter (OpenFoodFactsClient if None)
            repository: Record store (selected by settings if None)
            events: UI event sink (InMemoryScanEventBus if None)

        Returns:
            Wired ScanServices
        """
        settings = settings or ScanSettings()

        owned_catalog: Optional[OpenFoodFactsClient] = None
        if catalog is None:
            owned_catalog = OpenFoodFactsClient(
                timeout_seconds=settings.off_timeout_s,
                max_retries=settings.off_max_retries,
            )
            catalog = owned_catalog

        mongo_client = None
        if repository is None:
            repository, mongo_client = create_product_repository(settings)

        if events is None:
            events = InMemoryScanEventBus()

        cache = TTLCache(default_ttl_seconds=settings.existence_ttl_s)
        batcher = RequestBatcher(window_seconds=settings.batch_window_seconds)
        pending_store = PendingProductStore()
        guard = ScanGuard(has_pending=pending_store.has_barcode)
        resolver = ExistenceResolver(
            cache, batcher, repository, ttl_seconds=settings.existence_ttl_s
        )
        pipeline = ScanPipeline(
            guard=guard,
            resolver=resolver,
            pending_store=pending_store,
            catalog=catalog,
            repository=repository,
            events=events,
            cache=cache,
        )
        queries = ProductQueryService(
            cache,
            batcher,
            repository,
            pending_store,
            events=events,
            product_ttl_seconds=settings.product_ttl_s,
            recent_ttl_seconds=settings.recent_ttl_s,
            favorite_ttl_seconds=settings.favorite_ttl_s,
        )

        logger.info(
            "Scan services created",
            repository=type(repository).__name__,
            catalog=type(catalog).__name__,
            batch_window_ms=settings.batch_window_ms,
        )
        return cls(
            settings=settings,
            cache=cache,
            batcher=batcher,
            guard=guard,
            pending_store=pending_store,
            resolver=resolver,
            pipeline=pipeline,
            queries=queries,
            catalog=catalog,
            repository=repository,
            events=events,
            _owned_catalog=owned_catalog,
            _mongo_client=mongo_client,
        )

    async def start(self) -> None:
        """Configure logging, open owned clients and start the cache sweeper."""
        configure_logging(self.settings.log_level, self.settings.log_json)
        if self._owned_catalog is not None:
            await self._owned_catalog.__aenter__()
        self.cache.start_sweeper(self.settings.cache_sweep_s)

    async def stop(self) -> None:
        """Stop the sweeper and close owned clients."""
        await self.cache.stop_sweeper()
        if self._owned_catalog is not None:
            await self._owned_catalog.__aexit__(None, None, None)
        if self._mongo_client is not None:
            self._mongo_client.close()

    async def sign_out(self, user_id: UserId) -> list[PendingProduct]:
        """
        Drop a user's pending cards and cached reads.

        Every removed card is announced with PendingRemoved(CLEARED) so the
        UI projection does not keep showing it.

        Returns:
            The removed cards
        """
        removed = self.pending_store.clear_user(user_id)
        for pending in removed:
            await self.events.publish(
                PendingRemoved(local_id=pending.local_id, reason=RemovalReason.CLEARED)
            )

        self.cache.invalidate_prefix(recent_products_prefix(user_id))
        logger.info("User signed out", user_id=user_id.value, cleared_cards=len(removed))
        return removed

    def reset(self) -> None:
        """Clear cache, open batch windows, admissions and pending cards."""
        self.cache.reset()
        self.batcher.reset()
        self.guard.reset()
        self.pending_store.reset()
