"""
Product query service.

Cached reads the home screen needs around the scan flow: product by id,
recent products and favorite flags. Favorite checks for one user are
coalesced through the request batcher.
"""

import asyncio
from typing import Any, Optional, Sequence

import structlog

from nutriscan.application.scan.pending_store import PendingProductStore
from nutriscan.domain.scan.events import PendingRemoved, RemovalReason
from nutriscan.domain.scan.models import PendingProduct, PendingState, ProductRecord
from nutriscan.domain.scan.ports import IProductRecordRepository, IScanEventSink
from nutriscan.domain.shared.errors import DomainError
from nutriscan.domain.shared.value_objects import RecordId, UserId
from nutriscan.infrastructure.cache import RequestBatcher, TTLCache

logger = structlog.get_logger(__name__)


def recent_products_prefix(user_id: UserId) -> str:
    """Common prefix of every recent-products cache key of a user."""
    return f"recent-products-{user_id.value}-"


class ProductQueryService:
    """
    Cached product queries.

    Cache strategy:
    - product-{record_id}: 2 minutes
    - recent-products-{user_id}-{limit}: 30 seconds
    - favorite-{user_id}-{record_id}: 5 minutes, batched per user

    Example:
        >>> service = ProductQueryService(cache, batcher, repository, pending_store)
        >>> recent = await service.get_recent_products(user_id, limit=10)
        >>> is_fav = await service.check_favorite_status(user_id, recent[0].record_id)
    """

    def __init__(
        self,
        cache: TTLCache,
        batcher: RequestBatcher,
        repository: IProductRecordRepository,
        pending_store: PendingProductStore,
        events: Optional[IScanEventSink] = None,
        product_ttl_seconds: float = 120.0,
        recent_ttl_seconds: float = 30.0,
        favorite_ttl_seconds: float = 300.0,
    ):
        """
        Initialize service.

        Args:
            cache: Shared TTL cache
            batcher: Shared request batcher
            repository: Record store
            pending_store: Placeholder cards merged on reload
            events: UI sink notified when cards are retired (optional)
            product_ttl_seconds: Product-by-id lifetime
            recent_ttl_seconds: Recent list lifetime
            favorite_ttl_seconds: Favorite flag lifetime
        """
        self.cache = cache
        self.batcher = batcher
        self.repository = repository
        self.pending_store = pending_store
        self.events = events
        self.product_ttl_seconds = product_ttl_seconds
        self.recent_ttl_seconds = recent_ttl_seconds
        self.favorite_ttl_seconds = favorite_ttl_seconds

    async def get_product_by_id(
        self, record_id: RecordId, use_cache: bool = True
    ) -> Optional[ProductRecord]:
        """
        Load a record, cached for a couple of minutes.

        Misses are not cached.

        Raises:
            PersistenceError: On storage failure
        """
        key = f"product-{record_id.value}"
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Product cache hit", record_id=record_id.value)
                return cached

        record = await self.repository.get_by_id(record_id)
        if record is not None:
            self.cache.set(key, record, ttl=self.product_ttl_seconds)
        return record

    async def get_recent_products(
        self, user_id: UserId, limit: int = 20, use_cache: bool = True
    ) -> list[ProductRecord]:
        """
        Recent records for the user, most recently scanned first.

        Raises:
            PersistenceError: On storage failure
        """
        key = f"{recent_products_prefix(user_id)}{limit}"
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Recent products cache hit", user_id=user_id.value, limit=limit)
                return cached

        records = await self.repository.get_recent(user_id, limit)
        self.cache.set(key, records, ttl=self.recent_ttl_seconds)
        return records

    async def reload_recent_products(
        self, user_id: UserId, limit: int = 20
    ) -> list[ProductRecord]:
        """
        Reload the recent list from the store and merge placeholder cards.

        Every CONFIRMED pending product whose record is now part of the
        recent list is retired, so a product is never shown twice.

        Returns:
            Fresh recent records
        """
        records = await self.get_recent_products(user_id, limit, use_cache=False)
        shown = {r.record_id.value for r in records}

        retired: list[PendingProduct] = []
        for pending in self.pending_store.snapshot(user_id):
            if (
                pending.state == PendingState.CONFIRMED
                and pending.record_id is not None
                and pending.record_id.value in shown
            ):
                retired.append(self.pending_store.retire(pending.local_id))

        if self.events is not None:
            for pending in retired:
                await self.events.publish(
                    PendingRemoved(local_id=pending.local_id, reason=RemovalReason.RETIRED)
                )

        if retired:
            logger.info(
                "Confirmed pending products merged into recents",
                user_id=user_id.value,
                count=len(retired),
            )
        return records

    async def check_favorite_status(self, user_id: UserId, record_id: RecordId) -> bool:
        """
        Whether the user marked the record as favorite.

        Concurrent checks for one user share a single store query. A
        failed lookup reads as "not favorite" and is not cached.
        """
        key = f"favorite-{user_id.value}-{record_id.value}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Favorite cache hit", record_id=record_id.value)
            return bool(cached)

        async def query(record_ids: list[RecordId]) -> Sequence[bool]:
            favorites = await self.repository.find_favorites(user_id, record_ids)
            return [rid.value in favorites for rid in record_ids]

        try:
            result: bool = await self.batcher.batch_query(
                f"favorites-{user_id.value}", query, record_id
            )
        except DomainError as e:
            logger.warning(
                "Favorite status lookup failed",
                record_id=record_id.value,
                error=str(e),
            )
            return False

        self.cache.set(key, result, ttl=self.favorite_ttl_seconds)
        return result

    async def preload_related_data(self, user_id: UserId, record_id: RecordId) -> None:
        """Warm the favorite flag and a short recent list in parallel."""
        results = await asyncio.gather(
            self.check_favorite_status(user_id, record_id),
            self.get_recent_products(user_id, 5),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("Preload failed", record_id=record_id.value, error=str(result))

    def invalidate_cache(self, pattern: Optional[str] = None) -> int:
        """Drop cached entries whose key contains pattern (all if None)."""
        return self.cache.invalidate(pattern)

    def get_cache_stats(self) -> dict[str, Any]:
        """Cache size and keys, for debugging."""
        return self.cache.stats()
