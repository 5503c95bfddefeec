"""
Existence resolver.

Answers "does this user already have a record for this barcode?" through
a short-lived cache and a per-user request batcher, so concurrent checks
for the same user collapse into one bulk store read.
"""

from typing import Sequence

import structlog

from nutriscan.domain.scan.models import ExistenceResult
from nutriscan.domain.scan.ports import IProductRecordRepository
from nutriscan.domain.shared.value_objects import Barcode, UserId
from nutriscan.infrastructure.cache import RequestBatcher, TTLCache

logger = structlog.get_logger(__name__)


class ExistenceResolver:
    """
    Cached, batched existence checks.

    Cache strategy:
    - Key: product-check-{user_id}-{barcode}
    - TTL: short (30s by default), invalidated after a local save
    - Batch key: existence-{user_id}

    Example:
        >>> resolver = ExistenceResolver(cache, batcher, repository)
        >>> result = await resolver.exists(user_id, barcode)
        >>> if result.found:
        ...     navigate(result.record_id, result.needs_analysis)
    """

    def __init__(
        self,
        cache: TTLCache,
        batcher: RequestBatcher,
        repository: IProductRecordRepository,
        ttl_seconds: float = 30.0,
    ):
        """
        Initialize resolver.

        Args:
            cache: Shared TTL cache
            batcher: Shared request batcher
            repository: Record store used for the bulk lookup
            ttl_seconds: Lifetime of a cached answer
        """
        self._cache = cache
        self._batcher = batcher
        self._repository = repository
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def cache_key(user_id: UserId, barcode: Barcode) -> str:
        """Cache key of one existence answer."""
        return f"product-check-{user_id.value}-{barcode.value}"

    @staticmethod
    def batch_key(user_id: UserId) -> str:
        """Batch key shared by all checks of one user."""
        return f"existence-{user_id.value}"

    async def exists(self, user_id: UserId, barcode: Barcode) -> ExistenceResult:
        """
        Check whether a record exists for (user, barcode).

        Args:
            user_id: Owner
            barcode: Scanned barcode

        Returns:
            ExistenceResult (found with record_id/health_score, or not found)

        Raises:
            PersistenceError: If the store lookup fails (delivered to every
                waiter of the same batch window)
        """
        key = self.cache_key(user_id, barcode)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Existence cache hit", barcode=barcode.value, found=cached.found)
            return cached

        logger.debug("Existence cache miss", barcode=barcode.value)

        async def query(barcodes: list[Barcode]) -> Sequence[ExistenceResult]:
            found = await self._repository.find_existing_records(user_id, barcodes)
            return [ExistenceResult.from_ref(found.get(b.value)) for b in barcodes]

        result: ExistenceResult = await self._batcher.batch_query(
            self.batch_key(user_id), query, barcode
        )

        self._cache.set(key, result, ttl=self._ttl_seconds)
        logger.debug(
            "Existence resolved",
            barcode=barcode.value,
            found=result.found,
            needs_analysis=result.needs_analysis,
        )
        return result

    def invalidate(self, user_id: UserId, barcode: Barcode) -> int:
        """
        Drop the cached answer for (user, barcode).

        Must be called after a successful local save so the next scan
        sees the new record.

        Only the exact key is removed; a barcode that contains this one
        keeps its answer.

        Returns:
            Number of removed entries
        """
        return int(self._cache.delete(self.cache_key(user_id, barcode)))
