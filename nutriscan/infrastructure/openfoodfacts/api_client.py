"""
OpenFoodFacts API client.

Handles HTTP requests to OpenFoodFacts database. Implements the
IProductCatalog port used by the scan pipeline.
"""

import asyncio
from typing import Optional

import aiohttp
import structlog

from nutriscan.domain.catalog.openfoodfacts_mapper import OpenFoodFactsMapper
from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct, OFFSearchResult
from nutriscan.domain.shared.errors import (
    CatalogNotFoundError,
    CatalogTransientError,
    TimeoutError,
)
from nutriscan.domain.shared.value_objects import Barcode

logger = structlog.get_logger(__name__)


class OpenFoodFactsClient:
    """OpenFoodFacts API client."""

    BASE_URL = "https://world.openfoodfacts.org/api/v2"
    USER_AGENT = "NutriScan/1.0"

    def __init__(
        self,
        timeout_seconds: float = 10,
        max_retries: int = 3,
    ) -> None:
        """Initialize API client.

        Args:
            timeout_seconds: Request timeout
            max_retries: Max retry attempts
        """
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "OpenFoodFactsClient":
        """Async context manager entry."""
        self._session = aiohttp.ClientSession(headers={"User-Agent": self.USER_AGENT})
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        if self._session:
            await self._session.close()
            self._session = None

    async def get_product(self, barcode: Barcode) -> OFFSearchResult:
        """Get product by barcode.

        Args:
            barcode: Product barcode

        Returns:
            Search result with product data

        Raises:
            CatalogNotFoundError: If barcode not in database
            TimeoutError: If request times out on every attempt
            CatalogTransientError: If API error

        Example:
            >>> async def test():
            ...     async with OpenFoodFactsClient() as client:
            ...         barcode = Barcode(value="7622210449283")
            ...         return await client.get_product(barcode)
        """
        url = f"{self.BASE_URL}/product/{barcode.value}"

        for attempt in range(self.max_retries):
            try:
                if not self._session:
                    msg = "Client not initialized, use async with"
                    raise CatalogTransientError(msg)

                async with self._session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status == 404:
                        logger.info("Barcode not found in OFF", barcode=barcode.value)
                        raise CatalogNotFoundError(f"Barcode {barcode.value} not found")

                    if response.status >= 400:
                        msg = f"OpenFoodFacts API error: {response.status}"
                        raise CatalogTransientError(msg)

                    data = await response.json()
                    result = OpenFoodFactsMapper.parse_product_response(data)

                    if not result.is_found():
                        logger.info("Product not found in OFF", barcode=barcode.value)
                        raise CatalogNotFoundError(f"Barcode {barcode.value} not found")

                    logger.info(
                        "Product found in OFF",
                        barcode=barcode.value,
                        name=result.product.product_name if result.product else None,
                    )

                    return result

            except CatalogNotFoundError:
                # Don't retry on not found
                raise

            except asyncio.TimeoutError as e:
                if attempt == self.max_retries - 1:
                    msg = "OpenFoodFacts API timeout"
                    raise TimeoutError(msg) from e

                wait = 2**attempt
                logger.warning(
                    f"Timeout, retrying in {wait}s",
                    barcode=barcode.value,
                    attempt=attempt + 1,
                )
                await asyncio.sleep(wait)

            except aiohttp.ClientError as e:
                if attempt == self.max_retries - 1:
                    msg = f"OpenFoodFacts API client error: {e}"
                    raise CatalogTransientError(msg) from e

                wait = 2**attempt
                logger.warning(
                    f"Client error, retrying in {wait}s",
                    barcode=barcode.value,
                    attempt=attempt + 1,
                    error=str(e),
                )
                await asyncio.sleep(wait)

        raise CatalogTransientError(f"OpenFoodFacts lookup for {barcode.value} gave no result")

    async def lookup(self, barcode: Barcode) -> OFFProduct:
        """Catalog lookup used by the scan pipeline.

        A product without a name is unusable as a card and is reported
        as not found.

        Args:
            barcode: Product barcode

        Returns:
            Catalog product with a display name

        Raises:
            CatalogNotFoundError: Not in catalog or unnamed
            CatalogTransientError: Network/server failure
        """
        result = await self.get_product(barcode)
        product = result.product

        if product is None or not product.has_name():
            logger.warning("Product without name in OFF", barcode=barcode.value)
            raise CatalogNotFoundError(f"Barcode {barcode.value} has incomplete catalog data")

        if not product.code:
            product = product.model_copy(update={"code": barcode.value})

        return product
