"""
Unit tests for OpenFoodFacts API client.

Real-world test case: Choco Bar, Barcode: 7622210449283
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from nutriscan.domain.catalog.openfoodfacts_models import NovaGroup, NutriscoreGrade
from nutriscan.domain.scan.ports import IProductCatalog
from nutriscan.domain.shared.errors import (
    CatalogNotFoundError,
    CatalogTransientError,
    TimeoutError,
)
from nutriscan.domain.shared.value_objects import Barcode
from nutriscan.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient


def _json_response(status: int, payload: dict) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    return response


class TestOpenFoodFactsClient:
    """Test OpenFoodFacts API client."""

    @pytest.fixture
    def barcode(self) -> Barcode:
        return Barcode(value="7622210449283")

    @pytest.fixture
    def choco_bar_response(self) -> MagicMock:
        """Mock response with Choco Bar product data."""
        return _json_response(
            200,
            {
                "status": 1,
                "product": {
                    "code": "7622210449283",
                    "product_name": "Choco Bar",
                    "brands": "Acme",
                    "image_url": "https://images.openfoodfacts.org/choco.jpg",
                    "nutriscore_grade": "e",
                    "nova_group": 4,
                    "nutriments": {
                        "energy-kcal_100g": 530.0,
                        "fat_100g": 29.0,
                    },
                },
            },
        )

    def test_implements_catalog_port(self) -> None:
        """The client satisfies IProductCatalog."""
        assert isinstance(OpenFoodFactsClient(), IProductCatalog)

    async def test_get_product_success(
        self, barcode: Barcode, choco_bar_response: MagicMock
    ) -> None:
        """Test successful product retrieval by barcode."""
        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = choco_bar_response

            async with OpenFoodFactsClient() as client:
                result = await client.get_product(barcode)

            assert result.is_found()
            assert result.product is not None
            assert result.product.product_name == "Choco Bar"
            assert result.product.nutriscore_grade == NutriscoreGrade.E
            assert result.product.nova_group == NovaGroup.GROUP_4
            assert mock_get.call_args[0][0].endswith("/product/7622210449283")

    async def test_lookup_returns_product(
        self, barcode: Barcode, choco_bar_response: MagicMock
    ) -> None:
        """lookup() unwraps the product for the pipeline."""
        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = choco_bar_response

            async with OpenFoodFactsClient() as client:
                product = await client.lookup(barcode)

        assert product.product_name == "Choco Bar"
        assert product.brands == "Acme"

    async def test_not_found_404_is_not_retried(self, barcode: Barcode) -> None:
        """404 raises CatalogNotFoundError immediately."""
        response = MagicMock()
        response.status = 404

        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = response

            async with OpenFoodFactsClient(max_retries=3) as client:
                with pytest.raises(CatalogNotFoundError) as exc_info:
                    await client.get_product(barcode)

        assert "7622210449283" in str(exc_info.value)
        assert mock_get.call_count == 1

    async def test_not_found_status_zero(self, barcode: Barcode) -> None:
        """status=0 means not found."""
        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = _json_response(200, {"status": 0})

            async with OpenFoodFactsClient() as client:
                with pytest.raises(CatalogNotFoundError):
                    await client.get_product(barcode)

    async def test_lookup_unnamed_product_is_not_found(self, barcode: Barcode) -> None:
        """A catalog entry without a name cannot become a card."""
        response = _json_response(
            200, {"status": 1, "product": {"code": "7622210449283", "product_name": ""}}
        )
        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = response

            async with OpenFoodFactsClient() as client:
                with pytest.raises(CatalogNotFoundError):
                    await client.lookup(barcode)

    async def test_server_error_is_transient(self, barcode: Barcode) -> None:
        """5xx responses surface as CatalogTransientError."""
        response = MagicMock()
        response.status = 503

        with patch("aiohttp.ClientSession.get") as mock_get:
            mock_get.return_value.__aenter__.return_value = response

            async with OpenFoodFactsClient() as client:
                with pytest.raises(CatalogTransientError, match="503"):
                    await client.get_product(barcode)

    async def test_timeout_retries_with_backoff(self, barcode: Barcode) -> None:
        """Timeouts are retried with exponential backoff, then raised."""
        with patch("aiohttp.ClientSession.get") as mock_get, patch(
            "asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            mock_get.side_effect = asyncio.TimeoutError()

            async with OpenFoodFactsClient(max_retries=3) as client:
                with pytest.raises(TimeoutError):
                    await client.get_product(barcode)

        assert mock_get.call_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1, 2]

    async def test_client_error_recovers_on_retry(
        self, barcode: Barcode, choco_bar_response: MagicMock
    ) -> None:
        """A transient connection error followed by success returns data."""
        success = MagicMock()
        success.__aenter__ = AsyncMock(return_value=choco_bar_response)
        success.__aexit__ = AsyncMock(return_value=False)

        with patch("aiohttp.ClientSession.get") as mock_get, patch(
            "asyncio.sleep", new_callable=AsyncMock
        ):
            mock_get.side_effect = [aiohttp.ClientConnectionError("reset"), success]

            async with OpenFoodFactsClient(max_retries=3) as client:
                result = await client.get_product(barcode)

        assert result.is_found()
        assert mock_get.call_count == 2

    async def test_client_error_exhausts_retries(self, barcode: Barcode) -> None:
        """Persistent client errors end as CatalogTransientError."""
        with patch("aiohttp.ClientSession.get") as mock_get, patch(
            "asyncio.sleep", new_callable=AsyncMock
        ):
            mock_get.side_effect = aiohttp.ClientConnectionError("reset")

            async with OpenFoodFactsClient(max_retries=2) as client:
                with pytest.raises(CatalogTransientError):
                    await client.get_product(barcode)

        assert mock_get.call_count == 2

    async def test_requires_context_manager(self, barcode: Barcode) -> None:
        """Using the client outside async with is a transient error."""
        client = OpenFoodFactsClient()

        with pytest.raises(CatalogTransientError, match="not initialized"):
            await client.get_product(barcode)

    async def test_user_agent_header(self) -> None:
        """Test that User-Agent header is set correctly."""
        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session = AsyncMock()
            mock_session_class.return_value = mock_session

            async with OpenFoodFactsClient():
                mock_session_class.assert_called_once_with(headers={"User-Agent": "NutriScan/1.0"})

            mock_session.close.assert_awaited_once()
