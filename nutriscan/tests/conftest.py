"""
Shared fixtures for scan core tests.

Ports are replaced with AsyncMock or in-memory adapters and injected
into explicitly constructed services, so no test shares global state.
"""

from typing import Iterator
from unittest.mock import AsyncMock

import pytest

from nutriscan.application.container import ScanServices
from nutriscan.domain.catalog.openfoodfacts_models import (
    NovaGroup,
    NutriscoreGrade,
    OFFNutriments,
    OFFProduct,
)
from nutriscan.domain.shared.value_objects import Barcode, UserId
from nutriscan.infrastructure.config import ScanSettings
from nutriscan.infrastructure.events import InMemoryScanEventBus
from nutriscan.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient
from nutriscan.infrastructure.persistence.in_memory_product_repository import (
    InMemoryProductRepository,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ═══════════════════════════════════════════════════════════
# DOMAIN MODEL FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def sample_barcode() -> Barcode:
    """Sample barcode for the Choco Bar."""
    return Barcode(value="7622210449283")


@pytest.fixture
def other_barcode() -> Barcode:
    """A second, unrelated barcode (Nutella)."""
    return Barcode(value="3017620422003")


@pytest.fixture
def sample_user_id() -> UserId:
    """Sample user."""
    return UserId(value="user_123")


@pytest.fixture
def sample_off_product() -> OFFProduct:
    """Catalog data for the Choco Bar."""
    return OFFProduct(
        code="7622210449283",
        product_name="Choco Bar",
        brands="Acme",
        image_url="https://images.openfoodfacts.org/images/products/762/221/044/9283/front_en.jpg",
        nutriments=OFFNutriments(
            energy_kcal=530.0,
            proteins=6.5,
            carbohydrates=58.0,
            fat=29.0,
            sugars=52.0,
        ),
        nutriscore_grade=NutriscoreGrade.E,
        nova_group=NovaGroup.GROUP_4,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Controllable clock for TTL tests."""
    return FakeClock()


# ═══════════════════════════════════════════════════════════
# PORT FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def mock_catalog(sample_off_product: OFFProduct) -> AsyncMock:
    """Mock product catalog.

    Default behavior: returns the Choco Bar.
    Override lookup.return_value / side_effect in tests.
    """
    catalog = AsyncMock(spec=OpenFoodFactsClient)
    catalog.lookup.return_value = sample_off_product
    return catalog


@pytest.fixture
def repository() -> InMemoryProductRepository:
    """Empty in-memory record store."""
    return InMemoryProductRepository()


@pytest.fixture
def event_bus() -> InMemoryScanEventBus:
    """Event bus recording every published event."""
    return InMemoryScanEventBus()


# ═══════════════════════════════════════════════════════════
# SERVICE FIXTURES WITH DEPENDENCY INJECTION
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def scan_settings() -> ScanSettings:
    """Settings with a short batch window to keep tests fast."""
    return ScanSettings(batch_window_ms=5)


@pytest.fixture
def scan_services(
    scan_settings: ScanSettings,
    mock_catalog: AsyncMock,
    repository: InMemoryProductRepository,
    event_bus: InMemoryScanEventBus,
) -> Iterator[ScanServices]:
    """Fully wired scan services over mocks and in-memory adapters."""
    services = ScanServices.create(
        scan_settings,
        catalog=mock_catalog,
        repository=repository,
        events=event_bus,
    )
    yield services
    services.reset()
