"""
Tests for the MongoDB product record repository.

Motor collections are replaced with MagicMock/AsyncMock; integration
against a real MongoDB is out of scope for unit tests.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct
from nutriscan.domain.shared.errors import PersistenceError
from nutriscan.domain.shared.value_objects import Barcode, RecordId, UserId
from nutriscan.infrastructure.database.product_repository_mongo import ProductRepositoryMongo


def _collection(docs: Optional[list[dict[str, Any]]] = None) -> MagicMock:
    collection = MagicMock()
    collection.create_index = AsyncMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.find_one_and_update = AsyncMock()
    collection.update_one = AsyncMock()

    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=docs or [])
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    collection.find.return_value = cursor
    return collection


def _product_doc(record_id: str, barcode: str, health_score: Any = None) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "record_id": record_id,
        "user_id": "user_123",
        "barcode": barcode,
        "product_name": "Choco Bar",
        "brand": "Acme",
        "health_score": health_score,
        "is_visually_analyzed": False,
        "nutriments": {"energy_kcal_100g": 530.0},
        "created_at": now,
        "updated_at": now,
    }


# ═══════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def collections() -> dict[str, MagicMock]:
    return {
        ProductRepositoryMongo.PRODUCTS: _collection(),
        ProductRepositoryMongo.HISTORY: _collection(),
        ProductRepositoryMongo.FAVORITES: _collection(),
    }


@pytest.fixture
def mongo_repository(collections: dict[str, MagicMock]) -> ProductRepositoryMongo:
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    return ProductRepositoryMongo(db)


# ═══════════════════════════════════════════════════════════
# REPOSITORY TESTS
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_indexes_created_once(
    mongo_repository: ProductRepositoryMongo,
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
    sample_barcode: Barcode,
) -> None:
    """Indexes are created on first use only."""
    await mongo_repository.find_existing_record(sample_user_id, sample_barcode)
    await mongo_repository.find_existing_record(sample_user_id, sample_barcode)

    assert collections[ProductRepositoryMongo.PRODUCTS].create_index.await_count == 2
    assert collections[ProductRepositoryMongo.HISTORY].create_index.await_count == 2
    assert collections[ProductRepositoryMongo.FAVORITES].create_index.await_count == 1


@pytest.mark.asyncio
async def test_find_existing_record_scopes_query(
    mongo_repository: ProductRepositoryMongo,
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
    sample_barcode: Barcode,
) -> None:
    """Point lookup excludes visually analyzed records."""
    products = collections[ProductRepositoryMongo.PRODUCTS]
    products.find_one.return_value = {"record_id": "rec_1", "health_score": None}

    ref = await mongo_repository.find_existing_record(sample_user_id, sample_barcode)

    assert ref is not None
    assert ref.record_id == RecordId(value="rec_1")
    query = products.find_one.await_args.args[0]
    assert query == {
        "user_id": "user_123",
        "barcode": "7622210449283",
        "is_visually_analyzed": False,
    }


@pytest.mark.asyncio
async def test_find_existing_records_single_in_query(
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
) -> None:
    """Bulk lookup is one $in query keyed by barcode."""
    collections[ProductRepositoryMongo.PRODUCTS] = _collection(
        [{"record_id": "rec_1", "barcode": "7622210449283", "health_score": 55.0}]
    )
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    repository = ProductRepositoryMongo(db)

    found = await repository.find_existing_records(
        sample_user_id,
        [Barcode(value="7622210449283"), Barcode(value="3017620422003")],
    )

    products = collections[ProductRepositoryMongo.PRODUCTS]
    products.find.assert_called_once()
    query = products.find.call_args.args[0]
    assert query["barcode"] == {"$in": ["3017620422003", "7622210449283"]}
    assert set(found) == {"7622210449283"}
    assert found["7622210449283"].health_score == 55.0


@pytest.mark.asyncio
async def test_save_product_record_upserts_and_touches_history(
    mongo_repository: ProductRepositoryMongo,
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
    sample_barcode: Barcode,
    sample_off_product: OFFProduct,
) -> None:
    """Saving is an upsert on (user, barcode) followed by a history touch."""
    products = collections[ProductRepositoryMongo.PRODUCTS]
    products.find_one_and_update.return_value = _product_doc("rec_1", "7622210449283")

    ref = await mongo_repository.save_product_record(
        sample_user_id, sample_barcode, sample_off_product
    )

    assert ref.record_id == RecordId(value="rec_1")
    assert ref.health_score is None

    call = products.find_one_and_update.await_args
    assert call.args[0] == {"user_id": "user_123", "barcode": "7622210449283"}
    update = call.args[1]
    assert update["$set"]["product_name"] == "Choco Bar"
    assert "record_id" in update["$setOnInsert"]
    assert call.kwargs["upsert"] is True

    history = collections[ProductRepositoryMongo.HISTORY]
    history.update_one.assert_awaited_once()
    assert history.update_one.await_args.args[0] == {
        "user_id": "user_123",
        "record_id": "rec_1",
    }


@pytest.mark.asyncio
async def test_get_recent_preserves_history_order(
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
) -> None:
    """Records come back in scan-history order."""
    collections[ProductRepositoryMongo.HISTORY] = _collection(
        [{"record_id": "rec_2"}, {"record_id": "rec_1"}]
    )
    collections[ProductRepositoryMongo.PRODUCTS] = _collection(
        [_product_doc("rec_1", "7622210449283"), _product_doc("rec_2", "3017620422003")]
    )
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    repository = ProductRepositoryMongo(db)

    recent = await repository.get_recent(sample_user_id, limit=10)

    assert [r.record_id.value for r in recent] == ["rec_2", "rec_1"]
    cursor = collections[ProductRepositoryMongo.HISTORY].find.return_value
    cursor.sort.assert_called_once_with("scanned_at", -1)
    cursor.limit.assert_called_once_with(10)


@pytest.mark.asyncio
async def test_find_favorites(
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
) -> None:
    """Favorites lookup returns the matching record ids."""
    collections[ProductRepositoryMongo.FAVORITES] = _collection([{"record_id": "rec_2"}])
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    repository = ProductRepositoryMongo(db)

    favorites = await repository.find_favorites(
        sample_user_id, [RecordId(value="rec_1"), RecordId(value="rec_2")]
    )

    assert favorites == {"rec_2"}


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors(
    mongo_repository: ProductRepositoryMongo,
    collections: dict[str, MagicMock],
    sample_user_id: UserId,
    sample_barcode: Barcode,
) -> None:
    """PyMongo failures are wrapped in PersistenceError."""
    products = collections[ProductRepositoryMongo.PRODUCTS]
    products.find_one.side_effect = ServerSelectionTimeoutError("no primary")

    with pytest.raises(PersistenceError) as exc_info:
        await mongo_repository.find_existing_record(sample_user_id, sample_barcode)

    assert isinstance(exc_info.value.__cause__, ServerSelectionTimeoutError)
