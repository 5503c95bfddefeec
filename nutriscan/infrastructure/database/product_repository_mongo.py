"""
MongoDB implementation of the product record repository.

Records are unique per (user_id, barcode); saves are upserts so a racing
second save for the same pair can never create a duplicate document.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from nutriscan.domain.catalog.openfoodfacts_mapper import OpenFoodFactsMapper
from nutriscan.domain.catalog.openfoodfacts_models import OFFProduct
from nutriscan.domain.scan.models import ProductRecord, RecordRef
from nutriscan.domain.shared.errors import PersistenceError
from nutriscan.domain.shared.value_objects import Barcode, RecordId, UserId

logger = structlog.get_logger(__name__)


class ProductRepositoryMongo:
    """
    MongoDB implementation of IProductRecordRepository.

    Storage design:
    - Collection products: unique index on (user_id, barcode), index on record_id
    - Collection user_scan_history: unique index on (user_id, record_id),
      index on (user_id, scanned_at DESC)
    - Collection user_favorites: unique index on (user_id, record_id)

    Example:
        >>> from motor.motor_asyncio import AsyncIOMotorClient
        >>> client = AsyncIOMotorClient("mongodb://localhost:27017")
        >>> repository = ProductRepositoryMongo(client.nutriscan)
        >>> ref = await repository.save_product_record(user_id, barcode, product)
    """

    PRODUCTS = "products"
    HISTORY = "user_scan_history"
    FAVORITES = "user_favorites"

    def __init__(self, db: AsyncIOMotorDatabase[Any]):
        """
        Initialize repository with MongoDB database.

        Creates indexes on first use.

        Args:
            db: Motor AsyncIOMotorDatabase instance
        """
        self.db = db
        self.products = db[self.PRODUCTS]
        self.history = db[self.HISTORY]
        self.favorites = db[self.FAVORITES]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """Create indexes if not already created."""
        if self._indexes_created:
            return

        try:
            await self.products.create_index(
                [("user_id", 1), ("barcode", 1)],
                unique=True,
                name="unique_user_barcode",
            )
            await self.products.create_index("record_id", unique=True, name="unique_record_id")
            await self.history.create_index(
                [("user_id", 1), ("record_id", 1)],
                unique=True,
                name="unique_user_record",
            )
            await self.history.create_index(
                [("user_id", 1), ("scanned_at", -1)],
                name="idx_user_recent",
            )
            await self.favorites.create_index(
                [("user_id", 1), ("record_id", 1)],
                unique=True,
                name="unique_user_favorite",
            )
        except PyMongoError as e:
            raise PersistenceError(f"Index creation failed: {e}") from e

        self._indexes_created = True

    def _from_document(self, doc: dict[str, Any]) -> ProductRecord:
        """Convert MongoDB document to ProductRecord."""
        return ProductRecord(
            record_id=RecordId(value=doc["record_id"]),
            user_id=UserId(value=doc["user_id"]),
            barcode=Barcode(value=doc["barcode"]),
            product_name=doc.get("product_name"),
            brand=doc.get("brand"),
            image_url=doc.get("image_url"),
            ingredients=doc.get("ingredients"),
            nutrition_grade=doc.get("nutrition_grade"),
            nova_group=doc.get("nova_group"),
            ecoscore_grade=doc.get("ecoscore_grade"),
            ecoscore_score=doc.get("ecoscore_score"),
            nutriments=doc.get("nutriments") or {},
            health_score=doc.get("health_score"),
            sustainability_score=doc.get("sustainability_score"),
            is_visually_analyzed=doc.get("is_visually_analyzed", False),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    @staticmethod
    def _to_ref(doc: dict[str, Any]) -> RecordRef:
        return RecordRef(
            record_id=RecordId(value=doc["record_id"]),
            health_score=doc.get("health_score"),
        )

    async def find_existing_record(self, user_id: UserId, barcode: Barcode) -> Optional[RecordRef]:
        """Point lookup for a barcode-scanned record."""
        await self._ensure_indexes()

        try:
            doc = await self.products.find_one(
                {
                    "user_id": user_id.value,
                    "barcode": barcode.value,
                    "is_visually_analyzed": False,
                },
                {"record_id": 1, "health_score": 1},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Existence lookup failed for {barcode.value}: {e}") from e

        return self._to_ref(doc) if doc else None

    async def find_existing_records(
        self, user_id: UserId, barcodes: Sequence[Barcode]
    ) -> dict[str, RecordRef]:
        """Bulk lookup with a single $in query."""
        await self._ensure_indexes()

        values = sorted({b.value for b in barcodes})
        try:
            cursor = self.products.find(
                {
                    "user_id": user_id.value,
                    "barcode": {"$in": values},
                    "is_visually_analyzed": False,
                },
                {"record_id": 1, "health_score": 1, "barcode": 1},
            )
            docs = await cursor.to_list(length=len(values))
        except PyMongoError as e:
            raise PersistenceError(f"Bulk existence lookup failed: {e}") from e

        return {doc["barcode"]: self._to_ref(doc) for doc in docs}

    async def save_product_record(
        self, user_id: UserId, barcode: Barcode, product: OFFProduct
    ) -> RecordRef:
        """Upsert the record for (user, barcode) and touch the scan history."""
        await self._ensure_indexes()

        now = datetime.now(timezone.utc)
        fields = OpenFoodFactsMapper.to_record_fields(product)

        try:
            doc = await self.products.find_one_and_update(
                {"user_id": user_id.value, "barcode": barcode.value},
                {
                    "$set": {**fields, "updated_at": now},
                    "$setOnInsert": {
                        "record_id": str(uuid.uuid4()),
                        "created_at": now,
                        "health_score": None,
                        "is_visually_analyzed": False,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Saving product {barcode.value} failed: {e}") from e

        if doc is None:
            raise PersistenceError(f"No document returned after saving {barcode.value}")

        ref = self._to_ref(doc)
        await self.touch_scan_history(user_id, ref.record_id)

        logger.info(
            "Product record saved",
            record_id=ref.record_id.value,
            barcode=barcode.value,
        )
        return ref

    async def touch_scan_history(self, user_id: UserId, record_id: RecordId) -> None:
        """Upsert scanned_at for (user, record)."""
        await self._ensure_indexes()

        try:
            await self.history.update_one(
                {"user_id": user_id.value, "record_id": record_id.value},
                {"$set": {"scanned_at": datetime.now(timezone.utc)}},
                upsert=True,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Scan history update failed: {e}") from e

    async def get_by_id(self, record_id: RecordId) -> Optional[ProductRecord]:
        """Retrieve a record by id."""
        await self._ensure_indexes()

        try:
            doc = await self.products.find_one({"record_id": record_id.value})
        except PyMongoError as e:
            raise PersistenceError(f"Loading record {record_id.value} failed: {e}") from e

        return self._from_document(doc) if doc else None

    async def get_recent(self, user_id: UserId, limit: int = 20) -> list[ProductRecord]:
        """Records from the user's scan history, newest scan first."""
        await self._ensure_indexes()

        try:
            cursor = self.history.find({"user_id": user_id.value}).sort("scanned_at", -1).limit(limit)
            entries = await cursor.to_list(length=limit)
            record_ids = [e["record_id"] for e in entries]
            if not record_ids:
                return []

            docs_cursor = self.products.find({"record_id": {"$in": record_ids}})
            docs = await docs_cursor.to_list(length=len(record_ids))
        except PyMongoError as e:
            raise PersistenceError(f"Loading recent products failed: {e}") from e

        by_id = {doc["record_id"]: doc for doc in docs}
        return [self._from_document(by_id[rid]) for rid in record_ids if rid in by_id]

    async def find_favorites(self, user_id: UserId, record_ids: Sequence[RecordId]) -> set[str]:
        """Subset of record_ids marked favorite by the user."""
        await self._ensure_indexes()

        values = [rid.value for rid in record_ids]
        try:
            cursor = self.favorites.find(
                {"user_id": user_id.value, "record_id": {"$in": values}},
                {"record_id": 1},
            )
            docs = await cursor.to_list(length=len(values))
        except PyMongoError as e:
            raise PersistenceError(f"Favorite lookup failed: {e}") from e

        return {doc["record_id"] for doc in docs}
