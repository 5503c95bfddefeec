"""
OpenFoodFacts data mapper.

Transforms OpenFoodFacts API responses to domain models.
"""

from typing import Any, Optional

from nutriscan.domain.catalog.openfoodfacts_models import (
    EcoscoreGrade,
    NovaGroup,
    NutriscoreGrade,
    OFFNutriments,
    OFFProduct,
    OFFSearchResult,
)


def _non_empty(value: Any) -> Optional[Any]:
    """OFF returns "" for missing text fields."""
    if value == "" or value is None:
        return None
    return value


class OpenFoodFactsMapper:
    """Maps OpenFoodFacts API data to domain models."""

    @staticmethod
    def parse_product_response(response_data: dict[str, Any]) -> OFFSearchResult:
        """Parse OpenFoodFacts product API response.

        Args:
            response_data: Raw API response JSON

        Returns:
            Parsed OFFSearchResult

        Example:
            >>> response = {
            ...     "status": 1,
            ...     "code": "7622210449283",
            ...     "product": {
            ...         "product_name": "Choco Bar",
            ...         "brands": "Acme",
            ...         "nutriments": {"energy-kcal_100g": 530.0},
            ...     },
            ... }
            >>> result = OpenFoodFactsMapper.parse_product_response(response)
            >>> assert result.product.product_name == "Choco Bar"
        """
        status = response_data.get("status", 0)

        if status == 0 or not response_data.get("product"):
            return OFFSearchResult(status=status, product=None)

        product_data = response_data["product"]
        nutriments_data = product_data.get("nutriments") or {}

        nutriments = OFFNutriments(
            energy_kj=nutriments_data.get("energy_100g"),
            energy_kcal=(
                nutriments_data.get("energy-kcal_100g")
                if nutriments_data.get("energy-kcal_100g") is not None
                else nutriments_data.get("energy_value")
            ),
            proteins=nutriments_data.get("proteins_100g"),
            carbohydrates=nutriments_data.get("carbohydrates_100g"),
            fat=nutriments_data.get("fat_100g"),
            saturated_fat=nutriments_data.get("saturated-fat_100g"),
            fiber=nutriments_data.get("fiber_100g"),
            sugars=nutriments_data.get("sugars_100g"),
            sodium=nutriments_data.get("sodium_100g"),
            salt=nutriments_data.get("salt_100g"),
        )

        # Newer API versions use nutriscore_grade, v0 uses nutrition_grades
        nutriscore_raw = product_data.get("nutriscore_grade") or product_data.get(
            "nutrition_grades"
        )
        nutriscore = None
        if nutriscore_raw:
            try:
                nutriscore = NutriscoreGrade(str(nutriscore_raw).lower())
            except ValueError:
                nutriscore = NutriscoreGrade.UNKNOWN

        nova_raw = product_data.get("nova_group")
        nova = None
        if nova_raw:
            try:
                nova = NovaGroup(str(nova_raw))
            except ValueError:
                nova = NovaGroup.UNKNOWN

        ecoscore_raw = product_data.get("ecoscore_grade")
        ecoscore = None
        if ecoscore_raw:
            try:
                ecoscore = EcoscoreGrade(str(ecoscore_raw).lower())
            except ValueError:
                ecoscore = EcoscoreGrade.UNKNOWN

        product = OFFProduct(
            code=product_data.get("code") or response_data.get("code", ""),
            product_name=_non_empty(product_data.get("product_name")),
            brands=_non_empty(product_data.get("brands")),
            categories=_non_empty(product_data.get("categories")),
            quantity=_non_empty(product_data.get("quantity")),
            serving_size=_non_empty(product_data.get("serving_size")),
            image_url=_non_empty(product_data.get("image_url")),
            nutriments=nutriments,
            nutriscore_grade=nutriscore,
            nova_group=nova,
            ecoscore_grade=ecoscore,
            ecoscore_score=product_data.get("ecoscore_score"),
            ingredients_text=_non_empty(product_data.get("ingredients_text")),
            allergens=_non_empty(product_data.get("allergens")),
        )

        return OFFSearchResult(status=status, product=product)

    @staticmethod
    def to_record_fields(product: OFFProduct) -> dict[str, Any]:
        """Convert catalog data to product record fields.

        Args:
            product: OpenFoodFacts product

        Returns:
            Keyword arguments for ProductRecord (display, grades, nutriments)

        Example:
            >>> fields = OpenFoodFactsMapper.to_record_fields(
            ...     OFFProduct(code="7622210449283", product_name="Choco Bar", brands="Acme")
            ... )
            >>> assert fields["brand"] == "Acme"
        """
        n = product.nutriments if product.nutriments else OFFNutriments()

        return {
            "product_name": product.product_name,
            "brand": product.brands,
            "image_url": product.image_url,
            "ingredients": product.ingredients_text,
            "nutrition_grade": product.nutriscore_grade.value if product.nutriscore_grade else None,
            "nova_group": product.nova_group.value if product.nova_group else None,
            "ecoscore_grade": product.ecoscore_grade.value if product.ecoscore_grade else None,
            "ecoscore_score": product.ecoscore_score,
            "nutriments": {
                "energy_100g": n.energy_kj,
                "energy_kcal_100g": n.energy_kcal,
                "fat_100g": n.fat,
                "saturated_fat_100g": n.saturated_fat,
                "carbohydrates_100g": n.carbohydrates,
                "sugars_100g": n.sugars,
                "fiber_100g": n.fiber,
                "proteins_100g": n.proteins,
                "salt_100g": n.salt,
                "sodium_100g": n.sodium,
            },
        }

    @staticmethod
    def calculate_completeness(product: OFFProduct) -> float:
        """Calculate data completeness score.

        Args:
            product: OpenFoodFacts product

        Returns:
            Completeness score (0-1)
        """
        n = product.nutriments if product.nutriments else OFFNutriments()

        fields_to_check = [
            product.product_name,
            product.brands,
            product.image_url,
            n.energy_kcal,
            n.proteins,
            n.carbohydrates,
            n.fat,
            n.fiber,
            n.sugars,
            n.sodium,
        ]

        filled = sum(1 for field in fields_to_check if field is not None)
        return round(filled / len(fields_to_check), 2)
