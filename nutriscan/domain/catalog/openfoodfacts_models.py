"""
OpenFoodFacts domain models.

Models for OpenFoodFacts API responses mapped to our domain.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NutriscoreGrade(str, Enum):
    """Nutriscore grade classification."""

    A = "a"  # Best
    B = "b"
    C = "c"
    D = "d"
    E = "e"  # Worst
    UNKNOWN = "unknown"


class EcoscoreGrade(str, Enum):
    """Eco-score grade classification."""

    A = "a"
    B = "b"
    C = "c"
    D = "d"
    E = "e"
    UNKNOWN = "unknown"


class NovaGroup(str, Enum):
    """NOVA food processing classification."""

    GROUP_1 = "1"  # Unprocessed or minimally processed
    GROUP_2 = "2"  # Processed culinary ingredients
    GROUP_3 = "3"  # Processed foods
    GROUP_4 = "4"  # Ultra-processed foods
    UNKNOWN = "unknown"


class OFFNutriments(BaseModel):
    """OpenFoodFacts nutriments (per 100g).

    Example:
        >>> nutriments = OFFNutriments(
        ...     energy_kcal=150.0,
        ...     proteins=3.0,
        ...     carbohydrates=25.0,
        ...     fat=5.0,
        ... )
        >>> assert nutriments.energy_kcal == 150.0
    """

    model_config = ConfigDict(frozen=True)

    energy_kj: Optional[float] = Field(None, ge=0, description="Energy in kJ per 100g")
    energy_kcal: Optional[float] = Field(None, ge=0, description="Energy in kcal per 100g")
    proteins: Optional[float] = Field(None, ge=0, description="Protein in g per 100g")
    carbohydrates: Optional[float] = Field(None, ge=0, description="Carbohydrates in g per 100g")
    fat: Optional[float] = Field(None, ge=0, description="Fat in g per 100g")
    saturated_fat: Optional[float] = Field(None, ge=0, description="Saturated fat in g per 100g")
    fiber: Optional[float] = Field(None, ge=0, description="Fiber in g per 100g")
    sugars: Optional[float] = Field(None, ge=0, description="Sugars in g per 100g")
    sodium: Optional[float] = Field(None, ge=0, description="Sodium in g per 100g")
    salt: Optional[float] = Field(None, ge=0, description="Salt in g per 100g")


class OFFProduct(BaseModel):
    """OpenFoodFacts product response.

    This is the catalog data the scan pipeline fetches for a new
    barcode and hands to the record store.

    Example:
        >>> product = OFFProduct(
        ...     code="7622210449283",
        ...     product_name="Choco Bar",
        ...     brands="Acme",
        ... )
        >>> assert product.has_name()
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Product barcode")
    product_name: Optional[str] = Field(None, description="Product name")
    brands: Optional[str] = Field(None, description="Brand names")
    categories: Optional[str] = Field(None, description="Product categories")
    quantity: Optional[str] = Field(None, description="Product quantity (e.g., '750g')")
    serving_size: Optional[str] = Field(None, description="Serving size (e.g., '30g')")
    image_url: Optional[str] = Field(None, description="Product image URL")
    nutriments: Optional[OFFNutriments] = Field(None, description="Nutritional values")
    nutriscore_grade: Optional[NutriscoreGrade] = Field(None, description="Nutriscore grade (a-e)")
    nova_group: Optional[NovaGroup] = Field(None, description="NOVA processing group (1-4)")
    ecoscore_grade: Optional[EcoscoreGrade] = Field(None, description="Eco-score grade (a-e)")
    ecoscore_score: Optional[float] = Field(None, description="Eco-score (0-100)")
    ingredients_text: Optional[str] = Field(None, description="Ingredients list")
    allergens: Optional[str] = Field(None, description="Allergens list")

    def has_name(self) -> bool:
        """Check if the product carries a usable display name.

        Returns:
            True if product_name is non-blank
        """
        return bool(self.product_name and self.product_name.strip())


class OFFSearchResult(BaseModel):
    """OpenFoodFacts product lookup response.

    Example:
        >>> result = OFFSearchResult(
        ...     status=1,
        ...     product=OFFProduct(
        ...         code="7622210449283",
        ...         product_name="Choco Bar",
        ...     ),
        ... )
        >>> assert result.is_found()
    """

    model_config = ConfigDict(frozen=True)

    status: int = Field(..., description="API status (1=found, 0=not)")
    product: Optional[OFFProduct] = Field(None, description="Product data (if found)")

    def is_found(self) -> bool:
        """Check if product was found.

        Returns:
            True if product exists in database
        """
        return self.status == 1 and self.product is not None
