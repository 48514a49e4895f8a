from typing import List, Optional

from pydantic import BaseModel, Field

from src.config.constants import RecommendationSource


class TrackActivitySchema(BaseModel):
    product_id: int = Field(..., ge=1, description="Product the user interacted with")
    action: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="VIEW, CLICK, ADD_TO_CART or PURCHASE",
        examples=["VIEW"],
    )
    session_id: Optional[str] = Field(
        None, max_length=255, description="Client session identifier"
    )


class RecommendedProductSchema(BaseModel):
    id: int
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True

    model_config = {"from_attributes": True}


class SimilarProductsResponse(BaseModel):
    items: List[RecommendedProductSchema]
    count: int


class PersonalizedRecommendationsResponse(SimilarProductsResponse):
    """Also reports which tier produced the list"""

    type: RecommendationSource


class TrendingProductsResponse(SimilarProductsResponse):
    pass
