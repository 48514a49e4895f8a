import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query, status

from src.api.auth.models import DecodedToken
from src.api.interactions.service import ActivityRecorder
from src.api.recommendations.models import (
    PersonalizedRecommendationsResponse,
    RecommendedProductSchema,
    SimilarProductsResponse,
    TrackActivitySchema,
    TrendingProductsResponse,
)
from src.api.recommendations.service import RecommendationRetriever
from src.config.constants import (
    RECOMMENDATION_DEFAULT_LIMIT,
    RECOMMENDATION_MAX_LIMIT,
    SIMILAR_DEFAULT_LIMIT,
)
from src.dependencies.auth import get_optional_user
from src.shared.responses import success_response

recommendations_router = APIRouter(prefix="/recommendations", tags=["Recommendations"])
activity_recorder = ActivityRecorder()
recommendation_retriever = RecommendationRetriever()


def _serialize(products) -> list:
    return [
        RecommendedProductSchema.model_validate(product).model_dump(mode="json")
        for product in products
    ]


@recommendations_router.post(
    "/track",
    summary="Track a user interaction with a product",
    status_code=status.HTTP_202_ACCEPTED,
)
async def track_activity(
    payload: TrackActivitySchema,
    current_user: Annotated[Optional[DecodedToken], Depends(get_optional_user)],
    x_session_id: Optional[str] = Header(None),
):
    """
    Record a VIEW, CLICK, ADD_TO_CART or PURCHASE event.

    The event is written in the background; the response does not wait for
    it. Works for anonymous visitors too: the session id comes from the body,
    the X-Session-ID header, or is generated.
    """
    user_id = current_user.uid if current_user else None
    session_id = payload.session_id or x_session_id or str(uuid.uuid4())

    activity_recorder.track_in_background(
        user_id, payload.product_id, payload.action, session_id
    )

    return success_response(
        {"session_id": session_id},
        message="Activity accepted",
        status_code=status.HTTP_202_ACCEPTED,
    )


@recommendations_router.get(
    "/for-you",
    summary="Get personalized recommendations",
    response_model=PersonalizedRecommendationsResponse,
)
async def get_for_you(
    current_user: Annotated[Optional[DecodedToken], Depends(get_optional_user)],
    limit: int = Query(
        RECOMMENDATION_DEFAULT_LIMIT,
        ge=1,
        le=RECOMMENDATION_MAX_LIMIT,
        description=f"Number of products to return (max: {RECOMMENDATION_MAX_LIMIT})",
    ),
):
    """
    Personalized for signed-in users with history; trending otherwise.
    The `type` field tells which one was served.
    """
    user_id = current_user.uid if current_user else None
    result = await recommendation_retriever.get_personalized(user_id, limit)

    return success_response(
        {
            "items": _serialize(result.items),
            "count": len(result.items),
            "type": result.source.value,
        }
    )


@recommendations_router.get(
    "/similar/{product_id}",
    summary="Get products similar to a product",
    response_model=SimilarProductsResponse,
)
async def get_similar_products(
    product_id: int,
    limit: int = Query(
        SIMILAR_DEFAULT_LIMIT,
        ge=1,
        le=RECOMMENDATION_MAX_LIMIT,
        description=f"Number of products to return (max: {RECOMMENDATION_MAX_LIMIT})",
    ),
):
    products = await recommendation_retriever.get_similar(product_id, limit)
    return success_response({"items": _serialize(products), "count": len(products)})


@recommendations_router.get(
    "/trending",
    summary="Get trending products",
    response_model=TrendingProductsResponse,
)
async def get_trending_products(
    limit: int = Query(
        RECOMMENDATION_DEFAULT_LIMIT,
        ge=1,
        le=RECOMMENDATION_MAX_LIMIT,
        description=f"Number of products to return (max: {RECOMMENDATION_MAX_LIMIT})",
    ),
):
    products = await recommendation_retriever.trending_engine.get_trending(limit)
    return success_response({"items": _serialize(products), "count": len(products)})
