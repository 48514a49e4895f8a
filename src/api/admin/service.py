import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import delete, func
from sqlalchemy.future import select

from src.api.recommendations.similarity_service import SimilarityEngine
from src.api.recommendations.user_score_service import UserScoreEngine
from src.config.constants import TRENDING_LOOKBACK_DAYS, ActivityAction
from src.database.connection import AsyncSessionLocal
from src.database.models.product_similarity import ProductSimilarity
from src.database.models.user_activity import UserActivity
from src.database.models.user_product_score import UserProductScore
from src.shared.error_handler import ErrorHandler, handle_service_errors


class RecommendationAdminService:
    """Maintenance operations on the recommendation data sets."""

    def __init__(
        self,
        similarity_engine: Optional[SimilarityEngine] = None,
        user_score_engine: Optional[UserScoreEngine] = None,
    ):
        self.similarity_engine = similarity_engine or SimilarityEngine()
        self.user_score_engine = user_score_engine or UserScoreEngine(self.similarity_engine)
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)

    @handle_service_errors("clearing product similarities")
    async def clear_similarities(self) -> int:
        deleted = await self.similarity_engine.delete_all_edges()
        self.logger.warning(f"Cleared {deleted} product similarities")
        return deleted

    @handle_service_errors("clearing user product scores")
    async def clear_user_scores(self) -> int:
        deleted = await self.user_score_engine.delete_all_scores()
        self.logger.warning(f"Cleared {deleted} user product scores")
        return deleted

    @handle_service_errors("clearing all recommendation data")
    async def clear_all_recommendation_data(self) -> Dict[str, int]:
        """Delete activities, similarity edges and user scores in one transaction."""
        async with AsyncSessionLocal() as session:
            activities = await session.execute(delete(UserActivity))
            similarities = await session.execute(delete(ProductSimilarity))
            scores = await session.execute(delete(UserProductScore))
            await session.commit()

        cleared = {
            "activities": activities.rowcount or 0,
            "similarities": similarities.rowcount or 0,
            "user_scores": scores.rowcount or 0,
        }
        self.logger.warning(f"Cleared all recommendation data: {cleared}")
        return cleared

    @handle_service_errors("getting recommendation stats")
    async def get_stats(self) -> Dict[str, int]:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=TRENDING_LOOKBACK_DAYS)

        async with AsyncSessionLocal() as session:
            total_activities = await session.scalar(
                select(func.count()).select_from(UserActivity)
            )
            total_similarities = await session.scalar(
                select(func.count()).select_from(ProductSimilarity)
            )
            total_user_scores = await session.scalar(
                select(func.count()).select_from(UserProductScore)
            )
            recent_purchases = await session.scalar(
                select(func.count())
                .select_from(UserActivity)
                .where(
                    UserActivity.action == ActivityAction.PURCHASE.value,
                    UserActivity.timestamp >= cutoff_date,
                )
            )

        return {
            "total_activities": total_activities or 0,
            "total_similarities": total_similarities or 0,
            "total_user_scores": total_user_scores or 0,
            "recent_purchases": recent_purchases or 0,
        }
