import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.future import select

from src.api.catalog.service import CatalogService
from src.api.recommendations.similarity_service import SimilarityEngine
from src.api.recommendations.trending_service import TrendingEngine
from src.api.recommendations.user_score_service import UserScoreEngine
from src.config.constants import (
    CANDIDATE_MULTIPLIER,
    LIVE_EDGES_PER_ACTIVITY,
    LIVE_LOOKBACK_DAYS,
    PRECOMPUTED_SCORES_LIMIT,
    SIMILAR_EDGES_LIMIT,
    RecommendationSource,
)
from src.database.connection import AsyncSessionLocal
from src.database.models.product import Product
from src.database.models.user_activity import UserActivity


@dataclass
class RecommendationResult:
    items: List[Product] = field(default_factory=list)
    source: RecommendationSource = RecommendationSource.TRENDING


class RecommendationRetriever:
    """
    Serves ranked product lists.

    Personalized lists are resolved through three tiers:
    1. Precomputed user scores
    2. Live computation from recent activity and the similarity graph
    3. Trending products

    A tier that fails or comes back empty hands over to the next one, so
    reads keep working while the batch engines are rebuilding.
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        similarity_engine: Optional[SimilarityEngine] = None,
        user_score_engine: Optional[UserScoreEngine] = None,
        trending_engine: Optional[TrendingEngine] = None,
    ):
        self.catalog = catalog or CatalogService()
        self.similarity_engine = similarity_engine or SimilarityEngine(self.catalog)
        self.user_score_engine = user_score_engine or UserScoreEngine(self.similarity_engine)
        self.trending_engine = trending_engine or TrendingEngine(self.catalog)
        self.logger = logging.getLogger(__name__)

    async def get_personalized(
        self, user_id: Optional[str], limit: int
    ) -> RecommendationResult:
        """
        Get "for you" recommendations.

        Args:
            user_id: Firebase UID, None for anonymous visitors
            limit: Maximum number of products to return

        Returns:
            RecommendationResult with source personalized or trending
        """
        if user_id:
            try:
                products = await self._from_precomputed_scores(user_id, limit)
                if products:
                    return RecommendationResult(products, RecommendationSource.PERSONALIZED)
            except Exception as e:
                self.logger.error(
                    f"Error reading precomputed scores for user {user_id}: {e}",
                    exc_info=True,
                )

            try:
                products = await self._from_live_activity(user_id, limit)
                if products:
                    return RecommendationResult(products, RecommendationSource.PERSONALIZED)
            except Exception as e:
                self.logger.error(
                    f"Error computing live recommendations for user {user_id}: {e}",
                    exc_info=True,
                )

        products = await self.trending_engine.get_trending(limit)
        return RecommendationResult(products, RecommendationSource.TRENDING)

    async def _from_precomputed_scores(self, user_id: str, limit: int) -> List[Product]:
        scores = await self.user_score_engine.get_top_scores(
            user_id, PRECOMPUTED_SCORES_LIMIT
        )
        if not scores:
            return []

        product_ids = [score.product_id for score in scores[:limit]]
        products = await self.catalog.get_products_by_ids(product_ids)
        return [p for p in products if p.is_active]

    async def _from_live_activity(self, user_id: str, limit: int) -> List[Product]:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=LIVE_LOOKBACK_DAYS)

        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(UserActivity)
                .where(
                    UserActivity.user_id == user_id,
                    UserActivity.timestamp >= cutoff_date,
                )
                .order_by(UserActivity.timestamp, UserActivity.id)
            )
            activities = list(result.scalars().all())

        if not activities:
            return []

        seen_products = {activity.product_id for activity in activities}
        candidate_scores: Dict[int, float] = defaultdict(float)

        for activity in activities:
            edges = await self.similarity_engine.get_top_edges(
                activity.product_id, LIVE_EDGES_PER_ACTIVITY
            )
            for edge in edges:
                if edge.similar_product_id in seen_products:
                    continue
                candidate_scores[edge.similar_product_id] += (
                    edge.similarity_score * activity.weight
                )

        ranked_ids = [
            product_id
            for product_id, _ in sorted(
                candidate_scores.items(), key=lambda item: (-item[1], item[0])
            )
        ][: limit * CANDIDATE_MULTIPLIER]

        products = await self.catalog.get_products_by_ids(ranked_ids)
        return [p for p in products if p.is_active][:limit]

    async def get_similar(self, product_id: int, limit: int) -> List[Product]:
        """
        Get products similar to a given product.

        Uses the stored similarity edges; without any, falls back to other
        active products of the same category. Errors yield an empty list.
        """
        try:
            edges = await self.similarity_engine.get_top_edges(
                product_id, SIMILAR_EDGES_LIMIT
            )

            if edges:
                candidate_ids = [edge.similar_product_id for edge in edges]
                candidates = await self.catalog.get_products_by_ids(candidate_ids)
            else:
                candidates = await self._same_category_products(product_id)

            return [
                p for p in candidates if p.id != product_id and p.is_active
            ][:limit]

        except Exception as e:
            self.logger.error(
                f"Error getting similar products for {product_id}: {e}", exc_info=True
            )
            return []

    async def _same_category_products(self, product_id: int) -> List[Product]:
        product = await self.catalog.get_product(product_id)
        if product is None or product.category is None:
            return []

        return await self.catalog.get_products_by_category(product.category)
