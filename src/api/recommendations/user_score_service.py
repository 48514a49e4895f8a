import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.future import select

from src.api.catalog.service import UserDirectoryService
from src.api.recommendations.similarity_service import SimilarityEngine
from src.config.constants import (
    USER_SCORE_DECAY_FACTOR,
    USER_SCORE_EDGES_PER_ACTIVITY,
    USER_SCORE_LOOKBACK_DAYS,
)
from src.config.settings import settings
from src.database.connection import AsyncSessionLocal
from src.database.models.product_similarity import ProductSimilarity
from src.database.models.user_activity import UserActivity
from src.database.models.user_product_score import UserProductScore
from src.shared.error_handler import ErrorHandler


class UserScoreEngine:
    """
    Precomputes per-user product affinity scores.

    A product the user interacted with scores its action weight; a product
    similar to it gets weight * similarity * decay on top. A user's rows are
    deleted and recreated on every run.
    """

    def __init__(
        self,
        similarity_engine: Optional[SimilarityEngine] = None,
        user_directory: Optional[UserDirectoryService] = None,
        batch_size: int = settings.USER_SCORE_BATCH_SIZE,
        batch_pause_seconds: float = settings.USER_SCORE_BATCH_PAUSE_SECONDS,
    ):
        self.similarity_engine = similarity_engine or SimilarityEngine()
        self.user_directory = user_directory or UserDirectoryService()
        self.batch_size = batch_size
        self.batch_pause_seconds = batch_pause_seconds
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)

    async def rebuild_user_scores(self, user_id: str) -> bool:
        """
        Replace a user's stored scores with freshly computed ones.

        Args:
            user_id: Firebase UID

        Returns:
            True if successful (including users with no recent activity)
        """
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(
                    delete(UserProductScore).where(UserProductScore.user_id == user_id)
                )
                await session.commit()

            activities = await self._get_recent_activities(user_id)
            if not activities:
                self.logger.debug(f"No recent activity for user {user_id}, no scores written")
                return True

            product_scores = await self._accumulate_scores(activities)

            now = datetime.now(timezone.utc)
            async with AsyncSessionLocal() as session:
                session.add_all(
                    [
                        UserProductScore(
                            user_id=user_id,
                            product_id=product_id,
                            score=score,
                            last_updated=now,
                        )
                        for product_id, score in product_scores.items()
                    ]
                )
                await session.commit()

            self.logger.debug(
                f"Computed scores for user {user_id}: {len(product_scores)} products"
            )
            return True

        except Exception as e:
            self._error_handler.log_item_failure(f"user score computation for {user_id}", e)
            return False

    async def _get_recent_activities(self, user_id: str) -> List[UserActivity]:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=USER_SCORE_LOOKBACK_DAYS)

        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(UserActivity)
                .where(
                    UserActivity.user_id == user_id,
                    UserActivity.timestamp >= cutoff_date,
                )
                .order_by(UserActivity.timestamp, UserActivity.id)
            )
            return list(result.scalars().all())

    async def _accumulate_scores(self, activities: List[UserActivity]) -> Dict[int, float]:
        product_scores: Dict[int, float] = defaultdict(float)
        edges_by_product: Dict[int, List[ProductSimilarity]] = {}

        for activity in activities:
            # Direct signal
            product_scores[activity.product_id] += activity.weight

            # Propagated signal, attenuated by the decay factor
            if activity.product_id not in edges_by_product:
                edges_by_product[activity.product_id] = (
                    await self.similarity_engine.get_top_edges(
                        activity.product_id, USER_SCORE_EDGES_PER_ACTIVITY
                    )
                )

            for edge in edges_by_product[activity.product_id]:
                product_scores[edge.similar_product_id] += (
                    activity.weight * edge.similarity_score * USER_SCORE_DECAY_FACTOR
                )

        return dict(product_scores)

    async def rebuild_all_user_scores(
        self, cancel_event: Optional[asyncio.Event] = None
    ) -> dict:
        """
        Rebuild scores for every user in the directory, one at a time.

        Pauses after each batch of users to bound database load. A failing
        user is logged and skipped.

        Returns:
            dict with success/failed/total counts and a cancellation flag
        """
        self.logger.info("Starting user score computation for all users...")
        results = {"success": 0, "failed": 0, "total": 0, "cancelled": False}

        try:
            user_ids = await self.user_directory.get_all_user_ids()
        except Exception as e:
            self.logger.error(f"Error listing users for score computation: {e}", exc_info=True)
            results["error"] = str(e)
            return results

        results["total"] = len(user_ids)

        for count, user_id in enumerate(user_ids, start=1):
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning(
                    f"User score computation cancelled after {count - 1} users"
                )
                results["cancelled"] = True
                break

            if await self.rebuild_user_scores(user_id):
                results["success"] += 1
            else:
                results["failed"] += 1

            if count % self.batch_size == 0:
                self.logger.info(f"Processed {count}/{len(user_ids)} users")
                await asyncio.sleep(self.batch_pause_seconds)

        self.logger.info(
            f"User score computation complete: {results['success']} success, {results['failed']} failed"
        )
        return results

    async def delete_all_scores(self) -> int:
        """Remove every stored user score. Returns the number of rows deleted."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(delete(UserProductScore))
            await session.commit()
            return result.rowcount or 0

    async def get_top_scores(self, user_id: str, limit: int) -> List[UserProductScore]:
        """Stored scores of a user, highest first."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(UserProductScore)
                .where(UserProductScore.user_id == user_id)
                .order_by(UserProductScore.score.desc(), UserProductScore.product_id)
                .limit(limit)
            )
            return list(result.scalars().all())
