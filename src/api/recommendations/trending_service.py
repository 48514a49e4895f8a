import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import desc, func
from sqlalchemy.future import select

from src.api.catalog.service import CatalogService
from src.config.constants import (
    CANDIDATE_MULTIPLIER,
    TRENDING_LOOKBACK_DAYS,
    ActivityAction,
)
from src.database.connection import AsyncSessionLocal
from src.database.models.product import Product
from src.database.models.user_activity import UserActivity


class TrendingEngine:
    """
    Ranks products by recent purchase volume.

    Falls back to any active catalog products when nothing was purchased
    in the window, so callers always get something to show.
    """

    def __init__(self, catalog: Optional[CatalogService] = None):
        self.catalog = catalog or CatalogService()
        self.logger = logging.getLogger(__name__)

    async def get_trending(self, limit: int) -> List[Product]:
        """
        Get trending products.

        Args:
            limit: Maximum number of products to return

        Returns:
            Active products, most purchased in the last week first
        """
        try:
            product_ids = await self._get_trending_product_ids(limit * CANDIDATE_MULTIPLIER)

            if not product_ids:
                self.logger.debug("No recent purchases, falling back to active products")
                return await self.catalog.get_active_products(limit)

            products = await self.catalog.get_products_by_ids(product_ids)
            return [p for p in products if p.is_active][:limit]

        except Exception as e:
            self.logger.error(f"Error getting trending products: {e}", exc_info=True)
            return await self._fallback_products(limit)

    async def _get_trending_product_ids(self, limit: int) -> List[int]:
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=TRENDING_LOOKBACK_DAYS)
        purchase_count = func.count(UserActivity.id).label("purchase_count")

        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(UserActivity.product_id, purchase_count)
                .where(
                    UserActivity.action == ActivityAction.PURCHASE.value,
                    UserActivity.timestamp >= cutoff_date,
                )
                .group_by(UserActivity.product_id)
                .order_by(desc(purchase_count), UserActivity.product_id)
                .limit(limit)
            )
            return [row[0] for row in result.fetchall()]

    async def _fallback_products(self, limit: int) -> List[Product]:
        try:
            return await self.catalog.get_active_products(limit)
        except Exception as e:
            self.logger.error(f"Error getting fallback products: {e}", exc_info=True)
            return []
