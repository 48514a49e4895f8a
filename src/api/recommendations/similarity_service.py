import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import delete, desc
from sqlalchemy.future import select

from src.api.catalog.service import CatalogService
from src.config.constants import (
    CATEGORY_NEIGHBOR_LIMIT,
    CATEGORY_SIMILARITY_SCORE,
    CO_PURCHASE_LOOKBACK_DAYS,
    CO_PURCHASE_MIN_COUNT,
    CO_PURCHASE_SCORE_MULTIPLIER,
    MAX_SIMILARITY_SCORE,
    SIMILARITY_PROGRESS_LOG_EVERY,
    ActivityAction,
    SimilarityBasis,
)
from src.database.connection import AsyncSessionLocal
from src.database.models.product import Product
from src.database.models.product_similarity import ProductSimilarity
from src.database.models.user_activity import UserActivity
from src.shared.error_handler import ErrorHandler


class SimilarityEngine:
    """
    Builds the product-to-product similarity graph.

    Handles:
    - Full, non-incremental graph rebuilds (delete, then repopulate)
    - Category similarity (shared category, fixed score)
    - Co-purchase similarity (users who bought A also bought B)
    - Top-edge lookups for the scoring and retrieval services

    Edges are committed per product, so a rebuild that fails or is cancelled
    part-way leaves a partial graph until the next run.
    """

    def __init__(self, catalog: Optional[CatalogService] = None):
        self.catalog = catalog or CatalogService()
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)

    async def rebuild_similarities(
        self, cancel_event: Optional[asyncio.Event] = None
    ) -> dict:
        """
        Rebuild the whole similarity graph.

        Args:
            cancel_event: Checked before each product; when set the rebuild
                stops and keeps the edges written so far

        Returns:
            dict with processed/edges/failed counts, cancellation flag and
            the error message of a run-ending failure (if any)
        """
        self.logger.info("Starting product similarity computation...")
        results = {
            "processed": 0,
            "edges": 0,
            "failed": 0,
            "cancelled": False,
            "error": None,
        }

        try:
            await self.delete_all_edges()

            products = await self.catalog.get_active_products()
            neighbours_by_category = self._group_by_category(products)
            purchasers_by_product, recent_purchases_by_user = (
                await self._build_purchase_indexes()
            )

            self.logger.info(f"Computing similarities for {len(products)} products")

            for product in products:
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.warning(
                        f"Similarity computation cancelled after {results['processed']} products"
                    )
                    results["cancelled"] = True
                    break

                try:
                    edges = self._category_edges(product, neighbours_by_category)
                    edges.extend(
                        self._co_purchase_edges(
                            product.id, purchasers_by_product, recent_purchases_by_user
                        )
                    )
                    await self._save_edges(edges)
                    results["edges"] += len(edges)
                except Exception as e:
                    results["failed"] += 1
                    self._error_handler.log_item_failure(
                        f"similarity computation for product {product.id}", e
                    )

                results["processed"] += 1
                if results["processed"] % SIMILARITY_PROGRESS_LOG_EVERY == 0:
                    self.logger.info(f"Processed {results['processed']} products")

        except Exception as e:
            self.logger.error(f"Error computing product similarities: {e}", exc_info=True)
            results["error"] = str(e)

        self.logger.info(
            f"Product similarity computation finished: {results['processed']} products, "
            f"{results['edges']} edges, {results['failed']} failed"
        )
        return results

    def _group_by_category(self, products: List[Product]) -> Dict[str, List[int]]:
        """Active product ids per category, in catalog (id) order."""
        grouped: Dict[str, List[int]] = defaultdict(list)
        for product in products:
            if product.category is not None:
                grouped[product.category].append(product.id)
        return grouped

    def _category_edges(
        self, product: Product, neighbours_by_category: Dict[str, List[int]]
    ) -> List[ProductSimilarity]:
        if product.category is None:
            return []

        neighbours = [
            pid for pid in neighbours_by_category.get(product.category, [])
            if pid != product.id
        ][:CATEGORY_NEIGHBOR_LIMIT]

        return [
            ProductSimilarity(
                product_id=product.id,
                similar_product_id=neighbour_id,
                similarity_score=CATEGORY_SIMILARITY_SCORE,
                basis=SimilarityBasis.CATEGORY.value,
            )
            for neighbour_id in neighbours
        ]

    def _co_purchase_edges(
        self,
        product_id: int,
        purchasers_by_product: Dict[int, Set[str]],
        recent_purchases_by_user: Dict[str, Set[int]],
    ) -> List[ProductSimilarity]:
        """
        Score = min(1, co_purchasers / purchasers * 2), for candidates bought
        recently by more than one of this product's purchasers.
        """
        purchasers = purchasers_by_product.get(product_id)
        if not purchasers:
            return []

        co_counts: Dict[int, int] = defaultdict(int)
        for user_id in purchasers:
            for other_id in recent_purchases_by_user.get(user_id, ()):
                if other_id != product_id:
                    co_counts[other_id] += 1

        total_purchasers = len(purchasers)
        return [
            ProductSimilarity(
                product_id=product_id,
                similar_product_id=other_id,
                similarity_score=min(
                    MAX_SIMILARITY_SCORE,
                    count / total_purchasers * CO_PURCHASE_SCORE_MULTIPLIER,
                ),
                basis=SimilarityBasis.CO_PURCHASE.value,
            )
            for other_id, count in sorted(co_counts.items())
            if count > CO_PURCHASE_MIN_COUNT
        ]

    async def _build_purchase_indexes(
        self,
    ) -> Tuple[Dict[int, Set[str]], Dict[str, Set[int]]]:
        """
        Read purchase history once per rebuild.

        Returns:
            (product id -> users who ever purchased it,
             user id -> products purchased within the lookback window)
        """
        cutoff_date = datetime.now(timezone.utc) - timedelta(
            days=CO_PURCHASE_LOOKBACK_DAYS
        )
        purchasers_by_product: Dict[int, Set[str]] = defaultdict(set)
        recent_purchases_by_user: Dict[str, Set[int]] = defaultdict(set)

        async with AsyncSessionLocal() as session:
            all_purchases = await session.execute(
                select(UserActivity.product_id, UserActivity.user_id).where(
                    UserActivity.action == ActivityAction.PURCHASE.value,
                    UserActivity.user_id.is_not(None),
                )
            )
            for product_id, user_id in all_purchases.fetchall():
                purchasers_by_product[product_id].add(user_id)

            recent_purchases = await session.execute(
                select(UserActivity.user_id, UserActivity.product_id).where(
                    UserActivity.action == ActivityAction.PURCHASE.value,
                    UserActivity.user_id.is_not(None),
                    UserActivity.timestamp >= cutoff_date,
                )
            )
            for user_id, product_id in recent_purchases.fetchall():
                recent_purchases_by_user[user_id].add(product_id)

        return purchasers_by_product, recent_purchases_by_user

    async def _save_edges(self, edges: List[ProductSimilarity]) -> None:
        if not edges:
            return

        async with AsyncSessionLocal() as session:
            session.add_all(edges)
            await session.commit()

    async def delete_all_edges(self) -> int:
        """Remove every similarity edge. Returns the number of rows deleted."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(delete(ProductSimilarity))
            await session.commit()
            return result.rowcount or 0

    async def get_top_edges(self, product_id: int, limit: int) -> List[ProductSimilarity]:
        """Outgoing edges of a product, strongest first."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(ProductSimilarity)
                .where(ProductSimilarity.product_id == product_id)
                .order_by(desc(ProductSimilarity.similarity_score), ProductSimilarity.id)
                .limit(limit)
            )
            return list(result.scalars().all())
