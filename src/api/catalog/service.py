import logging
from typing import Iterable, List, Optional

from sqlalchemy.future import select

from src.database.connection import AsyncSessionLocal
from src.database.models.product import Product
from src.database.models.user import User


class CatalogService:
    """
    Read-only lookups against the product catalog.

    The catalog is owned elsewhere; recommendation services only need to
    resolve ids to products and list active products.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def get_product(self, product_id: int) -> Optional[Product]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(Product).where(Product.id == product_id)
            )
            return result.scalars().first()

    async def get_active_products(self, limit: Optional[int] = None) -> List[Product]:
        """Active products ordered by id."""
        async with AsyncSessionLocal() as session:
            query = (
                select(Product)
                .where(Product.is_active.is_(True))
                .order_by(Product.id)
            )
            if limit is not None:
                query = query.limit(limit)

            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_products_by_category(self, category: str) -> List[Product]:
        """All products in a category (active or not), ordered by id."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(Product)
                .where(Product.category == category)
                .order_by(Product.id)
            )
            return list(result.scalars().all())

    async def get_products_by_ids(self, product_ids: Iterable[int]) -> List[Product]:
        """
        Resolve product ids to products.

        Returns products in the order of product_ids; unknown ids and
        repeats are dropped.
        """
        ordered_ids = list(dict.fromkeys(product_ids))
        if not ordered_ids:
            return []

        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(Product).where(Product.id.in_(ordered_ids))
            )
            by_id = {product.id: product for product in result.scalars().all()}

        return [by_id[pid] for pid in ordered_ids if pid in by_id]


class UserDirectoryService:
    """Read-only access to the user directory."""

    async def get_all_user_ids(self) -> List[str]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(User.firebase_uid).order_by(User.firebase_uid)
            )
            return [row[0] for row in result.fetchall()]
