# Import all models to ensure they are registered with SQLAlchemy

from .product import Product
from .product_similarity import ProductSimilarity
from .user import User
from .user_activity import UserActivity
from .user_product_score import UserProductScore

__all__ = [
    "Product",
    "ProductSimilarity",
    "User",
    "UserActivity",
    "UserProductScore",
]
