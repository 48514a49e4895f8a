from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base


class ProductSimilarity(Base):
    """
    Directed "product_id is similar to similar_product_id" edge.

    Rebuilt from scratch by the similarity job. The same ordered pair may
    appear once per basis.
    """

    __tablename__ = "product_similarities"
    __table_args__ = (
        Index("idx_product_similarities_product_id", "product_id"),
        Index("idx_product_similarities_similar_id", "similar_product_id"),
        Index(
            "idx_product_similarities_product_score",
            "product_id",
            "similarity_score",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    similar_product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)

    # CATEGORY, CO_PURCHASE
    basis: Mapped[str] = mapped_column(String(50), nullable=False)
