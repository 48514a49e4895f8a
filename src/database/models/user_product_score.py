from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base


class UserProductScore(Base):
    """
    Precomputed affinity of a user for a product.

    Replaced wholesale for a user on every score rebuild. Scores are only
    meaningful relative to the same user's other rows.
    """

    __tablename__ = "user_product_scores"
    __table_args__ = (
        Index("idx_user_product_scores_user_id", "user_id"),
        Index("idx_user_product_scores_user_score", "user_id", "score"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Firebase UID
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)

    product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    score: Mapped[float] = mapped_column(Float, nullable=False)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
