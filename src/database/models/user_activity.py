from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base


class UserActivity(Base):
    """
    Append-only log of user interactions with products.

    Tracks: views, clicks, cart adds, purchases. Anonymous sessions are
    recorded with a null user_id and correlated through session_id.
    Rows are never updated; weight is fixed at write time.
    """

    __tablename__ = "user_activities"
    __table_args__ = (
        Index("idx_user_activities_user_id", "user_id"),
        Index("idx_user_activities_product_id", "product_id"),
        Index("idx_user_activities_user_time", "user_id", "timestamp"),
        Index("idx_user_activities_action_time", "action", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Firebase UID, null for anonymous sessions
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # VIEW, CLICK, ADD_TO_CART, PURCHASE
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    session_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Weighted score for this action (from the action weight table)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
