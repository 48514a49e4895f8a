import asyncio
import logging
from datetime import datetime, timezone
from typing import Mapping, Optional, Set, Union

from src.config.constants import DEFAULT_ACTION_WEIGHT, ActivityAction
from src.config.settings import settings
from src.database.connection import AsyncSessionLocal
from src.database.models.user_activity import UserActivity


class ActivityRecorder:
    """
    Records user interactions with products into the activity log.

    Handles:
    - Weighting each action once, at write time
    - Anonymous sessions (no user id, session id only)
    - Fire-and-forget tracking that never breaks the caller's request
    """

    def __init__(self, action_weights: Optional[Mapping[ActivityAction, float]] = None):
        self.action_weights = dict(
            action_weights if action_weights is not None else settings.ACTION_WEIGHTS
        )
        self.logger = logging.getLogger(__name__)
        self._pending: Set[asyncio.Task] = set()

    def weight_for(self, action: Union[ActivityAction, str]) -> float:
        """Weight of an action; unknown actions get the default weight."""
        if not isinstance(action, ActivityAction):
            try:
                action = ActivityAction(str(action).upper())
            except ValueError:
                return DEFAULT_ACTION_WEIGHT
        return self.action_weights.get(action, DEFAULT_ACTION_WEIGHT)

    async def record(
        self,
        user_id: Optional[str],
        product_id: int,
        action: Union[ActivityAction, str],
        session_id: str,
    ) -> bool:
        """
        Append one activity event.

        Args:
            user_id: Firebase UID, None for anonymous sessions
            product_id: Product ID
            action: VIEW, CLICK, ADD_TO_CART or PURCHASE (others weigh 1.0)
            session_id: Client session identifier

        Returns:
            True if stored; storage errors are logged and return False
        """
        try:
            action_name = (
                action.value if isinstance(action, ActivityAction) else str(action).upper()
            )

            async with AsyncSessionLocal() as session:
                activity = UserActivity(
                    user_id=user_id,
                    product_id=product_id,
                    action=action_name,
                    timestamp=datetime.now(timezone.utc),
                    session_id=session_id,
                    weight=self.weight_for(action_name),
                )

                session.add(activity)
                await session.commit()

            self.logger.debug(
                f"Activity logged: user={user_id}, product={product_id}, action={action_name}"
            )
            return True

        except Exception as e:
            self.logger.error(f"Error logging activity: {e}", exc_info=True)
            return False

    def track_in_background(
        self,
        user_id: Optional[str],
        product_id: int,
        action: Union[ActivityAction, str],
        session_id: str,
    ) -> asyncio.Task:
        """Schedule record() without waiting for it."""
        task = asyncio.create_task(
            self.record(user_id, product_id, action, session_id)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for background recordings still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
