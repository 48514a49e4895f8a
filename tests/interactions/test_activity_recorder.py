import asyncio
from unittest import mock

import pytest
from sqlalchemy.future import select

from src.api.interactions.service import ActivityRecorder
from src.config.constants import ActivityAction
from src.database.connection import AsyncSessionLocal
from src.database.models.user_activity import UserActivity
from tests.constants import CUSTOMER_UID


async def _all_activities():
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(UserActivity).order_by(UserActivity.id))
        return list(result.scalars().all())


class TestActionWeights:
    @pytest.mark.parametrize(
        "action, expected",
        [
            (ActivityAction.VIEW, 1.0),
            (ActivityAction.CLICK, 2.0),
            (ActivityAction.ADD_TO_CART, 5.0),
            (ActivityAction.PURCHASE, 10.0),
            ("purchase", 10.0),
            ("WISHLIST", 1.0),
        ],
    )
    async def test_default_weights(self, action, expected):
        assert ActivityRecorder().weight_for(action) == expected

    async def test_injected_weights_override_defaults(self):
        recorder = ActivityRecorder({ActivityAction.VIEW: 0.5})
        assert recorder.weight_for(ActivityAction.VIEW) == 0.5
        # Actions missing from an injected table use the default weight
        assert recorder.weight_for(ActivityAction.PURCHASE) == 1.0

    async def test_enum_and_string_actions_weigh_the_same(self):
        recorder = ActivityRecorder({ActivityAction.CLICK: 3.5})

        assert recorder.weight_for(ActivityAction.CLICK) == 3.5
        assert recorder.weight_for("CLICK") == 3.5
        assert recorder.weight_for("click") == 3.5


class TestRecord:
    async def test_record_stores_weighted_event(self):
        recorder = ActivityRecorder()

        assert await recorder.record(CUSTOMER_UID, 7, ActivityAction.ADD_TO_CART, "s-1")

        [activity] = await _all_activities()
        assert activity.user_id == CUSTOMER_UID
        assert activity.product_id == 7
        assert activity.action == "ADD_TO_CART"
        assert activity.session_id == "s-1"
        assert activity.weight == 5.0
        assert activity.timestamp is not None

    async def test_anonymous_event_has_no_user(self):
        assert await ActivityRecorder().record(None, 3, "view", "anon-session")

        [activity] = await _all_activities()
        assert activity.user_id is None
        assert activity.action == "VIEW"
        assert activity.weight == 1.0

    async def test_unknown_action_is_recorded_with_default_weight(self):
        assert await ActivityRecorder().record(CUSTOMER_UID, 3, "share", "s-1")

        [activity] = await _all_activities()
        assert activity.action == "SHARE"
        assert activity.weight == 1.0

    async def test_storage_failure_returns_false(self):
        recorder = ActivityRecorder()
        with mock.patch(
            "src.api.interactions.service.AsyncSessionLocal",
            side_effect=RuntimeError("database unavailable"),
        ):
            assert await recorder.record(CUSTOMER_UID, 3, ActivityAction.VIEW, "s-1") is False

        assert await _all_activities() == []


class TestTrackInBackground:
    async def test_background_tracking_is_drained(self):
        recorder = ActivityRecorder()

        task = recorder.track_in_background(CUSTOMER_UID, 1, ActivityAction.PURCHASE, "s-1")
        recorder.track_in_background(CUSTOMER_UID, 2, ActivityAction.VIEW, "s-1")
        assert isinstance(task, asyncio.Task)

        await recorder.drain()

        activities = await _all_activities()
        assert sorted(a.product_id for a in activities) == [1, 2]
        assert not recorder._pending
