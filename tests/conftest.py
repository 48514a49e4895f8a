import os
import tempfile

# Must be set before any src module is imported
_TEST_DB_DIR = tempfile.mkdtemp(prefix="recommendations-test-")
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
)
os.environ["TESTING"] = "True"
os.environ["RECOMMENDATION_SCHEDULER_ENABLED"] = "false"
os.environ["USER_SCORE_BATCH_PAUSE_SECONDS"] = "0"

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

import src.database.models  # noqa: F401
from src.config.constants import ACTION_WEIGHTS, ActivityAction, UserRole
from src.database.base import Base
from src.database.connection import AsyncSessionLocal, engine
from src.database.models.product import Product
from src.database.models.product_similarity import ProductSimilarity
from src.database.models.user import User
from src.database.models.user_activity import UserActivity
from src.database.models.user_product_score import UserProductScore


@pytest_asyncio.fixture(autouse=True)
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def _add_all(rows):
    async with AsyncSessionLocal() as session:
        session.add_all(rows)
        await session.commit()
    return rows


@pytest.fixture
def add_products():
    async def _add(*product_rows):
        """(id, category) or (id, category, is_active)"""
        rows = []
        for row in product_rows:
            product_id, category, *rest = row
            rows.append(
                Product(
                    id=product_id,
                    name=f"Product {product_id}",
                    brand="Acme",
                    category=category,
                    is_active=rest[0] if rest else True,
                )
            )
        return await _add_all(rows)

    return _add


@pytest.fixture
def add_users():
    async def _add(*uids: str):
        return await _add_all(
            [User(firebase_uid=uid, name=uid, role=UserRole.CUSTOMER.value) for uid in uids]
        )

    return _add


@pytest.fixture
def add_activity():
    async def _add(
        user_id: Optional[str],
        product_id: int,
        action: ActivityAction = ActivityAction.VIEW,
        days_ago: float = 0,
        weight: Optional[float] = None,
        session_id: str = "test-session",
    ):
        activity = UserActivity(
            user_id=user_id,
            product_id=product_id,
            action=action.value,
            timestamp=datetime.now(timezone.utc) - timedelta(days=days_ago),
            session_id=session_id,
            weight=ACTION_WEIGHTS[action] if weight is None else weight,
        )
        await _add_all([activity])
        return activity

    return _add


@pytest.fixture
def add_edge():
    async def _add(product_id: int, similar_product_id: int, score: float, basis: str = "CATEGORY"):
        edge = ProductSimilarity(
            product_id=product_id,
            similar_product_id=similar_product_id,
            similarity_score=score,
            basis=basis,
        )
        await _add_all([edge])
        return edge

    return _add


@pytest.fixture
def add_score():
    async def _add(user_id: str, product_id: int, score: float):
        row = UserProductScore(
            user_id=user_id,
            product_id=product_id,
            score=score,
            last_updated=datetime.now(timezone.utc),
        )
        await _add_all([row])
        return row

    return _add


def make_token(uid: str, role: UserRole = UserRole.CUSTOMER):
    from src.api.auth.models import DecodedToken

    return DecodedToken(
        iss="https://securetoken.google.com/test-project",
        aud="test-project",
        auth_time=1700000000,
        user_id=uid,
        sub=uid,
        iat=1700000000,
        exp=1700003600,
        firebase={"sign_in_provider": "custom"},
        uid=uid,
        role=role,
    )


@pytest_asyncio.fixture
async def client():
    """httpx.AsyncClient bound to the app; dependency overrides are reset afterwards."""
    from httpx import ASGITransport, AsyncClient

    from main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sign_in():
    """Authenticate subsequent requests as the given user (None for anonymous)."""
    from main import app
    from src.dependencies.auth import get_current_user, get_optional_user

    def _sign_in(uid: Optional[str], role: UserRole = UserRole.CUSTOMER):
        token = make_token(uid, role) if uid else None
        app.dependency_overrides[get_optional_user] = lambda: token
        if token is not None:
            app.dependency_overrides[get_current_user] = lambda: token
        return token

    return _sign_in
