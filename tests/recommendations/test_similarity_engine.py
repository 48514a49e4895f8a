import asyncio
from collections import Counter
from unittest import mock

import pytest
from sqlalchemy.future import select

from src.api.recommendations.similarity_service import SimilarityEngine
from src.config.constants import ActivityAction, SimilarityBasis
from src.database.connection import AsyncSessionLocal
from src.database.models.product_similarity import ProductSimilarity


async def _all_edges():
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(ProductSimilarity))
        return list(result.scalars().all())


def _edge_multiset(edges):
    return Counter(
        (e.product_id, e.similar_product_id, round(e.similarity_score, 6), e.basis)
        for e in edges
    )


@pytest.fixture
async def co_purchase_history(add_products, add_activity):
    """
    u1, u2 bought 10 and 20 recently; u1 also bought 30.
    u3..u5 bought 10 long ago. Anonymous shoppers bought 20 and 30.
    """
    await add_products((10, None), (20, None), (30, None))
    for uid in ("u1", "u2"):
        await add_activity(uid, 10, ActivityAction.PURCHASE, days_ago=5)
        await add_activity(uid, 20, ActivityAction.PURCHASE, days_ago=5)
    await add_activity("u1", 30, ActivityAction.PURCHASE, days_ago=3)
    for uid in ("u3", "u4", "u5"):
        await add_activity(uid, 10, ActivityAction.PURCHASE, days_ago=200)
    for session in ("anon-1", "anon-2"):
        await add_activity(None, 20, ActivityAction.PURCHASE, session_id=session)
        await add_activity(None, 30, ActivityAction.PURCHASE, session_id=session)


class TestCategorySimilarity:
    async def test_same_category_products_are_linked(self, add_products):
        await add_products(
            (1, "Shoes"), (2, "Shoes"), (3, "Shoes"), (4, "Shoes"),
            (5, "Shoes", False), (6, "Hats"), (7, None),
        )

        results = await SimilarityEngine().rebuild_similarities()

        edges = await _all_edges()
        assert results["processed"] == 6
        assert results["edges"] == len(edges) == 12
        assert results["error"] is None
        assert all(e.basis == SimilarityBasis.CATEGORY.value for e in edges)
        assert all(e.similarity_score == 0.7 for e in edges)
        assert sorted(e.similar_product_id for e in edges if e.product_id == 1) == [2, 3, 4]
        # Inactive products are neither sources nor targets
        assert not [e for e in edges if 5 in (e.product_id, e.similar_product_id)]
        # Alone in its category, or uncategorized: no edges
        assert not [e for e in edges if e.product_id in (6, 7)]

    async def test_neighbours_are_capped_per_product(self, add_products):
        await add_products(*[(pid, "Snacks") for pid in range(1, 14)])

        await SimilarityEngine().rebuild_similarities()

        edges = await _all_edges()
        first = sorted(e.similar_product_id for e in edges if e.product_id == 1)
        assert first == list(range(2, 12))
        last = sorted(e.similar_product_id for e in edges if e.product_id == 13)
        assert last == list(range(1, 11))


class TestCoPurchaseSimilarity:
    async def test_co_purchase_edges(self, co_purchase_history):
        await SimilarityEngine().rebuild_similarities()

        edges = {
            (e.product_id, e.similar_product_id): e.similarity_score
            for e in await _all_edges()
            if e.basis == SimilarityBasis.CO_PURCHASE.value
        }
        # 2 of 5 purchasers of 10 recently bought 20
        assert edges[(10, 20)] == pytest.approx(0.8)
        # 2 of 2 purchasers of 20 recently bought 10, capped at 1.0
        assert edges[(20, 10)] == pytest.approx(1.0)
        # Single co-purchasers and anonymous purchases never make an edge
        assert set(edges) == {(10, 20), (20, 10)}

    async def test_purchases_outside_window_are_not_co_purchases(
        self, add_products, add_activity
    ):
        await add_products((40, None), (50, None))
        for uid in ("u1", "u2"):
            await add_activity(uid, 40, ActivityAction.PURCHASE, days_ago=2)
            await add_activity(uid, 50, ActivityAction.PURCHASE, days_ago=120)

        await SimilarityEngine().rebuild_similarities()

        pairs = {
            (e.product_id, e.similar_product_id)
            for e in await _all_edges()
            if e.basis == SimilarityBasis.CO_PURCHASE.value
        }
        # Old buyers of 50 still count as its purchasers, but their
        # 120-day-old purchase of 50 is no candidate for 40
        assert (40, 50) not in pairs
        assert pairs == {(50, 40)}

    async def test_co_purchase_scores_are_bounded(self, co_purchase_history):
        await SimilarityEngine().rebuild_similarities()

        for edge in await _all_edges():
            if edge.basis == SimilarityBasis.CO_PURCHASE.value:
                assert 0 < edge.similarity_score <= 1.0

    async def test_views_do_not_count_as_purchases(self, add_products, add_activity):
        await add_products((1, None), (2, None))
        for uid in ("u1", "u2"):
            await add_activity(uid, 1, ActivityAction.PURCHASE)
            await add_activity(uid, 2, ActivityAction.VIEW)

        await SimilarityEngine().rebuild_similarities()

        assert await _all_edges() == []


class TestRebuild:
    async def test_rebuild_is_deterministic(self, add_products, co_purchase_history):
        await add_products((1, "Shoes"), (2, "Shoes"), (3, "Shoes"))
        engine = SimilarityEngine()

        await engine.rebuild_similarities()
        first = _edge_multiset(await _all_edges())
        await engine.rebuild_similarities()
        second = _edge_multiset(await _all_edges())

        assert first == second
        assert sum(first.values()) == 8

    async def test_rebuild_replaces_stale_edges(self, add_products, add_edge):
        await add_products((1, "Shoes"), (2, "Shoes"))
        await add_edge(1, 99, 0.9, SimilarityBasis.CO_PURCHASE.value)

        await SimilarityEngine().rebuild_similarities()

        pairs = {(e.product_id, e.similar_product_id) for e in await _all_edges()}
        assert pairs == {(1, 2), (2, 1)}

    async def test_failing_product_is_skipped(self, add_products):
        await add_products((1, "Shoes"), (2, "Shoes"), (3, "Shoes"))
        engine = SimilarityEngine()
        original_save = engine._save_edges

        async def flaky_save(edges):
            if edges and edges[0].product_id == 2:
                raise RuntimeError("write failed")
            await original_save(edges)

        with mock.patch.object(engine, "_save_edges", side_effect=flaky_save):
            results = await engine.rebuild_similarities()

        assert results["processed"] == 3
        assert results["failed"] == 1
        assert {e.product_id for e in await _all_edges()} == {1, 3}

    async def test_catalog_failure_ends_run_without_raising(self, add_edge):
        await add_edge(1, 2, 0.7)
        engine = SimilarityEngine()

        with mock.patch.object(
            engine.catalog,
            "get_active_products",
            side_effect=RuntimeError("catalog unavailable"),
        ):
            results = await engine.rebuild_similarities()

        assert results["error"] == "catalog unavailable"
        assert results["processed"] == 0
        # Edges were deleted before the failure
        assert await _all_edges() == []

    async def test_cancelled_rebuild_stops_before_next_product(self, add_products):
        await add_products((1, "Shoes"), (2, "Shoes"))
        cancel_event = asyncio.Event()
        cancel_event.set()

        results = await SimilarityEngine().rebuild_similarities(cancel_event)

        assert results["cancelled"] is True
        assert results["processed"] == 0
        assert await _all_edges() == []


class TestTopEdges:
    async def test_top_edges_strongest_first(self, add_edge):
        await add_edge(1, 2, 0.7)
        await add_edge(1, 3, 0.9)
        await add_edge(1, 4, 0.2)
        await add_edge(5, 1, 1.0)

        edges = await SimilarityEngine().get_top_edges(1, 2)

        assert [e.similar_product_id for e in edges] == [3, 2]

    async def test_delete_all_edges(self, add_edge):
        await add_edge(1, 2, 0.7)
        await add_edge(2, 1, 0.7)

        assert await SimilarityEngine().delete_all_edges() == 2
        assert await _all_edges() == []
