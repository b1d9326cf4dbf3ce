import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import make_product
from schemas.cart_schemas import RecommendationReason, ScoredCandidate
from schemas.drawer_config import LayoutMode
from services.layouts import LAYOUT_HANDLERS, build_view
from services.obs.metrics import DrawerMetrics

ITEMS = [
    ScoredCandidate(make_product(str(i)), 0.5, RecommendationReason.POPULARITY_FALLBACK)
    for i in range(5)
]


def test_every_layout_mode_has_a_handler():
    assert set(LAYOUT_HANDLERS) == set(LayoutMode)


def test_carousel_pages_of_three():
    view = build_view(LayoutMode.CAROUSEL, ITEMS)
    assert [len(row) for row in view.rows] == [3, 2]
    assert view.paginated is True
    assert view.items == ITEMS


def test_list_single_column():
    view = build_view(LayoutMode.LIST, ITEMS)
    assert view.columns == 1
    assert len(view.rows) == 5


def test_grid_rows_of_two():
    view = build_view(LayoutMode.GRID, ITEMS)
    assert [len(row) for row in view.rows] == [2, 2, 1]
    assert view.to_dict()["layout"] == "grid"


def test_empty_view():
    assert build_view(LayoutMode.GRID, []).rows == ()


def test_metrics_phase_timer_and_counters():
    metrics = DrawerMetrics()

    async def scenario():
        async with metrics.phase_timer("cart_fetch"):
            await asyncio.sleep(0)
        with pytest.raises(ValueError):
            async with metrics.phase_timer("master_list"):
                raise ValueError("catalog down")

    asyncio.run(scenario())
    metrics.record_recompute(4)
    metrics.record_mutation("applied")
    metrics.record_mutation("applied")

    snapshot = metrics.snapshot()
    assert snapshot["counters"]["recomputations"] == 1
    assert snapshot["mutations"] == {"applied": 2}
    assert set(snapshot["phases"]) == {"cart_fetch", "master_list"}
    assert metrics.last_recompute_revision == 4
