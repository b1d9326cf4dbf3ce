import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import make_product
from schemas.cart_schemas import CartLine, CartSnapshot, RecommendationReason, ScoredCandidate
from schemas.drawer_config import DrawerConfig, SuggestionMode
from services.recommendations.projector import project_visible_list
from services.session_state import SessionState
from services.thresholds import evaluate_for_config


def candidates(*specs):
    return [
        ScoredCandidate(make_product(pid, price=price), 0.9 - i * 0.1, RecommendationReason.AI_COMPLEMENT)
        for i, (pid, price) in enumerate(specs)
    ]


def cart_with(*product_ids, price=1000, gift=()):
    lines = []
    for pid in product_ids:
        props = {"_is_gift": "true"} if pid in gift else {}
        lines.append(CartLine(key=pid, product_id=pid, variant_id=f"{pid}-v0", quantity=1,
                              unit_price=price, line_price=price, properties=props))
    return CartSnapshot(lines=tuple(lines))


MASTER = candidates(("a", 500), ("b", 2500), ("c", 800), ("d", 4000), ("e", 1200))


def test_visible_list_invariants():
    config = DrawerConfig(max_recommendations=3)
    cart = cart_with("b", "gift", gift={"gift"})
    visible = project_visible_list(MASTER, cart, config)

    ids = [c.product_id for c in visible]
    assert ids == ["a", "c", "d"]
    assert len(visible) <= config.max_recommendations
    assert set(ids) <= {c.product_id for c in MASTER}
    assert not set(ids) & cart.product_ids()


def test_projection_is_idempotent():
    config = DrawerConfig(max_recommendations=4)
    cart = cart_with("a")
    first = project_visible_list(MASTER, cart, config)
    second = project_visible_list(MASTER, cart, config)
    assert first == second


def test_gift_products_are_excluded_too():
    cart = cart_with("a", gift={"a"})
    visible = project_visible_list(MASTER, cart, DrawerConfig(max_recommendations=5))
    assert "a" not in [c.product_id for c in visible]


def test_unavailable_and_rejected_products_are_dropped():
    master = MASTER + [ScoredCandidate(make_product("z", available=False), 0.1,
                                       RecommendationReason.POPULARITY_FALLBACK)]
    session = SessionState()
    session.mark_invalid("c-v0")
    visible = project_visible_list(master, CartSnapshot(), DrawerConfig(max_recommendations=12), session)
    assert [c.product_id for c in visible] == ["a", "b", "d", "e"]


def test_disabled_recommendations_show_nothing():
    config = DrawerConfig(enable_recommendations=False)
    assert project_visible_list(MASTER, CartSnapshot(), config) == []


def test_hide_after_all_thresholds_achieved():
    config = DrawerConfig(enable_free_shipping=True, free_shipping_threshold=5000,
                          hide_recommendations_after_threshold=True)
    cart = cart_with("x", price=6000)
    thresholds = evaluate_for_config(cart.subtotal_excluding_gifts, config)
    assert project_visible_list(MASTER, cart, config, thresholds=thresholds) == []

    below = evaluate_for_config(4000, config)
    assert len(project_visible_list(MASTER, cart, config, thresholds=below)) == 3


def test_smart_rerank_moves_gap_closers_first():
    config = DrawerConfig(enable_free_shipping=True, free_shipping_threshold=5000,
                          enable_threshold_based_suggestions=True, max_recommendations=5)
    thresholds = evaluate_for_config(4000, config)  # 1000 to go
    visible = project_visible_list(MASTER, CartSnapshot(), config, thresholds=thresholds)
    assert [c.product_id for c in visible] == ["b", "d", "e", "a", "c"]


def test_price_rerank_orders_gap_closers_by_price():
    config = DrawerConfig(enable_free_shipping=True, free_shipping_threshold=5000,
                          enable_threshold_based_suggestions=True,
                          threshold_suggestion_mode=SuggestionMode.PRICE, max_recommendations=3)
    thresholds = evaluate_for_config(4000, config)
    visible = project_visible_list(MASTER, CartSnapshot(), config, thresholds=thresholds)
    assert [c.product_id for c in visible] == ["e", "b", "d"]
