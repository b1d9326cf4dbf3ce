"""
Visible-list projection: master list -> what the drawer actually shows.

Pure function of (master list, cart, config, session, threshold state); the
master list order is never changed except by the optional threshold re-rank,
which is itself deterministic.
"""
from typing import List, Optional
import logging

from schemas.cart_schemas import CartSnapshot, ScoredCandidate
from schemas.drawer_config import DrawerConfig, SuggestionMode
from services.session_state import SessionState
from services.thresholds import ThresholdState

logger = logging.getLogger(__name__)


def _rerank_toward_gap(candidates: List[ScoredCandidate], gap: int,
                       mode: SuggestionMode) -> List[ScoredCandidate]:
    closers = [c for c in candidates if c.product.price >= gap]
    others = [c for c in candidates if c.product.price < gap]
    if mode == SuggestionMode.PRICE:
        # Cheapest product that still closes the gap first
        closers = sorted(closers, key=lambda c: c.product.price)
    return closers + others


def project_visible_list(
    master: List[ScoredCandidate],
    cart: CartSnapshot,
    config: DrawerConfig,
    session: Optional[SessionState] = None,
    thresholds: Optional[ThresholdState] = None,
) -> List[ScoredCandidate]:
    if not config.enable_recommendations:
        return []
    if (
        config.hide_recommendations_after_threshold
        and thresholds is not None
        and thresholds.has_thresholds
        and thresholds.all_achieved
    ):
        return []

    in_cart = cart.product_ids()
    eligible = []
    for candidate in master:
        product = candidate.product
        if product.id in in_cart or not product.available:
            continue
        variant = product.first_available_variant
        if session is not None and session.is_invalid(product.id, variant.id if variant else None):
            continue
        eligible.append(candidate)

    if config.enable_threshold_based_suggestions and thresholds is not None:
        gap = thresholds.nearest_remaining
        if gap > 0:
            eligible = _rerank_toward_gap(eligible, gap, config.threshold_suggestion_mode)

    return eligible[:config.max_recommendations]
