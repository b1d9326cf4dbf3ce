"""
Drawer Engine
Orchestrates one cart drawer: cart sync, reward thresholds, the gift
lifecycle and recommendation projection.

Per settled cart snapshot (after the debounce quiet period):
    cart -> threshold state -> gift reconcile (may enqueue gift mutations)
         -> visible recommendations -> DrawerState for the presentation layer

The master recommendation list is built on load, on reconfigure and on an
explicit refresh. Between those it is positionally locked; cart changes only
re-project it.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import date
import inspect
import logging

from schemas.cart_schemas import CartSnapshot, Product, ScoredCandidate, Threshold
from schemas.drawer_config import DrawerConfig, ProgressBarMode
from services.cart_sync import (
    AddGift, AddVariant, CartSyncCore, ChangeQuantity, MutationResult, MutationStatus, RemoveGift,
)
from services.gift_lifecycle import GiftAction, GiftActionKind, GiftLifecycleController
from services.layouts import RecommendationView, build_view
from services.obs.metrics import DrawerMetrics
from services.recommendations.engine import CatalogAccess, RecommendationEngine, RecommendationRules
from services.recommendations.projector import project_visible_list
from services.session_state import SessionState
from services.telemetry import TelemetryClient, TelemetryEvent
from services.thresholds import ProgressTexts, ThresholdState, evaluate
from settings import CART_DEBOUNCE_MS

logger = logging.getLogger(__name__)

CHECKOUT_PATH = "/checkout"


@dataclass(frozen=True)
class DrawerState:
    """Everything the presentation layer needs for one render."""
    cart: CartSnapshot
    thresholds: ThresholdState
    recommendations: Tuple[ScoredCandidate, ...]
    view: RecommendationView
    offered_gifts: Tuple[Threshold, ...]
    progress_bar_mode: ProgressBarMode
    revision: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revision": self.revision,
            "subtotal": self.cart.subtotal_excluding_gifts,
            "total_price": self.cart.total_price,
            "item_count": self.cart.item_count,
            "progress_bar_mode": self.progress_bar_mode.value,
            "thresholds": self.thresholds.to_dict(),
            "recommendations": [c.to_dict() for c in self.recommendations],
            "view": self.view.to_dict(),
            "offered_gifts": [t.to_dict() for t in self.offered_gifts],
        }


class DrawerEngine:
    """Non-visual decision engine behind the cart drawer"""

    def __init__(
        self,
        config: DrawerConfig,
        cart_client,
        catalog: CatalogAccess,
        session: Optional[SessionState] = None,
        telemetry: Optional[TelemetryClient] = None,
        metrics: Optional[DrawerMetrics] = None,
        debounce_seconds: float = CART_DEBOUNCE_MS / 1000,
        today: Optional[date] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.session = session or SessionState()
        self.telemetry = telemetry
        self.metrics = metrics or DrawerMetrics()
        self.today = today
        if telemetry is not None and telemetry.metrics is None:
            telemetry.metrics = self.metrics

        self.recommender = RecommendationEngine(catalog)
        self.gifts = GiftLifecycleController(self.session)
        self.sync = CartSyncCore(
            cart_client,
            session=self.session,
            debounce_seconds=debounce_seconds,
            metrics=self.metrics,
        )
        self.sync.subscribe(self._on_cart_settled)

        self.master: List[ScoredCandidate] = []
        self.state: Optional[DrawerState] = None
        self.is_open = False
        self._listeners: List[Callable[[DrawerState], Any]] = []

    # Lifecycle

    async def load(self) -> DrawerState:
        """First load: fetch the cart, build the master list, compute state."""
        await self.sync.fetch_cart()
        await self.refresh_master_list()
        return await self.recompute_now()

    async def reconfigure(self, config: DrawerConfig) -> DrawerState:
        """Swap in a new configuration value; rebuilds the master list."""
        logger.info("Drawer reconfigured, rebuilding recommendations")
        self.config = config
        await self.refresh_master_list()
        return await self.recompute_now()

    async def refresh_master_list(self) -> List[ScoredCandidate]:
        if not self.config.enable_recommendations:
            self.master = []
            return self.master
        rules = RecommendationRules.from_config(self.config)
        async with self.metrics.phase_timer("master_list"):
            self.master = await self.recommender.compute_master_list(
                self.sync.snapshot, rules, today=self.today, session=self.session
            )
        self.metrics.increment("master_list_builds")
        return self.master

    async def close(self) -> None:
        await self.sync.close()
        if self.telemetry is not None:
            await self.telemetry.drain()

    def subscribe(self, listener: Callable[[DrawerState], Any]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Recompute

    async def _on_cart_settled(self, snapshot: CartSnapshot) -> None:
        await self._recompute(snapshot)

    async def recompute_now(self) -> DrawerState:
        """Recompute against the current snapshot without waiting for the debounce."""
        self.sync.debouncer.cancel()
        return await self._recompute(self.sync.snapshot)

    def evaluate_thresholds(self, cart: CartSnapshot) -> ThresholdState:
        state = evaluate(
            cart.subtotal_excluding_gifts,
            self.config.thresholds,
            shipping_ever_achieved=self.session.shipping_ever_achieved,
            texts=ProgressTexts.from_config(self.config),
        )
        if state.shipping.threshold is not None and state.shipping.achieved:
            self.session.shipping_ever_achieved = True
        return state

    async def _recompute(self, cart: CartSnapshot) -> DrawerState:
        thresholds = self.evaluate_thresholds(cart)
        actions = self.gifts.reconcile(cart, thresholds)
        visible = project_visible_list(self.master, cart, self.config, self.session, thresholds)

        state = DrawerState(
            cart=cart,
            thresholds=thresholds,
            recommendations=tuple(visible),
            view=build_view(self.config.recommendation_layout, visible),
            offered_gifts=tuple(self.gifts.offered(thresholds.gifts.thresholds)),
            progress_bar_mode=self.config.progress_bar_mode,
            revision=cart.revision,
        )
        self.state = state

        if self.is_open:
            self._track_impressions(visible)
        for listener in list(self._listeners):
            result = listener(state)
            if inspect.isawaitable(result):
                await result

        for action in actions:
            await self._apply_gift_action(action)
        return state

    async def _apply_gift_action(self, action: GiftAction) -> MutationResult:
        if action.kind == GiftActionKind.REMOVE:
            op = RemoveGift(action.line_key, action.product_id)
        elif action.kind == GiftActionKind.SET_QUANTITY:
            op = ChangeQuantity(action.line_key, action.quantity)
        else:
            if not action.variant_id:
                return MutationResult(MutationStatus.FAILED, error=f"No variant for gift {action.product_id}")
            op = AddGift(action.variant_id, action.product_id)
        result = await self.sync.mutate(op)
        if not result.ok:
            logger.warning(f"Gift action {action.kind.value} for {action.product_id}: {result.status.value}")
        return result

    # Telemetry

    def _track(self, event: TelemetryEvent, **kwargs) -> None:
        if self.telemetry is None or not self.config.enable_analytics:
            return
        self.telemetry.track(event, **kwargs)

    def _track_impressions(self, visible: List[ScoredCandidate]) -> None:
        for position, candidate in enumerate(visible):
            self._track(
                TelemetryEvent.IMPRESSION,
                product_id=candidate.product_id,
                product_title=candidate.product.title,
                position=position,
            )

    # Drawer events

    async def open(self) -> DrawerState:
        self.is_open = True
        self._track(TelemetryEvent.CART_OPEN)
        await self.sync.fetch_cart()
        return await self.recompute_now()

    def close_drawer(self) -> None:
        if self.is_open:
            self._track(TelemetryEvent.CART_CLOSE)
        self.is_open = False

    def start_checkout(self) -> str:
        """Checkout is never blocked by the drawer; returns the checkout path."""
        self._track(TelemetryEvent.CHECKOUT_START)
        return CHECKOUT_PATH

    async def notify_external_change(self) -> CartSnapshot:
        return await self.sync.notify_external_change()

    # Cart actions

    async def change_quantity(self, line_key: str, quantity: int) -> MutationResult:
        return await self.sync.mutate(ChangeQuantity(line_key, max(0, int(quantity))))

    async def remove_line(self, line_key: str) -> MutationResult:
        return await self.change_quantity(line_key, 0)

    def _find_candidate(self, product_id: str) -> Optional[ScoredCandidate]:
        for candidate in self.master:
            if candidate.product_id == product_id:
                return candidate
        return None

    async def _resolve_product(self, product_id: str) -> Optional[Product]:
        candidate = self._find_candidate(product_id)
        product = candidate.product if candidate else None
        if product is None:
            try:
                found = await self.catalog.fetch_by_ids([product_id])
            except Exception as e:
                logger.warning(f"Product lookup for {product_id} failed: {e}")
                return None
            product = found[0] if found else None
        if product is not None and product.handle:
            # product.js carries the full, current variant list
            try:
                detailed = await self.catalog.fetch_product(product.handle)
            except Exception as e:
                logger.warning(f"Variant lookup for {product.handle} failed, using cached variants: {e}")
                detailed = None
            if detailed is not None:
                product = detailed
        return product

    async def add_recommendation(self, product_id: str, variant_id: Optional[str] = None,
                                 position: Optional[int] = None) -> MutationResult:
        product = await self._resolve_product(product_id)
        title = product.title if product else ""
        self._track(TelemetryEvent.CLICK, product_id=product_id, product_title=title, position=position)

        if variant_id is None:
            if product is None:
                return MutationResult(MutationStatus.FAILED, error=f"Unknown product {product_id}")
            if product.needs_variant_selection:
                logger.info(f"Product {product_id} has {len(product.available_variants)} variants, asking shopper")
                return MutationResult(MutationStatus.NEEDS_VARIANT_SELECTION, product=product)
            variant = product.first_available_variant
            if variant is None or not variant.id:
                self.session.mark_invalid(None, product_id)
                return MutationResult(MutationStatus.INVALID_VARIANT, error=f"Product {product_id} is unavailable",
                                      product=product)
            variant_id = variant.id

        result = await self.sync.mutate(AddVariant(variant_id, 1, product_id=product_id))
        if result.ok:
            self._track(TelemetryEvent.ADD_TO_CART, product_id=product_id, product_title=title, position=position)
        return result

    def _gift_threshold(self, product_id: str) -> Optional[Threshold]:
        for threshold in self.config.active_gift_thresholds:
            if threshold.gift_product_id == product_id:
                return threshold
        return None

    async def claim_gift(self, product_id: str) -> MutationResult:
        threshold = self._gift_threshold(product_id)
        if threshold is None:
            return MutationResult(MutationStatus.FAILED, error=f"No gift threshold for {product_id}")

        variant_id = threshold.product_ref.variant_id if threshold.product_ref else None
        if not variant_id:
            product = await self._resolve_product(product_id)
            variant = product.first_available_variant if product else None
            variant_id = variant.id if variant else None

        action = self.gifts.claim(threshold, variant_id)
        if action is None:
            return MutationResult(MutationStatus.IGNORED)
        return await self._apply_gift_action(action)

    async def decline_gift(self, product_id: str) -> DrawerState:
        self.gifts.decline(product_id)
        return await self.recompute_now()
