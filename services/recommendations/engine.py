"""
Recommendation Engine for the cart drawer

Turns cart contents into the master candidate list: a deduplicated,
score-ordered and positionally stable list of products to cross-sell.

Strategy order (also the dedup precedence, first occurrence wins):
0. Curated manual list - short-circuits everything else
1. Complement detection - manual per-product rules and/or pattern matching
2. Co-purchase pairing - historical pairs above a confidence floor
3. Price intelligence - price band picked from the current cart value
4. Seasonal trending - keywords keyed by calendar month
Empty carts fall back to popularity; short lists are topped up from popularity.
"""
from typing import Dict, List, Optional, Tuple, Mapping, Awaitable, Protocol
from dataclasses import dataclass, field
from datetime import date
import asyncio
import logging

from schemas.cart_schemas import CartSnapshot, Product, ScoredCandidate, RecommendationReason
from schemas.drawer_config import ComplementMode, DrawerConfig
from services.recommendations.complement_rules import match_complements, seasonal_keywords
from services.session_state import SessionState

logger = logging.getLogger(__name__)


class CatalogAccess(Protocol):
    """Catalog capability consumed by the engine (see StorefrontCatalogClient)."""

    async def search(self, keyword: str, limit: int = 4) -> List[Product]: ...

    async def fetch_by_ids(self, product_ids: List[str]) -> List[Product]: ...

    async def fetch_product(self, handle: str) -> Optional[Product]: ...

    async def popular(self, limit: int = 8) -> List[Product]: ...

    async def price_range(self, min_price: int, max_price: int, limit: int = 4) -> List[Product]: ...

    async def purchase_patterns(self) -> Dict[str, Dict[str, float]]: ...


@dataclass(frozen=True)
class RecommendationRules:
    """The slice of DrawerConfig the engine needs."""
    mode: ComplementMode = ComplementMode.AUTOMATIC
    manual_rules: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    curated: Tuple[str, ...] = ()
    min_recommendations: int = 3
    max_recommendations: int = 3

    @classmethod
    def from_config(cls, config: DrawerConfig) -> "RecommendationRules":
        return cls(
            mode=config.complement_mode,
            manual_rules=dict(config.manual_rules),
            curated=config.curated_products,
            min_recommendations=config.min_recommendations,
            max_recommendations=config.max_recommendations,
        )


def deduplicate_and_rank(candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
    """Keep the first occurrence of every product id, then order by score (stable)."""
    seen = set()
    unique = []
    for candidate in candidates:
        if candidate.product_id in seen:
            continue
        seen.add(candidate.product_id)
        unique.append(candidate)
    return sorted(unique, key=lambda c: c.score, reverse=True)


class RecommendationEngine:
    """Computes the master candidate list from the cart and a rule set"""

    def __init__(self, catalog: CatalogAccess):
        self.catalog = catalog

        self.scores = {
            RecommendationReason.MANUAL_SELECTION: 0.98,
            RecommendationReason.MANUAL_RULE: 0.95,
            RecommendationReason.AI_COMPLEMENT: 0.85,
            RecommendationReason.PRICE_INTELLIGENCE: 0.6,
            RecommendationReason.SEASONAL_TRENDING: 0.45,
            RecommendationReason.POPULARITY_FALLBACK: 0.3,
        }
        self.empty_cart_score = 0.5
        self.co_purchase_floor = 0.15

        # (min cart value, suggested band); bands shrink as the cart grows
        self.price_bands = [
            (10000, (500, 2000)),    # high cart value -> budget add-ons
            (5000, (2000, 6000)),    # medium -> mid range
            (0, (6000, 15000)),      # low -> premium
        ]

        self.patterns_per_item = 2
        self.keywords_per_pattern = 2
        self.results_per_keyword = 2
        self.co_purchase_per_item = 4
        self.price_band_results = 3
        self.seasonal_keywords_used = 2

    async def compute_master_list(self, cart: CartSnapshot, rules: RecommendationRules,
                                  today: Optional[date] = None,
                                  session: Optional[SessionState] = None) -> List[ScoredCandidate]:
        """Build the master list for ``cart``. Catalog failures never propagate.

        ``session`` supplies the variants rejected so far; they do not count toward
        the popularity top-up minimum.
        """
        if rules.curated:
            master = await self._curated(rules.curated)
            logger.info(f"Curated recommendations short-circuit: {len(master)} products")
            return master

        target = max(rules.min_recommendations, rules.max_recommendations)
        if not cart.paid_lines:
            products = await self._safe("popularity", self.catalog.popular(limit=target * 2))
            candidates = [
                ScoredCandidate(p, self.empty_cart_score, RecommendationReason.POPULARITY_FALLBACK)
                for p in products
            ]
        else:
            results = await asyncio.gather(
                self._safe("complements", self._complements(cart, rules)),
                self._safe("co_purchase", self._co_purchase(cart)),
                self._safe("price_intelligence", self._price_band(cart)),
                self._safe("seasonal", self._seasonal(today or date.today())),
            )
            candidates = [c for strategy in results for c in strategy]

        master = deduplicate_and_rank(candidates)
        master = await self._top_up(master, cart, rules.min_recommendations, session)
        logger.info(
            f"Computed master list: {len(master)} candidates from {len(candidates)} raw "
            f"for {len(cart.paid_lines)} cart lines"
        )
        return master

    async def _safe(self, strategy: str, coro: Awaitable) -> list:
        try:
            return list(await coro)
        except Exception as e:
            logger.warning(f"Recommendation strategy {strategy} failed, contributing nothing: {e}")
            return []

    async def _curated(self, product_ids: Tuple[str, ...]) -> List[ScoredCandidate]:
        products = await self._safe("curated", self.catalog.fetch_by_ids(list(product_ids)))
        by_id = {p.id: p for p in products}
        score = self.scores[RecommendationReason.MANUAL_SELECTION]
        return [
            ScoredCandidate(by_id[pid], score, RecommendationReason.MANUAL_SELECTION)
            for pid in product_ids
            if pid in by_id
        ]

    async def _complements(self, cart: CartSnapshot, rules: RecommendationRules) -> List[ScoredCandidate]:
        candidates: List[ScoredCandidate] = []
        use_manual = rules.mode in (ComplementMode.MANUAL, ComplementMode.HYBRID)
        use_automatic = rules.mode in (ComplementMode.AUTOMATIC, ComplementMode.HYBRID)

        if use_manual:
            for line in cart.paid_lines:
                target_ids = list(rules.manual_rules.get(line.product_id, ()))
                if not target_ids:
                    continue
                products = await self.catalog.fetch_by_ids(target_ids)
                candidates.extend(
                    ScoredCandidate(p, self.scores[RecommendationReason.MANUAL_RULE],
                                    RecommendationReason.MANUAL_RULE, complement_type="manual")
                    for p in products
                )

        if use_automatic:
            score = self.scores[RecommendationReason.AI_COMPLEMENT]
            for line in cart.paid_lines:
                for pattern in match_complements(line.search_text)[:self.patterns_per_item]:
                    for keyword in pattern.keywords[:self.keywords_per_pattern]:
                        products = await self.catalog.search(keyword, limit=self.results_per_keyword)
                        candidates.extend(
                            ScoredCandidate(p, score, RecommendationReason.AI_COMPLEMENT,
                                            complement_type=pattern.category)
                            for p in products
                        )
        return candidates

    async def _co_purchase(self, cart: CartSnapshot) -> List[ScoredCandidate]:
        patterns = await self.catalog.purchase_patterns()
        if not patterns:
            return []
        candidates: List[ScoredCandidate] = []
        for line in cart.paid_lines:
            pairs = patterns.get(line.product_id) or {}
            confident = sorted(
                ((pid, conf) for pid, conf in pairs.items() if conf > self.co_purchase_floor),
                key=lambda item: item[1],
                reverse=True,
            )[:self.co_purchase_per_item]
            if not confident:
                continue
            products = {p.id: p for p in await self.catalog.fetch_by_ids([pid for pid, _ in confident])}
            for pid, conf in confident:
                if pid in products:
                    candidates.append(ScoredCandidate(
                        products[pid], min(1.0, conf), RecommendationReason.FREQUENTLY_BOUGHT
                    ))
        return candidates

    def price_band_for(self, cart_value: int) -> Tuple[int, int]:
        for floor, band in self.price_bands:
            if cart_value >= floor:
                return band
        return self.price_bands[-1][1]

    async def _price_band(self, cart: CartSnapshot) -> List[ScoredCandidate]:
        low, high = self.price_band_for(cart.subtotal_excluding_gifts)
        products = await self.catalog.price_range(low, high, limit=self.price_band_results)
        score = self.scores[RecommendationReason.PRICE_INTELLIGENCE]
        return [ScoredCandidate(p, score, RecommendationReason.PRICE_INTELLIGENCE) for p in products]

    async def _seasonal(self, today: date) -> List[ScoredCandidate]:
        score = self.scores[RecommendationReason.SEASONAL_TRENDING]
        candidates = []
        for keyword in seasonal_keywords(today.month)[:self.seasonal_keywords_used]:
            products = await self.catalog.search(keyword, limit=self.results_per_keyword)
            candidates.extend(
                ScoredCandidate(p, score, RecommendationReason.SEASONAL_TRENDING) for p in products
            )
        return candidates

    async def _top_up(self, master: List[ScoredCandidate], cart: CartSnapshot,
                      minimum: int, session: Optional[SessionState] = None) -> List[ScoredCandidate]:
        """Append popular products until ``minimum`` showable candidates exist."""
        in_cart = cart.product_ids()

        def showable(product: Product) -> bool:
            if product.id in in_cart or not product.available:
                return False
            if session is None:
                return True
            variant = product.first_available_variant
            return not session.is_invalid(product.id, variant.id if variant else None)

        def eligible_count(items: List[ScoredCandidate]) -> int:
            return sum(1 for c in items if showable(c.product))

        if eligible_count(master) >= minimum:
            return master

        limit = minimum + len(in_cart) + len(master)
        popular = await self._safe("popularity_top_up", self.catalog.popular(limit=limit))
        seen = {c.product_id for c in master}
        topped = list(master)
        score = self.scores[RecommendationReason.POPULARITY_FALLBACK]
        for product in popular:
            if eligible_count(topped) >= minimum:
                break
            if product.id in seen or not showable(product):
                continue
            seen.add(product.id)
            topped.append(ScoredCandidate(product, score, RecommendationReason.POPULARITY_FALLBACK))

        if len(topped) > len(master):
            logger.info(f"Topped up master list with {len(topped) - len(master)} popular products")
        return topped


async def compute_master_list(cart: CartSnapshot, rules: RecommendationRules,
                              catalog: CatalogAccess, today: Optional[date] = None,
                              session: Optional[SessionState] = None) -> List[ScoredCandidate]:
    return await RecommendationEngine(catalog).compute_master_list(cart, rules, today=today, session=session)
