"""
Drawer Configuration
Immutable merchant configuration for the cart drawer engine.

The storefront receives merchant settings as a camelCase payload. This module
turns that payload into a frozen DrawerConfig; the engine is handed a new
value on every settings change instead of having fields mutated in place.
"""
from typing import Dict, Any, Optional, Tuple, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
import json
import logging

from schemas.cart_schemas import Threshold, ThresholdKind, ProductRef, normalize_id
from services.money import to_minor_units, UNIT_MAJOR

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS_CAP = 12


class LayoutMode(str, Enum):
    CAROUSEL = "carousel"
    LIST = "list"
    GRID = "grid"


class ComplementMode(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    HYBRID = "hybrid"


class SuggestionMode(str, Enum):
    SMART = "smart"
    PRICE = "price"


class ProgressBarMode(str, Enum):
    FREE_SHIPPING = "free-shipping"
    GIFT_GATING = "gift-gating"
    COMBINED = "combined"


# Legacy layout values still stored by older installs
LEGACY_LAYOUTS = {
    "horizontal": LayoutMode.CAROUSEL,
    "row": LayoutMode.CAROUSEL,
    "vertical": LayoutMode.LIST,
    "column": LayoutMode.LIST,
}

_TRUE_STRINGS = {"true", "on", "1", "yes"}
_FALSE_STRINGS = {"false", "off", "0", "no", ""}


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_enum(enum_cls, value: Any, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def parse_layout(value: Any) -> LayoutMode:
    text = str(value or "").strip().lower()
    if text in LEGACY_LAYOUTS:
        return LEGACY_LAYOUTS[text]
    return _as_enum(LayoutMode, text, LayoutMode.CAROUSEL)


def parse_gift_thresholds(raw: Any) -> Tuple[Threshold, ...]:
    """
    Parse the gift threshold setting (JSON list of
    ``{threshold, productId, productTitle, variantId?}`` in major units).

    Malformed configuration means "no gift thresholds", never an error.
    """
    if raw is None or raw == "":
        return ()
    entries = raw
    if isinstance(raw, str):
        try:
            entries = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unparsable gift thresholds: {e}")
            return ()
    if not isinstance(entries, list):
        logger.warning(f"Ignoring gift thresholds of type {type(entries).__name__}")
        return ()

    thresholds = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        amount = to_minor_units(entry.get("threshold", entry.get("amount")), unit=UNIT_MAJOR)
        if amount <= 0:
            continue
        product_id = normalize_id(entry.get("productId") or entry.get("product_id"))
        product_ref = None
        if product_id:
            variant_id = normalize_id(entry.get("variantId") or entry.get("variant_id")) or None
            product_ref = ProductRef(
                product_id=product_id,
                variant_id=variant_id,
                title=str(entry.get("productTitle") or ""),
                handle=str(entry.get("productHandle") or entry.get("handle") or ""),
            )
        thresholds.append(Threshold(
            kind=ThresholdKind.GIFT,
            amount=amount,
            title=str(entry.get("title") or entry.get("productTitle") or ""),
            product_ref=product_ref,
        ))
    return tuple(sorted(thresholds, key=lambda t: t.amount))


def parse_manual_rules(raw: Any) -> Dict[str, Tuple[str, ...]]:
    """Per-product overrides: JSON object of product id -> list of product ids."""
    if not raw:
        return {}
    rules = raw
    if isinstance(raw, str):
        try:
            rules = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unparsable manual rules: {e}")
            return {}
    if not isinstance(rules, dict):
        return {}
    parsed = {}
    for source, targets in rules.items():
        if isinstance(targets, str):
            targets = targets.split(",")
        if not isinstance(targets, (list, tuple)):
            continue
        ids = tuple(t for t in (normalize_id(x) for x in targets) if t)
        if ids:
            parsed[normalize_id(source)] = ids
    return parsed


def parse_id_list(raw: Any) -> Tuple[str, ...]:
    if not raw:
        return ()
    items = raw.split(",") if isinstance(raw, str) else raw
    seen = []
    for item in items:
        product_id = normalize_id(item)
        if product_id and product_id not in seen:
            seen.append(product_id)
    return tuple(seen)


@dataclass(frozen=True)
class DrawerConfig:
    """Frozen merchant configuration. Use ``replace`` for changes."""
    enable_recommendations: bool = True
    max_recommendations: int = 3
    min_recommendations: int = 3
    complement_mode: ComplementMode = ComplementMode.AUTOMATIC
    enable_manual_recommendations: bool = False
    manual_recommendation_products: Tuple[str, ...] = ()
    manual_rules: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    hide_recommendations_after_threshold: bool = False
    enable_threshold_based_suggestions: bool = False
    threshold_suggestion_mode: SuggestionMode = SuggestionMode.SMART
    recommendation_layout: LayoutMode = LayoutMode.CAROUSEL

    enable_free_shipping: bool = False
    free_shipping_threshold: int = 0
    enable_gift_gating: bool = False
    gift_thresholds: Tuple[Threshold, ...] = ()
    progress_bar_mode: ProgressBarMode = ProgressBarMode.FREE_SHIPPING

    free_shipping_text: str = "You're {{amount}} away from free shipping!"
    free_shipping_achieved_text: str = "You've unlocked free shipping!"
    free_shipping_maintain_text: str = "Add {{amount}} more to keep your free shipping"
    gift_progress_text: str = "Spend {{amount}} more to unlock {{title}}"
    all_rewards_achieved_text: str = "You've unlocked every reward!"
    money_format: str = "${{amount}}"

    enable_analytics: bool = False

    @property
    def curated_products(self) -> Tuple[str, ...]:
        """Curated list that short-circuits all other recommendation strategies."""
        if self.enable_manual_recommendations:
            return self.manual_recommendation_products
        return ()

    @property
    def shipping_threshold(self) -> Optional[Threshold]:
        if not self.enable_free_shipping or self.free_shipping_threshold <= 0:
            return None
        return Threshold(
            kind=ThresholdKind.SHIPPING,
            amount=self.free_shipping_threshold,
            title="Free shipping",
        )

    @property
    def active_gift_thresholds(self) -> Tuple[Threshold, ...]:
        return self.gift_thresholds if self.enable_gift_gating else ()

    @property
    def thresholds(self) -> Tuple[Threshold, ...]:
        shipping = self.shipping_threshold
        return ((shipping,) if shipping else ()) + self.active_gift_thresholds

    def replace(self, **changes) -> "DrawerConfig":
        return replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "DrawerConfig":
        """Build a config from the merchant settings payload (camelCase keys)."""
        s = dict(settings or {})
        defaults = cls()

        max_recs = _as_int(s.get("maxRecommendations"), defaults.max_recommendations)
        max_recs = max(1, min(MAX_RECOMMENDATIONS_CAP, max_recs))
        min_recs = max(0, _as_int(s.get("minRecommendations"), defaults.min_recommendations))

        complement_mode = _as_enum(
            ComplementMode, s.get("complementDetectionMode"), defaults.complement_mode
        )
        manual_enabled = _as_bool(s.get("enableManualRecommendations"), False)

        def text(key: str, default: str) -> str:
            value = s.get(key)
            return str(value) if value else default

        return cls(
            enable_recommendations=_as_bool(s.get("enableRecommendations"), defaults.enable_recommendations),
            max_recommendations=max_recs,
            min_recommendations=min_recs,
            complement_mode=complement_mode,
            enable_manual_recommendations=manual_enabled,
            manual_recommendation_products=parse_id_list(s.get("manualRecommendationProducts")),
            manual_rules=parse_manual_rules(s.get("manualRules")),
            hide_recommendations_after_threshold=_as_bool(s.get("hideRecommendationsAfterThreshold"), False),
            enable_threshold_based_suggestions=_as_bool(s.get("enableThresholdBasedSuggestions"), False),
            threshold_suggestion_mode=_as_enum(
                SuggestionMode, s.get("thresholdSuggestionMode"), defaults.threshold_suggestion_mode
            ),
            recommendation_layout=parse_layout(s.get("recommendationLayout")),
            enable_free_shipping=_as_bool(s.get("enableFreeShipping"), defaults.enable_free_shipping),
            free_shipping_threshold=max(0, to_minor_units(s.get("freeShippingThreshold"), unit=UNIT_MAJOR)),
            enable_gift_gating=_as_bool(s.get("enableGiftGating"), defaults.enable_gift_gating),
            gift_thresholds=parse_gift_thresholds(s.get("giftThresholds")),
            progress_bar_mode=_as_enum(ProgressBarMode, s.get("progressBarMode"), defaults.progress_bar_mode),
            free_shipping_text=text("freeShippingText", defaults.free_shipping_text),
            free_shipping_achieved_text=text("freeShippingAchievedText", defaults.free_shipping_achieved_text),
            free_shipping_maintain_text=text("freeShippingMaintainText", defaults.free_shipping_maintain_text),
            gift_progress_text=text("giftProgressText", defaults.gift_progress_text),
            all_rewards_achieved_text=text("allRewardsAchievedText", defaults.all_rewards_achieved_text),
            money_format=text("moneyFormat", defaults.money_format),
            enable_analytics=_as_bool(s.get("enableAnalytics"), defaults.enable_analytics),
        )
