import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.cart_schemas import ThresholdKind, normalize_cart
from schemas.drawer_config import (
    ComplementMode,
    DrawerConfig,
    LayoutMode,
    SuggestionMode,
    parse_gift_thresholds,
)


def test_from_settings_reads_camel_case_payload():
    config = DrawerConfig.from_settings({
        "maxRecommendations": "40",
        "complementDetectionMode": "hybrid",
        "enableFreeShipping": "on",
        "freeShippingThreshold": 50,
        "thresholdSuggestionMode": "price",
        "recommendationLayout": "vertical",
        "enableManualRecommendations": True,
        "manualRecommendationProducts": "gid://shopify/Product/11, 12,11",
    })
    assert config.max_recommendations == 12
    assert config.complement_mode == ComplementMode.HYBRID
    assert config.enable_free_shipping is True
    assert config.free_shipping_threshold == 5000
    assert config.threshold_suggestion_mode == SuggestionMode.PRICE
    assert config.recommendation_layout == LayoutMode.LIST
    assert config.curated_products == ("11", "12")


def test_invalid_values_fall_back_to_defaults():
    config = DrawerConfig.from_settings({
        "maxRecommendations": "lots",
        "complementDetectionMode": "telepathic",
        "recommendationLayout": "spiral",
    })
    assert config.max_recommendations == 3
    assert config.complement_mode == ComplementMode.AUTOMATIC
    assert config.recommendation_layout == LayoutMode.CAROUSEL


def test_curated_list_ignored_unless_enabled():
    config = DrawerConfig.from_settings({"manualRecommendationProducts": "1,2"})
    assert config.manual_recommendation_products == ("1", "2")
    assert config.curated_products == ()


def test_gift_thresholds_parse_and_sort():
    raw = json.dumps([
        {"threshold": 100, "productId": "gid://shopify/Product/9", "productTitle": "Tote"},
        {"threshold": "50", "productId": "8", "productTitle": "Socks", "variantId": "88"},
    ])
    thresholds = parse_gift_thresholds(raw)
    assert [t.amount for t in thresholds] == [5000, 10000]
    assert thresholds[0].kind == ThresholdKind.GIFT
    assert thresholds[0].product_ref.variant_id == "88"
    assert thresholds[1].gift_product_id == "9"


def test_malformed_gift_thresholds_mean_none():
    assert parse_gift_thresholds("{not json") == ()
    assert parse_gift_thresholds(json.dumps({"threshold": 50})) == ()
    config = DrawerConfig.from_settings({"enableGiftGating": True, "giftThresholds": "[oops"})
    assert config.thresholds == ()


def test_thresholds_combine_shipping_and_enabled_gifts():
    config = DrawerConfig.from_settings({
        "enableFreeShipping": True,
        "freeShippingThreshold": "75",
        "enableGiftGating": True,
        "giftThresholds": [{"threshold": 50, "productId": "8"}],
    })
    kinds = [(t.kind, t.amount) for t in config.thresholds]
    assert kinds == [(ThresholdKind.SHIPPING, 7500), (ThresholdKind.GIFT, 5000)]

    disabled = config.replace(enable_gift_gating=False)
    assert [t.kind for t in disabled.thresholds] == [ThresholdKind.SHIPPING]
    assert config.enable_gift_gating is True


def test_normalize_cart_separates_gift_lines():
    cart = normalize_cart({
        "items": [
            {"key": "a", "variant_id": 1, "product_id": 10, "quantity": 2, "price": 1500},
            {"key": "b", "variant_id": 2, "product_id": 20, "quantity": 1, "price": 0,
             "properties": {"_is_gift": "true"}},
        ],
        "total_price": 3000,
    })
    assert cart.subtotal_excluding_gifts == 3000
    assert [l.key for l in cart.gift_lines] == ["b"]
    assert cart.gift_quantity("20") == 1
    assert cart.paid_quantity("20") == 0
    assert cart.line_number("b") == 2


def test_normalize_cart_tolerates_garbage():
    assert normalize_cart(None).is_empty
    assert normalize_cart({"items": "nope"}).is_empty
