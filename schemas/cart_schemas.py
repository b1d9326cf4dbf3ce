"""
Cart & Catalog Schemas
======================

Canonical data structures shared by the recommendation, threshold and cart
sync services. Everything here is immutable: a CartSnapshot is replaced
wholesale on every fetch, a Product is cached by id once fetched.

MONEY:
------
All amounts are integer minor units (cents). Raw storefront payloads mix
formats (cart.js and product.js use cents, products.json uses "19.99"
strings, the app proxy uses major-unit numbers), so the normalizers take the
unit of the endpoint they parse.

GIFT LINES:
-----------
A cart line is a gift when its properties carry ``_is_gift = "true"``. Gift
lines are excluded from threshold/discount subtotal math but kept in the
display total.
"""

from typing import List, Dict, Any, Optional, Tuple, TypedDict, Mapping
from dataclasses import dataclass, field
from enum import Enum
import logging

from services.money import to_minor_units, to_quantity, UNIT_AUTO, UNIT_MINOR

logger = logging.getLogger(__name__)

GIFT_PROPERTY = "_is_gift"
GIFT_PROPERTY_VALUE = "true"


# =============================================================================
# ENUMS
# =============================================================================

class RecommendationReason(str, Enum):
    """Why a candidate made it into the master list."""
    MANUAL_SELECTION = "manual_selection"
    MANUAL_RULE = "manual_rule"
    AI_COMPLEMENT = "ai_complement"
    FREQUENTLY_BOUGHT = "frequently_bought"
    PRICE_INTELLIGENCE = "price_intelligence"
    SEASONAL_TRENDING = "seasonal_trending"
    POPULARITY_FALLBACK = "popularity_fallback"


class ThresholdKind(str, Enum):
    SHIPPING = "shipping"
    GIFT = "gift"


# =============================================================================
# RAW PAYLOAD SHAPES (storefront JSON)
# =============================================================================

class CartItemDict(TypedDict, total=False):
    """One entry of ``items`` in the storefront cart.js response."""
    key: str
    id: int                 # variant id
    variant_id: int
    product_id: int
    quantity: int
    price: int              # cents
    final_price: int
    line_price: int
    final_line_price: int
    properties: Dict[str, Any]
    title: str
    product_title: str
    product_type: str
    handle: str


class CartDict(TypedDict, total=False):
    token: str
    items: List[CartItemDict]
    total_price: int
    items_subtotal_price: int
    item_count: int
    attributes: Dict[str, Any]
    currency: str


# =============================================================================
# DATACLASS DEFINITIONS
# =============================================================================

def normalize_id(value: Any) -> str:
    """Shopify ids arrive as ints, numeric strings or GIDs; keep the numeric tail."""
    if value is None or isinstance(value, bool):
        return ""
    text = str(value).strip()
    if text.startswith("gid://"):
        text = text.rsplit("/", 1)[-1]
    return text


@dataclass(frozen=True)
class Variant:
    id: str
    price: int
    available: bool = True
    title: str = ""


@dataclass(frozen=True)
class Product:
    """Recommendation candidate. Immutable once fetched."""
    id: str
    title: str
    handle: str = ""
    url: str = ""
    image: Optional[str] = None
    product_type: str = ""
    vendor: str = ""
    tags: Tuple[str, ...] = ()
    variants: Tuple[Variant, ...] = ()

    @property
    def available_variants(self) -> Tuple[Variant, ...]:
        return tuple(v for v in self.variants if v.available)

    @property
    def available(self) -> bool:
        return bool(self.available_variants)

    @property
    def first_available_variant(self) -> Optional[Variant]:
        available = self.available_variants
        return available[0] if available else None

    @property
    def price(self) -> int:
        variant = self.first_available_variant or (self.variants[0] if self.variants else None)
        return variant.price if variant else 0

    @property
    def needs_variant_selection(self) -> bool:
        return len(self.available_variants) > 1

    @property
    def search_text(self) -> str:
        """Text used for complement pattern matching."""
        return " ".join([self.title, self.product_type, " ".join(self.tags)]).lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "handle": self.handle,
            "url": self.url,
            "image": self.image,
            "product_type": self.product_type,
            "price": self.price,
            "available": self.available,
            "variants": [
                {"id": v.id, "price": v.price, "available": v.available, "title": v.title}
                for v in self.variants
            ],
        }


@dataclass(frozen=True)
class CartLine:
    key: str
    product_id: str
    variant_id: str
    quantity: int
    unit_price: int
    line_price: int
    properties: Mapping[str, Any] = field(default_factory=dict)
    title: str = ""
    product_type: str = ""
    handle: str = ""

    @property
    def is_gift(self) -> bool:
        return str(self.properties.get(GIFT_PROPERTY, "")).lower() == GIFT_PROPERTY_VALUE

    @property
    def search_text(self) -> str:
        return f"{self.title} {self.product_type}".lower()


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable view of the remote cart as of one fetch."""
    lines: Tuple[CartLine, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=dict)
    total_price: int = 0
    item_count: int = 0
    currency: str = ""
    token: str = ""
    revision: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def paid_lines(self) -> Tuple[CartLine, ...]:
        return tuple(line for line in self.lines if not line.is_gift)

    @property
    def gift_lines(self) -> Tuple[CartLine, ...]:
        return tuple(line for line in self.lines if line.is_gift)

    @property
    def subtotal_excluding_gifts(self) -> int:
        return sum(line.line_price for line in self.paid_lines)

    def product_ids(self) -> set:
        return {line.product_id for line in self.lines}

    def paid_product_ids(self) -> set:
        return {line.product_id for line in self.paid_lines}

    def gift_quantity(self, product_id: str) -> int:
        return sum(line.quantity for line in self.gift_lines if line.product_id == product_id)

    def paid_quantity(self, product_id: str) -> int:
        return sum(line.quantity for line in self.paid_lines if line.product_id == product_id)

    def line_number(self, key: str) -> Optional[int]:
        """1-based line index as expected by the cart change endpoint."""
        for index, line in enumerate(self.lines, start=1):
            if line.key == key:
                return index
        return None

    def find_line(self, key: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == key:
                return line
        return None


@dataclass(frozen=True)
class ScoredCandidate:
    product: Product
    score: float
    reason: RecommendationReason
    complement_type: Optional[str] = None

    @property
    def product_id(self) -> str:
        return self.product.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "score": round(self.score, 4),
            "reason": self.reason.value,
            "complement_type": self.complement_type,
        }


@dataclass(frozen=True)
class ProductRef:
    """Fulfillable product bound to a gift threshold."""
    product_id: str
    variant_id: Optional[str] = None
    title: str = ""
    handle: str = ""


@dataclass(frozen=True)
class Threshold:
    kind: ThresholdKind
    amount: int
    title: str = ""
    product_ref: Optional[ProductRef] = None

    @property
    def gift_product_id(self) -> Optional[str]:
        return self.product_ref.product_id if self.product_ref else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "amount": self.amount,
            "title": self.title,
            "product_id": self.gift_product_id,
        }


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _clean_properties(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): v for k, v in raw.items() if v is not None}


def normalize_cart_line(item: Dict[str, Any], index: int = 0) -> CartLine:
    """Normalize one cart.js item. Cart amounts are always cents."""
    variant_id = normalize_id(item.get("variant_id") or item.get("id"))
    quantity = to_quantity(item.get("quantity"))
    unit_price = to_minor_units(
        item.get("final_price", item.get("price")), unit=UNIT_MINOR
    )
    line_price_raw = item.get("final_line_price", item.get("line_price"))
    line_price = (
        to_minor_units(line_price_raw, unit=UNIT_MINOR)
        if line_price_raw is not None
        else unit_price * quantity
    )
    return CartLine(
        key=str(item.get("key") or f"{variant_id}:{index}"),
        product_id=normalize_id(item.get("product_id")),
        variant_id=variant_id,
        quantity=quantity,
        unit_price=unit_price,
        line_price=line_price,
        properties=_clean_properties(item.get("properties")),
        title=str(item.get("product_title") or item.get("title") or ""),
        product_type=str(item.get("product_type") or ""),
        handle=str(item.get("handle") or ""),
    )


def normalize_cart(payload: Optional[Dict[str, Any]]) -> CartSnapshot:
    """
    Normalize a storefront cart payload into a CartSnapshot.

    Unknown or missing fields fall back to empty values; a malformed payload
    yields an empty cart rather than an error.
    """
    if not isinstance(payload, dict):
        logger.warning(f"Unexpected cart payload type: {type(payload).__name__}")
        return CartSnapshot()

    items = payload.get("items") or []
    lines = tuple(
        normalize_cart_line(item, index)
        for index, item in enumerate(items)
        if isinstance(item, dict)
    )
    attributes = {
        str(k): str(v)
        for k, v in (payload.get("attributes") or {}).items()
        if v is not None
    }
    item_count = payload.get("item_count")
    return CartSnapshot(
        lines=lines,
        attributes=attributes,
        total_price=to_minor_units(payload.get("total_price"), unit=UNIT_MINOR),
        item_count=to_quantity(item_count) if item_count is not None else sum(l.quantity for l in lines),
        currency=str(payload.get("currency") or ""),
        token=str(payload.get("token") or ""),
    )


def _image_of(payload: Dict[str, Any]) -> Optional[str]:
    image = payload.get("featured_image") or payload.get("image")
    if isinstance(image, dict):
        image = image.get("src") or image.get("url")
    if not image:
        images = payload.get("images") or []
        if images:
            first = images[0]
            image = first.get("src") if isinstance(first, dict) else first
    return str(image) if image else None


def _tags_of(payload: Dict[str, Any]) -> Tuple[str, ...]:
    tags = payload.get("tags") or ()
    if isinstance(tags, str):
        tags = tags.split(",")
    return tuple(str(t).strip() for t in tags if str(t).strip())


def normalize_product(payload: Any, price_unit: str = UNIT_AUTO) -> Optional[Product]:
    """
    Normalize a product payload from product.js, products.json, search
    suggest or the app proxy into a Product.

    Returns None when the payload has no usable id.
    """
    if not isinstance(payload, dict):
        return None
    product_id = normalize_id(payload.get("id") or payload.get("product_id"))
    if not product_id:
        return None

    variants: List[Variant] = []
    for raw in payload.get("variants") or []:
        if not isinstance(raw, dict):
            continue
        variant_id = normalize_id(raw.get("id"))
        if not variant_id:
            continue
        variants.append(Variant(
            id=variant_id,
            price=to_minor_units(raw.get("price"), unit=price_unit),
            available=bool(raw.get("available", raw.get("availableForSale", True))),
            title=str(raw.get("title") or ""),
        ))

    if not variants:
        # Listing payloads without variants still carry a price and availability
        available = payload.get("available", payload.get("inStock", True))
        variants.append(Variant(
            id=normalize_id(payload.get("variant_id")),
            price=to_minor_units(payload.get("price"), unit=price_unit),
            available=bool(available),
        ))

    handle = str(payload.get("handle") or "")
    return Product(
        id=product_id,
        title=str(payload.get("title") or ""),
        handle=handle,
        url=str(payload.get("url") or (f"/products/{handle}" if handle else "")),
        image=_image_of(payload),
        product_type=str(payload.get("product_type") or payload.get("type") or ""),
        vendor=str(payload.get("vendor") or ""),
        tags=_tags_of(payload),
        variants=tuple(variants),
    )
