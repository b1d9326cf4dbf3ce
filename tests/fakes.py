"""In-memory storefront stand-ins shared by the tests."""
import asyncio
from typing import Dict, Iterable, List, Optional

from schemas.cart_schemas import Product, Variant, normalize_cart
from services.errors import CartNetworkError, InvalidVariantError, RateLimitedError


def make_product(pid: str, price: int = 1000, title: Optional[str] = None, variants: int = 1,
                 available: bool = True, handle: str = "", product_type: str = "") -> Product:
    return Product(
        id=pid,
        title=title or f"Product {pid}",
        handle=handle,
        product_type=product_type,
        variants=tuple(Variant(f"{pid}-v{i}", price, available) for i in range(variants)),
    )


class FakeCatalog:
    def __init__(self, products: Iterable[Product] = (), popular: Iterable[str] = (),
                 searches: Optional[Dict[str, List[str]]] = None,
                 patterns: Optional[Dict[str, Dict[str, float]]] = None,
                 price_band: Iterable[str] = (), failing: Iterable[str] = ()):
        self.products = {p.id: p for p in products}
        self.popular_ids = list(popular)
        self.searches = searches or {}
        self.patterns = patterns or {}
        self.price_band_ids = list(price_band)
        self.failing = set(failing)
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise CartNetworkError(f"{name} unavailable")

    async def search(self, keyword, limit=4):
        self._check("search")
        return [self.products[pid] for pid in self.searches.get(keyword, []) if pid in self.products][:limit]

    async def fetch_by_ids(self, product_ids):
        self._check("fetch_by_ids")
        return [self.products[pid] for pid in product_ids if pid in self.products]

    async def fetch_product(self, handle):
        self._check("fetch_product")
        for product in self.products.values():
            if product.handle == handle:
                return product
        return None

    async def popular(self, limit=8):
        self._check("popular")
        return [self.products[pid] for pid in self.popular_ids if pid in self.products][:limit]

    async def price_range(self, min_price, max_price, limit=4):
        self._check("price_range")
        return [self.products[pid] for pid in self.price_band_ids if pid in self.products][:limit]

    async def purchase_patterns(self):
        self._check("purchase_patterns")
        return self.patterns


class FakeCartClient:
    """Behaves like cart.js: lines keyed by variant (and gift flag), prices in cents."""

    def __init__(self, catalog: Optional[FakeCatalog] = None, delay: float = 0.0):
        self.catalog = catalog or FakeCatalog()
        self.items: List[dict] = []
        self.delay = delay
        self.get_calls = 0
        self.add_calls: List[dict] = []
        self.change_calls: List[dict] = []
        self.invalid_variants = set()
        self.rate_limited = False
        self.fetch_error: Optional[Exception] = None

    def _variant(self, variant_id: str):
        for product in self.catalog.products.values():
            for variant in product.variants:
                if variant.id == variant_id:
                    return product, variant
        return None, None

    def put(self, variant_id: str, quantity: int = 1, gift: bool = False) -> None:
        """Seed the remote cart directly, as the host page would."""
        product, variant = self._variant(variant_id)
        properties = {"_is_gift": "true"} if gift else {}
        key = f"{variant_id}:gift" if gift else f"{variant_id}"
        for item in self.items:
            if item["key"] == key:
                item["quantity"] += quantity
                return
        self.items.append({
            "key": key,
            "id": variant_id,
            "variant_id": variant_id,
            "product_id": product.id if product else variant_id.split("-")[0],
            "product_title": product.title if product else variant_id,
            "quantity": quantity,
            "price": 0 if gift else (variant.price if variant else 0),
            "properties": properties,
        })

    def payload(self) -> dict:
        items = []
        for item in self.items:
            items.append(dict(item, line_price=item["price"] * item["quantity"]))
        return {
            "token": "fake",
            "items": items,
            "total_price": sum(i["line_price"] for i in items),
            "item_count": sum(i["quantity"] for i in items),
        }

    async def get_cart(self):
        self.get_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fetch_error is not None:
            raise self.fetch_error
        return normalize_cart(self.payload())

    async def add(self, variant_id, quantity=1, properties=None):
        self.add_calls.append({"id": variant_id, "quantity": quantity, "properties": properties})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.rate_limited:
            raise RateLimitedError("Too many requests", status_code=429)
        if variant_id in self.invalid_variants:
            raise InvalidVariantError("Cannot find variant", variant_id=variant_id, status_code=422)
        gift = bool(properties and properties.get("_is_gift") == "true")
        self.put(variant_id, quantity, gift=gift)

    async def change(self, line, quantity, properties=None):
        self.change_calls.append({"line": line, "quantity": quantity})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.rate_limited:
            raise RateLimitedError("Too many requests", status_code=429)
        if quantity <= 0:
            self.items.pop(line - 1)
        else:
            self.items[line - 1]["quantity"] = quantity
        return normalize_cart(self.payload())
