"""
Storefront HTTP clients
Cart (cart.js / add.js / change.js) and catalog (search, listings, product.js,
app proxy) access over a shared httpx.AsyncClient.

Transport failures and error statuses are translated into the CartError
taxonomy; callers decide whether a failure is a no-op or worth reporting.
"""
from typing import Any, Dict, List, Optional, Iterable
import logging

import httpx

from schemas.cart_schemas import CartSnapshot, Product, normalize_cart, normalize_product
from services.errors import CartNetworkError, error_for_status
from services.money import UNIT_AUTO, UNIT_MAJOR, UNIT_MINOR
from settings import APP_PROXY_PATH, CART_REQUEST_TIMEOUT_SECONDS, STOREFRONT_URL
from utils import retry_async

logger = logging.getLogger(__name__)


def build_http_client(base_url: str = STOREFRONT_URL, **kwargs) -> httpx.AsyncClient:
    """Shared client for one storefront; the caller owns its lifetime."""
    kwargs.setdefault("timeout", CART_REQUEST_TIMEOUT_SECONDS)
    kwargs.setdefault("headers", {"Accept": "application/json"})
    return httpx.AsyncClient(base_url=base_url, **kwargs)


async def _request_json(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    variant_id: Optional[str] = None,
    **kwargs,
) -> Any:
    try:
        resp = await http.request(method, path, **kwargs)
    except httpx.HTTPError as e:
        raise CartNetworkError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

    if resp.status_code >= 400:
        description = ""
        try:
            body = resp.json()
            if isinstance(body, dict):
                description = str(body.get("description") or body.get("message") or "")
        except ValueError:
            description = resp.text[:200]
        raise error_for_status(
            resp.status_code,
            f"{method} {path} returned {resp.status_code}: {description}",
            variant_id=variant_id,
        )

    try:
        return resp.json()
    except ValueError as e:
        raise CartNetworkError(f"{method} {path} returned invalid JSON") from e


class StorefrontCartClient:
    """Black-box access to the storefront cart resource."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    @retry_async()
    async def get_cart(self) -> CartSnapshot:
        payload = await _request_json(self.http, "GET", "/cart.js")
        return normalize_cart(payload)

    async def add(self, variant_id: str, quantity: int = 1,
                  properties: Optional[Dict[str, str]] = None) -> None:
        item: Dict[str, Any] = {"id": variant_id, "quantity": quantity}
        if properties:
            item["properties"] = dict(properties)
        await _request_json(
            self.http, "POST", "/cart/add.js",
            variant_id=variant_id, json={"items": [item]},
        )

    async def change(self, line: int, quantity: int,
                     properties: Optional[Dict[str, str]] = None) -> CartSnapshot:
        body: Dict[str, Any] = {"line": line, "quantity": quantity}
        if properties:
            body["properties"] = dict(properties)
        payload = await _request_json(self.http, "POST", "/cart/change.js", json=body)
        return normalize_cart(payload)


class StorefrontCatalogClient:
    """
    Catalog lookups for the recommendation engine. Products are cached by id
    for the lifetime of the client (one browsing session).
    """

    def __init__(self, http: httpx.AsyncClient, proxy_path: str = APP_PROXY_PATH):
        self.http = http
        self.proxy_path = proxy_path.rstrip("/")
        self._products: Dict[str, Product] = {}
        self._purchase_patterns: Optional[Dict[str, Dict[str, float]]] = None

    def cached(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def _remember(self, raw_products: Iterable[Any], price_unit: str) -> List[Product]:
        products = []
        for raw in raw_products or []:
            product = normalize_product(raw, price_unit=price_unit)
            if product is None:
                continue
            self._products[product.id] = product
            products.append(product)
        return products

    @retry_async()
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await _request_json(self.http, "GET", path, params=params)

    async def search(self, keyword: str, limit: int = 4) -> List[Product]:
        data = await self._get("/search/suggest.json", params={
            "q": keyword,
            "resources[type]": "product",
            "resources[limit]": limit,
        })
        results = ((data or {}).get("resources") or {}).get("results") or {}
        return self._remember(results.get("products"), UNIT_AUTO)[:limit]

    async def fetch_by_ids(self, product_ids: List[str]) -> List[Product]:
        missing = [pid for pid in product_ids if pid not in self._products]
        if missing:
            data = await self._get(
                f"{self.proxy_path}/api/products", params={"ids": ",".join(missing)}
            )
            self._remember((data or {}).get("products"), UNIT_MAJOR)
        return [self._products[pid] for pid in product_ids if pid in self._products]

    async def fetch_product(self, handle: str) -> Optional[Product]:
        data = await self._get(f"/products/{handle}.js")
        products = self._remember([data], UNIT_MINOR)
        return products[0] if products else None

    async def popular(self, limit: int = 8) -> List[Product]:
        data = await self._get("/collections/all/products.json", params={
            "sort_by": "best-selling",
            "limit": limit,
        })
        return self._remember((data or {}).get("products"), UNIT_AUTO)[:limit]

    async def price_range(self, min_price: int, max_price: int, limit: int = 4) -> List[Product]:
        data = await self._get("/collections/all/products.json", params={
            "filter.v.price.gte": f"{min_price / 100:.2f}",
            "filter.v.price.lte": f"{max_price / 100:.2f}",
            "limit": limit * 2,
        })
        products = self._remember((data or {}).get("products"), UNIT_AUTO)
        return [p for p in products if min_price <= p.price <= max_price][:limit]

    async def purchase_patterns(self) -> Dict[str, Dict[str, float]]:
        """Co-purchase confidences keyed by product id, fetched once per session."""
        if self._purchase_patterns is None:
            data = await self._get(f"{self.proxy_path}/api/purchase-patterns")
            pairs = (data or {}).get("frequentPairs") or {}
            self._purchase_patterns = {
                str(source): {str(target): float(conf) for target, conf in targets.items()}
                for source, targets in pairs.items()
                if isinstance(targets, dict)
            }
        return self._purchase_patterns
