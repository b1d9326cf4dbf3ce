"""
Centralized configuration for the cart drawer engine.
"""
from __future__ import annotations

import os
from typing import Optional, Any

DEFAULT_SHOP_ID: str = os.getenv("DEFAULT_SHOP_ID") or "demo-shop.myshopify.com"

# Storefront the engine talks to (cart.js, products, search)
STOREFRONT_URL: str = (os.getenv("STOREFRONT_URL") or "http://localhost:9292").rstrip("/")

# App proxy prefix for id lookups, purchase patterns and tracking
APP_PROXY_PATH: str = "/" + (os.getenv("APP_PROXY_PATH") or "apps/cart-uplift").strip("/")

CART_DEBOUNCE_MS: int = int(os.getenv("CART_DEBOUNCE_MS", "150"))
CART_REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("CART_REQUEST_TIMEOUT_SECONDS", "10"))
TELEMETRY_ENABLED: bool = os.getenv("TELEMETRY_ENABLED", "true").lower() == "true"


def sanitize_shop_id(value: Optional[Any]) -> Optional[str]:
    """Normalize raw IDs (strip whitespace, protocol, lower-case domains)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    text = str(value).strip()
    for prefix in ("https://", "http://"):
        if text.lower().startswith(prefix):
            text = text[len(prefix):]
    text = text.rstrip("/")
    if not text:
        return None
    return text.lower()


def resolve_shop_id(*candidates: Optional[Any]) -> str:
    """
    Pick the first usable shop identifier from candidates, otherwise fall back to DEFAULT_SHOP_ID.
    """
    for candidate in candidates:
        normalized = sanitize_shop_id(candidate)
        if normalized:
            return normalized
    return DEFAULT_SHOP_ID
