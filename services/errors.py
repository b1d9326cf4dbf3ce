"""
Cart error taxonomy.

Storefront calls fail in a handful of ways that the engine treats differently:
transport/availability failures degrade to a no-op, rejected variants are
blacklisted for the session, and rate limits abandon the mutation quietly.
"""
from typing import Optional


class CartError(Exception):
    """Base class for storefront cart and catalog failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CartNetworkError(CartError):
    """Transport failure, timeout or 5xx from the storefront."""


class InvalidVariantError(CartError):
    """The storefront rejected a specific variant (sold out, deleted, not purchasable)."""

    def __init__(self, message: str, variant_id: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.variant_id = variant_id


class RateLimitedError(CartError):
    """429 from the storefront."""


def error_for_status(status_code: int, message: str, variant_id: Optional[str] = None) -> CartError:
    if status_code == 429:
        return RateLimitedError(message, status_code=status_code)
    if status_code in (404, 422):
        return InvalidVariantError(message, variant_id=variant_id, status_code=status_code)
    return CartNetworkError(message, status_code=status_code)
