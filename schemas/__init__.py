"""
Drawer Schemas Package
Provides the immutable cart, catalog and configuration structures.
"""

from .cart_schemas import (
    # Enums
    RecommendationReason,
    ThresholdKind,

    # Cart & catalog
    CartLine,
    CartSnapshot,
    Product,
    Variant,
    ScoredCandidate,
    ProductRef,
    Threshold,

    # Helper functions
    normalize_cart,
    normalize_cart_line,
    normalize_product,
    normalize_id,
)
from .drawer_config import (
    DrawerConfig,
    LayoutMode,
    ComplementMode,
    SuggestionMode,
    ProgressBarMode,
)
