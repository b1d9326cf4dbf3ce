"""
Drawer preview endpoints.
Stateless evaluation of thresholds and recommendations for a settings payload,
used by the admin preview and for debugging storefront configurations.
"""
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from schemas.cart_schemas import normalize_cart
from schemas.drawer_config import DrawerConfig
from services.layouts import build_view
from services.recommendations.engine import CatalogAccess, RecommendationEngine, RecommendationRules
from services.recommendations.projector import project_visible_list
from services.storefront_client import StorefrontCatalogClient, build_http_client
from services.thresholds import evaluate_for_config
from settings import resolve_shop_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/drawer", tags=["drawer"])


class ThresholdPreviewRequest(BaseModel):
    shop_id: Optional[str] = Field(None, alias="shopId", max_length=255)
    subtotal: int = Field(..., ge=0, description="Gift-excluded subtotal in minor units")
    settings: Dict[str, Any] = Field(default_factory=dict)
    shipping_ever_achieved: bool = Field(False, alias="shippingEverAchieved")

    model_config = ConfigDict(populate_by_name=True)


class RecommendationPreviewRequest(BaseModel):
    shop_id: Optional[str] = Field(None, alias="shopId", max_length=255)
    cart: Dict[str, Any] = Field(default_factory=dict, description="cart.js payload")
    settings: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


async def get_catalog() -> AsyncIterator[CatalogAccess]:
    http = build_http_client()
    try:
        yield StorefrontCatalogClient(http)
    finally:
        await http.aclose()


@router.post("/thresholds")
async def preview_thresholds(request: ThresholdPreviewRequest):
    shop_id = resolve_shop_id(request.shop_id)
    config = DrawerConfig.from_settings(request.settings)
    state = evaluate_for_config(request.subtotal, config, request.shipping_ever_achieved)
    logger.info(
        f"Threshold preview for {shop_id}: subtotal={request.subtotal} "
        f"achieved={state.achieved_count}/{len(state.segments)}"
    )
    return {"shop_id": shop_id, **state.to_dict()}


@router.post("/recommendations")
async def preview_recommendations(
    request: RecommendationPreviewRequest,
    catalog: CatalogAccess = Depends(get_catalog),
):
    shop_id = resolve_shop_id(request.shop_id)
    config = DrawerConfig.from_settings(request.settings)
    cart = normalize_cart(request.cart)

    master = []
    if config.enable_recommendations:
        master = await RecommendationEngine(catalog).compute_master_list(
            cart, RecommendationRules.from_config(config)
        )
    thresholds = evaluate_for_config(cart.subtotal_excluding_gifts, config)
    visible = project_visible_list(master, cart, config, thresholds=thresholds)

    logger.info(f"Recommendation preview for {shop_id}: master={len(master)} visible={len(visible)}")
    return {
        "shop_id": shop_id,
        "master": [c.to_dict() for c in master],
        "visible": [c.to_dict() for c in visible],
        "view": build_view(config.recommendation_layout, visible).to_dict(),
        "thresholds": thresholds.to_dict(),
    }
