"""
Drawer telemetry
Fire-and-forget event posting to the app proxy tracking endpoint.

Impressions and clicks are counted at most once per product per session.
A failed post is logged and forgotten; telemetry never affects the cart.
"""
from typing import Any, Dict, Optional, Set
from enum import Enum
import asyncio
import logging

import httpx

from services.obs.metrics import DrawerMetrics
from services.session_state import SessionState
from settings import APP_PROXY_PATH, TELEMETRY_ENABLED
from utils import sanitize_string

logger = logging.getLogger(__name__)


class TelemetryEvent(str, Enum):
    IMPRESSION = "impression"
    CLICK = "click"
    ADD_TO_CART = "add_to_cart"
    CART_OPEN = "cart_open"
    CART_CLOSE = "cart_close"
    CHECKOUT_START = "checkout_start"


class TelemetryClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        session: SessionState,
        shop: str,
        proxy_path: str = APP_PROXY_PATH,
        enabled: bool = TELEMETRY_ENABLED,
        metrics: Optional[DrawerMetrics] = None,
    ):
        self.http = http
        self.session = session
        self.shop = shop
        self.endpoint = f"{proxy_path.rstrip('/')}/api/track"
        self.enabled = enabled
        self.metrics = metrics
        self._pending: Set[asyncio.Task] = set()
        self.sent = 0
        self.failed = 0

    def track(
        self,
        event: TelemetryEvent,
        product_id: Optional[str] = None,
        product_title: str = "",
        source: str = "cart_drawer",
        position: Optional[int] = None,
    ) -> bool:
        """Queue an event. Returns False when it was deduplicated or telemetry is off."""
        if not self.enabled:
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, dropping telemetry {event.value}")
            return False
        if product_id:
            if event == TelemetryEvent.IMPRESSION and not self.session.first_impression(product_id):
                return False
            if event == TelemetryEvent.CLICK and not self.session.first_click(product_id):
                return False

        form: Dict[str, Any] = {
            "eventType": event.value,
            "shop": self.shop,
            "sessionId": self.session.session_id,
            "source": source,
        }
        if product_id:
            form["productId"] = product_id
            form["productTitle"] = sanitize_string(product_title)
        if position is not None:
            form["position"] = str(position)

        task = loop.create_task(self._post(form))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _post(self, form: Dict[str, Any]) -> None:
        try:
            resp = await self.http.post(self.endpoint, data=form)
            if resp.status_code >= 400:
                self._count_failure()
                logger.warning(f"Telemetry {form['eventType']} rejected with {resp.status_code}")
                return
            self.sent += 1
            if self.metrics is not None:
                self.metrics.increment("telemetry_sent")
        except httpx.HTTPError as e:
            self._count_failure()
            logger.warning(f"Telemetry {form['eventType']} failed: {type(e).__name__}: {e}")

    def _count_failure(self) -> None:
        self.failed += 1
        if self.metrics is not None:
            self.metrics.increment("telemetry_failed")

    async def drain(self) -> None:
        """Wait for queued events; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
