"""
Cart Sync Core
Owns the local CartSnapshot and keeps it in step with the remote cart.

Every mutation follows the same sequence:
1. send the mutation
2. on success, fetch the cart (the fetch result is authoritative)
3. trigger a debounced recomputation
4. on failure, leave the local snapshot untouched and report the status

The remote cart can change under us at any time (host page, other tabs), so
the snapshot is only ever replaced wholesale and never patched locally.
"""
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field, replace
from enum import Enum
import asyncio
import inspect
import logging

from schemas.cart_schemas import CartSnapshot, GIFT_PROPERTY, GIFT_PROPERTY_VALUE
from services.concurrency_control import ConcurrencyController, DuplicateActionError
from services.debounce import TrailingDebouncer
from services.errors import CartError, InvalidVariantError, RateLimitedError
from services.obs.metrics import DrawerMetrics
from services.session_state import SessionState
from settings import CART_DEBOUNCE_MS

logger = logging.getLogger(__name__)


class MutationStatus(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    INVALID_VARIANT = "invalid_variant"
    NEEDS_VARIANT_SELECTION = "needs_variant_selection"


# =============================================================================
# CART OPERATIONS
# =============================================================================

@dataclass(frozen=True)
class ChangeQuantity:
    """Set a line's quantity; 0 removes the line. Serialized, never dropped."""
    line_key: str
    quantity: int

    @property
    def dedupe_key(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class AddVariant:
    variant_id: str
    quantity: int = 1
    product_id: Optional[str] = None
    properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> Optional[str]:
        return f"add:{self.variant_id}"


@dataclass(frozen=True)
class AddGift:
    variant_id: str
    product_id: str

    @property
    def dedupe_key(self) -> Optional[str]:
        return f"gift:{self.product_id}"


@dataclass(frozen=True)
class RemoveGift:
    line_key: str
    product_id: str = ""

    @property
    def dedupe_key(self) -> Optional[str]:
        return f"remove-gift:{self.line_key}"


CartOp = Union[ChangeQuantity, AddVariant, AddGift, RemoveGift]


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    op: Optional[CartOp] = None
    snapshot: Optional[CartSnapshot] = None
    error: Optional[str] = None
    product: Any = None

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.APPLIED


Subscriber = Callable[[CartSnapshot], Union[None, Awaitable[Any]]]


class CartSyncCore:
    """
    Fetch/mutate orchestration for one storefront cart.

    A prewarm fetch is started at construction when an event loop is running;
    fetch_cart() callers arriving while it is in flight share it instead of
    issuing a second request. Once it has finished, fetches go to the remote cart.
    """

    def __init__(
        self,
        cart_client,
        session: Optional[SessionState] = None,
        debounce_seconds: float = CART_DEBOUNCE_MS / 1000,
        metrics: Optional[DrawerMetrics] = None,
        prewarm: bool = True,
    ):
        self.client = cart_client
        self.session = session
        self.metrics = metrics or DrawerMetrics()
        self.guard = ConcurrencyController()
        self.debouncer = TrailingDebouncer(self._recompute, delay_seconds=debounce_seconds, name="cart_recompute")

        self.snapshot = CartSnapshot()
        self.last_error: Optional[CartError] = None
        self._revision = 0
        self._subscribers: List[Subscriber] = []
        self._prewarm: Optional[asyncio.Task] = None

        if prewarm:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._prewarm = loop.create_task(self._load())

    # Subscribers

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for settled (post-debounce) snapshots. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _recompute(self) -> None:
        snapshot = self.snapshot
        self.metrics.record_recompute(snapshot.revision)
        logger.info(f"Recomputing drawer state for cart revision {snapshot.revision}")
        for callback in list(self._subscribers):
            result = callback(snapshot)
            if inspect.isawaitable(result):
                await result

    # Fetch

    def _apply(self, snapshot: CartSnapshot) -> CartSnapshot:
        self._revision += 1
        self.snapshot = replace(snapshot, revision=self._revision)
        self.last_error = None
        self.debouncer.trigger()
        return self.snapshot

    async def _load(self) -> CartSnapshot:
        async with self.metrics.phase_timer("cart_fetch"):
            try:
                fetched = await self.client.get_cart()
            except CartError as e:
                self.last_error = e
                self.metrics.increment("cart_fetch_failures")
                logger.warning(f"Cart fetch failed, keeping revision {self.snapshot.revision}: {e}")
                return self.snapshot
        self.metrics.increment("cart_fetches")
        return self._apply(fetched)

    async def fetch_cart(self) -> CartSnapshot:
        """Fetch and apply the remote cart; on failure the current snapshot is returned unchanged."""
        task = self._prewarm
        if task is not None and not task.done():
            return await task
        # A finished prewarm is stale; the remote cart may have changed since
        self._prewarm = None
        return await self._load()

    async def notify_external_change(self) -> CartSnapshot:
        """Host page changed the cart outside the drawer; resync."""
        logger.info("External cart change reported, refreshing")
        return await self.fetch_cart()

    # Mutations

    async def _send(self, op: CartOp) -> None:
        if isinstance(op, AddVariant):
            await self.client.add(op.variant_id, op.quantity, dict(op.properties) or None)
        elif isinstance(op, AddGift):
            await self.client.add(op.variant_id, 1, {GIFT_PROPERTY: GIFT_PROPERTY_VALUE})
        elif isinstance(op, (ChangeQuantity, RemoveGift)):
            line = self.snapshot.line_number(op.line_key)
            if line is None:
                # Snapshot may be stale; line numbers come from the remote cart
                await self._load()
                line = self.snapshot.line_number(op.line_key)
            if line is None:
                raise CartError(f"Cart line {op.line_key} not found")
            quantity = op.quantity if isinstance(op, ChangeQuantity) else 0
            await self.client.change(line, max(0, quantity))
        else:
            raise TypeError(f"Unsupported cart operation: {type(op).__name__}")

    def _mark_invalid(self, op: CartOp, error: InvalidVariantError) -> None:
        if self.session is None:
            return
        variant_id = error.variant_id or getattr(op, "variant_id", None)
        product_id = getattr(op, "product_id", None) or None
        self.session.mark_invalid(variant_id, product_id)
        logger.info(f"Variant {variant_id} (product {product_id}) rejected, excluded for this session")

    async def mutate(self, op: CartOp) -> MutationResult:
        result = await self._mutate(op)
        self.metrics.record_mutation(result.status.value)
        return result

    async def _mutate(self, op: CartOp) -> MutationResult:
        try:
            async with self.guard.acquire_cart_lock(op.dedupe_key):
                try:
                    await self._send(op)
                except RateLimitedError as e:
                    logger.info(f"Rate limited, abandoning {type(op).__name__}: {e}")
                    return MutationResult(MutationStatus.RATE_LIMITED, op, self.snapshot, str(e))
                except InvalidVariantError as e:
                    self._mark_invalid(op, e)
                    return MutationResult(MutationStatus.INVALID_VARIANT, op, self.snapshot, str(e))
                except CartError as e:
                    logger.warning(f"Cart mutation {type(op).__name__} failed: {e}")
                    return MutationResult(MutationStatus.FAILED, op, self.snapshot, str(e))

                snapshot = await self._load()
                if self.last_error is not None:
                    # Sent but not confirmed by a fetch; recompute anyway and tell the caller to refresh
                    self.debouncer.trigger()
                    return MutationResult(MutationStatus.APPLIED, op, snapshot, str(self.last_error))
                return MutationResult(MutationStatus.APPLIED, op, snapshot)
        except DuplicateActionError as e:
            return MutationResult(MutationStatus.IGNORED, op, self.snapshot, str(e))

    async def flush(self) -> None:
        """Run a pending recomputation immediately."""
        await self.debouncer.flush()

    async def wait_idle(self) -> None:
        await self.debouncer.wait()

    async def close(self) -> None:
        self.debouncer.cancel()
        if self._prewarm is not None and not self._prewarm.done():
            self._prewarm.cancel()
        self._prewarm = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revision": self.snapshot.revision,
            "item_count": self.snapshot.item_count,
            "subtotal": self.snapshot.subtotal_excluding_gifts,
            "in_flight": self.guard.get_active_actions(),
            "last_error": str(self.last_error) if self.last_error else None,
        }
