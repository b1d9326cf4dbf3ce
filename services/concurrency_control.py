"""
Cart Mutation Concurrency Control
Serializes mutations against the remote cart and drops duplicate add-type
actions while an identical one is still in flight.
"""
import asyncio
import logging
from typing import Optional, Set, List
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class DuplicateActionError(Exception):
    """Raised when the same conceptual action is already in flight."""

    def __init__(self, action_key: str):
        super().__init__(f"Action {action_key} already in flight")
        self.action_key = action_key


class ConcurrencyController:
    """
    In-process concurrency control for one cart:
    - A single cart lock held for the send + refresh of every mutation
    - A set of in-flight action keys; a second acquire for a key that is
      still in flight is rejected instead of queued
    """

    def __init__(self):
        self._cart_lock = asyncio.Lock()
        self._in_flight: Set[str] = set()

    @property
    def busy(self) -> bool:
        return self._cart_lock.locked()

    def in_flight(self, action_key: str) -> bool:
        return action_key in self._in_flight

    @asynccontextmanager
    async def acquire_cart_lock(self, action_key: Optional[str] = None):
        """
        Hold the cart lock for the duration of the context.

        Usage:
            async with controller.acquire_cart_lock("add:123"):
                await send_mutation()
                await refresh_cart()
        """
        if action_key is not None:
            if action_key in self._in_flight:
                logger.info(f"Dropping duplicate action {action_key}")
                raise DuplicateActionError(action_key)
            # Claimed before waiting so a duplicate queued behind the lock is rejected too
            self._in_flight.add(action_key)

        try:
            async with self._cart_lock:
                yield
        finally:
            if action_key is not None:
                self._in_flight.discard(action_key)

    def get_active_actions(self) -> List[str]:
        """In-flight action keys, for diagnostics"""
        return sorted(self._in_flight)
