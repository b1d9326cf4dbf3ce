"""
Gift Lifecycle Controller
Drives the free-gift line from threshold transitions.

Per gift threshold (keyed by the gift's product id):

    LOCKED -> OFFERED -> CLAIMED
              OFFERED -> DECLINED

reconcile() is called after every cart refresh and returns the cart actions
needed to bring the remote cart in line with the reward state. It never talks
to the cart itself; the drawer engine turns actions into cart mutations.
"""
from typing import List, Optional, Sequence
from dataclasses import dataclass
from enum import Enum
import logging

from schemas.cart_schemas import CartSnapshot, Threshold
from services.session_state import GiftState, SessionState
from services.thresholds import ThresholdState

logger = logging.getLogger(__name__)


class GiftActionKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    SET_QUANTITY = "set_quantity"


@dataclass(frozen=True)
class GiftAction:
    kind: GiftActionKind
    product_id: str
    variant_id: Optional[str] = None
    line_key: Optional[str] = None
    quantity: int = 1
    threshold: Optional[Threshold] = None


class GiftLifecycleController:
    """Gift state machine over an injected SessionState."""

    def __init__(self, session: SessionState):
        self.session = session

    def _transition(self, product_id: str, new_state: GiftState) -> None:
        old_state = self.session.gift_state(product_id)
        if old_state != new_state:
            logger.info(f"Gift {product_id}: {old_state.value} -> {new_state.value}")
        self.session.gift_states[product_id] = new_state

    def reconcile(self, cart: CartSnapshot, state: ThresholdState) -> List[GiftAction]:
        actions: List[GiftAction] = []
        achieved = {t.gift_product_id for t in state.gifts.achieved}

        for threshold in state.gifts.thresholds:
            product_id = threshold.gift_product_id
            if not product_id:
                continue
            gift_lines = [line for line in cart.gift_lines if line.product_id == product_id]
            gift_quantity = sum(line.quantity for line in gift_lines)
            previous = self.session.gift_state(product_id)

            if product_id in achieved:
                if gift_quantity >= 1:
                    self.session.clear_decline(product_id)
                    self._transition(product_id, GiftState.CLAIMED)
                    # One free unit per threshold
                    first, extra = gift_lines[0], gift_lines[1:]
                    if first.quantity > 1:
                        actions.append(GiftAction(
                            GiftActionKind.SET_QUANTITY, product_id,
                            variant_id=first.variant_id, line_key=first.key,
                            quantity=1, threshold=threshold,
                        ))
                    for line in extra:
                        actions.append(GiftAction(
                            GiftActionKind.REMOVE, product_id,
                            variant_id=line.variant_id, line_key=line.key,
                            quantity=0, threshold=threshold,
                        ))
                elif previous == GiftState.CLAIMED:
                    # Shopper removed the gift while still eligible
                    self.session.record_decline(product_id)
                    self._transition(product_id, GiftState.DECLINED)
                elif self.session.is_declined(product_id):
                    self._transition(product_id, GiftState.DECLINED)
                else:
                    self._transition(product_id, GiftState.OFFERED)
            else:
                for line in gift_lines:
                    actions.append(GiftAction(
                        GiftActionKind.REMOVE, product_id,
                        variant_id=line.variant_id, line_key=line.key,
                        quantity=0, threshold=threshold,
                    ))
                self._transition(product_id, GiftState.LOCKED)

        if actions:
            logger.info(f"Gift reconcile produced {len(actions)} cart actions")
        return actions

    def claim(self, threshold: Threshold, variant_id: Optional[str] = None) -> Optional[GiftAction]:
        """
        Explicit claim. Allowed while OFFERED or DECLINED; clears any decline.
        The state only becomes CLAIMED once the gift line shows up in the cart.
        """
        product_id = threshold.gift_product_id
        if not product_id:
            return None
        current = self.session.gift_state(product_id)
        if current not in (GiftState.OFFERED, GiftState.DECLINED):
            logger.info(f"Ignoring claim for gift {product_id} in state {current.value}")
            return None
        self.session.clear_decline(product_id)
        return GiftAction(
            GiftActionKind.ADD, product_id,
            variant_id=variant_id or (threshold.product_ref.variant_id if threshold.product_ref else None),
            quantity=1, threshold=threshold,
        )

    def decline(self, product_id: str) -> bool:
        current = self.session.gift_state(product_id)
        if current != GiftState.OFFERED:
            logger.info(f"Ignoring decline for gift {product_id} in state {current.value}")
            return False
        self.session.record_decline(product_id)
        self._transition(product_id, GiftState.DECLINED)
        return True

    def offered(self, thresholds: Sequence[Threshold]) -> List[Threshold]:
        """Gift thresholds currently waiting for the shopper's decision."""
        return [
            t for t in thresholds
            if t.gift_product_id and self.session.gift_state(t.gift_product_id) == GiftState.OFFERED
        ]
