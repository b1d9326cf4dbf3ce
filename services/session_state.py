"""
Session State
Explicit, serializable per-session memory for the drawer engine.

Holds everything that must survive drawer open/close within one browsing
session but never outlive it: the telemetry session id, gift decline memory,
the free-shipping "ever achieved" latch, variants the storefront rejected and
the impression/click dedupe sets. The host decides the session boundary by
constructing a fresh SessionState or restoring one with ``from_dict``.
"""
from typing import Dict, Any, Optional, Set
from dataclasses import dataclass, field
from enum import Enum
import logging
import uuid

logger = logging.getLogger(__name__)


class GiftState(str, Enum):
    LOCKED = "locked"
    OFFERED = "offered"
    CLAIMED = "claimed"
    DECLINED = "declined"


def _new_session_id() -> str:
    return f"cu_{uuid.uuid4().hex}"


@dataclass
class SessionState:
    session_id: str = field(default_factory=_new_session_id)
    declined_gifts: Set[str] = field(default_factory=set)
    gift_states: Dict[str, GiftState] = field(default_factory=dict)
    shipping_ever_achieved: bool = False
    invalid_variants: Set[str] = field(default_factory=set)
    invalid_products: Set[str] = field(default_factory=set)
    impressions: Set[str] = field(default_factory=set)
    clicks: Set[str] = field(default_factory=set)

    # Gift decline memory

    def is_declined(self, product_id: str) -> bool:
        return product_id in self.declined_gifts

    def record_decline(self, product_id: str) -> None:
        self.declined_gifts.add(product_id)
        logger.info(f"Gift {product_id} declined for session {self.session_id}")

    def clear_decline(self, product_id: str) -> None:
        self.declined_gifts.discard(product_id)

    def gift_state(self, product_id: str) -> GiftState:
        return self.gift_states.get(product_id, GiftState.LOCKED)

    # Invalid variant blacklist

    def mark_invalid(self, variant_id: Optional[str], product_id: Optional[str] = None) -> None:
        if variant_id:
            self.invalid_variants.add(variant_id)
        if product_id:
            self.invalid_products.add(product_id)

    def is_invalid(self, product_id: str, variant_id: Optional[str] = None) -> bool:
        if product_id in self.invalid_products:
            return True
        return bool(variant_id) and variant_id in self.invalid_variants

    # Telemetry dedupe; both return True the first time only

    def first_impression(self, product_id: str) -> bool:
        if product_id in self.impressions:
            return False
        self.impressions.add(product_id)
        return True

    def first_click(self, product_id: str) -> bool:
        if product_id in self.clicks:
            return False
        self.clicks.add(product_id)
        return True

    def reset(self) -> None:
        """Start a new session: fresh id, all memory discarded."""
        fresh = SessionState()
        self.__dict__.update(fresh.__dict__)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "declined_gifts": sorted(self.declined_gifts),
            "gift_states": {pid: state.value for pid, state in self.gift_states.items()},
            "shipping_ever_achieved": self.shipping_ever_achieved,
            "invalid_variants": sorted(self.invalid_variants),
            "invalid_products": sorted(self.invalid_products),
            "impressions": sorted(self.impressions),
            "clicks": sorted(self.clicks),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SessionState":
        if not data:
            return cls()
        gift_states = {}
        for product_id, value in (data.get("gift_states") or {}).items():
            try:
                gift_states[str(product_id)] = GiftState(value)
            except ValueError:
                logger.warning(f"Dropping unknown gift state {value!r} for {product_id}")
        return cls(
            session_id=str(data.get("session_id") or _new_session_id()),
            declined_gifts=set(data.get("declined_gifts") or ()),
            gift_states=gift_states,
            shipping_ever_achieved=bool(data.get("shipping_ever_achieved", False)),
            invalid_variants=set(data.get("invalid_variants") or ()),
            invalid_products=set(data.get("invalid_products") or ()),
            impressions=set(data.get("impressions") or ()),
            clicks=set(data.get("clicks") or ()),
        )
