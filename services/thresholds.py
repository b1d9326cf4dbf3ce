"""
Threshold / Progress Engine
Reward state derived from the gift-excluded cart subtotal.

One optional free-shipping threshold plus an ascending ladder of gift
thresholds. Nothing here is stored: a ThresholdState is recomputed from
scratch for every cart snapshot.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass
import logging

from schemas.cart_schemas import Threshold, ThresholdKind
from schemas.drawer_config import DrawerConfig
from services.money import format_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressTexts:
    away: str = "You're {{amount}} away from free shipping!"
    achieved: str = "You've unlocked free shipping!"
    maintain: str = "Add {{amount}} more to keep your free shipping"
    gift: str = "Spend {{amount}} more to unlock {{title}}"
    all_achieved: str = "You've unlocked every reward!"
    money_format: str = "${{amount}}"

    @classmethod
    def from_config(cls, config: DrawerConfig) -> "ProgressTexts":
        return cls(
            away=config.free_shipping_text,
            achieved=config.free_shipping_achieved_text,
            maintain=config.free_shipping_maintain_text,
            gift=config.gift_progress_text,
            all_achieved=config.all_rewards_achieved_text,
            money_format=config.money_format,
        )

    def render(self, template: str, amount: int = 0, title: str = "") -> str:
        return (
            template.replace("{{amount}}", format_money(amount, self.money_format))
            .replace("{amount}", format_money(amount, self.money_format))
            .replace("{{title}}", title or "your gift")
        )


@dataclass(frozen=True)
class ShippingStatus:
    threshold: Optional[Threshold]
    achieved: bool
    remaining: int
    message: str = ""


@dataclass(frozen=True)
class GiftLadderStatus:
    thresholds: Tuple[Threshold, ...]
    achieved: Tuple[Threshold, ...]
    next_threshold: Optional[Threshold]
    remaining: int

    @property
    def all_achieved(self) -> bool:
        return self.next_threshold is None


@dataclass(frozen=True)
class ProgressSegment:
    threshold: Threshold
    floor: int
    ceiling: int
    fill: float
    is_current: bool

    @property
    def achieved(self) -> bool:
        return self.fill >= 1.0


@dataclass(frozen=True)
class ThresholdState:
    subtotal: int
    shipping: ShippingStatus
    gifts: GiftLadderStatus
    segments: Tuple[ProgressSegment, ...]
    achieved_count: int
    all_achieved: bool
    message: str

    @property
    def has_thresholds(self) -> bool:
        return bool(self.segments)

    @property
    def nearest_remaining(self) -> int:
        """Amount still needed for the closest unachieved threshold, 0 when none."""
        gaps = [s.ceiling - self.subtotal for s in self.segments if self.subtotal < s.ceiling]
        return min(gaps) if gaps else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "shipping": {
                "enabled": self.shipping.threshold is not None,
                "achieved": self.shipping.achieved,
                "remaining": self.shipping.remaining,
                "message": self.shipping.message,
            },
            "gifts": {
                "achieved": [t.to_dict() for t in self.gifts.achieved],
                "next": self.gifts.next_threshold.to_dict() if self.gifts.next_threshold else None,
                "remaining": self.gifts.remaining,
            },
            "segments": [
                {
                    "kind": s.threshold.kind.value,
                    "floor": s.floor,
                    "ceiling": s.ceiling,
                    "fill": round(s.fill, 4),
                    "is_current": s.is_current,
                }
                for s in self.segments
            ],
            "achieved_count": self.achieved_count,
            "all_achieved": self.all_achieved,
            "message": self.message,
        }


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def build_segments(subtotal: int, thresholds: Sequence[Threshold]) -> Tuple[ProgressSegment, ...]:
    """One segment per threshold, ascending by amount; exactly one is current."""
    ordered = sorted(thresholds, key=lambda t: t.amount)
    fills: List[Tuple[Threshold, int, int, float]] = []
    floor = 0
    for threshold in ordered:
        ceiling = threshold.amount
        if ceiling <= floor:
            fill = 1.0 if subtotal >= ceiling else 0.0
        else:
            fill = _clamp01((subtotal - floor) / (ceiling - floor))
        fills.append((threshold, floor, ceiling, fill))
        floor = ceiling

    if not fills:
        return ()
    current = next((i for i, (_, _, _, fill) in enumerate(fills) if fill < 1.0), len(fills) - 1)
    return tuple(
        ProgressSegment(threshold=t, floor=lo, ceiling=hi, fill=fill, is_current=(i == current))
        for i, (t, lo, hi, fill) in enumerate(fills)
    )


def evaluate(
    subtotal: int,
    thresholds: Sequence[Threshold],
    shipping_ever_achieved: bool = False,
    texts: Optional[ProgressTexts] = None,
) -> ThresholdState:
    """Evaluate reward state for a gift-excluded subtotal in minor units."""
    texts = texts or ProgressTexts()
    subtotal = max(0, int(subtotal))

    shipping_thresholds = [t for t in thresholds if t.kind == ThresholdKind.SHIPPING]
    if len(shipping_thresholds) > 1:
        logger.warning(f"{len(shipping_thresholds)} shipping thresholds configured, using the first")
    shipping_threshold = shipping_thresholds[0] if shipping_thresholds else None
    gift_thresholds = tuple(sorted(
        (t for t in thresholds if t.kind == ThresholdKind.GIFT), key=lambda t: t.amount
    ))

    # Shipping
    if shipping_threshold is None:
        shipping = ShippingStatus(threshold=None, achieved=True, remaining=0)
    else:
        achieved = subtotal >= shipping_threshold.amount
        remaining = max(0, shipping_threshold.amount - subtotal)
        if achieved:
            message = texts.render(texts.achieved)
        elif shipping_ever_achieved:
            message = texts.render(texts.maintain, remaining)
        else:
            message = texts.render(texts.away, remaining)
        shipping = ShippingStatus(shipping_threshold, achieved, remaining, message)

    # Gift ladder
    achieved_gifts = tuple(t for t in gift_thresholds if subtotal >= t.amount)
    next_gift = next((t for t in gift_thresholds if subtotal < t.amount), None)
    gifts = GiftLadderStatus(
        thresholds=gift_thresholds,
        achieved=achieved_gifts,
        next_threshold=next_gift,
        remaining=max(0, next_gift.amount - subtotal) if next_gift else 0,
    )

    active = ((shipping_threshold,) if shipping_threshold else ()) + gift_thresholds
    segments = build_segments(subtotal, active)
    achieved_count = sum(1 for t in active if subtotal >= t.amount)
    all_achieved = shipping.achieved and gifts.all_achieved

    if not active:
        message = ""
    elif all_achieved:
        message = texts.render(texts.all_achieved if gift_thresholds else texts.achieved)
    elif not shipping.achieved and (next_gift is None or shipping_threshold.amount <= next_gift.amount):
        message = shipping.message
    else:
        title = next_gift.title or (next_gift.product_ref.title if next_gift.product_ref else "")
        message = texts.render(texts.gift, gifts.remaining, title)

    return ThresholdState(
        subtotal=subtotal,
        shipping=shipping,
        gifts=gifts,
        segments=segments,
        achieved_count=achieved_count,
        all_achieved=all_achieved,
        message=message,
    )


def evaluate_for_config(subtotal: int, config: DrawerConfig,
                        shipping_ever_achieved: bool = False) -> ThresholdState:
    return evaluate(subtotal, config.thresholds, shipping_ever_achieved, ProgressTexts.from_config(config))
