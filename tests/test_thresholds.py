import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.cart_schemas import ProductRef, Threshold, ThresholdKind
from services.thresholds import ProgressTexts, build_segments, evaluate

SHIPPING = Threshold(ThresholdKind.SHIPPING, 5000, "Free shipping")
MUG = Threshold(ThresholdKind.GIFT, 3000, "Mug", ProductRef("mug"))
TOTE = Threshold(ThresholdKind.GIFT, 8000, "Tote", ProductRef("tote"))


def test_remaining_to_free_shipping():
    state = evaluate(4500, [SHIPPING])
    assert state.shipping.achieved is False
    assert state.shipping.remaining == 500
    assert state.message == "You're $5.00 away from free shipping!"
    assert state.nearest_remaining == 500


def test_shipping_achieved_exactly_at_threshold():
    state = evaluate(5000, [SHIPPING])
    assert state.shipping.achieved is True
    assert state.shipping.remaining == 0
    assert state.all_achieved is True
    assert state.message == "You've unlocked free shipping!"


def test_maintain_message_after_shipping_was_achieved():
    state = evaluate(4500, [SHIPPING], shipping_ever_achieved=True)
    assert state.shipping.message == "Add $5.00 more to keep your free shipping"


def test_gift_ladder_next_and_message():
    state = evaluate(6000, [SHIPPING, TOTE, MUG])
    assert [t.title for t in state.gifts.thresholds] == ["Mug", "Tote"]
    assert [t.title for t in state.gifts.achieved] == ["Mug"]
    assert state.gifts.next_threshold == TOTE
    assert state.gifts.remaining == 2000
    assert state.all_achieved is False
    assert state.message == "Spend $20.00 more to unlock Tote"


def test_closest_threshold_drives_the_message():
    state = evaluate(1000, [SHIPPING, MUG, TOTE])
    assert state.message == "Spend $20.00 more to unlock Mug"
    state = evaluate(3500, [SHIPPING, MUG, TOTE])
    assert state.message == "You're $15.00 away from free shipping!"


def test_all_rewards_achieved():
    state = evaluate(9000, [SHIPPING, MUG, TOTE])
    assert state.all_achieved is True
    assert state.achieved_count == 3
    assert state.nearest_remaining == 0
    assert state.message == "You've unlocked every reward!"


def test_no_thresholds_configured():
    state = evaluate(1234, [])
    assert state.has_thresholds is False
    assert state.all_achieved is True
    assert state.message == ""


def test_achieved_count_is_monotonic_in_subtotal():
    previous = -1
    for subtotal in range(0, 10001, 250):
        count = evaluate(subtotal, [SHIPPING, MUG, TOTE]).achieved_count
        assert count >= previous
        previous = count


def test_segments_fill_and_single_current():
    segments = build_segments(4000, [SHIPPING, MUG, TOTE])
    assert [(s.floor, s.ceiling) for s in segments] == [(0, 3000), (3000, 5000), (5000, 8000)]
    assert [s.fill for s in segments] == [1.0, 0.5, 0.0]
    assert [s.is_current for s in segments] == [False, True, False]


def test_last_segment_is_current_when_all_full():
    segments = build_segments(20000, [SHIPPING, MUG])
    assert all(s.achieved for s in segments)
    assert [s.is_current for s in segments] == [False, True]


def test_zero_width_segment():
    twin = Threshold(ThresholdKind.GIFT, 5000, "Twin", ProductRef("twin"))
    below = build_segments(4000, [SHIPPING, twin])
    assert below[1].fill == 0.0
    at = build_segments(5000, [SHIPPING, twin])
    assert [s.fill for s in at] == [1.0, 1.0]


def test_custom_texts_and_money_format():
    texts = ProgressTexts(away="Only {{amount}} to go", money_format="{{amount_with_comma_separator}} €")
    state = evaluate(4500, [SHIPPING], texts=texts)
    assert state.message == "Only 5,00 € to go"
