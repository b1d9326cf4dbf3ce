import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.cart_schemas import CartLine, CartSnapshot, ProductRef, Threshold, ThresholdKind
from services.gift_lifecycle import GiftActionKind, GiftLifecycleController
from services.session_state import GiftState, SessionState
from services.thresholds import evaluate

GIFT = Threshold(ThresholdKind.GIFT, 5000, "Tote", ProductRef("tote", variant_id="tote-v0"))


def cart(subtotal: int, gift_qty: int = 0, paid_tote: int = 0) -> CartSnapshot:
    lines = [CartLine("main", "main", "main-v0", 1, subtotal, subtotal)]
    if paid_tote:
        lines.append(CartLine("tote-paid", "tote", "tote-v0", paid_tote, 2000, 2000 * paid_tote))
    if gift_qty:
        lines.append(CartLine("tote-gift", "tote", "tote-v0", gift_qty, 0, 0, {"_is_gift": "true"}))
    return CartSnapshot(lines=tuple(lines))


def reconcile(controller, snapshot):
    state = evaluate(snapshot.subtotal_excluding_gifts, [GIFT])
    return controller.reconcile(snapshot, state)


def test_crossing_threshold_offers_gift():
    session = SessionState()
    controller = GiftLifecycleController(session)

    assert reconcile(controller, cart(4000)) == []
    assert session.gift_state("tote") == GiftState.LOCKED

    assert reconcile(controller, cart(5000)) == []
    assert session.gift_state("tote") == GiftState.OFFERED


def test_claim_then_gift_line_marks_claimed():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000))

    action = controller.claim(GIFT)
    assert action.kind == GiftActionKind.ADD
    assert action.variant_id == "tote-v0"

    reconcile(controller, cart(6000, gift_qty=1))
    assert session.gift_state("tote") == GiftState.CLAIMED


def test_claim_not_allowed_while_locked():
    controller = GiftLifecycleController(SessionState())
    reconcile(controller, cart(1000))
    assert controller.claim(GIFT) is None


def test_claimed_gift_removed_when_subtotal_drops_and_reoffered_on_refill():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000, gift_qty=1))
    assert session.gift_state("tote") == GiftState.CLAIMED

    actions = reconcile(controller, cart(2000, gift_qty=1))
    assert [(a.kind, a.line_key) for a in actions] == [(GiftActionKind.REMOVE, "tote-gift")]
    assert session.gift_state("tote") == GiftState.LOCKED

    reconcile(controller, cart(2000))
    reconcile(controller, cart(5500))
    assert session.gift_state("tote") == GiftState.OFFERED


def test_decline_persists_across_dip_and_recover():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000))
    assert controller.decline("tote") is True
    assert session.gift_state("tote") == GiftState.DECLINED

    reconcile(controller, cart(1000))
    assert session.gift_state("tote") == GiftState.LOCKED
    reconcile(controller, cart(7000))
    assert session.gift_state("tote") == GiftState.DECLINED
    assert session.is_declined("tote")


def test_explicit_claim_clears_decline():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000))
    controller.decline("tote")

    assert controller.claim(GIFT) is not None
    assert not session.is_declined("tote")
    reconcile(controller, cart(6000, gift_qty=1))
    assert session.gift_state("tote") == GiftState.CLAIMED


def test_removing_claimed_gift_while_eligible_counts_as_decline():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000, gift_qty=1))
    reconcile(controller, cart(6000))
    assert session.gift_state("tote") == GiftState.DECLINED
    assert session.is_declined("tote")


def test_paid_units_of_gift_product_do_not_count_as_claimed():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000, paid_tote=2))
    assert session.gift_state("tote") == GiftState.OFFERED


def test_gift_quantity_reset_to_one():
    controller = GiftLifecycleController(SessionState())
    actions = reconcile(controller, cart(6000, gift_qty=3))
    assert [(a.kind, a.line_key, a.quantity) for a in actions] == [
        (GiftActionKind.SET_QUANTITY, "tote-gift", 1)
    ]


def test_session_state_round_trips_decline_memory():
    session = SessionState()
    controller = GiftLifecycleController(session)
    reconcile(controller, cart(6000))
    controller.decline("tote")

    restored = SessionState.from_dict(session.to_dict())
    assert restored.session_id == session.session_id
    assert restored.is_declined("tote")
    assert restored.gift_state("tote") == GiftState.DECLINED
