"""Unit tests for the negotiation transition resolver."""

from dataclasses import FrozenInstanceError, replace
from datetime import date

import pytest

from estate_platform.domain.enums import (
    ActorRole,
    InspectionStage,
    InspectionStatus,
    InspectionSubStatus,
    PendingResponder,
)
from estate_platform.domain.errors import ConflictError, ValidationError
from estate_platform.services.negotiation_resolver import (
    ACTIONABLE_STATUSES,
    TERMINAL_STATUSES,
    BookingSnapshot,
    NegotiationActionInput,
    format_naira,
    is_terminal,
    resolve,
)

S = InspectionStatus
G = InspectionStage
P = PendingResponder

LOI_URL = "https://files.test/loi-v2.pdf"


def _snapshot(**kwargs) -> BookingSnapshot:
    defaults = {
        "id": "insp-1",
        "status": S.ACTIVE_NEGOTIATION.value,
        "stage": G.NEGOTIATION.value,
        "pending_response_from": P.SELLER.value,
        "inspection_type": "price",
        "negotiation_price": 400000.0,
        "inspection_date": date(2026, 11, 2),
        "inspection_time": "10:00 AM",
    }
    defaults.update(kwargs)
    return BookingSnapshot(**defaults)


def _action(action: str, inspection_type: str = "price", **kwargs) -> NegotiationActionInput:
    return NegotiationActionInput(action=action, inspection_type=inspection_type, **kwargs)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class TestTransitionTable:
    """Each action lands in the status / stage / turn the table prescribes."""

    @pytest.mark.parametrize(
        "snapshot_kwargs,action,role,status,stage,pending,negotiating",
        [
            ({}, _action("accept", inspection_date=date(2026, 11, 5)), ActorRole.SELLER,
             S.NEGOTIATION_ACCEPTED, G.INSPECTION, P.NONE, False),
            ({}, _action("accept"), ActorRole.SELLER,
             S.NEGOTIATION_ACCEPTED, G.COMPLETED, P.NONE, False),
            ({}, _action("reject", reason="Too low"), ActorRole.SELLER,
             S.NEGOTIATION_REJECTED, G.CANCELLED, P.NONE, False),
            ({}, _action("counter", counter_price=450000), ActorRole.SELLER,
             S.NEGOTIATION_COUNTERED, G.NEGOTIATION, P.BUYER, True),
            ({"pending_response_from": "buyer"}, _action("counter", counter_price=420000), ActorRole.BUYER,
             S.NEGOTIATION_COUNTERED, G.NEGOTIATION, P.SELLER, True),
            ({"inspection_type": "LOI"}, _action("counter", "LOI", document_url=LOI_URL), ActorRole.BUYER,
             S.NEGOTIATION_COUNTERED, G.NEGOTIATION, P.SELLER, True),
            ({"inspection_type": "LOI"}, _action("request_changes", "LOI", reason="Fix dates"), ActorRole.SELLER,
             S.NEGOTIATION_COUNTERED, G.NEGOTIATION, P.BUYER, False),
        ],
    )
    def test_transition(self, snapshot_kwargs, action, role, status, stage, pending, negotiating):
        outcome = resolve(action, _snapshot(**snapshot_kwargs), role)

        assert outcome.next_status == status
        assert outcome.next_stage == stage
        assert outcome.next_pending_response_from == pending
        assert outcome.is_negotiating is negotiating

    def test_seller_counter_sets_price_and_counter_offer(self):
        """Scenario B: seller counters at 450,000."""
        outcome = resolve(_action("counter", counter_price=450000), _snapshot(), ActorRole.SELLER, "Ada")

        assert outcome.next_status == S.NEGOTIATION_COUNTERED
        assert outcome.next_pending_response_from == P.BUYER
        assert outcome.is_negotiating is True
        assert outcome.field_updates["negotiation_price"] == 450000.0
        assert outcome.field_updates["seller_counter_offer"] == 450000.0
        assert outcome.inspection_status == InspectionSubStatus.COUNTERED
        assert outcome.audit_message == "Ada made a counter offer of ₦450,000"
        assert outcome.email_subject == "Counter Offer Received"

    def test_buyer_counter_does_not_touch_seller_counter_offer(self):
        outcome = resolve(
            _action("counter", counter_price=410000),
            _snapshot(pending_response_from="buyer"),
            ActorRole.BUYER,
        )
        assert "seller_counter_offer" not in outcome.field_updates

    def test_loi_counter_replaces_letter(self):
        outcome = resolve(
            _action("counter", "LOI", document_url=LOI_URL),
            _snapshot(inspection_type="LOI", letter_of_intention="https://files.test/loi-v1.pdf"),
            ActorRole.BUYER,
            "Bola",
        )
        assert outcome.field_updates["letter_of_intention"] == LOI_URL
        assert outcome.audit_message == "Bola uploaded a new LOI document"

    def test_accept_in_inspection_stage_completes(self):
        """Scenario C: accepting once the inspection date is locked always completes."""
        snapshot = _snapshot(status=S.NEGOTIATION_ACCEPTED.value, stage=G.INSPECTION.value, pending_response_from="none")
        outcome = resolve(_action("accept"), snapshot, ActorRole.BUYER)

        assert outcome.next_stage == G.COMPLETED
        assert outcome.next_status == S.NEGOTIATION_ACCEPTED

    def test_accept_in_inspection_stage_completes_even_with_new_date(self):
        snapshot = _snapshot(status=S.INSPECTION_APPROVED.value, stage=G.INSPECTION.value)
        outcome = resolve(_action("accept", inspection_date=date(2026, 12, 1)), snapshot, ActorRole.SELLER)

        assert outcome.next_stage == G.COMPLETED

    def test_reject_records_reason(self):
        outcome = resolve(_action("reject", reason="Price too low"), _snapshot(), ActorRole.SELLER, "Ada")

        assert outcome.field_updates["reason"] == "Price too low"
        assert outcome.audit_message == "Ada rejected the price offer: Price too low"
        assert outcome.email_subject == "Price Offer Rejected"


# ---------------------------------------------------------------------------
# Date / time changes
# ---------------------------------------------------------------------------


class TestDateTimeChange:
    def test_new_date_changes_subject(self):
        outcome = resolve(
            _action("accept", inspection_date=date(2026, 11, 9)),
            _snapshot(),
            ActorRole.SELLER,
        )
        assert outcome.date_time_changed is True
        assert outcome.email_subject == "Price Offer Accepted – Inspection Date Updated"
        assert outcome.field_updates["inspection_date"] == date(2026, 11, 9)

    def test_same_date_is_not_a_change(self):
        outcome = resolve(
            _action("accept", inspection_date=date(2026, 11, 2), inspection_time="10:00 AM"),
            _snapshot(),
            ActorRole.SELLER,
        )
        assert outcome.date_time_changed is False
        assert outcome.email_subject == "Price Offer Accepted"

    def test_counter_with_new_time(self):
        outcome = resolve(
            _action("counter", counter_price=430000, inspection_time="2:00 PM"),
            _snapshot(),
            ActorRole.SELLER,
            "Ada",
        )
        assert outcome.email_subject == "Counter Offer Received – New Inspection Time Proposed"
        assert outcome.audit_message.endswith("and updated inspection date/time")
        assert outcome.field_updates["inspection_time"] == "2:00 PM"


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class TestPreconditions:
    @pytest.mark.parametrize("status", sorted(s.value for s in TERMINAL_STATUSES))
    @pytest.mark.parametrize("action", ["accept", "reject", "counter", "request_changes"])
    def test_terminal_status_conflicts(self, status, action):
        snapshot = _snapshot(status=status, stage=G.NEGOTIATION.value)
        with pytest.raises(ConflictError):
            resolve(_action(action, counter_price=1, reason="x"), snapshot, ActorRole.SELLER)

    @pytest.mark.parametrize("stage", [G.COMPLETED.value, G.CANCELLED.value])
    def test_terminal_stage_conflicts(self, stage):
        snapshot = _snapshot(status=S.NEGOTIATION_ACCEPTED.value, stage=stage)
        with pytest.raises(ConflictError):
            resolve(_action("accept"), snapshot, ActorRole.BUYER)

    @pytest.mark.parametrize("status", [S.PENDING_APPROVAL.value, S.PENDING_TRANSACTION.value])
    def test_not_yet_negotiating_conflicts(self, status):
        with pytest.raises(ConflictError):
            resolve(_action("accept"), _snapshot(status=status), ActorRole.SELLER)

    def test_reject_in_inspection_stage_conflicts(self):
        snapshot = _snapshot(status=S.NEGOTIATION_ACCEPTED.value, stage=G.INSPECTION.value, pending_response_from="none")
        with pytest.raises(ConflictError):
            resolve(_action("reject"), snapshot, ActorRole.BUYER)

    def test_request_changes_on_price_is_invalid(self):
        """Scenario D."""
        snapshot = _snapshot()
        with pytest.raises(ValidationError) as exc:
            resolve(_action("request_changes", reason="Please revise"), snapshot, ActorRole.SELLER)
        assert exc.value.field == "action"
        assert snapshot.status == S.ACTIVE_NEGOTIATION.value

    def test_request_changes_requires_reason(self):
        with pytest.raises(ValidationError) as exc:
            resolve(_action("request_changes", "LOI", reason="  "), _snapshot(inspection_type="LOI"), ActorRole.SELLER)
        assert exc.value.field == "reason"

    @pytest.mark.parametrize("price", [None, -1, float("nan"), float("inf"), True])
    def test_counter_price_must_be_finite_non_negative(self, price):
        with pytest.raises(ValidationError) as exc:
            resolve(_action("counter", counter_price=price), _snapshot(), ActorRole.SELLER)
        assert exc.value.field == "counter_price"

    def test_counter_price_zero_is_allowed(self):
        outcome = resolve(_action("counter", counter_price=0), _snapshot(), ActorRole.SELLER)
        assert outcome.field_updates["negotiation_price"] == 0.0

    @pytest.mark.parametrize("url", [None, "", "ftp://files.test/loi.pdf", "not a url"])
    def test_loi_counter_requires_http_url(self, url):
        with pytest.raises(ValidationError) as exc:
            resolve(_action("counter", "LOI", document_url=url), _snapshot(inspection_type="LOI"), ActorRole.BUYER)
        assert exc.value.field == "document_url"

    def test_inspection_type_must_match_booking(self):
        with pytest.raises(ValidationError) as exc:
            resolve(_action("counter", "LOI", document_url=LOI_URL), _snapshot(), ActorRole.BUYER)
        assert exc.value.field == "inspection_type"

    def test_unknown_action(self):
        with pytest.raises(ValidationError) as exc:
            resolve(_action("withdraw"), _snapshot(), ActorRole.BUYER)
        assert exc.value.field == "action"


class TestPurity:
    def test_snapshot_is_frozen(self):
        snapshot = _snapshot()
        with pytest.raises(FrozenInstanceError):
            snapshot.status = "completed"

    def test_resolve_does_not_mutate_snapshot(self):
        snapshot = _snapshot()
        before = replace(snapshot)
        resolve(_action("counter", counter_price=450000), snapshot, ActorRole.SELLER)
        assert snapshot == before

    def test_every_actionable_status_is_non_terminal(self):
        assert not ACTIONABLE_STATUSES & TERMINAL_STATUSES
        assert not is_terminal(S.NEGOTIATION_ACCEPTED.value, G.INSPECTION.value)


@pytest.mark.parametrize(
    "amount,expected",
    [(450000, "₦450,000"), (1250.5, "₦1,250.50"), (None, "₦0")],
)
def test_format_naira(amount, expected):
    assert format_naira(amount) == expected
