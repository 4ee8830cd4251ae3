"""Tests for the inspection workflow controller: submission and negotiation actions."""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from estate_platform.domain.enums import ActorRole
from estate_platform.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from estate_platform.domain.models import Buyer, InspectionActivityLog, InspectionBooking
from estate_platform.services import activity_log
from estate_platform.services.inspection_workflow import (
    BuyerContact,
    InspectionWorkflowController,
    PropertyOffer,
    apply_transition,
    load_booking,
)
from estate_platform.services.negotiation_resolver import BookingSnapshot, NegotiationActionInput, resolve


@pytest.fixture
def controller(db_session, notifications, paystack, config):
    return InspectionWorkflowController(db_session, notifications, paystack, config)


async def _logs(db_session, inspection_id):
    result = await db_session.execute(
        select(InspectionActivityLog).where(InspectionActivityLog.inspection_id == inspection_id)
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmitRequest:
    async def test_creates_pending_booking_per_property(self, controller, db_session, notifications, make_property):
        first = await make_property()
        second = await make_property()

        results = await controller.submit_request(
            BuyerContact(full_name="Bola Buyer", email="Bola@Test.com", phone="+2348011111111"),
            [PropertyOffer(first.id, negotiation_price=400000), PropertyOffer(second.id)],
            "price",
            date(2026, 11, 2),
            "10:00 AM",
        )

        assert len(results) == 2
        offered, plain = results[0].booking, results[1].booking
        assert offered.status == "pending_approval"
        assert offered.stage == "negotiation"
        assert offered.is_negotiating is True
        assert offered.pending_response_from == "seller"
        assert plain.stage == "inspection"
        assert plain.is_negotiating is False

        buyer = (await db_session.execute(select(Buyer).where(Buyer.email == "bola@test.com"))).scalar_one()
        assert offered.buyer_id == buyer.id == plain.buyer_id

        assert (first.owner_id, "New Inspection Request") in notifications.notifications
        assert len([e for e in notifications.emails if e[1] == "New Inspection Request"]) == 2
        assert len(await _logs(db_session, offered.id)) == 1

    async def test_existing_buyer_is_reused(self, controller, db_session, make_buyer, make_property):
        existing = await make_buyer(email="repeat@test.com")
        prop = await make_property()

        results = await controller.submit_request(
            BuyerContact(full_name="Repeat Buyer", email="repeat@test.com"),
            [PropertyOffer(prop.id)],
            "price",
            date(2026, 11, 2),
            "9:00 AM",
        )

        assert results[0].booking.buyer_id == existing.id
        count = (await db_session.execute(select(Buyer).where(Buyer.email == "repeat@test.com"))).scalars().all()
        assert len(count) == 1

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"inspection_type": "auction"}, "inspection_type"),
            ({"inspection_date": None}, "inspection_date"),
            ({"inspection_time": "  "}, "inspection_time"),
            ({"receiver_mode": "walk_in"}, "receiver_mode"),
            ({"offers": []}, "properties"),
        ],
    )
    async def test_rejects_invalid_input(self, controller, make_property, kwargs, field):
        prop = await make_property()
        args = {
            "buyer": BuyerContact(full_name="Bola", email="bola@test.com"),
            "offers": [PropertyOffer(prop.id)],
            "inspection_type": "price",
            "inspection_date": date(2026, 11, 2),
            "inspection_time": "10:00 AM",
        }
        args.update(kwargs)

        with pytest.raises(ValidationError) as exc:
            await controller.submit_request(**args)
        assert exc.value.field == field

    async def test_loi_offer_must_be_url(self, controller, make_property):
        prop = await make_property()
        with pytest.raises(ValidationError):
            await controller.submit_request(
                BuyerContact(full_name="Bola", email="bola@test.com"),
                [PropertyOffer(prop.id, letter_of_intention="my-letter.pdf")],
                "LOI",
                date(2026, 11, 2),
                "10:00 AM",
            )

    async def test_unknown_property(self, controller):
        with pytest.raises(NotFoundError):
            await controller.submit_request(
                BuyerContact(full_name="Bola", email="bola@test.com"),
                [PropertyOffer("missing")],
                "price",
                date(2026, 11, 2),
                "10:00 AM",
            )


# ---------------------------------------------------------------------------
# Negotiation actions
# ---------------------------------------------------------------------------


class TestProcessAction:
    async def test_seller_counter_notifies_buyer(self, controller, db_session, notifications, make_booking):
        """Scenario B end to end."""
        booking = await make_booking()

        result = await controller.process_action(
            booking.id,
            booking.owner_id,
            NegotiationActionInput(action="counter", inspection_type="price", counter_price=450000),
        )

        stored = await load_booking(db_session, booking.id)
        assert stored.status == "negotiation_countered"
        assert stored.pending_response_from == "buyer"
        assert float(stored.negotiation_price) == 450000.0
        assert float(stored.seller_counter_offer) == 450000.0
        assert stored.is_negotiating is True

        assert notifications.emails == [(stored.buyer.email, "Counter Offer Received")]
        assert notifications.notifications == [(booking.buyer_id, "Counter Offer Received")]
        assert all(d.delivered for d in result.deliveries)

        logs = await _logs(db_session, booking.id)
        assert [entry.sender_role for entry in logs] == ["seller"]
        assert "450,000" in logs[0].message

    async def test_accept_sends_confirmation_to_initiator(self, controller, notifications, make_booking):
        booking = await make_booking(pending_response_from="buyer")

        result = await controller.process_action(
            booking.id,
            booking.buyer_id,
            NegotiationActionInput(action="accept", inspection_type="price", inspection_date=date(2026, 11, 6)),
        )

        assert result.booking.status == "negotiation_accepted"
        assert result.booking.stage == "inspection"
        recipients = [to for to, _ in notifications.emails]
        assert recipients[0] == result.booking.owner.email
        assert recipients[1] == result.booking.buyer.email
        assert notifications.emails[0][1] == "Price Offer Accepted – Inspection Date Updated"

    async def test_accept_after_inspection_completes(self, controller, make_booking):
        """Scenario C."""
        booking = await make_booking(status="negotiation_accepted", stage="inspection", pending_response_from="none")

        result = await controller.process_action(
            booking.id, booking.buyer_id, NegotiationActionInput(action="accept", inspection_type="price")
        )

        assert result.booking.stage == "completed"

    async def test_stranger_is_forbidden(self, controller, make_booking):
        booking = await make_booking()
        with pytest.raises(AuthorizationError):
            await controller.process_action(
                booking.id, "someone-else", NegotiationActionInput(action="accept", inspection_type="price")
            )

    async def test_out_of_turn_is_forbidden(self, controller, db_session, make_booking):
        booking = await make_booking(pending_response_from="seller")
        with pytest.raises(AuthorizationError):
            await controller.process_action(
                booking.id, booking.buyer_id, NegotiationActionInput(action="accept", inspection_type="price")
            )
        stored = await load_booking(db_session, booking.id)
        assert stored.status == "active_negotiation"

    async def test_request_changes_on_price_leaves_booking_untouched(
        self, controller, db_session, notifications, make_booking
    ):
        """Scenario D."""
        booking = await make_booking()

        with pytest.raises(ValidationError):
            await controller.process_action(
                booking.id,
                booking.owner_id,
                NegotiationActionInput(action="request_changes", inspection_type="price", reason="Please revise"),
            )

        stored = await load_booking(db_session, booking.id)
        assert stored.status == "active_negotiation"
        assert notifications.emails == []
        assert await _logs(db_session, booking.id) == []

    async def test_terminal_booking_conflicts(self, controller, make_booking):
        booking = await make_booking(status="negotiation_rejected", stage="cancelled", pending_response_from="none")
        with pytest.raises(ConflictError):
            await controller.process_action(
                booking.id, booking.owner_id, NegotiationActionInput(action="accept", inspection_type="price")
            )

    async def test_missing_booking(self, controller):
        with pytest.raises(NotFoundError):
            await controller.process_action(
                "missing", "anyone", NegotiationActionInput(action="accept", inspection_type="price")
            )


class TestSideEffectFailures:
    async def test_email_failure_keeps_committed_state(self, db_session, notifications, paystack, config, make_booking):
        notifications.send_email = AsyncMock(side_effect=RuntimeError("smtp down"))
        controller = InspectionWorkflowController(db_session, notifications, paystack, config)
        booking = await make_booking()

        result = await controller.process_action(
            booking.id,
            booking.owner_id,
            NegotiationActionInput(action="reject", inspection_type="price", reason="Too low"),
        )

        stored = await load_booking(db_session, booking.id)
        assert stored.status == "negotiation_rejected"
        assert stored.stage == "cancelled"
        failed = [d for d in result.deliveries if not d.delivered]
        assert failed and all(d.channel == "email" for d in failed)
        assert len(await _logs(db_session, booking.id)) == 1

    async def test_log_failure_keeps_committed_state(self, controller, db_session, notifications, make_booking,
                                                     monkeypatch):
        monkeypatch.setattr(activity_log, "log_activity", AsyncMock(side_effect=RuntimeError("disk full")))
        booking = await make_booking()

        result = await controller.process_action(
            booking.id,
            booking.owner_id,
            NegotiationActionInput(action="counter", inspection_type="price", counter_price=425000),
        )

        assert result.booking.status == "negotiation_countered"
        stored = await load_booking(db_session, booking.id)
        assert stored.pending_response_from == "buyer"
        assert len(notifications.emails) == 1


class TestConcurrentTransitions:
    async def test_stale_snapshot_loses(self, db_session, make_booking):
        booking = await make_booking()
        snapshot = BookingSnapshot.from_booking(booking)

        first = resolve(
            NegotiationActionInput(action="counter", inspection_type="price", counter_price=450000),
            snapshot,
            ActorRole.SELLER,
        )
        second = resolve(
            NegotiationActionInput(action="accept", inspection_type="price"),
            snapshot,
            ActorRole.SELLER,
        )

        await apply_transition(db_session, snapshot, first)
        with pytest.raises(ConflictError):
            await apply_transition(db_session, snapshot, second)

        row = (
            await db_session.execute(select(InspectionBooking.status).where(InspectionBooking.id == booking.id))
        ).scalar_one()
        assert row == "negotiation_countered"


class TestReads:
    async def test_history_newest_first(self, controller, make_booking):
        booking = await make_booking()
        await controller.process_action(
            booking.id,
            booking.owner_id,
            NegotiationActionInput(action="counter", inspection_type="price", counter_price=450000),
        )
        await controller.process_action(
            booking.id,
            booking.buyer_id,
            NegotiationActionInput(action="counter", inspection_type="price", counter_price=430000),
        )

        history = await controller.get_history(booking.id, page=1, limit=10)

        assert history["pagination"]["total"] == 2
        assert [e["sender_role"] for e in history["data"]] == ["buyer", "seller"]

    async def test_booking_visible_only_to_parties(self, controller, make_booking):
        booking = await make_booking()
        assert (await controller.get_booking_for_party(booking.id, booking.buyer_id)).id == booking.id
        with pytest.raises(AuthorizationError):
            await controller.get_booking_for_party(booking.id, "intruder")
