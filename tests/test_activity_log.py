"""Tests for the inspection activity log."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from estate_platform.domain.models import InspectionActivityLog
from estate_platform.services.activity_log import get_logs_by_inspection, get_logs_by_property, log_activity


class TestActivityLog:
    async def test_entry_round_trips(self, db_session, make_booking):
        booking = await make_booking()

        entry = await log_activity(
            db_session,
            inspection_id=booking.id,
            property_id=booking.property_id,
            sender_role="seller",
            sender_id=booking.owner_id,
            message="Ada made a counter offer of ₦450,000",
            status="negotiation_countered",
            stage="negotiation",
            meta={"counter_price": 450000},
        )

        page = await get_logs_by_inspection(db_session, booking.id)
        assert page["data"][0]["id"] == entry.id
        assert page["data"][0]["meta"] == {"counter_price": 450000}
        assert page["pagination"] == {"total": 1, "current_page": 1, "total_pages": 1, "per_page": 10}

    async def test_pagination_is_newest_first(self, db_session, make_booking):
        booking = await make_booking()
        base = datetime(2026, 11, 1, 8, 0, 0)
        for i in range(5):
            entry = await log_activity(
                db_session, booking.id, booking.property_id, "system", f"event {i}",
            )
            await db_session.execute(
                update(InspectionActivityLog)
                .where(InspectionActivityLog.id == entry.id)
                .values(created_at=base + timedelta(minutes=i))
            )
        await db_session.commit()

        page = await get_logs_by_inspection(db_session, booking.id, page=2, limit=2)

        assert [e["message"] for e in page["data"]] == ["event 2", "event 1"]
        assert page["pagination"]["total_pages"] == 3

    async def test_property_log_spans_inspections(self, db_session, make_property, make_booking):
        prop = await make_property()
        first = await make_booking(property=prop)
        second = await make_booking(property=prop)
        other = await make_booking()
        for booking in (first, second, other):
            await log_activity(db_session, booking.id, booking.property_id, "buyer", "requested an inspection")

        page = await get_logs_by_property(db_session, prop.id)

        assert page["pagination"]["total"] == 2
        assert {e["inspection_id"] for e in page["data"]} == {first.id, second.id}

    @pytest.mark.parametrize("page,limit", [(0, 10), (-3, 0)])
    async def test_bad_paging_is_normalized(self, db_session, make_booking, page, limit):
        booking = await make_booking()
        result = await get_logs_by_inspection(db_session, booking.id, page=page, limit=limit)

        assert result["pagination"]["current_page"] == 1
        assert result["pagination"]["per_page"] >= 1
        assert result["data"] == []
