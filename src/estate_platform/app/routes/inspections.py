"""Inspection routes: submission, negotiation actions, agent approval and history."""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.app.dependencies import get_engine_config, get_notifications, get_paystack
from estate_platform.app.routes.auth import CurrentActor, get_current_actor
from estate_platform.domain.errors import EngineError
from estate_platform.domain.models import InspectionBooking, Property
from estate_platform.domain.schemas import (
    AgentRespondRequest,
    AgentRespondResponse,
    DeliveryOut,
    InspectionActionRequest,
    InspectionRequestCreate,
)
from estate_platform.infra.database import get_db
from estate_platform.services import activity_log
from estate_platform.services.inspection_workflow import (
    BuyerContact,
    InspectionWorkflowController,
    PropertyOffer,
    WorkflowResult,
)
from estate_platform.services.negotiation_resolver import NegotiationActionInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inspections", tags=["inspections"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dt(val) -> Optional[str]:
    """Safely convert date/datetime to ISO string."""
    if val is None:
        return None
    if isinstance(val, (datetime, date)):
        return val.isoformat()
    return str(val)


def _num(val) -> Optional[float]:
    """Safely convert Numeric/Decimal to float."""
    if val is None:
        return None
    return float(val)


def serialize_booking(booking: InspectionBooking) -> dict:
    return {
        "id": booking.id,
        "property_id": booking.property_id,
        "buyer_id": booking.buyer_id,
        "owner_id": booking.owner_id,
        "inspection_type": booking.inspection_type,
        "status": booking.status,
        "inspection_status": booking.inspection_status,
        "stage": booking.stage,
        "pending_response_from": booking.pending_response_from,
        "is_negotiating": bool(booking.is_negotiating),
        "negotiation_price": _num(booking.negotiation_price),
        "seller_counter_offer": _num(booking.seller_counter_offer),
        "letter_of_intention": booking.letter_of_intention,
        "reason": booking.reason,
        "inspection_date": _dt(booking.inspection_date),
        "inspection_time": booking.inspection_time,
        "receiver_mode": booking.receiver_mode,
        "transaction_id": booking.transaction_id,
        "created_at": _dt(booking.created_at),
        "updated_at": _dt(booking.updated_at),
    }


def _serialize_result(result: WorkflowResult) -> dict:
    return {
        "inspection": serialize_booking(result.booking),
        "side_effects": [
            DeliveryOut(channel=d.channel, delivered=d.delivered, error=d.error).model_dump()
            for d in result.deliveries
        ],
    }


def _controller(db, notifications, paystack, config) -> InspectionWorkflowController:
    return InspectionWorkflowController(db, notifications, paystack, config)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def submit_inspection_request(
    data: InspectionRequestCreate,
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Submit an inspection request for one or more properties."""
    controller = _controller(db, notifications, paystack, config)
    try:
        results = await controller.submit_request(
            BuyerContact(full_name=data.full_name, email=data.email, phone=data.phone),
            [
                PropertyOffer(p.property_id, p.negotiation_price, p.letter_of_intention)
                for p in data.properties
            ],
            data.inspection_type,
            data.inspection_date,
            data.inspection_time,
            data.receiver_mode,
        )
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"inspections": [serialize_booking(r.booking) for r in results]}


@router.get("/property/{property_id}/activity")
async def get_property_activity(
    property_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: CurrentActor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Activity across every inspection of a property (owner or admin only)."""
    prop = (await db.execute(select(Property).where(Property.id == property_id))).scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    if actor.role != "admin" and prop.owner_id != actor.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return await activity_log.get_logs_by_property(db, property_id, page, limit)


@router.get("/{inspection_id}")
async def get_inspection(
    inspection_id: str,
    actor: CurrentActor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    controller = _controller(db, notifications, paystack, config)
    try:
        booking = await controller.get_booking_for_party(inspection_id, actor.id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return serialize_booking(booking)


@router.get("/{inspection_id}/history")
async def get_inspection_history(
    inspection_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: CurrentActor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Newest-first activity log for one inspection."""
    controller = _controller(db, notifications, paystack, config)
    try:
        if actor.role != "admin":
            await controller.get_booking_for_party(inspection_id, actor.id)
        return await controller.get_history(inspection_id, page, limit)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{inspection_id}/actions")
async def submit_inspection_action(
    inspection_id: str,
    data: InspectionActionRequest,
    actor: CurrentActor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Accept, reject, counter or request changes on a negotiation."""
    controller = _controller(db, notifications, paystack, config)
    action = NegotiationActionInput(
        action=data.action,
        inspection_type=data.inspection_type,
        counter_price=data.counter_price,
        document_url=data.document_url,
        reason=data.reason,
        inspection_date=data.inspection_date,
        inspection_time=data.inspection_time,
    )
    try:
        result = await controller.process_action(inspection_id, actor.id, action)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return _serialize_result(result)


@router.post("/{inspection_id}/respond", response_model=AgentRespondResponse)
async def respond_to_inspection_request(
    inspection_id: str,
    data: AgentRespondRequest,
    actor: CurrentActor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Agent accepts (optionally setting the inspection fee) or rejects a new request."""
    controller = _controller(db, notifications, paystack, config)
    try:
        result = await controller.respond_to_request(
            inspection_id, actor.id, data.action, data.note, data.inspection_fee
        )
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return AgentRespondResponse(status=result.booking.status, payment_url=result.payment_url)
