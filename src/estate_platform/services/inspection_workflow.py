"""Inspection workflow controller.

Loads a booking, authorizes the actor, resolves the transition, persists it
with a conditional write and only then fans out the activity log, emails and
in-app notifications. Side-effect failures are logged and never roll back
the committed state.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import (
    ActorRole,
    AgentResponse,
    InspectionStage,
    InspectionStatus,
    InspectionSubStatus,
    InspectionType,
    NegotiationAction,
    PendingResponder,
    ReceiverMode,
    TransactionStatus,
)
from estate_platform.domain.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from estate_platform.domain.models import Buyer, InspectionBooking, Property, Transaction
from estate_platform.services import activity_log, email_templates
from estate_platform.services.negotiation_resolver import (
    BookingSnapshot,
    NegotiationActionInput,
    TransitionOutcome,
    is_http_url,
    resolve,
)
from estate_platform.services.outbound import (
    DeliveryReport,
    OutboundEmail,
    OutboundEvent,
    OutboundNotification,
    dispatch_outbound,
)
from estate_platform.services.payment_service import initialize_payment
from estate_platform.services.payment_targets import InspectionTarget

logger = logging.getLogger(__name__)

BOOKING_COLUMNS = [c.key for c in InspectionBooking.__table__.columns]


@dataclass
class WorkflowResult:
    booking: InspectionBooking
    events: list[OutboundEvent] = field(default_factory=list)
    deliveries: list[DeliveryReport] = field(default_factory=list)
    payment_url: Optional[str] = None


@dataclass(frozen=True)
class BuyerContact:
    full_name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class PropertyOffer:
    property_id: str
    negotiation_price: Optional[float] = None
    letter_of_intention: Optional[str] = None


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------


async def load_booking(db: AsyncSession, inspection_id: str) -> InspectionBooking:
    """Fetch a booking with its parties and property, or raise NotFoundError."""
    result = await db.execute(
        select(InspectionBooking)
        .where(InspectionBooking.id == inspection_id)
        .options(
            selectinload(InspectionBooking.property),
            selectinload(InspectionBooking.buyer),
            selectinload(InspectionBooking.owner),
        )
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Inspection not found")
    return booking


async def conditional_update(
    db: AsyncSession,
    booking_id: str,
    expected_status: str,
    expected_stage: str,
    expected_pending: str,
    values: dict,
) -> bool:
    """UPDATE the booking only if it is still in the expected state. Commits on success."""
    result = await db.execute(
        update(InspectionBooking)
        .where(
            InspectionBooking.id == booking_id,
            InspectionBooking.status == expected_status,
            InspectionBooking.stage == expected_stage,
            InspectionBooking.pending_response_from == expected_pending,
        )
        .values(**values, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    return True


async def apply_transition(db: AsyncSession, snapshot: BookingSnapshot, outcome: TransitionOutcome) -> None:
    """Persist a resolved outcome against the snapshot it was computed from.

    Raises:
        ConflictError: another transition changed the booking first.
    """
    applied = await conditional_update(
        db,
        snapshot.id,
        snapshot.status,
        snapshot.stage,
        snapshot.pending_response_from,
        outcome.row_values(),
    )
    if not applied:
        raise ConflictError("Inspection was modified by another request; reload and try again")
    logger.info(
        "Inspection %s: %s → %s (pending=%s)",
        snapshot.id,
        snapshot.status,
        outcome.next_status.value,
        outcome.next_pending_response_from.value,
    )


def actor_role_for(booking: InspectionBooking, actor_id: str) -> ActorRole:
    if actor_id == booking.owner_id:
        return ActorRole.SELLER
    if actor_id == booking.buyer_id:
        return ActorRole.BUYER
    raise AuthorizationError("Unauthorized access to this inspection")


def check_turn(booking: InspectionBooking, role: ActorRole) -> None:
    """Raise if the booking is waiting on the other party."""
    pending = booking.pending_response_from
    if pending in (PendingResponder.BUYER.value, PendingResponder.SELLER.value) and pending != role.value:
        raise AuthorizationError(f"Waiting for the {pending} to respond")


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class InspectionWorkflowController:
    def __init__(self, db: AsyncSession, notifications, payments, config: EngineConfig):
        self.db = db
        self.notifications = notifications
        self.payments = payments
        self.config = config

    async def _refresh(self, booking: InspectionBooking) -> None:
        await self.db.refresh(booking, attribute_names=BOOKING_COLUMNS)

    async def _log(self, booking: InspectionBooking, role: ActorRole, actor_id: Optional[str], message: str,
                   meta: Optional[dict] = None) -> None:
        try:
            await activity_log.log_activity(
                self.db,
                inspection_id=booking.id,
                property_id=booking.property_id,
                sender_id=actor_id,
                sender_role=role.value,
                message=message,
                status=booking.status,
                stage=booking.stage,
                meta=meta,
            )
        except Exception:
            logger.exception("Failed to write activity log for inspection %s", booking.id)
            await self.db.rollback()
            await self._refresh(booking)

    async def _finish(self, booking: InspectionBooking, events: list[OutboundEvent],
                      payment_url: Optional[str] = None) -> WorkflowResult:
        deliveries = await dispatch_outbound(self.notifications, events)
        return WorkflowResult(booking=booking, events=events, deliveries=deliveries, payment_url=payment_url)

    def _links(self, booking: InspectionBooking) -> dict:
        return email_templates.inspection_links(self.config, booking.id, booking.buyer_id, booking.owner_id)

    # -- submission ---------------------------------------------------------

    async def submit_request(
        self,
        buyer: BuyerContact,
        offers: list[PropertyOffer],
        inspection_type: str,
        inspection_date: Optional[date],
        inspection_time: Optional[str],
        receiver_mode: str = ReceiverMode.PLATFORM.value,
    ) -> list[WorkflowResult]:
        """Create one pending_approval booking per requested property and notify each agent."""
        try:
            kind = InspectionType(inspection_type)
        except ValueError:
            raise ValidationError("inspection_type", "Inspection type must be 'price' or 'LOI'")
        try:
            mode = ReceiverMode(receiver_mode)
        except ValueError:
            raise ValidationError("receiver_mode", f"Unsupported receiver mode '{receiver_mode}'")
        if not offers:
            raise ValidationError("properties", "At least one property is required")
        if inspection_date is None:
            raise ValidationError("inspection_date", "Inspection date is required")
        if not (inspection_time or "").strip():
            raise ValidationError("inspection_time", "Inspection time is required")
        if not (buyer.email or "").strip() or not (buyer.full_name or "").strip():
            raise ValidationError("buyer", "Buyer name and email are required")
        for offer in offers:
            if offer.negotiation_price is not None and offer.negotiation_price < 0:
                raise ValidationError("negotiation_price", "Negotiation price cannot be negative")
            if offer.letter_of_intention and not is_http_url(offer.letter_of_intention):
                raise ValidationError("letter_of_intention", "Letter of intention must be a valid URL")

        buyer_row = await self._upsert_buyer(buyer)
        buyer_id, buyer_name = buyer_row.id, buyer_row.full_name

        results: list[WorkflowResult] = []
        for offer in offers:
            prop = (
                await self.db.execute(
                    select(Property).where(Property.id == offer.property_id).options(selectinload(Property.owner))
                )
            ).scalar_one_or_none()
            if not prop:
                raise NotFoundError(f"Property {offer.property_id} not found")

            if kind == InspectionType.PRICE:
                has_offer = bool(offer.negotiation_price and offer.negotiation_price > 0)
            else:
                has_offer = bool(offer.letter_of_intention)

            booking = InspectionBooking(
                property_id=prop.id,
                buyer_id=buyer_id,
                owner_id=prop.owner_id,
                inspection_type=kind.value,
                is_negotiating=has_offer,
                negotiation_price=offer.negotiation_price or 0,
                letter_of_intention=offer.letter_of_intention if kind == InspectionType.LOI else None,
                inspection_date=inspection_date,
                inspection_time=inspection_time.strip(),
                status=InspectionStatus.PENDING_APPROVAL.value,
                inspection_status=InspectionSubStatus.NEW.value,
                stage=(InspectionStage.NEGOTIATION if has_offer else InspectionStage.INSPECTION).value,
                pending_response_from=PendingResponder.SELLER.value,
                receiver_mode=mode.value,
            )
            self.db.add(booking)
            await self.db.commit()
            await self._refresh(booking)
            logger.info("Inspection requested: inspection=%s, property=%s, buyer=%s", booking.id, prop.id, buyer_id)

            link = self._links(booking)["seller_response"]
            events: list[OutboundEvent] = [
                OutboundNotification(
                    user_id=prop.owner_id,
                    title="New Inspection Request",
                    message=f"{buyer_name} requested an inspection of {prop.location_label}",
                    meta={"inspection_id": booking.id, "property_id": prop.id},
                ),
                OutboundEmail(
                    to=prop.owner.email,
                    subject="New Inspection Request",
                    html=email_templates.new_request_for_agent(
                        prop.owner.full_name, buyer_name, prop.location_label,
                        inspection_date, booking.inspection_time, link,
                    ),
                ),
            ]
            await self._log(
                booking,
                ActorRole.BUYER,
                buyer_id,
                f"{buyer_name} requested an inspection",
                {"inspection_type": kind.value, "has_offer": has_offer},
            )
            results.append(await self._finish(booking, events))
        return results

    async def _upsert_buyer(self, contact: BuyerContact) -> Buyer:
        email = contact.email.strip().lower()
        buyer = (await self.db.execute(select(Buyer).where(Buyer.email == email))).scalar_one_or_none()
        if buyer:
            buyer.full_name = contact.full_name.strip()
            if contact.phone:
                buyer.phone = contact.phone
        else:
            buyer = Buyer(email=email, full_name=contact.full_name.strip(), phone=contact.phone)
            self.db.add(buyer)
        await self.db.commit()
        await self.db.refresh(buyer)
        return buyer

    # -- negotiation --------------------------------------------------------

    async def process_action(self, inspection_id: str, actor_id: str, action: NegotiationActionInput) -> WorkflowResult:
        """Apply accept / reject / counter / request_changes from the buyer or the seller."""
        booking = await load_booking(self.db, inspection_id)
        role = actor_role_for(booking, actor_id)
        check_turn(booking, role)

        actor = booking.owner if role == ActorRole.SELLER else booking.buyer
        counterparty = booking.buyer if role == ActorRole.SELLER else booking.owner
        location = booking.property.location_label

        snapshot = BookingSnapshot.from_booking(booking)
        outcome = resolve(action, snapshot, role, actor.full_name)
        await apply_transition(self.db, snapshot, outcome)
        await self._refresh(booking)

        links = self._links(booking)
        respond_link = links["buyer_response"] if role == ActorRole.SELLER else links["seller_response"]
        is_price = booking.inspection_type == InspectionType.PRICE.value
        payload = outcome.notification_payload
        events: list[OutboundEvent] = [
            OutboundNotification(
                user_id=counterparty.id,
                title=payload["title"],
                message=payload["message"],
                meta=payload["meta"],
            ),
            OutboundEmail(
                to=counterparty.email,
                subject=outcome.email_subject,
                html=email_templates.negotiation_update(
                    counterparty.full_name,
                    outcome.email_subject,
                    outcome.audit_message,
                    location,
                    negotiation_price=booking.negotiation_price if is_price else None,
                    document_url=None if is_price else booking.letter_of_intention,
                    reason=booking.reason if action.action in (NegotiationAction.REJECT.value, NegotiationAction.REQUEST_CHANGES.value) else None,
                    date_value=booking.inspection_date,
                    time_value=booking.inspection_time,
                    date_time_changed=outcome.date_time_changed,
                    link=respond_link if outcome.next_pending_response_from != PendingResponder.NONE else None,
                ),
            ),
        ]
        if action.action in (NegotiationAction.ACCEPT.value, NegotiationAction.REJECT.value):
            events.append(
                OutboundEmail(
                    to=actor.email,
                    subject=outcome.email_subject,
                    html=email_templates.negotiation_confirmation(
                        actor.full_name, outcome.email_subject, outcome.audit_message, location
                    ),
                )
            )

        await self._log(
            booking,
            role,
            actor_id,
            outcome.audit_message,
            {
                "action": action.action,
                "inspection_type": action.inspection_type,
                "counter_price": action.counter_price,
                "document_url": action.document_url,
                "date_time_changed": outcome.date_time_changed,
            },
        )
        return await self._finish(booking, events)

    # -- agent approval -----------------------------------------------------

    async def respond_to_request(
        self,
        inspection_id: str,
        agent_id: str,
        action: str,
        note: Optional[str] = None,
        inspection_fee: Optional[int] = None,
    ) -> WorkflowResult:
        """Agent accepts or rejects a brand-new request.

        Accepting a platform request opens a payment for the (clamped)
        inspection fee; the booking moves to pending_transaction only once the
        gateway has issued a checkout URL.
        """
        booking = await load_booking(self.db, inspection_id)
        if agent_id != booking.owner_id:
            raise AuthorizationError("Only the property owner can respond to this request")
        try:
            response = AgentResponse(action)
        except ValueError:
            raise ValidationError("action", "Action must be 'accept' or 'reject'")
        if booking.status != InspectionStatus.PENDING_APPROVAL.value:
            raise ConflictError(f"Inspection is {booking.status}; only pending requests can be answered")

        buyer = booking.buyer
        agent_name = booking.owner.full_name
        location = booking.property.location_label
        links = self._links(booking)
        expected = (booking.status, booking.stage, booking.pending_response_from)

        if response == AgentResponse.REJECT:
            values = {
                "status": InspectionStatus.AGENT_REJECTED.value,
                "inspection_status": InspectionSubStatus.REJECTED.value,
                "stage": InspectionStage.CANCELLED.value,
                "pending_response_from": PendingResponder.NONE.value,
                "is_negotiating": False,
                "reason": note,
            }
            if not await conditional_update(self.db, booking.id, *expected, values):
                raise ConflictError("Inspection was modified by another request; reload and try again")
            await self._refresh(booking)
            events = [
                OutboundEmail(
                    to=buyer.email,
                    subject="Inspection Request Declined",
                    html=email_templates.request_rejected_for_buyer(buyer.full_name, location, note, links["browse"]),
                )
            ]
            await self._log(booking, ActorRole.SELLER, agent_id,
                            f"{agent_name} rejected the inspection request" + (f": {note}" if note else ""))
            return await self._finish(booking, events)

        if booking.receiver_mode == ReceiverMode.DEAL_SITE.value:
            values = {
                "status": InspectionStatus.INSPECTION_APPROVED.value,
                "inspection_status": InspectionSubStatus.ACCEPTED.value,
                "pending_response_from": PendingResponder.SELLER.value,
            }
            if not await conditional_update(self.db, booking.id, *expected, values):
                raise ConflictError("Inspection was modified by another request; reload and try again")
            await self._refresh(booking)
            events = [
                OutboundEmail(
                    to=buyer.email,
                    subject="Inspection Request Approved",
                    html=email_templates.request_approved_for_buyer(
                        buyer.full_name, location, booking.inspection_date, booking.inspection_time,
                        links["buyer_response"],
                    ),
                )
            ]
            await self._log(booking, ActorRole.SELLER, agent_id, f"{agent_name} approved the inspection request")
            return await self._finish(booking, events)

        requested = inspection_fee if inspection_fee is not None else booking.property.inspection_fee
        fee = self.config.clamp_inspection_fee(
            requested if requested is not None else self.config.inspection_fee_default
        )
        init = await initialize_payment(
            self.db,
            self.payments,
            self.config,
            InspectionTarget(booking.id),
            fee,
            buyer.email,
            meta={"inspection_id": booking.id, "property_id": booking.property_id},
        )
        tx_id, reference = init.transaction.id, init.transaction.reference

        values = {
            "status": InspectionStatus.PENDING_TRANSACTION.value,
            "pending_response_from": PendingResponder.BUYER.value,
            "transaction_id": tx_id,
        }
        if not await conditional_update(self.db, booking.id, *expected, values):
            await self.db.execute(
                update(Transaction)
                .where(Transaction.id == tx_id, Transaction.status == TransactionStatus.PENDING.value)
                .values(status=TransactionStatus.FAILED.value, gateway_response="superseded")
            )
            await self.db.commit()
            raise ConflictError("Inspection was modified by another request; reload and try again")
        await self._refresh(booking)
        events = [
            OutboundEmail(
                to=buyer.email,
                subject="Complete Your Inspection Payment",
                html=email_templates.payment_link_for_buyer(buyer.full_name, location, fee, init.authorization_url),
            )
        ]
        await self._log(
            booking,
            ActorRole.SELLER,
            agent_id,
            f"{agent_name} accepted the inspection request; awaiting payment",
            {"inspection_fee": fee, "reference": reference},
        )
        return await self._finish(booking, events, payment_url=init.authorization_url)

    # -- reads --------------------------------------------------------------

    async def get_booking_for_party(self, inspection_id: str, actor_id: str) -> InspectionBooking:
        booking = await load_booking(self.db, inspection_id)
        actor_role_for(booking, actor_id)
        return booking

    async def get_history(self, inspection_id: str, page: int = 1, limit: int = 10) -> dict:
        await load_booking(self.db, inspection_id)
        return await activity_log.get_logs_by_inspection(self.db, inspection_id, page, limit)
