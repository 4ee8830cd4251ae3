"""Negotiation transition resolver: validates a party's action and computes the next booking state.

Pure: takes a frozen snapshot of the booking and returns a TransitionOutcome.
Nothing here touches the database, the payment gateway or the mailer.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from urllib.parse import urlparse

from estate_platform.domain.enums import (
    ActorRole,
    InspectionStage,
    InspectionStatus,
    InspectionSubStatus,
    InspectionType,
    NegotiationAction,
    PendingResponder,
)
from estate_platform.domain.errors import ConflictError, ValidationError

S = InspectionStatus
G = InspectionStage

TERMINAL_STATUSES: set[InspectionStatus] = {
    S.COMPLETED,
    S.CANCELLED,
    S.NEGOTIATION_REJECTED,
    S.NEGOTIATION_CANCELLED,
    S.AGENT_REJECTED,
    S.TRANSACTION_FAILED,
}

TERMINAL_STAGES: set[InspectionStage] = {G.COMPLETED, G.CANCELLED}

# Statuses in which a party may accept, reject, counter or request changes
ACTIONABLE_STATUSES: set[InspectionStatus] = {
    S.ACTIVE_NEGOTIATION,
    S.NEGOTIATION_COUNTERED,
    S.NEGOTIATION_ACCEPTED,
    S.INSPECTION_APPROVED,
    S.INSPECTION_RESCHEDULED,
}


def is_terminal(status: str, stage: str) -> bool:
    return S(status) in TERMINAL_STATUSES or G(stage) in TERMINAL_STAGES


def is_actionable(status: str, stage: str) -> bool:
    return not is_terminal(status, stage) and S(status) in ACTIONABLE_STATUSES


def format_naira(amount) -> str:
    """Format an amount as ₦1,250,000 (two decimals only when needed)."""
    value = float(amount or 0)
    if value.is_integer():
        return f"₦{int(value):,}"
    return f"₦{value:,.2f}"


def is_http_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BookingSnapshot:
    """Immutable view of the booking fields the resolver reads."""

    id: str
    status: str
    stage: str
    pending_response_from: str
    inspection_type: str
    negotiation_price: Optional[float] = None
    letter_of_intention: Optional[str] = None
    inspection_date: Optional[date] = None
    inspection_time: Optional[str] = None
    is_negotiating: bool = False

    @classmethod
    def from_booking(cls, booking) -> "BookingSnapshot":
        price = booking.negotiation_price
        return cls(
            id=booking.id,
            status=booking.status,
            stage=booking.stage,
            pending_response_from=booking.pending_response_from,
            inspection_type=booking.inspection_type,
            negotiation_price=float(price) if price is not None else None,
            letter_of_intention=booking.letter_of_intention,
            inspection_date=booking.inspection_date,
            inspection_time=booking.inspection_time,
            is_negotiating=bool(booking.is_negotiating),
        )


@dataclass(frozen=True)
class NegotiationActionInput:
    """A party's requested action on a booking."""

    action: str
    inspection_type: str
    counter_price: Optional[float] = None
    document_url: Optional[str] = None
    reason: Optional[str] = None
    inspection_date: Optional[date] = None
    inspection_time: Optional[str] = None


@dataclass(frozen=True)
class TransitionOutcome:
    next_status: InspectionStatus
    next_stage: InspectionStage
    next_pending_response_from: PendingResponder
    is_negotiating: bool
    inspection_status: InspectionSubStatus
    audit_message: str
    email_subject: str
    date_time_changed: bool = False
    field_updates: dict = field(default_factory=dict)
    notification_payload: dict = field(default_factory=dict)

    def row_values(self) -> dict:
        """Column values to write on the booking row."""
        values = {
            "status": self.next_status.value,
            "stage": self.next_stage.value,
            "pending_response_from": self.next_pending_response_from.value,
            "is_negotiating": self.is_negotiating,
            "inspection_status": self.inspection_status.value,
        }
        values.update(self.field_updates)
        return values


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def date_time_changed(snapshot: BookingSnapshot, action: NegotiationActionInput) -> bool:
    """True when a proposed date or time differs from the stored one."""
    if action.inspection_date is not None and action.inspection_date != snapshot.inspection_date:
        return True
    if action.inspection_time and action.inspection_time != snapshot.inspection_time:
        return True
    return False


def _parse_action(action: NegotiationActionInput) -> tuple[NegotiationAction, InspectionType]:
    try:
        kind = NegotiationAction(action.action)
    except ValueError:
        raise ValidationError("action", f"Unsupported action '{action.action}'")
    try:
        inspection_type = InspectionType(action.inspection_type)
    except ValueError:
        raise ValidationError("inspection_type", f"Unsupported inspection type '{action.inspection_type}'")
    return kind, inspection_type


def _check_requirements(kind: NegotiationAction, inspection_type: InspectionType, action: NegotiationActionInput):
    if kind == NegotiationAction.COUNTER:
        if inspection_type == InspectionType.PRICE:
            price = action.counter_price
            if (
                price is None
                or isinstance(price, bool)
                or not isinstance(price, (int, float))
                or not math.isfinite(price)
                or price < 0
            ):
                raise ValidationError("counter_price", "A non-negative counter price is required")
        elif not is_http_url(action.document_url):
            raise ValidationError("document_url", "A valid LOI document URL is required")

    if kind == NegotiationAction.REQUEST_CHANGES:
        if inspection_type != InspectionType.LOI:
            raise ValidationError("action", "Changes can only be requested on a Letter of Intention")
        if not (action.reason or "").strip():
            raise ValidationError("reason", "A reason is required when requesting changes")


def resolve(
    action: NegotiationActionInput,
    snapshot: BookingSnapshot,
    actor_role: ActorRole,
    actor_name: str = "",
) -> TransitionOutcome:
    """Compute the outcome of ``action`` taken by ``actor_role`` on ``snapshot``.

    Raises:
        ConflictError: booking is terminal, not yet in negotiation, or a
            rejection is attempted after the inspection was locked in.
        ValidationError: action fields are missing or malformed.
    """
    if is_terminal(snapshot.status, snapshot.stage):
        raise ConflictError(f"Inspection is already {snapshot.status} and cannot be changed")

    kind, inspection_type = _parse_action(action)

    if inspection_type.value != snapshot.inspection_type:
        raise ValidationError(
            "inspection_type",
            f"Inspection type mismatch: booking is '{snapshot.inspection_type}'",
        )

    if not is_actionable(snapshot.status, snapshot.stage):
        raise ConflictError(f"Inspection in status {snapshot.status} is not open for negotiation")

    if kind == NegotiationAction.REJECT and snapshot.stage == G.INSPECTION.value:
        raise ConflictError("Cannot cancel inspection that has already reached inspection stage")

    _check_requirements(kind, inspection_type, action)

    changed = date_time_changed(snapshot, action)
    name = actor_name or actor_role.value.title()
    label = "Price Offer" if inspection_type == InspectionType.PRICE else "Letter of Intent"
    when = " with updated inspection date/time" if changed else ""
    also_when = " and updated inspection date/time" if changed else ""

    updates: dict = {}
    if action.inspection_date is not None:
        updates["inspection_date"] = action.inspection_date
    if action.inspection_time:
        updates["inspection_time"] = action.inspection_time

    if kind == NegotiationAction.ACCEPT:
        if snapshot.stage == G.INSPECTION.value:
            stage = G.COMPLETED
        elif action.inspection_date is not None or action.inspection_time:
            stage = G.INSPECTION
        else:
            stage = G.COMPLETED
        status, pending, negotiating = S.NEGOTIATION_ACCEPTED, PendingResponder.NONE, False
        sub_status = InspectionSubStatus.ACCEPTED
        subject = f"{label} Accepted"
        if changed:
            subject += " – Inspection Date Updated"
        message = f"{name} accepted the {inspection_type.value} offer{when}"

    elif kind == NegotiationAction.REJECT:
        reason = (action.reason or "").strip() or None
        updates["reason"] = reason
        stage = G.CANCELLED
        status, pending, negotiating = S.NEGOTIATION_REJECTED, PendingResponder.NONE, False
        sub_status = InspectionSubStatus.REJECTED
        subject = f"{label} Rejected"
        if changed:
            subject += " – Inspection Date Updated"
        message = f"{name} rejected the {inspection_type.value} offer" + (f": {reason}" if reason else "")

    elif kind == NegotiationAction.COUNTER:
        pending = PendingResponder.BUYER if actor_role == ActorRole.SELLER else PendingResponder.SELLER
        stage = G.NEGOTIATION
        status, negotiating = S.NEGOTIATION_COUNTERED, True
        sub_status = InspectionSubStatus.COUNTERED
        if inspection_type == InspectionType.PRICE:
            updates["negotiation_price"] = float(action.counter_price)
            if actor_role == ActorRole.SELLER:
                updates["seller_counter_offer"] = float(action.counter_price)
            message = f"{name} made a counter offer of {format_naira(action.counter_price)}{also_when}"
        else:
            updates["letter_of_intention"] = action.document_url.strip()
            message = f"{name} uploaded a new LOI document{also_when}"
        subject = "Counter Offer Received"
        if changed:
            subject += " – New Inspection Time Proposed"

    else:
        reason = action.reason.strip()
        updates["reason"] = reason
        stage = G.NEGOTIATION
        status, pending, negotiating = S.NEGOTIATION_COUNTERED, PendingResponder.BUYER, False
        sub_status = InspectionSubStatus.REQUESTED_CHANGES
        subject = "Changes Requested for Letter of Intent"
        if changed:
            subject += " – Inspection Date Updated"
        message = f"{name} requested changes to the LOI: {reason}{also_when}"

    return TransitionOutcome(
        next_status=status,
        next_stage=stage,
        next_pending_response_from=pending,
        is_negotiating=negotiating,
        inspection_status=sub_status,
        audit_message=message,
        email_subject=subject,
        date_time_changed=changed,
        field_updates=updates,
        notification_payload={
            "title": subject,
            "message": message,
            "meta": {
                "inspection_id": snapshot.id,
                "action": kind.value,
                "inspection_type": inspection_type.value,
            },
        },
    )
