"""Pydantic v2 schemas for API request/response validation."""

from datetime import date

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Inspections
# ---------------------------------------------------------------------------


class PropertyOfferIn(BaseModel):
    """One property in an inspection request, with the buyer's optional offer."""

    property_id: str
    negotiation_price: float | None = Field(default=None, ge=0)
    letter_of_intention: str | None = None


class InspectionRequestCreate(BaseModel):
    """Schema for submitting an inspection request."""

    full_name: str
    email: str
    phone: str | None = None
    inspection_type: str = "price"
    inspection_date: date
    inspection_time: str
    receiver_mode: str = "platform"
    properties: list[PropertyOfferIn] = Field(min_length=1)


class InspectionActionRequest(BaseModel):
    """Schema for a negotiation action by the buyer or the seller."""

    action: str
    inspection_type: str
    counter_price: float | None = None
    document_url: str | None = None
    reason: str | None = None
    inspection_date: date | None = None
    inspection_time: str | None = None


class AgentRespondRequest(BaseModel):
    """Schema for the agent's answer to a new inspection request."""

    action: str
    note: str | None = None
    inspection_fee: int | None = None


class AgentRespondResponse(BaseModel):
    status: str
    payment_url: str | None = None


class DeliveryOut(BaseModel):
    channel: str
    delivered: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Payments / Subscriptions / Document verification
# ---------------------------------------------------------------------------


class PaymentLinkResponse(BaseModel):
    """Checkout URL issued by the payment gateway."""

    payment_url: str
    reference: str


class SubscriptionCreate(BaseModel):
    plan_code: str
    auto_renew: bool = False


class DocumentIn(BaseModel):
    document_type: str
    document_url: str
    document_number: str | None = None


class DocumentVerificationCreate(BaseModel):
    """Schema for a paid document verification batch."""

    full_name: str
    email: str
    phone: str | None = None
    address: str | None = None
    documents: list[DocumentIn] = Field(min_length=1)


class AccessCodeVerify(BaseModel):
    document_id: str
    access_code: str


class AutoRenewToggle(BaseModel):
    enable: bool


class VerificationReportIn(BaseModel):
    original_document_type: str
    status: str
    new_document_url: str | None = None
    description: str | None = None


class VerificationReportsCreate(BaseModel):
    reports: list[VerificationReportIn] = Field(min_length=1)
