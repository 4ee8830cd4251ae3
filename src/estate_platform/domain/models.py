"""SQLAlchemy ORM models for the Estate Platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from estate_platform.domain.enums import TransactionKind
from estate_platform.infra.database import Base


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------


class User(Base):
    """Registered platform user (agent, landlord or admin)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="agent")  # UserRole
    is_active = Column(Boolean, default=True)

    # Public listing page, provisioned on first paid subscription
    public_slug = Column(String(100), unique=True, nullable=True)
    public_listing_url = Column(String(500), nullable=True)
    public_listing_active = Column(Boolean, default=False)

    created_at = Column(DateTime, default=func.now())

    properties = relationship("Property", back_populates="owner")


class Buyer(Base):
    """Prospective buyer or renter. Created on first inspection request, keyed by email."""

    __tablename__ = "buyers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=func.now())


class Property(Base):
    """Listing a buyer can request to inspect."""

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=True)
    property_type = Column(String(50), nullable=True)
    state = Column(String(100), nullable=True)
    local_government = Column(String(100), nullable=True)
    area = Column(String(255), nullable=True)
    price = Column(Numeric(14, 2), nullable=True)
    inspection_fee = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())

    owner = relationship("User", back_populates="properties")

    @property
    def location_label(self) -> str:
        parts = [p for p in (self.area, self.local_government, self.state) if p]
        return ", ".join(parts) or (self.title or "Property")


# ---------------------------------------------------------------------------
# Inspection Domain
# ---------------------------------------------------------------------------


class InspectionBooking(Base):
    """Inspection request tracked from submission through negotiation to a terminal outcome."""

    __tablename__ = "inspection_bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False)
    buyer_id = Column(String(36), ForeignKey("buyers.id"), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    # Negotiation
    inspection_type = Column(String(10), nullable=False, default="price")  # InspectionType
    is_negotiating = Column(Boolean, default=False)
    negotiation_price = Column(Numeric(14, 2), default=0)
    letter_of_intention = Column(String(500), nullable=True)
    seller_counter_offer = Column(Numeric(14, 2), nullable=True)
    reason = Column(String(500), nullable=True)

    # Scheduling
    inspection_date = Column(Date, nullable=True)
    inspection_time = Column(String(20), nullable=True)  # e.g. "10:00 AM"

    # State
    status = Column(String(50), nullable=False, default="pending_approval", index=True)
    inspection_status = Column(String(30), nullable=False, default="new")  # InspectionSubStatus
    stage = Column(String(20), nullable=False, default="inspection")  # InspectionStage
    pending_response_from = Column(String(10), nullable=False, default="seller")  # PendingResponder
    receiver_mode = Column(String(20), nullable=False, default="platform")  # ReceiverMode

    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    property = relationship("Property")
    buyer = relationship("Buyer")
    owner = relationship("User")
    transaction = relationship("Transaction")
    activity = relationship("InspectionActivityLog", back_populates="inspection")


class InspectionActivityLog(Base):
    """Immutable audit trail entry for inspection state transitions."""

    __tablename__ = "inspection_activity_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    inspection_id = Column(String(36), ForeignKey("inspection_bookings.id"), nullable=False, index=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    sender_id = Column(String(36), nullable=True)
    sender_role = Column(String(20), nullable=False)  # ActorRole
    message = Column(Text, nullable=False)
    status = Column(String(50), nullable=True)
    stage = Column(String(20), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now())

    inspection = relationship("InspectionBooking", back_populates="activity")


class Notification(Base):
    """In-app notification shown to a user or buyer."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="inspection")
    meta = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Gateway transaction bound to exactly one domain entity at creation time."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference = Column(String(40), unique=True, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    status = Column(String(20), nullable=False, default="pending")  # TransactionStatus

    # Tagged target: kind + id of the entity this payment is for
    kind = Column(String(30), nullable=False)  # TransactionKind
    target_id = Column(String(36), nullable=False, index=True)

    payer_email = Column(String(255), nullable=False)
    payment_mode = Column(String(30), nullable=True)
    gateway_response = Column(String(255), nullable=True)
    authorization = Column(JSON, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def target(self):
        from estate_platform.services.payment_targets import target_for

        return target_for(TransactionKind(self.kind), self.target_id)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionPlan(Base):
    """Paid plan an agent subscribes to."""

    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(14, 2), nullable=False)
    duration_days = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())


class Subscription(Base):
    """One billing cycle of an agent subscription."""

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # SubscriptionStatus
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)

    auto_renew = Column(Boolean, default=False)
    authorization_code = Column(String(100), nullable=True)
    renewed_from_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=True)

    # Per-cycle markers; each holds the end_date of the cycle already handled
    expiry_warning_sent_for = Column(DateTime, nullable=True)
    renewal_attempted_for = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User")
    plan = relationship("SubscriptionPlan")
    transaction = relationship("Transaction")


# ---------------------------------------------------------------------------
# Document Verification
# ---------------------------------------------------------------------------


class DocumentVerification(Base):
    """A single document submitted for third-party verification.

    Documents paid for together share a batch_id, which is the payment's target.
    """

    __tablename__ = "document_verifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id = Column(String(36), nullable=False, index=True)

    # Submitter
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)

    # Document
    document_type = Column(String(100), nullable=False)
    document_number = Column(String(100), nullable=True)
    document_url = Column(String(500), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=True)

    status = Column(String(20), nullable=False, default="pending")  # DocumentVerificationStatus
    access_code = Column(String(12), nullable=True)
    access_code_status = Column(String(20), nullable=False, default="pending")  # AccessCodeStatus
    verification_reports = Column(JSON, nullable=True)  # reviewer reports, appended
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
