"""Domain enumerations for the inspection, payment and subscription engine.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


# ---------------------------------------------------------------------------
# Inspection Lifecycle Enums
# ---------------------------------------------------------------------------


class InspectionStatus(str, Enum):
    """Fine-grained negotiation state of an inspection booking."""

    PENDING_APPROVAL = "pending_approval"
    AGENT_REJECTED = "agent_rejected"
    INSPECTION_APPROVED = "inspection_approved"
    PENDING_TRANSACTION = "pending_transaction"
    TRANSACTION_FAILED = "transaction_failed"
    ACTIVE_NEGOTIATION = "active_negotiation"
    INSPECTION_RESCHEDULED = "inspection_rescheduled"
    NEGOTIATION_COUNTERED = "negotiation_countered"
    NEGOTIATION_ACCEPTED = "negotiation_accepted"
    NEGOTIATION_REJECTED = "negotiation_rejected"
    NEGOTIATION_CANCELLED = "negotiation_cancelled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InspectionStage(str, Enum):
    """Coarse phase of an inspection booking."""

    INSPECTION = "inspection"
    NEGOTIATION = "negotiation"
    LOI = "LOI"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InspectionType(str, Enum):
    """Whether the buyer negotiates with a price or a Letter of Intention."""

    PRICE = "price"
    LOI = "LOI"


class InspectionSubStatus(str, Enum):
    """Outcome of the most recent negotiation action."""

    NEW = "new"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    REQUESTED_CHANGES = "requested_changes"


class NegotiationAction(str, Enum):
    """Action a party takes on a negotiation."""

    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"
    REQUEST_CHANGES = "request_changes"


class AgentResponse(str, Enum):
    """Agent answer to a brand-new inspection request."""

    ACCEPT = "accept"
    REJECT = "reject"


class ActorRole(str, Enum):
    """Party performing an inspection action."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class PendingResponder(str, Enum):
    """Whose turn it is to act on a booking."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    NONE = "none"


class ReceiverMode(str, Enum):
    """Where the inspection request was received."""

    PLATFORM = "platform"
    DEAL_SITE = "deal_site"


# ---------------------------------------------------------------------------
# Payment Enums
# ---------------------------------------------------------------------------


class TransactionStatus(str, Enum):
    """Status of a gateway transaction."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TransactionKind(str, Enum):
    """Domain entity a transaction pays for."""

    INSPECTION = "inspection"
    SUBSCRIPTION = "subscription"
    DOCUMENT_VERIFICATION = "document-verification"


# ---------------------------------------------------------------------------
# Subscription / Document Verification Enums
# ---------------------------------------------------------------------------


class SubscriptionStatus(str, Enum):
    """Status of an agent subscription."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class DocumentVerificationStatus(str, Enum):
    """Status of a document submitted for third-party verification."""

    PENDING = "pending"
    SUCCESSFUL = "successful"
    PAYMENT_FAILED = "payment-failed"


class AccessCodeStatus(str, Enum):
    """Whether a reviewer has unlocked a document with its access code."""

    PENDING = "pending"
    APPROVED = "approved"


class UserRole(str, Enum):
    """Role of a registered platform user."""

    AGENT = "agent"
    LANDLORD = "landlord"
    ADMIN = "admin"
