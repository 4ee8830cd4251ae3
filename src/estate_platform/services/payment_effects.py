"""Payment-effect dispatcher.

Verifies a transaction reference with the gateway and applies the effect of
the transaction's target exactly once. Every effect is a conditional write on
the target's expected pre-payment state, so replays of the same reference
(callback plus webhook, double clicks) change nothing the second time.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import (
    AccessCodeStatus,
    ActorRole,
    DocumentVerificationStatus,
    InspectionStage,
    InspectionStatus,
    InspectionType,
    PendingResponder,
    TransactionStatus,
)
from estate_platform.domain.errors import NotFoundError, UpstreamError
from estate_platform.domain.models import DocumentVerification, Subscription, Transaction
from estate_platform.services import activity_log, email_templates
from estate_platform.services.document_verification import generate_access_code, get_batch
from estate_platform.services.inspection_workflow import BOOKING_COLUMNS, conditional_update, load_booking
from estate_platform.services.outbound import (
    DeliveryReport,
    OutboundEmail,
    OutboundEvent,
    OutboundNotification,
    dispatch_outbound,
)
from estate_platform.services.payment_targets import (
    DocumentVerificationTarget,
    InspectionTarget,
    SubscriptionTarget,
)
from estate_platform.services.subscription_service import (
    activate_subscription,
    fail_subscription,
    provision_public_listing,
    utcnow,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_COLUMNS = [c.key for c in Subscription.__table__.columns]


@dataclass
class VerificationResult:
    verified: bool
    transaction: Optional[Transaction] = None
    reason: Optional[str] = None
    effect_applied: bool = False
    deliveries: list[DeliveryReport] = field(default_factory=list)


class PaymentEffectDispatcher:
    def __init__(self, db: AsyncSession, paystack, notifications, config: EngineConfig):
        self.db = db
        self.paystack = paystack
        self.notifications = notifications
        self.config = config

    async def verify(self, reference: str) -> VerificationResult:
        """Confirm a payment with the gateway and apply its effect once."""
        tx = (
            await self.db.execute(select(Transaction).where(Transaction.reference == reference))
        ).scalar_one_or_none()
        if not tx:
            logger.warning("Verification requested for unknown reference %s", reference)
            return VerificationResult(verified=False, reason="unknown_reference")

        try:
            result = await self.paystack.verify_payment(reference)
        except UpstreamError as exc:
            logger.warning("Gateway verification failed for %s: %s", reference, exc.message)
            return VerificationResult(verified=False, transaction=tx, reason="verification_failed")

        if result.status == "success":
            new_status = TransactionStatus.SUCCESS
        elif result.status == "failed":
            new_status = TransactionStatus.FAILED
        else:
            logger.info("Payment %s still %s at the gateway", reference, result.status or "pending")
            return VerificationResult(verified=False, transaction=tx, reason=f"payment_{result.status or 'pending'}")

        update_result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == tx.id, Transaction.status == TransactionStatus.PENDING.value)
            .values(
                status=new_status.value,
                paid_at=result.paid_at.replace(tzinfo=None) if result.paid_at else None,
                payment_mode=result.channel,
                gateway_response=result.gateway_response,
                authorization=result.authorization or None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(tx)
        if update_result.rowcount:
            logger.info("Transaction %s marked %s", reference, new_status.value)

        succeeded = tx.status == TransactionStatus.SUCCESS.value
        if tx.status == TransactionStatus.PENDING.value:
            return VerificationResult(verified=False, transaction=tx, reason="verification_failed")

        target = tx.target
        if isinstance(target, InspectionTarget):
            applied, events = await self._inspection_effect(tx, target, succeeded)
        elif isinstance(target, SubscriptionTarget):
            applied, events = await self._subscription_effect(tx, target, succeeded, result)
        else:
            applied, events = await self._document_effect(tx, target, succeeded)
        await self.db.refresh(tx)

        deliveries = await dispatch_outbound(self.notifications, events)
        return VerificationResult(
            verified=succeeded,
            transaction=tx,
            reason=None if succeeded else "payment_failed",
            effect_applied=applied,
            deliveries=deliveries,
        )

    # -- inspection ---------------------------------------------------------

    async def _inspection_effect(self, tx: Transaction, target: InspectionTarget,
                                 succeeded: bool) -> tuple[bool, list[OutboundEvent]]:
        try:
            booking = await load_booking(self.db, target.booking_id)
        except NotFoundError:
            logger.error("Transaction %s points at missing inspection %s", tx.reference, target.booking_id)
            return False, []
        if booking.status != InspectionStatus.PENDING_TRANSACTION.value:
            return False, []
        if booking.transaction_id and booking.transaction_id != tx.id:
            logger.warning("Transaction %s is not the open payment of inspection %s", tx.reference, booking.id)
            return False, []

        buyer, seller = booking.buyer, booking.owner
        location = booking.property.location_label
        links = email_templates.inspection_links(self.config, booking.id, booking.buyer_id, booking.owner_id)

        if succeeded:
            if booking.inspection_type == InspectionType.PRICE.value:
                has_offer = bool(booking.negotiation_price and booking.negotiation_price > 0)
            else:
                has_offer = bool((booking.letter_of_intention or "").strip())
            values = {
                "status": (InspectionStatus.NEGOTIATION_COUNTERED if has_offer else InspectionStatus.ACTIVE_NEGOTIATION).value,
                "stage": (InspectionStage.NEGOTIATION if has_offer else InspectionStage.INSPECTION).value,
                "pending_response_from": PendingResponder.SELLER.value,
                "is_negotiating": has_offer,
            }
        else:
            values = {
                "status": InspectionStatus.TRANSACTION_FAILED.value,
                "stage": InspectionStage.CANCELLED.value,
                "pending_response_from": PendingResponder.NONE.value,
                "is_negotiating": False,
            }

        applied = await conditional_update(
            self.db, booking.id, booking.status, booking.stage, booking.pending_response_from, values
        )
        if not applied:
            return False, []
        await self.db.refresh(booking, attribute_names=BOOKING_COLUMNS)

        if succeeded:
            message = f"Inspection payment {tx.reference} confirmed; request sent to the seller"
            events: list[OutboundEvent] = [
                OutboundEmail(
                    to=buyer.email,
                    subject="Inspection Request Submitted",
                    html=email_templates.inspection_submitted_for_buyer(
                        buyer.full_name, location, tx.amount, tx.reference,
                        booking.inspection_date, booking.inspection_time,
                    ),
                ),
                OutboundEmail(
                    to=seller.email,
                    subject="New Offer Received – Action Required",
                    html=email_templates.new_offer_for_seller(
                        seller.full_name, buyer.full_name, location,
                        booking.negotiation_price if booking.inspection_type == InspectionType.PRICE.value else None,
                        booking.letter_of_intention, booking.inspection_date, booking.inspection_time,
                        links["seller_response"],
                    ),
                ),
                OutboundNotification(
                    user_id=seller.id,
                    title="New Inspection Request",
                    message=f"{buyer.full_name} paid for an inspection of {location}",
                    meta={"inspection_id": booking.id, "reference": tx.reference},
                ),
            ]
        else:
            message = f"Inspection payment {tx.reference} failed; request cancelled"
            events = [
                OutboundEmail(
                    to=buyer.email,
                    subject="Inspection Payment Failed",
                    html=email_templates.inspection_payment_failed(buyer.full_name, location, tx.reference, links["browse"]),
                )
            ]

        await self._log(booking.id, booking.property_id, message, booking.status, booking.stage,
                        {"reference": tx.reference, "amount": float(tx.amount)})
        return True, events

    async def _log(self, inspection_id, property_id, message, status, stage, meta) -> None:
        try:
            await activity_log.log_activity(
                self.db,
                inspection_id=inspection_id,
                property_id=property_id,
                sender_role=ActorRole.SYSTEM.value,
                message=message,
                status=status,
                stage=stage,
                meta=meta,
            )
        except Exception:
            logger.exception("Failed to write activity log for inspection %s", inspection_id)
            await self.db.rollback()

    # -- subscription -------------------------------------------------------

    async def _subscription_effect(self, tx: Transaction, target: SubscriptionTarget, succeeded: bool,
                                   result) -> tuple[bool, list[OutboundEvent]]:
        subscription = (
            await self.db.execute(
                select(Subscription)
                .where(Subscription.id == target.subscription_id)
                .options(selectinload(Subscription.user), selectinload(Subscription.plan))
            )
        ).scalar_one_or_none()
        if not subscription:
            logger.error("Transaction %s points at missing subscription %s", tx.reference, target.subscription_id)
            return False, []

        user, plan = subscription.user, subscription.plan

        if not succeeded:
            if not await fail_subscription(self.db, subscription.id):
                return False, []
            logger.info("Subscription %s cancelled after failed payment %s", subscription.id, tx.reference)
            return True, [
                OutboundEmail(
                    to=user.email,
                    subject="Subscription Payment Failed",
                    html=email_templates.subscription_payment_failed(
                        user.full_name, plan.name, self.config.subscription_retry_url
                    ),
                )
            ]

        auth_code = result.reusable_authorization_code if subscription.auto_renew else None
        if not await activate_subscription(self.db, subscription.id, plan.duration_days, auth_code):
            return False, []
        await self.db.refresh(subscription, attribute_names=SUBSCRIPTION_COLUMNS)
        listing_url = await provision_public_listing(self.db, self.config, user)
        logger.info("Subscription %s active until %s", subscription.id, subscription.end_date)
        return True, [
            OutboundEmail(
                to=user.email,
                subject="Subscription Activated",
                html=email_templates.subscription_activated(user.full_name, plan.name, subscription.end_date, listing_url),
            )
        ]

    # -- document verification ---------------------------------------------

    async def _document_effect(self, tx: Transaction, target: DocumentVerificationTarget,
                               succeeded: bool) -> tuple[bool, list[OutboundEvent]]:
        documents = await get_batch(self.db, target.batch_id)
        if not documents:
            logger.error("Transaction %s points at empty document batch %s", tx.reference, target.batch_id)
            return False, []

        processed: list[tuple[DocumentVerification, str]] = []
        for doc in documents:
            if succeeded:
                code = generate_access_code()
                values = {
                    "status": DocumentVerificationStatus.SUCCESSFUL.value,
                    "access_code": code,
                    "access_code_status": AccessCodeStatus.PENDING.value,
                }
            else:
                code = ""
                values = {"status": DocumentVerificationStatus.PAYMENT_FAILED.value}
            res = await self.db.execute(
                update(DocumentVerification)
                .where(
                    DocumentVerification.id == doc.id,
                    DocumentVerification.status == DocumentVerificationStatus.PENDING.value,
                )
                .values(**values, transaction_id=tx.id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if res.rowcount:
                processed.append((doc, code))
        await self.db.commit()

        if not processed or not succeeded:
            return bool(processed), []

        events: list[OutboundEvent] = []
        for doc, code in processed:
            events.append(
                OutboundEmail(
                    to=self.config.verifier_email_for(doc.document_type),
                    subject=f"Document Verification Request – {doc.document_type}",
                    html=email_templates.document_for_verifier(
                        doc.document_type, doc.document_number, doc.full_name, code,
                        self.config.document_review_url(doc.id),
                    ),
                )
            )
        first = processed[0][0]
        events.append(
            OutboundEmail(
                to=first.email,
                subject="Document Verification Submission Received – Under Review",
                html=email_templates.document_submission_summary(
                    first.full_name,
                    [{"document_type": d.document_type, "document_number": d.document_number} for d, _ in processed],
                    tx.amount,
                    tx.reference,
                ),
            )
        )
        logger.info("Document batch %s verified: %d documents released", target.batch_id, len(processed))
        return True, events
