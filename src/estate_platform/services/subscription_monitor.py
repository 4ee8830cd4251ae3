"""Background jobs for subscription expiry warnings, auto-renewal and expiry."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import SubscriptionStatus, TransactionStatus
from estate_platform.domain.errors import UpstreamError
from estate_platform.domain.models import Subscription, Transaction
from estate_platform.services import email_templates
from estate_platform.services.outbound import OutboundEmail, dispatch_outbound
from estate_platform.services.payment_service import create_transaction
from estate_platform.services.payment_targets import SubscriptionTarget
from estate_platform.services.subscription_service import (
    activate_subscription,
    fail_subscription,
    refresh_listing_visibility,
    utcnow,
)

logger = logging.getLogger(__name__)


def _with_parties(query):
    return query.options(selectinload(Subscription.user), selectinload(Subscription.plan))


async def _expire(db: AsyncSession, subscription_id: str, now: datetime) -> bool:
    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.status == SubscriptionStatus.ACTIVE.value)
        .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def send_expiry_warnings(db: AsyncSession, notifications, config: EngineConfig,
                               now: Optional[datetime] = None) -> int:
    """Warn once per billing cycle about subscriptions ending within the warning window."""
    now = now or utcnow()
    horizon = now + timedelta(days=config.subscription_warning_days)

    result = await db.execute(
        _with_parties(
            select(Subscription).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date.isnot(None),
                Subscription.end_date > now,
                Subscription.end_date <= horizon,
            )
        )
    )
    warned = 0
    for sub in result.scalars().all():
        if sub.expiry_warning_sent_for == sub.end_date:
            continue
        claim = await db.execute(
            update(Subscription)
            .where(
                Subscription.id == sub.id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                or_(
                    Subscription.expiry_warning_sent_for.is_(None),
                    Subscription.expiry_warning_sent_for != sub.end_date,
                ),
            )
            .values(expiry_warning_sent_for=sub.end_date)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if not claim.rowcount:
            continue

        await dispatch_outbound(notifications, [
            OutboundEmail(
                to=sub.user.email,
                subject="Subscription Expiring Soon",
                html=email_templates.subscription_expiry_warning(
                    sub.user.full_name, sub.plan.name, sub.end_date, bool(sub.auto_renew)
                ),
            )
        ])
        warned += 1
        logger.info("Expiry warning sent: subscription=%s, ends=%s", sub.id, sub.end_date)
    return warned


async def attempt_auto_renewals(db: AsyncSession, paystack, notifications, config: EngineConfig,
                                now: Optional[datetime] = None) -> int:
    """Charge saved cards for lapsed auto-renew subscriptions.

    Each cycle is claimed through renewal_attempted_for before any charge, so
    a second sweep over the same cycle neither charges nor emails again.
    Only an explicit decline cancels the renewal; an unresolved charge leaves
    the renewal and its transaction pending for verify(reference).
    """
    now = now or utcnow()
    result = await db.execute(
        _with_parties(
            select(Subscription).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.auto_renew.is_(True),
                Subscription.authorization_code.isnot(None),
                Subscription.end_date.isnot(None),
                Subscription.end_date <= now,
            )
        )
    )
    attempted = 0
    for sub in result.scalars().all():
        cycle_end = sub.end_date
        claim = await db.execute(
            update(Subscription)
            .where(
                Subscription.id == sub.id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.auto_renew.is_(True),
                or_(
                    Subscription.renewal_attempted_for.is_(None),
                    Subscription.renewal_attempted_for != cycle_end,
                ),
            )
            .values(renewal_attempted_for=cycle_end)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if not claim.rowcount:
            continue
        attempted += 1

        user, plan = sub.user, sub.plan
        user_id, email, name, plan_name = user.id, user.email, user.full_name, plan.name
        duration, price, auth_code = plan.duration_days, plan.price, sub.authorization_code

        renewal = Subscription(
            user_id=user_id,
            plan_id=plan.id,
            status=SubscriptionStatus.PENDING.value,
            auto_renew=True,
            authorization_code=auth_code,
            renewed_from_id=sub.id,
        )
        db.add(renewal)
        await db.commit()
        renewal_id = renewal.id

        tx = await create_transaction(
            db, config, SubscriptionTarget(renewal_id), price, email,
            meta={"renewal_of": sub.id, "auto_renew": True},
        )
        tx_id, reference = tx.id, tx.reference
        await db.execute(update(Subscription).where(Subscription.id == renewal_id).values(transaction_id=tx_id))
        await db.commit()

        charge_status = None
        try:
            charge = await paystack.charge_authorization(
                email=email,
                amount=price,
                authorization_code=auth_code,
                reference=reference,
                metadata={"kind": tx.kind, "target_id": renewal_id},
            )
            charge_status = charge.status
        except UpstreamError as exc:
            logger.warning("Auto-renew charge unresolved for subscription %s: %s", sub.id, exc.message)

        if charge_status in ("success", "failed"):
            await db.execute(
                update(Transaction)
                .where(Transaction.id == tx_id, Transaction.status == TransactionStatus.PENDING.value)
                .values(status=charge_status, updated_at=now)
            )
            await db.commit()

        await _expire(db, sub.id, now)

        if charge_status == "success":
            # A webhook for this reference may already have activated the renewal.
            if not await activate_subscription(db, renewal_id, duration, authorization_code=auth_code, now=cycle_end):
                logger.info("Renewal %s already settled for subscription %s", renewal_id, sub.id)
                continue
            await dispatch_outbound(notifications, [
                OutboundEmail(
                    to=email,
                    subject="Subscription Renewed",
                    html=email_templates.subscription_renewed(name, plan_name, cycle_end + timedelta(days=duration), price),
                )
            ])
            logger.info("Subscription %s auto-renewed as %s", sub.id, renewal_id)
        elif charge_status == "failed":
            await refresh_listing_visibility(db, user_id)
            if not await fail_subscription(db, renewal_id):
                logger.info("Renewal %s already settled for subscription %s", renewal_id, sub.id)
                continue
            await dispatch_outbound(notifications, [
                OutboundEmail(
                    to=email,
                    subject="Subscription Renewal Failed",
                    html=email_templates.subscription_renewal_failed(name, plan_name, config.subscription_retry_url),
                )
            ])
            logger.info("Auto-renew declined for subscription %s", sub.id)
        else:
            # Renewal and transaction stay pending until verify(reference) settles them.
            await refresh_listing_visibility(db, user_id)
            logger.warning(
                "Auto-renew for subscription %s left pending (charge=%s, reference=%s)",
                sub.id, charge_status, reference,
            )
    return attempted


async def expire_subscriptions(db: AsyncSession, notifications, config: EngineConfig,
                               now: Optional[datetime] = None) -> int:
    """Expire active subscriptions past their end date."""
    now = now or utcnow()
    result = await db.execute(
        _with_parties(
            select(Subscription).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date.isnot(None),
                Subscription.end_date <= now,
            )
        )
    )
    expired = 0
    for sub in result.scalars().all():
        user, plan = sub.user, sub.plan
        user_id, email, name, plan_name = user.id, user.email, user.full_name, plan.name
        if not await _expire(db, sub.id, now):
            continue
        expired += 1
        await refresh_listing_visibility(db, user_id)
        await dispatch_outbound(notifications, [
            OutboundEmail(
                to=email,
                subject="Subscription Expired",
                html=email_templates.subscription_expired(name, plan_name, config.subscription_retry_url),
            )
        ])
        logger.info("Subscription expired: subscription=%s, user=%s", sub.id, user_id)
    return expired


async def run_subscription_sweep(db: AsyncSession, paystack, notifications, config: EngineConfig,
                                 now: Optional[datetime] = None) -> dict:
    """One full pass: warnings, then renewals, then plain expiry."""
    now = now or utcnow()
    return {
        "warned": await send_expiry_warnings(db, notifications, config, now),
        "renewal_attempts": await attempt_auto_renewals(db, paystack, notifications, config, now),
        "expired": await expire_subscriptions(db, notifications, config, now),
    }
