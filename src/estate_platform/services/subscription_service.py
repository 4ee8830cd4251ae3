"""Agent subscriptions: checkout, activation, cancellation, auto-renew and public listings."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import SubscriptionStatus
from estate_platform.domain.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from estate_platform.domain.models import Subscription, SubscriptionPlan, User
from estate_platform.services import email_templates
from estate_platform.services.outbound import DeliveryReport, OutboundEmail, dispatch_outbound
from estate_platform.services.payment_service import PaymentInit, initialize_payment
from estate_platform.services.payment_targets import SubscriptionTarget

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC now; every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "agent"


async def get_active_plan(db: AsyncSession, plan_code: str) -> SubscriptionPlan:
    result = await db.execute(
        select(SubscriptionPlan).where(SubscriptionPlan.code == plan_code, SubscriptionPlan.is_active.is_(True))
    )
    plan = result.scalar_one_or_none()
    if not plan:
        raise NotFoundError(f"Subscription plan '{plan_code}' not found")
    return plan


async def start_subscription(
    db: AsyncSession,
    paystack,
    config: EngineConfig,
    user: User,
    plan_code: str,
    auto_renew: bool = False,
) -> tuple[Subscription, PaymentInit]:
    """Create a pending subscription and open its checkout."""
    if not plan_code:
        raise ValidationError("plan_code", "A plan code is required")
    plan = await get_active_plan(db, plan_code)

    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=SubscriptionStatus.PENDING.value,
        auto_renew=auto_renew,
    )
    db.add(subscription)
    await db.commit()
    await db.refresh(subscription)

    try:
        init = await initialize_payment(
            db,
            paystack,
            config,
            SubscriptionTarget(subscription.id),
            plan.price,
            user.email,
            meta={"plan_code": plan.code, "user_id": user.id},
        )
    except UpstreamError:
        await db.execute(
            update(Subscription)
            .where(Subscription.id == subscription.id, Subscription.status == SubscriptionStatus.PENDING.value)
            .values(status=SubscriptionStatus.CANCELLED.value)
        )
        await db.commit()
        raise

    subscription.transaction_id = init.transaction.id
    await db.commit()
    await db.refresh(subscription)
    logger.info("Subscription checkout opened: subscription=%s, plan=%s, user=%s", subscription.id, plan.code, user.id)
    return subscription, init


async def activate_subscription(
    db: AsyncSession,
    subscription_id: str,
    duration_days: int,
    authorization_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """pending → active with a fresh billing window. False if it was not pending."""
    now = now or utcnow()
    values = {
        "status": SubscriptionStatus.ACTIVE.value,
        "start_date": now,
        "end_date": now + timedelta(days=duration_days),
        "updated_at": now,
    }
    if authorization_code:
        values["authorization_code"] = authorization_code
    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.status == SubscriptionStatus.PENDING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def fail_subscription(db: AsyncSession, subscription_id: str) -> bool:
    """pending → cancelled. False if it was not pending."""
    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.status == SubscriptionStatus.PENDING.value)
        .values(status=SubscriptionStatus.CANCELLED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def provision_public_listing(db: AsyncSession, config: EngineConfig, user: User) -> str:
    """Give the agent a public listing page and switch it on."""
    if not user.public_slug:
        user.public_slug = f"{slugify(user.full_name)}-{user.id[:6]}"
    user.public_listing_url = config.public_listing_url(user.public_slug)
    user.public_listing_active = True
    await db.commit()
    return user.public_listing_url


async def count_active_subscriptions(db: AsyncSession, user_id: str, exclude_id: Optional[str] = None) -> int:
    query = select(func.count()).select_from(Subscription).where(
        Subscription.user_id == user_id,
        Subscription.status == SubscriptionStatus.ACTIVE.value,
    )
    if exclude_id:
        query = query.where(Subscription.id != exclude_id)
    return (await db.execute(query)).scalar_one()


async def refresh_listing_visibility(db: AsyncSession, user_id: str) -> bool:
    """Public listing stays on only while at least one subscription is active."""
    active = await count_active_subscriptions(db, user_id) > 0
    await db.execute(update(User).where(User.id == user_id).values(public_listing_active=active))
    await db.commit()
    if not active:
        logger.info("Public listing deactivated for user %s", user_id)
    return active


# ---------------------------------------------------------------------------
# Agent-managed changes
# ---------------------------------------------------------------------------

CANCELLABLE = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING.value)


async def get_user_subscription(db: AsyncSession, user_id: str, subscription_id: str) -> Subscription:
    """A subscription owned by the user; someone else's reads as not found."""
    subscription = (
        await db.execute(
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .options(
                selectinload(Subscription.user),
                selectinload(Subscription.plan),
                selectinload(Subscription.transaction),
            )
        )
    ).scalar_one_or_none()
    if not subscription or subscription.user_id != user_id:
        raise NotFoundError("Subscription not found")
    return subscription


async def cancel_subscription(
    db: AsyncSession,
    notifications,
    user: User,
    subscription_id: str,
    now: Optional[datetime] = None,
) -> tuple[Subscription, list[DeliveryReport]]:
    """active|pending → cancelled, stop auto-renew and email the agent."""
    now = now or utcnow()
    subscription = await get_user_subscription(db, user.id, subscription_id)
    if subscription.status not in CANCELLABLE:
        raise ConflictError(f'Cannot cancel a subscription with status "{subscription.status}"')

    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription.id, Subscription.status.in_(CANCELLABLE))
        .values(status=SubscriptionStatus.CANCELLED.value, auto_renew=False, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount != 1:
        raise ConflictError("Subscription changed while cancelling; reload and try again")
    await db.refresh(subscription, attribute_names=["status", "auto_renew", "updated_at"])
    await refresh_listing_visibility(db, user.id)

    tx = subscription.transaction
    deliveries = await dispatch_outbound(notifications, [
        OutboundEmail(
            to=user.email,
            subject="Your Subscription Has Been Cancelled",
            html=email_templates.subscription_cancelled(
                user.full_name,
                subscription.plan.name,
                tx.amount if tx else None,
                tx.reference if tx else None,
                now,
            ),
        )
    ])
    logger.info("Subscription %s cancelled by user %s", subscription.id, user.id)
    return subscription, deliveries


async def set_auto_renew(
    db: AsyncSession,
    notifications,
    user: User,
    subscription_id: str,
    enable: bool,
) -> tuple[Subscription, list[DeliveryReport]]:
    """Switch auto-renew on or off. Turning it off emails the agent."""
    subscription = await get_user_subscription(db, user.id, subscription_id)
    if subscription.status not in CANCELLABLE:
        raise ConflictError(f'Cannot change auto-renewal on a subscription with status "{subscription.status}"')
    if not enable and not subscription.auto_renew:
        raise ConflictError("Auto-renewal is already disabled for this subscription")

    subscription.auto_renew = enable
    subscription.updated_at = utcnow()
    await db.commit()

    deliveries: list[DeliveryReport] = []
    if not enable:
        deliveries = await dispatch_outbound(notifications, [
            OutboundEmail(
                to=user.email,
                subject="Auto-Renewal Stopped for Your Subscription",
                html=email_templates.auto_renewal_stopped(
                    user.full_name, subscription.plan.name, subscription.end_date
                ),
            )
        ])
    logger.info("Subscription %s auto_renew=%s", subscription.id, enable)
    return subscription, deliveries
