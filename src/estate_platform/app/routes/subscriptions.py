"""Subscription routes for agents."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.app.dependencies import get_engine_config, get_notifications, get_paystack
from estate_platform.app.routes.auth import get_current_user_dep
from estate_platform.domain.errors import EngineError
from estate_platform.domain.models import User
from estate_platform.domain.schemas import AutoRenewToggle, PaymentLinkResponse, SubscriptionCreate
from estate_platform.infra.database import get_db
from estate_platform.services.subscription_service import cancel_subscription, set_auto_renew, start_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("", response_model=PaymentLinkResponse, status_code=201)
async def create_subscription(
    data: SubscriptionCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Start a subscription; it activates once the payment is verified."""
    try:
        _, init = await start_subscription(db, paystack, config, user, data.plan_code, data.auto_renew)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return PaymentLinkResponse(payment_url=init.authorization_url, reference=init.transaction.reference)


@router.post("/{subscription_id}/cancel")
async def cancel_user_subscription(
    subscription_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
):
    try:
        subscription, _ = await cancel_subscription(db, notifications, user, subscription_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"subscription_id": subscription.id, "status": subscription.status}


@router.patch("/{subscription_id}/auto-renew")
async def toggle_auto_renew(
    subscription_id: str,
    data: AutoRenewToggle,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
):
    """Turn auto-renew on or off. Renewals also need a card saved from a paid checkout."""
    try:
        subscription, _ = await set_auto_renew(db, notifications, user, subscription_id, data.enable)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {
        "subscription_id": subscription.id,
        "auto_renew": subscription.auto_renew,
        "card_on_file": bool(subscription.authorization_code),
    }
