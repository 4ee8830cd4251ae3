"""Payment routes: callback verification and the Paystack webhook."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.app.dependencies import get_engine_config, get_notifications, get_paystack
from estate_platform.domain.models import Transaction
from estate_platform.infra.database import get_db
from estate_platform.services.payment_effects import PaymentEffectDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

WEBHOOK_EVENTS = {"charge.success", "charge.failed"}


def serialize_transaction(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "reference": tx.reference,
        "amount": float(tx.amount),
        "currency": tx.currency,
        "status": tx.status,
        "kind": tx.kind,
        "target_id": tx.target_id,
        "payment_mode": tx.payment_mode,
        "paid_at": tx.paid_at.isoformat() if tx.paid_at else None,
    }


@router.get("/verify/{reference}")
async def verify_payment(
    reference: str,
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Verify a payment after the gateway redirects the payer back."""
    dispatcher = PaymentEffectDispatcher(db, paystack, notifications, config)
    result = await dispatcher.verify(reference)
    if result.reason == "unknown_reference":
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {
        "verified": result.verified,
        "transaction": serialize_transaction(result.transaction) if result.transaction else None,
        "reason": result.reason,
    }


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifications=Depends(get_notifications),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Paystack webhook. Signature is an HMAC-SHA512 of the raw body."""
    body = await request.body()
    if not paystack.verify_signature(body, request.headers.get("x-paystack-signature")):
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event = payload.get("event")
    reference = (payload.get("data") or {}).get("reference")
    if event not in WEBHOOK_EVENTS or not reference:
        logger.info("Ignoring webhook event %s", event)
        return {"status": "ignored"}

    dispatcher = PaymentEffectDispatcher(db, paystack, notifications, config)
    result = await dispatcher.verify(reference)
    logger.info("Webhook %s for %s: verified=%s, applied=%s", event, reference, result.verified, result.effect_applied)
    return {"status": "ok", "verified": result.verified}
