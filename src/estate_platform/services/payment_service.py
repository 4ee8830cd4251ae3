"""Creates gateway transactions bound to exactly one target and starts checkout."""

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import TransactionStatus
from estate_platform.domain.errors import UpstreamError
from estate_platform.domain.models import Transaction
from estate_platform.services.payment_targets import PaymentTarget, target_id_of

logger = logging.getLogger(__name__)


def generate_reference(prefix: str) -> str:
    """Prefix followed by 15 random digits."""
    return prefix + "".join(str(secrets.randbelow(10)) for _ in range(15))


@dataclass(frozen=True)
class PaymentInit:
    transaction: Transaction
    authorization_url: str


async def create_transaction(
    db: AsyncSession,
    config: EngineConfig,
    target: PaymentTarget,
    amount,
    payer_email: str,
    meta: Optional[dict] = None,
) -> Transaction:
    tx = Transaction(
        reference=generate_reference(config.payment_reference_prefix),
        amount=Decimal(str(amount)),
        currency=config.currency,
        status=TransactionStatus.PENDING.value,
        kind=target.kind.value,
        target_id=target_id_of(target),
        payer_email=payer_email,
        meta=meta or {},
    )
    db.add(tx)
    await db.commit()
    await db.refresh(tx)
    logger.info("Transaction created: reference=%s, kind=%s, target=%s", tx.reference, tx.kind, tx.target_id)
    return tx


async def initialize_payment(
    db: AsyncSession,
    paystack,
    config: EngineConfig,
    target: PaymentTarget,
    amount,
    payer_email: str,
    meta: Optional[dict] = None,
) -> PaymentInit:
    """Create the transaction, then ask the gateway for a checkout URL.

    If the gateway call fails the transaction is marked failed and the
    UpstreamError is re-raised; the target itself is never touched here.
    """
    tx = await create_transaction(db, config, target, amount, payer_email, meta)
    try:
        data = await paystack.initialize_payment(
            email=payer_email,
            amount=tx.amount,
            reference=tx.reference,
            callback_url=config.payment_callback_url,
            metadata={"kind": tx.kind, "target_id": tx.target_id},
        )
    except UpstreamError:
        await db.execute(
            update(Transaction)
            .where(Transaction.id == tx.id, Transaction.status == TransactionStatus.PENDING.value)
            .values(status=TransactionStatus.FAILED.value, gateway_response="initialize_failed")
        )
        await db.commit()
        await db.refresh(tx)
        raise

    return PaymentInit(transaction=tx, authorization_url=data.get("authorization_url", ""))
