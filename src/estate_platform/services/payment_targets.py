"""Tagged payment targets: which domain entity a transaction pays for."""

from dataclasses import dataclass
from typing import Union

from estate_platform.domain.enums import TransactionKind


@dataclass(frozen=True)
class InspectionTarget:
    booking_id: str
    kind: TransactionKind = TransactionKind.INSPECTION


@dataclass(frozen=True)
class SubscriptionTarget:
    subscription_id: str
    kind: TransactionKind = TransactionKind.SUBSCRIPTION


@dataclass(frozen=True)
class DocumentVerificationTarget:
    batch_id: str
    kind: TransactionKind = TransactionKind.DOCUMENT_VERIFICATION


PaymentTarget = Union[InspectionTarget, SubscriptionTarget, DocumentVerificationTarget]


def target_for(kind: TransactionKind, target_id: str) -> PaymentTarget:
    if kind == TransactionKind.INSPECTION:
        return InspectionTarget(target_id)
    if kind == TransactionKind.SUBSCRIPTION:
        return SubscriptionTarget(target_id)
    return DocumentVerificationTarget(target_id)


def target_id_of(target: PaymentTarget) -> str:
    if isinstance(target, InspectionTarget):
        return target.booking_id
    if isinstance(target, SubscriptionTarget):
        return target.subscription_id
    return target.batch_id
