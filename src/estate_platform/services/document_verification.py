"""Document verification: paid batch submission, third-party access codes and reviewer reports."""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.domain.enums import AccessCodeStatus, DocumentVerificationStatus
from estate_platform.domain.errors import AuthorizationError, NotFoundError, ValidationError
from estate_platform.domain.models import DocumentVerification
from estate_platform.services.negotiation_resolver import is_http_url
from estate_platform.services.payment_service import PaymentInit, initialize_payment
from estate_platform.services.payment_targets import DocumentVerificationTarget

logger = logging.getLogger(__name__)

MAX_DOCUMENTS_PER_BATCH = 2
REPORT_STATUSES = ("verified", "rejected")


@dataclass(frozen=True)
class Submitter:
    full_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class DocumentInput:
    document_type: str
    document_url: str
    document_number: Optional[str] = None


@dataclass(frozen=True)
class VerificationReport:
    original_document_type: str
    status: str
    new_document_url: Optional[str] = None
    description: Optional[str] = None


def generate_access_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


async def submit_batch(
    db: AsyncSession,
    paystack,
    config: EngineConfig,
    submitter: Submitter,
    documents: list[DocumentInput],
) -> tuple[list[DocumentVerification], PaymentInit]:
    """Store the documents as one pending batch and open a single checkout for all of them."""
    if not documents:
        raise ValidationError("documents", "At least one document is required")
    if len(documents) > MAX_DOCUMENTS_PER_BATCH:
        raise ValidationError("documents", f"You can only submit a maximum of {MAX_DOCUMENTS_PER_BATCH} documents per submission")
    if not (submitter.email or "").strip() or not (submitter.full_name or "").strip():
        raise ValidationError("email", "Submitter name and email are required")
    for doc in documents:
        if not (doc.document_type or "").strip():
            raise ValidationError("document_type", "Document type is required")
        if not is_http_url(doc.document_url):
            raise ValidationError("document_url", "Document URL must be a valid http(s) URL")

    batch_id = str(uuid.uuid4())
    fee = Decimal(config.document_verification_fee)
    rows = [
        DocumentVerification(
            batch_id=batch_id,
            full_name=submitter.full_name.strip(),
            email=submitter.email.strip().lower(),
            phone=submitter.phone,
            address=submitter.address,
            document_type=doc.document_type.strip(),
            document_number=doc.document_number,
            document_url=doc.document_url.strip(),
            amount_paid=fee,
            status=DocumentVerificationStatus.PENDING.value,
        )
        for doc in documents
    ]
    db.add_all(rows)
    await db.commit()

    init = await initialize_payment(
        db,
        paystack,
        config,
        DocumentVerificationTarget(batch_id),
        fee * len(rows),
        submitter.email.strip().lower(),
        meta={"document_ids": [r.id for r in rows]},
    )
    await db.execute(
        update(DocumentVerification)
        .where(DocumentVerification.batch_id == batch_id)
        .values(transaction_id=init.transaction.id)
    )
    await db.commit()
    logger.info("Document batch %s submitted (%d documents)", batch_id, len(rows))
    return rows, init


async def get_batch(db: AsyncSession, batch_id: str) -> list[DocumentVerification]:
    result = await db.execute(
        select(DocumentVerification)
        .where(DocumentVerification.batch_id == batch_id)
        .order_by(DocumentVerification.created_at, DocumentVerification.id)
    )
    return list(result.scalars().all())


async def _get_document(db: AsyncSession, document_id: str) -> DocumentVerification:
    doc = (
        await db.execute(select(DocumentVerification).where(DocumentVerification.id == document_id))
    ).scalar_one_or_none()
    if not doc:
        raise NotFoundError("Document verification record not found")
    return doc


async def verify_access_code(db: AsyncSession, document_id: str, access_code: str) -> bool:
    """Unlock a document for a third-party reviewer. Wrong codes return False."""
    if not document_id or not access_code:
        raise ValidationError("access_code", "Document ID and access code are required")
    doc = await _get_document(db, document_id)
    if not doc.access_code or not secrets.compare_digest(doc.access_code, access_code.strip()):
        logger.info("Invalid access code for document %s", document_id)
        return False
    if doc.access_code_status != AccessCodeStatus.APPROVED.value:
        doc.access_code_status = AccessCodeStatus.APPROVED.value
        await db.commit()
    return True


async def get_document_for_reviewer(db: AsyncSession, document_id: str) -> DocumentVerification:
    doc = await _get_document(db, document_id)
    if doc.access_code_status != AccessCodeStatus.APPROVED.value:
        raise AuthorizationError("Access code not approved. Please verify the access code first.")
    return doc


async def submit_verification_reports(
    db: AsyncSession,
    document_id: str,
    reports: list[VerificationReport],
    now: Optional[datetime] = None,
) -> DocumentVerification:
    """Append a reviewer's findings to an unlocked document.

    Earlier reports are kept; each call adds to the list.
    """
    if not reports:
        raise ValidationError("reports", "At least one report is required")
    for report in reports:
        if not (report.original_document_type or "").strip():
            raise ValidationError("original_document_type", "Each report must include the original document type")
        if report.status not in REPORT_STATUSES:
            raise ValidationError("status", "Status must be either 'verified' or 'rejected'")
        if report.new_document_url and not is_http_url(report.new_document_url):
            raise ValidationError("new_document_url", "New document URL must be a valid http(s) URL")

    doc = await get_document_for_reviewer(db, document_id)
    verified_at = (now or datetime.now(timezone.utc).replace(tzinfo=None)).isoformat()
    entries = [
        {
            "original_document_type": r.original_document_type.strip(),
            "new_document_url": r.new_document_url,
            "description": r.description,
            "status": r.status,
            "verified_at": verified_at,
        }
        for r in reports
    ]
    # Reassign so the JSON column is flagged dirty
    doc.verification_reports = [*(doc.verification_reports or []), *entries]
    await db.commit()
    logger.info("Verification reports submitted for document %s (%d)", document_id, len(entries))
    return doc
