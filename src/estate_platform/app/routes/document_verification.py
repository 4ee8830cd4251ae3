"""Document verification routes: paid submission and third-party reviewer access."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.app.config import EngineConfig
from estate_platform.app.dependencies import get_engine_config, get_paystack
from estate_platform.domain.errors import EngineError
from estate_platform.domain.schemas import AccessCodeVerify, DocumentVerificationCreate, VerificationReportsCreate
from estate_platform.infra.database import get_db
from estate_platform.services import document_verification
from estate_platform.services.document_verification import DocumentInput, Submitter, VerificationReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/document-verifications", tags=["document-verification"])


@router.post("", status_code=201)
async def submit_documents(
    data: DocumentVerificationCreate,
    db: AsyncSession = Depends(get_db),
    paystack=Depends(get_paystack),
    config: EngineConfig = Depends(get_engine_config),
):
    """Submit up to two documents and receive a single payment link."""
    try:
        rows, init = await document_verification.submit_batch(
            db,
            paystack,
            config,
            Submitter(full_name=data.full_name, email=data.email, phone=data.phone, address=data.address),
            [DocumentInput(d.document_type, d.document_url, d.document_number) for d in data.documents],
        )
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {
        "payment_url": init.authorization_url,
        "reference": init.transaction.reference,
        "document_ids": [r.id for r in rows],
    }


@router.post("/access-code")
async def verify_access_code(data: AccessCodeVerify, db: AsyncSession = Depends(get_db)):
    try:
        ok = await document_verification.verify_access_code(db, data.document_id, data.access_code)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    if not ok:
        return {"success": False, "message": "Invalid access code"}
    return {"success": True, "message": "Access code verified successfully"}


@router.get("/{document_id}")
async def get_document_for_reviewer(document_id: str, db: AsyncSession = Depends(get_db)):
    """Document details for a reviewer whose access code was approved."""
    try:
        doc = await document_verification.get_document_for_reviewer(db, document_id)
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {
        "id": doc.id,
        "full_name": doc.full_name,
        "email": doc.email,
        "phone": doc.phone,
        "address": doc.address,
        "document_type": doc.document_type,
        "document_number": doc.document_number,
        "document_url": doc.document_url,
        "status": doc.status,
        "verification_reports": doc.verification_reports or [],
    }


@router.post("/{document_id}/reports")
async def submit_verification_reports(
    document_id: str,
    data: VerificationReportsCreate,
    db: AsyncSession = Depends(get_db),
):
    """Reviewer findings for an unlocked document; appended to earlier reports."""
    try:
        doc = await document_verification.submit_verification_reports(
            db,
            document_id,
            [
                VerificationReport(
                    original_document_type=r.original_document_type,
                    status=r.status,
                    new_document_url=r.new_document_url,
                    description=r.description,
                )
                for r in data.reports
            ],
        )
    except EngineError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {
        "success": True,
        "message": "Verification reports submitted successfully",
        "verification_reports": doc.verification_reports,
    }
