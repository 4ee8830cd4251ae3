"""Append-only audit trail of inspection state transitions."""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.domain.models import InspectionActivityLog

logger = logging.getLogger(__name__)


async def log_activity(
    db: AsyncSession,
    inspection_id: str,
    property_id: str,
    sender_role: str,
    message: str,
    sender_id: Optional[str] = None,
    status: Optional[str] = None,
    stage: Optional[str] = None,
    meta: Optional[dict] = None,
) -> InspectionActivityLog:
    """Append one entry and commit it."""
    entry = InspectionActivityLog(
        inspection_id=inspection_id,
        property_id=property_id,
        sender_id=sender_id,
        sender_role=sender_role,
        message=message,
        status=status,
        stage=stage,
        meta=meta or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.commit()
    logger.info("Activity logged: inspection=%s, status=%s, by=%s", inspection_id, status, sender_role)
    return entry


def serialize_log(entry: InspectionActivityLog) -> dict:
    return {
        "id": entry.id,
        "inspection_id": entry.inspection_id,
        "property_id": entry.property_id,
        "sender_id": entry.sender_id,
        "sender_role": entry.sender_role,
        "message": entry.message,
        "status": entry.status,
        "stage": entry.stage,
        "meta": entry.meta or {},
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


async def _paginate(db: AsyncSession, column, value: str, page: int, limit: int) -> dict:
    page = max(1, page)
    limit = max(1, limit)

    total = (
        await db.execute(select(func.count()).select_from(InspectionActivityLog).where(column == value))
    ).scalar_one()
    result = await db.execute(
        select(InspectionActivityLog)
        .where(column == value)
        .order_by(InspectionActivityLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [serialize_log(e) for e in result.scalars().all()],
        "pagination": {
            "total": total,
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "per_page": limit,
        },
    }


async def get_logs_by_inspection(db: AsyncSession, inspection_id: str, page: int = 1, limit: int = 10) -> dict:
    """Newest-first page of entries for one inspection."""
    return await _paginate(db, InspectionActivityLog.inspection_id, inspection_id, page, limit)


async def get_logs_by_property(db: AsyncSession, property_id: str, page: int = 1, limit: int = 10) -> dict:
    """Newest-first page of entries across every inspection of a property."""
    return await _paginate(db, InspectionActivityLog.property_id, property_id, page, limit)
