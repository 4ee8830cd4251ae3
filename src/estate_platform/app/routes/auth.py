"""Authentication dependencies shared by the inspection, payment and subscription routes."""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_platform.domain.models import Buyer, User
from estate_platform.infra.database import get_db
from estate_platform.services.auth_service import BUYER_ROLE, decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentActor:
    id: str
    role: str
    email: str
    full_name: str


def _bearer_payload(request: Request) -> dict:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_current_user_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency: extract the current agent/admin user from Bearer token."""
    payload = _bearer_payload(request)
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


async def get_current_actor(
    request: Request, db: AsyncSession = Depends(get_db)
) -> CurrentActor:
    """Dependency: resolve a buyer or a registered user from Bearer token."""
    payload = _bearer_payload(request)
    if payload.get("role") == BUYER_ROLE:
        buyer = (await db.execute(select(Buyer).where(Buyer.id == payload["sub"]))).scalar_one_or_none()
        if not buyer:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Buyer not found")
        return CurrentActor(id=buyer.id, role=BUYER_ROLE, email=buyer.email, full_name=buyer.full_name)

    user = (await db.execute(select(User).where(User.id == payload["sub"]))).scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return CurrentActor(id=user.id, role=user.role, email=user.email, full_name=user.full_name)
