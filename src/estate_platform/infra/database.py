"""Async database engine, request sessions and first-run setup."""

import logging
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from estate_platform.app.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


# (code, name, price in NGN, duration in days)
DEFAULT_PLANS = (
    ("basic-monthly", "Basic Monthly", Decimal("10000"), 30),
    ("pro-quarterly", "Pro Quarterly", Decimal("25000"), 90),
    ("pro-yearly", "Pro Yearly", Decimal("90000"), 365),
)


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def engine_options(database_url: str) -> dict:
    """create_async_engine kwargs for the backend named in the URL."""
    if is_sqlite(database_url):
        # The subscription sweep writes while request handlers hold the file
        return {"echo": False, "connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"echo": False, "pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


settings = get_settings()

engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: one session per request, rolled back if the handler raises."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def seed_subscription_plans(session: AsyncSession, plans=DEFAULT_PLANS) -> int:
    """Add any plan whose code is missing; existing plans keep their admin-set prices."""
    from estate_platform.domain.models import SubscriptionPlan

    existing = set((await session.execute(select(SubscriptionPlan.code))).scalars().all())
    added = [
        SubscriptionPlan(code=code, name=name, price=price, duration_days=days)
        for code, name, price, days in plans
        if code not in existing
    ]
    if added:
        session.add_all(added)
        await session.commit()
    return len(added)


async def init_db():
    """Create tables and seed default plans on first start. Use Alembic for production migrations."""
    import estate_platform.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if is_sqlite(settings.database_url):
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))

    if settings.seed_default_plans:
        async with async_session() as session:
            added = await seed_subscription_plans(session)
        if added:
            logger.info("Seeded %d subscription plans", added)
