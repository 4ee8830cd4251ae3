"""Shared test infrastructure for the Estate Platform test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- notifications: mock NotificationGateway capturing emails and in-app notifications
- paystack: mock PaystackClient with a working initialize_payment
- config: EngineConfig pointing at a test client link
- make_user / make_buyer / make_property / make_booking / make_plan / make_subscription factories
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from estate_platform.infra.database import Base, engine_options

import estate_platform.domain.models  # noqa: F401

from estate_platform.app.config import EngineConfig
from estate_platform.domain.models import (
    Buyer,
    InspectionBooking,
    Property,
    Subscription,
    SubscriptionPlan,
    User,
)
from estate_platform.services.paystack_client import GatewayVerification


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory():
    """Fresh in-memory engine + tables per test; yields the session factory."""
    url = "sqlite+aiosqlite://"
    engine = create_async_engine(url, **engine_options(url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    """Async SQLite in-memory session with all tables created."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def notifications():
    """Mock NotificationGateway.

    Emails are appended to .emails as (to, subject) tuples and in-app
    notifications to .notifications as (user_id, title) tuples.
    """
    mock = MagicMock()
    mock.emails = []
    mock.notifications = []

    async def _send_email(to, subject, html, text=None):
        mock.emails.append((to, subject))
        return True

    async def _create_notification(user_id, title, message, meta=None):
        mock.notifications.append((user_id, title))

    mock.send_email = AsyncMock(side_effect=_send_email)
    mock.create_notification = AsyncMock(side_effect=_create_notification)
    return mock


@pytest.fixture
def paystack():
    """Mock PaystackClient. Tests set verify_payment / charge_authorization results."""
    mock = MagicMock()

    def _initialize(**kwargs):
        return {
            "authorization_url": f"https://checkout.paystack.test/{kwargs['reference']}",
            "reference": kwargs["reference"],
        }

    mock.initialize_payment = AsyncMock(side_effect=_initialize)
    mock.verify_payment = AsyncMock()
    mock.charge_authorization = AsyncMock()
    mock.verify_signature = MagicMock(return_value=True)
    return mock


@pytest.fixture
def gateway_result():
    """Factory for GatewayVerification values."""
    def _factory(reference: str, status: str = "success", amount="5000", authorization=None):
        return GatewayVerification(
            reference=reference,
            status=status,
            amount=Decimal(str(amount)),
            channel="card",
            gateway_response="Approved" if status == "success" else "Declined",
            authorization=authorization or {},
        )

    return _factory


@pytest.fixture
def config():
    return EngineConfig(
        client_link="http://client.test",
        verifier_default_email="verify@test.com",
        verifier_mailboxes={"survey-plan": "survey@test.com"},
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates an agent User row."""
    async def _factory(full_name: str = "Ada Agent", email: str | None = None, role: str = "agent") -> User:
        user = User(
            id=str(uuid.uuid4()),
            full_name=full_name,
            email=email or f"agent-{uuid.uuid4().hex[:8]}@test.com",
            role=role,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_buyer(db_session):
    """Factory that creates a Buyer row."""
    async def _factory(full_name: str = "Bola Buyer", email: str | None = None) -> Buyer:
        buyer = Buyer(
            id=str(uuid.uuid4()),
            full_name=full_name,
            email=email or f"buyer-{uuid.uuid4().hex[:8]}@test.com",
            phone="+2348000000000",
        )
        db_session.add(buyer)
        await db_session.commit()
        return buyer

    return _factory


@pytest.fixture
def make_property(db_session, make_user):
    """Factory that creates a Property owned by a (new) agent."""
    async def _factory(owner: User | None = None, inspection_fee: int | None = None) -> Property:
        owner = owner or await make_user()
        prop = Property(
            id=str(uuid.uuid4()),
            owner_id=owner.id,
            title="3 Bedroom Flat",
            property_type="residential",
            state="Lagos",
            local_government="Eti-Osa",
            area="Lekki Phase 1",
            price=Decimal("75000000"),
            inspection_fee=inspection_fee,
        )
        db_session.add(prop)
        await db_session.commit()
        return prop

    return _factory


@pytest.fixture
def make_booking(db_session, make_property, make_buyer):
    """Factory that creates an InspectionBooking in any state.

    Usage:
        booking = await make_booking(status="negotiation_countered", stage="negotiation",
                                     pending_response_from="seller", negotiation_price=400000)
    """
    async def _factory(**overrides) -> InspectionBooking:
        prop = overrides.pop("property", None) or await make_property()
        buyer = overrides.pop("buyer", None) or await make_buyer()
        values = {
            "id": str(uuid.uuid4()),
            "property_id": prop.id,
            "buyer_id": buyer.id,
            "owner_id": prop.owner_id,
            "inspection_type": "price",
            "status": "active_negotiation",
            "stage": "negotiation",
            "pending_response_from": "seller",
            "inspection_status": "new",
            "is_negotiating": True,
            "negotiation_price": Decimal("400000"),
            "inspection_date": date(2026, 11, 2),
            "inspection_time": "10:00 AM",
            "receiver_mode": "platform",
        }
        values.update(overrides)
        booking = InspectionBooking(**values)
        db_session.add(booking)
        await db_session.commit()
        return booking

    return _factory


@pytest.fixture
def make_plan(db_session):
    async def _factory(code: str = "pro-monthly", price: str = "25000", duration_days: int = 30) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            id=str(uuid.uuid4()),
            code=code,
            name="Pro Monthly",
            price=Decimal(price),
            duration_days=duration_days,
        )
        db_session.add(plan)
        await db_session.commit()
        return plan

    return _factory


@pytest.fixture
def make_subscription(db_session, make_user, make_plan):
    """Factory that creates a Subscription for a (new) agent on a (new) plan."""
    async def _factory(user: User | None = None, plan: SubscriptionPlan | None = None, **overrides) -> Subscription:
        user = user or await make_user()
        plan = plan or await make_plan(code=f"plan-{uuid.uuid4().hex[:6]}")
        values = {
            "id": str(uuid.uuid4()),
            "user_id": user.id,
            "plan_id": plan.id,
            "status": "pending",
            "auto_renew": False,
        }
        values.update(overrides)
        sub = Subscription(**values)
        db_session.add(sub)
        await db_session.commit()
        return sub

    return _factory
