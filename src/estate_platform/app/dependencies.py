"""FastAPI dependencies for engine collaborators (overridable in tests)."""

from functools import lru_cache

from estate_platform.app.config import EngineConfig, get_settings
from estate_platform.infra.database import async_session
from estate_platform.services.notification_gateway import DefaultNotificationGateway, NotificationGateway
from estate_platform.services.paystack_client import PaystackClient


@lru_cache
def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings(get_settings())


@lru_cache
def get_paystack() -> PaystackClient:
    s = get_settings()
    return PaystackClient(s.paystack_secret_key, s.paystack_base_url)


@lru_cache
def get_notifications() -> NotificationGateway:
    return DefaultNotificationGateway(async_session)
