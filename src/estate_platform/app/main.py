"""FastAPI application entry point for the Estate Platform API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from estate_platform.app.config import get_settings
from estate_platform.app.dependencies import get_engine_config, get_notifications, get_paystack
from estate_platform.infra.database import async_session, init_db
from estate_platform.services.subscription_monitor import run_subscription_sweep

logger = logging.getLogger(__name__)


async def subscription_monitor_loop():
    """Run subscription warning / renewal / expiry jobs on a fixed interval."""
    interval = get_settings().subscription_sweep_interval_minutes
    while True:
        try:
            async with async_session() as db:
                counts = await run_subscription_sweep(
                    db, get_paystack(), get_notifications(), get_engine_config()
                )
                if any(counts.values()):
                    logger.info("Subscription monitor: %s", counts)
        except Exception as e:
            logger.error("Subscription monitor error: %s", e)
        await asyncio.sleep(interval * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database and start the subscription monitor."""
    await init_db()
    task = asyncio.create_task(subscription_monitor_loop())
    yield
    task.cancel()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Estate Platform API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: allow all origins in debug mode
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from estate_platform.app.routes.inspections import router as inspections_router
from estate_platform.app.routes.payments import router as payments_router
from estate_platform.app.routes.subscriptions import router as subscriptions_router
from estate_platform.app.routes.document_verification import router as document_verification_router

app.include_router(inspections_router)
app.include_router(payments_router)
app.include_router(subscriptions_router)
app.include_router(document_verification_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "estate-platform"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "estate_platform.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
