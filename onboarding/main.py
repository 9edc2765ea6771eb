"""FastAPI application for the multi-step customer registration form.

The app exposes the customer data step: each request validates the posted
form, persists customer, address, payment settings and invoicing settings
through the entity chain, checks whether the step is complete, and reports
progress back to the form.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI

from onboarding.config import CHAIN_COMMIT_POLICY, LOG_LEVEL
from onboarding.database import engine
from onboarding.routes import customers

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: log settings on startup, release the pool on shutdown."""
    logger.info("Onboarding service starting (chain commit policy: %s)", CHAIN_COMMIT_POLICY)

    yield

    logger.info("Disposing database engine...")
    await engine.dispose()
    logger.info("Onboarding service stopped")


app = FastAPI(
    title="Customer Onboarding",
    description=(
        "Multi-step customer registration. The customer data step persists "
        "customer, address, payment and invoicing settings in dependency "
        "order and reports which fields are still missing."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(customers.router, prefix="/customers", tags=["Customer Registration"])


@app.get("/health")
async def health_check() -> dict:
    """Application health check endpoint."""
    return {"status": "healthy", "chain_commit_policy": CHAIN_COMMIT_POLICY}
