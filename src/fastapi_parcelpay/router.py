"""Router factory for fastapi-parcelpay."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.protocols import (
    EntityStore,
    PaymentIntentGateway,
    PaymentLogRetryStore,
)
from fastapi_parcelpay.routes.health import router as health_router
from fastapi_parcelpay.routes.parcels import router as parcels_router
from fastapi_parcelpay.routes.payments import router as payments_router
from fastapi_parcelpay.routes.tracking import router as tracking_router
from fastapi_parcelpay.routes.users import router as users_router


def create_parcel_router(
    *,
    config: ParcelPayConfig,
    store: EntityStore,
    gateway: PaymentIntentGateway,
    retry_store: PaymentLogRetryStore | None = None,
) -> APIRouter:
    """Create a configured API router.

    The store handle is acquired once by the caller and shared by every
    request through ``app.state``.

    Exception handlers are not registered here: the app must call
    ``register_exception_handlers`` before it starts serving, since
    handlers added once the middleware stack is built are never used.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        app.state.parcelpay_config = config
        app.state.parcelpay_store = store
        app.state.parcelpay_gateway = gateway
        app.state.parcelpay_retry_store = retry_store
        yield

    router = APIRouter(lifespan=lifespan)
    router.include_router(health_router)
    router.include_router(parcels_router)
    router.include_router(payments_router)
    router.include_router(tracking_router)
    router.include_router(users_router)
    return router
