"""Application factory and process entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.contrib.sqlalchemy.models import Base
from fastapi_parcelpay.contrib.sqlalchemy.retry_store import (
    SQLAlchemyPaymentLogRetryStore,
)
from fastapi_parcelpay.contrib.sqlalchemy.store import SQLAlchemyEntityStore
from fastapi_parcelpay.exceptions import register_exception_handlers
from fastapi_parcelpay.gateway import StripePaymentIntentGateway
from fastapi_parcelpay.protocols import (
    EntityStore,
    PaymentIntentGateway,
    PaymentLogRetryStore,
)
from fastapi_parcelpay.retry import process_due_payment_logs
from fastapi_parcelpay.router import create_parcel_router

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


async def run_retry_worker(
    *,
    retry_store: PaymentLogRetryStore,
    store: EntityStore,
    config: ParcelPayConfig,
) -> None:
    """Replay queued payment logs every ``retry_poll_seconds``."""
    while True:
        await asyncio.sleep(config.retry_poll_seconds)
        try:
            processed = await process_due_payment_logs(
                retry_store=retry_store, store=store, config=config
            )
        except Exception:
            logger.exception("Payment log retry pass failed")
            continue
        if processed:
            logger.info("Processed %d payment log retries", processed)


def create_app(
    config: ParcelPayConfig | None = None,
    *,
    gateway: PaymentIntentGateway | None = None,
) -> FastAPI:
    """Build the service.

    Reads ``ParcelPayConfig`` from the environment when none is given, so
    missing settings fail here rather than on the first request.
    """
    config = config or ParcelPayConfig()

    engine = create_async_engine(config.database_url, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    store = SQLAlchemyEntityStore(session_factory)
    retry_store = (
        SQLAlchemyPaymentLogRetryStore(
            session_factory, backoff_seconds=config.retry_backoff_seconds
        )
        if config.retry_enabled
        else None
    )
    gateway = gateway or StripePaymentIntentGateway(
        config.stripe_secret_key.get_secret_value(),
        timeout=config.gateway_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        worker = None
        if retry_store is not None:
            worker = asyncio.create_task(
                run_retry_worker(
                    retry_store=retry_store, store=store, config=config
                )
            )
        yield
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        await engine.dispose()

    app = FastAPI(title="fastapi-parcelpay", lifespan=lifespan)
    register_exception_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(
        create_parcel_router(
            config=config,
            store=store,
            gateway=gateway,
            retry_store=retry_store,
        )
    )
    return app


def main() -> None:
    config = ParcelPayConfig()
    configure_logging(config.log_level)
    logger.info("Starting parcelpay on %s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
