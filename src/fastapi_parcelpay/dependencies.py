"""Dependency providers for request handlers."""

from __future__ import annotations

from fastapi import Request

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.protocols import (
    EntityStore,
    PaymentIntentGateway,
    PaymentLogRetryStore,
)
from fastapi_parcelpay.queries import QueryService
from fastapi_parcelpay.reconciliation import ReconciliationEngine
from fastapi_parcelpay.services import ParcelService, UserService


def get_config(request: Request) -> ParcelPayConfig:
    """Read config from FastAPI app state."""
    return request.app.state.parcelpay_config


def get_store(request: Request) -> EntityStore:
    """Read the shared entity store handle from FastAPI app state."""
    return request.app.state.parcelpay_store


def get_gateway(request: Request) -> PaymentIntentGateway:
    """Read payment gateway from FastAPI app state."""
    return request.app.state.parcelpay_gateway


def get_retry_store(request: Request) -> PaymentLogRetryStore | None:
    """Read retry store from FastAPI app state."""
    return getattr(request.app.state, "parcelpay_retry_store", None)


def get_engine(request: Request) -> ReconciliationEngine:
    """Create ReconciliationEngine for the current request."""
    return ReconciliationEngine(
        store=get_store(request),
        gateway=get_gateway(request),
        config=get_config(request),
        retry_store=get_retry_store(request),
    )


def get_queries(request: Request) -> QueryService:
    return QueryService(get_store(request))


def get_parcel_service(request: Request) -> ParcelService:
    return ParcelService(get_store(request), get_engine(request))


def get_user_service(request: Request) -> UserService:
    return UserService(get_store(request))
