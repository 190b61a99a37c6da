"""fastapi-parcelpay public API."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "EntityStore",
    "ParcelPayConfig",
    "PaymentIntentGateway",
    "ReconciliationEngine",
    "__version__",
    "create_app",
    "create_parcel_router",
    "register_exception_handlers",
]

if TYPE_CHECKING:
    from fastapi_parcelpay.app import create_app
    from fastapi_parcelpay.config import ParcelPayConfig
    from fastapi_parcelpay.exceptions import register_exception_handlers
    from fastapi_parcelpay.protocols import EntityStore, PaymentIntentGateway
    from fastapi_parcelpay.reconciliation import ReconciliationEngine
    from fastapi_parcelpay.router import create_parcel_router


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name == "ParcelPayConfig":
        from fastapi_parcelpay.config import ParcelPayConfig

        return ParcelPayConfig
    if name == "create_parcel_router":
        from fastapi_parcelpay.router import create_parcel_router

        return create_parcel_router
    if name == "create_app":
        from fastapi_parcelpay.app import create_app

        return create_app
    if name == "ReconciliationEngine":
        from fastapi_parcelpay.reconciliation import ReconciliationEngine

        return ReconciliationEngine
    if name == "register_exception_handlers":
        from fastapi_parcelpay import exceptions

        return getattr(exceptions, name)
    if name in ("EntityStore", "PaymentIntentGateway"):
        from fastapi_parcelpay import protocols

        return getattr(protocols, name)
    raise AttributeError(
        f"module 'fastapi_parcelpay' has no attribute {name!r}"
    )
