"""Error taxonomy and handlers mapping it to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ParcelPayError(Exception):
    """Base class for all errors raised by fastapi-parcelpay."""


class NotFoundError(ParcelPayError):
    """Referenced entity is absent."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class AlreadyPaidOrMissingError(ParcelPayError):
    """Guarded unpaid -> paid transition matched no parcel."""

    def __init__(self, parcel_id: str) -> None:
        self.parcel_id = parcel_id
        super().__init__(
            f"Parcel {parcel_id} does not exist or is already paid"
        )


class PaymentLogFailedAfterStateChangeError(ParcelPayError):
    """Parcel was marked paid but its payment record was not written.

    Requires manual or background reconciliation; never a plain retry.
    """

    def __init__(self, parcel_id: str, transaction_id: str) -> None:
        self.parcel_id = parcel_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Parcel {parcel_id} marked paid with transaction "
            f"{transaction_id}, but the payment record could not be stored"
        )


class GatewayError(ParcelPayError):
    """Payment intent gateway call failed."""


class StoreError(ParcelPayError):
    """Entity store failure."""


class DuplicateDocumentError(StoreError):
    """Insert violated a unique key."""


class InvalidInputError(ParcelPayError):
    """Malformed input, e.g. unparsable id or negative amount."""


def _error_response(
    status_code: int, exc: Exception, code: str, **extra
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register parcelpay exception handlers on a FastAPI app.

    More specific handlers must be registered first so FastAPI
    matches them before the generic ParcelPayError handler.

    Handler order (most specific first):
    1. NotFoundError -> 404
    2. AlreadyPaidOrMissingError -> 400
    3. PaymentLogFailedAfterStateChangeError -> 500
    4. GatewayError -> 500
    5. StoreError -> 500
    6. InvalidInputError, RequestValidationError -> 400
    7. ParcelPayError -> 500 (catch-all)
    """

    @app.exception_handler(NotFoundError)
    async def _not_found(
        request: Request,
        exc: NotFoundError,
    ) -> JSONResponse:
        return _error_response(404, exc, "not_found")

    @app.exception_handler(AlreadyPaidOrMissingError)
    async def _already_paid(
        request: Request,
        exc: AlreadyPaidOrMissingError,
    ) -> JSONResponse:
        return _error_response(400, exc, "already_paid_or_missing")

    @app.exception_handler(PaymentLogFailedAfterStateChangeError)
    async def _payment_log_failed(
        request: Request,
        exc: PaymentLogFailedAfterStateChangeError,
    ) -> JSONResponse:
        return _error_response(
            500,
            exc,
            "payment_log_failed_after_state_change",
            parcelId=exc.parcel_id,
            transactionId=exc.transaction_id,
        )

    @app.exception_handler(GatewayError)
    async def _gateway_error(
        request: Request,
        exc: GatewayError,
    ) -> JSONResponse:
        return _error_response(500, exc, "gateway_error")

    @app.exception_handler(StoreError)
    async def _store_error(
        request: Request,
        exc: StoreError,
    ) -> JSONResponse:
        return _error_response(500, exc, "store_error")

    @app.exception_handler(InvalidInputError)
    async def _invalid_input(
        request: Request,
        exc: InvalidInputError,
    ) -> JSONResponse:
        return _error_response(400, exc, "validation_error")

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Invalid request body",
                "code": "validation_error",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(ParcelPayError)
    async def _parcelpay_error(
        request: Request,
        exc: ParcelPayError,
    ) -> JSONResponse:
        return _error_response(500, exc, "parcelpay_error")
