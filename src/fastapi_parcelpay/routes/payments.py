"""Payment intent and payment completion endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_parcelpay.dependencies import get_engine, get_queries
from fastapi_parcelpay.queries import QueryService
from fastapi_parcelpay.reconciliation import ReconciliationEngine
from fastapi_parcelpay.schemas import (
    CreatedResponse,
    PaymentCompletionRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
)

router = APIRouter()


@router.post(
    "/create-payment-intent", response_model=PaymentIntentResponse
)
async def create_payment_intent(
    body: PaymentIntentRequest,
    engine: ReconciliationEngine = Depends(get_engine),
) -> PaymentIntentResponse:
    client_secret = await engine.create_payment_intent(body.amount_in_cents)
    return PaymentIntentResponse(client_secret=client_secret)


@router.post("/payments", status_code=201, response_model=CreatedResponse)
async def complete_payment(
    body: PaymentCompletionRequest,
    engine: ReconciliationEngine = Depends(get_engine),
) -> CreatedResponse:
    """Record a completed payment against an unpaid parcel."""
    payment_id = await engine.record_payment(
        parcel_id=body.parcel_id,
        transaction_id=body.transaction_id,
        payment_method=body.payment_method,
        email=body.email,
        amount=body.amount,
    )
    return CreatedResponse(
        message="Payment recorded successfully", inserted_id=payment_id
    )


@router.get("/payments")
async def list_payments(
    email: str | None = None,
    queries: QueryService = Depends(get_queries),
) -> list[dict]:
    """List payments, most recent first."""
    return await queries.list_payments(email)


@router.get("/payments/unlogged")
async def list_unlogged_payments(
    engine: ReconciliationEngine = Depends(get_engine),
) -> list[dict]:
    """Paid parcels still missing their payment record."""
    return await engine.find_unlogged_payments()
