"""Tracking timeline endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_parcelpay.dependencies import get_engine, get_queries
from fastapi_parcelpay.queries import QueryService
from fastapi_parcelpay.reconciliation import ReconciliationEngine
from fastapi_parcelpay.schemas import (
    TrackingCreatedResponse,
    TrackingEventRequest,
)

router = APIRouter()


@router.post("/tracking", response_model=TrackingCreatedResponse)
async def append_tracking_event(
    body: TrackingEventRequest,
    engine: ReconciliationEngine = Depends(get_engine),
) -> TrackingCreatedResponse:
    event_id = await engine.append_tracking_event(
        parcel_id=body.parcel_id,
        status=body.status,
        message=body.message,
        updated_by=body.updated_by,
        tracking_id=body.tracking_id,
    )
    return TrackingCreatedResponse(inserted_id=event_id)


@router.get("/tracking/{parcel_id}")
async def tracking_timeline(
    parcel_id: str,
    queries: QueryService = Depends(get_queries),
) -> list[dict]:
    """Tracking events of a parcel in timestamp order."""
    return await queries.get_tracking_timeline(parcel_id)
