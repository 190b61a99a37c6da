"""Parcel endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_parcelpay.dependencies import get_parcel_service, get_queries
from fastapi_parcelpay.queries import QueryService
from fastapi_parcelpay.schemas import (
    CreatedResponse,
    CreateParcelRequest,
    DeletedResponse,
)
from fastapi_parcelpay.services import ParcelService

router = APIRouter()


@router.get("/parcels")
async def list_parcels(
    email: str | None = None,
    queries: QueryService = Depends(get_queries),
) -> list[dict]:
    """List parcels, newest first, optionally filtered by creator."""
    return await queries.list_parcels(email)


@router.get("/parcels/{parcel_id}")
async def get_parcel(
    parcel_id: str,
    queries: QueryService = Depends(get_queries),
) -> dict:
    return await queries.get_parcel(parcel_id)


@router.post("/parcels", status_code=201, response_model=CreatedResponse)
async def create_parcel(
    body: CreateParcelRequest,
    parcels: ParcelService = Depends(get_parcel_service),
) -> CreatedResponse:
    """Create an unpaid parcel; the server sets ``orderTime``."""
    parcel_id = await parcels.create_parcel(
        body.model_dump(exclude_none=True)
    )
    return CreatedResponse(
        message="Parcel created successfully", inserted_id=parcel_id
    )


@router.delete("/parcels/{parcel_id}", response_model=DeletedResponse)
async def delete_parcel(
    parcel_id: str,
    parcels: ParcelService = Depends(get_parcel_service),
) -> DeletedResponse:
    deleted = await parcels.delete_parcel(parcel_id)
    return DeletedResponse(deleted_count=deleted)
