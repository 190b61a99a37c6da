"""Read-side projections over the entity store."""

from __future__ import annotations

from fastapi_parcelpay.exceptions import NotFoundError
from fastapi_parcelpay.protocols import EntityStore
from fastapi_parcelpay.types import Document, parse_document_id


class QueryService:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def list_parcels(self, email: str | None = None) -> list[Document]:
        """Parcels newest first, optionally only those by ``email``."""
        filter = {"created_by": email} if email else {}
        return await self.store.parcels.find(filter, sort=[("orderTime", -1)])

    async def get_parcel(self, parcel_id: str) -> Document:
        parcel_id = parse_document_id(parcel_id)
        parcel = await self.store.parcels.find_one({"_id": parcel_id})
        if parcel is None:
            raise NotFoundError("Parcel", parcel_id)
        return parcel

    async def list_payments(self, email: str | None = None) -> list[Document]:
        filter = {"email": email} if email else {}
        return await self.store.payments.find(filter, sort=[("paid_at", -1)])

    async def get_tracking_timeline(self, parcel_id: str) -> list[Document]:
        # References are weak: an unknown parcel simply has no events.
        return await self.store.tracking_events.find(
            {"parcel_id": parcel_id}, sort=[("time", 1)]
        )
