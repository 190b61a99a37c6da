"""Parcel and user write operations outside payment reconciliation."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from fastapi_parcelpay.exceptions import (
    DuplicateDocumentError,
    NotFoundError,
    StoreError,
)
from fastapi_parcelpay.protocols import EntityStore
from fastapi_parcelpay.reconciliation import ReconciliationEngine
from fastapi_parcelpay.types import PaymentStatus, parse_document_id

logger = logging.getLogger(__name__)

SERVER_MANAGED_PARCEL_FIELDS = (
    "_id",
    "orderTime",
    "payment_status",
    "transactionId",
)


def generate_tracking_id(now: datetime | None = None) -> str:
    """Human-readable tracking code, e.g. ``PCL-20261018-3F9A1C``."""
    now = now or datetime.now(tz=UTC)
    return f"PCL-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class ParcelService:
    def __init__(
        self, store: EntityStore, engine: ReconciliationEngine
    ) -> None:
        self.store = store
        self.engine = engine

    async def create_parcel(self, fields: Mapping[str, Any]) -> str:
        """Insert an unpaid parcel and return its id.

        Payment state and order time are always set here, never taken
        from the client.
        """
        now = datetime.now(tz=UTC)
        parcel = {
            key: value
            for key, value in fields.items()
            if key not in SERVER_MANAGED_PARCEL_FIELDS
        }
        parcel["orderTime"] = now
        parcel["payment_status"] = PaymentStatus.UNPAID.value
        if not parcel.get("tracking_id"):
            parcel["tracking_id"] = generate_tracking_id(now)

        parcel_id = await self.store.parcels.insert_one(parcel)
        try:
            await self.engine.append_tracking_event(
                parcel_id=parcel_id,
                status="created",
                message="Parcel created",
                updated_by=parcel.get("created_by") or "",
                tracking_id=parcel["tracking_id"],
            )
        except StoreError:
            logger.exception(
                "Creation tracking event for parcel %s not stored", parcel_id
            )
        return parcel_id

    async def delete_parcel(self, parcel_id: str) -> int:
        """Delete unconditionally. Payments and tracking events are kept."""
        parcel_id = parse_document_id(parcel_id)
        deleted = await self.store.parcels.delete_one({"_id": parcel_id})
        if deleted == 0:
            raise NotFoundError("Parcel", parcel_id)
        logger.info("Parcel %s deleted", parcel_id)
        return deleted


class UserService:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def upsert_on_login(self, fields: Mapping[str, Any]) -> dict:
        """Create the user on first sign-in, else refresh ``last_log_in``."""
        email = fields["email"]
        now = datetime.now(tz=UTC)

        existing = await self.store.users.find_one({"email": email})
        if existing is None:
            user = {
                key: value
                for key, value in fields.items()
                if key not in ("_id", "created_at", "last_log_in")
            }
            user["created_at"] = now
            user["last_log_in"] = now
            try:
                user_id = await self.store.users.insert_one(user)
            except DuplicateDocumentError:
                logger.info("Concurrent first sign-in for %s", email)
            else:
                return {
                    "message": "User created",
                    "inserted": True,
                    "insertedId": user_id,
                }

        await self.store.users.update_one(
            {"email": email}, {"last_log_in": now}
        )
        return {"message": "User already exists", "inserted": False}
