"""Keeps parcel payment state, payment records and tracking in step.

The store offers no multi-document transactions. Recording a payment is
therefore two ordered writes:

1. a conditional ``unpaid -> paid`` update of the parcel, which is the
   single commit point and rejects duplicates and retries;
2. the insert of the immutable payment record.

A failure between the two leaves a paid parcel without a payment record.
That state is reported as ``PaymentLogFailedAfterStateChangeError``,
queued for replay when a retry store is configured, and can be listed
with :meth:`ReconciliationEngine.find_unlogged_payments`.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.exceptions import (
    AlreadyPaidOrMissingError,
    GatewayError,
    PaymentLogFailedAfterStateChangeError,
    StoreError,
    InvalidInputError,
)
from fastapi_parcelpay.protocols import (
    EntityStore,
    PaymentIntentGateway,
    PaymentLogRetryStore,
)
from fastapi_parcelpay.retry import payment_to_payload
from fastapi_parcelpay.types import (
    Document,
    PaymentDocument,
    PaymentStatus,
    TrackingEventDocument,
    parse_document_id,
)

logger = logging.getLogger(__name__)


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInputError("Amount must be an integer in minor units")
    if amount < 0:
        raise InvalidInputError("Amount must not be negative")


def build_payment_document(
    *,
    parcel_id: str,
    transaction_id: str,
    payment_method: str,
    email: str,
    amount: int,
    paid_at: datetime | None = None,
) -> PaymentDocument:
    paid_at = paid_at or datetime.now(tz=UTC)
    return {
        "email": email,
        "amount": amount,
        "transactionId": transaction_id,
        "parcelId": parcel_id,
        "paymentMethod": payment_method,
        "status": PaymentStatus.PAID.value,
        "paid_at_string": paid_at.isoformat(),
        "paid_at": paid_at,
    }


class ReconciliationEngine:
    """Mutating payment and tracking operations over an entity store."""

    def __init__(
        self,
        *,
        store: EntityStore,
        gateway: PaymentIntentGateway,
        config: ParcelPayConfig,
        retry_store: PaymentLogRetryStore | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.config = config
        self.retry_store = retry_store

    async def create_payment_intent(self, amount: int) -> str:
        """Create a card charge intent and return its client secret."""
        _validate_amount(amount)
        try:
            intent = await asyncio.wait_for(
                self.gateway.create_payment_intent(
                    amount,
                    currency=self.config.currency,
                    payment_method_types=self.config.payment_method_types,
                ),
                timeout=self.config.gateway_timeout_seconds,
            )
        except TimeoutError as exc:
            logger.warning(
                "Payment intent for %d timed out after %ss",
                amount,
                self.config.gateway_timeout_seconds,
            )
            raise GatewayError("Payment gateway timed out") from exc
        return intent.client_secret

    async def record_payment(
        self,
        *,
        parcel_id: str,
        transaction_id: str,
        payment_method: str,
        email: str,
        amount: int,
    ) -> str:
        """Mark a parcel paid and log the payment. Returns the payment id."""
        parcel_id = parse_document_id(parcel_id)
        if not transaction_id:
            raise InvalidInputError("Transaction id must not be empty")
        _validate_amount(amount)

        result = await self.store.parcels.update_one(
            {"_id": parcel_id, "payment_status": PaymentStatus.UNPAID.value},
            {
                "payment_status": PaymentStatus.PAID.value,
                "transactionId": transaction_id,
            },
        )
        if result.modified_count != 1:
            logger.info(
                "Payment %s rejected: parcel %s missing or already paid",
                transaction_id,
                parcel_id,
            )
            raise AlreadyPaidOrMissingError(parcel_id)

        payment = build_payment_document(
            parcel_id=parcel_id,
            transaction_id=transaction_id,
            payment_method=payment_method,
            email=email,
            amount=amount,
        )
        try:
            payment_id = await self.store.payments.insert_one(payment)
        except StoreError as exc:
            logger.error(
                "Parcel %s marked paid with transaction %s but payment "
                "record failed: %s",
                parcel_id,
                transaction_id,
                exc,
            )
            await self._enqueue_payment_log(payment)
            raise PaymentLogFailedAfterStateChangeError(
                parcel_id, transaction_id
            ) from exc

        if self.config.track_payments:
            await self._track_payment(parcel_id, transaction_id, email)
        return payment_id

    async def append_tracking_event(
        self,
        *,
        parcel_id: str,
        status: str,
        message: str = "",
        updated_by: str = "",
        tracking_id: str = "",
    ) -> str:
        """Append a tracking event; the parcel reference is not checked."""
        event: TrackingEventDocument = {
            "tracking_id": tracking_id,
            "parcel_id": parcel_id,
            "status": status,
            "message": message,
            "time": datetime.now(tz=UTC).isoformat(),
            "updated_by": updated_by,
        }
        return await self.store.tracking_events.insert_one(event)

    async def find_unlogged_payments(self) -> list[Document]:
        """Paid parcels that have no payment record for their transaction.

        This is a full sweep: it reads every paid parcel and does one
        payment lookup per parcel, so its cost grows with the whole paid
        history. It is meant for operator-driven repair, not for request
        paths with latency targets.
        """
        parcels = await self.store.parcels.find(
            {"payment_status": PaymentStatus.PAID.value},
            sort=[("orderTime", -1)],
        )
        unlogged = []
        for parcel in parcels:
            payment = await self.store.payments.find_one(
                {
                    "parcelId": parcel["_id"],
                    "transactionId": parcel.get("transactionId"),
                }
            )
            if payment is None:
                unlogged.append(parcel)
        return unlogged

    async def _enqueue_payment_log(self, payment: PaymentDocument) -> None:
        if self.retry_store is None:
            return
        try:
            retry_id = await self.retry_store.enqueue(
                payment_to_payload(payment)
            )
        except Exception:
            logger.exception(
                "Could not queue payment log for parcel %s",
                payment["parcelId"],
            )
            return
        logger.warning(
            "Payment log for parcel %s queued for retry %s",
            payment["parcelId"],
            retry_id,
        )

    async def _track_payment(
        self, parcel_id: str, transaction_id: str, email: str
    ) -> None:
        try:
            parcel = await self.store.parcels.find_one({"_id": parcel_id})
            await self.append_tracking_event(
                parcel_id=parcel_id,
                status=PaymentStatus.PAID.value,
                message=f"Payment completed (transaction {transaction_id})",
                updated_by=email,
                tracking_id=(parcel or {}).get("tracking_id") or "",
            )
        except StoreError:
            logger.exception(
                "Payment tracking event for parcel %s not stored", parcel_id
            )
