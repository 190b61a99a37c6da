"""Payment-log replay with exponential backoff."""

import logging
from datetime import UTC, datetime, timedelta

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.exceptions import DuplicateDocumentError, StoreError
from fastapi_parcelpay.protocols import EntityStore, PaymentLogRetryStore
from fastapi_parcelpay.types import PaymentStatus

logger = logging.getLogger(__name__)


def compute_next_retry_at(
    attempt: int,
    backoff_seconds: int,
) -> datetime:
    """Compute the next retry time with exponential backoff.

    delay = backoff_seconds * 2^(attempt - 1)
    """
    delay = backoff_seconds * (2 ** (attempt - 1))
    return datetime.now(tz=UTC) + timedelta(seconds=delay)


def payment_to_payload(payment: dict) -> dict:
    """JSON-safe copy of a payment document."""
    payload = dict(payment)
    payload.pop("paid_at", None)
    return payload


def payment_from_payload(payload: dict) -> dict:
    payment = dict(payload)
    payment["paid_at"] = datetime.fromisoformat(payment["paid_at_string"])
    return payment


async def process_due_payment_logs(
    *,
    retry_store: PaymentLogRetryStore,
    store: EntityStore,
    config: ParcelPayConfig,
) -> int:
    """Insert payment records whose first write failed.

    Parcel state is never touched here; an entry is only replayed while
    its parcel is still paid with the same transaction.

    Returns the number of retries processed.
    """
    retries = await retry_store.get_due_retries(limit=10)
    processed = 0

    for retry in retries:
        retry_id = retry["id"]
        parcel_id = retry["parcel_id"]
        transaction_id = retry["transaction_id"]
        attempts = retry["attempts"]

        if attempts >= config.retry_max_attempts:
            logger.warning(
                "Payment log retry exhausted for parcel %s after %d attempts",
                parcel_id,
                attempts,
            )
            await retry_store.mark_exhausted(retry_id)
            processed += 1
            continue

        parcel = await store.parcels.find_one({"_id": parcel_id})
        if (
            parcel is None
            or parcel.get("payment_status") != PaymentStatus.PAID
            or parcel.get("transactionId") != transaction_id
        ):
            logger.error(
                "Retry %s: parcel %s is not paid with transaction %s, "
                "marking exhausted",
                retry_id,
                parcel_id,
                transaction_id,
            )
            await retry_store.mark_exhausted(retry_id)
            processed += 1
            continue

        try:
            existing = await store.payments.find_one(
                {"parcelId": parcel_id, "transactionId": transaction_id}
            )
            if existing is None:
                await store.payments.insert_one(
                    payment_from_payload(retry["payload"])
                )
        except DuplicateDocumentError:
            pass
        except StoreError as exc:
            new_attempts = attempts + 1
            await retry_store.mark_failed(retry_id, error=str(exc))
            if new_attempts >= config.retry_max_attempts:
                logger.warning(
                    "Payment log retry exhausted for parcel %s "
                    "after %d attempts: %s",
                    parcel_id,
                    new_attempts,
                    exc,
                )
                await retry_store.mark_exhausted(retry_id)
            else:
                logger.info(
                    "Retry %s: attempt %d failed: %s",
                    retry_id,
                    new_attempts,
                    exc,
                )
            processed += 1
            continue

        await retry_store.mark_succeeded(retry_id)
        logger.info(
            "Retry %s: payment for parcel %s logged",
            retry_id,
            parcel_id,
        )
        processed += 1

    return processed
