"""SQLAlchemy payment-log retry store."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_parcelpay.contrib.sqlalchemy.models import PaymentLogRetryModel
from fastapi_parcelpay.retry import compute_next_retry_at


class SQLAlchemyPaymentLogRetryStore:
    """Persist payment records awaiting insertion in a SQLAlchemy table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        backoff_seconds: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._backoff_seconds = backoff_seconds

    async def enqueue(self, payment: dict) -> str:
        retry_id = str(uuid.uuid4())
        retry = PaymentLogRetryModel(
            id=retry_id,
            parcel_id=payment["parcelId"],
            transaction_id=payment["transactionId"],
            payload=payment,
            next_retry_at=compute_next_retry_at(
                attempt=1, backoff_seconds=self._backoff_seconds
            ),
        )
        async with self._session_factory() as session:
            session.add(retry)
            await session.commit()
        return retry_id

    async def get_due_retries(self, limit: int = 10) -> list[dict]:
        now = datetime.now(tz=UTC)
        stmt = (
            select(PaymentLogRetryModel)
            .where(
                PaymentLogRetryModel.status == "pending",
                or_(
                    PaymentLogRetryModel.next_retry_at.is_(None),
                    PaymentLogRetryModel.next_retry_at <= now,
                ),
            )
            .order_by(PaymentLogRetryModel.created_at)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                {
                    "id": retry.id,
                    "parcel_id": retry.parcel_id,
                    "transaction_id": retry.transaction_id,
                    "payload": retry.payload,
                    "attempts": retry.attempts,
                }
                for retry in result.scalars().all()
            ]

    async def mark_succeeded(self, retry_id: str) -> None:
        await self._set_status(retry_id, "succeeded")

    async def mark_failed(self, retry_id: str, error: str) -> None:
        async with self._session_factory() as session:
            retry = await session.get(PaymentLogRetryModel, retry_id)
            if retry is None:
                return
            retry.attempts += 1
            retry.last_error = error
            retry.next_retry_at = compute_next_retry_at(
                attempt=retry.attempts + 1,
                backoff_seconds=self._backoff_seconds,
            )
            await session.commit()

    async def mark_exhausted(self, retry_id: str) -> None:
        await self._set_status(retry_id, "exhausted")

    async def _set_status(self, retry_id: str, status: str) -> None:
        async with self._session_factory() as session:
            retry = await session.get(PaymentLogRetryModel, retry_id)
            if retry is None:
                return
            retry.status = status
            await session.commit()
