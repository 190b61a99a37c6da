"""SQLAlchemy tables backing the document collections."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

from sqlalchemy import (
    JSON,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.orm.attributes import InstrumentedAttribute


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class DocumentMixin:
    """Maps document keys onto columns.

    Keys listed in ``__document_fields__`` live in their own columns and
    can be filtered, sorted and patched. Other keys go to the JSON column
    named by ``__extra_field__``, or are rejected when there is none.
    """

    __document_fields__: ClassVar[dict[str, str]] = {}
    __extra_field__: ClassVar[str | None] = None

    @classmethod
    def column_for(cls, key: str) -> InstrumentedAttribute:
        if key == "_id":
            return cls.id
        return getattr(cls, cls.__document_fields__[key])

    @classmethod
    def values_from_document(
        cls, document: Mapping[str, Any]
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in document.items():
            if key == "_id":
                values["id"] = value
            elif key in cls.__document_fields__:
                values[cls.__document_fields__[key]] = value
            else:
                extra[key] = value
        if extra:
            if cls.__extra_field__ is None:
                raise KeyError(", ".join(sorted(extra)))
            values[cls.__extra_field__] = extra
        return values

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        if self.__extra_field__ is not None:
            document.update(getattr(self, self.__extra_field__) or {})
        document["_id"] = self.id
        for key, attr in self.__document_fields__.items():
            document[key] = getattr(self, attr)
        return document


class UserModel(DocumentMixin, Base):
    """Account keyed by unique email; profile fields are opaque."""

    __tablename__ = "parcelpay_users"
    __document_fields__ = {
        "email": "email",
        "created_at": "created_at",
        "last_log_in": "last_log_in",
    }
    __extra_field__ = "profile"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    last_log_in: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    profile: Mapped[dict] = mapped_column(JSON, default=dict)


class ParcelModel(DocumentMixin, Base):
    """Delivery order. Delivery details are stored as opaque JSON."""

    __tablename__ = "parcelpay_parcels"
    __document_fields__ = {
        "created_by": "created_by",
        "orderTime": "order_time",
        "payment_status": "payment_status",
        "transactionId": "transaction_id",
        "tracking_id": "tracking_id",
    }
    __extra_field__ = "details"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    created_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    order_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    payment_status: Mapped[str] = mapped_column(
        String(16), default="unpaid", index=True
    )
    transaction_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    tracking_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    details: Mapped[dict] = mapped_column(JSON, default=dict)


class PaymentModel(DocumentMixin, Base):
    """Immutable payment record, at most one per parcel and transaction."""

    __tablename__ = "parcelpay_payments"
    __table_args__ = (
        UniqueConstraint(
            "parcel_id",
            "transaction_id",
            name="uq_parcelpay_payments_parcel_transaction",
        ),
    )
    __document_fields__ = {
        "email": "email",
        "amount": "amount",
        "transactionId": "transaction_id",
        "parcelId": "parcel_id",
        "paymentMethod": "payment_method",
        "status": "status",
        "paid_at_string": "paid_at_string",
        "paid_at": "paid_at",
    }

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    transaction_id: Mapped[str] = mapped_column(String(255))
    parcel_id: Mapped[str] = mapped_column(String(32), index=True)
    payment_method: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[str] = mapped_column(String(16), default="paid")
    paid_at_string: Mapped[str] = mapped_column(String(64))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class TrackingEventModel(DocumentMixin, Base):
    """Append-only tracking log entry."""

    __tablename__ = "parcelpay_tracking_events"
    __document_fields__ = {
        "tracking_id": "tracking_id",
        "parcel_id": "parcel_id",
        "status": "status",
        "message": "message",
        "time": "time",
        "updated_by": "updated_by",
    }

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tracking_id: Mapped[str] = mapped_column(String(64), default="")
    parcel_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text, default="")
    time: Mapped[str] = mapped_column(String(64))
    updated_by: Mapped[str] = mapped_column(String(255), default="")


class PaymentLogRetryModel(Base):
    """Payment record queued for another insert attempt."""

    __tablename__ = "parcelpay_payment_log_retries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    parcel_id: Mapped[str] = mapped_column(String(32), index=True)
    transaction_id: Mapped[str] = mapped_column(String(255))
    payload: Mapped[dict] = mapped_column(JSON)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_retry_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
