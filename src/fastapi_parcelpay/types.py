"""Document shapes and value types shared by the store and the engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, TypedDict

from fastapi_parcelpay.exceptions import InvalidInputError

Document = dict[str, Any]


class PaymentStatus(StrEnum):
    """Parcel payment state. ``unpaid`` moves to ``paid`` exactly once."""

    UNPAID = "unpaid"
    PAID = "paid"


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of a single-document conditional update."""

    matched_count: int
    modified_count: int


@dataclass(frozen=True)
class PaymentIntent:
    """Charge intent returned by the payment gateway."""

    id: str
    client_secret: str


class ParcelDocument(TypedDict, total=False):
    _id: str
    created_by: str
    orderTime: datetime
    payment_status: str
    transactionId: str
    tracking_id: str


class PaymentDocument(TypedDict, total=False):
    _id: str
    email: str
    amount: int
    transactionId: str
    parcelId: str
    paymentMethod: str
    status: str
    paid_at_string: str
    paid_at: datetime


class TrackingEventDocument(TypedDict, total=False):
    _id: str
    tracking_id: str
    parcel_id: str
    status: str
    message: str
    time: str
    updated_by: str


class UserDocument(TypedDict, total=False):
    _id: str
    email: str
    created_at: datetime
    last_log_in: datetime


def new_document_id() -> str:
    return uuid.uuid4().hex


def parse_document_id(value: str) -> str:
    """Normalize a client-supplied document id.

    Raises InvalidInputError if the value is not a UUID.
    """
    try:
        return uuid.UUID(str(value)).hex
    except ValueError as exc:
        raise InvalidInputError(f"Invalid id: {value!r}") from exc
