"""Collaborator contracts consumed by the reconciliation engine."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from fastapi_parcelpay.types import Document, PaymentIntent, UpdateResult

Filter = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]


@runtime_checkable
class DocumentCollection(Protocol):
    """One collection of the entity store.

    Each call is atomic for a single document only. ``update_one`` must
    report modified documents separately from matched ones: a match whose
    values already equal the patch is not a modification.
    """

    async def find(
        self, filter: Filter | None = None, sort: Sort | None = None
    ) -> list[Document]: ...

    async def find_one(self, filter: Filter) -> Document | None: ...

    async def insert_one(self, document: Mapping[str, Any]) -> str: ...

    async def update_one(
        self, filter: Filter, patch: Mapping[str, Any]
    ) -> UpdateResult: ...

    async def delete_one(self, filter: Filter) -> int: ...


@runtime_checkable
class EntityStore(Protocol):
    """Long-lived store handle shared by all requests."""

    users: DocumentCollection
    parcels: DocumentCollection
    payments: DocumentCollection
    tracking_events: DocumentCollection


@runtime_checkable
class PaymentIntentGateway(Protocol):
    """Creates charge intents with an external payment processor."""

    async def create_payment_intent(
        self,
        amount: int,
        *,
        currency: str,
        payment_method_types: Sequence[str],
    ) -> PaymentIntent: ...


@runtime_checkable
class PaymentLogRetryStore(Protocol):
    """Storage abstraction for payment records awaiting a second write."""

    async def enqueue(self, payment: dict) -> str: ...

    async def get_due_retries(self, limit: int = 10) -> list[dict]: ...

    async def mark_succeeded(self, retry_id: str) -> None: ...

    async def mark_failed(
        self,
        retry_id: str,
        error: str,
    ) -> None: ...

    async def mark_exhausted(self, retry_id: str) -> None: ...
