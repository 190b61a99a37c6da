"""Shared fixtures for fastapi-parcelpay tests."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fastapi_parcelpay.config import ParcelPayConfig
from fastapi_parcelpay.exceptions import (
    DuplicateDocumentError,
    GatewayError,
    register_exception_handlers,
)
from fastapi_parcelpay.router import create_parcel_router
from fastapi_parcelpay.types import (
    PaymentIntent,
    PaymentStatus,
    UpdateResult,
    new_document_id,
)


class InMemoryCollection:
    """Document collection kept in a dict.

    No await happens between reading and writing a document, so every
    call is atomic with respect to other coroutines.
    """

    def __init__(self, unique: tuple[str, ...] = ()) -> None:
        self.documents: dict[str, dict] = {}
        self.unique = unique

    @staticmethod
    def _matches(document: dict, filter: Mapping[str, Any] | None) -> bool:
        return all(
            document.get(key) == value for key, value in (filter or {}).items()
        )

    async def find(self, filter=None, sort=None) -> list[dict]:
        found = [
            copy.deepcopy(d)
            for d in self.documents.values()
            if self._matches(d, filter)
        ]
        for key, direction in reversed(list(sort or ())):
            found.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return found

    async def find_one(self, filter) -> dict | None:
        for document in self.documents.values():
            if self._matches(document, filter):
                return copy.deepcopy(document)
        return None

    async def insert_one(self, document) -> str:
        document = dict(document)
        document.setdefault("_id", new_document_id())
        if self.unique:
            key = tuple(document.get(k) for k in self.unique)
            for existing in self.documents.values():
                if tuple(existing.get(k) for k in self.unique) == key:
                    raise DuplicateDocumentError(f"duplicate {key}")
        self.documents[document["_id"]] = document
        return document["_id"]

    async def update_one(self, filter, patch) -> UpdateResult:
        for document in self.documents.values():
            if self._matches(document, filter):
                if all(document.get(k) == v for k, v in patch.items()):
                    return UpdateResult(matched_count=1, modified_count=0)
                document.update(patch)
                return UpdateResult(matched_count=1, modified_count=1)
        return UpdateResult(matched_count=0, modified_count=0)

    async def delete_one(self, filter) -> int:
        for doc_id, document in list(self.documents.items()):
            if self._matches(document, filter):
                del self.documents[doc_id]
                return 1
        return 0


class InMemoryStore:
    def __init__(self) -> None:
        self.users = InMemoryCollection(unique=("email",))
        self.parcels = InMemoryCollection()
        self.payments = InMemoryCollection(
            unique=("parcelId", "transactionId")
        )
        self.tracking_events = InMemoryCollection()


class FakeGateway:
    def __init__(self, error: str | None = None) -> None:
        self.calls: list[dict] = []
        self.error = error

    async def create_payment_intent(
        self, amount, *, currency, payment_method_types
    ) -> PaymentIntent:
        self.calls.append(
            {
                "amount": amount,
                "currency": currency,
                "payment_method_types": list(payment_method_types),
            }
        )
        if self.error is not None:
            raise GatewayError(self.error)
        return PaymentIntent(
            id=f"pi_{len(self.calls)}",
            client_secret=f"pi_{len(self.calls)}_secret_test",
        )


class RetryStore:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def enqueue(self, payment: dict) -> str:
        self.events.append(payment)
        return f"retry-{len(self.events)}"

    async def get_due_retries(self, limit: int = 10) -> list[dict]:
        return []

    async def mark_succeeded(self, retry_id: str) -> None:
        pass

    async def mark_failed(self, retry_id: str, error: str) -> None:
        pass

    async def mark_exhausted(self, retry_id: str) -> None:
        pass


def make_parcel(store: InMemoryStore, **fields) -> str:
    """Insert an unpaid parcel directly, bypassing the service."""
    parcel_id = new_document_id()
    store.parcels.documents[parcel_id] = {
        "_id": parcel_id,
        "created_by": "a@x.com",
        "orderTime": datetime.now(tz=UTC),
        "payment_status": PaymentStatus.UNPAID.value,
        "tracking_id": "PCL-TEST",
        **fields,
    }
    return parcel_id


@pytest.fixture()
def config() -> ParcelPayConfig:
    return ParcelPayConfig(
        database_url="sqlite+aiosqlite://",
        stripe_secret_key="sk_test_dummy",
        retry_enabled=False,
    )


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def retry_store() -> RetryStore:
    return RetryStore()


@pytest.fixture()
def client(config, store, gateway, retry_store):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(
        create_parcel_router(
            config=config,
            store=store,
            gateway=gateway,
            retry_store=retry_store,
        )
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
async def async_engine():
    """Create an in-memory aiosqlite async engine."""
    from sqlalchemy.ext.asyncio import create_async_engine

    from fastapi_parcelpay.contrib.sqlalchemy.models import Base

    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def async_session_factory(async_engine):
    """Create an async session factory bound to the in-memory engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    yield factory


@pytest.fixture()
def sqlalchemy_store(async_session_factory):
    """Create an SQLAlchemyEntityStore."""
    from fastapi_parcelpay.contrib.sqlalchemy.store import (
        SQLAlchemyEntityStore,
    )

    return SQLAlchemyEntityStore(async_session_factory)
