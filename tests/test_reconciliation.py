"""Reconciliation engine tests."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeGateway, make_parcel
from fastapi_parcelpay.exceptions import (
    AlreadyPaidOrMissingError,
    GatewayError,
    PaymentLogFailedAfterStateChangeError,
    StoreError,
    InvalidInputError,
)
from fastapi_parcelpay.reconciliation import ReconciliationEngine
from fastapi_parcelpay.types import new_document_id


@pytest.fixture()
def engine(store, gateway, config, retry_store) -> ReconciliationEngine:
    return ReconciliationEngine(
        store=store, gateway=gateway, config=config, retry_store=retry_store
    )


async def _pay(engine, parcel_id, transaction_id="tx1", **overrides):
    kwargs = {
        "parcel_id": parcel_id,
        "transaction_id": transaction_id,
        "payment_method": "card",
        "email": "a@x.com",
        "amount": 500,
    }
    kwargs.update(overrides)
    return await engine.record_payment(**kwargs)


class TestRecordPayment:
    async def test_marks_parcel_paid_and_logs_payment(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)

        payment_id = await _pay(engine, parcel_id)

        parcel = store.parcels.documents[parcel_id]
        assert parcel["payment_status"] == "paid"
        assert parcel["transactionId"] == "tx1"

        payments = await store.payments.find()
        assert len(payments) == 1
        payment = payments[0]
        assert payment["_id"] == payment_id
        assert payment["parcelId"] == parcel_id
        assert payment["transactionId"] == "tx1"
        assert payment["amount"] == 500
        assert payment["status"] == "paid"
        assert payment["paymentMethod"] == "card"
        assert payment["email"] == "a@x.com"
        assert payment["paid_at_string"] == payment["paid_at"].isoformat()

    async def test_second_payment_is_rejected(self, engine, store) -> None:
        parcel_id = make_parcel(store)
        await _pay(engine, parcel_id, "tx1")

        with pytest.raises(AlreadyPaidOrMissingError):
            await _pay(engine, parcel_id, "tx2")

        parcel = store.parcels.documents[parcel_id]
        assert parcel["transactionId"] == "tx1"
        assert len(store.payments.documents) == 1

    async def test_retried_call_with_same_transaction_is_rejected(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)
        await _pay(engine, parcel_id, "tx1")

        with pytest.raises(AlreadyPaidOrMissingError):
            await _pay(engine, parcel_id, "tx1")

        assert len(store.payments.documents) == 1

    async def test_concurrent_payments_produce_one_record(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)

        results = await asyncio.gather(
            _pay(engine, parcel_id, "tx1"),
            _pay(engine, parcel_id, "tx2"),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyPaidOrMissingError)
        assert len(store.payments.documents) == 1
        payment = next(iter(store.payments.documents.values()))
        parcel = store.parcels.documents[parcel_id]
        assert parcel["transactionId"] == payment["transactionId"]

    async def test_unknown_parcel_creates_nothing(self, engine, store) -> None:
        with pytest.raises(AlreadyPaidOrMissingError):
            await _pay(engine, new_document_id())

        assert store.payments.documents == {}
        assert store.parcels.documents == {}

    async def test_malformed_parcel_id_is_validation_error(
        self, engine, store
    ) -> None:
        with pytest.raises(InvalidInputError):
            await _pay(engine, "Z")
        assert store.payments.documents == {}

    @pytest.mark.parametrize("amount", [-1, 2.5, True])
    async def test_invalid_amount_is_rejected_before_any_write(
        self, engine, store, amount
    ) -> None:
        parcel_id = make_parcel(store)

        with pytest.raises(InvalidInputError):
            await _pay(engine, parcel_id, amount=amount)

        assert store.parcels.documents[parcel_id]["payment_status"] == "unpaid"

    async def test_empty_transaction_id_is_rejected(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)

        with pytest.raises(InvalidInputError):
            await _pay(engine, parcel_id, "")

        assert store.parcels.documents[parcel_id]["payment_status"] == "unpaid"

    async def test_payment_log_failure_is_reported_distinctly(
        self, engine, store, retry_store
    ) -> None:
        parcel_id = make_parcel(store)
        store.payments.insert_one = AsyncMock(
            side_effect=StoreError("store unavailable")
        )

        with pytest.raises(PaymentLogFailedAfterStateChangeError) as excinfo:
            await _pay(engine, parcel_id)

        assert excinfo.value.parcel_id == parcel_id
        assert excinfo.value.transaction_id == "tx1"
        assert store.parcels.documents[parcel_id]["payment_status"] == "paid"
        store.payments.insert_one.assert_awaited_once()

        assert len(retry_store.events) == 1
        queued = retry_store.events[0]
        assert queued["parcelId"] == parcel_id
        assert queued["transactionId"] == "tx1"
        assert "paid_at" not in queued

    async def test_payment_log_failure_without_retry_store(
        self, store, gateway, config
    ) -> None:
        engine = ReconciliationEngine(
            store=store, gateway=gateway, config=config
        )
        parcel_id = make_parcel(store)
        store.payments.insert_one = AsyncMock(side_effect=StoreError("down"))

        with pytest.raises(PaymentLogFailedAfterStateChangeError):
            await _pay(engine, parcel_id)

    async def test_enqueue_failure_does_not_mask_error(
        self, engine, store, retry_store
    ) -> None:
        parcel_id = make_parcel(store)
        store.payments.insert_one = AsyncMock(side_effect=StoreError("down"))
        retry_store.enqueue = AsyncMock(side_effect=StoreError("down too"))

        with pytest.raises(PaymentLogFailedAfterStateChangeError):
            await _pay(engine, parcel_id)

    async def test_successful_payment_appends_tracking_event(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)

        await _pay(engine, parcel_id)

        events = await store.tracking_events.find({"parcel_id": parcel_id})
        assert len(events) == 1
        assert events[0]["status"] == "paid"
        assert events[0]["tracking_id"] == "PCL-TEST"
        assert events[0]["updated_by"] == "a@x.com"

    async def test_tracking_disabled(
        self, store, gateway, config, retry_store
    ) -> None:
        config.track_payments = False
        engine = ReconciliationEngine(
            store=store, gateway=gateway, config=config
        )
        parcel_id = make_parcel(store)

        await _pay(engine, parcel_id)

        assert store.tracking_events.documents == {}

    async def test_tracking_failure_keeps_payment(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)
        store.tracking_events.insert_one = AsyncMock(
            side_effect=StoreError("down")
        )

        payment_id = await _pay(engine, parcel_id)

        assert payment_id in store.payments.documents


class TestCreatePaymentIntent:
    async def test_returns_client_secret(self, engine, gateway) -> None:
        secret = await engine.create_payment_intent(1250)

        assert secret == "pi_1_secret_test"
        assert gateway.calls == [
            {
                "amount": 1250,
                "currency": "usd",
                "payment_method_types": ["card"],
            }
        ]

    async def test_gateway_error_propagates(self, store, config) -> None:
        engine = ReconciliationEngine(
            store=store,
            gateway=FakeGateway(error="card declined"),
            config=config,
        )

        with pytest.raises(GatewayError, match="card declined"):
            await engine.create_payment_intent(100)

    async def test_timeout_becomes_gateway_error(
        self, store, config
    ) -> None:
        class SlowGateway:
            async def create_payment_intent(self, amount, **kwargs):
                await asyncio.sleep(1)

        config.gateway_timeout_seconds = 0.01
        engine = ReconciliationEngine(
            store=store, gateway=SlowGateway(), config=config
        )

        with pytest.raises(GatewayError, match="timed out"):
            await engine.create_payment_intent(100)

    async def test_negative_amount_never_reaches_gateway(
        self, engine, gateway
    ) -> None:
        with pytest.raises(InvalidInputError):
            await engine.create_payment_intent(-5)
        assert gateway.calls == []


class TestTracking:
    async def test_timeline_is_append_only_and_ordered(
        self, engine, store
    ) -> None:
        parcel_id = make_parcel(store)
        statuses = ["created", "picked_up", "in_transit", "delivered"]
        for status in statuses:
            await engine.append_tracking_event(
                parcel_id=parcel_id, status=status, updated_by="courier"
            )

        events = await store.tracking_events.find(
            {"parcel_id": parcel_id}, sort=[("time", 1)]
        )
        assert [e["status"] for e in events] == statuses
        times = [e["time"] for e in events]
        assert times == sorted(times)

    async def test_unknown_parcel_reference_is_accepted(
        self, engine, store
    ) -> None:
        event_id = await engine.append_tracking_event(
            parcel_id="not-a-parcel", status="note"
        )
        assert event_id in store.tracking_events.documents


class TestFindUnloggedPayments:
    async def test_lists_paid_parcels_without_payment(
        self, engine, store
    ) -> None:
        logged = make_parcel(store)
        await _pay(engine, logged, "tx-ok")
        orphan = make_parcel(
            store, payment_status="paid", transactionId="tx-lost"
        )
        make_parcel(store)

        unlogged = await engine.find_unlogged_payments()

        assert [p["_id"] for p in unlogged] == [orphan]
