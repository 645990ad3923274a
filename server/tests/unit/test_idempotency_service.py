"""Unit tests for idempotent command replay and conflict retries."""

import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from umrah_core.core.concurrency import retry_on_conflict
from umrah_core.core.exceptions import CapacityExceededError, PersistenceConflictError, PersistenceTimeoutError
from umrah_core.models.idempotency import IdempotencyRecord
from umrah_core.services.idempotency_service import IdempotencyMismatchError, IdempotencyService


class TestIdempotencyService:
    """Test cases for IdempotencyService."""

    @pytest.mark.asyncio
    async def test_without_key_always_runs(self, test_session):
        service = IdempotencyService(test_session)
        calls = []

        async def operation():
            calls.append(1)
            return {"n": len(calls)}

        await service.run("booking/create", None, {"a": 1}, operation)
        response = await service.run("booking/create", None, {"a": 1}, operation)

        assert len(calls) == 2
        assert json.loads(response.body) == {"n": 2}

    @pytest.mark.asyncio
    async def test_repeat_replays_first_response(self, test_session):
        service = IdempotencyService(test_session)
        calls = []

        async def operation():
            calls.append(1)
            return {"booking_code": f"UMR{len(calls)}"}

        first = await service.run("booking/create", "key-1", {"a": 1}, operation, status_code=201)
        second = await service.run("booking/create", "key-1", {"a": 1}, operation, status_code=201)

        assert len(calls) == 1
        assert second.status_code == 201
        assert json.loads(second.body) == json.loads(first.body) == {"booking_code": "UMR1"}

    @pytest.mark.asyncio
    async def test_same_key_different_body(self, test_session):
        service = IdempotencyService(test_session)

        async def operation():
            return {"ok": True}

        await service.run("payment/submit", "key-1", {"amount": 1}, operation)

        with pytest.raises(IdempotencyMismatchError) as exc_info:
            await service.run("payment/submit", "key-1", {"amount": 2}, operation)

        assert exc_info.value.status_code == 422
        assert exc_info.value.code == "IDEMPOTENCY_KEY_MISMATCH"

    @pytest.mark.asyncio
    async def test_keys_are_scoped_by_method(self, test_session):
        service = IdempotencyService(test_session)

        async def operation():
            return {"ok": True}

        await service.run("payment/submit", "key-1", {"amount": 1}, operation)

        assert await service.check_idempotency("key-1", "savings/payment/submit", {"amount": 1}) is None

    @pytest.mark.asyncio
    async def test_business_rejection_is_replayed(self, test_session):
        service = IdempotencyService(test_session)
        calls = []

        async def operation():
            calls.append(1)
            raise CapacityExceededError("dep-1", requested_pax=3, quota=10, booked_count=9)

        with pytest.raises(CapacityExceededError):
            await service.run("booking/create", "key-1", {"pax": 3}, operation)

        replay = await service.run("booking/create", "key-1", {"pax": 3}, operation)

        assert len(calls) == 1
        assert replay.status_code == 409
        assert json.loads(replay.body)["code"] == "CAPACITY_EXCEEDED"

    @pytest.mark.asyncio
    async def test_retryable_failure_is_not_stored(self, test_session):
        service = IdempotencyService(test_session)
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise PersistenceTimeoutError("booking.create", 5.0)
            return {"ok": True}

        with pytest.raises(PersistenceTimeoutError):
            await service.run("booking/create", "key-1", {"pax": 1}, operation)

        response = await service.run("booking/create", "key-1", {"pax": 1}, operation)

        assert len(calls) == 2
        assert json.loads(response.body) == {"ok": True}

    @pytest.mark.asyncio
    async def test_expired_records_are_ignored_and_cleaned(self, test_session):
        service = IdempotencyService(test_session)
        await service.store_response("key-1", "booking/create", {"a": 1}, 201, {"ok": True})
        record = (await test_session.execute(select(IdempotencyRecord))).scalar_one()
        record.expires_at = datetime.utcnow() - timedelta(minutes=1)
        await test_session.commit()

        assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) is None
        assert await service.cleanup_expired_records() == 1
        assert await service.cleanup_expired_records() == 0

    @pytest.mark.asyncio
    async def test_duplicate_store_keeps_first(self, test_session):
        service = IdempotencyService(test_session)
        await service.store_response("key-1", "booking/create", {"a": 1}, 201, {"first": True})

        await service.store_response("key-1", "booking/create", {"a": 1}, 201, {"second": True})

        assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) == (201, {"first": True})


class TestRetryOnConflict:
    """Test cases for optimistic conflict retries."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self, test_session):
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise PersistenceConflictError("booking", "b-1")
            return "done"

        result = await retry_on_conflict(test_session, operation, "booking.confirm", attempts=3, backoff_ms=0)

        assert result == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, test_session):
        attempts = []

        async def operation():
            attempts.append(1)
            raise PersistenceConflictError("booking", "b-1")

        with pytest.raises(PersistenceConflictError) as exc_info:
            await retry_on_conflict(test_session, operation, "booking.confirm", attempts=2, backoff_ms=0)

        assert len(attempts) == 2
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_business_errors_are_not_retried(self, test_session):
        attempts = []

        async def operation():
            attempts.append(1)
            raise CapacityExceededError("dep-1", requested_pax=1, quota=1, booked_count=1)

        with pytest.raises(CapacityExceededError):
            await retry_on_conflict(test_session, operation, "booking.create", attempts=3, backoff_ms=0)

        assert len(attempts) == 1
