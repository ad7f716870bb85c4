"""Persistence retry tests — bounded attempts, domain errors not retried."""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import DatabaseError, InvalidTransitionError
from app.infrastructure.retry import retry_persistence


def _flaky(failures, error):
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) <= failures:
            raise error
        return "stored"

    return operation, calls


async def test_succeeds_after_transient_failures():
    operation, calls = _flaky(2, OperationalError("INSERT", {}, Exception("locked")))
    assert await retry_persistence(operation, attempts=3, delay_ms=0) == "stored"
    assert len(calls) == 3


async def test_reraises_after_last_attempt():
    operation, calls = _flaky(5, DatabaseError("gone", "insert"))
    with pytest.raises(DatabaseError):
        await retry_persistence(operation, attempts=3, delay_ms=0)
    assert len(calls) == 3


async def test_domain_errors_are_not_retried():
    operation, calls = _flaky(5, InvalidTransitionError("no"))
    with pytest.raises(InvalidTransitionError):
        await retry_persistence(operation, attempts=3, delay_ms=0)
    assert len(calls) == 1
