"""Tests for the bounded polling helper."""
import pytest

from invite_e2e.errors import HarnessError, WaitTimeoutError
from invite_e2e.waits import wait_until

pytestmark = pytest.mark.asyncio


async def test_returns_first_truthy_value():
    values = iter([None, 0, "", "ready"])

    result = await wait_until(lambda: next(values), timeout=1, poll_interval=0.001)

    assert result == "ready"


async def test_accepts_coroutine_predicates():
    calls = []

    async def predicate():
        calls.append(1)
        return len(calls) >= 3 and {"id": "m1"}

    assert await wait_until(predicate, timeout=1, poll_interval=0.001) == {"id": "m1"}
    assert len(calls) == 3


async def test_times_out_with_description():
    with pytest.raises(WaitTimeoutError) as excinfo:
        await wait_until(lambda: False, timeout=0.05, poll_interval=0.01, description="email to x@y")

    error = excinfo.value
    assert isinstance(error, HarnessError)
    assert isinstance(error, TimeoutError)
    assert "email to x@y" in str(error)
    assert error.timeout == 0.05


async def test_predicate_errors_propagate():
    def broken():
        raise ValueError("bad poll")

    with pytest.raises(ValueError, match="bad poll"):
        await wait_until(broken, timeout=1)
