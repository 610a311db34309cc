"""Bounded polling used by both the inbox poller and DOM waits."""
from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, TypeVar, Union

import anyio

from invite_e2e.errors import WaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Predicate = Callable[[], Union[T, Awaitable[T]]]


async def wait_until(
    predicate: Predicate,
    timeout: float,
    poll_interval: float = 0.5,
    description: str = "condition",
) -> T:
    """Poll ``predicate`` until it returns a truthy value and return that value.

    The predicate may be a plain callable or a coroutine function. A poll
    still in flight when ``timeout`` expires is cancelled, and the wait fails
    with :class:`WaitTimeoutError`. Errors raised by the predicate propagate
    unchanged.

    Args:
        predicate: Callable evaluated on every poll
        timeout: Maximum time to wait in seconds
        poll_interval: Time between polls in seconds
        description: Human readable name of what is awaited (used in errors)
    """
    attempts = 0
    try:
        with anyio.fail_after(timeout):
            while True:
                attempts += 1
                result = predicate()
                if inspect.isawaitable(result):
                    result = await result
                if result:
                    return result
                await anyio.sleep(poll_interval)
    except WaitTimeoutError:
        raise
    except TimeoutError as exc:
        logger.debug("Gave up on %s after %d poll(s)", description, attempts)
        raise WaitTimeoutError(description, timeout) from exc
