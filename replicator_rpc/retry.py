"""Bounded polling shared by pairing acceptance and method-echo retries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .errors import ReplicatorCancelled, ReplicatorRetryExhausted

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often and how long to repeat an action.

    Attributes:
        attempts: Maximum number of attempts, or None for no bound
        delay: Pause between attempts (seconds)
    """

    attempts: int | None
    delay: float = 1.0

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("RetryPolicy needs at least one attempt")
        if self.delay < 0:
            raise ValueError("RetryPolicy delay must not be negative")


def _check_cancel(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ReplicatorCancelled("Operation cancelled by caller")


async def poll_until(
    action: Callable[[], Awaitable[T]],
    done: Callable[[T], bool],
    policy: RetryPolicy,
    *,
    cancel: asyncio.Event | None = None,
    description: str = "poll",
) -> T:
    """Run action until done(result) holds or the policy runs out.

    The delay is applied between attempts only, so a policy of N attempts
    sleeps N - 1 times.

    Args:
        action: Coroutine factory performing one attempt
        done: Predicate deciding whether a result ends the poll
        policy: Attempt bound and delay
        cancel: Optional event; when set the poll stops with ReplicatorCancelled
        description: Label used in log and error messages

    Returns:
        The first result accepted by done.

    Raises:
        ReplicatorRetryExhausted: If every attempt was rejected by done
        ReplicatorCancelled: If cancel was set between attempts
    """
    attempt = 0
    result: T | None = None

    while policy.attempts is None or attempt < policy.attempts:
        if attempt:
            await asyncio.sleep(policy.delay)
            _check_cancel(cancel)
        else:
            _check_cancel(cancel)

        attempt += 1
        result = await action()
        if done(result):
            _LOGGER.debug("%s finished after %d attempt(s)", description, attempt)
            return result

    raise ReplicatorRetryExhausted(
        f"{description} gave up after {attempt} attempts",
        attempts=attempt,
        last=result,
    )
