"""Summary: Fixed-schedule retry with a credential refresh on the final attempt.

Importance: Absorbs transient mailbox failures on a synchronous request path.
Alternatives: Use exponential backoff with jitter from a retry library.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from recoverypilot.errors import BackendUnavailable, RefreshFailure, TransportError


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    action: Callable[[str], Awaitable[T]],
    access_token: str,
    delays_ms: Sequence[int],
    refresh: Callable[[], Awaitable[str | None]],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Summary: Run an action with plain attempts, then one attempt with a fresh token.

    Importance: Refreshes only when ordinary retries have failed, so unrelated
    hiccups never rotate the refresh token.
    Alternatives: Refresh on the first failure or on every attempt.

    The action is attempted ``len(delays_ms)`` times. Attempt ``k`` (``k >= 1``)
    waits ``delays_ms[k - 1]`` milliseconds first. Only :class:`TransportError`
    is retried; anything else propagates unchanged.
    """

    if not delays_ms:
        raise ValueError("Retry schedule must contain at least one delay")
    plain_attempts = len(delays_ms) - 1
    last_error: Exception | None = None

    for attempt in range(plain_attempts):
        if attempt:
            await sleep(delays_ms[attempt - 1] / 1000)
        try:
            return await action(access_token)
        except TransportError as exc:
            last_error = exc
            logger.warning("Attempt %s of %s failed: %s", attempt + 1, len(delays_ms), exc)

    if plain_attempts:
        await sleep(delays_ms[plain_attempts - 1] / 1000)
    return await _attempt_with_refresh(action, refresh, last_error)


async def _attempt_with_refresh(
    action: Callable[[str], Awaitable[T]],
    refresh: Callable[[], Awaitable[str | None]],
    last_error: Exception | None,
) -> T:
    try:
        refreshed_token = await refresh()
    except RefreshFailure as exc:
        raise BackendUnavailable(_message(exc)) from exc
    if not refreshed_token:
        raise BackendUnavailable(
            _message(last_error) if last_error else "Could not refresh the access token"
        )
    try:
        return await action(refreshed_token)
    except TransportError as exc:
        logger.warning("Final attempt with refreshed token failed: %s", exc)
        raise BackendUnavailable(_message(exc)) from exc


def _message(error: Exception) -> str:
    return str(error) or error.__class__.__name__
