# Hey future me - this replaces the old hand-written try/except retry chains in every client!
#
# A RetryPolicy is a small declarative description of ONE failure mode:
#   - which responses are retryable (401, 429, 403 ...) via a status predicate
#   - which exceptions are retryable (httpx.TransportError ...)
#   - how long to wait before the retry (backoff source; None = "can't retry, give up now")
#   - what to do before the retry (re-exchange the token, rotate the API key ...)
#   - what to raise once attempts are used up
#
# Policies compose by nesting, innermost first:
#   await rate_policy.execute(lambda: auth_policy.execute(send))
#
# The `send` callable takes NO arguments and must rebuild the request every time it's called,
# so a hook that swaps the token or the key is picked up by the next attempt.
"""Declarative retry policies for outbound HTTP calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

SendFn = Callable[[], Awaitable[httpx.Response]]
BackoffFn = Callable[[httpx.Response | None], float | None]
BeforeRetryHook = Callable[[httpx.Response | None, int], Awaitable[None]]
GiveUpFn = Callable[[httpx.Response | None, BaseException | None, int], BaseException]
SleepFn = Callable[[float], Awaitable[None]]


def never(_response: httpx.Response) -> bool:
    """Status predicate that retries nothing."""
    return False


def on_status(*status_codes: int) -> Callable[[httpx.Response], bool]:
    """Build a predicate matching the given status codes."""
    codes = frozenset(status_codes)

    def predicate(response: httpx.Response) -> bool:
        return response.status_code in codes

    return predicate


def no_backoff(_response: httpx.Response | None) -> float | None:
    """Retry immediately."""
    return 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """One retryable failure mode and how to recover from it.

    Attributes:
        name: Label used in log lines ("spotify.auth", "youtube.quota" ...)
        max_attempts: Total attempts including the first one
        retryable_status: Predicate deciding if a response should be retried
        backoff: Seconds to wait before the retry, or None to give up immediately
        before_retry: Async hook run between attempts (receives response and attempt number)
        retryable_exceptions: Exceptions from `send` that count as a failed attempt
        give_up: Builds the exception raised once the policy is exhausted. Without it the
            last response is returned (and the last exception re-raised) unchanged.
        sleep: Awaitable sleep, swappable in tests
    """

    name: str
    max_attempts: int = 2
    retryable_status: Callable[[httpx.Response], bool] = never
    backoff: BackoffFn = no_backoff
    before_retry: BeforeRetryHook | None = None
    retryable_exceptions: tuple[type[BaseException], ...] = ()
    give_up: GiveUpFn | None = None
    sleep: SleepFn = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def execute(self, send: SendFn) -> httpx.Response:
        """Run `send` until it yields a non-retryable response or attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await send()
            except self.retryable_exceptions as e:
                if attempt >= self.max_attempts:
                    if self.give_up is None:
                        raise
                    raise self.give_up(None, e, attempt) from e
                logger.warning(
                    "%s: attempt %d/%d raised %s, retrying",
                    self.name,
                    attempt,
                    self.max_attempts,
                    type(e).__name__,
                )
                await self._prepare_retry(None, attempt)
                continue

            if not self.retryable_status(response):
                return response

            if attempt >= self.max_attempts:
                return self._exhausted(response, attempt)

            delay = self.backoff(response)
            if delay is None:
                return self._exhausted(response, attempt)

            logger.info(
                "%s: attempt %d/%d got HTTP %d, retrying in %.1fs",
                self.name,
                attempt,
                self.max_attempts,
                response.status_code,
                delay,
            )
            if delay > 0:
                await self.sleep(delay)
            await self._prepare_retry(response, attempt)

    async def _prepare_retry(self, response: httpx.Response | None, attempt: int) -> None:
        if self.before_retry is not None:
            await self.before_retry(response, attempt)

    def _exhausted(self, response: httpx.Response, attempt: int) -> httpx.Response:
        if self.give_up is None:
            return response
        raise self.give_up(response, None, attempt)


__all__ = [
    "RetryPolicy",
    "never",
    "no_backoff",
    "on_status",
]
