"""
Retry/fallback executor shared by every outbound call.

Each call walks Attempting(i) -> Backoff(i) -> Attempting(i+1) ... and ends in
Succeeded, Exhausted or Cancelled. GraphQL callers additionally walk an ordered
list of candidate endpoints, restarting the attempt counter on each one.
"""
import asyncio
import enum
import functools
import logging
from typing import Awaitable, Callable, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict

from nft_gateway.errors import (
    GatewayError,
    RateLimited,
    UnauthorizedUpstream,
    UpstreamError,
    UpstreamFailure,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429}

Send = Callable[[], Awaitable[httpx.Response]]


class ExecutorState(str, enum.Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class RetryPolicy(BaseModel):
    """Attempt budget for one outbound target."""
    model_config = ConfigDict(frozen=True)

    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    timeout: float = 10.0


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or status >= 500


def backoff_delay(policy: RetryPolicy, attempt: int, retry_after: Optional[float] = None) -> float:
    """base * 2^(attempt-1), raised to Retry-After when given, capped at max_delay."""
    delay = policy.base_delay * (2 ** (attempt - 1))
    if retry_after is not None:
        delay = max(delay, retry_after)
    return min(delay, policy.max_delay)


def _retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


def classify_status(status: int, provider: str, body: str = "") -> UpstreamFailure:
    """Map a non-success upstream status onto an error kind."""
    details = {"body": body[:200]} if body else None
    if status in (401, 403):
        return UnauthorizedUpstream(f"{provider} rejected credentials ({status})", provider, status, details)
    if status == 429:
        return RateLimited(f"{provider} rate limit exceeded", provider, status, details)
    if status == 408:
        return UpstreamTimeout(f"{provider} request timed out ({status})", provider, status, details)
    return UpstreamError(f"{provider} returned HTTP {status}", provider, status, details)


def _response_text(response: httpx.Response) -> str:
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


class Execution:
    """Tracks the state machine of a single executor run."""

    def __init__(self, provider: str, on_transition: Optional[Callable[[ExecutorState, int], None]] = None):
        self.provider = provider
        self.state = ExecutorState.ATTEMPTING
        self.attempt = 0
        self._on_transition = on_transition

    def transition(self, state: ExecutorState, attempt: Optional[int] = None) -> None:
        if attempt is not None:
            self.attempt = attempt
        self.state = state
        logger.debug(f"[{self.provider}] {state.value} (attempt {self.attempt})")
        if self._on_transition:
            self._on_transition(state, self.attempt)


class RetryExecutor:
    """Runs outbound calls under a RetryPolicy."""

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.policy = policy
        self._sleep = sleep

    def with_policy(self, **overrides) -> "RetryExecutor":
        return RetryExecutor(self.policy.model_copy(update=overrides), self._sleep)

    async def run(
        self,
        send: Send,
        provider: str,
        on_transition: Optional[Callable[[ExecutorState, int], None]] = None,
    ) -> httpx.Response:
        """
        Execute send() until it yields a non-error response.

        Raises an UpstreamFailure subclass when the attempt budget is spent or a
        terminal status is returned. Cancellation propagates untouched.
        """
        execution = Execution(provider, on_transition)
        last_error: Optional[GatewayError] = None

        for attempt in range(1, self.policy.attempts + 1):
            execution.transition(ExecutorState.ATTEMPTING, attempt)
            retry_after = None
            try:
                response = await asyncio.wait_for(send(), timeout=self.policy.timeout)
            except asyncio.CancelledError:
                execution.transition(ExecutorState.CANCELLED)
                raise
            except (asyncio.TimeoutError, httpx.TimeoutException):
                last_error = UpstreamTimeout(
                    f"{provider} did not answer within {self.policy.timeout}s", provider
                )
            except httpx.TooManyRedirects as e:
                execution.transition(ExecutorState.EXHAUSTED)
                raise UpstreamError(f"{provider} redirected too many times: {e}", provider)
            except httpx.RequestError as e:
                last_error = UpstreamError(f"{provider} request failed: {e}", provider)
            except GatewayError:
                execution.transition(ExecutorState.EXHAUSTED)
                raise
            else:
                status = response.status_code
                if status < 400:
                    execution.transition(ExecutorState.SUCCEEDED)
                    return response
                error = classify_status(status, provider, _response_text(response))
                if not is_retryable_status(status):
                    execution.transition(ExecutorState.EXHAUSTED)
                    raise error
                last_error = error
                retry_after = _retry_after(response)

            logger.warning(f"[{provider}] attempt {attempt}/{self.policy.attempts} failed: {last_error.message}")
            if attempt < self.policy.attempts:
                execution.transition(ExecutorState.BACKOFF)
                try:
                    await self._sleep(backoff_delay(self.policy, attempt, retry_after))
                except asyncio.CancelledError:
                    execution.transition(ExecutorState.CANCELLED)
                    raise

        execution.transition(ExecutorState.EXHAUSTED)
        raise last_error

    async def run_with_fallback(
        self,
        endpoints: Sequence[str],
        send_to: Callable[[str], Awaitable[httpx.Response]],
        provider: str,
        usable: Callable[[httpx.Response], bool] = lambda response: True,
    ) -> httpx.Response:
        """Walk candidate endpoints in order; the first usable response wins."""
        if not endpoints:
            raise UpstreamError(f"No {provider} endpoints configured", provider)

        last_error: Optional[UpstreamFailure] = None
        for index, url in enumerate(endpoints):
            try:
                response = await self.run(functools.partial(send_to, url), provider)
            except UpstreamFailure as e:
                logger.warning(f"[{provider}] endpoint {index + 1}/{len(endpoints)} {url} failed: {e.message}")
                last_error = e
                continue
            if usable(response):
                return response
            logger.warning(f"[{provider}] endpoint {url} returned errors without data")
            last_error = UpstreamError(f"{provider} returned GraphQL errors without data", provider)

        raise type(last_error)(
            f"All {provider} endpoints failed: {last_error.message}",
            provider,
            last_error.status,
            {"endpointsTried": len(endpoints)},
        )


def read_json(response: httpx.Response, provider: str):
    """Decode a JSON body or raise upstream_error."""
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamError(f"{provider} returned invalid JSON: {e}", provider, response.status_code)
