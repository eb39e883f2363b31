import asyncio

import httpx
import pytest

from nft_gateway.clients.executor import (
    ExecutorState,
    RetryExecutor,
    RetryPolicy,
    backoff_delay,
    classify_status,
    is_retryable_status,
)
from nft_gateway.errors import RateLimited, UnauthorizedUpstream, UpstreamError, UpstreamTimeout

URL = "https://upstream.test/thing"


class Recorder:
    def __init__(self):
        self.delays = []

    async def sleep(self, seconds):
        self.delays.append(seconds)


def sender(*responses):
    """send() that replays responses (or raises exceptions) in order and counts calls."""
    queue = list(responses)
    calls = []

    async def send():
        calls.append(1)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    send.calls = calls
    return send


def response(status, body=None, headers=None):
    return httpx.Response(status, json=body if body is not None else {}, headers=headers,
                          request=httpx.Request("GET", URL))


def test_backoff_is_exponential_and_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
    assert [backoff_delay(policy, n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]
    assert backoff_delay(policy, 1, retry_after=5) == 5
    assert backoff_delay(policy, 1, retry_after=60) == 10.0


def test_retryable_statuses():
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert is_retryable_status(429)
    assert is_retryable_status(408)
    assert not is_retryable_status(400)
    assert not is_retryable_status(404)


def test_status_classification():
    assert isinstance(classify_status(401, "p"), UnauthorizedUpstream)
    assert isinstance(classify_status(403, "p"), UnauthorizedUpstream)
    assert isinstance(classify_status(429, "p"), RateLimited)
    assert isinstance(classify_status(408, "p"), UpstreamTimeout)
    assert isinstance(classify_status(502, "p"), UpstreamError)


@pytest.mark.asyncio
async def test_retries_5xx_then_succeeds():
    recorder = Recorder()
    executor = RetryExecutor(RetryPolicy(attempts=3, base_delay=1.0), sleep=recorder.sleep)
    send = sender(response(503), response(500), response(200, {"ok": True}))
    states = []

    result = await executor.run(send, "test", on_transition=lambda state, attempt: states.append((state, attempt)))

    assert result.json() == {"ok": True}
    assert len(send.calls) == 3
    assert recorder.delays == [1.0, 2.0]
    assert states[-1] == (ExecutorState.SUCCEEDED, 3)
    assert (ExecutorState.BACKOFF, 1) in states


@pytest.mark.asyncio
async def test_client_error_is_terminal():
    executor = RetryExecutor(RetryPolicy(attempts=3), sleep=Recorder().sleep)
    send = sender(response(404))
    with pytest.raises(UpstreamError) as exc_info:
        await executor.run(send, "test")
    assert exc_info.value.status == 404
    assert len(send.calls) == 1


@pytest.mark.asyncio
async def test_attempt_budget_is_never_exceeded():
    executor = RetryExecutor(RetryPolicy(attempts=3), sleep=Recorder().sleep)
    send = sender(response(502))
    with pytest.raises(UpstreamError):
        await executor.run(send, "test")
    assert len(send.calls) == 3


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after():
    recorder = Recorder()
    executor = RetryExecutor(RetryPolicy(attempts=2, base_delay=1.0, max_delay=10.0), sleep=recorder.sleep)
    send = sender(response(429, headers={"Retry-After": "3"}))
    with pytest.raises(RateLimited):
        await executor.run(send, "test")
    assert recorder.delays == [3.0]


@pytest.mark.asyncio
async def test_network_errors_are_retried():
    executor = RetryExecutor(RetryPolicy(attempts=2), sleep=Recorder().sleep)
    request = httpx.Request("GET", URL)
    send = sender(httpx.ConnectError("refused", request=request), response(200, {"ok": 1}))
    result = await executor.run(send, "test")
    assert result.status_code == 200
    assert len(send.calls) == 2


@pytest.mark.asyncio
async def test_per_attempt_timeout():
    executor = RetryExecutor(RetryPolicy(attempts=2, timeout=0.01), sleep=Recorder().sleep)
    calls = []

    async def send():
        calls.append(1)
        await asyncio.sleep(1)

    with pytest.raises(UpstreamTimeout):
        await executor.run(send, "test")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cancellation_stops_further_attempts():
    started = asyncio.Event()
    calls = []

    async def send():
        calls.append(1)
        started.set()
        await asyncio.sleep(10)

    executor = RetryExecutor(RetryPolicy(attempts=3, timeout=30))
    states = []
    task = asyncio.ensure_future(
        executor.run(send, "test", on_transition=lambda state, attempt: states.append(state))
    )
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(calls) == 1
    assert states[-1] == ExecutorState.CANCELLED


@pytest.mark.asyncio
async def test_fallback_walks_endpoints_in_order():
    executor = RetryExecutor(RetryPolicy(attempts=1), sleep=Recorder().sleep)
    seen = []
    replies = {
        "https://a.test": response(500),
        "https://b.test": response(200, {"errors": [{"message": "nope"}]}),
        "https://c.test": response(200, {"data": {"ok": True}}),
    }

    async def send_to(url):
        seen.append(url)
        return replies[url]

    def usable(resp):
        body = resp.json()
        return not (body.get("errors") and not body.get("data"))

    result = await executor.run_with_fallback(list(replies), send_to, "portfolio", usable=usable)
    assert result.json() == {"data": {"ok": True}}
    assert seen == ["https://a.test", "https://b.test", "https://c.test"]


@pytest.mark.asyncio
async def test_fallback_exhausted_reports_endpoints_tried():
    executor = RetryExecutor(RetryPolicy(attempts=1), sleep=Recorder().sleep)

    async def send_to(url):
        return response(503)

    with pytest.raises(UpstreamError) as exc_info:
        await executor.run_with_fallback(["https://a.test", "https://b.test"], send_to, "portfolio")
    assert exc_info.value.details["endpointsTried"] == 2
    assert exc_info.value.details["provider"] == "portfolio"
