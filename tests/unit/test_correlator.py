"""Unit tests for request/response correlation.

Tests cover:
- Id allocation
- Resolution by id regardless of arrival order
- Probe latency measurement
- Per-request timeouts
- Error responses
- Rejecting the whole table on teardown
"""

import asyncio
import json

import pytest

from dtrader.adapters.gateio.correlator import PING_METHOD, RequestCorrelator
from dtrader.exceptions import (
    ApiError,
    ConnectionLostError,
    ProbeTimeoutError,
    RequestTimeoutError,
)
from dtrader.models.session import PingResult
from tests.unit.fakes import wait_until


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class Recorder:
    """Collects frames passed to send()."""

    def __init__(self):
        self.frames = []

    async def __call__(self, text: str) -> None:
        self.frames.append(json.loads(text))


class TestIdAllocation:
    """Test request id allocation."""

    @pytest.mark.asyncio
    async def test_ids_start_at_one_and_increase(self):
        """Test that ids are 1, 2, 3 in registration order."""
        correlator = RequestCorrelator(timeout=1.0)
        ids = [correlator.register("spot.order").request_id for _ in range(3)]
        assert ids == [1, 2, 3]
        assert correlator.pending_ids == [1, 2, 3]
        correlator.reject_all(ConnectionLostError("teardown"))

    @pytest.mark.asyncio
    async def test_request_frame_shape(self):
        """Test the wire format of a correlated request."""
        correlator = RequestCorrelator(timeout=1.0)
        send = Recorder()

        task = asyncio.create_task(correlator.request(send, PING_METHOD))
        await wait_until(lambda: len(send.frames) == 1)

        assert send.frames[0] == {"id": 1, "method": "server.ping", "params": []}
        assert 1 in correlator

        correlator.on_frame({"id": 1, "result": "pong"})
        await task


class TestResolution:
    """Test resolving pending requests from inbound frames."""

    @pytest.mark.asyncio
    async def test_out_of_order_responses(self):
        """Test that responses resolve the waiter with the matching id."""
        correlator = RequestCorrelator(timeout=1.0)
        send = Recorder()

        first = asyncio.create_task(correlator.request(send, "spot.order", ["a"]))
        second = asyncio.create_task(correlator.request(send, "spot.order", ["b"]))
        await wait_until(lambda: len(send.frames) == 2)

        by_param = {frame["params"][0]: frame["id"] for frame in send.frames}
        assert correlator.on_frame({"id": by_param["b"], "result": {"n": "b"}})
        assert correlator.on_frame({"id": by_param["a"], "result": {"n": "a"}})

        assert await first == {"n": "a"}
        assert await second == {"n": "b"}
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_pong_latency_uses_clock(self):
        """Test probe latency is measured from registration to pong."""
        clock = FakeClock(100.0)
        correlator = RequestCorrelator(timeout=1.0, clock=clock)
        send = Recorder()

        task = asyncio.create_task(correlator.request(send, PING_METHOD))
        await wait_until(lambda: len(send.frames) == 1)

        clock.now = 100.25
        correlator.on_frame({"id": send.frames[0]["id"], "result": "pong"})
        result = await task

        assert isinstance(result, PingResult)
        assert result.request_id == 1
        assert result.latency_ms == pytest.approx(250.0)
        assert result.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_unknown_id_not_consumed(self):
        """Test that frames for unknown ids are left for other handlers."""
        correlator = RequestCorrelator(timeout=1.0)
        assert correlator.on_frame({"id": 42, "result": "pong"}) is False
        assert correlator.on_frame({"channel": "spot.balances", "event": "update"}) is False

    @pytest.mark.asyncio
    async def test_boolean_id_not_consumed(self):
        """Test that a boolean id never matches an integer id."""
        correlator = RequestCorrelator(timeout=1.0)
        pending = correlator.register(PING_METHOD)

        assert correlator.on_frame({"id": True, "result": "pong"}) is False
        assert pending.request_id in correlator
        assert not pending.future.done()
        correlator.reject_all(ConnectionLostError("teardown"))

    @pytest.mark.asyncio
    async def test_frame_without_result_not_consumed(self):
        """Test that an id match alone does not complete the waiter."""
        correlator = RequestCorrelator(timeout=1.0)
        pending = correlator.register(PING_METHOD)

        assert correlator.on_frame({"id": pending.request_id, "method": "server.ping"}) is False
        assert pending.request_id in correlator
        correlator.reject_all(ConnectionLostError("teardown"))

    @pytest.mark.asyncio
    async def test_error_response_raises_api_error(self):
        """Test that an error object fails only the matching request."""
        correlator = RequestCorrelator(timeout=1.0)
        send = Recorder()

        failing = asyncio.create_task(correlator.request(send, "spot.order"))
        healthy = asyncio.create_task(correlator.request(send, "spot.order"))
        await wait_until(lambda: len(send.frames) == 2)

        failing_id, healthy_id = send.frames[0]["id"], send.frames[1]["id"]
        correlator.on_frame(
            {"id": failing_id, "error": {"code": 2, "message": "invalid argument"}}
        )
        correlator.on_frame({"id": healthy_id, "result": {"status": "ok"}})

        with pytest.raises(ApiError) as exc_info:
            await failing
        assert exc_info.value.code == 2
        assert exc_info.value.request_id == failing_id
        assert str(exc_info.value) == "API Error: invalid argument"
        assert await healthy == {"status": "ok"}


class TestTimeouts:
    """Test per-request timeouts."""

    @pytest.mark.asyncio
    async def test_probe_timeout(self):
        """Test that an unanswered probe fails with ProbeTimeoutError."""
        correlator = RequestCorrelator(timeout=0.02)

        with pytest.raises(ProbeTimeoutError, match="PONG timeout for ID: 1"):
            await correlator.request(Recorder(), PING_METHOD)
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        """Test that an unanswered request fails with RequestTimeoutError."""
        correlator = RequestCorrelator(timeout=0.02)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await correlator.request(Recorder(), "spot.order")
        assert not isinstance(exc_info.value, ProbeTimeoutError)
        assert exc_info.value.request_id == 1

    @pytest.mark.asyncio
    async def test_late_response_ignored(self):
        """Test that a response after the timeout is not matched."""
        correlator = RequestCorrelator(timeout=0.02)

        with pytest.raises(ProbeTimeoutError):
            await correlator.request(Recorder(), PING_METHOD)
        assert correlator.on_frame({"id": 1, "result": "pong"}) is False

    @pytest.mark.asyncio
    async def test_timeout_leaves_other_requests_pending(self):
        """Test that a timeout fails only its own request."""
        correlator = RequestCorrelator(timeout=0.2)
        send = Recorder()

        expiring = asyncio.create_task(correlator.request(send, PING_METHOD))
        await wait_until(lambda: len(send.frames) == 1)
        await asyncio.sleep(0.1)
        answered = asyncio.create_task(correlator.request(send, PING_METHOD))
        await wait_until(lambda: len(send.frames) == 2)

        with pytest.raises(ProbeTimeoutError):
            await expiring
        assert correlator.on_frame({"id": send.frames[1]["id"], "result": "pong"})
        assert isinstance(await answered, PingResult)


class TestRejection:
    """Test failing every pending request at once."""

    @pytest.mark.asyncio
    async def test_reject_all(self):
        """Test that all waiters receive the same error."""
        correlator = RequestCorrelator(timeout=1.0)
        send = Recorder()

        tasks = [
            asyncio.create_task(correlator.request(send, PING_METHOD)),
            asyncio.create_task(correlator.request(send, "spot.order")),
        ]
        await wait_until(lambda: len(send.frames) == 2)

        assert correlator.reject_all(ConnectionLostError("Connection lost")) == 2
        assert len(correlator) == 0

        for task in tasks:
            with pytest.raises(ConnectionLostError, match="Connection lost"):
                await task

    @pytest.mark.asyncio
    async def test_reject_all_empty(self):
        """Test rejecting an empty table."""
        correlator = RequestCorrelator(timeout=1.0)
        assert correlator.reject_all(ConnectionLostError("Connection lost")) == 0

    @pytest.mark.asyncio
    async def test_send_failure_removes_entry(self):
        """Test that a failed send does not leave a pending entry."""
        correlator = RequestCorrelator(timeout=1.0)

        async def failing_send(text: str) -> None:
            raise ConnectionLostError("WebSocket not connected")

        with pytest.raises(ConnectionLostError):
            await correlator.request(failing_send, PING_METHOD)
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_removes_entry(self):
        """Test that cancelling a waiting caller clears its entry."""
        correlator = RequestCorrelator(timeout=1.0)
        send = Recorder()

        task = asyncio.create_task(correlator.request(send, PING_METHOD))
        await wait_until(lambda: len(send.frames) == 1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_unencodable_params_remove_entry(self):
        """Test that params which cannot be encoded leave nothing pending."""
        correlator = RequestCorrelator(timeout=0.02)
        send = Recorder()

        with pytest.raises(TypeError):
            await correlator.request(send, "spot.order", [object()])
        assert len(correlator) == 0
        assert send.frames == []

        await asyncio.sleep(0.05)
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_unexpected_send_error_removes_entry(self):
        """Test that any exception from send clears the entry."""
        correlator = RequestCorrelator(timeout=1.0)

        async def broken_send(text: str) -> None:
            raise OSError("broken pipe")

        with pytest.raises(OSError, match="broken pipe"):
            await correlator.request(broken_send, PING_METHOD)
        assert len(correlator) == 0
        assert correlator.pending_ids == []
