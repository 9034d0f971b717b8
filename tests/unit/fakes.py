"""
In-memory WebSocket transport for session tests.

Provides a scripted WebSocket, a socket factory that replays connection
outcomes, and a polling helper.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Union

from websockets.exceptions import ConnectionClosedOK

_CLOSED = object()

# Makes the factory block until the connect timeout fires.
HANG = object()


class FakeWebSocket:
    """
    In-memory stand-in for a websockets client connection.

    Inbound frames are queued with feed(); drop() simulates the peer
    closing the socket. Probes are answered automatically unless
    auto_pong is False.
    """

    def __init__(self, auto_pong: bool = True):
        self.auto_pong = auto_pong
        self.sent: List[str] = []
        self.closed = False
        self.close_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()

    @property
    def sent_frames(self) -> List[Dict[str, Any]]:
        return [json.loads(text) for text in self.sent]

    def frames_with(self, key: str, value: Any) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent_frames if frame.get(key) == value]

    def feed(self, frame: Union[Dict[str, Any], str, bytes]) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(text)
        if self.auto_pong:
            frame = json.loads(text)
            if frame.get("method") == "server.ping":
                self.feed({"id": frame["id"], "result": "pong"})

    async def recv(self) -> Any:
        item = await self._inbox.get()
        if item is _CLOSED:
            self._inbox.put_nowait(_CLOSED)
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.drop()


class FakeConnector:
    """
    Socket factory replaying scripted outcomes.

    Each call consumes the next outcome: a FakeWebSocket is returned, an
    exception is raised, HANG blocks forever. Once the script is used up,
    fresh FakeWebSockets are returned.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes)
        self.sockets: List[FakeWebSocket] = []
        self.calls = 0
        self.last_kwargs: Dict[str, Any] = {}

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls += 1
        self.last_kwargs = kwargs
        outcome = self.outcomes.pop(0) if self.outcomes else FakeWebSocket()
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        self.sockets.append(outcome)
        return outcome

    @property
    def current(self) -> Optional[FakeWebSocket]:
        return self.sockets[-1] if self.sockets else None


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)

