import asyncio
import json
from urllib.parse import urlparse

import httpx
import pytest

_CLOSED = object()


async def _settle(rounds: int = 25):
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualSleeper:
    """Stands in for asyncio.sleep; sleepers wake only on release()."""

    def __init__(self):
        self.delays = []
        self._waiters = []

    async def __call__(self, delay):
        self.delays.append(delay)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    async def release(self):
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        await _settle()


class FakeConnection:
    def __init__(self, messages=()):
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()
        for message in messages:
            self.push(message)

    async def send(self, data):
        if self.closed:
            raise ConnectionResetError("send on closed connection")
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSED)

    def push(self, message):
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, exc=None):
        self._inbox.put_nowait(exc or ConnectionResetError("connection reset by peer"))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    def __init__(self, failures=0, always_fail=False, messages=()):
        self.failures = failures
        self.always_fail = always_fail
        self.messages = list(messages)
        self.attempts = 0
        self.connections = []

    async def __call__(self):
        self.attempts += 1
        if self.always_fail or self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        connection = FakeConnection(self.messages)
        self.connections.append(connection)
        return connection

    @property
    def current(self):
        return self.connections[-1]


class Router:
    """Route MockTransport requests by host and record every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = urlparse(str(request.url)).hostname
        self.calls.append((host, request.url.path, dict(request.url.params)))
        handler = self.routes.get(host)
        if handler is None:
            return httpx.Response(404, json={"message": "no route"})
        return handler(request)

    def hosts(self):
        return [host for host, _, _ in self.calls]


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def sleeper():
    return ManualSleeper()


@pytest.fixture
def make_connector():
    return FakeConnector


@pytest.fixture
def make_client():
    def _make(routes):
        router = Router(routes)
        return httpx.AsyncClient(transport=httpx.MockTransport(router)), router

    return _make
