"""
Pytest configuration and fixtures for relay tests.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from app import create_app
from registry import RoomRegistry
from transport import Frame, FrameKind


class FakeTransport:
    """In-memory transport: tests push inbound frames and read what was sent."""

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.accepted = False
        self.closed = False
        self.fail_send = False
        self.fail_receive = False

    async def accept(self):
        self.accepted = True

    async def receive(self) -> Frame:
        frame = await self.inbound.get()
        if self.fail_receive:
            raise ConnectionResetError("connection reset by peer")
        return frame

    async def send(self, text: str):
        if self.fail_send:
            raise ConnectionResetError("connection reset by peer")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason=None):
        self.closed = True

    def push_text(self, text: str):
        self.inbound.put_nowait(Frame(FrameKind.TEXT, text))

    def push_bytes(self, data: bytes):
        self.inbound.put_nowait(Frame(FrameKind.OTHER, data))

    def push_close(self):
        self.inbound.put_nowait(Frame(FrameKind.CLOSE))


async def wait_until(predicate, timeout: float = 1.0):
    """Poll predicate until it is true or fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def registry():
    return RoomRegistry(member_queue_size=16, overflow_policy="drop-newest")


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def eventually():
    return wait_until


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    # One portal for every socket in a test so they share an event loop
    with TestClient(app) as test_client:
        yield test_client
