from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from fastapi import WebSocket


class FrameKind(str, Enum):
    TEXT = "text"
    CLOSE = "close"
    OTHER = "other"


@dataclass
class Frame:
    kind: FrameKind
    payload: Union[str, bytes, None] = None


class Transport(Protocol):
    async def accept(self) -> None: ...

    async def receive(self) -> Frame: ...

    async def send(self, text: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class WebSocketTransport:
    """Adapts a Starlette WebSocket to the frame-level Transport interface."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def accept(self) -> None:
        await self.websocket.accept()

    async def receive(self) -> Frame:
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            return Frame(FrameKind.CLOSE)
        text = message.get("text")
        if text is not None:
            return Frame(FrameKind.TEXT, text)
        return Frame(FrameKind.OTHER, message.get("bytes"))

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        await self.websocket.close(code=code, reason=reason)
