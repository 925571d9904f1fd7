import asyncio
import uuid
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from logging_config import get_logger
from registry import MemberHandle, RoomRegistry
from schemas.signal import join_envelope, leave_envelope, parse_envelope
from transport import FrameKind, Transport

logger = get_logger(__name__)


class SessionState(str, Enum):
    JOINING = "joining"
    ACTIVE = "active"
    CLOSED = "closed"


def resolve_member_id(user: Optional[str]) -> str:
    """Use the caller's id when given, otherwise generate one."""
    if user and user.strip():
        return user
    return str(uuid.uuid4())


class ConnectionSession:
    """Lifetime of one connection inside one room.

    JOINING registers with the registry, announces the join and accepts the
    transport. ACTIVE races the next inbound frame against the next outbound
    message until either side ends the session. CLOSED deregisters and
    announces the leave, exactly once, whatever the exit path.
    """

    def __init__(self, registry: RoomRegistry, transport: Transport, room_key: str, user: Optional[str] = None):
        self.registry = registry
        self.transport = transport
        self.room_key = room_key
        self.member_id = resolve_member_id(user)
        self.state = SessionState.JOINING
        self.handle: Optional[MemberHandle] = None
        self.relayed_count = 0
        self.malformed_count = 0
        self._cleaned_up = False

    async def run(self):
        try:
            await self._join()
            await self._loop()
        except Exception as e:
            logger.error(f"Session error for member {self.member_id} in room {self.room_key}: {e}", exc_info=True)
        finally:
            await self._close()

    async def _join(self):
        self.handle = await self.registry.join(self.room_key, self.member_id)
        await self.registry.broadcast(self.room_key, join_envelope(self.member_id), exclude=self.member_id)
        await self.transport.accept()
        self.state = SessionState.ACTIVE
        logger.info(f"Member {self.member_id} joined room {self.room_key}")

    async def _loop(self):
        inbound: Optional[asyncio.Task] = None
        outbound: Optional[asyncio.Task] = None
        try:
            while self.state is SessionState.ACTIVE:
                if inbound is None:
                    inbound = asyncio.create_task(self.transport.receive())
                if outbound is None:
                    outbound = asyncio.create_task(self.handle.receive())

                done, _ = await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)

                if inbound in done:
                    task, inbound = inbound, None
                    await self._on_inbound(task)
                if outbound in done and self.state is SessionState.ACTIVE:
                    task, outbound = outbound, None
                    await self._on_outbound(task)
        finally:
            pending = [t for t in (inbound, outbound) if t is not None and not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _on_inbound(self, task: asyncio.Task):
        try:
            frame = task.result()
        except Exception as e:
            logger.info(f"Transport read failed for member {self.member_id} in room {self.room_key}: {e}")
            self.state = SessionState.CLOSED
            return

        if frame.kind is FrameKind.CLOSE:
            logger.info(f"Member {self.member_id} disconnected from room {self.room_key}")
            self.state = SessionState.CLOSED
            return
        if frame.kind is not FrameKind.TEXT:
            logger.debug(f"Ignoring {frame.kind.value} frame from member {self.member_id}")
            return

        try:
            envelope = parse_envelope(frame.payload)
        except ValidationError as e:
            self.malformed_count += 1
            logger.warning(
                f"Discarding malformed message from member {self.member_id} in room {self.room_key}: "
                f"{e.error_count()} error(s)"
            )
            return

        # Never trust the client's sender field
        envelope = envelope.model_copy(update={"sender": self.member_id})
        self.relayed_count += 1
        logger.debug(f"Relaying '{envelope.type}' #{self.relayed_count} from {self.member_id} in room {self.room_key}")
        await self.registry.broadcast(self.room_key, envelope, exclude=self.member_id)

    async def _on_outbound(self, task: asyncio.Task):
        text = task.result()
        if text is None:
            logger.info(f"Delivery channel closed for member {self.member_id} in room {self.room_key}")
            self.state = SessionState.CLOSED
            return
        try:
            await self.transport.send(text)
        except Exception as e:
            logger.info(f"Transport write failed for member {self.member_id} in room {self.room_key}: {e}")
            self.state = SessionState.CLOSED

    async def _close(self):
        if self._cleaned_up:
            return
        self._cleaned_up = True
        self.state = SessionState.CLOSED

        if self.handle is not None:
            await self.registry.leave(self.handle)
            await self.registry.broadcast(self.room_key, leave_envelope(self.member_id))
            logger.info(
                f"Member {self.member_id} left room {self.room_key} "
                f"(relayed={self.relayed_count}, malformed={self.malformed_count})"
            )

        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport for member {self.member_id}: {e}")
