import asyncio
from typing import Dict, List, Optional

from constants import MEMBER_QUEUE_SIZE, QUEUE_OVERFLOW_POLICY
from logging_config import get_logger
from schemas.signal import SignalEnvelope

logger = get_logger(__name__)

OVERFLOW_DROP_NEWEST = "drop-newest"
OVERFLOW_DROP_OLDEST = "drop-oldest"
OVERFLOW_POLICIES = (OVERFLOW_DROP_NEWEST, OVERFLOW_DROP_OLDEST)

# Queued after the last real item when a member's channel is closed
_CLOSED = object()


class InvalidOverflowPolicy(ValueError):
    pass


class Member:
    """One live connection inside a room.

    The object itself is the removal token: two members may share a
    member_id, but only the session that created a Member holds a handle to it.
    """

    def __init__(self, member_id: str, max_queue_size: int, overflow_policy: str):
        self.member_id = member_id
        self.max_queue_size = max_queue_size
        self.overflow_policy = overflow_policy
        # Bounded by hand so the close sentinel always fits
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.dropped = 0

    def deliver(self, text: str) -> bool:
        """Enqueue without blocking. Returns False if the message was not accepted."""
        if self.closed:
            return False
        if self.max_queue_size and self.queue.qsize() >= self.max_queue_size:
            self.dropped += 1
            if self.overflow_policy == OVERFLOW_DROP_NEWEST:
                return False
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(text)
        return True

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.queue.put_nowait(_CLOSED)


class MemberHandle:
    """What a session holds after joining: its room key and its own Member."""

    def __init__(self, room_key: str, member: Member):
        self.room_key = room_key
        self.member = member

    @property
    def member_id(self) -> str:
        return self.member.member_id

    @property
    def closed(self) -> bool:
        return self.member.closed

    async def receive(self) -> Optional[str]:
        """Next outbound message for this member, or None once the channel is closed."""
        item = await self.member.queue.get()
        if item is _CLOSED:
            # Keep the sentinel so every later receive also sees the close
            self.member.queue.put_nowait(_CLOSED)
            return None
        return item


class Room:
    def __init__(self, key: str):
        self.key = key
        self.members: List[Member] = []
        self.lock = asyncio.Lock()


class RoomRegistry:
    """In-memory map of room key -> ordered members.

    The registry lock guards adding and removing room entries. Each room's own
    lock guards its member list, so broadcasts to different rooms never wait on
    each other. No lock is held while a peer's writer sends to its socket.
    """

    def __init__(self, member_queue_size: Optional[int] = None, overflow_policy: Optional[str] = None):
        self.member_queue_size = MEMBER_QUEUE_SIZE if member_queue_size is None else member_queue_size
        self.overflow_policy = overflow_policy or QUEUE_OVERFLOW_POLICY
        if self.overflow_policy not in OVERFLOW_POLICIES:
            raise InvalidOverflowPolicy(
                f"Unknown queue overflow policy '{self.overflow_policy}', expected one of {OVERFLOW_POLICIES}"
            )
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        logger.info(
            f"Initializing RoomRegistry with member_queue_size={self.member_queue_size}, "
            f"overflow_policy={self.overflow_policy}"
        )

    async def join(self, room_key: str, member_id: str) -> MemberHandle:
        member = Member(member_id, self.member_queue_size, self.overflow_policy)
        async with self._lock:
            room = self._rooms.get(room_key)
            if room is None:
                room = Room(room_key)
                self._rooms[room_key] = room
                logger.info(f"Room {room_key} created")
            async with room.lock:
                room.members.append(member)
                count = len(room.members)
        logger.debug(f"Member {member_id} added to room {room_key} (members: {count})")
        return MemberHandle(room_key, member)

    async def leave(self, handle: MemberHandle) -> bool:
        """Remove exactly the member behind handle. Returns False if it was already gone."""
        removed = False
        async with self._lock:
            room = self._rooms.get(handle.room_key)
            if room is not None:
                async with room.lock:
                    for index, member in enumerate(room.members):
                        if member is handle.member:
                            del room.members[index]
                            removed = True
                            break
                    empty = not room.members
                if empty:
                    del self._rooms[handle.room_key]
                    logger.info(f"Room {handle.room_key} is empty, removed")
        handle.member.close()
        if removed:
            logger.debug(f"Member {handle.member_id} removed from room {handle.room_key}")
        else:
            logger.debug(f"Member {handle.member_id} already absent from room {handle.room_key}")
        return removed

    async def broadcast(self, room_key: str, envelope: SignalEnvelope, exclude: Optional[str] = None) -> int:
        """Fan envelope out to every member of room_key whose id is not exclude.

        Returns how many members accepted the message. A missing room is not an
        error, it may have emptied out while the sender was still running.
        """
        room = self._rooms.get(room_key)
        if room is None:
            logger.debug(f"Broadcast to missing room {room_key} skipped")
            return 0

        async with room.lock:
            recipients = [m for m in room.members if exclude is None or m.member_id != exclude]

        text = envelope.to_wire()
        delivered = 0
        for member in recipients:
            if member.deliver(text):
                delivered += 1
            else:
                logger.debug(
                    f"Dropped '{envelope.type}' for member {member.member_id} in room {room_key} "
                    f"(closed={member.closed}, dropped={member.dropped})"
                )
        logger.debug(f"Broadcast '{envelope.type}' from {envelope.sender} to {delivered}/{len(recipients)} members in room {room_key}")
        return delivered

    async def close(self):
        """Close every member channel so their sessions wind down."""
        async with self._lock:
            rooms = list(self._rooms.values())
            for room in rooms:
                async with room.lock:
                    for member in room.members:
                        member.close()
        logger.info(f"Closed delivery channels in {len(rooms)} rooms")

    async def snapshot(self) -> Dict[str, List[str]]:
        """Room key -> member ids in join order."""
        async with self._lock:
            result = {}
            for key, room in self._rooms.items():
                async with room.lock:
                    result[key] = [m.member_id for m in room.members]
        return result

    async def room_members(self, room_key: str) -> Optional[List[str]]:
        room = self._rooms.get(room_key)
        if room is None:
            return None
        async with room.lock:
            return [m.member_id for m in room.members]
