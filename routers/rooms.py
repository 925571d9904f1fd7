from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import HealthResponse, RoomDetailsResponse, RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
health_router = APIRouter(tags=["health"])


@health_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    snapshot = await request.app.state.registry.snapshot()
    return HealthResponse(
        status="ok",
        rooms=len(snapshot),
        members=sum(len(members) for members in snapshot.values()),
    )


@rooms_router.get("", response_model=list[RoomSummary])
async def list_rooms(request: Request):
    snapshot = await request.app.state.registry.snapshot()
    logger.debug(f"Listing {len(snapshot)} rooms")
    return [RoomSummary(room=key, member_count=len(members)) for key, members in snapshot.items()]


@rooms_router.get("/{room_key}", response_model=RoomDetailsResponse)
async def get_room_details(room_key: str, request: Request):
    """
    Current members of a room, in join order.

    Rooms only exist while they have members, so an empty or unknown
    room key returns 404.
    """
    members = await request.app.state.registry.room_members(room_key)
    if not members:
        logger.debug(f"Room details failed: Room {room_key} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room=room_key,
        member_count=len(members),
        members=members,
    )
