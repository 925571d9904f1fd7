from pydantic import BaseModel
from typing import Optional


class RoomSummary(BaseModel):
    room: str
    member_count: int

class RoomDetailsResponse(BaseModel):
    room: str
    member_count: int
    members: Optional[list[str]] = None

class HealthResponse(BaseModel):
    status: str
    rooms: int
    members: int
