from pydantic import BaseModel
from typing import Any, Optional


class SignalEnvelope(BaseModel):
    """One relayed message. Unknown fields are dropped on parse."""
    type: str
    sender: Optional[str] = None
    data: Optional[Any] = None

    def to_wire(self) -> str:
        return self.model_dump_json()


def parse_envelope(text: str) -> SignalEnvelope:
    """Parse a text frame. Raises pydantic.ValidationError on bad JSON or schema."""
    return SignalEnvelope.model_validate_json(text)


def join_envelope(member_id: str) -> SignalEnvelope:
    return SignalEnvelope(type="join", sender=member_id, data=None)


def leave_envelope(member_id: str) -> SignalEnvelope:
    return SignalEnvelope(type="leave", sender=member_id, data=None)
