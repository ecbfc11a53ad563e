"""Opaque pagination cursors.

A cursor is base64 of the minimal JSON form of a position model. Callers
treat it as a black box; anything that does not decode to a valid position
is read as the start of the sequence.
"""

import base64
import binascii
import json
from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ResourcePosition(BaseModel):
    """Position within a resource listing: type index plus offset within that type."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type_index: int = Field(default=0, ge=0, alias="type")
    offset: int = Field(default=0, ge=0)


class NotificationPosition(BaseModel):
    """Position within the notification log."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(default=0, ge=0)


PositionT = TypeVar("PositionT", bound=BaseModel)


def encode_cursor(position: BaseModel) -> str:
    """Encode a position as an opaque cursor string."""
    payload = position.model_dump(mode="json", by_alias=True)
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: Optional[str], position_cls: type[PositionT]) -> PositionT:
    """
    Decode a cursor into a position.

    Returns ``position_cls()`` (start of sequence) for missing, malformed or
    foreign cursors. Never raises.
    """
    if not cursor or not isinstance(cursor, str):
        return position_cls()

    try:
        raw = base64.b64decode(cursor.encode("ascii"), validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return position_cls()

    if not isinstance(payload, dict):
        return position_cls()

    try:
        return position_cls.model_validate(payload, strict=True)
    except ValidationError:
        return position_cls()
