"""
Core type definitions for deslack.
These types are used throughout the codebase and don't import from other modules
to prevent circular dependencies.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

Address = str
ChannelName = str

GENERAL_CHANNEL: ChannelName = "general"
AUTOMATED_ADDRESS: Address = "automated"  # reserved author of system messages

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision and normalise to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_millis(value: datetime) -> int:
    """Milliseconds since the Unix epoch (integer arithmetic, no float rounding)."""
    return (truncate_to_millis(value) - EPOCH) // _ONE_MS


def from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def utc_now() -> datetime:
    return truncate_to_millis(datetime.now(timezone.utc))


class User(BaseModel):
    """An account known to the server. Never sent over the wire."""
    display_name: str = ""
    email: str
    password_hash: str


class ChatMessage(BaseModel):
    """A committed chat message."""
    model_config = ConfigDict(frozen=True)

    author: Address
    content: str
    sent_at: datetime

    @field_validator("sent_at")
    @classmethod
    def _millisecond_resolution(cls, value: datetime) -> datetime:
        return truncate_to_millis(value)


class Channel(BaseModel):
    """A named message stream plus the addresses currently present in it."""
    name: ChannelName = Field(min_length=1)
    messages: List[ChatMessage] = Field(default_factory=list)  # newest first
    active_users: Set[Address] = Field(default_factory=set)

    def add_message(self, message: ChatMessage) -> None:
        self.messages.insert(0, message)
