from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


CURRENT_TAB = "current"
GREETING_TEXT = "Hello! How can I help you today?"
NO_REPLY_TEXT = "No reply from Gemini API"
UNTITLED_TITLE = "Untitled Conversation"

Sender = Literal["user", "bot"]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    sender: Sender = Field(..., description="'user' or 'bot'")


class Session(BaseModel):
    """Archived snapshot of a finished conversation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Unique id, milliseconds since the epoch")
    timestamp: str = Field(..., description="Creation time as a display string")
    title: str
    messages: List[Message]


MessageList = TypeAdapter(List[Message])
SessionList = TypeAdapter(List[Session])


def greeting() -> List[Message]:
    return [Message(text=GREETING_TEXT, sender="bot")]


def display_timestamp(when: datetime) -> str:
    # e.g. "3/7/2025, 2:05:09 PM"
    hour = when.hour % 12 or 12
    suffix = "AM" if when.hour < 12 else "PM"
    return (
        f"{when.month}/{when.day}/{when.year}, "
        f"{hour}:{when.minute:02d}:{when.second:02d} {suffix}"
    )
