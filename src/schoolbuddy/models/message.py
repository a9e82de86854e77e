import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


def _new_message_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """
    One entry of the conversation history.

    Messages are frozen: once appended to a session they are never edited.

    Attributes:
        id: Opaque unique identifier.
        role: Who authored the message.
        text: Message text (markdown as returned by the model).
        created_at: Creation timestamp (UTC).
        is_error: True for the synthetic message that replaces a failed reply.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_message_id)
    role: Role
    text: str
    created_at: datetime = Field(default_factory=_utcnow)
    is_error: bool = False


class Attachment(BaseModel):
    """A binary file sent alongside a chat prompt as a typed inline part."""
    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str
    data: bytes
