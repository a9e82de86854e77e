from typing import Any, Dict

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Data contract for all events flowing through the EventBus.

    Attributes:
        event_type (str): The type of the event (e.g., "MODEL_CHUNK_RECEIVED").
        payload (Dict[str, Any]): The data associated with the event.
    """
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
