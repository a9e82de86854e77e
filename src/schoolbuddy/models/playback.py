from typing import Optional

from pydantic import BaseModel, ConfigDict


class PlaybackState(BaseModel):
    """
    Snapshot of the audio player.

    Attributes:
        active_message_id: Message whose audio is loading or playing, if any.
        is_loading: True while speech is being synthesised and decoded.
    """
    model_config = ConfigDict(frozen=True)

    active_message_id: Optional[str] = None
    is_loading: bool = False

    @property
    def is_idle(self) -> bool:
        return self.active_message_id is None and not self.is_loading


IDLE_PLAYBACK = PlaybackState()
