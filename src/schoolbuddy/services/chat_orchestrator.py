import asyncio
import logging
from typing import Optional, Tuple

from src.schoolbuddy.config import ATTACHMENT_DEFAULT_PROMPT, ATTACHMENT_SENT_TEMPLATE
from src.schoolbuddy.models.message import Attachment, Message
from src.schoolbuddy.models.playback import PlaybackState
from src.schoolbuddy.services.audio_playback_controller import AudioPlaybackController
from src.schoolbuddy.services.conversation_session import ConversationBusyError, ConversationSession

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """
    Glue between the conversation and the audio player.

    Holds the UI-facing flags (thinking, streaming text, muted), stops audio
    before each send, and reads successful replies aloud unless muted.
    """

    def __init__(
        self,
        session: ConversationSession,
        playback: AudioPlaybackController,
        auto_play: bool = True,
    ) -> None:
        self.session = session
        self.playback = playback
        self.muted = not auto_play
        self.is_thinking = False
        self.streaming_text = ""
        self.playback_task: Optional[asyncio.Task] = None
        self._chat_generation = 0

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.session.history

    @property
    def playback_state(self) -> PlaybackState:
        return self.playback.state

    async def send_message(
        self,
        text: str,
        attachment: Optional[Attachment] = None,
    ) -> Optional[Message]:
        """
        Send one user turn and wait for the reply.

        Returns None without doing anything when there is nothing to send or
        a reply is already in progress. Returns None as well when the chat was
        cleared before the reply arrived. Cancelling the caller abandons the
        reply so the next send is accepted.
        """
        user_text = (text or "").strip()
        if (not user_text and attachment is None) or self.is_thinking:
            return None

        self.playback.stop()

        prompt = user_text
        display_text = None
        if attachment is not None:
            prompt = user_text or ATTACHMENT_DEFAULT_PROMPT
            if not user_text:
                display_text = ATTACHMENT_SENT_TEMPLATE.format(name=attachment.name)

        generation = self._chat_generation
        try:
            task = self.session.send(
                prompt,
                attachment,
                display_text=display_text,
                on_fragment=lambda fragment: self._on_fragment(generation, fragment),
            )
        except ConversationBusyError:
            logger.warning("Ignoring send while the session is still streaming")
            return None

        self.is_thinking = True
        self.streaming_text = ""
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            if generation == self._chat_generation:
                logger.info("Send cancelled by the caller; abandoning the reply")
                self._chat_generation += 1
                self.is_thinking = False
                self.streaming_text = ""
                self.session.cancel_reply()
            raise

        if generation == self._chat_generation:
            self.is_thinking = False
            self.streaming_text = ""

        if task.cancelled():
            logger.debug("Reply was cancelled by a chat reset")
            return None

        reply = task.result()
        if reply is None or generation != self._chat_generation:
            return None

        if not self.muted and not reply.is_error and reply.text:
            self.playback_task = asyncio.create_task(self.playback.play(reply.id, reply.text))
        return reply

    async def play_message(self, message_id: str) -> None:
        """Toggle speech for a message already in history."""
        for message in self.session.history:
            if message.id == message_id:
                await self.playback.play(message.id, message.text)
                return
        logger.warning("Cannot play unknown message %s", message_id)

    def toggle_mute(self) -> bool:
        """Stop audio and flip auto-play. Returns the new muted flag."""
        self.playback.stop()
        self.muted = not self.muted
        logger.info("Auto-play %s", "disabled" if self.muted else "enabled")
        return self.muted

    def clear(self) -> None:
        """Stop audio, forget any reply in progress and start a fresh session."""
        self.playback.stop()
        self._chat_generation += 1
        self.is_thinking = False
        self.streaming_text = ""
        self.session.clear()

    async def close(self) -> None:
        """Teardown: cancel in-flight work and release the audio device."""
        self._chat_generation += 1
        if self.playback_task is not None and not self.playback_task.done():
            self.playback_task.cancel()
            await asyncio.gather(self.playback_task, return_exceptions=True)
        await self.session.close()
        self.playback.close()

    def _on_fragment(self, generation: int, fragment: str) -> None:
        if generation == self._chat_generation:
            self.streaming_text += fragment
