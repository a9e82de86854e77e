import asyncio
import logging
import uuid
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from src.providers.base import ChatProvider, ChatSessionHandle
from src.schoolbuddy.app.event_bus import EventBus
from src.schoolbuddy.config import (
    CHAT_MODEL,
    CHAT_TEMPERATURE,
    STREAM_APOLOGY_TEXT,
    WELCOME_MESSAGE_ID,
    WELCOME_TEXT,
)
from src.schoolbuddy.models.event_types import (
    CONVERSATION_MESSAGE_ADDED,
    CONVERSATION_SESSION_STARTED,
    MODEL_CHUNK_RECEIVED,
    MODEL_STREAM_ENDED,
    MODEL_STREAM_FAILED,
)
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.models.message import Attachment, Message, Role

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"


# clear() may interrupt a stream at any time, so STREAMING -> IDLE covers
# end-of-stream, failure and reset alike.
_PHASE_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.IDLE: frozenset({SessionPhase.STREAMING, SessionPhase.IDLE}),
    SessionPhase.STREAMING: frozenset({SessionPhase.IDLE}),
}


class ConversationBusyError(RuntimeError):
    """Raised when send() is called while a reply is still streaming."""


def welcome_message() -> Message:
    return Message(id=WELCOME_MESSAGE_ID, role=Role.MODEL, text=WELCOME_TEXT)


class ConversationSession:
    """
    Owns the message history and the remote chat session behind it.

    History is append-only between clears. A reply is streamed into a local
    buffer and becomes a single MODEL message only at end-of-stream; a failed
    stream becomes a single error message instead. ``clear()`` swaps in a
    fresh remote session, cancels the in-flight reply and bumps the
    generation token so nothing from before the clear can reach the new
    history.
    """

    def __init__(
        self,
        provider: ChatProvider,
        system_instruction: str,
        event_bus: Optional[EventBus] = None,
        model_name: str = CHAT_MODEL,
        temperature: float = CHAT_TEMPERATURE,
    ) -> None:
        self.provider = provider
        self.system_instruction = system_instruction
        self.event_bus = event_bus
        self.model_name = model_name
        self.temperature = temperature

        self._history: List[Message] = []
        self._phase = SessionPhase.IDLE
        self._generation = 0
        self._session_id = ""
        self._remote: Optional[ChatSessionHandle] = None
        self._inflight: Optional[asyncio.Task] = None
        self._reset()

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    @property
    def history(self) -> Tuple[Message, ...]:
        return tuple(self._history)

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_streaming(self) -> bool:
        return self._phase is SessionPhase.STREAMING

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def send(
        self,
        text: str,
        attachment: Optional[Attachment] = None,
        *,
        display_text: Optional[str] = None,
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> "asyncio.Task[Optional[Message]]":
        """
        Append the USER message now and stream the reply in a background task.

        Must be called from a running event loop.

        Args:
            text: Prompt text sent to the model.
            attachment: Optional file sent as an inline part with its MIME type.
            display_text: Text recorded in history for the USER message when it
                should differ from the prompt (e.g. an attachment-only send).
            on_fragment: Called with each fragment, in arrival order.

        Returns:
            A task resolving to the MODEL message, the error message, or None
            when the send was superseded by ``clear()``.

        Raises:
            ConversationBusyError: If a reply is still streaming.
        """
        if self.is_streaming:
            raise ConversationBusyError("A reply is already streaming for this session")

        user_message = Message(role=Role.USER, text=display_text if display_text is not None else text)
        self._append(user_message)
        self._set_phase(SessionPhase.STREAMING)

        task = asyncio.get_running_loop().create_task(
            self._stream_reply(self._generation, self._remote, text, attachment, on_fragment)
        )
        self._inflight = task
        return task

    def clear(self) -> None:
        """
        Reset to the welcome message on a brand-new remote session.

        Any reply still streaming is cancelled and its result dropped.
        """
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            logger.info("Cancelling in-flight reply for session %s", self._session_id)
            inflight.cancel()
        self._reset()

    def cancel_reply(self) -> None:
        """
        Abandon the reply still streaming, keeping history and the remote session.

        The USER message stays in history; nothing from the abandoned stream is
        appended and the session is ready for the next send.
        """
        inflight, self._inflight = self._inflight, None
        if inflight is None or inflight.done():
            return
        logger.info("Abandoning in-flight reply for session %s", self._session_id)
        self._generation += 1
        inflight.cancel()
        self._set_phase(SessionPhase.IDLE)

    async def close(self) -> None:
        """Cancel in-flight work and drop the remote session (app teardown)."""
        inflight, self._inflight = self._inflight, None
        self._generation += 1
        self._remote = None
        self._set_phase(SessionPhase.IDLE)
        if inflight is not None and not inflight.done():
            inflight.cancel()
            await asyncio.gather(inflight, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _reset(self) -> None:
        self._generation += 1
        self._session_id = uuid.uuid4().hex
        self._remote = self.provider.create_session(
            self.system_instruction,
            self.model_name,
            self.temperature,
        )
        self._history = [welcome_message()]
        self._set_phase(SessionPhase.IDLE)
        logger.info("Started conversation session %s (generation %d)", self._session_id, self._generation)
        self._dispatch(
            CONVERSATION_SESSION_STARTED,
            session_id=self._session_id,
            generation=self._generation,
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _stream_reply(
        self,
        generation: int,
        remote: ChatSessionHandle,
        text: str,
        attachment: Optional[Attachment],
        on_fragment: Optional[Callable[[str], None]],
    ) -> Optional[Message]:
        fragments: List[str] = []
        accumulated = 0
        try:
            stream = await remote.send_stream(text, attachment)
            async for fragment in stream:
                if not self._is_current(generation):
                    logger.debug("Dropping fragment from superseded generation %d", generation)
                    return None
                fragments.append(fragment)
                accumulated += len(fragment)
                if on_fragment is not None:
                    on_fragment(fragment)
                self._dispatch(
                    MODEL_CHUNK_RECEIVED,
                    session_id=self._session_id,
                    fragment=fragment,
                    accumulated_length=accumulated,
                )
        except Exception as exc:
            if not self._is_current(generation):
                return None
            logger.error("Chat stream failed for session %s: %s", self._session_id, exc, exc_info=True)
            error_message = Message(role=Role.MODEL, text=STREAM_APOLOGY_TEXT, is_error=True)
            self._finish(error_message)
            self._dispatch(MODEL_STREAM_FAILED, session_id=self._session_id, error=str(exc))
            return error_message

        if not self._is_current(generation):
            logger.debug("Discarding reply from superseded generation %d", generation)
            return None

        reply = Message(role=Role.MODEL, text="".join(fragments))
        self._finish(reply)
        self._dispatch(
            MODEL_STREAM_ENDED,
            session_id=self._session_id,
            message_id=reply.id,
            fragment_count=len(fragments),
        )
        return reply

    def _finish(self, message: Message) -> None:
        self._append(message)
        self._inflight = None
        self._set_phase(SessionPhase.IDLE)

    def _append(self, message: Message) -> None:
        self._history.append(message)
        self._dispatch(
            CONVERSATION_MESSAGE_ADDED,
            session_id=self._session_id,
            message_id=message.id,
            role=message.role.value,
            text=message.text,
            is_error=message.is_error,
        )

    def _set_phase(self, phase: SessionPhase) -> None:
        if phase not in _PHASE_TRANSITIONS[self._phase]:
            raise RuntimeError(f"Illegal session transition {self._phase.value} -> {phase.value}")
        self._phase = phase

    def _dispatch(self, event_type: str, **payload) -> None:
        if self.event_bus is not None:
            self.event_bus.dispatch(Event(event_type=event_type, payload=payload))
