"""
Event Type Constants

Centralized definitions for all event types used on the assistant's event bus.
"""

# Conversation lifecycle events
CONVERSATION_SESSION_STARTED = "CONVERSATION_SESSION_STARTED"
"""
Dispatched when a fresh remote chat session is bound (start-up and every clear).

Payload:
    session_id (str): Identifier of the new session
    generation (int): Generation token of the session
"""

CONVERSATION_MESSAGE_ADDED = "CONVERSATION_MESSAGE_ADDED"
"""
Dispatched whenever a message is appended to the conversation history.

Payload:
    session_id (str): Identifier of the session
    message_id (str): Identifier of the appended message
    role (str): 'user' or 'model'
    text (str): Message text
    is_error (bool): True for the synthetic streaming-failure message
"""

# Streaming events
MODEL_CHUNK_RECEIVED = "MODEL_CHUNK_RECEIVED"
"""
Payload:
    session_id (str), fragment (str), accumulated_length (int)
"""

MODEL_STREAM_ENDED = "MODEL_STREAM_ENDED"
"""
Payload:
    session_id (str), message_id (str), fragment_count (int)
"""

MODEL_STREAM_FAILED = "MODEL_STREAM_FAILED"
"""
Payload:
    session_id (str), error (str)
"""

# Audio playback events
AUDIO_PLAYBACK_STARTED = "AUDIO_PLAYBACK_STARTED"
"""
Payload:
    message_id (str), sample_count (int), sample_rate (int)
"""

AUDIO_PLAYBACK_STOPPED = "AUDIO_PLAYBACK_STOPPED"
"""
Payload:
    message_id (str), reason (str): 'stopped' or 'finished'
"""

AUDIO_PLAYBACK_FAILED = "AUDIO_PLAYBACK_FAILED"
"""
Payload:
    message_id (str), error (str)
"""

# Video generation events
VIDEO_JOB_STATUS_CHANGED = "VIDEO_JOB_STATUS_CHANGED"
"""
Payload:
    job_id (str), generation (int), status (str), result_uri (str|None), error (str|None)
"""

VIDEO_PROGRESS_UPDATED = "VIDEO_PROGRESS_UPDATED"
"""
Payload:
    job_id (str), label (str)
"""
