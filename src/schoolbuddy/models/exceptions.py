"""
Custom exceptions raised by the remote model providers and the media helpers.

Orchestrators catch these at their boundary and turn them into terminal,
re-triggerable states (an error chat bubble, idle playback, a FAILED video
job), so none of them is fatal to the application.
"""
from __future__ import annotations

from typing import Optional


class GenAIServiceError(Exception):
    """
    Base exception for failures that originate from a remote model call.

    Args:
        message: Human-readable description of the error.
        cause: Optional underlying exception that triggered the failure.
    """

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.__cause__ = cause


class StreamingFailure(GenAIServiceError):
    """
    Raised when the remote chat stream fails before reaching end-of-stream.
    """


class SynthesisError(GenAIServiceError):
    """
    Raised when the text-to-speech call fails or returns no audio payload.
    """


class SubmissionFailure(GenAIServiceError):
    """
    Raised when a video job cannot be submitted (bad input, missing credential).
    """


class RemoteOperationFailure(GenAIServiceError):
    """
    Raised when a polled video operation reports an error, or polling itself fails.
    """


class MissingResultError(GenAIServiceError):
    """
    Raised when a video operation completes without a usable result reference.
    """


class CredentialError(GenAIServiceError):
    """
    Raised when no access credential is available for a remote call.
    """


class MediaValidationError(ValueError):
    """
    Raised when a user-selected file does not have an accepted MIME type.
    """
