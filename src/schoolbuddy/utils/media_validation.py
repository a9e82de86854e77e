"""Validation helpers for files the user picks for chat or video."""
import mimetypes
from pathlib import Path
from typing import Optional, Union

from src.schoolbuddy.models.exceptions import MediaValidationError
from src.schoolbuddy.models.message import Attachment
from src.schoolbuddy.models.video_job import SourceImage

ALLOWED_ATTACHMENT_TYPES = {"application/pdf"}
IMAGE_TYPE_PREFIX = "image/"


def _normalize_mime_type(mime_type: Optional[str]) -> str:
    return (mime_type or "").lower().split(";", 1)[0].strip()


def guess_mime_type(filename: Union[str, Path]) -> str:
    """Guess a MIME type from a file name, or an empty string when unknown."""
    guessed, _ = mimetypes.guess_type(str(filename))
    return guessed or ""


def validate_chat_attachment(name: str, mime_type: Optional[str], data: bytes) -> Attachment:
    """Build a chat attachment, accepting PDF documents only."""
    content_type = _normalize_mime_type(mime_type) or guess_mime_type(name)
    if content_type not in ALLOWED_ATTACHMENT_TYPES:
        raise MediaValidationError(f"Unsupported attachment type: {mime_type or 'unknown'}")
    if not data:
        raise MediaValidationError(f"Attachment '{name}' is empty.")
    return Attachment(name=name, mime_type=content_type, data=data)


def validate_video_source(mime_type: Optional[str], data: bytes) -> SourceImage:
    """Build a video source image, accepting any image/* type."""
    content_type = _normalize_mime_type(mime_type)
    if not content_type.startswith(IMAGE_TYPE_PREFIX):
        raise MediaValidationError(f"Unsupported image type: {mime_type or 'unknown'}")
    if not data:
        raise MediaValidationError("Source image is empty.")
    return SourceImage(mime_type=content_type, data=data)


def load_video_source(path: Union[str, Path]) -> SourceImage:
    """Read an image from disk and validate it as a video source."""
    file_path = Path(path)
    mime_type = guess_mime_type(file_path)
    if not mime_type.startswith(IMAGE_TYPE_PREFIX):
        raise MediaValidationError(f"Unsupported image type: {mime_type or file_path.suffix or 'unknown'}")
    return validate_video_source(mime_type, file_path.read_bytes())


def load_chat_attachment(path: Union[str, Path]) -> Attachment:
    """Read a document from disk and validate it as a chat attachment."""
    file_path = Path(path)
    return validate_chat_attachment(file_path.name, guess_mime_type(file_path), file_path.read_bytes())
