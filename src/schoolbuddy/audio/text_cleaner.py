import re

_MARKUP_CHARS = re.compile(r"[*#_`]")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
# Private use area, block/geometric/misc symbols and dingbats, the emoji planes,
# plus the joiner and variation selector that glue emoji sequences together.
_PICTOGRAPHS = re.compile(
    "["
    "\uE000-\uF8FF"
    "\u2580-\u27BF"
    "\U0001F000-\U0001F7FF"
    "\U0001F900-\U0001FAFF"
    "\u200D\uFE0F"
    "]"
)
_WHITESPACE = re.compile(r"\s+")


def clean_text_for_tts(text: str) -> str:
    """
    Turn a markdown chat reply into plain text suitable for speech synthesis.

    Markup symbols are dropped, ``[label](url)`` links keep only their label,
    emoji and pictographs are removed and whitespace is collapsed.
    """
    clean = _MARKUP_CHARS.sub("", text)
    clean = _MARKDOWN_LINK.sub(r"\1", clean)
    clean = _PICTOGRAPHS.sub("", clean)
    return _WHITESPACE.sub(" ", clean).strip()
