import json
import logging
from typing import Any, Dict, Optional

from src.schoolbuddy.config import CHAT_TEMPERATURE, SETTINGS_FILE, VIDEO_POLL_TIMEOUT

logger = logging.getLogger(__name__)

# Baseline API key structure for the settings payload.
DEFAULT_API_KEYS = {
    "google": "",
}


def _default_settings() -> Dict[str, Any]:
    return {
        "api_keys": DEFAULT_API_KEYS.copy(),
        "auto_play_speech": True,
        "chat_temperature": CHAT_TEMPERATURE,
        "video_poll_timeout_seconds": VIDEO_POLL_TIMEOUT,
    }


def _sanitize_api_keys(api_keys: Any) -> Dict[str, str]:
    sanitized = DEFAULT_API_KEYS.copy()
    if isinstance(api_keys, dict):
        for key in sanitized.keys():
            value = api_keys.get(key)
            if isinstance(value, str):
                sanitized[key] = value.strip()
        # "gemini" was accepted as an alias for the Google key.
        legacy = api_keys.get("gemini")
        if not sanitized["google"] and isinstance(legacy, str):
            sanitized["google"] = legacy.strip()
    return sanitized


def _normalize_temperature(value: Any, fallback: float) -> float:
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        return fallback
    if not 0.0 <= temperature <= 2.0:
        return fallback
    return temperature


def _normalize_timeout(value: Any, fallback: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return fallback
    return timeout if timeout > 0 else fallback


def load_user_settings() -> Dict[str, Any]:
    """
    Load user settings from disk, filling in defaults for anything missing or malformed.
    """
    settings = _default_settings()

    if not SETTINGS_FILE.exists():
        return settings

    try:
        with open(SETTINGS_FILE, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (IOError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read user settings from %s: %s", SETTINGS_FILE, exc)
        return settings

    if not isinstance(data, dict):
        logger.warning("User settings file %s does not contain a JSON object.", SETTINGS_FILE)
        return settings

    settings["api_keys"] = _sanitize_api_keys(data.get("api_keys"))

    auto_play = data.get("auto_play_speech")
    if auto_play is not None:
        settings["auto_play_speech"] = bool(auto_play)

    settings["chat_temperature"] = _normalize_temperature(
        data.get("chat_temperature"), settings["chat_temperature"]
    )
    if "video_poll_timeout_seconds" in data:
        settings["video_poll_timeout_seconds"] = _normalize_timeout(
            data.get("video_poll_timeout_seconds"), settings["video_poll_timeout_seconds"]
        )

    return settings


def save_user_settings(settings: Dict[str, Any]) -> None:
    """
    Persist the user settings payload to disk.
    """
    defaults = _default_settings()
    payload: Dict[str, Any] = {
        "api_keys": _sanitize_api_keys(settings.get("api_keys")),
        "auto_play_speech": bool(settings.get("auto_play_speech", defaults["auto_play_speech"])),
        "chat_temperature": _normalize_temperature(
            settings.get("chat_temperature"), defaults["chat_temperature"]
        ),
        "video_poll_timeout_seconds": _normalize_timeout(
            settings.get("video_poll_timeout_seconds", defaults["video_poll_timeout_seconds"]),
            defaults["video_poll_timeout_seconds"],
        ),
    }

    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(SETTINGS_FILE, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=4)

    logger.info("User settings saved to %s", SETTINGS_FILE)


def update_user_preferences(updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge and persist preference updates.
    """
    settings = load_user_settings()
    if "auto_play_speech" in updates:
        settings["auto_play_speech"] = bool(updates.get("auto_play_speech"))
    if "api_keys" in updates:
        settings["api_keys"] = _sanitize_api_keys(updates.get("api_keys"))
    if "chat_temperature" in updates:
        settings["chat_temperature"] = _normalize_temperature(
            updates.get("chat_temperature"), settings["chat_temperature"]
        )
    if "video_poll_timeout_seconds" in updates:
        settings["video_poll_timeout_seconds"] = _normalize_timeout(
            updates.get("video_poll_timeout_seconds"), settings["video_poll_timeout_seconds"]
        )

    save_user_settings(settings)
    return settings


def get_auto_play_speech() -> bool:
    """
    Convenience accessor for the auto-play preference.
    """
    settings = load_user_settings()
    return bool(settings.get("auto_play_speech", True))


def get_google_api_key(settings: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """
    Return the Google key stored in the settings file, or None when blank.
    """
    if settings is None:
        settings = load_user_settings()
    api_key = (settings.get("api_keys") or {}).get("google")
    if isinstance(api_key, str) and api_key.strip():
        return api_key.strip()
    return None
