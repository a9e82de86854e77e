"""Access-credential boundary used before talking to the paid video model."""
import logging
import os
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from src.schoolbuddy.services.user_settings_manager import get_google_api_key

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def discover_api_key() -> Optional[str]:
    """
    Load the Google API key from the environment or the user settings file.

    Checked in order:
    1. GEMINI_API_KEY
    2. GOOGLE_API_KEY
    3. user_settings.json api_keys.google

    Returns:
        API key string if found, None otherwise.
    """
    for env_var in API_KEY_ENV_VARS:
        api_key = os.getenv(env_var)
        if api_key and api_key.strip():
            logger.debug("Found API key in %s environment variable", env_var)
            return api_key.strip()

    try:
        api_key = get_google_api_key()
    except Exception as exc:
        logger.debug("Failed to load API key from user settings: %s", exc)
        return None

    if api_key:
        logger.debug("Found API key in user settings")
    return api_key


class CredentialProvider(ABC):
    """External collaborator that knows whether an access credential is configured."""

    @property
    @abstractmethod
    def api_key(self) -> Optional[str]:
        pass

    @abstractmethod
    async def has_credential(self) -> bool:
        pass

    @abstractmethod
    async def request_credential_selection(self) -> None:
        """
        Runs the selection flow and resolves once the user has finished it.
        Resolves silently when a credential is already configured.
        """
        pass


class SettingsCredentialProvider(CredentialProvider):
    """
    Credential provider backed by environment variables and the settings file.

    ``selector`` is an optional coroutine function that drives an interactive
    selection (for example prompting for a key and saving it); afterwards the
    sources are read again.
    """

    def __init__(self, selector: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        self._selector = selector
        self._api_key: Optional[str] = discover_api_key()
        if self._api_key:
            logger.info("Access credential available at start-up.")
        else:
            logger.warning(
                "No access credential configured. Set GEMINI_API_KEY or GOOGLE_API_KEY, "
                "or configure api_keys.google in user_settings.json"
            )

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    async def has_credential(self) -> bool:
        if not self._api_key:
            self._api_key = discover_api_key()
        return bool(self._api_key)

    async def request_credential_selection(self) -> None:
        if self._selector is not None:
            logger.info("Opening credential selection flow.")
            await self._selector()
        self._api_key = discover_api_key()
        if not self._api_key:
            logger.warning("Credential selection finished without a usable API key.")
