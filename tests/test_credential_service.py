"""Tests for API key discovery and the settings-backed credential provider."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from src.schoolbuddy.services.credential_service import SettingsCredentialProvider, discover_api_key
from src.schoolbuddy.services.user_settings_manager import save_user_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    with patch("src.schoolbuddy.services.user_settings_manager.SETTINGS_FILE", tmp_path / "settings.json"):
        yield


def test_gemini_env_var_wins_over_google(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", " gem ")
    monkeypatch.setenv("GOOGLE_API_KEY", "goo")

    assert discover_api_key() == "gem"


def test_falls_back_to_settings_file() -> None:
    save_user_settings({"api_keys": {"google": "from-file"}})

    assert discover_api_key() == "from-file"


def test_no_key_anywhere() -> None:
    assert discover_api_key() is None


def test_selection_flow_picks_up_saved_key() -> None:
    async def _select() -> None:
        save_user_settings({"api_keys": {"google": "chosen"}})

    async def _scenario() -> None:
        provider = SettingsCredentialProvider(selector=_select)
        assert await provider.has_credential() is False

        await provider.request_credential_selection()

        assert await provider.has_credential() is True
        assert provider.api_key == "chosen"

    asyncio.run(_scenario())


def test_has_credential_rechecks_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = SettingsCredentialProvider()
    monkeypatch.setenv("GOOGLE_API_KEY", "late")

    assert asyncio.run(provider.has_credential()) is True
    assert provider.api_key == "late"
