"""Shared pytest fixtures for mirako tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from mirako.core.config import MirakoConfig
from tests.fixtures.http import API_URL, TOKEN

_ENV_VARS = (
    "MIRAKO_API_TOKEN",
    "MIRAKO_API_URL",
    "MIRAKO_DEFAULT_MODEL",
    "MIRAKO_DEFAULT_VOICE",
    "MIRAKO_DEFAULT_SAVE_PATH",
    "MIRAKO_DEFAULT_POLL_INTERVAL",
)


@pytest.fixture
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep tests away from the real ~/.mirako and MIRAKO_* variables."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def config(tmp_path: Path) -> MirakoConfig:
    """Authenticated config that saves into a temp directory."""
    return MirakoConfig(
        api_token=TOKEN,
        api_url=API_URL,
        default_save_path=str(tmp_path / "out"),
        default_poll_interval=0.01,
    )
