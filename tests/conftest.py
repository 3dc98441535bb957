"""Pytest configuration and shared fixtures for chatharvest tests."""

import logging
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from fakes import FakeBrowser, FakeClock, FakeContext, FakePage, dom_element

from chatharvest.platforms.base import HarvestConfig, PlatformConfigManager

CREDENTIAL_ENV_VARS = [
    "SESSION_KEY",
    "TESTSITE_COOKIES",
    "DEEPSEEK_COOKIES",
    "DEEPSEEK_USER_TOKEN",
    "DOUBAO_COOKIES",
    "KIMI_COOKIES",
    "KIMI_TOKEN",
    "KIMI_LOCAL_STORAGE",
    "QWEN_COOKIES",
    "WENXIN_COOKIES",
    "YUANBAO_COOKIES",
]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def el() -> Callable[..., dict[str, Any]]:
    """Factory for serialized DOM nodes."""
    return dom_element


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_page() -> FakePage:
    """A page already attached to its own FakeContext."""
    page = FakePage()
    FakeContext(page)
    return page


@pytest.fixture
def fake_browser(fake_page: FakePage) -> FakeBrowser:
    return FakeBrowser(fake_page)


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Minimal platform map with one enabled and one disabled site."""
    return {
        "global_settings": {
            "default_timeout_sec": 10,
            "outputs_directory": "outputs",
        },
        "batch": {
            "retry_count": 3,
            "retry_delay_sec": 2,
            "pacing_min_sec": 2,
            "pacing_max_sec": 7,
        },
        "platforms": {
            "testsite": {
                "name": "TestSite",
                "url": "https://chat.example.com/",
                "auth": {"cookies_env": "TESTSITE_COOKIES"},
                "selectors": {
                    "input": "textarea",
                    "submit": "button.send",
                    "response": "div.answer",
                    "login_button": "button.login",
                },
                "timeout_sec": 5,
                "login_timeout_sec": 3,
                "completion": {
                    "poll_interval_sec": 1,
                    "stability_threshold": 3,
                    "appear_timeout_sec": 5,
                },
            },
            "offline": {
                "name": "Offline",
                "url": "https://offline.example.com/",
                "enabled": False,
                "selectors": {"input": "textarea", "response": "div.answer"},
            },
        },
    }


@pytest.fixture
def harvest_config(temp_dir: Path, sample_config_dict: dict[str, Any]) -> HarvestConfig:
    return HarvestConfig(**sample_config_dict, project_root=temp_dir)


@pytest.fixture
def config_manager(harvest_config: HarvestConfig) -> PlatformConfigManager:
    return PlatformConfigManager(harvest_config)


@pytest.fixture(autouse=True)
def clean_credentials(monkeypatch):
    """Make sure no real credentials leak into tests from the environment."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def setup_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
