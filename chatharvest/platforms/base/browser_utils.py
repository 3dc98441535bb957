"""Shared browser lifecycle for all platform adapters.

One Chromium process is shared by the whole batch; every query runs in its
own browser context so that cookies and storage never leak between
platforms. The manager is constructed explicitly and started/closed by its
owner.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import Browser, BrowserContext, async_playwright

from .config import GlobalSettings

logger = logging.getLogger(__name__)


class BrowserManager:
    """Owns the shared browser process and hands out isolated contexts."""

    def __init__(self, settings: GlobalSettings, browser: Browser | None = None):
        """Initialize the browser manager.

        Args:
        ----
            settings: Global browser settings (headless, viewport, locale, ...)
            browser: An already launched browser to reuse instead of launching

        """
        self.settings = settings
        self._playwright: Any = None
        self._browser: Browser | None = browser
        self._owns_browser = browser is None

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        if self._browser is not None:
            return
        logger.info(
            f"🚀 Launching Chromium (headless={self.settings.headless}, "
            f"{len(self.settings.launch_args)} launch args)"
        )
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            args=list(self.settings.launch_args),
        )

    async def close(self) -> None:
        if self._browser is not None and self._owns_browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Browser close warning: {e}")
        self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Playwright stop warning: {e}")
            self._playwright = None

    def get_context_options(
        self, storage_state: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Build ``new_context`` keyword arguments from the global settings."""
        options: dict[str, Any] = {
            "viewport": {
                "width": self.settings.viewport.width,
                "height": self.settings.viewport.height,
            },
            "user_agent": self.settings.user_agent,
            "locale": self.settings.locale,
            "timezone_id": self.settings.timezone_id,
        }
        if storage_state:
            options["storage_state"] = storage_state
        return options

    @asynccontextmanager
    async def isolated_context(
        self, storage_state: dict[str, Any] | None = None
    ) -> AsyncIterator[BrowserContext]:
        """Yield a fresh browser context, closed on every exit path."""
        if self._browser is None:
            await self.start()
        if self._browser is None:
            raise RuntimeError("Browser failed to start")

        context = await self._browser.new_context(
            **self.get_context_options(storage_state)
        )
        try:
            yield context
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Failed to close browser context: {e}")

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb) -> None:
        await self.close()
