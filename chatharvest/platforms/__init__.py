"""Multi-platform chat adapters with factory and registry support.

Architecture:
    - base/: Platform-agnostic foundation (models, config, adapter contract)
    - deepseek/, doubao/, kimi/, qwen/, wenxin/, yuanbao/: site adapters

Usage:
    adapter = AdapterFactory.create_adapter(profile, page)
    await adapter.navigate()
    if await adapter.handle_login():
        await adapter.send_query("...")
"""

import importlib
import logging

from playwright.async_api import Page

from .base import (
    AdapterRegistry,
    Clock,
    GenericAdapter,
    PlatformAdapter,
    PlatformProfile,
)

logger = logging.getLogger(__name__)

KNOWN_PLATFORMS = ("deepseek", "doubao", "kimi", "qwen", "wenxin", "yuanbao")


class AdapterFactory:
    """Factory class for creating site adapters.

    Adapter modules are imported on demand so that registering a new site
    only requires a package named after its platform identifier.
    """

    @classmethod
    def get_adapter_class(cls, platform_id: str) -> type[PlatformAdapter]:
        """Resolve the adapter class for a platform, falling back to GenericAdapter."""
        if not AdapterRegistry.is_platform_supported(platform_id):
            cls._auto_import_platform(platform_id)
        adapter_class = AdapterRegistry.get_adapter_class(platform_id)
        if adapter_class is None:
            logger.debug(f"No dedicated adapter for {platform_id}, using generic")
            return GenericAdapter
        return adapter_class

    @classmethod
    def create_adapter(
        cls, profile: PlatformProfile, page: Page, clock: Clock | None = None
    ) -> PlatformAdapter:
        """Create an adapter instance bound to a page.

        Args:
        ----
            profile: Profile of the target site
            page: Page inside the query's isolated context
            clock: Optional clock override

        Returns:
        -------
            Site-specific adapter instance

        """
        adapter_class = cls.get_adapter_class(profile.platform_id)
        return adapter_class(profile, page, clock)

    @classmethod
    def get_available_platforms(cls) -> list[str]:
        """Import every known site package and list the registered adapters."""
        for platform_id in KNOWN_PLATFORMS:
            cls._auto_import_platform(platform_id)
        return AdapterRegistry.get_available_platforms()

    @classmethod
    def _auto_import_platform(cls, platform_id: str) -> None:
        if not platform_id.isidentifier():
            return
        try:
            importlib.import_module(f"{__name__}.{platform_id}")
        except ModuleNotFoundError as e:
            logger.debug(f"Could not import {platform_id} adapter: {e}")


__all__ = [
    "AdapterFactory",
    "AdapterRegistry",
    "GenericAdapter",
    "PlatformAdapter",
    "KNOWN_PLATFORMS",
]
