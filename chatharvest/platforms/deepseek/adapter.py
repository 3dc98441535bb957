"""Deepseek adapter.

Deepseek keeps its session token in local storage (``userToken``), which can
only be written once the sign-in page of the chat domain is open. Web search
results are hidden behind a "read N web pages" toggle that opens a side panel
on the right of the viewport; every card in that panel shows the source name
above the linked title.
"""

import logging
from typing import Any

from ..base import Credentials, register_adapter
from ..base.adapter import PlatformAdapter, cards_to_records
from ..base.dom import richest_container, right_side_panels, take_snapshot

logger = logging.getLogger(__name__)


@register_adapter("deepseek")
class DeepseekAdapter(PlatformAdapter):
    def local_storage_items(self, credentials: Credentials) -> dict[str, str]:
        items = super().local_storage_items(credentials)
        token = credentials.user_token or credentials.token
        if token:
            items["userToken"] = token
        return items

    async def extract_search_results(self) -> list[dict[str, Any]]:
        if not await self.expand_search_toggle():
            return []

        if self.selectors.search_panel:
            return await self.links_in_selector(self.selectors.search_panel)

        snapshot = await take_snapshot(self.page, "body", first=True)
        if snapshot is None:
            return []
        panel = richest_container(
            right_side_panels(snapshot.root, snapshot.viewport_width)
        )
        if panel is None:
            logger.info("No side panel found after expanding search results")
            return []
        records = cards_to_records(panel, new_tab_only=True)
        logger.debug(f"Side panel yielded {len(records)} search result cards")
        return records

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        return await self.links_in_response()
