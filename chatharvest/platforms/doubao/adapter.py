"""Doubao adapter."""

import logging
from typing import Any

from ..base import register_adapter
from ..base.adapter import TOGGLE_SEARCH_HOPS, PlatformAdapter, cards_to_records
from ..base.utils import extract_domain

logger = logging.getLogger(__name__)


@register_adapter("doubao")
class DoubaoAdapter(PlatformAdapter):
    """Doubao front-end.

    Doubao's send button stays disabled until its editor sees real input
    events, so Enter is pressed first and the button is only a backup.
    Cookies are injected for both the root and the ``www`` domain, which
    the profile lists explicitly.
    """

    enter_first_submit = True

    async def extract_search_results(self) -> list[dict[str, Any]]:
        if not await self.expand_search_toggle():
            return []
        if self.selectors.search_panel:
            return await self.links_in_selector(self.selectors.search_panel)

        # The expanded list is rendered next to the answer, not inside it.
        snapshot = await self.snapshot_response(hops=TOGGLE_SEARCH_HOPS)
        if snapshot is None:
            return []
        own_host = extract_domain(self.profile.url)
        answer_urls = {link.href for link in snapshot.anchor.collect_links()}
        return [
            record
            for record in cards_to_records(snapshot.root)
            if record["url"] not in answer_urls
            and extract_domain(record["url"]) != own_host
        ]

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        return await self.links_in_response()
