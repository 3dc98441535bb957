"""Qwen (Tongyi Qianwen) adapter.

The Qwen front-end spans two cookie domains (``.aliyun.com`` and
``.qianwen.com``) and boots with calls to its ``api/v1`` endpoints, which the
profile uses as the network login confirmation. Citations are dedicated
elements inside the answer.
"""

import logging
from typing import Any

from ..base import register_adapter
from ..base.adapter import PlatformAdapter

logger = logging.getLogger(__name__)


@register_adapter("qwen")
class QwenAdapter(PlatformAdapter):
    async def extract_search_results(self) -> list[dict[str, Any]]:
        return []

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        if not self.selectors.citation:
            return await self.links_in_response()

        responses = await self.page.query_selector_all(self.selectors.response)
        if not responses:
            return []

        records = []
        for element in await responses[-1].query_selector_all(self.selectors.citation):
            url = await element.get_attribute("href")
            if not url:
                link = await element.query_selector("a")
                url = await link.get_attribute("href") if link else None
            if not url:
                continue
            records.append({"title": await element.inner_text(), "url": url})
        logger.debug(f"Qwen citations found: {len(records)}")
        return records
