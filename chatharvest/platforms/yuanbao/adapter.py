"""Yuanbao adapter.

Yuanbao lets guests type into the input, so the input alone does not prove a
session: only the user avatar does. A login modal that pops up after
submission means the query was rejected. External links inside the answer
are the search results it used; lists that mention references or sources
are its explicit citations.
"""

import logging
import re
from typing import Any

from ..base import register_adapter
from ..base.adapter import PlatformAdapter
from ..base.dom import DomNode
from ..base.utils import clean_text, extract_domain

logger = logging.getLogger(__name__)

REFERENCE_LIST_MARKERS = ("参考", "Sources")
MIN_LINK_TEXT_CHARS = 5


def is_reference_list(node: DomNode) -> bool:
    class_name = node.class_name
    if node.tag not in ("ul", "ol") and not (
        "reference" in class_name or "source" in class_name
    ):
        return False
    text = node.text_content
    return any(m in text for m in REFERENCE_LIST_MARKERS) or any(
        n.tag == "li" for n in node.iter()
    )


@register_adapter("yuanbao")
class YuanbaoAdapter(PlatformAdapter):
    enter_first_submit = True

    async def extract_search_results(self) -> list[dict[str, Any]]:
        snapshot = await self.snapshot_response()
        if snapshot is None:
            return []
        own_host = extract_domain(self.profile.url)
        records = []
        for link in snapshot.anchor.collect_links(exclude_hosts=(own_host,)):
            title = clean_text(link.text_content)
            if len(title) > MIN_LINK_TEXT_CHARS:
                records.append({"title": title, "url": link.href, "source": "Yuanbao"})
        return records

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        snapshot = await self.snapshot_response()
        if snapshot is None:
            return []

        records = []
        for node in snapshot.anchor.iter():
            if not is_reference_list(node):
                continue
            for item in node.iter():
                if item is node or not (item.tag == "li" or "item" in item.class_name):
                    continue
                links = item.collect_links()
                if not links:
                    continue
                title = re.sub(r"\[\d+\]", "", item.text_content).strip()
                records.append({"title": title, "url": links[0].href})
        return records
