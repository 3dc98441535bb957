"""Kimi adapter."""

import logging
from typing import Any

from ..base import Credentials, register_adapter
from ..base.adapter import PlatformAdapter, cards_to_records
from ..base.dom import read_ancestor, widen_to_reference_container
from ..base.utils import extract_domain

logger = logging.getLogger(__name__)


@register_adapter("kimi")
class KimiAdapter(PlatformAdapter):
    """Kimi front-end.

    The access token goes into local storage before any cookie is injected.
    The response selector usually lands on the inner markdown body, while the
    reference list is rendered by its parent or grandparent, so extraction
    widens the element before reading it.
    """

    enter_first_submit = True
    storage_before_cookies = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.response_hops = 0

    def local_storage_items(self, credentials: Credentials) -> dict[str, str]:
        items = super().local_storage_items(credentials)
        if credentials.token:
            items["access_token"] = credentials.token
            items["refresh_token"] = credentials.token
        return items

    async def read_response_body(self) -> tuple[str, str]:
        self.response_hops = 0
        snapshot = await self.snapshot_response(hops=2)
        if snapshot is None:
            return "", ""

        if "markdown" in snapshot.anchor.class_name:
            _, hops = widen_to_reference_container(snapshot.anchor)
            if hops:
                body = await read_ancestor(self.page, self.selectors.response, hops)
                if body:
                    logger.debug(f"Widened Kimi response by {hops} level(s)")
                    self.response_hops = hops
                    return body["text"], body["html"]

        return await super().read_response_body()

    async def extract_search_results(self) -> list[dict[str, Any]]:
        return []

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        snapshot = await self.snapshot_response(hops=self.response_hops)
        if snapshot is None:
            return []
        own_host = extract_domain(self.profile.url)
        return [
            record
            for record in cards_to_records(snapshot.root)
            if extract_domain(record["url"]) != own_host
        ]
