"""Wenxin (Ernie Bot) adapter."""

from typing import Any

from ..base import register_adapter
from ..base.adapter import PlatformAdapter


@register_adapter("wenxin")
class WenxinAdapter(PlatformAdapter):
    """Wenxin front-end.

    The input only reacts to keyboard submission; the logged-in marker is the
    user avatar and ``api/(user|chat)`` responses confirm a session.
    """

    enter_first_submit = True

    async def extract_search_results(self) -> list[dict[str, Any]]:
        return []

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        return await self.links_in_response()
