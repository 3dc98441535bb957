"""Normalization of citation lists into canonical Reference records."""

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .models import Reference, ReferenceSource
from .utils import clean_text, clean_url, extract_domain

logger = logging.getLogger(__name__)

_INLINE_MARKER = re.compile(r"\[\d+\]")


def normalize_references(raw_items: Iterable[Mapping[str, Any]]) -> list[Reference]:
    """Build a deduplicated, 1-based Reference list from raw link records.

    Each raw record may carry ``url`` (or ``href``), ``title`` and an optional
    ``source`` display name. Records without an ``http(s)`` URL are dropped,
    the first occurrence of a URL wins, and the domain is the URL hostname
    (falling back to the source name when the URL has none).

    Args:
    ----
        raw_items: Link records as produced by the adapters

    Returns:
    -------
        Canonical references in first-seen order

    """
    references: list[Reference] = []
    seen: set[str] = set()

    for item in raw_items:
        url = clean_url(item.get("url") or item.get("href"))
        if not url.startswith("http") or url in seen:
            continue
        seen.add(url)

        title = clean_text(_INLINE_MARKER.sub("", str(item.get("title") or "")))
        domain = extract_domain(url) or clean_text(str(item.get("source") or ""))
        references.append(
            Reference(
                position=len(references) + 1,
                domain=domain,
                title=title or url,
                url=url,
            )
        )

    return references


def resolve_references(
    explicit: list[Reference] | None,
    search_results: list[Reference],
) -> tuple[list[Reference], ReferenceSource]:
    """Apply the fallback policy between explicit references and search results.

    ``explicit`` is ``None`` when explicit extraction failed. Search results
    stand in for references whenever no explicit list was obtained.
    """
    if explicit:
        return explicit, ReferenceSource.EXPLICIT
    if search_results:
        logger.debug("No explicit references, reusing search results")
        return list(search_results), ReferenceSource.SEARCH_RESULTS
    if explicit is None:
        return [], ReferenceSource.FAILED
    return [], ReferenceSource.NONE


def format_reference_list(references: Iterable[Reference]) -> str:
    """Render references one per line as ``[n] [domain] title (url)``."""
    return "\n".join(
        f"[{ref.position}] [{ref.domain}] {ref.title} ({ref.url})"
        for ref in references
    )
