"""Bounded DOM snapshots and the traversal helpers built on them.

Reference extraction on the supported sites depends on structural heuristics
(a toggle somewhere near the answer, a card around each link, a container a
couple of levels above the markdown body). Instead of issuing one driver
round trip per hop, a single in-page script serializes a bounded subtree into
plain dictionaries and the heuristics run over the resulting ``DomNode`` tree
in Python. Nodes found this way are clicked back through their child-index
path.
"""

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .utils import clean_text, clean_url, extract_domain

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 14
DEFAULT_MAX_NODES = 2500
REFERENCE_MARKERS = ("参考资料", "引用")

# Shared by the snapshot and click scripts so child indices agree.
_JS_HELPERS = """
const SKIP = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'svg', 'SVG']);
const kids = (el) => Array.from(el.children).filter((c) => !SKIP.has(c.tagName));
const anchorFor = (args) => {
  const matches = Array.from(document.querySelectorAll(args.selector));
  if (matches.length === 0) return null;
  return args.first ? matches[0] : matches[matches.length - 1];
};
const climb = (el, hops) => {
  let node = el;
  for (let i = 0; i < (hops || 0); i++) {
    if (!node.parentElement || node.parentElement === document.documentElement) break;
    node = node.parentElement;
  }
  return node;
};
"""

SNAPSHOT_SCRIPT = (
    "(args) => {"
    + _JS_HELPERS
    + """
  const anchor = anchorFor(args);
  if (!anchor) return null;
  const root = climb(anchor, args.hops);
  const keep = ['href', 'class', 'role', 'target', 'aria-label', 'title', 'data-testid'];
  let count = 0;
  let anchorPath = null;
  const serialize = (el, depth, path) => {
    count += 1;
    if (el === anchor) anchorPath = path;
    const attrs = {};
    for (const name of keep) {
      const value = el.getAttribute(name);
      if (value !== null) attrs[name] = String(value);
    }
    if (el.tagName === 'A' && el.href) attrs.href = el.href;
    const text = Array.from(el.childNodes)
      .filter((n) => n.nodeType === Node.TEXT_NODE)
      .map((n) => n.textContent.trim())
      .filter(Boolean)
      .join(' ');
    const r = el.getBoundingClientRect();
    const children = [];
    if (depth < args.maxDepth) {
      kids(el).forEach((child, index) => {
        if (count < args.maxNodes) children.push(serialize(child, depth + 1, path.concat([index])));
      });
    }
    return {
      tag: el.tagName.toLowerCase(),
      text,
      attrs,
      rect: [r.left, r.top, r.width, r.height],
      children,
    };
  };
  const tree = serialize(root, 0, []);
  return { root: tree, anchorPath: anchorPath || [], viewportWidth: window.innerWidth };
}"""
)

CLICK_BY_PATH_SCRIPT = (
    "(args) => {"
    + _JS_HELPERS
    + """
  const anchor = anchorFor(args);
  if (!anchor) return false;
  let node = climb(anchor, args.hops);
  for (const index of args.path) {
    const children = kids(node);
    if (index >= children.length) return false;
    node = children[index];
  }
  node.click();
  return true;
}"""
)

READ_ANCESTOR_SCRIPT = (
    "(args) => {"
    + _JS_HELPERS
    + """
  const anchor = anchorFor(args);
  if (!anchor) return null;
  const node = climb(anchor, args.hops);
  return { text: node.innerText || '', html: node.innerHTML || '' };
}"""
)


@dataclass(eq=False)
class DomNode:
    """One element of a serialized DOM subtree."""

    tag: str
    text: str = ""
    attrs: dict[str, str] = field(default_factory=dict)
    rect: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    children: list["DomNode"] = field(default_factory=list)
    parent: "DomNode | None" = field(default=None, repr=False)
    path: tuple[int, ...] = ()

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        parent: "DomNode | None" = None,
        path: tuple[int, ...] = (),
    ) -> "DomNode":
        rect = data.get("rect") or (0.0, 0.0, 0.0, 0.0)
        node = cls(
            tag=str(data.get("tag", "")).lower(),
            text=clean_text(data.get("text", "")),
            attrs={str(k): str(v) for k, v in (data.get("attrs") or {}).items()},
            rect=tuple(float(v) for v in rect),  # type: ignore[arg-type]
            parent=parent,
            path=path,
        )
        node.children = [
            cls.from_dict(child, node, path + (index,))
            for index, child in enumerate(data.get("children") or [])
        ]
        return node

    def iter(self) -> Iterator["DomNode"]:
        """Pre-order iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.iter()

    def lines(self) -> list[str]:
        """Non-empty text fragments in document order."""
        return [node.text for node in self.iter() if node.text]

    @property
    def text_content(self) -> str:
        return " ".join(self.lines())

    @property
    def href(self) -> str:
        return clean_url(self.attrs.get("href"))

    @property
    def class_name(self) -> str:
        return self.attrs.get("class", "")

    def find(self, path: Sequence[int]) -> "DomNode | None":
        node: DomNode | None = self
        for index in path:
            if node is None or index >= len(node.children):
                return None
            node = node.children[index]
        return node

    def walk_up(self, max_hops: int) -> list["DomNode"]:
        """This node followed by at most ``max_hops`` ancestors."""
        chain = [self]
        node = self
        for _ in range(max_hops):
            if node.parent is None:
                break
            node = node.parent
            chain.append(node)
        return chain

    def find_toggle_near(self, pattern: str, max_hops: int = 4) -> "DomNode | None":
        """Find the smallest, deepest element matching ``pattern`` near this node.

        Searches this node's own subtree first, then the siblings of this node
        and of each ancestor up to ``max_hops`` levels.
        """
        regex = re.compile(pattern)

        def smallest_match(root: DomNode) -> DomNode | None:
            matches = [n for n in root.iter() if regex.search(n.text_content)]
            if not matches:
                return None
            return min(matches, key=lambda n: (len(n.text_content), -len(n.path)))

        found = smallest_match(self)
        if found is not None:
            return found

        for node in self.walk_up(max_hops):
            if node.parent is None:
                continue
            for sibling in node.parent.children:
                if sibling is node:
                    continue
                found = smallest_match(sibling)
                if found is not None:
                    return found
        return None

    def collect_links(
        self, exclude_hosts: Sequence[str] = (), new_tab_only: bool = False
    ) -> list["DomNode"]:
        """External ``http(s)`` anchors under this node, excluding given hosts."""
        links = []
        for node in self.iter():
            if node.tag != "a":
                continue
            href = node.href
            if not href.startswith("http"):
                continue
            if new_tab_only and node.attrs.get("target") != "_blank":
                continue
            domain = extract_domain(href)
            if any(domain == h or domain.endswith("." + h) for h in exclude_hosts):
                continue
            links.append(node)
        return links

    def link_count(self) -> int:
        return sum(1 for node in self.iter() if node.tag == "a")


def card_for_link(
    link: DomNode, max_levels: int = 3, boundary: DomNode | None = None
) -> DomNode:
    """Climb from a link to the card that holds it without crossing ``boundary``."""
    card = link
    for _ in range(max_levels):
        if card.parent is None or card.parent is boundary:
            break
        card = card.parent
    return card


def source_name_from_card(card: DomNode, title: str) -> str:
    """First text line of a card that is not the title, minus a ``· meta`` suffix."""
    lines = card.lines()
    if len(lines) < 2:
        return ""
    source = lines[0] if lines[0] != title else ""
    return re.sub(r"·.*$", "", source).strip()


def richest_container(candidates: Sequence[DomNode]) -> DomNode | None:
    """The candidate holding the most links."""
    if not candidates:
        return None
    return max(candidates, key=lambda node: node.link_count())


def right_side_panels(
    root: DomNode,
    viewport_width: float,
    min_height: float = 300,
    min_width: float = 200,
) -> list[DomNode]:
    """Block elements laid out on the right side of the viewport."""
    panels = []
    for node in root.iter():
        if node.tag != "div":
            continue
        left, _, width, height = node.rect
        if left > viewport_width * 0.6 and height > min_height and width > min_width:
            panels.append(node)
    return panels


def widen_to_reference_container(
    node: DomNode, markers: Sequence[str] = REFERENCE_MARKERS, margin: int = 50
) -> tuple[DomNode, int]:
    """Widen an answer body to the ancestor that also holds its references.

    The parent is chosen when it mentions a reference marker or carries at
    least ``margin`` more characters; otherwise the grandparent is tried with
    the first marker only.

    Returns
    -------
        The chosen node and the number of hops climbed (0, 1 or 2)

    """
    parent = node.parent
    if parent is None:
        return node, 0

    own_len = len(node.text_content)
    parent_text = parent.text_content
    if any(m in parent_text for m in markers) or len(parent_text) > own_len + margin:
        return parent, 1

    grandparent = parent.parent
    if grandparent is not None:
        gp_text = grandparent.text_content
        if markers[0] in gp_text or len(gp_text) > len(parent_text) + margin:
            return grandparent, 2
    return node, 0


@dataclass
class DomSnapshot:
    """A serialized subtree together with the node it was anchored on."""

    root: DomNode
    anchor: DomNode
    selector: str
    hops: int
    first: bool = False
    viewport_width: float = 1280.0


async def take_snapshot(
    page: Any,
    selector: str,
    hops: int = 0,
    first: bool = False,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_nodes: int = DEFAULT_MAX_NODES,
) -> DomSnapshot | None:
    """Serialize the subtree ``hops`` levels above the last ``selector`` match.

    Returns ``None`` when nothing matches the selector.
    """
    data = await page.evaluate(
        SNAPSHOT_SCRIPT,
        {
            "selector": selector,
            "hops": hops,
            "first": first,
            "maxDepth": max_depth,
            "maxNodes": max_nodes,
        },
    )
    if not data:
        return None
    root = DomNode.from_dict(data["root"])
    anchor = root.find(data.get("anchorPath") or []) or root
    return DomSnapshot(
        root=root,
        anchor=anchor,
        selector=selector,
        hops=hops,
        first=first,
        viewport_width=float(data.get("viewportWidth") or 1280.0),
    )


async def click_node(page: Any, snapshot: DomSnapshot, node: DomNode) -> bool:
    """Click a snapshot node in the live page through its child-index path."""
    clicked = await page.evaluate(
        CLICK_BY_PATH_SCRIPT,
        {
            "selector": snapshot.selector,
            "hops": snapshot.hops,
            "first": snapshot.first,
            "path": list(node.path),
        },
    )
    if not clicked:
        logger.debug(f"Snapshot node at {node.path} no longer present")
    return bool(clicked)


async def read_ancestor(
    page: Any, selector: str, hops: int
) -> dict[str, str] | None:
    """Live ``innerText``/``innerHTML`` of the ancestor ``hops`` above the last match."""
    return await page.evaluate(
        READ_ANCESTOR_SCRIPT, {"selector": selector, "hops": hops, "first": False}
    )
