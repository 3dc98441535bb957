"""Platform-agnostic data models for the query orchestration engine.

This module defines the canonical records that flow between the platform
adapters, the orchestrator and the batch runner, together with the registry
that maps platform identifiers onto adapter classes.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .adapter import PlatformAdapter


class QueryStatus(Enum):
    """Final status of a query execution."""

    SUCCESS = "success"
    FAILED = "failed"


class ErrorKind(Enum):
    """Failure categories surfaced on a QueryResult."""

    LOGIN_FAILURE = "login_failure"
    NAVIGATION_FAILURE = "navigation_failure"
    EXTRACTION_FAILURE = "extraction_failure"
    RESPONSE_TIMEOUT = "response_timeout"
    SESSION_CORRUPTION = "session_corruption"
    INTEGRITY_VIOLATION = "integrity_violation"
    UNEXPECTED = "unexpected"


class ReferenceSource(Enum):
    """Where the reference list of an answer came from."""

    EXPLICIT = "explicit"
    SEARCH_RESULTS = "search_results"
    NONE = "none"
    FAILED = "failed"


@dataclass(frozen=True)
class Reference:
    """A normalized citation attached to a generated answer."""

    position: int
    domain: str
    title: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "domain": self.domain,
            "title": self.title,
            "url": self.url,
        }


@dataclass
class ExtractionResult:
    """Everything an adapter managed to read from the latest answer."""

    text: str = ""
    references: list[Reference] = field(default_factory=list)
    search_results: list[Reference] = field(default_factory=list)
    raw_html: str = ""
    timed_out: bool = False
    reference_source: ReferenceSource = ReferenceSource.NONE
    errors: list[str] = field(default_factory=list)


@dataclass
class SessionRecord:
    """Persisted authentication state of one platform."""

    platform_id: str
    cookies: list[dict[str, Any]]
    origins: list[dict[str, Any]]
    created_at: datetime

    def age_days(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 86400

    def to_storage_state(self) -> dict[str, Any]:
        """Return the state in the shape Playwright contexts accept."""
        return {"cookies": self.cookies, "origins": self.origins}


TAG_KEYS = ("tag", "angle", "dimension", "type")


@dataclass(frozen=True)
class QueryItem:
    """A query to run on every selected platform."""

    text: str
    tag: str = ""

    @classmethod
    def from_raw(cls, raw: "str | Mapping[str, Any] | QueryItem") -> "QueryItem":
        """Build an item from a plain string or a query mapping.

        Mappings carry the text under ``query`` (or ``text``) and the
        classification tag under the first non-empty of ``tag``, ``angle``,
        ``dimension`` or ``type``.
        """
        if isinstance(raw, QueryItem):
            return raw
        if isinstance(raw, str):
            return cls(text=raw)
        if isinstance(raw, Mapping):
            text = raw.get("query") or raw.get("text") or ""
            tag = next((str(raw[k]) for k in TAG_KEYS if raw.get(k)), "")
            return cls(text=str(text), tag=tag)
        raise TypeError(f"Unsupported query item: {raw!r}")


@dataclass(frozen=True)
class QueryTask:
    """A single (platform, query) unit of work issued by the batch runner."""

    platform_id: str
    query: str
    tag: str = ""
    retry_budget: int = 3


@dataclass
class QueryResult:
    """Outcome of one query execution, including all of its retries."""

    platform_id: str
    query: str
    status: QueryStatus
    response_text: str = ""
    references: list[Reference] = field(default_factory=list)
    search_results: list[Reference] = field(default_factory=list)
    duration_sec: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None
    error_kind: ErrorKind | None = None
    attempts: int = 1
    tag: str = ""
    model: str = ""
    timed_out: bool = False
    reference_source: ReferenceSource = ReferenceSource.NONE

    @property
    def succeeded(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    def mark_failed(self, error: str, kind: ErrorKind) -> None:
        """Downgrade the result to failed with the given cause."""
        self.status = QueryStatus.FAILED
        self.error = error
        self.error_kind = kind

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "platform": self.platform_id,
            "query": self.query,
            "tag": self.tag,
            "model": self.model,
            "status": self.status.value,
            "response": self.response_text,
            "references": [r.to_dict() for r in self.references],
            "search_results": [r.to_dict() for r in self.search_results],
            "reference_source": self.reference_source.value,
            "duration_sec": round(self.duration_sec, 3),
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "attempts": self.attempts,
            "timed_out": self.timed_out,
        }


@dataclass(frozen=True)
class BatchProgress:
    """Progress report emitted once per finished (platform, query) pair."""

    completed: int
    total: int
    last_result: QueryResult


class AdapterRegistry:
    """Registry of platform adapters keyed on platform identifier."""

    _adapters: dict[str, type["PlatformAdapter"]] = {}

    @classmethod
    def register(cls, platform_id: str, adapter_class: type["PlatformAdapter"]):
        """Register an adapter class for a platform."""
        cls._adapters[platform_id] = adapter_class

    @classmethod
    def get_adapter_class(cls, platform_id: str) -> type["PlatformAdapter"] | None:
        """Get the adapter class for a platform."""
        return cls._adapters.get(platform_id)

    @classmethod
    def get_available_platforms(cls) -> list[str]:
        """Get list of platforms with registered adapters."""
        return list(cls._adapters.keys())

    @classmethod
    def is_platform_supported(cls, platform_id: str) -> bool:
        """Check if a platform has a registered adapter."""
        return platform_id in cls._adapters


def register_adapter(platform_id: str):
    """Decorator to register an adapter class for a platform.

    Usage:
        @register_adapter("deepseek")
        class DeepseekAdapter(PlatformAdapter):
            ...
    """

    def decorator(adapter_class: type["PlatformAdapter"]):
        adapter_class.platform_id = platform_id
        AdapterRegistry.register(platform_id, adapter_class)
        return adapter_class

    return decorator
