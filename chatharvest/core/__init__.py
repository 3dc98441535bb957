"""Session & query orchestration core.

Components, leaves first:
    - SessionStore: encrypted per-platform browser sessions
    - QueryOrchestrator: one query on one platform, never raises
    - BatchRunner: retries, integrity gate, pacing and checkpoints
    - ResultExporter / ResultStore / Monitor: CSV, JSONL and counters
"""

from .batch import BatchRunner
from .export import CSV_COLUMNS, ResultExporter
from .monitor import Monitor
from .orchestrator import QueryOrchestrator
from .session_store import SessionStore, resolve_session_key
from .storage import ResultStore

__all__ = [
    "BatchRunner",
    "CSV_COLUMNS",
    "Monitor",
    "QueryOrchestrator",
    "ResultExporter",
    "ResultStore",
    "SessionStore",
    "resolve_session_key",
]
