"""Base infrastructure for the multi-platform chat adapters.

This package provides the common foundation that all site adapters build
upon: models, configuration, the adapter contract, completion detection,
the login state machine, DOM traversal and reference normalization.

Public API:
    - PlatformAdapter: Abstract base class for site adapters
    - AdapterRegistry: Registry of site adapters
    - PlatformConfigManager: YAML platform map loader
    - BrowserManager: Shared browser process with isolated contexts
    - QueryResult / ExtractionResult / Reference: Result records
"""

from .adapter import GenericAdapter, PlatformAdapter
from .browser_utils import BrowserManager
from .completion import CompletionOutcome, StabilityTracker, wait_for_completion
from .config import (
    DEFAULT_CONFIG_PATH,
    AuthConfig,
    BatchSettings,
    CompletionConfig,
    Credentials,
    GlobalSettings,
    HarvestConfig,
    PlatformConfigManager,
    PlatformProfile,
    SelectorConfig,
    load_harvest_config,
)
from .errors import (
    ExtractionFailure,
    HarvestError,
    IntegrityViolation,
    LoginFailure,
    NavigationFailure,
    ResponseTimeout,
    SessionCorruption,
)
from .login import LoginState, LoginStateMachine
from .models import (
    AdapterRegistry,
    BatchProgress,
    ErrorKind,
    ExtractionResult,
    QueryItem,
    QueryResult,
    QueryStatus,
    QueryTask,
    Reference,
    ReferenceSource,
    SessionRecord,
    register_adapter,
)
from .references import format_reference_list, normalize_references, resolve_references
from .utils import Clock, SystemClock, format_duration, human_delay

__all__ = [
    # Adapter contract
    "PlatformAdapter",
    "GenericAdapter",
    "AdapterRegistry",
    "register_adapter",
    "BrowserManager",
    # Models
    "BatchProgress",
    "ErrorKind",
    "ExtractionResult",
    "QueryItem",
    "QueryResult",
    "QueryStatus",
    "QueryTask",
    "Reference",
    "ReferenceSource",
    "SessionRecord",
    # Configuration
    "DEFAULT_CONFIG_PATH",
    "AuthConfig",
    "BatchSettings",
    "CompletionConfig",
    "Credentials",
    "GlobalSettings",
    "HarvestConfig",
    "PlatformConfigManager",
    "PlatformProfile",
    "SelectorConfig",
    "load_harvest_config",
    # Errors
    "HarvestError",
    "LoginFailure",
    "NavigationFailure",
    "ExtractionFailure",
    "ResponseTimeout",
    "SessionCorruption",
    "IntegrityViolation",
    # Completion and login
    "CompletionOutcome",
    "StabilityTracker",
    "wait_for_completion",
    "LoginState",
    "LoginStateMachine",
    # References and utilities
    "format_reference_list",
    "normalize_references",
    "resolve_references",
    "Clock",
    "SystemClock",
    "format_duration",
    "human_delay",
]
