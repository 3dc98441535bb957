"""Error taxonomy for the query orchestration engine.

Every failure that can happen below the QueryOrchestrator maps onto one of
these classes. The orchestrator converts them into QueryResult fields, so
nothing here is ever surfaced to BatchRunner callers as an exception.
"""

from .models import ErrorKind


class HarvestError(Exception):
    """Base class for orchestration failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class LoginFailure(HarvestError):
    """Manual-login bound exceeded or injected credential rejected."""

    kind = ErrorKind.LOGIN_FAILURE


class NavigationFailure(HarvestError):
    """Transient load failure or navigation timeout."""

    kind = ErrorKind.NAVIGATION_FAILURE


class ExtractionFailure(HarvestError):
    """Selector absent or in-page evaluation error."""

    kind = ErrorKind.EXTRACTION_FAILURE


class ResponseTimeout(HarvestError):
    """Streamed response never stabilized within its bound."""

    kind = ErrorKind.RESPONSE_TIMEOUT


class SessionCorruption(HarvestError):
    """Persisted session could not be decrypted or parsed."""

    kind = ErrorKind.SESSION_CORRUPTION


class IntegrityViolation(HarvestError):
    """Structurally successful response below the viability threshold."""

    kind = ErrorKind.INTEGRITY_VIOLATION
