"""Single-query execution against one platform.

The QueryOrchestrator is the containment boundary of the engine: whatever
happens while driving a site (navigation errors, login timeouts, selector
drift, driver crashes) ends up as fields of the returned QueryResult.
"""

import logging
from datetime import datetime, timezone

from playwright.async_api import BrowserContext, Page

from ..platforms import AdapterFactory
from ..platforms.base import (
    BrowserManager,
    Clock,
    ErrorKind,
    ExtractionFailure,
    HarvestError,
    LoginFailure,
    PlatformConfigManager,
    PlatformProfile,
    QueryResult,
    QueryStatus,
    ResponseTimeout,
    SystemClock,
)
from ..platforms.base.utils import truncate
from ..utils import capture_debug_artifacts
from ..utils.outputs_paths import get_debug_name
from .session_store import SessionStore

logger = logging.getLogger(__name__)


def fail_from_exception(result: QueryResult, error: Exception) -> None:
    """Record an exception on a result using the taxonomy kind when it has one."""
    if isinstance(error, HarvestError):
        logger.error(f"[{result.platform_id}] {type(error).__name__}: {error}")
        result.mark_failed(str(error), error.kind)
    else:
        logger.error(f"[{result.platform_id}] Unexpected error: {error}", exc_info=True)
        result.mark_failed(str(error) or type(error).__name__, ErrorKind.UNEXPECTED)


class QueryOrchestrator:
    """Run one query on one platform in an isolated browser context."""

    def __init__(
        self,
        config_manager: PlatformConfigManager,
        browser: BrowserManager,
        session_store: SessionStore,
        clock: Clock | None = None,
        capture_debug: bool = True,
    ):
        self.config_manager = config_manager
        self.browser = browser
        self.session_store = session_store
        self.clock = clock or SystemClock()
        self.capture_debug = capture_debug

    async def run_query(self, platform_id: str, query: str, tag: str = "") -> QueryResult:
        """Execute a query and return its result. Never raises.

        Args:
        ----
            platform_id: Identifier of a configured platform
            query: Query text to submit
            tag: Classification tag carried through to the result

        Returns:
        -------
            QueryResult describing success, partial success or failure

        """
        started = self.clock.monotonic()
        result = QueryResult(
            platform_id=platform_id,
            query=query,
            status=QueryStatus.FAILED,
            tag=tag,
        )
        logger.info(f"▶️ [{platform_id}] Running query: {truncate(query, 40)}")

        try:
            profile = self.config_manager.get_profile(platform_id)
            result.model = profile.name

            session = self.session_store.load(platform_id)
            storage_state = session.to_storage_state() if session else None

            async with self.browser.isolated_context(storage_state) as context:
                page = await context.new_page()
                try:
                    await self._drive(context, page, profile, result)
                except Exception as e:
                    fail_from_exception(result, e)
                if not result.succeeded:
                    await self._capture(page, platform_id)
        except Exception as e:
            fail_from_exception(result, e)

        return self._finish(result, started)

    async def _drive(
        self,
        context: BrowserContext,
        page: Page,
        profile: PlatformProfile,
        result: QueryResult,
    ) -> None:
        adapter = AdapterFactory.create_adapter(profile, page, self.clock)

        await adapter.navigate()
        if not await adapter.handle_login():
            raise LoginFailure(f"Login failed for {profile.name}")

        self.session_store.save(
            profile.platform_id, await context.storage_state(), model=profile.name
        )

        await adapter.send_query(result.query)
        extraction = await adapter.wait_for_response(
            self.config_manager.get_response_timeout(profile.platform_id)
        )
        if extraction is None:
            raise ExtractionFailure("Response container never appeared")

        result.status = QueryStatus.SUCCESS
        result.response_text = extraction.text
        result.references = extraction.references
        result.search_results = extraction.search_results
        result.reference_source = extraction.reference_source
        if extraction.timed_out:
            # Partial answers stay successful; the timeout is only annotated.
            timeout = ResponseTimeout("Response did not stabilize before the timeout")
            result.timed_out = True
            result.error = str(timeout)
            result.error_kind = timeout.kind

    def _finish(self, result: QueryResult, started: float) -> QueryResult:
        result.duration_sec = self.clock.monotonic() - started
        result.timestamp = datetime.now(timezone.utc)
        if result.succeeded:
            logger.info(
                f"✅ [{result.platform_id}] {len(result.response_text)} chars "
                f"in {result.duration_sec:.1f}s"
            )
        else:
            kind = result.error_kind.value if result.error_kind else "failed"
            logger.warning(f"❌ [{result.platform_id}] {kind}: {result.error}")
        return result

    async def _capture(self, page: Page, platform_id: str) -> None:
        if not self.capture_debug:
            return
        try:
            debug_dir = self.config_manager.config.debug_path
            await capture_debug_artifacts(page, debug_dir, get_debug_name(platform_id))
        except Exception as e:
            logger.warning(f"Debug capture failed for {platform_id}: {e}")
