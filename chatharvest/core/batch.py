"""Sequential batch execution of queries across platforms.

The BatchRunner turns every (platform, query) pair into a QueryTask, runs it
through the QueryOrchestrator with a bounded retry budget and an integrity
gate, paces consecutive queries like a human would, and checkpoints each
platform's results as soon as that platform is done.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from ..platforms.base import (
    BatchProgress,
    BatchSettings,
    IntegrityViolation,
    QueryItem,
    QueryResult,
    QueryStatus,
    QueryTask,
    human_delay,
)
from ..platforms.base.utils import truncate
from .export import ResultExporter
from .monitor import Monitor
from .orchestrator import fail_from_exception
from .storage import ResultStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], Awaitable[None] | None]


class BatchRunner:
    """Run query batches with retries, pacing and checkpoints."""

    def __init__(
        self,
        orchestrator: Any,
        settings: BatchSettings,
        exporter: ResultExporter | None = None,
        result_store: ResultStore | None = None,
        monitor: Monitor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the batch runner.

        Args:
        ----
            orchestrator: Object exposing ``run_query(platform_id, query, tag)``
            settings: Retry, pacing and integrity settings
            exporter: Per-platform CSV checkpoint writer
            result_store: JSONL store every final result is appended to
            monitor: Aggregate counters every final result is recorded in
            sleep: Sleep primitive used for retry backoff and pacing

        """
        self.orchestrator = orchestrator
        self.settings = settings
        self.exporter = exporter
        self.result_store = result_store
        self.monitor = monitor
        self._sleep = sleep

    def check_integrity(self, result: QueryResult) -> tuple[bool, str]:
        """Decide whether a result is viable.

        Returns
        -------
            Tuple of (is_viable, reason)

        """
        if result.status is not QueryStatus.SUCCESS:
            return False, result.error or "Query failed"

        text = (result.response_text or "").strip()
        if len(text) <= self.settings.min_response_chars:
            return False, "Response integrity check failed (empty or too short)"

        if len(text) <= self.settings.error_reply_max_chars:
            lowered = text.lower()
            for keyword in self.settings.error_keywords:
                if keyword.lower() in lowered:
                    return False, f"Response integrity check failed (contains '{keyword}')"
        return True, ""

    def _gate(self, result: QueryResult) -> QueryResult:
        viable, reason = self.check_integrity(result)
        if not viable and result.succeeded:
            fail_from_exception(result, IntegrityViolation(reason))
        return result

    async def _attempt(self, task: QueryTask) -> QueryResult:
        try:
            result = await self.orchestrator.run_query(
                task.platform_id, task.query, task.tag
            )
        except Exception as e:
            result = QueryResult(
                platform_id=task.platform_id,
                query=task.query,
                status=QueryStatus.FAILED,
                tag=task.tag,
            )
            fail_from_exception(result, e)
        return self._gate(result)

    async def run_task(self, task: QueryTask) -> QueryResult:
        """Run one task until a viable result or the retry budget is spent."""
        attempts = 0
        result: QueryResult | None = None

        def log_retry(retry_state: RetryCallState) -> None:
            last = retry_state.outcome.result() if retry_state.outcome else None
            logger.warning(
                f"[{task.platform_id}] Attempt {retry_state.attempt_number}/"
                f"{task.retry_budget} not viable: {last.error if last else 'unknown'}"
            )

        retryer = AsyncRetrying(
            stop=stop_after_attempt(task.retry_budget),
            wait=wait_fixed(self.settings.retry_delay_sec),
            retry=retry_if_result(lambda r: not self.check_integrity(r)[0]),
            before_sleep=log_retry,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            sleep=self._sleep,
        )

        async for attempt in retryer:
            with attempt:
                attempts += 1
                logger.info(
                    f"[{task.platform_id}] Attempt {attempts}/{task.retry_budget}: "
                    f"{truncate(task.query, 20)}"
                )
                result = await self._attempt(task)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(result)

        if result is None:
            raise RuntimeError(f"No attempt was made for {task.platform_id}")
        result.attempts = attempts
        result.tag = task.tag
        return result

    async def run(
        self,
        queries: Iterable[str | Mapping[str, Any] | QueryItem],
        platforms: Sequence[str],
        retry_count: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[QueryResult]:
        """Run every query on every platform, platforms outermost.

        Args:
        ----
            queries: Query strings, query mappings or QueryItems
            platforms: Platform identifiers, in execution order
            retry_count: Attempt budget per pair (defaults to the settings)
            on_progress: Called once per finished pair, sync or async

        Returns:
        -------
            One QueryResult per (platform, query) pair, in execution order

        """
        items = [QueryItem.from_raw(q) for q in queries]
        budget = retry_count or self.settings.retry_count
        total = len(items) * len(platforms)
        results: list[QueryResult] = []
        run_moment = self.exporter.timestamp() if self.exporter is not None else None

        logger.info(
            f"🚀 Starting batch: {len(items)} queries x {len(platforms)} platforms "
            f"(retry budget {budget})"
        )

        for platform_id in platforms:
            platform_results: list[QueryResult] = []

            for item in items:
                if results or platform_results:
                    delay = await human_delay(
                        self.settings.pacing_min_sec,
                        self.settings.pacing_max_sec,
                        sleep=self._sleep,
                    )
                    logger.debug(f"Paced {delay:.1f}s before next query")

                task = QueryTask(
                    platform_id=platform_id,
                    query=item.text,
                    tag=item.tag,
                    retry_budget=budget,
                )
                result = await self.run_task(task)
                platform_results.append(result)
                self._record(result)

                if on_progress is not None:
                    progress = BatchProgress(
                        completed=len(results) + len(platform_results),
                        total=total,
                        last_result=result,
                    )
                    await self._notify(on_progress, progress)

            results.extend(platform_results)
            if self.exporter is not None:
                self.exporter.export_platform(
                    platform_id, platform_results, moment=run_moment
                )

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"🏁 Batch finished: {succeeded}/{len(results)} succeeded")
        return results

    def _record(self, result: QueryResult) -> None:
        if self.result_store is not None and self.settings.jsonl_enabled:
            self.result_store.append(result)
        if self.monitor is not None:
            self.monitor.record(result)

    async def _notify(self, on_progress: ProgressCallback, progress: BatchProgress) -> None:
        try:
            outcome = on_progress(progress)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
