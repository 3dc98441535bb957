"""Completion detection for streamed chat answers.

None of the supported sites tells the automation layer when generation has
finished. The only generic termination signal is that the answer text stops
changing for a number of consecutive polls; an explicit "generating" / stop
affordance, when a site has one, outranks text stability because some sites
briefly stop mutating the DOM mid-stream.

The polling loop is driven by an injectable Clock so that sequences of
observations can be replayed deterministically in tests.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .utils import Clock

logger = logging.getLogger(__name__)


class StabilityTracker:
    """Consecutive-unchanged-poll counter for one streamed answer."""

    def __init__(self, threshold: int):
        if threshold < 1:
            raise ValueError("Stability threshold must be at least 1")
        self.threshold = threshold
        self.last_text = ""
        self.stable_count = 0
        self.polls = 0

    @property
    def is_complete(self) -> bool:
        return self.stable_count >= self.threshold

    def observe(self, text: str, generating: bool = False) -> bool:
        """Feed one poll and report whether the answer is complete.

        Args:
        ----
            text: Current text of the response container
            generating: Whether an in-progress affordance was visible

        Returns:
        -------
            True once the text has been unchanged for ``threshold`` polls

        """
        self.polls += 1
        text = text or ""

        if generating:
            # In-progress evidence never counts as a stable poll.
            self.stable_count = 0
            if text != self.last_text:
                self.last_text = text
            return False

        if text and text == self.last_text:
            self.stable_count += 1
        else:
            self.stable_count = 0
            self.last_text = text

        return self.is_complete


@dataclass(frozen=True)
class CompletionOutcome:
    """Result of waiting for a streamed answer."""

    text: str
    completed: bool
    timed_out: bool
    polls: int
    elapsed_sec: float


async def wait_for_completion(
    read_text: Callable[[], Awaitable[str]],
    is_generating: Callable[[], Awaitable[bool]] | None,
    clock: Clock,
    interval: float,
    threshold: int,
    timeout: float,
) -> CompletionOutcome:
    """Poll the response text until it is stable or the timeout elapses.

    A read that raises is logged and treated as an empty read, and a failing
    generating probe is treated as "not generating". When the timeout elapses
    first, the best text seen so far is returned with ``timed_out`` set.
    """
    tracker = StabilityTracker(threshold)
    started = clock.monotonic()
    deadline = started + timeout
    best_text = ""

    while True:
        try:
            text = await read_text()
        except Exception as e:
            logger.debug(f"Response read failed during poll: {e}")
            text = ""

        generating = False
        if is_generating is not None:
            try:
                generating = await is_generating()
            except Exception as e:
                logger.debug(f"Generating probe failed during poll: {e}")

        if text:
            best_text = text

        if tracker.observe(text, generating):
            elapsed = clock.monotonic() - started
            logger.info(
                f"Generation complete (stable for {tracker.stable_count} polls, "
                f"{elapsed:.1f}s)"
            )
            return CompletionOutcome(
                text=text,
                completed=True,
                timed_out=False,
                polls=tracker.polls,
                elapsed_sec=elapsed,
            )

        if clock.monotonic() >= deadline:
            break
        await clock.sleep(interval)

    elapsed = clock.monotonic() - started
    logger.warning(
        f"Timeout waiting for generation to complete after {elapsed:.1f}s, "
        f"returning what we have ({len(best_text)} chars)"
    )
    return CompletionOutcome(
        text=best_text,
        completed=False,
        timed_out=True,
        polls=tracker.polls,
        elapsed_sec=elapsed,
    )
