"""Abstract platform adapter shared by every supported chat site.

An adapter binds a PlatformProfile to one Playwright page and knows how to
navigate to the site, establish an authenticated state, submit a query, wait
for the streamed answer and extract its text and reference lists. The
generic behaviour lives here; site packages override the handful of hooks
where their front-end deviates.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from playwright.async_api import Page

from .completion import wait_for_completion
from .config import Credentials, PlatformProfile
from .dom import (
    DomNode,
    DomSnapshot,
    card_for_link,
    click_node,
    source_name_from_card,
    take_snapshot,
)
from .errors import LoginFailure, NavigationFailure
from .login import LoginState, LoginStateMachine
from .models import ExtractionResult, Reference
from .references import normalize_references, resolve_references
from .utils import (
    Clock,
    SystemClock,
    clean_text,
    extract_domain,
    parse_cookie_string,
    poll_until,
    truncate,
)

logger = logging.getLogger(__name__)

POPUP_ANIMATION_SEC = 0.5
POST_RELOAD_DELAY_SEC = 3.0
SUBMIT_SETTLE_SEC = 2.0
TOGGLE_SETTLE_SEC = 1.5
TOGGLE_SEARCH_HOPS = 4

SET_LOCAL_STORAGE_SCRIPT = """(items) => {
  for (const [key, value] of Object.entries(items)) {
    localStorage.setItem(key, value);
  }
  return Object.keys(items).length;
}"""

INPUT_VALUE_SCRIPT = "(el) => el.value || el.innerText || el.textContent || ''"


class PlatformAdapter(ABC):
    """Base class for all site adapters.

    Subclasses register themselves with ``@register_adapter("<id>")`` and
    must implement the two reference extraction steps. Everything else has
    a working default driven by the profile's selectors.
    """

    platform_id: str = ""

    # Submit with Enter, verify the input cleared, click submit as backup.
    enter_first_submit: bool = False
    # Write local storage before injecting cookies.
    storage_before_cookies: bool = False

    def __init__(self, profile: PlatformProfile, page: Page, clock: Clock | None = None):
        """Initialize the adapter.

        Args:
        ----
            profile: Immutable description of the target site
            page: Playwright page inside an isolated browser context
            clock: Time source for every wait (defaults to the system clock)

        """
        self.profile = profile
        self.platform_id = profile.platform_id or self.platform_id
        self.page = page
        self.clock = clock or SystemClock()
        self.selectors = profile.selectors
        self.login_machine = LoginStateMachine(profile.platform_id)

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def login_history(self) -> list[LoginState]:
        return list(self.login_machine.history)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(self) -> None:
        """Open the entry URL; navigation failures are logged, not raised."""
        logger.info(f"Navigating to {self.name} at {self.profile.url}")
        try:
            await self.open_url(self.profile.url)
        except NavigationFailure as e:
            logger.warning(f"NavigationFailure on {self.name}, continuing if possible: {e}")
        await self.dismiss_popups()

    async def open_url(self, url: str) -> None:
        """Load ``url``, raising NavigationFailure when the driver gives up."""
        try:
            await self.page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.profile.navigation_timeout_sec * 1000,
            )
        except Exception as e:
            raise NavigationFailure(f"Could not load {url}: {e}") from e

    async def dismiss_popups(self) -> int:
        """Close any visible configured popup. Returns how many were closed."""
        closed = 0
        for selector in self.selectors.popups:
            try:
                popup = await self.page.query_selector(selector)
                if popup and await popup.is_visible():
                    logger.debug(f"Closing popup: {selector}")
                    await popup.click()
                    await self.clock.sleep(POPUP_ANIMATION_SEC)
                    closed += 1
            except Exception as e:
                logger.debug(f"Popup check failed for {selector}: {e}")
        return closed

    async def is_visible(self, selector: str | None) -> bool:
        if not selector:
            return False
        try:
            element = await self.page.query_selector(selector)
            return bool(element) and await element.is_visible()
        except Exception as e:
            logger.debug(f"Visibility probe failed for {selector}: {e}")
            return False

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def is_logged_in(self) -> bool:
        """Best-effort UI probe of the authentication state."""
        try:
            if await self.is_visible(self.selectors.login_button):
                logger.debug(f"[{self.platform_id}] Login affordance visible")
                return False
            marker = self.selectors.logged_in_marker or self.selectors.input
            return await self.is_visible(marker)
        except Exception as e:
            logger.debug(f"[{self.platform_id}] Login probe failed: {e}")
            return False

    async def handle_login(self) -> bool:
        """Drive the login state machine to a terminal state.

        Returns
        -------
            True when the page ends up authenticated

        """
        machine = LoginStateMachine(self.platform_id)
        self.login_machine = machine
        auth = self.profile.auth

        logger.info(f"Checking login status for {self.name}...")
        machine.transition(LoginState.CHECKING_UI)
        if await self.is_logged_in():
            logger.info(f"✅ Already logged in to {self.name}")
            machine.transition(LoginState.LOGGED_IN)
            return True

        credentials = auth.resolve()
        if not credentials.is_empty:
            machine.transition(LoginState.INJECTING_CREDENTIALS)
            try:
                injected = await self.inject_credentials(credentials)
            except Exception as e:
                logger.warning(f"Credential injection failed for {self.name}: {e}")
                injected = False

            if injected:
                logger.info(f"✅ Auto-login successful for {self.name}")
                machine.transition(LoginState.LOGGED_IN)
                return True

            logger.warning(f"Login still missing after injection on {self.name}")
            if not auth.allow_manual_login:
                machine.transition(LoginState.LOGIN_FAILED)
                return False
        else:
            logger.info(f"No credentials configured for {self.name}")

        machine.transition(LoginState.AWAITING_MANUAL_LOGIN)
        timeout = self.profile.login_timeout_sec if auth.allow_manual_login else 0
        logged_in = await self.wait_for_manual_login(timeout)
        machine.transition(
            LoginState.LOGGED_IN if logged_in else LoginState.LOGIN_FAILED
        )
        return logged_in

    async def wait_for_manual_login(self, timeout: float) -> bool:
        if timeout > 0:
            logger.info(
                f"Please login manually to {self.name} (timeout: {timeout:.0f}s)..."
            )
        logged_in = await poll_until(
            self.is_logged_in,
            timeout=timeout,
            interval=self.profile.completion.poll_interval_sec,
            clock=self.clock,
        )
        if logged_in:
            logger.info(f"Login detected on {self.name}")
        else:
            logger.error(f"❌ Timeout waiting for login to {self.name}")
        return logged_in

    async def inject_credentials(self, credentials: Credentials) -> bool:
        """Inject cookies and storage, reload, and re-probe the login state."""
        context = self.page.context
        await context.clear_cookies()

        if self.storage_before_cookies:
            await self.write_local_storage(credentials)
            await self.inject_cookies(credentials.cookies)
        else:
            await self.inject_cookies(credentials.cookies)
            await self.write_local_storage(credentials)

        return await self.reload_and_verify()

    async def inject_cookies(self, raw_cookies: str) -> int:
        """Add the raw cookie material for every configured cookie domain."""
        if not raw_cookies:
            return 0
        cookies: list[dict[str, Any]] = []
        for domain in self.profile.get_cookie_domains():
            cookies.extend(parse_cookie_string(raw_cookies, domain))
        if cookies:
            await self.page.context.add_cookies(cookies)
            logger.info(f"Injected {len(cookies)} cookies for {self.name}")
        return len(cookies)

    def local_storage_items(self, credentials: Credentials) -> dict[str, str]:
        """Local-storage entries to write for the given credentials."""
        return dict(credentials.local_storage)

    async def write_local_storage(self, credentials: Credentials) -> int:
        items = self.local_storage_items(credentials)
        if not items:
            return 0
        sign_in_url = self.profile.auth.sign_in_url
        if sign_in_url:
            logger.debug(f"Opening {sign_in_url} to set local storage")
            await self.open_url(sign_in_url)
        await self.page.evaluate(SET_LOCAL_STORAGE_SCRIPT, items)
        logger.info(f"Wrote {len(items)} local storage items for {self.name}")
        return len(items)

    async def reload_and_verify(self) -> bool:
        """Reload the page and accept a network or UI login confirmation."""
        auth = self.profile.auth
        network_task = None
        if auth.network_pattern:
            network_task = asyncio.create_task(
                self.wait_for_auth_response(
                    auth.network_pattern, auth.network_timeout_sec
                )
            )

        try:
            await self.page.reload(wait_until="domcontentloaded")
        except Exception as e:
            logger.warning(f"Reload after injection failed on {self.name}: {e}")
        await self.clock.sleep(POST_RELOAD_DELAY_SEC)
        await self.dismiss_popups()

        if network_task is not None and await network_task:
            logger.info(f"Login confirmed via network on {self.name}")
            return True
        return await self.is_logged_in()

    async def wait_for_auth_response(self, pattern: str, timeout: float) -> bool:
        """Wait for a 200 response from an authenticated API endpoint."""
        regex = re.compile(pattern)
        try:
            await self.page.wait_for_response(
                lambda response: bool(regex.search(response.url))
                and response.status == 200,
                timeout=timeout * 1000,
            )
            return True
        except Exception as e:
            logger.debug(f"Network login check not confirmed ({pattern}): {e}")
            return False

    # ------------------------------------------------------------------
    # Query submission
    # ------------------------------------------------------------------

    async def send_query(self, text: str) -> None:
        """Fill the input and submit it."""
        logger.info(f"Sending query to {self.name}: {truncate(text, 50)}")
        await self.dismiss_popups()
        await self.page.wait_for_selector(
            self.selectors.input,
            state="visible",
            timeout=self.profile.completion.appear_timeout_sec * 1000,
        )
        await self.page.fill(self.selectors.input, text)

        if self.enter_first_submit:
            await self.submit_enter_first()
        elif await self.is_visible(self.selectors.submit):
            logger.debug("Submit button found, clicking...")
            await self.page.click(self.selectors.submit)
        else:
            logger.debug("Submit button not visible, pressing Enter...")
            await self.page.press(self.selectors.input, "Enter")

        await self.check_login_modal()

    async def submit_enter_first(self) -> None:
        await self.page.keyboard.press("Enter")
        await self.clock.sleep(SUBMIT_SETTLE_SEC)
        if await self.input_is_empty():
            logger.debug("Input cleared, assuming message sent via Enter")
            return
        if await self.is_visible(self.selectors.submit):
            logger.debug("Input not cleared, clicking submit as backup")
            try:
                await self.page.click(self.selectors.submit, force=True)
            except Exception as e:
                logger.warning(f"Backup submit click failed on {self.name}: {e}")

    async def input_is_empty(self) -> bool:
        try:
            value = await self.page.eval_on_selector(
                self.selectors.input, INPUT_VALUE_SCRIPT
            )
        except Exception as e:
            logger.debug(f"Could not read input value: {e}")
            return False
        return not str(value or "").strip()

    async def check_login_modal(self) -> None:
        """Raise LoginFailure when a login modal appeared after submission."""
        if await self.is_visible(self.selectors.login_modal):
            raise LoginFailure(f"Login modal appeared after submitting to {self.name}")

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    async def read_response_text(self) -> str:
        elements = await self.page.query_selector_all(self.selectors.response)
        if not elements:
            return ""
        return await elements[-1].inner_text()

    async def is_generating(self) -> bool:
        return await self.is_visible(self.selectors.generating)

    async def wait_for_response(self, timeout: float) -> ExtractionResult | None:
        """Wait for the answer to appear and stabilize, then extract it.

        Returns
        -------
            The extraction, or None when no response container ever appeared

        """
        completion = self.profile.completion
        logger.info(f"Waiting for response from {self.name}...")
        try:
            await self.page.wait_for_selector(
                self.selectors.response,
                timeout=completion.appear_timeout_sec * 1000,
            )
        except Exception as e:
            logger.warning(f"Response container never appeared on {self.name}: {e}")
            return None

        outcome = await wait_for_completion(
            self.read_response_text,
            self.is_generating if self.selectors.generating else None,
            clock=self.clock,
            interval=completion.poll_interval_sec,
            threshold=completion.stability_threshold,
            timeout=timeout,
        )

        result = await self.extract_response()
        if outcome.timed_out:
            result.timed_out = True
            if not result.text:
                result.text = outcome.text
        return result

    async def read_response_body(self) -> tuple[str, str]:
        """Text and HTML of the latest response element."""
        elements = await self.page.query_selector_all(self.selectors.response)
        if not elements:
            return "", ""
        last = elements[-1]
        return await last.inner_text(), await last.inner_html()

    async def extract_response(self) -> ExtractionResult:
        """Extract the latest answer. Errors are recorded, never raised."""
        result = ExtractionResult()

        try:
            text, html = await self.read_response_body()
            result.text = text.strip()
            result.raw_html = html
        except Exception as e:
            logger.error(f"Failed to read response text on {self.name}: {e}")
            result.errors.append(f"text: {e}")

        try:
            result.search_results = normalize_references(
                await self.extract_search_results()
            )
        except Exception as e:
            logger.error(f"Search results extraction failed on {self.name}: {e}")
            result.errors.append(f"search_results: {e}")

        explicit: list[Reference] | None
        try:
            explicit = normalize_references(await self.extract_explicit_references())
        except Exception as e:
            logger.error(f"Reference extraction failed on {self.name}: {e}")
            result.errors.append(f"references: {e}")
            explicit = None

        result.references, result.reference_source = resolve_references(
            explicit, result.search_results
        )
        logger.info(
            f"Extracted {len(result.text)} chars, {len(result.search_results)} "
            f"search results, {len(result.references)} references "
            f"({result.reference_source.value}) from {self.name}"
        )
        return result

    @abstractmethod
    async def extract_search_results(self) -> list[dict[str, Any]]:
        """Raw ``{title, url, source}`` records of the search results used."""

    @abstractmethod
    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        """Raw ``{title, url, source}`` records of the answer's own citations."""

    # ------------------------------------------------------------------
    # Reference helpers
    # ------------------------------------------------------------------

    async def snapshot_response(self, hops: int = 0) -> DomSnapshot | None:
        return await take_snapshot(self.page, self.selectors.response, hops=hops)

    async def links_in_response(self, include_own_host: bool = False) -> list[dict[str, Any]]:
        """External links inside the latest response element."""
        snapshot = await self.snapshot_response()
        if snapshot is None:
            return []
        exclude = () if include_own_host else (extract_domain(self.profile.url),)
        return [
            {"title": clean_text(link.text_content), "url": link.href}
            for link in snapshot.anchor.collect_links(exclude_hosts=exclude)
        ]

    async def links_in_selector(self, selector: str) -> list[dict[str, Any]]:
        """Link cards inside the last element matching ``selector``."""
        snapshot = await take_snapshot(self.page, selector)
        if snapshot is None:
            return []
        return cards_to_records(snapshot.anchor)

    async def expand_search_toggle(self) -> bool:
        """Click the collapsed search-results toggle near the latest answer."""
        pattern = self.selectors.search_toggle
        if not pattern:
            return False
        snapshot = await self.snapshot_response(hops=TOGGLE_SEARCH_HOPS)
        if snapshot is None:
            return False
        toggle = snapshot.anchor.find_toggle_near(pattern, max_hops=TOGGLE_SEARCH_HOPS)
        if toggle is None:
            logger.debug(f"No search toggle matching {pattern!r} on {self.name}")
            return False
        logger.info(f"Expanding search results toggle: {truncate(toggle.text_content, 30)}")
        clicked = await click_node(self.page, snapshot, toggle)
        if clicked:
            await self.clock.sleep(TOGGLE_SETTLE_SEC)
        return clicked


def cards_to_records(
    container: DomNode, new_tab_only: bool = False
) -> list[dict[str, Any]]:
    """Turn each link of a result panel into a ``{source, title, url}`` record."""
    records = []
    for link in container.collect_links(new_tab_only=new_tab_only):
        title = clean_text(link.text_content)
        card = card_for_link(link, max_levels=3, boundary=container)
        records.append(
            {
                "source": source_name_from_card(card, title),
                "title": title,
                "url": link.href,
            }
        )
    return records


class GenericAdapter(PlatformAdapter):
    """Adapter for configured sites without a dedicated implementation."""

    async def extract_search_results(self) -> list[dict[str, Any]]:
        if self.selectors.search_toggle:
            await self.expand_search_toggle()
        if self.selectors.search_panel:
            return await self.links_in_selector(self.selectors.search_panel)
        return []

    async def extract_explicit_references(self) -> list[dict[str, Any]]:
        if self.selectors.references:
            return await self.links_in_selector(self.selectors.references)
        return await self.links_in_response()
