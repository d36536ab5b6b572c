"""Run orchestration — session → search → extract → apply.

The ApplyRunner ties the system together:

1. Open one browser session (remote endpoint or local Chromium)
2. Session store decides resume vs. login: an existing session file is
   replayed into the browser; otherwise the operator logs in by hand and
   the cookie jar is saved exactly once
3. For each results page: navigate, wait for the page to render, let
   the DOM settle, extract postings (deduplicated across pages)
4. Hand every posting to the apply orchestrator

Session load/save happen strictly before the apply stages, never
interleaved with them — the tab belongs to the orchestrator once step 4
starts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dice_apply.apply import ApplyOrchestrator, ApplyReport
from dice_apply.browser.session import BrowserSession, SessionConfig
from dice_apply.errors import ActionableError, ErrorType
from dice_apply.extractor import PostingExtractor
from dice_apply.operator import wait_for_operator
from dice_apply.search import build_search_url
from dice_apply.session_store import SessionStore
from dice_apply.wait import Waiter, element_exists

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractAsyncContextManager
    from pathlib import Path

    from dice_apply.browser.facade import BrowserControl
    from dice_apply.config import Settings
    from dice_apply.extractor import Posting

logger = logging.getLogger(__name__)

# Any rendered document has one; the real readiness signal is the settle
PAGE_READY_SELECTOR = "div"

LOGIN_PROMPT = "Log in using the browser window, then press Enter to continue..."


@dataclass
class RunResult:
    """Results from a run, consumed by the CLI."""

    postings: list[Posting] = field(default_factory=list)
    report: ApplyReport = field(default_factory=ApplyReport)
    pages_searched: int = 0
    page_failures: list[str] = field(default_factory=list)
    logged_in: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages_searched": self.pages_searched,
            "page_failures": self.page_failures,
            "postings_found": len(self.postings),
            "interactive_login": self.logged_in,
            "apply": self.report.to_dict(),
        }


class ApplyRunner:
    """Top-level orchestrator for one browser session.

    ``session_factory`` returns an async context manager whose ``browser``
    attribute is a :class:`~dice_apply.browser.facade.BrowserControl`;
    tests swap it for a fake.  ``gate`` is the interactive login pause.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: Callable[[], AbstractAsyncContextManager[Any]] | None = None,
        store: SessionStore | None = None,
        gate: Callable[..., Any] = wait_for_operator,
        cancel: asyncio.Event | None = None,
        waiter: Waiter | None = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory or (
            lambda: BrowserSession(SessionConfig.from_settings(settings))
        )
        self._store = store or SessionStore(settings.session.path, settings.browser.base_url)
        self._gate = gate
        self._cancel = cancel or asyncio.Event()
        self._waiter = waiter or Waiter.from_config(settings.wait, cancel=self._cancel)
        self._extractor = PostingExtractor(
            settings.browser.base_url,
            is_fatal=self._waiter.is_fatal,
        )

    @property
    def cancel(self) -> asyncio.Event:
        """Set this to stop the run at the next wait or posting boundary."""
        return self._cancel

    # -- entry points --------------------------------------------------------

    async def run(
        self,
        *,
        dry_run: bool = False,
        max_runtime: float | None = None,
    ) -> RunResult:
        """Bootstrap the session, search, extract, and apply.

        Args:
            dry_run: Navigate to each apply link but click nothing.
            max_runtime: Optional run-level deadline in seconds; when it
                passes, the run stops with a CANCELLED error.
        """
        deadline = None
        if max_runtime:
            deadline = asyncio.get_running_loop().call_later(max_runtime, self._cancel.set)

        try:
            async with self._session_factory() as session:
                browser = session.browser
                result = RunResult()
                result.logged_in = await self.ensure_session(browser)
                await self._collect(browser, result)

                if not result.postings:
                    logger.warning("No postings found — nothing to apply to")
                    return result

                orchestrator = ApplyOrchestrator(
                    browser,
                    self._waiter,
                    self._settings.wait,
                    base_url=self._settings.browser.base_url,
                    dry_run=dry_run,
                )
                result.report = await orchestrator.apply_all(
                    result.postings, self._settings.search.query_string()
                )
                return result
        finally:
            if deadline is not None:
                deadline.cancel()

    async def collect_postings(self) -> RunResult:
        """Bootstrap the session and extract postings without applying."""
        async with self._session_factory() as session:
            browser = session.browser
            result = RunResult()
            result.logged_in = await self.ensure_session(browser)
            await self._collect(browser, result)
            return result

    async def login_only(self) -> Path:
        """Force an interactive login and save the session, whatever exists on disk."""
        async with self._session_factory() as session:
            return await self.login(session.browser)

    # -- session bootstrap ---------------------------------------------------

    async def ensure_session(self, browser: BrowserControl) -> bool:
        """Resume from the session file, or log in interactively.

        Returns:
            True if an interactive login ran.
        """
        if self._store.exists():
            count = await self._store.restore(browser)
            logger.info("Resumed session with %d cookie(s) from %s", count, self._store.path)
            return False

        logger.info("No session file at %s — interactive login required", self._store.path)
        await self.login(browser)
        return True

    async def login(self, browser: BrowserControl) -> Path:
        """Open the login page, wait for the operator, then save the cookie jar."""
        login_url = self._settings.session.login_url
        await browser.navigate(login_url)
        logger.info("Login page opened: %s", login_url)

        await self._gate(
            LOGIN_PROMPT,
            timeout=self._settings.session.login_timeout or None,
            cancel=self._cancel,
        )
        path = await self._store.capture(browser)
        logger.info("Session saved to %s", path)
        return path

    # -- search and extraction -----------------------------------------------

    async def _collect(self, browser: BrowserControl, result: RunResult) -> None:
        """Walk result pages, extracting postings until a page adds nothing new."""
        seen: set[str] = set()
        wait = self._settings.wait

        for page_number in range(1, self._settings.max_pages + 1):
            url = build_search_url(
                self._settings.search,
                self._settings.browser.base_url,
                page=page_number,
            )
            logger.info("Search page %d: %s", page_number, url)

            try:
                await browser.navigate(url)
                await self._waiter.until(
                    element_exists(browser, PAGE_READY_SELECTOR),
                    wait.page_timeout,
                    f"search page {page_number} to render",
                )
            except ActionableError as exc:
                if exc.error_type not in (ErrorType.TIMEOUT, ErrorType.BROWSER):
                    raise
                logger.error("Search page %d failed: %s", page_number, exc.error)
                result.page_failures.append(f"page {page_number}: {exc.error}")
                break

            await self._waiter.settle(browser, wait.settle_delay)
            page_postings = await self._extractor.extract(browser, page_number)
            result.pages_searched += 1

            fresh = [p for p in page_postings if p.identifier not in seen]
            if not fresh:
                logger.info("Page %d added no new postings — stopping", page_number)
                break

            seen.update(p.identifier for p in fresh)
            result.postings.extend(fresh)

        logger.info(
            "Collected %d posting(s) across %d page(s)",
            len(result.postings),
            result.pages_searched,
        )
