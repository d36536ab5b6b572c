"""Playwright browser lifecycle.

Owns the Playwright driver, the browser, one context and one page.  The
automation receives a :class:`~dice_apply.browser.facade.PlaywrightBrowser`
— it never launches browsers itself.

Two launch modes:

**Remote** (``[browser].endpoint`` set):
  ``chromium.connect_over_cdp(endpoint)`` attaches to a browser that is
  already running with ``--remote-debugging-port``.  The browser belongs
  to someone else, so on exit only our context is closed.

**Local** (default):
  ``chromium.launch()`` starts Playwright's bundled Chromium, headed
  unless ``headless`` is set.  The interactive login needs a visible
  window.

Cookies are *not* handled here — :class:`~dice_apply.session_store.SessionStore`
replays and captures them through the facade.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from dice_apply.browser.facade import PlaywrightBrowser
from dice_apply.errors import ActionableError
from dice_apply.logging import logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

    from dice_apply.config import Settings


@dataclass
class SessionConfig:
    """Browser launch configuration."""

    endpoint: str = ""
    headless: bool = False
    viewport_width: int = 1440
    viewport_height: int = 900
    navigation_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionConfig:
        return cls(
            endpoint=settings.browser.endpoint,
            headless=settings.browser.headless,
            viewport_width=settings.browser.viewport_width,
            viewport_height=settings.browser.viewport_height,
            navigation_timeout=settings.wait.page_timeout,
        )

    @property
    def is_remote(self) -> bool:
        return bool(self.endpoint)


class BrowserSession:
    """Async context manager around one browser page.

    Usage::

        async with BrowserSession(config) as session:
            browser = session.browser
            await browser.navigate(url)
    """

    def __init__(self, config: SessionConfig) -> None:
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._facade: PlaywrightBrowser | None = None

    async def __aenter__(self) -> BrowserSession:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()

        try:
            if self.config.is_remote:
                logger.info("Connecting to remote browser at %s", self.config.endpoint)
                self._browser = await self._playwright.chromium.connect_over_cdp(
                    self.config.endpoint
                )
            else:
                logger.info("Launching local Chromium (headless=%s)", self.config.headless)
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless,
                )
        except PlaywrightError as exc:
            await self._playwright.stop()
            self._playwright = None
            raise ActionableError.connection(
                "browser",
                self.config.endpoint or "local chromium",
                exc.message,
            ) from exc

        self._context = await self._browser.new_context(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
        )
        self._page = await self._context.new_page()
        self._facade = PlaywrightBrowser(
            self._page,
            self._context,
            endpoint=self.config.endpoint or "local chromium",
            navigation_timeout=self.config.navigation_timeout,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._context:
            await self._context.close()
        # A remote browser outlives the run
        if self._browser and not self.config.is_remote:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
        self._facade = None

    @property
    def browser(self) -> PlaywrightBrowser:
        """The facade for the managed page."""
        if self._facade is None:
            msg = "BrowserSession not entered — use 'async with'"
            raise RuntimeError(msg)
        return self._facade
