"""Browser control facade.

The rest of the package talks to the browser only through
:class:`BrowserControl`: navigate, query elements, read attributes and
text, run a script, click, and move cookies in and out.  Everything else
(waiting, extraction, the apply flow) is built from those calls.

:class:`PlaywrightBrowser` is the production implementation over a
Playwright ``Page``.  It translates every Playwright failure into an
:class:`~dice_apply.errors.ActionableError` so callers can route on
``error_type`` alone:

  - ``CONNECTION`` — page, context or browser closed, or the CDP
    connection dropped.  Nothing after this can succeed.
  - ``BROWSER`` — anything else (stale handle, detached frame, a
    navigation racing an evaluate).  The session is still usable.

Calls are awaited one at a time.  A tab has one focus of execution and
concurrent commands against it race.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from playwright.async_api import Error as PlaywrightError

from dice_apply.errors import ActionableError

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from playwright.async_api import BrowserContext, ElementHandle, Page

# Opaque element handle: a Playwright ``ElementHandle`` in production,
# a plain fake in tests.
Element = Any

# Substrings Playwright uses when the target is gone for good
_DISCONNECT_MARKERS = (
    "has been closed",
    "target closed",
    "browser has disconnected",
    "connection closed",
    "websocket closed",
    "browser closed",
)


class BrowserControl(Protocol):
    """The capabilities the automation needs from a remote browser."""

    @property
    def current_url(self) -> str: ...

    async def navigate(self, url: str) -> None: ...

    async def find(self, selector: str) -> Element | None: ...

    async def find_all(self, selector: str) -> list[Element]: ...

    async def find_all_within(self, element: Element, selector: str) -> list[Element]: ...

    async def attribute(self, element: Element, name: str) -> str | None: ...

    async def text(self, element: Element) -> str: ...

    async def execute_script(self, script: str, *args: Any) -> Any: ...

    async def click(self, element: Element) -> None: ...

    async def is_displayed(self, element: Element) -> bool: ...

    async def is_enabled(self, element: Element) -> bool: ...

    async def get_all_cookies(self) -> list[dict[str, Any]]: ...

    async def add_cookie(self, record: dict[str, Any]) -> None: ...


def is_disconnect_error(exc: BaseException) -> bool:
    """Return True if a Playwright error means the session is gone."""
    message = str(exc).lower()
    return any(marker in message for marker in _DISCONNECT_MARKERS)


class PlaywrightBrowser:
    """:class:`BrowserControl` over a single Playwright page.

    Scripts passed to :meth:`execute_script` are JavaScript function
    expressions that receive the positional ``args`` as one array, e.g.
    ``"([el]) => el.scrollIntoView()"``.  Element handles may appear
    anywhere in ``args``.
    """

    def __init__(
        self,
        page: Page,
        context: BrowserContext | None = None,
        *,
        endpoint: str = "browser",
        navigation_timeout: float = 30.0,
    ) -> None:
        self._page = page
        self._context = context or page.context
        self._endpoint = endpoint
        self._navigation_timeout_ms = navigation_timeout * 1000

    @property
    def current_url(self) -> str:
        return self._page.url

    # -- error translation ---------------------------------------------------

    def _translate(self, operation: str, exc: PlaywrightError) -> ActionableError:
        if is_disconnect_error(exc):
            return ActionableError.connection(
                "browser",
                self._endpoint,
                f"{operation}: {exc.message}",
                suggestion="The browser session closed mid-run — restart the run",
            )
        return ActionableError.browser(operation, exc.message)

    async def _guard(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except PlaywrightError as exc:
            raise self._translate(operation, exc) from exc

    # -- navigation ----------------------------------------------------------

    async def navigate(self, url: str) -> None:
        await self._guard(
            f"navigate {url}",
            self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._navigation_timeout_ms,
            ),
        )

    # -- queries -------------------------------------------------------------

    async def find(self, selector: str) -> ElementHandle | None:
        return await self._guard(f"find {selector}", self._page.query_selector(selector))  # type: ignore[no-any-return]

    async def find_all(self, selector: str) -> list[ElementHandle]:
        return await self._guard(  # type: ignore[no-any-return]
            f"find_all {selector}", self._page.query_selector_all(selector)
        )

    async def find_all_within(self, element: ElementHandle, selector: str) -> list[ElementHandle]:
        return await self._guard(  # type: ignore[no-any-return]
            f"find_all_within {selector}", element.query_selector_all(selector)
        )

    async def attribute(self, element: ElementHandle, name: str) -> str | None:
        return await self._guard(f"attribute {name}", element.get_attribute(name))  # type: ignore[no-any-return]

    async def text(self, element: ElementHandle) -> str:
        return await self._guard("text", element.inner_text())  # type: ignore[no-any-return]

    async def is_displayed(self, element: ElementHandle) -> bool:
        return await self._guard("is_displayed", element.is_visible())  # type: ignore[no-any-return]

    async def is_enabled(self, element: ElementHandle) -> bool:
        return await self._guard("is_enabled", element.is_enabled())  # type: ignore[no-any-return]

    # -- actions -------------------------------------------------------------

    async def execute_script(self, script: str, *args: Any) -> Any:
        return await self._guard("execute_script", self._page.evaluate(script, list(args)))

    async def click(self, element: ElementHandle) -> None:
        await self._guard("click", element.click())

    # -- cookies -------------------------------------------------------------

    async def get_all_cookies(self) -> list[dict[str, Any]]:
        cookies = await self._guard("get_all_cookies", self._context.cookies())
        return [dict(c) for c in cookies]

    async def add_cookie(self, record: dict[str, Any]) -> None:
        await self._guard(
            f"add_cookie {record.get('name', '?')}",
            self._context.add_cookies([record]),  # type: ignore[list-item]
        )
