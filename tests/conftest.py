"""Global test configuration — shared fakes and factories.

This conftest provides:

1. **FakeBrowser** — an in-memory :class:`~dice_apply.browser.facade.BrowserControl`.
   Its DOM is a ``selector → [FakeElement]`` map that tests (or an
   ``on_navigate`` hook) rewrite to simulate the page changing.  Every
   navigation, click, and script is recorded for assertions.

2. **FakeClock** — a monotonic clock whose ``sleep`` advances time
   instantly, so waits with multi-second budgets run in microseconds
   and their timing is exact.

3. **Factories** — ``make_settings``, ``make_posting``, ``wait_config``,
   and a ``waiter`` bound to the fake clock.

Only the browser (the I/O boundary) is faked; the wait engine, extractor,
orchestrator, and session store all run for real.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from dice_apply.config import (
    BrowserConfig,
    OutputConfig,
    SessionStoreConfig,
    Settings,
    WaitConfig,
)
from dice_apply.extractor import Posting, job_detail_url
from dice_apply.search import SearchQuery
from dice_apply.wait import Waiter

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path

    from dice_apply.errors import ActionableError

JOB_ID = "f0767d15-68a2-4c23-95c6-5685dedf2d2d"
OTHER_JOB_ID = "0a1b2c3d-4e5f-4a6b-8c7d-9e0f1a2b3c4d"
THIRD_JOB_ID = "11111111-2222-4333-8444-555555555555"


# ---------------------------------------------------------------------------
# Fake browser
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class FakeElement:
    """A DOM node: attributes, visible text, state, and nested matches."""

    text: str = ""
    attrs: dict[str, str] = field(default_factory=dict)
    displayed: bool = True
    enabled: bool = True
    children: dict[str, list[FakeElement]] = field(default_factory=dict)
    on_click: Callable[[FakeBrowser], None] | None = None
    error: ActionableError | None = None


class FakeBrowser:
    """In-memory BrowserControl with a rewritable DOM."""

    def __init__(self) -> None:
        self.url = "about:blank"
        self.dom: dict[str, list[FakeElement]] = {}
        self.navigations: list[str] = []
        self.clicks: list[FakeElement] = []
        self.scripts: list[str] = []
        self.cookie_jar: list[dict[str, Any]] = []
        self.added_cookies: list[dict[str, Any]] = []
        self.navigation_errors: dict[str, ActionableError] = {}
        self.find_all_errors: dict[str, ActionableError] = {}
        self.quiescent = True
        self.on_navigate: Callable[[FakeBrowser, str], None] | None = None

    @property
    def current_url(self) -> str:
        return self.url

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        if url in self.navigation_errors:
            raise self.navigation_errors[url]
        self.url = url
        self.dom = {}
        if self.on_navigate is not None:
            self.on_navigate(self, url)

    async def find(self, selector: str) -> FakeElement | None:
        found = await self.find_all(selector)
        return found[0] if found else None

    async def find_all(self, selector: str) -> list[FakeElement]:
        if selector in self.find_all_errors:
            raise self.find_all_errors[selector]
        return list(self.dom.get(selector, []))

    async def find_all_within(self, element: FakeElement, selector: str) -> list[FakeElement]:
        if element.error is not None:
            raise element.error
        return list(element.children.get(selector, []))

    async def attribute(self, element: FakeElement, name: str) -> str | None:
        if element.error is not None:
            raise element.error
        return element.attrs.get(name)

    async def text(self, element: FakeElement) -> str:
        if element.error is not None:
            raise element.error
        return element.text

    async def execute_script(self, script: str, *args: Any) -> Any:
        self.scripts.append(script)
        if "quietMs" in script:
            return self.quiescent
        return True

    async def click(self, element: FakeElement) -> None:
        self.clicks.append(element)
        if element.on_click is not None:
            element.on_click(self)

    async def is_displayed(self, element: FakeElement) -> bool:
        return element.displayed

    async def is_enabled(self, element: FakeElement) -> bool:
        return element.enabled

    async def get_all_cookies(self) -> list[dict[str, Any]]:
        return list(self.cookie_jar)

    async def add_cookie(self, record: dict[str, Any]) -> None:
        self.added_cookies.append(record)


def anchor(identifier: str, title: str) -> FakeElement:
    """A search-result title anchor."""
    return FakeElement(text=title, attrs={"id": identifier, "data-cy": "card-title-link"})


def container(*anchors: FakeElement) -> FakeElement:
    """A ``div`` holding the given anchors."""
    return FakeElement(children={"a": list(anchors)})


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wait_config() -> WaitConfig:
    """Small budgets — in fake-clock seconds, so they cost nothing."""
    return WaitConfig(
        poll_interval=0.5,
        page_timeout=5.0,
        element_timeout=3.0,
        step_timeout=2.0,
        settle_delay=1.0,
        click_settle=0.5,
        max_form_steps=5,
    )


@pytest.fixture
def waiter(fake_clock: FakeClock, wait_config: WaitConfig) -> Waiter:
    return Waiter(wait_config.poll_interval, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.fixture
def search_query() -> SearchQuery:
    return SearchQuery(
        query="python",
        location="Remote",
        country_code="US",
        employment_type="FULLTIME",
        employer_type="Direct Hire",
        language="en",
        easy_apply=True,
    )


@pytest.fixture
def make_settings(tmp_path: Path, search_query: SearchQuery, wait_config: WaitConfig):
    """Factory fixture — Settings rooted under ``tmp_path``."""

    def _make(**overrides: Any) -> Settings:
        defaults: dict[str, Any] = {
            "search": search_query,
            "max_pages": 1,
            "browser": BrowserConfig(base_url="https://www.dice.com"),
            "wait": wait_config,
            "session": SessionStoreConfig(
                path=str(tmp_path / "data" / "session.json"),
                login_url="https://www.dice.com/dashboard/login",
            ),
            "output": OutputConfig(report_dir=str(tmp_path / "output")),
        }
        defaults.update(overrides)
        return Settings(**defaults)

    return _make


@pytest.fixture
def make_posting():
    """Factory fixture — a Posting with a canonical URL derived from its id."""

    def _make(identifier: str = JOB_ID, title: str = "Senior Python Engineer", page: int = 1) -> Posting:
        return Posting(
            page_number=page,
            title=title,
            identifier=identifier,
            canonical_url=job_detail_url(identifier),
        )

    return _make


def session_factory_for(browser: FakeBrowser):
    """Return a ``session_factory`` whose sessions expose *browser*."""

    class _Session:
        def __init__(self) -> None:
            self.browser = browser

    @contextlib.asynccontextmanager
    async def _factory() -> AsyncIterator[_Session]:
        yield _Session()

    return _factory
