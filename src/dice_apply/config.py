"""Configuration loading and validation.

Loads ``settings.toml`` and validates all fields at startup, before any
browser is opened.  A bad wait budget discovered after the interactive
login costs the operator a second login; a startup failure costs nothing.

The validated config is exposed as a :class:`Settings` dataclass with
typed fields for each section: ``search``, ``browser``, ``wait``,
``session``, and ``output``.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from dice_apply.errors import ActionableError
from dice_apply.search import DEFAULT_BASE_URL, SearchQuery

# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class BrowserConfig:
    """Browser connection settings from ``[browser]``.

    An empty ``endpoint`` launches a local Chromium; otherwise Playwright
    connects over CDP to an already-running browser.
    """

    endpoint: str = ""
    headless: bool = False
    base_url: str = DEFAULT_BASE_URL
    viewport_width: int = 1440
    viewport_height: int = 900


@dataclass
class WaitConfig:
    """Polling cadence and time budgets (seconds) from ``[wait]``."""

    poll_interval: float = 0.5
    page_timeout: float = 30.0
    element_timeout: float = 15.0
    step_timeout: float = 10.0
    settle_delay: float = 5.0
    click_settle: float = 1.0
    max_form_steps: int = 20
    retry_disconnected: bool = False


@dataclass
class SessionStoreConfig:
    """Cookie persistence and interactive login from ``[session]``."""

    path: str = "data/dice_session.json"
    login_url: str = f"{DEFAULT_BASE_URL}/dashboard/login"
    login_timeout: float = 0.0


@dataclass
class OutputConfig:
    """Output settings from ``[output]``."""

    report_dir: str = "./output"


@dataclass
class Settings:
    """Top-level validated configuration."""

    search: SearchQuery
    max_pages: int = 1
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    wait: WaitConfig = field(default_factory=WaitConfig)
    session: SessionStoreConfig = field(default_factory=SessionStoreConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


# ---------------------------------------------------------------------------
# Default settings path
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")

_SEARCH_STRING_FIELDS = (
    "query",
    "location",
    "country_code",
    "employment_type",
    "employer_type",
    "language",
)


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load and validate settings from a TOML file.

    Raises :class:`~dice_apply.errors.ActionableError`:
      - CONFIG if the file is missing or a required field is absent
      - VALIDATION if field values are out of range
      - PARSE if the TOML is malformed

    Returns a fully validated :class:`Settings` instance.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"Settings file not found: {filepath}",
            suggestion=f"Create {filepath} or copy from config/settings.toml.example",
        )

    raw_text = filepath.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ActionableError.parse(
            source=str(filepath),
            selector="TOML syntax",
            raw_error=str(exc),
            suggestion=f"Fix TOML syntax in {filepath}",
        ) from None

    return _validate(data, filepath)


def _validate(data: dict[str, object], filepath: Path) -> Settings:
    """Validate raw TOML data and return a Settings instance."""

    # -- search section ------------------------------------------------------
    search_section = _require_section(data, "search", filepath)
    strings: dict[str, str] = {}
    for name in _SEARCH_STRING_FIELDS:
        value = _require_field(search_section, name, "search", filepath)
        if not isinstance(value, str):
            raise ActionableError.validation(
                field_name=f"search.{name}",
                reason=f"must be a string, not {type(value).__name__}",
            )
        strings[name] = value

    easy_apply = search_section.get("easy_apply", True)
    if not isinstance(easy_apply, bool):
        raise ActionableError.validation(
            field_name="search.easy_apply",
            reason=f"must be true or false, not {easy_apply!r}",
        )

    query = SearchQuery(easy_apply=easy_apply, **strings)

    max_pages = int(search_section.get("max_pages", 1))  # type: ignore[call-overload]
    if max_pages < 1:
        raise ActionableError.validation(
            field_name="search.max_pages",
            reason=f"is {max_pages} — must be >= 1",
            suggestion="Set [search].max_pages to 1 or more",
        )

    # -- browser section -----------------------------------------------------
    browser_data = _optional_section(data, "browser")

    endpoint = str(browser_data.get("endpoint", "") or "")
    if endpoint and not endpoint.startswith(("http://", "https://", "ws://", "wss://")):
        raise ActionableError.validation(
            field_name="browser.endpoint",
            reason=f"'{endpoint}' is missing a scheme (http://, ws:// …)",
            suggestion="Set [browser].endpoint to the CDP URL, e.g. http://localhost:9222",
        )

    base_url = str(browser_data.get("base_url", DEFAULT_BASE_URL)).rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name="browser.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
            suggestion="Set [browser].base_url to a URL starting with https://",
        )

    browser = BrowserConfig(
        endpoint=endpoint,
        headless=bool(browser_data.get("headless", False)),
        base_url=base_url,
        viewport_width=int(browser_data.get("viewport_width", 1440)),  # type: ignore[call-overload]
        viewport_height=int(browser_data.get("viewport_height", 900)),  # type: ignore[call-overload]
    )

    # -- wait section --------------------------------------------------------
    wait_data = _optional_section(data, "wait")

    wait = WaitConfig(
        poll_interval=float(wait_data.get("poll_interval", 0.5)),  # type: ignore[arg-type]
        page_timeout=float(wait_data.get("page_timeout", 30.0)),  # type: ignore[arg-type]
        element_timeout=float(wait_data.get("element_timeout", 15.0)),  # type: ignore[arg-type]
        step_timeout=float(wait_data.get("step_timeout", 10.0)),  # type: ignore[arg-type]
        settle_delay=float(wait_data.get("settle_delay", 5.0)),  # type: ignore[arg-type]
        click_settle=float(wait_data.get("click_settle", 1.0)),  # type: ignore[arg-type]
        max_form_steps=int(wait_data.get("max_form_steps", 20)),  # type: ignore[call-overload]
        retry_disconnected=bool(wait_data.get("retry_disconnected", False)),
    )

    if wait.poll_interval <= 0:
        raise ActionableError.validation(
            field_name="wait.poll_interval",
            reason=f"is {wait.poll_interval} — must be > 0",
            suggestion="Set [wait].poll_interval to a positive number of seconds",
        )
    for budget_name in ("page_timeout", "element_timeout", "step_timeout"):
        value = getattr(wait, budget_name)
        if value < wait.poll_interval:
            raise ActionableError.validation(
                field_name=f"wait.{budget_name}",
                reason=f"is {value} — must be >= poll_interval ({wait.poll_interval})",
                suggestion=f"Raise [wait].{budget_name} or lower [wait].poll_interval",
            )
    for delay_name in ("settle_delay", "click_settle"):
        value = getattr(wait, delay_name)
        if value < 0:
            raise ActionableError.validation(
                field_name=f"wait.{delay_name}",
                reason=f"is {value} — must be >= 0",
            )
    if wait.max_form_steps < 1:
        raise ActionableError.validation(
            field_name="wait.max_form_steps",
            reason=f"is {wait.max_form_steps} — must be >= 1",
        )

    # -- session section -----------------------------------------------------
    session_data = _optional_section(data, "session")

    session = SessionStoreConfig(
        path=str(session_data.get("path", "data/dice_session.json")),
        login_url=str(session_data.get("login_url", f"{base_url}/dashboard/login")),
        login_timeout=float(session_data.get("login_timeout", 0.0)),  # type: ignore[arg-type]
    )
    if session.login_timeout < 0:
        raise ActionableError.validation(
            field_name="session.login_timeout",
            reason=f"is {session.login_timeout} — must be >= 0 (0 waits indefinitely)",
        )

    # -- output section ------------------------------------------------------
    output_data = _optional_section(data, "output")

    output = OutputConfig(
        report_dir=str(output_data.get("report_dir", "./output")),
    )

    return Settings(
        search=query,
        max_pages=max_pages,
        browser=browser,
        wait=wait,
        session=session,
        output=output,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _require_section(data: dict[str, object], name: str, filepath: Path) -> dict[str, object]:
    """Return a required top-level section, or raise CONFIG error."""
    section = data.get(name)
    if section is None or not isinstance(section, dict):
        raise ActionableError.config(
            field_name=name,
            reason=f"Required section [{name}] is missing from {filepath}",
            suggestion=f"Add a [{name}] section to {filepath}",
        )
    return section


def _optional_section(data: dict[str, object], name: str) -> dict[str, object]:
    """Return an optional section, treating a missing or non-table value as empty."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        return {}
    return section


def _require_field(
    section: dict[str, object], field_name: str, section_name: str, filepath: Path
) -> object:
    """Return a required field within a section, or raise CONFIG error."""
    value = section.get(field_name)
    if value is None:
        raise ActionableError.config(
            field_name=f"{section_name}.{field_name}",
            reason=f"Required field '{field_name}' is missing from [{section_name}] in {filepath}",
            suggestion=f"Add '{field_name}' to the [{section_name}] section in {filepath}",
        )
    return value
