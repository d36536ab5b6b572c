"""Session store — persisted cookies that stand in for "logged in".

The session file is a JSON array of cookie records, written wholesale
right after an interactive login and read wholesale before resuming.
File *presence* is the only signal used to skip the login: nothing here
checks cookie expiry.  A stale file shows up later as an authentication
redirect, and the fix is to delete it and log in again.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dice_apply.errors import ActionableError
from dice_apply.logging import logger

if TYPE_CHECKING:
    from dice_apply.browser.facade import BrowserControl


@dataclass(frozen=True)
class SessionCookie:
    """One cookie as persisted in the session file."""

    name: str
    value: str
    domain: str | None = None
    path: str | None = None
    expiry: int | None = None
    secure: bool = False
    http_only: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionCookie:
        """Build from a session-file record; raises KeyError/ValueError on bad input."""
        expiry = data.get("expiry")
        return cls(
            name=str(data["name"]),
            value=str(data["value"]),
            domain=data.get("domain"),
            path=data.get("path"),
            expiry=int(expiry) if expiry is not None else None,
            secure=bool(data.get("secure", False)),
            http_only=data.get("http_only"),
        )

    @classmethod
    def from_browser(cls, record: dict[str, Any]) -> SessionCookie:
        """Build from a browser cookie-jar record (``expires`` / ``httpOnly``).

        Session cookies report ``expires == -1``; they are stored without
        an expiry.
        """
        expires = record.get("expires")
        return cls(
            name=record["name"],
            value=record["value"],
            domain=record.get("domain"),
            path=record.get("path"),
            expiry=int(expires) if expires is not None and expires >= 0 else None,
            secure=bool(record.get("secure", False)),
            http_only=record.get("httpOnly"),
        )

    def to_browser(self, fallback_url: str) -> dict[str, Any]:
        """Cookie record the browser accepts.

        The browser needs either a domain or a URL to scope a cookie; a
        record saved without a domain is scoped to *fallback_url*.
        """
        record: dict[str, Any] = {"name": self.name, "value": self.value, "secure": self.secure}
        if self.domain:
            record["domain"] = self.domain
            record["path"] = self.path or "/"
        else:
            record["url"] = fallback_url
        if self.expiry is not None:
            record["expires"] = self.expiry
        if self.http_only is not None:
            record["httpOnly"] = self.http_only
        return record


class SessionStore:
    """Loads and saves the cookie set that represents a logged-in session."""

    def __init__(self, path: str | Path, base_url: str) -> None:
        self.path = Path(path)
        self.base_url = base_url

    def exists(self) -> bool:
        """File-presence check only — no expiry validation."""
        return self.path.exists()

    def load(self) -> list[SessionCookie]:
        """Read every cookie from the session file.

        Raises:
            ActionableError: SESSION if the file cannot be read or is not
                a JSON array of cookie records.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ActionableError.session_file(str(self.path), str(exc)) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ActionableError.session_file(str(self.path), f"invalid JSON: {exc}") from exc

        if not isinstance(data, list):
            raise ActionableError.session_file(
                str(self.path), f"expected a list of cookies, got {type(data).__name__}"
            )

        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise ActionableError.session_file(
                    str(self.path),
                    f"malformed cookie record at index {index}: expected an object, "
                    f"got {type(item).__name__}",
                )

        try:
            cookies = [SessionCookie.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise ActionableError.session_file(
                str(self.path), f"malformed cookie record: {exc!r}"
            ) from exc

        logger.info("Loaded %d session cookie(s) from %s", len(cookies), self.path)
        return cookies

    def save(self, cookies: list[SessionCookie]) -> Path:
        """Write the whole cookie set, replacing any previous file."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps([asdict(c) for c in cookies], indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            raise ActionableError.session_file(str(self.path), str(exc)) from exc
        logger.info("Saved %d session cookie(s) to %s", len(cookies), self.path)
        return self.path

    async def restore(self, browser: BrowserControl) -> int:
        """Replay the saved cookies into the browser; returns how many."""
        cookies = self.load()
        for cookie in cookies:
            await browser.add_cookie(cookie.to_browser(self.base_url))
        return len(cookies)

    async def capture(self, browser: BrowserControl) -> Path:
        """Read the browser's full cookie jar and persist it."""
        records = await browser.get_all_cookies()
        return self.save([SessionCookie.from_browser(r) for r in records])
