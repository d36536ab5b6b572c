"""Browser layer — the facade the automation drives and the session that owns it."""

from dice_apply.browser.facade import BrowserControl, Element, PlaywrightBrowser
from dice_apply.browser.session import BrowserSession, SessionConfig

__all__ = ["BrowserControl", "BrowserSession", "Element", "PlaywrightBrowser", "SessionConfig"]
