"""Element wait engine — the only polling loop in the package.

Every "wait for the page", "wait for the button", and "wait for the DOM to
stop moving" goes through :func:`wait_until`:

  - the predicate is probed immediately, then every ``poll_interval``
  - elapsed time is wall-clock from the start of the call
  - the first truthy probe result is returned (an element handle, ``True`` …)
  - once a probe fails with ``timeout`` or more elapsed, an
    ``ActionableError`` of type TIMEOUT is raised — never earlier, and at
    most one poll interval late

Errors raised by a probe are classified, not guessed.  ``is_fatal``
decides; the default treats CONNECTION (session gone) and CANCELLED as
fatal and re-raises them at once, and treats every other
``ActionableError`` (stale handle, detached node) as "not yet".  With
``[wait].retry_disconnected = true`` the classifier is
:func:`fatal_on_cancel_only`, which retries a dead session until the
budget runs out.  Exceptions that are not ``ActionableError`` are bugs in
the probe and propagate untouched.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dice_apply.errors import ActionableError, ErrorType
from dice_apply.logging import logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dice_apply.browser.facade import BrowserControl
    from dice_apply.config import WaitConfig

    Predicate = Callable[[], Awaitable[Any]]
    ErrorClassifier = Callable[[ActionableError], bool]
    Clock = Callable[[], float]
    Sleep = Callable[[float], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

FATAL_ERROR_TYPES = frozenset({ErrorType.CONNECTION, ErrorType.CANCELLED})


def fatal_on_disconnect(exc: ActionableError) -> bool:
    """Default classifier: a closed session or a cancelled run stops the wait."""
    return exc.error_type in FATAL_ERROR_TYPES


def fatal_on_cancel_only(exc: ActionableError) -> bool:
    """Retry everything except cancellation, including a dead session."""
    return exc.error_type == ErrorType.CANCELLED


# ---------------------------------------------------------------------------
# Core loop
# ---------------------------------------------------------------------------


async def wait_until(
    predicate: Predicate,
    *,
    poll_interval: float,
    timeout: float,
    description: str = "condition",
    is_fatal: ErrorClassifier = fatal_on_disconnect,
    cancel: asyncio.Event | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """Poll *predicate* until it returns something truthy or *timeout* passes.

    Args:
        predicate: Zero-argument coroutine function probing the page.
        poll_interval: Seconds slept between probes.  Must be positive.
        timeout: Budget in seconds, measured from the call.
        description: What is being waited for — used in logs and errors.
        is_fatal: Decides which probe errors end the wait immediately.
        cancel: Run-level cancellation token, checked before every probe.
        clock: Monotonic clock (injectable for tests).
        sleep: Async sleep (injectable for tests).

    Returns:
        The first truthy value the predicate produced.

    Raises:
        ActionableError: TIMEOUT when the budget runs out, CANCELLED when
            *cancel* is set, or whatever fatal error a probe raised.
    """
    if poll_interval <= 0:
        msg = f"poll_interval must be > 0, got {poll_interval}"
        raise ValueError(msg)

    start = clock()
    attempts = 0
    last_error: ActionableError | None = None

    while True:
        if cancel is not None and cancel.is_set():
            raise ActionableError.cancelled(f"wait for {description}")

        attempts += 1
        try:
            result = await predicate()
        except ActionableError as exc:
            if is_fatal(exc):
                raise
            logger.debug("Probe for %s failed (attempt %d): %s", description, attempts, exc.error)
            last_error = exc
            result = None

        elapsed = clock() - start
        if result:
            logger.debug(
                "%s ready after %d probe(s), %.2fs", description, attempts, elapsed
            )
            return result

        if elapsed >= timeout:
            err = ActionableError.timeout(description, timeout)
            assert err.context is not None
            err.context["attempts"] = attempts
            if last_error is not None:
                err.context["last_error"] = last_error.error
            raise err

        await sleep(poll_interval)


# ---------------------------------------------------------------------------
# Wait specs and the bound waiter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WaitSpec:
    """One wait: what to probe, how often, and for how long."""

    predicate: Predicate
    poll_interval: float
    timeout: float
    description: str = "condition"


class Waiter:
    """Binds the cadence, classifier, cancel token, and clock for a run.

    Components take a ``Waiter`` instead of threading five keyword
    arguments through every call.
    """

    def __init__(
        self,
        poll_interval: float = 0.5,
        *,
        is_fatal: ErrorClassifier = fatal_on_disconnect,
        cancel: asyncio.Event | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.poll_interval = poll_interval
        self.is_fatal = is_fatal
        self.cancel = cancel
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: WaitConfig, *, cancel: asyncio.Event | None = None) -> Waiter:
        return cls(
            config.poll_interval,
            is_fatal=fatal_on_cancel_only if config.retry_disconnected else fatal_on_disconnect,
            cancel=cancel,
        )

    def spec(self, predicate: Predicate, timeout: float, description: str) -> WaitSpec:
        return WaitSpec(predicate, self.poll_interval, timeout, description)

    async def run(self, spec: WaitSpec) -> Any:
        return await wait_until(
            spec.predicate,
            poll_interval=spec.poll_interval,
            timeout=spec.timeout,
            description=spec.description,
            is_fatal=self.is_fatal,
            cancel=self.cancel,
            clock=self._clock,
            sleep=self._sleep,
        )

    async def until(self, predicate: Predicate, timeout: float, description: str) -> Any:
        return await self.run(self.spec(predicate, timeout, description))

    async def settle(
        self,
        browser: BrowserControl,
        upper_bound: float,
        *,
        quiet_for: float | None = None,
    ) -> bool:
        """Wait for the DOM to stop mutating, for at most *upper_bound* seconds.

        The fixed settle delay is only the ceiling: if the page goes quiet
        sooner, the wait ends sooner.  Hitting the ceiling is not an error.

        Returns:
            True if the page went quiet, False if the ceiling was reached.
        """
        if upper_bound <= 0:
            return True
        quiet = quiet_for if quiet_for is not None else self.poll_interval * 2
        try:
            await self.until(dom_quiescent(browser, quiet), upper_bound, "DOM to settle")
        except ActionableError as exc:
            if exc.error_type != ErrorType.TIMEOUT:
                raise
            logger.debug("DOM still mutating after %.1fs — proceeding", upper_bound)
            return False
        return True


# ---------------------------------------------------------------------------
# Predicate factories
# ---------------------------------------------------------------------------

# Stamps the time of the last DOM mutation on ``window``.  Arming resets the
# stamp, so a settle right after a click waits at least one quiet window.
# A navigation gets a fresh window and a fresh observer.
_OBSERVER_SCRIPT = """
() => {
  window.__diceApplyLastMutation = Date.now();
  if (!window.__diceApplyObserver) {
    window.__diceApplyObserver = new MutationObserver(() => {
      window.__diceApplyLastMutation = Date.now();
    });
    window.__diceApplyObserver.observe(document, {
      childList: true, subtree: true, attributes: true, characterData: true,
    });
  }
  return true;
}
"""

_QUIESCENCE_SCRIPT = """
([quietMs]) => {
  if (!window.__diceApplyObserver) {
    window.__diceApplyLastMutation = Date.now();
    window.__diceApplyObserver = new MutationObserver(() => {
      window.__diceApplyLastMutation = Date.now();
    });
    window.__diceApplyObserver.observe(document, {
      childList: true, subtree: true, attributes: true, characterData: true,
    });
    return false;
  }
  return Date.now() - window.__diceApplyLastMutation >= quietMs;
}
"""


async def install_mutation_observer(browser: BrowserControl) -> None:
    """Arm the mutation timestamp before an action that re-renders the page."""
    await browser.execute_script(_OBSERVER_SCRIPT)


def element_exists(browser: BrowserControl, selector: str) -> Predicate:
    """At least one element matches *selector*; yields the first one."""

    async def probe() -> Any:
        return await browser.find(selector)

    return probe


def element_ready(
    browser: BrowserControl,
    selector: str,
    text_pattern: str | re.Pattern[str] | None = None,
) -> Predicate:
    """An element matching *selector* (and *text_pattern*) is visible and enabled.

    Yields the first such element so the caller can act on exactly what
    was checked.
    """
    pattern = re.compile(text_pattern, re.IGNORECASE) if isinstance(text_pattern, str) else text_pattern

    async def probe() -> Any:
        for element in await browser.find_all(selector):
            if pattern is not None and not pattern.search(await browser.text(element)):
                continue
            if await browser.is_displayed(element) and await browser.is_enabled(element):
                return element
        return None

    return probe


def labeled_button(browser: BrowserControl, container: str, label: str) -> Predicate:
    """A ready ``<button>`` inside *container* whose whole text is *label*."""
    return element_ready(
        browser,
        f"{container} button",
        re.compile(rf"^\s*{re.escape(label)}\s*$", re.IGNORECASE),
    )


def dom_quiescent(browser: BrowserControl, quiet_for: float) -> Predicate:
    """No DOM mutation for *quiet_for* seconds (arms the observer on first probe)."""
    quiet_ms = int(quiet_for * 1000)

    async def probe() -> bool:
        return bool(await browser.execute_script(_QUIESCENCE_SCRIPT, quiet_ms))

    return probe


__all__ = [
    "FATAL_ERROR_TYPES",
    "WaitSpec",
    "Waiter",
    "dom_quiescent",
    "element_exists",
    "element_ready",
    "fatal_on_cancel_only",
    "fatal_on_disconnect",
    "install_mutation_observer",
    "labeled_button",
    "wait_until",
]
