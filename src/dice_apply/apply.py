"""Apply orchestrator — the per-posting "Easy apply" state machine.

Each posting runs through a fixed sequence of stages::

    COMPOSE → NAVIGATE_TO_POSTING → TRIGGER_EASY_APPLY
            → ADVANCE_FORM_STEP (0..n) → SUBMIT → DONE

Postings are processed one at a time against the single browser tab.

Failure semantics:
  - TIMEOUT or BROWSER errors end the *current posting only*.  The outcome
    is recorded as FAILED with the stage it died in, and the next posting
    starts.  A half-filled form is simply abandoned — its state lives in
    the tab and is discarded by the next navigation.
  - CONNECTION and CANCELLED errors propagate: with no session there is
    nothing left to apply to.

The deep-link apply URL carries the posting and the originating search as
a base64url-encoded JSON payload, so the apply entry page can be opened
directly without a round trip through the job detail page.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlsplit

from dice_apply.errors import ActionableError, ErrorType
from dice_apply.logging import logger
from dice_apply.search import DEFAULT_BASE_URL
from dice_apply.wait import element_ready, install_mutation_observer, labeled_button

if TYPE_CHECKING:
    from collections.abc import Sequence

    from dice_apply.browser.facade import BrowserControl, Element
    from dice_apply.config import WaitConfig
    from dice_apply.extractor import Posting
    from dice_apply.wait import Waiter

# ---------------------------------------------------------------------------
# Selectors and labels for the apply flow
# ---------------------------------------------------------------------------

APPLY_ENTRY_PATH = "/apply"
APPLY_PAYLOAD_PARAM = "data"

EASY_APPLY_SELECTOR = "button.btn-primary"
EASY_APPLY_TEXT = re.compile(r"easy\s*apply", re.IGNORECASE)
FORM_CONTAINER = "form"
NEXT_LABEL = "Next"
SUBMIT_LABEL = "Submit"

_SCROLL_INTO_VIEW = "([el]) => el.scrollIntoView({block: 'center', inline: 'nearest'})"

# Errors that cost one posting, not the run
_RECOVERABLE = frozenset({ErrorType.TIMEOUT, ErrorType.BROWSER})


# ---------------------------------------------------------------------------
# Stage and outcome types
# ---------------------------------------------------------------------------


class ApplyStage(StrEnum):
    """Where a posting is in the apply flow."""

    COMPOSE = "compose"
    NAVIGATE_TO_POSTING = "navigate_to_posting"
    TRIGGER_EASY_APPLY = "trigger_easy_apply"
    ADVANCE_FORM_STEP = "advance_form_step"
    SUBMIT = "submit"
    DONE = "done"

    @property
    def signal(self) -> str:
        """The DOM signal this stage waits for before acting."""
        return _STAGE_SIGNALS[self]


_STAGE_SIGNALS: dict[ApplyStage, str] = {
    ApplyStage.COMPOSE: "none",
    ApplyStage.NAVIGATE_TO_POSTING: "document loaded",
    ApplyStage.TRIGGER_EASY_APPLY: f"visible, enabled '{EASY_APPLY_SELECTOR}' reading 'Easy apply'",
    ApplyStage.ADVANCE_FORM_STEP: f"'{NEXT_LABEL}' button inside '{FORM_CONTAINER}'",
    ApplyStage.SUBMIT: f"'{SUBMIT_LABEL}' button inside '{FORM_CONTAINER}'",
    ApplyStage.DONE: "DOM quiescent",
}


class ApplyStatus(StrEnum):
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ApplyOutcome:
    """What happened to one posting."""

    posting: Posting
    status: ApplyStatus = ApplyStatus.FAILED
    apply_url: str = ""
    failed_stage: ApplyStage | None = None
    reason: str | None = None
    form_steps: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "job_id": self.posting.identifier,
            "title": self.posting.title,
            "url": self.posting.canonical_url,
            "page": self.posting.page_number,
            "status": self.status.value,
            "form_steps": self.form_steps,
        }
        if self.apply_url:
            result["apply_url"] = self.apply_url
        if self.failed_stage is not None:
            result["failed_stage"] = self.failed_stage.value
        if self.reason is not None:
            result["reason"] = self.reason
        return result


@dataclass
class ApplyReport:
    """Append-only log of outcomes for a run, in processing order."""

    outcomes: list[ApplyOutcome] = field(default_factory=list)

    def add(self, outcome: ApplyOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: ApplyStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def applied(self) -> int:
        return self.count(ApplyStatus.APPLIED)

    @property
    def failed(self) -> int:
        return self.count(ApplyStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "applied": self.applied,
            "failed": self.failed,
            "skipped": self.count(ApplyStatus.SKIPPED),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# ---------------------------------------------------------------------------
# Deep-link composition
# ---------------------------------------------------------------------------


def compose_apply_url(
    posting: Posting,
    search_params: str,
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """Deep link into the apply flow for *posting*.

    The payload is compact JSON, base64url-encoded, in the ``data`` query
    parameter of the apply entry path.
    """
    payload = {
        "jobId": posting.identifier,
        "jobTitle": posting.title,
        "jobUrl": posting.canonical_url,
        "searchParams": search_params,
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    encoded = base64.urlsafe_b64encode(raw).decode("ascii")
    return f"{base_url.rstrip('/')}{APPLY_ENTRY_PATH}?{urlencode({APPLY_PAYLOAD_PARAM: encoded})}"


def decode_apply_payload(url: str) -> dict[str, Any]:
    """Inverse of :func:`compose_apply_url` — the JSON payload of an apply URL."""
    values = parse_qs(urlsplit(url).query).get(APPLY_PAYLOAD_PARAM)
    if not values:
        msg = f"No '{APPLY_PAYLOAD_PARAM}' parameter in {url}"
        raise ValueError(msg)
    encoded = values[0]
    padded = encoded + "=" * (-len(encoded) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ApplyOrchestrator:
    """Drives each posting through the apply stages, one posting at a time.

    Owns the browser tab for the duration of :meth:`apply_all`.  With
    ``dry_run`` the flow stops after navigation and nothing is clicked.
    """

    def __init__(
        self,
        browser: BrowserControl,
        waiter: Waiter,
        config: WaitConfig,
        *,
        base_url: str = DEFAULT_BASE_URL,
        dry_run: bool = False,
    ) -> None:
        self._browser = browser
        self._waiter = waiter
        self._config = config
        self._base_url = base_url
        self._dry_run = dry_run

    async def apply_all(self, postings: Sequence[Posting], search_params: str) -> ApplyReport:
        """Apply to every posting in order; per-posting failures do not stop the run."""
        report = ApplyReport()
        total = len(postings)
        for index, posting in enumerate(postings, 1):
            cancel = self._waiter.cancel
            if cancel is not None and cancel.is_set():
                raise ActionableError.cancelled(f"apply run before posting {index}/{total}")

            logger.info("[%d/%d] %s (%s)", index, total, posting.title, posting.identifier)
            report.add(await self.apply_one(posting, search_params))

        logger.info(
            "Apply run finished: %d applied, %d failed, %d total",
            report.applied,
            report.failed,
            total,
        )
        return report

    async def apply_one(self, posting: Posting, search_params: str) -> ApplyOutcome:
        """Run one posting through the state machine and record the outcome."""
        outcome = ApplyOutcome(posting=posting)
        stage = ApplyStage.COMPOSE
        try:
            outcome.apply_url = compose_apply_url(posting, search_params, self._base_url)

            stage = ApplyStage.NAVIGATE_TO_POSTING
            await self._browser.navigate(outcome.apply_url)
            if self._dry_run:
                outcome.status = ApplyStatus.SKIPPED
                outcome.reason = "dry run"
                return outcome

            stage = ApplyStage.TRIGGER_EASY_APPLY
            await self._trigger_easy_apply()

            stage = ApplyStage.ADVANCE_FORM_STEP
            outcome.form_steps = await self._advance_form_steps()

            stage = ApplyStage.SUBMIT
            await self._submit()

            stage = ApplyStage.DONE
            await self._waiter.settle(self._browser, self._config.settle_delay)
        except ActionableError as exc:
            if exc.error_type not in _RECOVERABLE:
                raise
            outcome.failed_stage = stage
            outcome.reason = exc.error
            logger.warning(
                "Abandoned %s at %s on %s: %s",
                posting.identifier,
                stage.value,
                self._browser.current_url,
                exc.error,
            )
            return outcome

        outcome.status = ApplyStatus.APPLIED
        logger.info("Applied to %s after %d form step(s)", posting.identifier, outcome.form_steps)
        return outcome

    # -- stages --------------------------------------------------------------

    async def _trigger_easy_apply(self) -> None:
        button = await self._waiter.until(
            element_ready(self._browser, EASY_APPLY_SELECTOR, EASY_APPLY_TEXT),
            self._config.element_timeout,
            ApplyStage.TRIGGER_EASY_APPLY.signal,
        )
        await self._browser.execute_script(_SCROLL_INTO_VIEW, button)
        await self._waiter.settle(self._browser, self._config.click_settle)
        await self._click(button)

    async def _advance_form_steps(self) -> int:
        """Click "Next" until one wait window passes without one; returns the count."""
        steps = 0
        while True:
            try:
                button = await self._waiter.until(
                    labeled_button(self._browser, FORM_CONTAINER, NEXT_LABEL),
                    self._config.step_timeout,
                    ApplyStage.ADVANCE_FORM_STEP.signal,
                )
            except ActionableError as exc:
                if exc.error_type != ErrorType.TIMEOUT:
                    raise
                return steps

            if steps >= self._config.max_form_steps:
                raise ActionableError.browser(
                    "advance form",
                    f"still on a '{NEXT_LABEL}' step after {steps} clicks — form is not advancing",
                    suggestion="The form probably has a required field the flow cannot fill",
                )

            await self._click(button)
            steps += 1
            logger.debug("Form step %d advanced", steps)
            await self._waiter.settle(self._browser, self._config.click_settle)

    async def _submit(self) -> None:
        button = await self._waiter.until(
            labeled_button(self._browser, FORM_CONTAINER, SUBMIT_LABEL),
            self._config.element_timeout,
            ApplyStage.SUBMIT.signal,
        )
        await self._click(button)

    async def _click(self, element: Element) -> None:
        """Arm the mutation observer, then click, so the settle sees the re-render."""
        await install_mutation_observer(self._browser)
        await self._browser.click(element)
