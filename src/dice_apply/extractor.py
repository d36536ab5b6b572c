"""Posting extractor — job postings from a rendered search results page.

Search result cards are not addressed by a stable class name; what *is*
stable is the card title anchor's ``id``, which is the job's UUID.  So the
extractor walks every container, every anchor inside it, and keeps the
anchors whose ``id`` has the UUID shape.  Containers nest, so the same
anchor is seen many times — deduplication by identifier is what makes the
output one posting per job.

Readiness is the caller's problem: lazy-loaded cards that have not rendered
yet are simply not found.  The runner waits for the page and lets the DOM
settle before calling :meth:`PostingExtractor.extract`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dice_apply.errors import ActionableError
from dice_apply.logging import logger
from dice_apply.search import DEFAULT_BASE_URL
from dice_apply.wait import fatal_on_disconnect

if TYPE_CHECKING:
    from dice_apply.browser.facade import BrowserControl, Element
    from dice_apply.wait import ErrorClassifier

JOB_ID_PATTERN = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$"
)


@dataclass(frozen=True)
class Posting:
    """A job listing found on a search results page.  Identity is ``identifier``."""

    page_number: int
    title: str
    identifier: str
    canonical_url: str


def job_detail_url(identifier: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Canonical detail page URL for a job identifier."""
    return f"{base_url.rstrip('/')}/job-detail/{identifier}"


class PostingExtractor:
    """Scans the current page for posting anchors.

    ``is_fatal`` decides which per-anchor browser errors abort the scan;
    everything else skips that one anchor.  It is normally the run's wait
    classifier so extraction and waiting agree on what "session gone" means.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        container_selector: str = "div",
        anchor_selector: str = "a",
        is_fatal: ErrorClassifier | None = None,
    ) -> None:
        self.base_url = base_url
        self.container_selector = container_selector
        self.anchor_selector = anchor_selector
        self.is_fatal = is_fatal or fatal_on_disconnect

    async def extract(self, browser: BrowserControl, page_number: int = 1) -> list[Posting]:
        """Return the postings on the current page, first-seen order, one per identifier."""
        containers = await browser.find_all(self.container_selector)
        logger.debug("Scanning %d container(s) on page %d", len(containers), page_number)

        postings: list[Posting] = []
        seen: set[str] = set()

        for container in containers:
            try:
                anchors = await browser.find_all_within(container, self.anchor_selector)
            except ActionableError as exc:
                if self.is_fatal(exc):
                    raise
                logger.debug("Skipping container: %s", exc.error)
                continue

            for anchor in anchors:
                posting = await self._read_anchor(browser, anchor, page_number, seen)
                if posting is not None:
                    seen.add(posting.identifier)
                    postings.append(posting)

        logger.info("Page %d: %d posting(s) extracted", page_number, len(postings))
        return postings

    async def _read_anchor(
        self,
        browser: BrowserControl,
        anchor: Element,
        page_number: int,
        seen: set[str],
    ) -> Posting | None:
        """Build a posting from one anchor, or None if it is not a new posting anchor."""
        try:
            identifier = await browser.attribute(anchor, "id")
            if not identifier or not JOB_ID_PATTERN.match(identifier):
                return None
            if identifier in seen:
                return None
            title = await browser.text(anchor)
        except ActionableError as exc:
            if self.is_fatal(exc):
                raise
            logger.debug("Skipping anchor: %s", exc.error)
            return None

        return Posting(
            page_number=page_number,
            title=title.strip(),
            identifier=identifier,
            canonical_url=job_detail_url(identifier, self.base_url),
        )
