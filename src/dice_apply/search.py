"""Search URL builder.

Serialises a :class:`SearchQuery` into the query string the site's
``/jobs`` page understands.  The wire names (``countryCode``,
``filters.employmentType`` …) are the site's, not ours.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

DEFAULT_BASE_URL = "https://www.dice.com"


@dataclass(frozen=True)
class SearchQuery:
    """Structured search built once from ``[search]`` in settings.toml."""

    query: str
    location: str
    country_code: str
    employment_type: str
    employer_type: str
    language: str
    easy_apply: bool = True

    def to_params(self) -> list[tuple[str, str]]:
        """Ordered ``(wire_name, value)`` pairs."""
        return [
            ("q", self.query),
            ("location", self.location),
            ("countryCode", self.country_code),
            ("filters.employmentType", self.employment_type),
            ("filters.employerType", self.employer_type),
            ("filters.easyApply", "true" if self.easy_apply else "false"),
            ("language", self.language),
        ]

    def query_string(self) -> str:
        return urlencode(self.to_params())

    def __str__(self) -> str:
        return (
            f"q: {self.query}, location: {self.location}, country_code: {self.country_code}, "
            f"employment_type: {self.employment_type}, employer_type: {self.employer_type}, "
            f"easy_apply: {self.easy_apply}, language: {self.language}"
        )


def build_search_url(
    query: SearchQuery,
    base_url: str = DEFAULT_BASE_URL,
    *,
    page: int = 1,
) -> str:
    """Return the results URL for *query*, optionally for a later page.

    Page 1 carries no ``page`` parameter so the URL matches what a user
    gets from the search form.
    """
    if page < 1:
        msg = f"page must be >= 1, got {page}"
        raise ValueError(msg)

    qs = query.query_string()
    if page > 1:
        qs = f"{qs}&{urlencode({'page': page})}"
    return f"{base_url.rstrip('/')}/jobs?{qs}"
