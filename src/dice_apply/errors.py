"""Actionable error hierarchy for the dice-apply automation.

Errors are classified by **recovery path**, not by origin.
Each error type carries structured guidance for three audiences:
  - The calling code (typed ``error_type`` for routing)
  - The human operator (``suggestion`` + ``troubleshooting`` steps)
  - An AI agent (``ai_guidance`` with concrete next actions)

The routing that matters most at runtime:

  - ``CONNECTION`` — the browser session is gone.  Fatal for the run.
  - ``BROWSER`` — a single protocol call failed (stale element, detached
    frame).  Retried inside waits; ends the current posting otherwise.
  - ``TIMEOUT`` — a wait budget ran out.  Ends the current posting, or the
    current search page for page-level readiness waits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class ErrorType(StrEnum):
    """Recovery-path categories — what to *do*, not where it came from."""

    AUTHENTICATION = "authentication"
    CONFIG = "config"
    CONNECTION = "connection"
    BROWSER = "browser"
    TIMEOUT = "timeout"
    PARSE = "parse"
    SESSION = "session"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"


# ---------------------------------------------------------------------------
# Guidance dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AIGuidance:
    """Machine-readable guidance for an AI agent consuming this error."""

    action_required: str
    command: str | None = None
    discovery_tool: str | None = None
    checks: list[str] | None = None
    steps: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"action_required": self.action_required}
        if self.command is not None:
            result["command"] = self.command
        if self.discovery_tool is not None:
            result["discovery_tool"] = self.discovery_tool
        if self.checks is not None:
            result["checks"] = self.checks
        if self.steps is not None:
            result["steps"] = self.steps
        return result


@dataclass(frozen=True)
class Troubleshooting:
    """Sequential, human-readable recovery steps for the operator."""

    steps: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"steps": self.steps}


# ---------------------------------------------------------------------------
# Base actionable error
# ---------------------------------------------------------------------------


@dataclass
class ActionableError(Exception):
    """Structured error with embedded recovery guidance.

    Use the factory classmethods rather than constructing directly —
    they encode domain knowledge so callers don't have to.
    """

    error: str
    error_type: ErrorType
    service: str

    success: bool = field(default=False, init=False)
    suggestion: str | None = None
    ai_guidance: AIGuidance | None = None
    troubleshooting: Troubleshooting | None = None
    context: dict[str, Any] | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    # Make it work as a real exception
    def __post_init__(self) -> None:
        super().__init__(self.error)

    # -- serialisation -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Compact JSON-ready dict — ``None`` values are excluded."""
        result: dict[str, Any] = {
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type.value,
            "service": self.service,
            "timestamp": self.timestamp,
        }
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion
        if self.ai_guidance is not None:
            result["ai_guidance"] = self.ai_guidance.to_dict()
        if self.troubleshooting is not None:
            result["troubleshooting"] = self.troubleshooting.to_dict()
        if self.context is not None:
            result["context"] = self.context
        return result

    # -- factory methods -----------------------------------------------------

    @classmethod
    def authentication(
        cls,
        site: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Login did not complete or the saved session was rejected."""
        return cls(
            error=f"Authentication failed for {site}: {raw_error}",
            error_type=ErrorType.AUTHENTICATION,
            service=site,
            suggestion=suggestion or f"Log in to {site} again (the saved session may have expired)",
            ai_guidance=AIGuidance(
                action_required="Operator must log in interactively in a headed browser",
                command="python -m dice_apply login",
                checks=[
                    "Check whether the session file exists",
                    "Delete the session file if the site keeps redirecting to login",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Delete the saved session file (see [session].path)",
                    "2. Run: python -m dice_apply login",
                    "3. Complete login in the browser window, then press Enter",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def config(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Missing or invalid configuration in settings.toml."""
        return cls(
            error=f"Configuration error — {field_name}: {reason}",
            error_type=ErrorType.CONFIG,
            service="settings.toml",
            suggestion=suggestion or f"Fix '{field_name}' in config/settings.toml",
            ai_guidance=AIGuidance(
                action_required=f"Correct the '{field_name}' value in config/settings.toml",
                checks=[
                    "Verify config/settings.toml exists",
                    f"Verify '{field_name}' is present and valid",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Open config/settings.toml",
                    f"2. Locate the '{field_name}' setting",
                    f"3. Fix the issue: {reason}",
                    "4. Save and re-run",
                ]
            ),
        )

    @classmethod
    def connection(
        cls,
        service: str,
        url: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Browser endpoint unreachable or the session was closed underneath us."""
        return cls(
            error=f"Cannot reach {service} at {url}: {raw_error}",
            error_type=ErrorType.CONNECTION,
            service=service,
            suggestion=suggestion or f"Verify {service} is running and reachable at {url}",
            ai_guidance=AIGuidance(
                action_required=f"Verify {service} is reachable, then restart the run",
                command=f"curl -s {url}/json/version" if url.startswith("http") else None,
                checks=[
                    f"Is {service} running?",
                    "Was the browser window closed during the run?",
                    "Is [browser].endpoint correct in settings.toml?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Verify {service} is running",
                    "2. Check [browser].endpoint in config/settings.toml",
                    "3. Do not close the automated browser window while a run is active",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def browser(
        cls,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """A single browser protocol call failed but the session is alive."""
        return cls(
            error=f"Browser call '{operation}' failed: {raw_error}",
            error_type=ErrorType.BROWSER,
            service="browser",
            suggestion=suggestion or "The page changed while it was being read; the step can be retried",
            ai_guidance=AIGuidance(
                action_required="Retry the step once the page has settled",
                checks=[
                    "Did the page navigate or re-render during the call?",
                    "Is the element still attached to the document?",
                ],
            ),
        )

    @classmethod
    def timeout(
        cls,
        what: str,
        seconds: float,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """A wait predicate never became true within its budget."""
        return cls(
            error=f"Timed out after {seconds:g}s waiting for {what}",
            error_type=ErrorType.TIMEOUT,
            service="wait",
            suggestion=suggestion or "Increase the matching [wait] timeout or check the page in a headed browser",
            ai_guidance=AIGuidance(
                action_required=f"Inspect the page state while waiting for {what}",
                checks=[
                    "Is the page structure still the one the selectors expect?",
                    "Is the network slow enough that [wait] budgets need raising?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Run with [browser].headless = false and watch the page",
                    f"2. Confirm {what} eventually appears",
                    "3. Raise the relevant [wait] timeout in config/settings.toml if it is just slow",
                ]
            ),
            context={"waited_for": what, "timeout_seconds": seconds},
        )

    @classmethod
    def parse(
        cls,
        source: str,
        selector: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Malformed input — TOML syntax, or a page structure that no longer matches."""
        return cls(
            error=f"Parse failure in {source} — '{selector}': {raw_error}",
            error_type=ErrorType.PARSE,
            service=source,
            suggestion=suggestion or f"Check the structure of {source}",
            ai_guidance=AIGuidance(
                action_required=f"Inspect {source} and fix '{selector}'",
                checks=[
                    f"Open {source} and verify '{selector}'",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Open {source}",
                    f"2. Locate '{selector}'",
                    "3. Fix the syntax or update the selector",
                    "4. Re-run",
                ]
            ),
        )

    @classmethod
    def session_file(
        cls,
        path: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Session cookie file unreadable, unwritable, or malformed."""
        return cls(
            error=f"Session file {path} is unusable: {raw_error}",
            error_type=ErrorType.SESSION,
            service="session_store",
            suggestion=suggestion or f"Delete {path} and run 'python -m dice_apply login'",
            ai_guidance=AIGuidance(
                action_required="Regenerate the session file with an interactive login",
                command="python -m dice_apply login",
                checks=[
                    f"Is {path} valid JSON (a list of cookie objects)?",
                    f"Is the directory containing {path} writable?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Remove {path}",
                    "2. Run: python -m dice_apply login",
                    "3. Re-run the command",
                ]
            ),
        )

    @classmethod
    def validation(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Input validation failure (TOML values, CLI args, etc.)."""
        return cls(
            error=f"Validation error — {field_name}: {reason}",
            error_type=ErrorType.VALIDATION,
            service="validation",
            suggestion=suggestion or f"Fix '{field_name}': {reason}",
            ai_guidance=AIGuidance(
                action_required=f"Correct the value for '{field_name}'",
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Check the value of '{field_name}'",
                    f"2. Issue: {reason}",
                    "3. Correct and retry",
                ]
            ),
        )

    @classmethod
    def cancelled(cls, operation: str) -> ActionableError:
        """The run was cancelled by the operator or a run-level deadline."""
        return cls(
            error=f"Cancelled during {operation}",
            error_type=ErrorType.CANCELLED,
            service="runner",
            suggestion="Re-run when ready; completed applications are not repeated by the site",
        )

    @classmethod
    def unexpected(
        cls,
        service: str,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Catch-all for truly unexpected failures."""
        return cls(
            error=f"Unexpected error in {service} during {operation}: {raw_error}",
            error_type=ErrorType.UNEXPECTED,
            service=service,
            suggestion=suggestion or "This is an unexpected error — check logs for details",
            ai_guidance=AIGuidance(
                action_required="Analyze the error and escalate if needed",
                checks=[
                    "Check the full traceback in logs",
                    f"Is {service} in a known-good state?",
                ],
            ),
        )

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        service: str,
        operation: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Auto-classify an exception by keyword patterns.

        A caller-supplied ``suggestion`` is always preserved — it carries
        context the generic classifier cannot infer.
        """
        error_str = str(error).lower()
        raw_error = str(error)

        if any(kw in error_str for kw in ("unauthorized", "401", "credential", "login")):
            return cls.authentication(service, raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("timeout", "timed out")):
            return cls.timeout(operation, 0, suggestion=suggestion)

        if any(
            kw in error_str
            for kw in ("connection refused", "unreachable", "has been closed", "target closed")
        ):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        return cls.unexpected(service, operation, raw_error, suggestion=suggestion)
