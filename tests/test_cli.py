"""CLI handler tests — parser construction, command wiring, output formatting.

Maps to BDD specs: TestParserConstruction, TestUrlCommand, TestSearchCommand,
TestRunCommand, TestLoginCommand, TestErrorReporting
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import JOB_ID
from dice_apply.apply import ApplyOutcome, ApplyReport, ApplyStage, ApplyStatus
from dice_apply.cli import build_parser, handle_login, handle_run, handle_search, handle_url, main
from dice_apply.runner import RunResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_runner(**methods: object) -> MagicMock:
    runner = MagicMock()
    for name, value in methods.items():
        setattr(runner, name, AsyncMock(return_value=value))
    return runner


def _run_args(**overrides: object) -> argparse.Namespace:
    values: dict[str, object] = {
        "settings": "config/settings.toml",
        "dry_run": False,
        "report": None,
        "max_runtime": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParserConstruction:
    """REQUIREMENT: The parser exposes every subcommand with its flags.

    WHO: The operator typing commands
    WHAT: run, search, login, and url are accepted; run takes --dry-run,
          --report, and --max-runtime; --settings defaults to
          config/settings.toml; a subcommand is required
    WHY: A flag that parses but is never wired is worse than a missing flag
    """

    def test_run_flags_default_off(self) -> None:
        """Without flags, run is a live run with no deadline and the default report path."""
        args = build_parser().parse_args(["run"])
        assert args.command == "run"
        assert args.dry_run is False
        assert args.report is None
        assert args.max_runtime is None
        assert args.settings == str(Path("config/settings.toml"))

    def test_run_flags_are_parsed(self) -> None:
        """--dry-run, --report, and --max-runtime reach the namespace."""
        args = build_parser().parse_args(
            ["--settings", "s.toml", "-v", "run", "--dry-run", "--report", "r.json", "--max-runtime", "600"]
        )
        assert args.settings == "s.toml"
        assert args.verbose is True
        assert args.dry_run is True
        assert args.report == "r.json"
        assert args.max_runtime == 600.0

    @pytest.mark.parametrize("command", ["search", "login", "url"])
    def test_other_subcommands_parse(self, command: str) -> None:
        """Each subcommand is recognised."""
        assert build_parser().parse_args([command]).command == command

    def test_subcommand_is_required(self) -> None:
        """Bare invocation is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# url
# ---------------------------------------------------------------------------


class TestUrlCommand:
    """REQUIREMENT: ``url`` prints the search URL for every configured page.

    WHO: The operator checking filters before a run
    WHAT: One URL per page up to max_pages, page 1 without a page parameter
    WHY: Seeing the URL is the fastest way to confirm the filters are right
    """

    def test_prints_one_url_per_page(self, make_settings, capsys: pytest.CaptureFixture[str]) -> None:
        """max_pages = 2 prints two URLs."""
        with patch("dice_apply.cli.load_settings", return_value=make_settings(max_pages=2)):
            handle_url(argparse.Namespace(settings="x"))
        lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("https://")]
        assert len(lines) == 2
        assert "page=" not in lines[0]
        assert lines[1].endswith("&page=2")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


class TestSearchCommand:
    """REQUIREMENT: ``search`` lists postings without applying.

    WHO: The operator previewing what a run would apply to
    WHAT: Each posting is printed with its page and canonical URL; a run in
          which no page could be searched exits with status 1
    WHY: A silent empty list hides a broken search page
    """

    def test_lists_postings(self, make_settings, make_posting, capsys: pytest.CaptureFixture[str]) -> None:
        """Titles and canonical URLs are printed with the totals."""
        result = RunResult(postings=[make_posting()], pages_searched=1)
        runner = _mock_runner(collect_postings=result)
        with (
            patch("dice_apply.cli.load_settings", return_value=make_settings()),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
        ):
            handle_search(argparse.Namespace(settings="x"))
        output = capsys.readouterr().out
        assert "Senior Python Engineer" in output
        assert f"/job-detail/{JOB_ID}" in output
        assert "1 posting(s) across 1 page(s)" in output

    def test_exits_1_when_no_page_was_searched(self, make_settings) -> None:
        """Page failures with zero searched pages are an error exit."""
        result = RunResult(pages_searched=0, page_failures=["page 1: Timed out"])
        runner = _mock_runner(collect_postings=result)
        with (
            patch("dice_apply.cli.load_settings", return_value=make_settings()),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
            pytest.raises(SystemExit) as exc_info,
        ):
            handle_search(argparse.Namespace(settings="x"))
        assert exc_info.value.code == 1


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRunCommand:
    """REQUIREMENT: ``run`` applies, prints a summary, and writes a JSON report.

    WHO: The operator reviewing a finished batch
    WHAT: The runner receives dry_run and max_runtime; the summary lists
          applied and failed counts and each failure's stage; the report is
          written to --report or a timestamped file under report_dir
    WHY: Failed postings must be finished by hand — the operator needs to
         know which ones and where they stopped
    """

    def _result(self, make_posting) -> RunResult:
        report = ApplyReport()
        report.add(ApplyOutcome(posting=make_posting(), status=ApplyStatus.APPLIED))
        report.add(
            ApplyOutcome(
                posting=make_posting(identifier="0a1b2c3d-4e5f-4a6b-8c7d-9e0f1a2b3c4d", title="Data Engineer"),
                failed_stage=ApplyStage.SUBMIT,
                reason="Timed out after 15s waiting for Submit",
            )
        )
        return RunResult(postings=[o.posting for o in report.outcomes], report=report, pages_searched=1)

    def test_summary_and_report_written(
        self, make_settings, make_posting, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The summary names the failure stage; the JSON report has both outcomes."""
        runner = _mock_runner(run=self._result(make_posting))
        report_path = tmp_path / "out" / "report.json"
        with (
            patch("dice_apply.cli.load_settings", return_value=make_settings()),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
        ):
            handle_run(_run_args(report=str(report_path), max_runtime=60.0))

        runner.run.assert_awaited_once_with(dry_run=False, max_runtime=60.0)
        output = capsys.readouterr().out
        assert "Applied:         1" in output
        assert "Failed:          1" in output
        assert "Data Engineer — submit" in output
        data = json.loads(report_path.read_text())
        assert data["apply"]["applied"] == 1
        assert data["apply"]["outcomes"][1]["failed_stage"] == "submit"

    def test_default_report_goes_to_report_dir(self, make_settings, make_posting, tmp_path: Path) -> None:
        """Without --report, a timestamped file is written under [output].report_dir."""
        settings = make_settings()
        runner = _mock_runner(run=self._result(make_posting))
        with (
            patch("dice_apply.cli.load_settings", return_value=settings),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
        ):
            handle_run(_run_args())
        reports = list(Path(settings.output.report_dir).glob("apply_report_*.json"))
        assert len(reports) == 1

    def test_dry_run_is_forwarded(self, make_settings, make_posting, tmp_path: Path) -> None:
        """--dry-run reaches the runner."""
        runner = _mock_runner(run=RunResult(pages_searched=1))
        with (
            patch("dice_apply.cli.load_settings", return_value=make_settings()),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
        ):
            handle_run(_run_args(dry_run=True, report=str(tmp_path / "r.json")))
        assert runner.run.await_args.kwargs["dry_run"] is True


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLoginCommand:
    """REQUIREMENT: ``login`` forces an interactive login and reports where the session went.

    WHO: The operator whose saved session expired
    WHAT: The runner's login_only is invoked and the saved path printed
    WHY: Without the path the operator cannot tell which file to delete later
    """

    def test_prints_saved_session_path(self, make_settings, capsys: pytest.CaptureFixture[str]) -> None:
        """The session file path is echoed after login."""
        runner = _mock_runner(login_only=Path("data/session.json"))
        with (
            patch("dice_apply.cli.load_settings", return_value=make_settings()),
            patch("dice_apply.cli.ApplyRunner", return_value=runner),
        ):
            handle_login(argparse.Namespace(settings="x"))
        runner.login_only.assert_awaited_once()
        assert str(Path("data/session.json")) in capsys.readouterr().out


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------


class TestErrorReporting:
    """REQUIREMENT: ActionableErrors end the process with a readable message and status 1.

    WHO: The operator reading the terminal after a failure
    WHAT: The error text, the suggestion, and the troubleshooting steps go to
          stderr; the exit status is 1
    WHY: A traceback tells the operator where the code failed, not what to do
    """

    def test_missing_settings_exits_1_with_guidance(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A missing settings file is reported, not raised."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--settings", str(tmp_path / "absent.toml"), "url"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "absent.toml" in err
        assert "Suggestion:" in err

    def test_valid_settings_run_url_command(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """main dispatches to the handler named on the command line."""
        example = Path(__file__).resolve().parents[1] / "config" / "settings.toml.example"
        main(["--settings", str(example), "url"])
        assert "https://www.dice.com/jobs?q=" in capsys.readouterr().out
