"""Tests for report rendering."""

from __future__ import annotations

import hashlib
import io
import json
from pathlib import Path

from rich.console import Console

from bootverify.verify.compare import compare_check, skipped_check
from bootverify.verify.models import (
    CapturedOutput,
    CheckKind,
    CompilerArtifact,
    InvocationFailureKind,
    InvocationOutcome,
    Stage,
    VerificationReport,
)
from bootverify.verify.report import (
    print_report,
    render_report,
    write_report_json,
)


def _outcome(stdout: str) -> InvocationOutcome:
    return InvocationOutcome(captured=CapturedOutput(stdout, "", 0))


def _plain(report: VerificationReport) -> str:
    return render_report(report).plain


def _report_with_artifacts() -> VerificationReport:
    report = VerificationReport(project_root="/work/oviec")
    report.set_artifact(
        CompilerArtifact(
            stage=Stage.STAGE0,
            executable_path=Path("/tmp/run/oviec_stage0"),
            built=True,
        )
    )
    report.set_artifact(
        CompilerArtifact(
            stage=Stage.STAGE1,
            executable_path=Path("/tmp/run/oviec_stage1"),
            built=True,
            delegated=True,
        )
    )
    return report


def test_report_lists_every_check_in_order() -> None:
    report = _report_with_artifacts()
    report.add_result(
        compare_check(CheckKind.VERSION, _outcome("v1\n"), _outcome("v1\n"))
    )
    report.add_result(
        compare_check(CheckKind.COMPILATION, _outcome(""), _outcome(""))
    )
    report.add_result(skipped_check(CheckKind.RUNTIME, "no compiled sample"))
    report.add_result(
        compare_check(CheckKind.SELF_DIAGNOSTICS, _outcome("ok\n"), _outcome("ok\n"))
    )
    report.finalize()

    text = _plain(report)

    positions = [
        text.index("[1/4] Version Equivalence: IDENTICAL"),
        text.index("[2/4] Compilation Equivalence: IDENTICAL"),
        text.index("[3/4] Runtime Equivalence: SKIPPED"),
        text.index("[4/4] Self-Check Diagnostics: IDENTICAL"),
    ]
    assert positions == sorted(positions)
    assert "Skipped: no compiled sample" in text
    assert "Stage 1: oviec_stage1 (built, delegated to Stage 0)" in text
    assert text.rstrip().splitlines()[-2] == "Bootstrap Verification: PASS"


def test_report_shows_differences_and_failures() -> None:
    report = _report_with_artifacts()
    report.add_result(
        compare_check(
            CheckKind.VERSION,
            _outcome("oviec 0.1.0\n"),
            InvocationOutcome.failed(InvocationFailureKind.TIMED_OUT, "no exit"),
        )
    )
    report.finalize()

    text = _plain(report)

    assert "[1/4] Version Equivalence: DIFFERS" in text
    assert "Differences:" in text
    assert "Stage 1 invocation failed (timed_out): no exit" in text
    assert "    | oviec 0.1.0" in text


def test_report_marks_unreached_checks_and_fatal_errors() -> None:
    report = VerificationReport(project_root="/work/oviec")
    report.record_fatal("Stage 0 build failed: exit 101\nbuild log:\nerror[E0425]")
    report.finalize()
    report.record_cleanup_failure("Failed to remove /tmp/run: busy")

    text = _plain(report)

    assert "Stage 0: not built" in text
    for title in (
        "Version Equivalence",
        "Compilation Equivalence",
        "Runtime Equivalence",
        "Self-Check Diagnostics",
    ):
        assert f"{title}: NOT RUN" in text
    assert "  - Stage 0 build failed: exit 101" in text
    assert "    error[E0425]" in text
    assert "Cleanup warnings:" in text
    assert "Bootstrap Verification: FAIL" in text


def test_report_rendering_is_deterministic() -> None:
    first = _report_with_artifacts()
    second = _report_with_artifacts()
    for report in (first, second):
        report.add_result(
            compare_check(CheckKind.VERSION, _outcome("a\n"), _outcome("b\n"))
        )
        report.finalize()

    assert _plain(first) == _plain(second)


def test_print_report_writes_to_console() -> None:
    report = _report_with_artifacts()
    report.finalize()
    buffer = io.StringIO()

    print_report(report, Console(file=buffer, width=120, color_system=None))

    assert "BOOTSTRAP VERIFICATION REPORT" in buffer.getvalue()


def test_write_report_json(tmp_path: Path) -> None:
    report = _report_with_artifacts()
    report.finalize()

    path = write_report_json(report, tmp_path / "out" / "report.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["overall_status"] == "pass"
    assert data["stage0"]["executable_path"] == "/tmp/run/oviec_stage0"


def test_report_shows_timings_and_view_hashes() -> None:
    report = _report_with_artifacts()
    report.add_result(
        compare_check(
            CheckKind.RUNTIME,
            InvocationOutcome(
                captured=CapturedOutput("Hello\n", "", 0, duration_seconds=0.5)
            ),
            InvocationOutcome(
                captured=CapturedOutput("Hello\n", "", 0, duration_seconds=1.0)
            ),
        )
    )
    report.finalize()

    text = _plain(report)
    digest = hashlib.sha256(b"Hello\n").hexdigest()

    assert "  Stage 0 (exit 0, 0.500s):" in text
    assert "  Stage 1 (exit 0, 1.000s):" in text
    assert f"  Stage 0 sha256: {digest}" in text
    assert f"  Stage 1 sha256: {digest}" in text
    assert "  Stage 1 / Stage 0 time: 2.00x" in text
