"""Rendering of a finalized verification report.

The rendered text depends only on the report: all four checks appear in
execution order, with the recorded timings and view hashes of each stage.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from rich.console import Console
from rich.text import Text

from bootverify.verify.compare import STDOUT_CHECKS, printable
from bootverify.verify.models import (
    CHECK_ORDER,
    CapturedOutput,
    CheckKind,
    CheckVerdict,
    CompilerArtifact,
    ComparisonResult,
    Stage,
    VerificationReport,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

RULE = "=" * 76
MAX_OUTPUT_LINES = 40

VERDICT_STYLES = {
    CheckVerdict.IDENTICAL: "green",
    CheckVerdict.DIFFERS: "yellow",
    CheckVerdict.SKIPPED: "dim",
}


def _indent_block(text: Text, body: str, prefix: str) -> None:
    lines = printable(body).splitlines() or [""]
    if len(lines) > MAX_OUTPUT_LINES:
        hidden = len(lines) - MAX_OUTPUT_LINES
        lines = lines[:MAX_OUTPUT_LINES] + [f"... ({hidden} more lines)"]
    for line in lines:
        text.append(f"{prefix}{line}\n")


def _artifact_line(stage: Stage, artifact: CompilerArtifact | None) -> str:
    if artifact is None:
        return f"{stage.label}: not built"
    flags = ["built" if artifact.built else "not built"]
    if artifact.delegated:
        flags.append("delegated to Stage 0")
    return f"{stage.label}: {artifact.executable_path.name} ({', '.join(flags)})"


def _render_output(
    text: Text, stage: Stage, output: CapturedOutput, kind: CheckKind
) -> None:
    text.append(
        f"  {stage.label} (exit {output.exit_status}, "
        f"{output.duration_seconds:.3f}s):\n"
    )
    if kind in STDOUT_CHECKS:
        _indent_block(text, output.stdout, "    | ")
        if output.stderr:
            text.append("    stderr:\n", style="dim")
            _indent_block(text, output.stderr, "    | ")
        return
    _indent_block(text, output.stdout + output.stderr, "    | ")


def _render_result(text: Text, position: str, result: ComparisonResult) -> None:
    text.append(f"{position} {result.kind.title}: ", style="bold")
    text.append(result.verdict.value.upper(), style=VERDICT_STYLES[result.verdict])
    text.append("\n")

    if result.verdict == CheckVerdict.SKIPPED:
        text.append(f"  Skipped: {result.note}\n", style="dim")
        return

    for stage, output, failure in (
        (Stage.STAGE0, result.stage0_output, result.stage0_failure),
        (Stage.STAGE1, result.stage1_output, result.stage1_failure),
    ):
        if output is not None:
            _render_output(text, stage, output, result.kind)
        if failure is not None:
            text.append(
                f"  {stage.label} invocation failed ({failure.kind.value}): "
                f"{failure.detail}\n",
                style="red",
            )

    if result.stage0_hash:
        text.append(f"  Stage 0 sha256: {result.stage0_hash}\n", style="dim")
        text.append(f"  Stage 1 sha256: {result.stage1_hash}\n", style="dim")
    ratio = result.duration_ratio
    if ratio is not None:
        text.append(f"  Stage 1 / Stage 0 time: {ratio:.2f}x\n", style="dim")

    if result.verdict == CheckVerdict.DIFFERS and result.diff:
        text.append("  Differences:\n", style="yellow")
        _indent_block(text, result.diff, "    ")
    if result.note:
        text.append(f"  Note: {result.note}\n", style="cyan")


def render_report(report: VerificationReport) -> Text:
    """Build the styled, ordered summary of a report."""
    text = Text()
    text.append(f"{RULE}\n", style="blue")
    text.append("BOOTSTRAP VERIFICATION REPORT\n", style="bold blue")
    text.append(f"{RULE}\n", style="blue")
    text.append(f"Project: {report.project_root}\n")
    text.append(f"{_artifact_line(Stage.STAGE0, report.stage0)}\n")
    text.append(f"{_artifact_line(Stage.STAGE1, report.stage1)}\n")
    text.append("\n")

    total = len(CHECK_ORDER)
    for index, kind in enumerate(CHECK_ORDER, start=1):
        position = f"[{index}/{total}]"
        result = report.result_for(kind)
        if result is None:
            text.append(f"{position} {kind.title}: ", style="bold")
            text.append("NOT RUN\n", style="dim")
            continue
        _render_result(text, position, result)

    if report.fatal_errors:
        text.append("\nFatal errors:\n", style="bold red")
        for message in report.fatal_errors:
            first, _, rest = message.partition("\n")
            text.append(f"  - {first}\n", style="red")
            if rest:
                _indent_block(text, rest, "    ")

    if report.cleanup_failures:
        text.append("\nCleanup warnings:\n", style="yellow")
        for message in report.cleanup_failures:
            text.append(f"  - {message}\n")

    status = report.overall_status or VerificationStatus.FAIL
    banner_style = "bold green" if status == VerificationStatus.PASS else "bold red"
    text.append(f"\n{RULE}\n", style="blue")
    text.append(
        f"Bootstrap Verification: {status.value.upper()}\n", style=banner_style
    )
    text.append(f"{RULE}\n", style="blue")
    return text


def print_report(report: VerificationReport, console: Console) -> None:
    """Print the styled report to a console."""
    console.print(render_report(report), end="", highlight=False)


def write_report_json(report: VerificationReport, path: Path) -> Path:
    """Persist the report as JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    logger.info("Report saved to %s", path)
    return path
