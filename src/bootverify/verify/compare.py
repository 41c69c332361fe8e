"""Exact comparison of captured Stage 0 and Stage 1 outputs.

No normalization is applied: two outputs are identical only when the
compared view matches byte for byte. Divergence is returned as data.
"""

from __future__ import annotations

import difflib
import hashlib
import logging

from bootverify.runtime.command_runner import STREAM_ENCODING, STREAM_ERRORS
from bootverify.verify.models import (
    CapturedOutput,
    CheckKind,
    CheckVerdict,
    ComparisonResult,
    InvocationFailureKind,
    InvocationOutcome,
)

logger = logging.getLogger(__name__)

MAX_DIFF_LINES = 200

# Stage 1 may be this many times slower than Stage 0 before a note is added.
SLOWDOWN_NOTE_RATIO = 5.0
SLOWDOWN_MIN_SECONDS = 1.0  # Shorter runs are dominated by process startup

# Checks judged on stdout alone; the rest also compare exit status and log text.
STDOUT_CHECKS = frozenset({CheckKind.VERSION, CheckKind.RUNTIME})


def comparison_view(output: CapturedOutput, kind: CheckKind) -> str:
    """Return the text a check compares for one captured output."""
    if kind in STDOUT_CHECKS:
        return output.stdout
    return f"exit status: {output.exit_status}\n{output.stdout}{output.stderr}"


def compare(a: CapturedOutput, b: CapturedOutput, kind: CheckKind) -> CheckVerdict:
    """Compare two captured outputs on the view designated for ``kind``."""
    if comparison_view(a, kind) == comparison_view(b, kind):
        return CheckVerdict.IDENTICAL
    return CheckVerdict.DIFFERS


def view_digest(output: CapturedOutput, kind: CheckKind) -> str:
    """sha256 of the raw bytes of a check's compared view."""
    view = comparison_view(output, kind).encode(STREAM_ENCODING, STREAM_ERRORS)
    return hashlib.sha256(view).hexdigest()


def printable(text: str) -> str:
    """Make losslessly decoded stream text safe to print."""
    return text.encode(STREAM_ENCODING, STREAM_ERRORS).decode(
        STREAM_ENCODING, errors="replace"
    )


def diff_outputs(a: CapturedOutput, b: CapturedOutput, kind: CheckKind) -> str:
    """Unified diff of the compared views, truncated for display."""
    view_a = printable(comparison_view(a, kind))
    view_b = printable(comparison_view(b, kind))
    diff = difflib.unified_diff(
        view_a.splitlines(),
        view_b.splitlines(),
        fromfile="stage0",
        tofile="stage1",
        lineterm="",
    )
    lines: list[str] = []
    for index, line in enumerate(diff):
        if index >= MAX_DIFF_LINES:
            lines.append("... (diff truncated)")
            break
        lines.append(line)

    if not lines:
        # Views differ only in line endings or a trailing newline.
        lines.append(f"stage0: {view_a!r}")
        lines.append(f"stage1: {view_b!r}")
    return "\n".join(lines)


def compare_check(
    kind: CheckKind,
    stage0: InvocationOutcome,
    stage1: InvocationOutcome,
    *,
    note: str = "",
) -> ComparisonResult:
    """Compare both stages' outcomes for a check and build its result.

    Outcomes that failed differently (or only on one side) differ even
    when their compared views match.
    """
    verdict = compare(stage0.captured, stage1.captured, kind)
    diff = ""
    if verdict == CheckVerdict.DIFFERS:
        diff = diff_outputs(stage0.captured, stage1.captured, kind)
    if _failure_kind(stage0) != _failure_kind(stage1):
        verdict = CheckVerdict.DIFFERS
        mismatch = (
            f"stage0: {_describe_outcome(stage0)}\n"
            f"stage1: {_describe_outcome(stage1)}"
        )
        diff = f"{mismatch}\n{diff}" if diff else mismatch
    logger.info("%s check: %s", kind.value, verdict.value)

    return ComparisonResult(
        kind=kind,
        verdict=verdict,
        stage0_output=stage0.captured,
        stage1_output=stage1.captured,
        fatal=False,
        diff=diff,
        note=note,
        stage0_failure=stage0.failure,
        stage1_failure=stage1.failure,
        stage0_hash=view_digest(stage0.captured, kind),
        stage1_hash=view_digest(stage1.captured, kind),
    )


def skipped_check(kind: CheckKind, reason: str) -> ComparisonResult:
    """Build the result for a check that was not attempted."""
    logger.info("%s check skipped: %s", kind.value, reason)
    return ComparisonResult(kind=kind, verdict=CheckVerdict.SKIPPED, note=reason)


def slowdown_note(result: ComparisonResult) -> str:
    """Note for a Stage 1 run that is much slower than Stage 0, else ""."""
    ratio = result.duration_ratio
    stage1 = result.stage1_output
    if ratio is None or stage1 is None:
        return ""
    if ratio <= SLOWDOWN_NOTE_RATIO or stage1.duration_seconds < SLOWDOWN_MIN_SECONDS:
        return ""
    return f"Stage 1 took {ratio:.1f}x as long as Stage 0"


def _failure_kind(outcome: InvocationOutcome) -> InvocationFailureKind | None:
    return outcome.failure.kind if outcome.failure is not None else None


def _describe_outcome(outcome: InvocationOutcome) -> str:
    if outcome.failure is None:
        return f"exited with status {outcome.captured.exit_status}"
    return f"invocation failed ({outcome.failure.kind.value}): {outcome.failure.detail}"
