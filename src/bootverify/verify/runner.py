"""Ordered equivalence checks between the Stage 0 and Stage 1 compilers."""

from __future__ import annotations

import logging
import stat
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from bootverify.config.layout import BootstrapLayout
from bootverify.runtime.command_runner import CommandRunner, get_command_runner
from bootverify.runtime.timeout_policy import TimeoutDomain
from bootverify.verify.compare import (
    compare_check,
    printable,
    skipped_check,
    slowdown_note,
)
from bootverify.verify.models import (
    CHECK_ORDER,
    CheckKind,
    ComparisonResult,
    CompilerArtifact,
    InvocationOutcome,
    Stage,
    VerificationReport,
)
from bootverify.verify.resources import ResourceManager

logger = logging.getLogger(__name__)

VERSION_ARGS = ("--version",)
SELF_CHECK_ARGS = ("--self-check",)
DELEGATION_NOTE = (
    "Stage 1 is a delegation artifact; identical output cannot prove "
    "self-hosting equivalence"
)

# Checks whose invocations run the compilers themselves.
COMPILER_CHECKS = frozenset(
    {CheckKind.VERSION, CheckKind.COMPILATION, CheckKind.SELF_DIAGNOSTICS}
)


@dataclass(frozen=True, slots=True)
class CheckEvent:
    """Progress event emitted around each check."""

    event_type: str  # "start" or "finish"
    kind: CheckKind
    result: ComparisonResult | None = None


class EquivalenceRunner:
    """Runs the four checks in order and appends results to a report."""

    def __init__(
        self,
        layout: BootstrapLayout,
        project_root: Path,
        resources: ResourceManager,
        *,
        command_runner: CommandRunner | None = None,
        on_event: Callable[[CheckEvent], None] | None = None,
    ) -> None:
        self.layout = layout
        self.project_root = project_root
        self.resources = resources
        self._runner = command_runner or get_command_runner()
        self._on_event = on_event
        self._test_dir: Path | None = None
        self._compiled: dict[Stage, Path] = {}

    @property
    def sample_program(self) -> Path:
        return self.layout.resolve(self.project_root, self.layout.sample_program)

    @property
    def test_dir(self) -> Path:
        if self._test_dir is None:
            self._test_dir = self.resources.test_dir(self.layout.test_dir_name)
        return self._test_dir

    def run(
        self,
        stage0: CompilerArtifact,
        stage1: CompilerArtifact,
        report: VerificationReport,
    ) -> list[ComparisonResult]:
        """Execute every check in order, recording each result."""
        for artifact in (stage0, stage1):
            if not artifact.built:
                raise ValueError(
                    f"{artifact.stage.label} artifact is not built; refusing to check"
                )

        handlers: dict[
            CheckKind,
            Callable[[CompilerArtifact, CompilerArtifact], ComparisonResult],
        ] = {
            CheckKind.VERSION: self.check_version,
            CheckKind.COMPILATION: self.check_compilation,
            CheckKind.RUNTIME: self.check_runtime,
            CheckKind.SELF_DIAGNOSTICS: self.check_self_diagnostics,
        }

        results: list[ComparisonResult] = []
        for kind in CHECK_ORDER:
            self._emit(CheckEvent(event_type="start", kind=kind))
            result = handlers[kind](stage0, stage1)
            if stage1.delegated and result.stage1_output is not None:
                result.note = _join_notes(result.note, DELEGATION_NOTE)
            report.add_result(result)
            results.append(result)
            self._emit(CheckEvent(event_type="finish", kind=kind, result=result))

        for stage in Stage:
            if not _stage_ever_ran(results, stage):
                message = f"{stage.label} compiler could not be invoked in any check"
                logger.error(message)
                report.record_fatal(message)
        return results

    def check_version(
        self, stage0: CompilerArtifact, stage1: CompilerArtifact
    ) -> ComparisonResult:
        """Compare ``--version`` output."""
        outcome0 = self._invoke(stage0.executable_path, VERSION_ARGS)
        outcome1 = self._invoke(stage1.executable_path, VERSION_ARGS)
        self._write_logs(CheckKind.VERSION, outcome0, outcome1)
        return compare_check(CheckKind.VERSION, outcome0, outcome1)

    def check_compilation(
        self, stage0: CompilerArtifact, stage1: CompilerArtifact
    ) -> ComparisonResult:
        """Compile the sample program with both stages."""
        sample = self.sample_program
        if not sample.is_file():
            return skipped_check(
                CheckKind.COMPILATION, f"sample program not found: {sample}"
            )

        outputs: dict[Stage, Path] = {
            Stage.STAGE0: self.test_dir / "sample_stage0",
            Stage.STAGE1: self.test_dir / "sample_stage1",
        }
        outcome0 = self._invoke(
            stage0.executable_path, (str(sample), "-o", str(outputs[Stage.STAGE0]))
        )
        outcome1 = self._invoke(
            stage1.executable_path, (str(sample), "-o", str(outputs[Stage.STAGE1]))
        )
        self._write_logs(CheckKind.COMPILATION, outcome0, outcome1)

        for stage, output in outputs.items():
            if output.is_file():
                _ensure_executable(output)
                self._compiled[stage] = output
            else:
                logger.info("%s compilation produced no binary", stage.label)
        return compare_check(CheckKind.COMPILATION, outcome0, outcome1)

    def check_runtime(
        self, stage0: CompilerArtifact, stage1: CompilerArtifact
    ) -> ComparisonResult:
        """Run both compiled samples; skipped unless both exist."""
        missing = [stage.label for stage in Stage if stage not in self._compiled]
        if missing:
            return skipped_check(
                CheckKind.RUNTIME,
                f"no compiled sample binary for {', '.join(missing)}",
            )

        outcome0 = self._invoke(self._compiled[Stage.STAGE0], ())
        outcome1 = self._invoke(self._compiled[Stage.STAGE1], ())
        self._write_logs(CheckKind.RUNTIME, outcome0, outcome1)
        result = compare_check(CheckKind.RUNTIME, outcome0, outcome1)
        if result.diff:
            result.note = "runtime outputs differ (expected during development)"
        result.note = _join_notes(result.note, slowdown_note(result))
        return result

    def check_self_diagnostics(
        self, stage0: CompilerArtifact, stage1: CompilerArtifact
    ) -> ComparisonResult:
        """Compare ``--self-check`` diagnostics."""
        outcome0 = self._invoke(stage0.executable_path, SELF_CHECK_ARGS)
        outcome1 = self._invoke(stage1.executable_path, SELF_CHECK_ARGS)
        self._write_logs(CheckKind.SELF_DIAGNOSTICS, outcome0, outcome1)
        return compare_check(CheckKind.SELF_DIAGNOSTICS, outcome0, outcome1)

    def _invoke(self, executable: Path, args: Sequence[str]) -> InvocationOutcome:
        result = self._runner.run(
            command=[executable, *args],
            domain=TimeoutDomain.ARTIFACT_INVOCATION,
            cwd=self.project_root,
            requested_timeout_seconds=self.layout.invocation_timeout_seconds,
        )
        outcome = InvocationOutcome.from_command_result(result)
        if outcome.failure is not None:
            logger.warning(
                "Invocation failed (%s): %s",
                outcome.failure.kind.value,
                result.command,
            )
        return outcome

    def _write_logs(
        self,
        kind: CheckKind,
        stage0: InvocationOutcome,
        stage1: InvocationOutcome,
    ) -> None:
        for stage, outcome in ((Stage.STAGE0, stage0), (Stage.STAGE1, stage1)):
            log_path = self.test_dir / f"{kind.value}_stage{stage.value}.log"
            captured = outcome.captured
            log_path.write_text(
                f"exit status: {captured.exit_status}\n"
                f"--- stdout ---\n{printable(captured.stdout)}"
                f"--- stderr ---\n{printable(captured.stderr)}",
                encoding="utf-8",
            )

    def _emit(self, event: CheckEvent) -> None:
        if self._on_event is None:
            return
        self._on_event(event)


def _ensure_executable(path: Path) -> None:
    try:
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
    except OSError as e:
        logger.warning("Could not mark %s executable: %s", path, e)


def _join_notes(*notes: str) -> str:
    return "; ".join(note for note in notes if note)


def _stage_ever_ran(results: Sequence[ComparisonResult], stage: Stage) -> bool:
    """Whether a stage's compiler launched in at least one executed check.

    Vacuously true when every compiler check was skipped.
    """
    attempted = False
    for result in results:
        if result.kind not in COMPILER_CHECKS or result.stage0_output is None:
            continue
        attempted = True
        failure = (
            result.stage0_failure if stage == Stage.STAGE0 else result.stage1_failure
        )
        if failure is None:
            return True
    return not attempted
