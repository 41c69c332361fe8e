"""Data models for the bootstrap verification system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from bootverify.runtime.command_runner import CommandResult

# Exit status recorded when an artifact could not be run at all.
INVOCATION_FAILED_STATUS = -1

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_INTERRUPTED = 130
EXIT_SIGNAL_BASE = 128  # Exit status after a fatal signal is 128 + signum


class Stage(Enum):
    """Compiler build stage."""

    STAGE0 = 0  # Built by the trusted toolchain
    STAGE1 = 1  # Built by Stage 0, under verification

    @property
    def label(self) -> str:
        return f"Stage {self.value}"


class CheckKind(Enum):
    """Equivalence checks, declared in execution order."""

    VERSION = "version"
    COMPILATION = "compilation"
    RUNTIME = "runtime"
    SELF_DIAGNOSTICS = "self_diagnostics"

    @property
    def title(self) -> str:
        return {
            CheckKind.VERSION: "Version Equivalence",
            CheckKind.COMPILATION: "Compilation Equivalence",
            CheckKind.RUNTIME: "Runtime Equivalence",
            CheckKind.SELF_DIAGNOSTICS: "Self-Check Diagnostics",
        }[self]


CHECK_ORDER: tuple[CheckKind, ...] = tuple(CheckKind)


class CheckVerdict(Enum):
    """Outcome of comparing one check's outputs."""

    IDENTICAL = "identical"
    DIFFERS = "differs"
    SKIPPED = "skipped"


class VerificationStatus(Enum):
    """Overall status of a verification run."""

    PASS = "pass"
    FAIL = "fail"


class InvocationFailureKind(Enum):
    """Why an artifact invocation produced no normal exit."""

    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"
    TIMED_OUT = "timed_out"
    OS_ERROR = "os_error"


@dataclass(frozen=True, slots=True)
class CompilerArtifact:
    """A compiler binary produced for one stage of the run."""

    stage: Stage
    executable_path: Path
    built: bool
    build_log: str = ""
    delegated: bool = False  # Forwards every invocation to Stage 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "executable_path": str(self.executable_path),
            "built": self.built,
            "delegated": self.delegated,
            "build_log": self.build_log,
        }


@dataclass(frozen=True, slots=True)
class CapturedOutput:
    """Streams and exit status of one artifact invocation."""

    stdout: str
    stderr: str
    exit_status: int
    duration_seconds: float = 0.0  # Wall clock, including any timeout grace

    def to_dict(self) -> dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_status": self.exit_status,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True, slots=True)
class InvocationFailure:
    """An invocation that could not run to a normal exit."""

    kind: InvocationFailureKind
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "detail": self.detail}


@dataclass(frozen=True, slots=True)
class InvocationOutcome:
    """Result of invoking an artifact: captured output, plus a failure if any.

    A failed invocation still carries a CapturedOutput (with the sentinel
    exit status and the error in stderr) so comparisons treat every
    outcome the same way.
    """

    captured: CapturedOutput
    failure: InvocationFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(
        cls,
        kind: InvocationFailureKind,
        detail: str,
        *,
        stdout: str = "",
        stderr: str = "",
        duration_seconds: float = 0.0,
    ) -> "InvocationOutcome":
        message = f"invocation failed ({kind.value}): {detail}"
        return cls(
            captured=CapturedOutput(
                stdout=stdout,
                stderr=f"{stderr}{message}\n",
                exit_status=INVOCATION_FAILED_STATUS,
                duration_seconds=duration_seconds,
            ),
            failure=InvocationFailure(kind=kind, detail=detail),
        )

    @classmethod
    def from_command_result(cls, result: CommandResult) -> "InvocationOutcome":
        """Convert a runner result into an outcome."""
        if not result.launched:
            kind = {
                "not_found": InvocationFailureKind.NOT_FOUND,
                "not_executable": InvocationFailureKind.NOT_EXECUTABLE,
            }.get(result.launch_error_kind or "", InvocationFailureKind.OS_ERROR)
            return cls.failed(kind, result.launch_error or "launch failed")
        if result.timed_out:
            return cls.failed(
                InvocationFailureKind.TIMED_OUT,
                f"no exit after {result.timeout_seconds:.1f}s",
                stdout=result.stdout,
                stderr=result.stderr,
                duration_seconds=result.duration_seconds,
            )
        return cls(
            captured=CapturedOutput(
                stdout=result.stdout,
                stderr=result.stderr,
                exit_status=result.effective_exit_code,
                duration_seconds=result.duration_seconds,
            )
        )


@dataclass
class ComparisonResult:
    """Result of one equivalence check between Stage 0 and Stage 1."""

    kind: CheckKind
    verdict: CheckVerdict
    stage0_output: CapturedOutput | None = None
    stage1_output: CapturedOutput | None = None
    fatal: bool = False
    diff: str = ""  # Unified diff when verdict is DIFFERS
    note: str = ""  # Skip reason or delegation annotation
    stage0_failure: InvocationFailure | None = None
    stage1_failure: InvocationFailure | None = None
    stage0_hash: str = ""  # sha256 of the compared view
    stage1_hash: str = ""

    @property
    def duration_ratio(self) -> float | None:
        """Stage 1 wall time as a multiple of Stage 0's, when both ran."""
        if self.stage0_output is None or self.stage1_output is None:
            return None
        if self.stage0_output.duration_seconds <= 0:
            return None
        return (
            self.stage1_output.duration_seconds / self.stage0_output.duration_seconds
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "verdict": self.verdict.value,
            "fatal": self.fatal,
            "stage0_output": (
                self.stage0_output.to_dict() if self.stage0_output else None
            ),
            "stage1_output": (
                self.stage1_output.to_dict() if self.stage1_output else None
            ),
            "stage0_failure": (
                self.stage0_failure.to_dict() if self.stage0_failure else None
            ),
            "stage1_failure": (
                self.stage1_failure.to_dict() if self.stage1_failure else None
            ),
            "stage0_hash": self.stage0_hash,
            "stage1_hash": self.stage1_hash,
            "duration_ratio": self.duration_ratio,
            "diff": self.diff,
            "note": self.note,
        }


@dataclass
class VerificationReport:
    """Full bootstrap verification report for one run."""

    project_root: str
    stage0: CompilerArtifact | None = None
    stage1: CompilerArtifact | None = None
    results: list[ComparisonResult] = field(default_factory=list)
    fatal_errors: list[str] = field(default_factory=list)
    cleanup_failures: list[str] = field(default_factory=list)
    overall_status: VerificationStatus | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def finalized(self) -> bool:
        return self.overall_status is not None

    @property
    def passed(self) -> bool:
        return self.overall_status == VerificationStatus.PASS

    @property
    def exit_code(self) -> int:
        if not self.finalized:
            raise RuntimeError("Report has not been finalized")
        return EXIT_PASS if self.passed else EXIT_FAIL

    def set_artifact(self, artifact: CompilerArtifact) -> None:
        """Record a built artifact."""
        self._ensure_open()
        if artifact.stage == Stage.STAGE0:
            self.stage0 = artifact
        else:
            self.stage1 = artifact

    def add_result(self, result: ComparisonResult) -> None:
        """Append a check result; checks must arrive in execution order."""
        self._ensure_open()
        if self.results:
            last_index = CHECK_ORDER.index(self.results[-1].kind)
            if CHECK_ORDER.index(result.kind) <= last_index:
                raise ValueError(
                    f"{result.kind.value} recorded after {self.results[-1].kind.value}"
                )
        self.results.append(result)

    def record_fatal(self, message: str) -> None:
        """Record a fatal error; the run will not pass."""
        self._ensure_open()
        self.fatal_errors.append(message)

    def record_cleanup_failure(self, message: str) -> None:
        """Record a teardown problem. Allowed after finalization."""
        self.cleanup_failures.append(message)

    def result_for(self, kind: CheckKind) -> ComparisonResult | None:
        """Return the recorded result for a check, if it ran."""
        for result in self.results:
            if result.kind == kind:
                return result
        return None

    def finalize(self) -> None:
        """Fix the overall status. Divergent checks do not fail a run."""
        self._ensure_open()
        self.completed_at = datetime.now()
        has_fatal = bool(self.fatal_errors) or any(r.fatal for r in self.results)
        self.overall_status = (
            VerificationStatus.FAIL if has_fatal else VerificationStatus.PASS
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "project_root": self.project_root,
            "overall_status": (
                self.overall_status.value if self.overall_status else None
            ),
            "stage0": self.stage0.to_dict() if self.stage0 else None,
            "stage1": self.stage1.to_dict() if self.stage1 else None,
            "results": [r.to_dict() for r in self.results],
            "fatal_errors": self.fatal_errors,
            "cleanup_failures": self.cleanup_failures,
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }

    def _ensure_open(self) -> None:
        if self.finalized:
            raise RuntimeError("Report is finalized and read-only")
