"""Bootstrap verification pipeline orchestrator.

Runs the full pipeline inside one scoped resource acquisition:
1. Probe the trusted toolchain and build the Stage 0 compiler
2. Build the Stage 1 compiler with Stage 0 (or a delegation artifact)
3. Version equivalence
4. Compilation equivalence
5. Runtime equivalence
6. Self-check diagnostics
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from bootverify.config.layout import BootstrapLayout
from bootverify.runtime.command_runner import CommandEvent, CommandRunner
from bootverify.verify.builder import ArtifactBuilder
from bootverify.verify.compare import printable
from bootverify.verify.errors import BootstrapError, BuildFailureError
from bootverify.verify.models import (
    CHECK_ORDER,
    EXIT_FAIL,
    EXIT_INTERRUPTED,
    EXIT_SIGNAL_BASE,
    CheckVerdict,
    VerificationReport,
)
from bootverify.verify.probe import probe_toolchain
from bootverify.verify.report import print_report, write_report_json
from bootverify.verify.resources import ResourceManager
from bootverify.verify.runner import CheckEvent, EquivalenceRunner

logger = logging.getLogger(__name__)

TOTAL_STEPS = 2 + len(CHECK_ORDER)


class _StagedLog:
    """Human-readable progress printed while the pipeline runs."""

    def __init__(self, console: Console, verbose: bool) -> None:
        self.console = console
        self.verbose = verbose

    def step(self, number: int, title: str) -> None:
        self.console.print()
        self.console.print(f"[bold blue][{number}/{TOTAL_STEPS}] {title}[/]")

    def ok(self, message: str) -> None:
        self.console.print(f"[green]✓ {escape(message)}[/]")

    def warn(self, message: str) -> None:
        self.console.print(f"[yellow]⚠ {escape(message)}[/]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗ {escape(message)}[/]")

    def on_command_event(self, event: CommandEvent) -> None:
        self.warn(f"{event.detail}: {event.command}")

    def on_check_event(self, event: CheckEvent) -> None:
        number = 3 + CHECK_ORDER.index(event.kind)
        if event.event_type == "start":
            self.step(number, event.kind.title)
            return

        result = event.result
        if result is None:
            return
        if self.verbose:
            for label, output in (
                ("Stage 0", result.stage0_output),
                ("Stage 1", result.stage1_output),
            ):
                if output is None:
                    continue
                self.console.print(f"{label} (exit {output.exit_status}):")
                self.console.print(
                    printable(output.stdout + output.stderr).rstrip("\n"),
                    markup=False,
                    highlight=False,
                )

        if result.verdict == CheckVerdict.IDENTICAL:
            self.ok(f"{event.kind.title}: outputs are identical")
        elif result.verdict == CheckVerdict.DIFFERS:
            self.warn(f"{event.kind.title}: outputs differ (non-fatal)")
        else:
            self.warn(f"{event.kind.title} skipped: {result.note}")


def _describe_fatal(error: BootstrapError) -> str:
    if isinstance(error, BuildFailureError) and error.build_log:
        return f"{error}\nbuild log:\n{error.build_log.rstrip()}"
    return str(error)


def _run_stages(
    *,
    layout: BootstrapLayout,
    project_root: Path,
    resources: ResourceManager,
    report: VerificationReport,
    log: _StagedLog,
    command_runner: CommandRunner | None,
) -> None:
    log.step(1, "Building Stage 0 Compiler (trusted toolchain)")
    probe_toolchain(layout.toolchain, layout.toolchain_install_hint)
    builder = ArtifactBuilder(
        layout,
        project_root,
        resources,
        command_runner=command_runner,
        on_event=log.on_command_event,
    )
    stage0 = builder.build_stage0()
    report.set_artifact(stage0)
    log.ok("Stage 0 compiler ready")

    log.step(2, "Building Stage 1 Compiler (self-hosted)")
    stage1 = builder.build_stage1(stage0)
    report.set_artifact(stage1)
    if stage1.delegated:
        log.warn(
            "Self-hosted compiler source not available; "
            "Stage 1 delegates to Stage 0"
        )
    log.ok("Stage 1 compiler ready")

    runner = EquivalenceRunner(
        layout,
        project_root,
        resources,
        command_runner=command_runner,
        on_event=log.on_check_event,
    )
    runner.run(stage0, stage1, report)


def run_verification(
    project_root: Path,
    *,
    verbose: bool = False,
    report_path: Path | None = None,
    console: Console | None = None,
    command_runner: CommandRunner | None = None,
    temp_base_dir: Path | None = None,
    handle_signals: bool = True,
) -> int:
    """Run the bootstrap verification pipeline.

    Args:
        project_root: Root of the compiler project to verify
        verbose: If True, echo captured outputs as checks run
        report_path: Optional path for a JSON copy of the report
        console: Console for the staged log and report
        command_runner: Runner for all external commands
        temp_base_dir: Parent directory for the run's temporary directory
        handle_signals: Install SIGINT/SIGTERM handlers for teardown

    Returns:
        Exit code: 0 = pass, 1 = fail, 128 + signal number when stopped
        by SIGINT or SIGTERM (130 for a bare KeyboardInterrupt)
    """
    console = console or Console(highlight=False)
    project_root = project_root.resolve()
    log = _StagedLog(console, verbose)

    if not project_root.is_dir():
        log.error(f"Project directory not found: {project_root}")
        return EXIT_FAIL

    layout = BootstrapLayout.load(project_root)
    report = VerificationReport(project_root=str(project_root))
    resources = ResourceManager(base_dir=temp_base_dir, handle_signals=handle_signals)
    interrupted = False

    console.print("[bold blue]BOOTSTRAP VERIFICATION[/]")
    logger.info("Verifying bootstrap of %s in %s", layout.compiler, project_root)

    try:
        with resources:
            try:
                _run_stages(
                    layout=layout,
                    project_root=project_root,
                    resources=resources,
                    report=report,
                    log=log,
                    command_runner=command_runner,
                )
            except BootstrapError as e:
                logger.error("Fatal: %s", e)
                log.error(str(e))
                report.record_fatal(_describe_fatal(e))
            report.finalize()
    except KeyboardInterrupt:
        interrupted = True
        logger.warning("Run interrupted")
        log.error("Interrupted; temporary files removed")
        if not report.finalized:
            report.record_fatal("Run interrupted before completion")
            report.finalize()

    for message in resources.cleanup_failures:
        report.record_cleanup_failure(message)

    console.print()
    print_report(report, console)
    if report_path is not None:
        write_report_json(report, report_path)

    if interrupted:
        if resources.received_signal is not None:
            return EXIT_SIGNAL_BASE + resources.received_signal
        return EXIT_INTERRUPTED
    return report.exit_code
