"""Construction of the Stage 0 and Stage 1 compiler artifacts."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import stat
from collections.abc import Callable
from pathlib import Path

from bootverify.config.layout import BootstrapLayout
from bootverify.runtime.command_runner import (
    CommandEvent,
    CommandResult,
    CommandRunner,
    get_command_runner,
)
from bootverify.runtime.timeout_policy import TimeoutDomain
from bootverify.verify.errors import BuildFailureError
from bootverify.verify.models import CompilerArtifact, Stage
from bootverify.verify.resources import ResourceManager

logger = logging.getLogger(__name__)

DELEGATION_TEMPLATE = """#!/bin/sh
# Delegation artifact: self-hosted source not available.
# Forwards arguments, input, output and exit status to Stage 0 unchanged.
exec {stage0} "$@"
"""


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _format_build_log(result: CommandResult) -> str:
    lines = [f"$ {result.command}"]
    if result.stdout:
        lines.append(result.stdout.rstrip("\n"))
    if result.stderr:
        lines.append(result.stderr.rstrip("\n"))
    if result.launch_error is not None:
        lines.append(f"error: {result.launch_error}")
    elif result.timed_out:
        lines.append(f"error: timed out after {result.timeout_seconds:.1f}s")
    else:
        lines.append(f"exit status: {result.effective_exit_code}")
    return "\n".join(lines) + "\n"


def _failure_reason(result: CommandResult) -> str | None:
    if result.launch_error is not None:
        return f"could not run build command: {result.launch_error}"
    if result.timed_out:
        return f"build timed out after {result.timeout_seconds:.1f}s"
    if result.effective_exit_code != 0:
        return f"build exited with status {result.effective_exit_code}"
    return None


class ArtifactBuilder:
    """Builds the two compiler stages into the run's working directory."""

    def __init__(
        self,
        layout: BootstrapLayout,
        project_root: Path,
        resources: ResourceManager,
        *,
        command_runner: CommandRunner | None = None,
        on_event: Callable[[CommandEvent], None] | None = None,
    ) -> None:
        self.layout = layout
        self.project_root = project_root
        self.resources = resources
        self._runner = command_runner or get_command_runner()
        self._on_event = on_event

    @property
    def self_hosted_source(self) -> Path:
        return self.layout.resolve(self.project_root, self.layout.self_hosted_source)

    def has_self_hosted_source(self) -> bool:
        return self.self_hosted_source.is_file()

    def build_stage0(self) -> CompilerArtifact:
        """Build the reference compiler with the trusted toolchain.

        Raises:
            BuildFailureError: If the toolchain build fails or leaves no binary.
        """
        logger.info("Building Stage 0 with: %s", " ".join(self.layout.build_command))
        result = self._runner.run(
            command=list(self.layout.build_command),
            domain=TimeoutDomain.STAGE_BUILD,
            cwd=self.project_root,
            requested_timeout_seconds=self.layout.build_timeout_seconds,
            on_event=self._on_event,
        )
        build_log = _format_build_log(result)
        self._write_build_log(Stage.STAGE0, build_log)

        reason = _failure_reason(result)
        if reason is not None:
            raise BuildFailureError(0, reason, build_log)

        built_binary = self.layout.resolve(self.project_root, self.layout.built_binary)
        if not built_binary.is_file():
            raise BuildFailureError(
                0, f"built binary not found: {built_binary}", build_log
            )

        target = self.resources.path(self.layout.stage0_name)
        try:
            shutil.copyfile(built_binary, target)
            _make_executable(target)
        except OSError as e:
            raise BuildFailureError(
                0, f"could not copy {built_binary}: {e}", build_log
            ) from e

        logger.info("Stage 0 compiler ready: %s", target)
        return CompilerArtifact(
            stage=Stage.STAGE0,
            executable_path=target,
            built=True,
            build_log=build_log,
        )

    def build_stage1(self, stage0: CompilerArtifact) -> CompilerArtifact:
        """Build the compiler under verification using Stage 0.

        Falls back to a delegation artifact when no self-hosted source exists.

        Raises:
            BuildFailureError: If neither form can be produced.
        """
        if not stage0.built:
            raise ValueError("Stage 1 requires a built Stage 0 artifact")

        target = self.resources.path(self.layout.stage1_name)
        if not self.has_self_hosted_source():
            return self._build_delegation(stage0, target)

        source = self.self_hosted_source
        logger.info("Building Stage 1 from %s", source)
        result = self._runner.run(
            command=[stage0.executable_path, "build", source, "-o", target],
            domain=TimeoutDomain.STAGE_BUILD,
            cwd=self.project_root,
            requested_timeout_seconds=self.layout.build_timeout_seconds,
            on_event=self._on_event,
        )
        build_log = _format_build_log(result)
        self._write_build_log(Stage.STAGE1, build_log)

        reason = _failure_reason(result)
        if reason is not None:
            raise BuildFailureError(1, reason, build_log)
        if not target.is_file():
            raise BuildFailureError(
                1, f"Stage 0 produced no binary at {target}", build_log
            )
        _make_executable(target)

        logger.info("Stage 1 compiler ready: %s", target)
        return CompilerArtifact(
            stage=Stage.STAGE1,
            executable_path=target,
            built=True,
            build_log=build_log,
        )

    def _build_delegation(
        self, stage0: CompilerArtifact, target: Path
    ) -> CompilerArtifact:
        logger.warning(
            "Self-hosted source not found at %s; creating delegation artifact",
            self.self_hosted_source,
        )
        stage0_path = os.path.abspath(stage0.executable_path)
        build_log = (
            f"self-hosted source not found: {self.self_hosted_source}\n"
            f"delegating to {stage0_path}\n"
        )
        try:
            target.write_text(
                DELEGATION_TEMPLATE.format(stage0=shlex.quote(stage0_path)),
                encoding="utf-8",
            )
            _make_executable(target)
        except OSError as e:
            raise BuildFailureError(
                1, f"could not write delegation artifact: {e}", build_log
            ) from e
        self._write_build_log(Stage.STAGE1, build_log)

        return CompilerArtifact(
            stage=Stage.STAGE1,
            executable_path=target,
            built=True,
            build_log=build_log,
            delegated=True,
        )

    def _write_build_log(self, stage: Stage, build_log: str) -> None:
        log_path = self.resources.path(f"build_stage{stage.value}.log")
        log_path.write_text(build_log, encoding="utf-8", errors="surrogateescape")
