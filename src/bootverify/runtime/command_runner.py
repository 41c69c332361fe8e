"""Shared subprocess runner with central timeout/signal policy."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from bootverify.runtime.timeout_policy import (
    TimeoutDomain,
    TimeoutPolicyRegistry,
    get_timeout_policy_registry,
)

logger = logging.getLogger(__name__)

# Streams are decoded so that str equality is byte equality.
STREAM_ENCODING = "utf-8"
STREAM_ERRORS = "surrogateescape"


@dataclass(frozen=True, slots=True)
class CommandEvent:
    """Lifecycle event emitted while running commands."""

    event_type: str
    domain: TimeoutDomain
    command: str
    timeout_seconds: float
    detail: str = ""


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a single command run."""

    domain: TimeoutDomain
    command: str
    timeout_seconds: float
    duration_seconds: float
    timed_out: bool
    exit_code: int | None
    stdout: str
    stderr: str
    launch_error: str | None = None
    launch_error_kind: str | None = None
    signal_sequence: tuple[str, ...] = ()

    @property
    def launched(self) -> bool:
        return self.launch_error is None

    @property
    def effective_exit_code(self) -> int:
        if self.exit_code is not None:
            return self.exit_code
        if self.timed_out:
            return 124
        return 1


class CommandRunner:
    """Runs subprocess commands with timeout policy enforcement.

    Commands are never retried: a bootstrap stage either produces its
    output within the limit or the run records the failure.
    """

    def __init__(
        self,
        *,
        policy_registry: TimeoutPolicyRegistry | None = None,
    ) -> None:
        self._policy_registry = policy_registry or get_timeout_policy_registry()

    def run(
        self,
        *,
        command: Sequence[str | Path],
        domain: TimeoutDomain,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        requested_timeout_seconds: float | None = None,
        on_event: Callable[[CommandEvent], None] | None = None,
    ) -> CommandResult:
        """Run a command according to centralized timeout policy."""
        policy = self._policy_registry.policy_for(domain)
        timeout_seconds = self._policy_registry.timeout_for(
            domain, requested_timeout_seconds
        )
        resolved_cwd = Path(cwd).resolve() if cwd is not None else None
        argv = [str(part) for part in command]
        command_text = _format_command(argv)
        start_new_session = bool(policy.use_process_group and os.name != "nt")

        logger.debug(
            "Running [%s] %s (timeout %.1fs)",
            domain.value,
            command_text,
            timeout_seconds,
        )
        started_at = time.perf_counter()

        try:
            process = subprocess.Popen(
                argv,
                cwd=str(resolved_cwd) if resolved_cwd is not None else None,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=start_new_session,
            )
        except OSError as exc:
            logger.debug("Failed to launch %s: %s", command_text, exc)
            return CommandResult(
                domain=domain,
                command=command_text,
                timeout_seconds=timeout_seconds,
                duration_seconds=time.perf_counter() - started_at,
                timed_out=False,
                exit_code=None,
                stdout="",
                stderr="",
                launch_error=str(exc),
                launch_error_kind=_classify_launch_error(exc),
            )

        timed_out = False
        signal_sequence: list[str] = []
        stdout = ""
        stderr = ""

        try:
            out, err = process.communicate(timeout=timeout_seconds)
            stdout = _decode_stream(out)
            stderr = _decode_stream(err)
        except subprocess.TimeoutExpired:
            timed_out = True
            _emit_event(
                on_event,
                CommandEvent(
                    event_type="timeout",
                    domain=domain,
                    command=command_text,
                    timeout_seconds=timeout_seconds,
                    detail=f"No exit after {timeout_seconds:.1f}s",
                ),
            )

            term_out, term_err, sent_signals = self._terminate_process(
                process=process,
                use_process_group=start_new_session,
                terminate_grace_seconds=policy.signal.terminate_grace_seconds,
                domain=domain,
                command=command_text,
                timeout_seconds=timeout_seconds,
                on_event=on_event,
            )
            signal_sequence.extend(sent_signals)
            # communicate() after a timeout returns everything read so far.
            stdout = term_out
            stderr = term_err
        except KeyboardInterrupt:
            # Children run in their own session and miss the terminal signal.
            _kill_quietly(process, use_process_group=start_new_session)
            raise

        return CommandResult(
            domain=domain,
            command=command_text,
            timeout_seconds=timeout_seconds,
            duration_seconds=time.perf_counter() - started_at,
            timed_out=timed_out,
            exit_code=None if timed_out else process.returncode,
            stdout=stdout,
            stderr=stderr,
            signal_sequence=tuple(signal_sequence),
        )

    def _terminate_process(
        self,
        *,
        process: subprocess.Popen[bytes],
        use_process_group: bool,
        terminate_grace_seconds: float,
        domain: TimeoutDomain,
        command: str,
        timeout_seconds: float,
        on_event: Callable[[CommandEvent], None] | None,
    ) -> tuple[str, str, list[str]]:
        stdout = ""
        stderr = ""
        signals: list[str] = []

        def _send(sig: int, label: str) -> bool:
            if process.poll() is not None:
                return False
            try:
                if use_process_group:
                    os.killpg(process.pid, sig)
                else:
                    process.send_signal(sig)
                signals.append(label)
                return True
            except (ProcessLookupError, PermissionError):
                return False

        if _send(signal.SIGTERM, "SIGTERM"):
            _emit_event(
                on_event,
                CommandEvent(
                    event_type="terminate",
                    domain=domain,
                    command=command,
                    timeout_seconds=timeout_seconds,
                    detail="Sent SIGTERM after timeout",
                ),
            )

        try:
            extra_out, extra_err = process.communicate(timeout=terminate_grace_seconds)
            stdout += _decode_stream(extra_out)
            stderr += _decode_stream(extra_err)
            return stdout, stderr, signals
        except subprocess.TimeoutExpired:
            pass

        if _send(signal.SIGKILL, "SIGKILL"):
            _emit_event(
                on_event,
                CommandEvent(
                    event_type="kill",
                    domain=domain,
                    command=command,
                    timeout_seconds=timeout_seconds,
                    detail="Sent SIGKILL after terminate grace period",
                ),
            )

        extra_out, extra_err = process.communicate()
        stdout += _decode_stream(extra_out)
        stderr += _decode_stream(extra_err)
        return stdout, stderr, signals


def _kill_quietly(
    process: subprocess.Popen[bytes], *, use_process_group: bool
) -> None:
    if process.poll() is not None:
        return
    try:
        if use_process_group:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        return
    process.wait()


def _decode_stream(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(STREAM_ENCODING, errors=STREAM_ERRORS)
    return data


def _classify_launch_error(exc: OSError) -> str:
    if isinstance(exc, FileNotFoundError):
        return "not_found"
    if isinstance(exc, PermissionError):
        return "not_executable"
    return "os_error"


def _format_command(command: Sequence[str]) -> str:
    return shlex.join(command)


def _emit_event(
    on_event: Callable[[CommandEvent], None] | None,
    event: CommandEvent,
) -> None:
    if on_event is None:
        return
    on_event(event)


_DEFAULT_COMMAND_RUNNER = CommandRunner()


def get_command_runner() -> CommandRunner:
    """Return shared command runner instance."""
    return _DEFAULT_COMMAND_RUNNER
