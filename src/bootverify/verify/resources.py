"""Scoped ownership of a run's transient filesystem state.

One ``ResourceManager`` owns the temporary working directory, the two
stage binaries and the per-check logs of a run. Its teardown is armed on
entry (context exit, ``atexit``, SIGINT/SIGTERM) and runs exactly once,
whichever path reaches it first. Signals that arrive once teardown has
started are recorded but do not interrupt it.
"""

from __future__ import annotations

import atexit
import logging
import shutil
import signal
import tempfile
import threading
from pathlib import Path
from types import FrameType, TracebackType
from typing import Any

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ResourceManager:
    """Owns temporary paths for one run and removes them on every exit."""

    def __init__(
        self,
        *,
        base_dir: Path | None = None,
        prefix: str = "bootverify-",
        handle_signals: bool = True,
    ) -> None:
        self._base_dir = base_dir
        self._prefix = prefix
        self._handle_signals = handle_signals
        self._workdir: Path | None = None
        self._tracked: list[Path] = []
        self._torn_down = False
        self._teardown_lock = threading.Lock()
        self._previous_handlers: dict[int, Any] = {}
        self.cleanup_failures: list[str] = []
        self.received_signal: int | None = None

    @property
    def acquired(self) -> bool:
        """Whether any path has been handed out yet."""
        return bool(self._tracked)

    def __enter__(self) -> "ResourceManager":
        atexit.register(self.teardown)
        if self._handle_signals:
            self._install_signal_handlers()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.teardown()
        finally:
            self._restore_signal_handlers()
            atexit.unregister(self.teardown)

    def workdir(self) -> Path:
        """Return the run's temporary working directory, creating it once."""
        self._ensure_live()
        if self._workdir is None:
            base = str(self._base_dir) if self._base_dir is not None else None
            self._workdir = Path(tempfile.mkdtemp(prefix=self._prefix, dir=base))
            self.track(self._workdir)
            logger.info("Created working directory %s", self._workdir)
        return self._workdir

    def path(self, name: str) -> Path:
        """Return a tracked file path inside the working directory."""
        path = self.workdir() / name
        self.track(path)
        return path

    def test_dir(self, name: str) -> Path:
        """Create (once) and return a directory for per-check files."""
        directory = self.path(name)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def track(self, path: Path) -> Path:
        """Register a path for removal at teardown."""
        self._ensure_live()
        if path not in self._tracked:
            self._tracked.append(path)
        return path

    def teardown(self) -> list[str]:
        """Remove every tracked path. Safe to call repeatedly."""
        with self._teardown_lock:
            if self._torn_down:
                return self.cleanup_failures
            self._torn_down = True

        for path in reversed(self._tracked):
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as e:
                message = f"Failed to remove {path}: {e}"
                logger.warning(message)
                self.cleanup_failures.append(message)

        if self.acquired:
            logger.info("Removed %d temporary path(s)", len(self._tracked))
        return self.cleanup_failures

    def _ensure_live(self) -> None:
        if self._torn_down:
            raise RuntimeError("Resources already released")

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on main thread; relying on context exit for teardown")
            return
        for sig in HANDLED_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        self.received_signal = signum
        if self._torn_down:
            # Teardown always runs to completion.
            logger.warning("Received %s during teardown; finishing cleanup", name)
            return
        # Unwind through the context manager so teardown runs before exit.
        logger.warning("Received %s, aborting run", name)
        raise KeyboardInterrupt(name)
