"""Fatal error types for the bootstrap pipeline.

Only conditions that end a run live here. Invocation failures and output
divergence are recorded as report data instead.
"""

from __future__ import annotations


class BootstrapError(Exception):
    """Base exception for fatal bootstrap verification errors."""

    pass


class ToolchainMissingError(BootstrapError):
    """Raised when the trusted build toolchain cannot be found."""

    def __init__(self, tool: str, remediation: str = "") -> None:
        self.tool = tool
        self.remediation = remediation
        message = f"Required toolchain not found: {tool}"
        if remediation:
            message = f"{message}. {remediation}"
        super().__init__(message)


class BuildFailureError(BootstrapError):
    """Raised when a compiler stage cannot be built."""

    def __init__(self, stage: int, reason: str, build_log: str = "") -> None:
        self.stage = stage
        self.reason = reason
        self.build_log = build_log
        super().__init__(f"Stage {stage} build failed: {reason}")
