"""Toolchain availability check run before any build work."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from bootverify.verify.errors import ToolchainMissingError

logger = logging.getLogger(__name__)


def probe_toolchain(tool_name: str, remediation: str = "") -> Path:
    """Return the resolved path of a required tool.

    Only looks the tool up; nothing is executed or created.

    Raises:
        ToolchainMissingError: If the tool is not on PATH (or, for a path,
            is not an executable file).
    """
    resolved = shutil.which(tool_name)
    if resolved is None:
        logger.error("Toolchain probe failed: %s not found", tool_name)
        raise ToolchainMissingError(tool_name, remediation)

    logger.info("Toolchain probe: %s -> %s", tool_name, resolved)
    return Path(resolved)
