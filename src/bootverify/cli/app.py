"""CLI orchestration."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from bootverify.cli.parser import parse_args
from bootverify.verify.orchestrator import run_verification

logger = logging.getLogger(__name__)


def dispatch(args: argparse.Namespace) -> int:
    """Run the verification pipeline for parsed args."""
    project_root = args.workdir or Path.cwd()
    return run_verification(
        project_root,
        verbose=args.verbose,
        report_path=args.report,
    )


def run(
    argv: Sequence[str] | None = None,
    *,
    configure_logging: Callable[[bool], None] | None = None,
) -> int:
    """Parse args, apply shared CLI setup, and execute the pipeline."""
    args = parse_args(argv)

    if configure_logging is not None:
        configure_logging(args.verbose)

    logger.info("Project root: %s", (args.workdir or Path.cwd()).resolve())
    return dispatch(args)
